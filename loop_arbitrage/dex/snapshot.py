"""
Ingestion boundary for pool snapshots.

Pool records arrive as loosely typed mappings (JSON files, database rows,
indexer responses). Everything is validated here into immutable Pool values so
that malformed fields fail at load time instead of deep inside the swap math.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple, Union

from ..exceptions import DataError
from ..utils import get_current_timestamp, get_logger, normalize_address, normalize_timestamp
from .adapters.v2 import fee_fraction_to_bps, fee_percent_to_bps
from .types import DEFAULT_DECIMALS, DEFAULT_FEE_BPS, Pool

logger = get_logger(__name__)

_TOKEN_KEYS = (("token0", "token1"), ("token_a", "token_b"), ("tokenA", "tokenB"))
_RESERVE_KEYS = (("reserve0", "reserve1"), ("reserve_a", "reserve_b"), ("reserveA", "reserveB"))


def _parse_amount(value: Any, name: str) -> int:
    """Parse a smallest-unit integer that may arrive as str, int or integral float."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer amount, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{name} must be an integer amount, got {value}")
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(f"{name} must be an integer amount, got {type(value).__name__}")


def _pick(record: Mapping[str, Any], key_pairs) -> Tuple[Any, Any]:
    for first, second in key_pairs:
        if first in record or second in record:
            return record.get(first), record.get(second)
    return None, None


def _parse_fee(record: Mapping[str, Any], default_fee_bps: int) -> Tuple[int, bool]:
    """Resolve the fee tier in basis points; returns (fee_bps, defaulted)."""
    if record.get("fee_bps") is not None:
        return int(record["fee_bps"]), False
    if record.get("fee_percent") is not None:
        return fee_percent_to_bps(record["fee_percent"]), False
    if record.get("fee") is not None:
        # Fraction, as stored by the pool cache (0.003 for 0.30%)
        return fee_fraction_to_bps(record["fee"]), False
    return default_fee_bps, True


def pool_from_record(
    record: Mapping[str, Any],
    chain_id: Optional[int] = None,
    default_fee_bps: int = DEFAULT_FEE_BPS,
) -> Pool:
    """
    Build a validated Pool from a loosely typed record.

    Args:
        record: Mapping with token0/token1, reserve0/reserve1, fee and friends
        chain_id: Chain to assume when the record carries none
        default_fee_bps: Fee used (and flagged) when the record has no fee

    Raises:
        DataError: If required fields are missing or malformed
    """
    if not isinstance(record, Mapping):
        raise DataError(
            f"Pool record must be a mapping, got {type(record).__name__}", source="pool"
        )

    try:
        record_chain = record.get("chain_id", record.get("chainId", chain_id))
        if record_chain is None:
            raise ValueError("chain_id is required")

        token_a, token_b = _pick(record, _TOKEN_KEYS)
        if token_a is None or token_b is None:
            raise ValueError("both token addresses are required")

        raw_a, raw_b = _pick(record, _RESERVE_KEYS)
        reserve_a = _parse_amount(raw_a, "reserve_a")
        reserve_b = _parse_amount(raw_b, "reserve_b")

        fee_bps, fee_defaulted = _parse_fee(record, default_fee_bps)

        liquidity = record.get("liquidity_usd", record.get("liquidity"))
        last_updated = record.get("last_updated")

        pool = Pool(
            chain_id=int(record_chain),
            token_a=normalize_address(token_a),
            token_b=normalize_address(token_b),
            reserve_a=reserve_a,
            reserve_b=reserve_b,
            fee_bps=fee_bps,
            liquidity_usd=float(liquidity) if liquidity not in (None, "") else 0.0,
            price=float(record.get("price") or 0.0),
            dex=record.get("dex"),
            fee_defaulted=fee_defaulted,
            last_updated=(
                normalize_timestamp(last_updated) if last_updated is not None else None
            ),
        )
    except DataError as e:
        raise DataError(str(e), source="pool", record=dict(record)) from e
    except (ValueError, TypeError, ArithmeticError) as e:
        raise DataError(
            f"Malformed pool record: {e}", source="pool", record=dict(record)
        ) from e

    if fee_defaulted:
        logger.warning(
            f"Pool {pool.pool_id} has no fee, assuming {default_fee_bps} bps"
        )
    return pool


class DecimalMap:
    """
    Token address to decimals, with an observable 18-decimal fallback.

    Every address resolved through the fallback is recorded in ``defaulted``
    and logged once, so callers and tests can tell a guess from real metadata.
    """

    def __init__(
        self,
        decimals: Optional[Mapping[str, int]] = None,
        default: int = DEFAULT_DECIMALS,
    ):
        self.default = default
        self.defaulted: Set[str] = set()
        self._decimals: Dict[str, int] = {}
        for address, value in (decimals or {}).items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise DataError(
                    f"Decimals for {address} must be a non-negative integer: {value!r}",
                    source="decimals",
                )
            self._decimals[normalize_address(address)] = value

    @classmethod
    def coerce(cls, decimals: Union["DecimalMap", Mapping[str, int], None]) -> "DecimalMap":
        if isinstance(decimals, DecimalMap):
            return decimals
        return cls(decimals)

    def resolve(self, token: str) -> Tuple[int, bool]:
        """Return (decimals, defaulted) for a token."""
        token = token.lower()
        if token in self._decimals:
            return self._decimals[token], False
        if token not in self.defaulted:
            self.defaulted.add(token)
            logger.warning(
                f"No decimals for {token}, assuming {self.default} (guess)"
            )
        return self.default, True

    def copy(self) -> "DecimalMap":
        """Same decimals, with an empty fallback record."""
        clone = DecimalMap(default=self.default)
        clone._decimals = dict(self._decimals)
        return clone

    def get(self, token: str) -> int:
        return self.resolve(token)[0]

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and token.lower() in self._decimals

    def __len__(self) -> int:
        return len(self._decimals)


class PoolSnapshot:
    """
    Immutable point-in-time view of the pools of one chain.

    Re-observing a venue (same identity) replaces the earlier record, so a
    snapshot never holds two copies of one pool.
    """

    def __init__(self, pools: Iterable[Pool], chain_id: Optional[int] = None):
        by_id: Dict[str, Pool] = {}
        for pool in pools:
            if chain_id is not None and pool.chain_id != chain_id:
                continue
            if pool.pool_id in by_id:
                logger.debug(f"Pool {pool.pool_id} observed twice, keeping latest")
            by_id[pool.pool_id] = pool
        self.chain_id = chain_id
        self._pools: Tuple[Pool, ...] = tuple(by_id.values())
        self._by_id = by_id

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        chain_id: Optional[int] = None,
        max_age_seconds: Optional[float] = None,
        now: Optional[float] = None,
        default_fee_bps: int = DEFAULT_FEE_BPS,
    ) -> "PoolSnapshot":
        """
        Validate raw records into a snapshot.

        Args:
            records: Loosely typed pool records
            chain_id: Keep only pools of this chain (also the default chain)
            max_age_seconds: Drop pools refreshed longer ago than this, and
                pools with no refresh time at all
            now: Reference time for the age check (defaults to the clock)
            default_fee_bps: Fee assumed for records without one

        Raises:
            DataError: On the first malformed record
        """
        pools = [pool_from_record(r, chain_id, default_fee_bps) for r in records]

        if max_age_seconds is not None:
            reference = get_current_timestamp() if now is None else now
            fresh = [
                p
                for p in pools
                if p.last_updated is not None
                and reference - p.last_updated <= max_age_seconds
            ]
            if len(fresh) != len(pools):
                logger.info(
                    f"Dropped {len(pools) - len(fresh)} stale pools "
                    f"(older than {max_age_seconds:.0f}s)"
                )
            pools = fresh

        return cls(pools, chain_id=chain_id)

    @property
    def pools(self) -> Tuple[Pool, ...]:
        return self._pools

    @property
    def tokens(self) -> List[str]:
        """Sorted set of every token appearing in the snapshot."""
        return sorted({t for pool in self._pools for t in pool.tokens})

    def tradable(self) -> List[Pool]:
        return [pool for pool in self._pools if pool.is_tradable]

    def get(self, pool_id: str) -> Optional[Pool]:
        return self._by_id.get(pool_id)

    def __iter__(self) -> Iterator[Pool]:
        return iter(self._pools)

    def __len__(self) -> int:
        return len(self._pools)


@dataclass
class SnapshotBundle:
    """Everything a detection pass needs, as loaded from one file."""

    snapshot: PoolSnapshot
    decimals: DecimalMap
    prices: Dict[str, float] = field(default_factory=dict)
    tokens: List[str] = field(default_factory=list)


def load_snapshot_file(
    path: Union[str, Path],
    chain_id: Optional[int] = None,
    max_age_seconds: Optional[float] = None,
    now: Optional[float] = None,
) -> SnapshotBundle:
    """
    Load a JSON snapshot file.

    Expected layout::

        {"pools": [...], "decimals": {"0x..": 18}, "prices": {"0x..": 3000.0},
         "tokens": ["0x..", ...]}

    Only ``pools`` is required; ``tokens`` defaults to the snapshot's token set.

    Raises:
        DataError: If the file is missing, not JSON or malformed
    """
    path = Path(path)
    if not path.exists():
        raise DataError(f"Snapshot file not found: {path}", source=str(path))

    try:
        with open(path, "r") as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        raise DataError(f"Invalid JSON in {path}: {e}", source=str(path)) from e

    if isinstance(payload, list):
        payload = {"pools": payload}
    if not isinstance(payload, dict) or not isinstance(payload.get("pools"), list):
        raise DataError(
            f"Snapshot {path} must contain a 'pools' list", source=str(path)
        )

    snapshot = PoolSnapshot.from_records(
        payload["pools"], chain_id=chain_id, max_age_seconds=max_age_seconds, now=now
    )
    decimals = DecimalMap(payload.get("decimals") or {})

    try:
        prices = {
            normalize_address(k): float(v)
            for k, v in (payload.get("prices") or {}).items()
        }
        tokens = [normalize_address(t) for t in payload.get("tokens") or []]
    except (TypeError, ValueError) as e:
        raise DataError(f"Malformed prices/tokens in {path}: {e}", source=str(path)) from e

    logger.info(f"Loaded {len(snapshot)} pools from {path}")
    return SnapshotBundle(
        snapshot=snapshot,
        decimals=decimals,
        prices=prices,
        tokens=tokens or snapshot.tokens,
    )

"""
Core data types for closed-loop AMM arbitrage detection.
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..exceptions import DataError, InvariantViolation

DEFAULT_DECIMALS = 18
DEFAULT_FEE_BPS = 30
BPS_DENOMINATOR = 10000


def make_pool_id(chain_id: int, token_a: str, token_b: str, fee_bps: int) -> str:
    """Deterministic pool identity: chain, canonical token order, fee tier."""
    t0, t1 = sorted((token_a.lower(), token_b.lower()))
    return f"{chain_id}-{t0}-{t1}-{fee_bps}"


@dataclass(frozen=True)
class Pool:
    """
    A constant-product liquidity pool for an unordered token pair.

    Attributes:
        chain_id: Chain the pool lives on
        token_a: Lower-cased address of the first stored token
        token_b: Lower-cased address of the second stored token
        reserve_a: Reserve of token_a in smallest units
        reserve_b: Reserve of token_b in smallest units
        fee_bps: Swap fee in basis points (30 for 0.30%)
        liquidity_usd: USD liquidity estimate, ranking only
        price: Last observed spot price (token_b per token_a)
        dex: Name of the exchange, informational
        fee_defaulted: True when the fee was missing and DEFAULT_FEE_BPS was used
        last_updated: Unix seconds of the last reserve refresh
    """

    chain_id: int
    token_a: str
    token_b: str
    reserve_a: int
    reserve_b: int
    fee_bps: int = DEFAULT_FEE_BPS
    liquidity_usd: float = 0.0
    price: float = 0.0
    dex: Optional[str] = None
    fee_defaulted: bool = False
    last_updated: Optional[float] = None
    pool_id: str = field(init=False, compare=False)

    def __post_init__(self):
        if not isinstance(self.token_a, str) or not isinstance(self.token_b, str):
            raise DataError("Pool token addresses must be strings")
        token_a = self.token_a.strip().lower()
        token_b = self.token_b.strip().lower()
        if not token_a or not token_b:
            raise DataError("Pool token addresses must not be empty")
        if token_a == token_b:
            raise DataError(f"Pool tokens must differ: {token_a}")
        for name in ("reserve_a", "reserve_b", "fee_bps"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise DataError(
                    f"Pool {name} must be an integer, got {type(value).__name__}"
                )
        if self.reserve_a < 0 or self.reserve_b < 0:
            raise DataError(
                f"Pool reserves must be non-negative: {self.reserve_a}, {self.reserve_b}"
            )
        if not 0 <= self.fee_bps < BPS_DENOMINATOR:
            raise DataError(f"Pool fee_bps must be in [0, 10000): {self.fee_bps}")

        object.__setattr__(self, "token_a", token_a)
        object.__setattr__(self, "token_b", token_b)
        object.__setattr__(
            self, "pool_id", make_pool_id(self.chain_id, token_a, token_b, self.fee_bps)
        )

    @property
    def tokens(self) -> Tuple[str, str]:
        return self.token_a, self.token_b

    @property
    def is_tradable(self) -> bool:
        """Both reserves positive; anything else is excluded from search."""
        return self.reserve_a > 0 and self.reserve_b > 0

    def has_token(self, token: str) -> bool:
        return token.lower() in (self.token_a, self.token_b)

    def connects(self, token_x: str, token_y: str) -> bool:
        x, y = token_x.lower(), token_y.lower()
        return (self.token_a == x and self.token_b == y) or (
            self.token_a == y and self.token_b == x
        )

    def other_token(self, token: str) -> str:
        token = token.lower()
        if token == self.token_a:
            return self.token_b
        if token == self.token_b:
            return self.token_a
        raise ValueError(f"Token {token} is not in pool {self.pool_id}")

    def reserves_for(self, token_in: str) -> Tuple[int, int]:
        """Resolve (reserve_in, reserve_out) for a swap selling token_in."""
        token_in = token_in.lower()
        if token_in == self.token_a:
            return self.reserve_a, self.reserve_b
        if token_in == self.token_b:
            return self.reserve_b, self.reserve_a
        raise ValueError(f"Token {token_in} is not in pool {self.pool_id}")

    def spot_price(self, token_in: str) -> float:
        """Raw reserve ratio (reserve_out / reserve_in), 0 for empty pools."""
        reserve_in, reserve_out = self.reserves_for(token_in)
        if reserve_in == 0 or reserve_out == 0:
            return 0.0
        return reserve_out / reserve_in


@dataclass(frozen=True)
class SwapLeg:
    """One priced swap through a pool. Computed per pass, never stored."""

    pool_id: str
    token_in: str
    token_out: str
    amount_in: int
    reserve_in: int
    reserve_out: int
    fee_bps: int
    amount_out: int
    price_impact_pct: float


@dataclass(frozen=True)
class Route:
    """
    An ordered sequence of swap legs chosen by the route selector.

    Attributes:
        hops: Legs in execution order
        liquidity_usd: Smallest liquidity among the pools used
    """

    hops: Tuple[SwapLeg, ...]
    liquidity_usd: float = 0.0

    @property
    def amount_in(self) -> int:
        return self.hops[0].amount_in if self.hops else 0

    @property
    def expected_output(self) -> int:
        return self.hops[-1].amount_out if self.hops else 0

    @property
    def price_impact_pct(self) -> float:
        return sum(hop.price_impact_pct for hop in self.hops)

    @property
    def total_fee_bps(self) -> int:
        return sum(hop.fee_bps for hop in self.hops)

    @property
    def efficiency(self) -> float:
        return max(0.0, 1 - self.price_impact_pct / 100)

    @property
    def token_in(self) -> Optional[str]:
        return self.hops[0].token_in if self.hops else None

    @property
    def token_out(self) -> Optional[str]:
        return self.hops[-1].token_out if self.hops else None

    @property
    def path(self) -> Tuple[str, ...]:
        if not self.hops:
            return ()
        return (self.hops[0].token_in,) + tuple(hop.token_out for hop in self.hops)

    @property
    def pool_ids(self) -> Tuple[str, ...]:
        return tuple(hop.pool_id for hop in self.hops)

    def extend(self, other: "Route") -> "Route":
        """Concatenate two routes; chaining is checked by the validator."""
        return Route(
            hops=self.hops + other.hops,
            liquidity_usd=min(self.liquidity_usd, other.liquidity_usd),
        )


class LoopKind(str, Enum):
    """Shape of a closed trading loop."""

    DIRECT = "direct"
    TRIANGULAR = "triangular"


@dataclass(frozen=True)
class DetectedOpportunity:
    """
    A closed loop that cleared the configured thresholds.

    Amounts are smallest-unit integers of the token at that position in
    ``path``; ``amounts[0]`` is the input and ``amounts[-1]`` the predicted
    final output, both in the start token.
    """

    kind: LoopKind
    token_in: str
    token_out: str
    amount_in: int
    amount_out_predicted: int
    pool_ids: Tuple[str, ...]
    path: Tuple[str, ...]
    amounts: Tuple[int, ...]
    gross_profit: int
    net_profit: int
    profit_usd: float
    profit_percentage: float
    confidence: float
    decimals_defaulted: bool = False
    fee_defaulted: bool = False
    created_at: float = 0.0
    expires_at: float = 0.0

    def __post_init__(self):
        hops = len(self.pool_ids)
        expected_hops = 2 if self.kind == LoopKind.DIRECT else 3
        if hops != expected_hops:
            raise InvariantViolation(
                f"{self.kind.value} loop must have {expected_hops} pools, got {hops}"
            )
        if self.token_in != self.token_out:
            raise InvariantViolation(
                f"Loop must close: {self.token_in} != {self.token_out}"
            )
        if len(self.path) != hops + 1 or len(self.amounts) != hops + 1:
            raise InvariantViolation("Path and amounts must have one entry per hop plus one")
        if self.path[0] != self.token_in or self.path[-1] != self.token_in:
            raise InvariantViolation("Path must start and end at the start token")
        if self.amounts[0] != self.amount_in:
            raise InvariantViolation("First amount must equal amount_in")
        if self.amounts[-1] != self.amount_out_predicted:
            raise InvariantViolation("Last amount must equal amount_out_predicted")
        if any(amount <= 0 for amount in self.amounts):
            raise InvariantViolation("Every hop amount must be positive")
        if self.gross_profit != self.amount_out_predicted - self.amount_in:
            raise InvariantViolation(
                f"Gross profit {self.gross_profit} does not match route amounts"
            )
        if self.net_profit > self.gross_profit:
            raise InvariantViolation("Net profit cannot exceed gross profit")
        if not 0.0 <= self.confidence <= 1.0:
            raise InvariantViolation(f"Confidence must be in [0, 1]: {self.confidence}")

    @property
    def loop_id(self) -> str:
        """Natural identity: start token plus the ordered pools used."""
        return f"{self.token_in}:{'-'.join(self.pool_ids)}"

    def with_expiry(self, created_at: float, ttl_seconds: float) -> "DetectedOpportunity":
        return replace(self, created_at=created_at, expires_at=created_at + ttl_seconds)

    def route_dict(self) -> Dict[str, Any]:
        return {
            "pools": list(self.pool_ids),
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "amounts": [str(a) for a in self.amounts],
            "path": list(self.path),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": str(self.amount_in),
            "amount_out_predicted": str(self.amount_out_predicted),
            "gross_profit": str(self.gross_profit),
            "net_profit": str(self.net_profit),
            "profit_usd": self.profit_usd,
            "profit_percentage": self.profit_percentage,
            "confidence": self.confidence,
            "route": self.route_dict(),
            "decimals_defaulted": self.decimals_defaulted,
            "fee_defaulted": self.fee_defaulted,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    def to_record(self, chain_id: int) -> Dict[str, Any]:
        """Row for an opportunities table (timestamps in milliseconds)."""
        return {
            "chain_id": chain_id,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": str(self.amount_in),
            "amount_out_predicted": str(self.amount_out_predicted),
            "profit_usd": self.profit_usd,
            "profit_percentage": self.profit_percentage,
            "route": json.dumps(self.route_dict()),
            "status": "pending",
            "expires_at": int(self.expires_at * 1000),
        }

"""
Closed-loop arbitrage detection over a pool snapshot.

A detection pass is a pure function of (config, snapshot, decimals, prices):
it performs no I/O, holds no locks and mutates nothing it was given. Callers
refresh reserves, call scan() on a schedule and decide what to execute.

Two loop shapes are searched:
- direct: start -> other -> start through two different pools of one pair
- triangular: A -> B -> C -> A through three pools
"""

from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from ..config_schema import DetectorConfig, validate_detector_config
from ..exceptions import ConfigurationError, InvariantViolation
from ..utils import (
    get_current_timestamp,
    get_logger,
    normalize_address,
    short_address,
    timing_decorator,
)
from .opportunity_math import account_profit, confidence_score, usd_to_amount
from .route_selector import PoolIndex, best_direct_route, quote_leg, validate_route
from .snapshot import DecimalMap, PoolSnapshot
from .types import DetectedOpportunity, LoopKind, Pool, Route, SwapLeg

logger = get_logger(__name__)

# Profit percentage at which confidence saturates at 1.0
DIRECT_CONFIDENCE_SCALE_PCT = 2.0
TRIANGULAR_CONFIDENCE_SCALE_PCT = 5.0

DEFAULT_TOKEN_PRICE_USD = 1.0


@dataclass
class ScanStats:
    """Counters and fallback observations for one detection pass."""

    pairs_checked: int = 0
    triples_checked: int = 0
    candidates_evaluated: int = 0
    opportunities: int = 0
    decimals_defaulted: Set[str] = field(default_factory=set)
    prices_defaulted: Set[str] = field(default_factory=set)
    fee_defaulted_pools: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pairs_checked": self.pairs_checked,
            "triples_checked": self.triples_checked,
            "candidates_evaluated": self.candidates_evaluated,
            "opportunities": self.opportunities,
            "decimals_defaulted": sorted(self.decimals_defaulted),
            "prices_defaulted": sorted(self.prices_defaulted),
            "fee_defaulted_pools": sorted(self.fee_defaulted_pools),
        }


@dataclass
class _Sizing:
    token: str
    decimals: int
    price_usd: float
    amount_in: int
    gas_cost: int
    decimals_defaulted: bool


@dataclass
class _ScanContext:
    index: PoolIndex
    decimals: DecimalMap
    prices: Dict[str, float]
    now: float
    stats: ScanStats = field(default_factory=ScanStats)
    sizing: Dict[str, Optional[_Sizing]] = field(default_factory=dict)


PoolsInput = Union[PoolSnapshot, PoolIndex, Iterable[Pool]]


class OpportunityDetector:
    """
    Finds every direct and triangular loop clearing the configured thresholds.

    The detector keeps no state between passes except ``last_stats``; it is
    not thread-safe, so callers serialize scan() calls on one instance.
    """

    def __init__(
        self,
        config: Union[DetectorConfig, Mapping[str, Any], None] = None,
        chain_id: Optional[int] = None,
    ):
        """
        Initialize detector.

        Args:
            config: Validated config, or a mapping validated here
            chain_id: If set, pools of other chains are ignored

        Raises:
            ConfigurationError: If the configuration has impossible values
        """
        if config is None:
            config = DetectorConfig()
        elif isinstance(config, Mapping):
            config = validate_detector_config(dict(config))
        elif not isinstance(config, DetectorConfig):
            raise ConfigurationError(
                f"config must be a DetectorConfig or mapping, got {type(config).__name__}"
            )

        self.config = config
        self.chain_id = chain_id
        self.last_stats = ScanStats()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @timing_decorator
    def scan(
        self,
        tokens: Iterable[str],
        pools: PoolsInput,
        decimals: Union[DecimalMap, Mapping[str, int], None] = None,
        token_prices_usd: Optional[Mapping[str, float]] = None,
        now: Optional[float] = None,
    ) -> List[DetectedOpportunity]:
        """
        Run one detection pass.

        Args:
            tokens: Token universe to scan
            pools: Snapshot, prebuilt index or plain pool list
            decimals: Token decimals; missing tokens fall back to 18
            token_prices_usd: USD price per token; missing tokens fall back to 1.0
            now: Timestamp stamped on results (defaults to the clock)

        Returns:
            Opportunities sorted by net USD profit, best first
        """
        ctx = self._context(pools, decimals, token_prices_usd, now)
        universe = self._universe(tokens, ctx.index)
        candidates: List[DetectedOpportunity] = []

        if self.config.direct_enabled:
            for token_in in universe:
                for token_out in sorted(ctx.index.neighbors(token_in) & set(universe)):
                    ctx.stats.pairs_checked += 1
                    opportunity = self._find_direct(ctx, token_in, token_out)
                    if opportunity is not None:
                        candidates.append(opportunity)

        if self.config.triangular_enabled:
            members = set(universe)
            for token_a in universe:
                neighbors_a = ctx.index.neighbors(token_a) & members
                for token_b in sorted(neighbors_a):
                    closing = (ctx.index.neighbors(token_b) & neighbors_a) - {token_a, token_b}
                    for token_c in sorted(closing):
                        ctx.stats.triples_checked += 1
                        opportunity = self._find_triangular(ctx, token_a, token_b, token_c)
                        if opportunity is not None:
                            candidates.append(opportunity)

        seen: Set[str] = set()
        profitable: List[DetectedOpportunity] = []
        for opportunity in candidates:
            if opportunity.loop_id in seen or not self._meets_thresholds(opportunity):
                continue
            seen.add(opportunity.loop_id)
            profitable.append(opportunity)

        profitable.sort(key=lambda opp: (-opp.profit_usd, opp.loop_id))

        ctx.stats.opportunities = len(profitable)
        self.last_stats = ctx.stats
        logger.info(
            f"Found {len(profitable)} profitable opportunities out of "
            f"{ctx.stats.candidates_evaluated} candidates "
            f"({ctx.stats.pairs_checked} pairs, {ctx.stats.triples_checked} triples)"
        )
        return profitable

    def find_direct_arbitrage(
        self,
        token_in: str,
        token_out: str,
        pools: PoolsInput,
        decimals: Union[DecimalMap, Mapping[str, int], None] = None,
        token_prices_usd: Optional[Mapping[str, float]] = None,
        now: Optional[float] = None,
    ) -> Optional[DetectedOpportunity]:
        """First qualifying two-pool loop starting and ending at token_in."""
        ctx = self._context(pools, decimals, token_prices_usd, now)
        result = self._find_direct(ctx, normalize_address(token_in), normalize_address(token_out))
        self.last_stats = ctx.stats
        return result

    def find_triangular_arbitrage(
        self,
        token_a: str,
        token_b: str,
        token_c: str,
        pools: PoolsInput,
        decimals: Union[DecimalMap, Mapping[str, int], None] = None,
        token_prices_usd: Optional[Mapping[str, float]] = None,
        now: Optional[float] = None,
    ) -> Optional[DetectedOpportunity]:
        """Qualifying A -> B -> C -> A loop, or None if a leg is missing or unprofitable."""
        ctx = self._context(pools, decimals, token_prices_usd, now)
        result = self._find_triangular(
            ctx,
            normalize_address(token_a),
            normalize_address(token_b),
            normalize_address(token_c),
        )
        self.last_stats = ctx.stats
        return result

    def get_stats(self) -> Dict[str, Any]:
        """Get detector configuration summary."""
        return {
            "chain_id": self.chain_id,
            "min_profit_usd": self.config.min_profit_usd,
            "min_profit_percentage": self.config.min_profit_percentage,
            "trade_size_usd": self.config.trade_size_usd,
            "opportunity_ttl_seconds": self.config.opportunity_ttl_seconds,
        }

    # ------------------------------------------------------------------
    # Pass setup
    # ------------------------------------------------------------------

    def _context(
        self,
        pools: PoolsInput,
        decimals: Union[DecimalMap, Mapping[str, int], None],
        token_prices_usd: Optional[Mapping[str, float]],
        now: Optional[float],
    ) -> _ScanContext:
        if isinstance(pools, PoolIndex) and (
            self.chain_id is None or all(p.chain_id == self.chain_id for p in pools.pools)
        ):
            index = pools
        else:
            if isinstance(pools, PoolIndex):
                pools = pools.pools
            index = PoolIndex(
                p for p in pools if self.chain_id is None or p.chain_id == self.chain_id
            )

        prices: Dict[str, float] = {}
        for token, price in (token_prices_usd or {}).items():
            if price is None or price <= 0:
                logger.warning(f"Ignoring non-positive USD price for {token}: {price}")
                continue
            prices[normalize_address(token)] = float(price)

        return _ScanContext(
            index=index,
            decimals=DecimalMap.coerce(decimals).copy(),
            prices=prices,
            now=get_current_timestamp() if now is None else now,
        )

    @staticmethod
    def _universe(tokens: Iterable[str], index: PoolIndex) -> List[str]:
        return sorted({normalize_address(t) for t in tokens} & set(index.tokens))

    def _sizing(self, ctx: _ScanContext, token: str) -> Optional[_Sizing]:
        """Trade size and gas cost in the start token's smallest unit, cached per pass."""
        if token in ctx.sizing:
            return ctx.sizing[token]

        decimals, decimals_defaulted = ctx.decimals.resolve(token)
        if decimals_defaulted:
            ctx.stats.decimals_defaulted.add(token)

        price = ctx.prices.get(token)
        if price is None:
            price = DEFAULT_TOKEN_PRICE_USD
            ctx.stats.prices_defaulted.add(token)
            logger.debug(f"No USD price for {token}, assuming ${price:.2f}")

        amount_in = usd_to_amount(self.config.trade_size_usd, decimals, price)
        sizing: Optional[_Sizing] = None
        if amount_in > 0:
            sizing = _Sizing(
                token=token,
                decimals=decimals,
                price_usd=price,
                amount_in=amount_in,
                gas_cost=usd_to_amount(self.config.gas_cost_usd, decimals, price),
                decimals_defaulted=decimals_defaulted,
            )
        else:
            logger.debug(f"Trade size rounds to zero units of {token}")

        ctx.sizing[token] = sizing
        return sizing

    # ------------------------------------------------------------------
    # Loop search
    # ------------------------------------------------------------------

    def _find_direct(
        self, ctx: _ScanContext, token_in: str, token_out: str
    ) -> Optional[DetectedOpportunity]:
        """
        Evaluate every pool pair of (token_in, token_out) in both orders.

        Returns the first candidate meeting both thresholds rather than the
        best one; see DESIGN.md.
        """
        venues = ctx.index.pools_between(token_in, token_out)
        if len(venues) < 2:
            return None

        sizing = self._sizing(ctx, token_in)
        if sizing is None:
            return None

        for pool_p, pool_q in combinations(venues, 2):
            for first, second in ((pool_p, pool_q), (pool_q, pool_p)):
                opportunity = self._evaluate_loop(
                    ctx, LoopKind.DIRECT, sizing, (first, second)
                )
                if opportunity is not None and self._meets_thresholds(opportunity):
                    return opportunity
        return None

    def _find_triangular(
        self, ctx: _ScanContext, token_a: str, token_b: str, token_c: str
    ) -> Optional[DetectedOpportunity]:
        if len({token_a, token_b, token_c}) != 3:
            return None

        sizing = self._sizing(ctx, token_a)
        if sizing is None:
            return None

        chosen: List[Pool] = []
        amount = sizing.amount_in
        for leg_in, leg_out in ((token_a, token_b), (token_b, token_c), (token_c, token_a)):
            route = best_direct_route(
                leg_in,
                leg_out,
                amount,
                ctx.index,
                min_reserve=self.config.min_reserve,
                max_price_impact_pct=self.config.max_price_impact_pct,
            )
            if route is None:
                return None
            chosen.append(ctx.index.get(route.hops[0].pool_id))
            amount = route.expected_output

        opportunity = self._evaluate_loop(ctx, LoopKind.TRIANGULAR, sizing, chosen)
        if opportunity is not None and self._meets_thresholds(opportunity):
            return opportunity
        return None

    def _price_leg(
        self, ctx: _ScanContext, pool: Pool, token_in: str, amount_in: int
    ) -> Optional[SwapLeg]:
        """Quote one hop, or None when the hop would poison the loop."""
        if pool.fee_defaulted:
            ctx.stats.fee_defaulted_pools.add(pool.pool_id)

        reserve_in, reserve_out = pool.reserves_for(token_in)
        if min(reserve_in, reserve_out) < self.config.min_reserve:
            logger.debug(
                f"Pool {pool.pool_id} has tiny reserves: {reserve_in}, {reserve_out}"
            )
            return None

        leg = quote_leg(pool, token_in, amount_in)
        if leg.amount_out == 0:
            logger.debug(f"Pool {pool.pool_id} returns nothing for {amount_in}")
            return None
        if leg.price_impact_pct > self.config.max_price_impact_pct:
            logger.debug(
                f"Pool {pool.pool_id} price impact {leg.price_impact_pct:.2f}% "
                f"over ceiling"
            )
            return None
        return leg

    def _evaluate_loop(
        self,
        ctx: _ScanContext,
        kind: LoopKind,
        sizing: _Sizing,
        pools: Sequence[Pool],
    ) -> Optional[DetectedOpportunity]:
        """Chain the swaps through the given pools and account the result."""
        ctx.stats.candidates_evaluated += 1

        token = sizing.token
        amount = sizing.amount_in
        legs: List[SwapLeg] = []
        for pool in pools:
            leg = self._price_leg(ctx, pool, token, amount)
            if leg is None:
                return None
            legs.append(leg)
            token, amount = leg.token_out, leg.amount_out

        route = Route(
            hops=tuple(legs), liquidity_usd=min(p.liquidity_usd for p in pools)
        )
        if route.token_out != sizing.token:
            raise InvariantViolation(
                f"Loop through {route.pool_ids} ends at {route.token_out}, "
                f"not {sizing.token}"
            )
        if not validate_route(route, self.config.max_hops, self.config.max_price_impact_pct):
            return None

        breakdown = account_profit(
            amount_in=sizing.amount_in,
            amount_out_final=route.expected_output,
            flashloan_fee_bps=self.config.flashloan_fee_bps,
            gas_cost_in_start_token=sizing.gas_cost,
            decimals=sizing.decimals,
            token_price_usd=sizing.price_usd,
        )

        scale = (
            DIRECT_CONFIDENCE_SCALE_PCT
            if kind == LoopKind.DIRECT
            else TRIANGULAR_CONFIDENCE_SCALE_PCT
        )
        opportunity = DetectedOpportunity(
            kind=kind,
            token_in=sizing.token,
            token_out=route.token_out,
            amount_in=sizing.amount_in,
            amount_out_predicted=route.expected_output,
            pool_ids=route.pool_ids,
            path=route.path,
            amounts=(sizing.amount_in,) + tuple(leg.amount_out for leg in legs),
            gross_profit=breakdown.gross_profit,
            net_profit=breakdown.net_profit,
            profit_usd=float(breakdown.net_profit_usd),
            profit_percentage=float(breakdown.profit_percent),
            confidence=confidence_score(breakdown.profit_percent, scale),
            decimals_defaulted=sizing.decimals_defaulted,
            fee_defaulted=any(p.fee_defaulted for p in pools),
        ).with_expiry(ctx.now, self.config.opportunity_ttl_seconds)

        if self._meets_thresholds(opportunity):
            logger.info(
                f"Profitable {kind.value} loop "
                f"{' -> '.join(short_address(t) for t in route.path)}: "
                f"{breakdown.format_log()}"
            )
        return opportunity

    def _meets_thresholds(self, opportunity: DetectedOpportunity) -> bool:
        return (
            opportunity.profit_usd >= self.config.min_profit_usd
            and opportunity.profit_percentage >= self.config.min_profit_percentage
        )

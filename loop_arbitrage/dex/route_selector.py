"""
Route selection across pools of a snapshot.

Pools are indexed in a NetworkX multigraph (tokens as nodes, one edge per
pool keyed by pool id) so neighbour and pair lookups are dictionary hits
instead of scans over the whole pool list.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

import networkx as nx

from ..exceptions import RouteValidationError
from ..utils import get_logger
from .adapters.v2 import price_impact, swap_output
from .types import Pool, Route, SwapLeg

logger = get_logger(__name__)

DEFAULT_MAX_HOPS = 3
DEFAULT_MAX_PRICE_IMPACT_PCT = 50.0
MIN_ROUTE_EFFICIENCY = 0.1


class PoolIndex:
    """Token adjacency over the tradable pools of a snapshot."""

    def __init__(self, pools: Iterable[Pool]):
        self.graph = nx.MultiGraph()
        self._by_id: Dict[str, Pool] = {}
        for pool in pools:
            if not pool.is_tradable:
                continue
            self.graph.add_edge(pool.token_a, pool.token_b, key=pool.pool_id, pool=pool)
            self._by_id[pool.pool_id] = pool

    @property
    def tokens(self) -> List[str]:
        return sorted(self.graph.nodes)

    @property
    def pools(self) -> List[Pool]:
        return sorted(
            (data["pool"] for _, _, data in self.graph.edges(data=True)),
            key=lambda p: p.pool_id,
        )

    def get(self, pool_id: str) -> Optional[Pool]:
        return self._by_id.get(pool_id)

    def neighbors(self, token: str) -> Set[str]:
        token = token.lower()
        if token not in self.graph:
            return set()
        return set(self.graph.neighbors(token))

    def pools_between(self, token_x: str, token_y: str) -> List[Pool]:
        """Tradable pools connecting the pair, ordered by pool id."""
        edges = self.graph.get_edge_data(token_x.lower(), token_y.lower())
        if not edges:
            return []
        return [edges[key]["pool"] for key in sorted(edges)]

    def intermediates(self, token_x: str, token_y: str) -> List[str]:
        """Tokens sharing a pool with both ends (intersection of neighbour sets)."""
        x, y = token_x.lower(), token_y.lower()
        return sorted((self.neighbors(x) & self.neighbors(y)) - {x, y})

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and token.lower() in self.graph

    def __len__(self) -> int:
        return self.graph.number_of_edges()


PoolsOrIndex = Union[PoolIndex, Iterable[Pool]]


def as_index(pools: PoolsOrIndex) -> PoolIndex:
    if isinstance(pools, PoolIndex):
        return pools
    return PoolIndex(pools)


def quote_leg(pool: Pool, token_in: str, amount_in: int) -> SwapLeg:
    """Price one swap through a pool, resolving reserves by trade direction."""
    token_in = token_in.lower()
    reserve_in, reserve_out = pool.reserves_for(token_in)
    return SwapLeg(
        pool_id=pool.pool_id,
        token_in=token_in,
        token_out=pool.other_token(token_in),
        amount_in=amount_in,
        reserve_in=reserve_in,
        reserve_out=reserve_out,
        fee_bps=pool.fee_bps,
        amount_out=swap_output(amount_in, reserve_in, reserve_out, pool.fee_bps),
        price_impact_pct=price_impact(amount_in, reserve_in, reserve_out),
    )


def best_direct_route(
    token_in: str,
    token_out: str,
    amount_in: int,
    pools: PoolsOrIndex,
    min_reserve: int = 0,
    max_price_impact_pct: Optional[float] = None,
) -> Optional[Route]:
    """
    Pick the single pool giving the most output for a one-hop swap.

    Ties on output go to the lower price impact, then to the lower pool id.

    Args:
        token_in: Token sold
        token_out: Token bought
        amount_in: Amount sold, smallest units
        pools: Pools or a prebuilt PoolIndex
        min_reserve: Skip pools with either reserve below this floor
        max_price_impact_pct: Skip pools whose impact on this trade exceeds
            this ceiling (percent)

    Returns:
        One-hop Route, or None when no pool yields any output
    """
    if amount_in <= 0:
        return None

    index = as_index(pools)
    best: Optional[SwapLeg] = None
    best_pool: Optional[Pool] = None

    for pool in index.pools_between(token_in, token_out):
        if min(pool.reserve_a, pool.reserve_b) < min_reserve:
            continue
        leg = quote_leg(pool, token_in, amount_in)
        if leg.amount_out <= 0:
            continue
        if max_price_impact_pct is not None and leg.price_impact_pct > max_price_impact_pct:
            continue
        if best is None or (leg.amount_out, -leg.price_impact_pct) > (
            best.amount_out,
            -best.price_impact_pct,
        ):
            best, best_pool = leg, pool

    if best is None:
        return None
    return Route(hops=(best,), liquidity_usd=best_pool.liquidity_usd)


def _multi_hop_candidates(
    index: PoolIndex,
    token_in: str,
    token_out: str,
    amount_in: int,
    max_hops: int,
    visited: Set[str],
) -> List[Route]:
    """Every composed route of 2..max_hops hops that never revisits a token."""
    routes: List[Route] = []
    if max_hops < 2:
        return routes

    for mid in index.intermediates(token_in, token_out):
        if mid in visited:
            continue
        first = best_direct_route(token_in, mid, amount_in, index)
        if first is None:
            continue
        second = best_direct_route(mid, token_out, first.expected_output, index)
        if second is not None:
            routes.append(first.extend(second))

    if max_hops >= 3:
        for mid in sorted(index.neighbors(token_in)):
            if mid in visited or mid == token_out:
                continue
            first = best_direct_route(token_in, mid, amount_in, index)
            if first is None:
                continue
            for rest in _multi_hop_candidates(
                index, mid, token_out, first.expected_output, max_hops - 1, visited | {mid}
            ):
                routes.append(first.extend(rest))

    return routes


def _pick_best(routes: Sequence[Route]) -> Optional[Route]:
    if not routes:
        return None
    return min(
        routes,
        key=lambda r: (-r.expected_output, r.price_impact_pct, len(r.hops), r.pool_ids),
    )


def best_multi_hop_route(
    token_in: str,
    token_out: str,
    amount_in: int,
    pools: PoolsOrIndex,
    max_hops: int = DEFAULT_MAX_HOPS,
    max_price_impact_pct: float = DEFAULT_MAX_PRICE_IMPACT_PCT,
) -> Optional[Route]:
    """
    Best route of two or more hops between two tokens.

    Two-hop routes go through every token connected to both ends; longer
    routes recurse through the neighbours of token_in. The search is
    exponential in max_hops, so callers bound it.

    Returns:
        Highest-output valid route, or None
    """
    if amount_in <= 0 or max_hops < 2:
        return None

    token_in, token_out = token_in.lower(), token_out.lower()
    index = as_index(pools)
    candidates = _multi_hop_candidates(
        index, token_in, token_out, amount_in, max_hops, {token_in, token_out}
    )
    valid = [
        r for r in candidates if validate_route(r, max_hops, max_price_impact_pct)
    ]
    logger.debug(
        f"{len(valid)}/{len(candidates)} multi-hop routes valid for {token_in} -> {token_out}"
    )
    return _pick_best(valid)


def find_optimal_route(
    token_in: str,
    token_out: str,
    amount_in: int,
    pools: PoolsOrIndex,
    max_hops: int = DEFAULT_MAX_HOPS,
    max_price_impact_pct: float = DEFAULT_MAX_PRICE_IMPACT_PCT,
) -> Optional[Route]:
    """Direct route when one exists and is valid, otherwise the best multi-hop route."""
    index = as_index(pools)
    direct = best_direct_route(token_in, token_out, amount_in, index)
    if direct is not None and validate_route(direct, max_hops, max_price_impact_pct):
        return direct
    return best_multi_hop_route(
        token_in, token_out, amount_in, index, max_hops, max_price_impact_pct
    )


def check_route(
    route: Route,
    max_hops: int = DEFAULT_MAX_HOPS,
    max_price_impact_pct: float = DEFAULT_MAX_PRICE_IMPACT_PCT,
) -> None:
    """
    Raise RouteValidationError if the route is not executable.

    A route must have between 1 and max_hops hops, each hop must start with
    the token the previous hop produced, no hop may exceed the price impact
    ceiling, and the route's efficiency must be at least 0.1.
    """
    if not route.hops:
        raise RouteValidationError("Route has no hops", reason="empty")

    if len(route.hops) > max_hops:
        raise RouteValidationError(
            f"Route has {len(route.hops)} hops, max is {max_hops}",
            reason="too_many_hops",
        )

    for current, following in zip(route.hops, route.hops[1:]):
        if current.token_out != following.token_in:
            raise RouteValidationError(
                f"Hop through {current.pool_id} outputs {current.token_out} "
                f"but next hop expects {following.token_in}",
                reason="broken_chain",
            )

    for hop in route.hops:
        if hop.price_impact_pct > max_price_impact_pct:
            raise RouteValidationError(
                f"Hop through {hop.pool_id} has {hop.price_impact_pct:.2f}% price impact "
                f"(ceiling {max_price_impact_pct:.2f}%)",
                reason="price_impact",
            )

    if route.efficiency < MIN_ROUTE_EFFICIENCY:
        raise RouteValidationError(
            f"Route efficiency {route.efficiency:.3f} below {MIN_ROUTE_EFFICIENCY}",
            reason="low_efficiency",
        )


def validate_route(
    route: Route,
    max_hops: int = DEFAULT_MAX_HOPS,
    max_price_impact_pct: float = DEFAULT_MAX_PRICE_IMPACT_PCT,
) -> bool:
    """Boolean form of check_route."""
    try:
        check_route(route, max_hops, max_price_impact_pct)
    except RouteValidationError as e:
        logger.debug(f"Route rejected ({e.reason}): {e}")
        return False
    return True

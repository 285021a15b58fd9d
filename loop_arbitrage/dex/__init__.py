"""
AMM pool math, route selection and closed-loop detection.
"""

from .adapters.v2 import price_impact, swap_output
from .detector import OpportunityDetector, ScanStats
from .opportunity_math import ProfitBreakdown, account_profit, usd_to_amount
from .route_selector import PoolIndex, best_direct_route, find_optimal_route, validate_route
from .snapshot import DecimalMap, PoolSnapshot, load_snapshot_file, pool_from_record
from .types import DetectedOpportunity, LoopKind, Pool, Route, SwapLeg

__all__ = [
    "swap_output",
    "price_impact",
    "OpportunityDetector",
    "ScanStats",
    "ProfitBreakdown",
    "account_profit",
    "usd_to_amount",
    "PoolIndex",
    "best_direct_route",
    "find_optimal_route",
    "validate_route",
    "DecimalMap",
    "PoolSnapshot",
    "load_snapshot_file",
    "pool_from_record",
    "DetectedOpportunity",
    "LoopKind",
    "Pool",
    "Route",
    "SwapLeg",
]

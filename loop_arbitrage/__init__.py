"""
Loop Arbitrage Detection.

Finds profitable closed trading loops (two-pool direct and three-pool
triangular) across constant-product DEX pools from a point-in-time snapshot,
after slippage, pool fees, flash-loan fees and gas.
"""

PROJECT_NAME = "loop-arbitrage"

# Export main components for easier imports
from loop_arbitrage.version import __version__ as VERSION
from loop_arbitrage.config_loader import load_detector_config
from loop_arbitrage.config_schema import DetectorConfig
from loop_arbitrage.dex.detector import OpportunityDetector, ScanStats
from loop_arbitrage.dex.snapshot import DecimalMap, PoolSnapshot, load_snapshot_file
from loop_arbitrage.dex.types import DetectedOpportunity, LoopKind, Pool
from loop_arbitrage.exceptions import (
    ConfigurationError,
    DataError,
    InvariantViolation,
    LoopArbitrageError,
    RouteValidationError,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "load_detector_config",
    "DetectorConfig",
    "OpportunityDetector",
    "ScanStats",
    "DecimalMap",
    "PoolSnapshot",
    "load_snapshot_file",
    "DetectedOpportunity",
    "LoopKind",
    "Pool",
    "ConfigurationError",
    "DataError",
    "InvariantViolation",
    "LoopArbitrageError",
    "RouteValidationError",
]

"""
DEX adapter modules for different AMM types.
"""

from .v2 import (
    fee_fraction_to_bps,
    fee_percent_to_bps,
    multi_hop_output,
    path_price_impact,
    price_impact,
    swap_output,
)

__all__ = [
    "swap_output",
    "price_impact",
    "multi_hop_output",
    "path_price_impact",
    "fee_percent_to_bps",
    "fee_fraction_to_bps",
]

"""
Uniswap V2 style swap math for constant-product AMM pools.

All amounts are integers in the token's smallest unit. Python integers are
unbounded, so 18-decimal amounts multiplied by 18-decimal reserves never
overflow and the result matches the on-chain integer division exactly.
"""

from decimal import ROUND_FLOOR, Decimal
from typing import Iterable, Tuple

from ..types import BPS_DENOMINATOR, DEFAULT_FEE_BPS

SwapHopReserves = Tuple[int, int, int]  # (reserve_in, reserve_out, fee_bps)


def fee_percent_to_bps(fee_percent) -> int:
    """Convert a fee in percent to whole basis points (0.3 -> 30)."""
    return int(
        (Decimal(str(fee_percent)) * 100).to_integral_value(rounding=ROUND_FLOOR)
    )


def fee_fraction_to_bps(fee_fraction) -> int:
    """Convert a fee as a fraction to whole basis points (0.003 -> 30)."""
    return int(
        (Decimal(str(fee_fraction)) * BPS_DENOMINATOR).to_integral_value(
            rounding=ROUND_FLOOR
        )
    )


def swap_output(
    amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = DEFAULT_FEE_BPS
) -> int:
    """
    Calculate output amount for a V2 swap using constant-product formula.

    Formula (with fee embedded):
        amountInWithFee = amountIn * (10000 - feeBps)
        amountOut = amountInWithFee * reserveOut / (reserveIn * 10000 + amountInWithFee)

    Args:
        amount_in: Input token amount (smallest units)
        reserve_in: Reserve of input token
        reserve_out: Reserve of output token
        fee_bps: Fee in basis points, in [0, 10000)

    Returns:
        Output token amount, floored. 0 means no usable liquidity.

    Raises:
        ValueError: If fee_bps is outside [0, 10000)
    """
    if not 0 <= fee_bps < BPS_DENOMINATOR:
        raise ValueError(f"fee_bps must be in [0, 10000): {fee_bps}")
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee

    return numerator // denominator


def price_impact(amount_in: int, reserve_in: int, reserve_out: int) -> float:
    """
    Percent degradation of the no-fee execution price against spot.

    spot = reserve_out / reserve_in, execution = amount_out / amount_in with
    amount_out computed at zero fee. Fees are excluded so the figure reflects
    trade size only; profit accounting always uses the fee-inclusive output.

    Returns:
        Price impact in percent (2.5 for 2.5%); 100.0 when the pool is empty
        or the trade produces nothing.
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 100.0

    amount_out = swap_output(amount_in, reserve_in, reserve_out, 0)
    if amount_out == 0:
        return 100.0

    spot_price = Decimal(reserve_out) / Decimal(reserve_in)
    execution_price = Decimal(amount_out) / Decimal(amount_in)

    impact = (spot_price - execution_price) / spot_price * 100
    return max(0.0, float(impact))


def multi_hop_output(amount_in: int, hops: Iterable[SwapHopReserves]) -> int:
    """Chain swap_output across hops, stopping at the first empty leg."""
    current = amount_in
    for reserve_in, reserve_out, fee_bps in hops:
        current = swap_output(current, reserve_in, reserve_out, fee_bps)
        if current == 0:
            return 0
    return current


def path_price_impact(amount_in: int, hops: Iterable[SwapHopReserves]) -> float:
    """Sum of per-hop price impacts along the chained amounts."""
    total = 0.0
    current = amount_in
    for reserve_in, reserve_out, fee_bps in hops:
        total += price_impact(current, reserve_in, reserve_out)
        current = swap_output(current, reserve_in, reserve_out, fee_bps)
        if current == 0:
            break
    return total

"""
Single source of truth for loop profit accounting.

Amounts stay exact integers in the start token's smallest unit until the very
end; only the USD and percent figures are derived values, computed with
Decimal at 50 digits of precision.

Conversion policy:
- Fees and slippage are whole basis points (30 = 0.30%)
- USD pricing is injected by the caller; nothing here fetches prices
- Use pct_to_bps()/bps_to_pct() instead of inline *100 or /10000
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, getcontext
from typing import Dict, List, Sequence

from ..utils import clamp
from .types import BPS_DENOMINATOR, DEFAULT_DECIMALS, DetectedOpportunity

# Set high precision for all decimal operations
getcontext().prec = 50

WEI_PER_NATIVE = 10**18


# ============================================================================
# Conversion helpers
# ============================================================================


def pct_to_bps(pct: Decimal) -> Decimal:
    """Convert percent to basis points. 0.15% -> 15 bps"""
    return pct * Decimal("100")


def bps_to_pct(bps: Decimal) -> Decimal:
    """Convert basis points to percent. 15 bps -> 0.15%"""
    return bps / Decimal("100")


def round_cents(value: Decimal) -> Decimal:
    """Round USD value to nearest cent."""
    return value.quantize(Decimal("0.01"))


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def usd_to_amount(usd, decimals: int = DEFAULT_DECIMALS, token_price_usd=1.0) -> int:
    """
    Convert a USD notional into the token's smallest unit.

    $50 of an 18-decimal token priced at $1 is 50 * 10**18; the same $50 of a
    6-decimal stablecoin is 50 * 10**6.

    Raises:
        ValueError: If the token price is not positive or decimals negative
    """
    price = Decimal(str(token_price_usd))
    if price <= 0:
        raise ValueError(f"token_price_usd must be positive: {token_price_usd}")
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative: {decimals}")
    return _floor(Decimal(str(usd)) / price * (Decimal(10) ** decimals))


def amount_to_usd(amount: int, decimals: int = DEFAULT_DECIMALS, token_price_usd=1.0) -> Decimal:
    """Convert a smallest-unit amount into USD."""
    return Decimal(amount) / (Decimal(10) ** decimals) * Decimal(str(token_price_usd))


# ============================================================================
# Profit breakdown
# ============================================================================


@dataclass(frozen=True)
class ProfitBreakdown:
    """
    Profit of one closed loop, in start-token smallest units unless noted.

    profit_percent is gross profit over input; callers apply their own cost
    model to it. net_profit_usd is the primary gating signal.
    """

    amount_in: int
    amount_out: int
    gross_profit: int
    flashloan_fee: int
    gas_cost: int
    net_profit: int
    net_profit_usd: Decimal
    profit_percent: Decimal

    @property
    def total_costs(self) -> int:
        return self.flashloan_fee + self.gas_cost

    @property
    def is_profitable(self) -> bool:
        return self.net_profit > 0

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "gross_profit": str(self.gross_profit),
            "flashloan_fee": str(self.flashloan_fee),
            "gas_cost": str(self.gas_cost),
            "net_profit": str(self.net_profit),
            "net_profit_usd": float(self.net_profit_usd),
            "profit_percent": float(self.profit_percent),
        }

    def format_log(self) -> str:
        """Format for consistent logging."""
        return (
            f"Net ${self.net_profit_usd:.2f} "
            f"(Gross {self.profit_percent:.3f}% - "
            f"Flashloan {self.flashloan_fee} - "
            f"Gas {self.gas_cost}) "
            f"{self.amount_in} -> {self.amount_out}"
        )


def account_profit(
    amount_in: int,
    amount_out_final: int,
    flashloan_fee_bps: int,
    gas_cost_in_start_token: int,
    decimals: int = DEFAULT_DECIMALS,
    token_price_usd=1.0,
) -> ProfitBreakdown:
    """
    Compute the profit of a closed loop from its input and final output.

    Args:
        amount_in: Amount borrowed and fed into the first hop
        amount_out_final: Output of the last hop, same token as amount_in
        flashloan_fee_bps: Borrowing fee in basis points (9 for 0.09%)
        gas_cost_in_start_token: Gas estimate already converted to start-token units
        decimals: Decimals of the start token
        token_price_usd: USD price of the start token

    Returns:
        ProfitBreakdown with all fields computed

    Example:
        >>> bd = account_profit(10**18, 11 * 10**17, 9, 0)
        >>> bd.gross_profit == 10**17
        True
    """
    gross_profit = amount_out_final - amount_in
    flashloan_fee = amount_in * flashloan_fee_bps // BPS_DENOMINATOR
    net_profit = gross_profit - flashloan_fee - gas_cost_in_start_token

    net_profit_usd = amount_to_usd(net_profit, decimals, token_price_usd)

    if amount_in == 0:
        profit_percent = Decimal("0")
    else:
        profit_percent = Decimal(gross_profit) / Decimal(amount_in) * Decimal("100")

    return ProfitBreakdown(
        amount_in=amount_in,
        amount_out=amount_out_final,
        gross_profit=gross_profit,
        flashloan_fee=flashloan_fee,
        gas_cost=gas_cost_in_start_token,
        net_profit=net_profit,
        net_profit_usd=net_profit_usd,
        profit_percent=profit_percent,
    )


def confidence_score(profit_percent, scale_pct: float) -> float:
    """Map a profit percentage onto [0, 1]; scale_pct and above is full confidence."""
    if scale_pct <= 0:
        raise ValueError(f"scale_pct must be positive: {scale_pct}")
    return clamp(float(profit_percent) / scale_pct, 0.0, 1.0)


# ============================================================================
# Execution-side estimates
# ============================================================================


def minimum_output(expected_output: int, slippage_bps: int) -> int:
    """Lowest acceptable output for an expected output under a slippage tolerance."""
    if not 0 <= slippage_bps <= BPS_DENOMINATOR:
        raise ValueError(f"slippage_bps must be in [0, 10000]: {slippage_bps}")
    return expected_output - expected_output * slippage_bps // BPS_DENOMINATOR


def estimate_gas_cost_usd(gas_used: int, gas_price_wei: int, native_price_usd) -> float:
    """Gas units times gas price, priced in USD via the native token."""
    cost_wei = Decimal(gas_used) * Decimal(gas_price_wei)
    return float(cost_wei / WEI_PER_NATIVE * Decimal(str(native_price_usd)))


def break_even_gas_price(
    gross_profit: int,
    gas_used: int,
    decimals: int = DEFAULT_DECIMALS,
    token_price_usd=1.0,
    native_price_usd=1.0,
) -> int:
    """
    Gas price (wei per gas unit) at which gas cost consumes all gross profit.

    Returns 0 when no gas is used or the loop is not profitable.
    """
    if gas_used <= 0 or gross_profit <= 0:
        return 0
    profit_usd = amount_to_usd(gross_profit, decimals, token_price_usd)
    profit_wei = profit_usd / Decimal(str(native_price_usd)) * WEI_PER_NATIVE
    return _floor(profit_wei / Decimal(gas_used))


_RANK_KEYS = {
    "net_profit": lambda opp: opp.profit_usd,
    "profit_percentage": lambda opp: opp.profit_percentage,
    "confidence": lambda opp: opp.confidence,
}


def rank_opportunities(
    opportunities: Sequence[DetectedOpportunity], metric: str = "net_profit"
) -> List[DetectedOpportunity]:
    """
    Sort opportunities best-first by the given metric.

    Ties are broken by loop identity so the order is deterministic.
    """
    if metric not in _RANK_KEYS:
        raise ValueError(
            f"Unknown ranking metric '{metric}' (expected one of {sorted(_RANK_KEYS)})"
        )
    key = _RANK_KEYS[metric]
    return sorted(opportunities, key=lambda opp: (-key(opp), opp.loop_id))


def summarize(opportunities: Sequence[DetectedOpportunity]) -> Dict[str, float]:
    """Aggregate figures for a pass, used by the CLI footer."""
    total = sum(opp.profit_usd for opp in opportunities)
    best = max((opp.profit_usd for opp in opportunities), default=0.0)
    return {"count": len(opportunities), "total_profit_usd": total, "best_profit_usd": best}

"""
Cross-exchange spread and profit calculations.

Pure functions over Decimal prices, shared by the detector (fixed
notional estimates) and the orchestrator (re-validation of a spread
against live prices).
"""

from decimal import Decimal

from crossarb.config.constants import HIGH_RISK_SPREAD_PCT, MEDIUM_RISK_SPREAD_PCT
from crossarb.core.types import ZERO, RiskLevel


HUNDRED = Decimal("100")


def spread_pct(buy_price: Decimal, sell_price: Decimal) -> Decimal:
    """
    Percentage gain from buying at ``buy_price`` and selling at ``sell_price``.

    Example:
        >>> spread_pct(Decimal("100"), Decimal("101"))
        Decimal('1')
    """
    if buy_price <= 0:
        return ZERO
    return (sell_price - buy_price) / buy_price * HUNDRED


def inverse_spread_pct(spread: Decimal) -> Decimal:
    """
    Spread of the opposite direction, derived from one direction's spread.

    ``spread(A->B) == -spread(B->A) / (1 + spread(B->A) / 100)``
    """
    return -spread / (1 + spread / HUNDRED)


def gross_profit(notional: Decimal, buy_price: Decimal, sell_price: Decimal) -> Decimal:
    """Profit of deploying ``notional`` quote units across the spread, before fees."""
    if buy_price <= 0:
        return ZERO
    return notional * (sell_price / buy_price - 1)


def estimate_net_profit(
    notional: Decimal,
    buy_price: Decimal,
    sell_price: Decimal,
    fee_rate: Decimal,
) -> Decimal:
    """Standardized net profit estimate, floored at zero."""
    fees = notional * fee_rate
    return max(ZERO, gross_profit(notional, buy_price, sell_price) - fees)


def classify_risk(spread: Decimal) -> RiskLevel:
    """Wider spreads are more likely stale quotes or illiquid books."""
    if spread > Decimal(str(HIGH_RISK_SPREAD_PCT)):
        return RiskLevel.HIGH
    if spread > Decimal(str(MEDIUM_RISK_SPREAD_PCT)):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW

"""Spread math and opportunity detection."""

from crossarb.strategy.calculator import (
    classify_risk,
    estimate_net_profit,
    gross_profit,
    inverse_spread_pct,
    spread_pct,
)
from crossarb.strategy.detector import (
    DetectorConfig,
    DetectorState,
    OpportunityDetector,
    find_opportunities,
)


__all__ = [
    "DetectorConfig",
    "DetectorState",
    "OpportunityDetector",
    "classify_risk",
    "estimate_net_profit",
    "find_opportunities",
    "gross_profit",
    "inverse_spread_pct",
    "spread_pct",
]

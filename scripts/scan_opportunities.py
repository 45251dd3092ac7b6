#!/usr/bin/env python3
"""
Opportunity Scan Script.

Runs one detection cycle against the configured exchanges and prints
the ranked opportunities without trading.
"""

import asyncio
import sys

from crossarb.config.settings import get_settings
from crossarb.exchange.registry import AdapterRegistry
from crossarb.strategy.detector import DetectorConfig, OpportunityDetector


async def main() -> int:
    """Scan and display opportunities."""
    print("=" * 72)
    print("  CROSS-EXCHANGE OPPORTUNITY SCAN")
    print("=" * 72)
    print()

    try:
        settings = get_settings()
    except Exception as e:
        print(f"Error loading settings: {e}")
        return 1

    registry = AdapterRegistry.from_settings(settings)
    config = DetectorConfig.from_settings(settings)
    detector = OpportunityDetector(registry, config)

    try:
        print(f"Fetching prices from {', '.join(registry.names)}...")
        opportunities = await detector.refresh()
    finally:
        await registry.close()

    tracked = ", ".join(config.tracked_symbols) or "all common symbols"
    print(f"Tracked: {tracked}")
    print(f"Notional: {config.notional} {config.quote_asset}, fee rate {config.fee_rate}")
    print(f"Found {len(opportunities)} opportunities")
    print()

    if not opportunities:
        return 0

    print(f"{'#':>3}  {'SYMBOL':<8} {'BUY':<9} {'SELL':<9} {'SPREAD %':>9} {'NET':>10}  RISK")
    print("-" * 72)
    for i, opp in enumerate(opportunities, 1):
        print(
            f"{i:3}. {opp.symbol:<8} {opp.buy_exchange:<9} {opp.sell_exchange:<9} "
            f"{opp.spread_pct:>9.4f} {opp.estimated_net_profit:>10.6f}  {opp.risk_level.value}"
        )
    print()
    print("Profit estimates use the fixed notional, not account balances.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

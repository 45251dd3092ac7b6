"""
Live capital resolution.

Balances are re-queried on every call; the orchestrator decides both
whether to buy and how much to deploy from the result.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from crossarb.config.constants import DEFAULT_CAPITAL_SAFETY_MARGIN
from crossarb.core.types import ZERO
from crossarb.exchange.registry import AdapterRegistry


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CapitalAssessment:
    """Snapshot of the buy-side balances behind a capital decision."""

    exchange: str
    asset: str
    quote_asset: str
    price: Decimal
    asset_available: Decimal
    quote_available: Decimal
    safety_margin: Decimal

    @property
    def asset_value(self) -> Decimal:
        """Quote value of the asset already held."""
        return self.asset_available * self.price

    @property
    def deployable_quote(self) -> Decimal:
        """Quote balance usable for a buy, after the safety margin."""
        return self.quote_available * self.safety_margin

    @property
    def capital(self) -> Decimal:
        return max(self.asset_value, self.deployable_quote)

    def holds(self, quantity: Decimal) -> bool:
        """Whether the asset is already held in at least ``quantity``."""
        return quantity > 0 and self.asset_available >= quantity


class BalanceResolver:
    """Resolves deployable capital from live exchange balances."""

    def __init__(
        self,
        registry: AdapterRegistry,
        safety_margin: float = DEFAULT_CAPITAL_SAFETY_MARGIN,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            registry: Exchange adapters.
            safety_margin: Fraction of the quote balance that may be spent.
        """
        self._registry = registry
        self._safety_margin = Decimal(str(safety_margin))

    async def assess(
        self,
        exchange: str,
        asset: str,
        quote_asset: str,
        price: Decimal,
    ) -> CapitalAssessment:
        """
        Query the asset and quote balances on an exchange.

        Args:
            exchange: Exchange name.
            asset: Target asset (e.g., "BTC").
            quote_asset: Quote asset (e.g., "USDT").
            price: Asset price in quote units.

        Returns:
            CapitalAssessment built from the live balances.
        """
        adapter = self._registry.get(exchange)
        asset_balance = await adapter.get_balance(asset)
        quote_balance = await adapter.get_balance(quote_asset)

        assessment = CapitalAssessment(
            exchange=adapter.name,
            asset=asset,
            quote_asset=quote_asset,
            price=price,
            asset_available=max(asset_balance.available, ZERO),
            quote_available=max(quote_balance.available, ZERO),
            safety_margin=self._safety_margin,
        )
        logger.debug(
            f"{adapter.name}: {asset}={assessment.asset_available} "
            f"{quote_asset}={assessment.quote_available} capital={assessment.capital}"
        )
        return assessment

    async def resolve_available_capital(
        self,
        exchange: str,
        asset: str,
        quote_asset: str,
        price: Decimal,
    ) -> Decimal:
        """Greater of held-asset value and margin-adjusted quote balance."""
        assessment = await self.assess(exchange, asset, quote_asset, price)
        return assessment.capital

"""
On-chain transfer coordination between two exchanges.

A transfer resolves the destination deposit address, prepares the
withdrawable balance on the source exchange, withdraws, then polls the
destination balance until the deposit is credited or the network's
confirmation timeout expires. A timeout never counts as success.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from crossarb.config.constants import (
    CONFIRMATION_TIMEOUTS,
    DEFAULT_CONFIRMATION_RATIO,
    DEFAULT_CONFIRMATION_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    NETWORK_PRIORITY,
)
from crossarb.config.settings import Settings
from crossarb.core.errors import (
    ConfigurationError,
    InsufficientBalanceError,
    TransferTimeoutError,
    TransientNetworkError,
)
from crossarb.core.types import TransferRequest, TransferResult
from crossarb.exchange.base import ExchangeAdapter
from crossarb.exchange.registry import AdapterRegistry


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TransferConfig:
    """Polling and network selection parameters."""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    confirmation_ratio: Decimal = Decimal(str(DEFAULT_CONFIRMATION_RATIO))
    timeouts: dict[str, float] = field(default_factory=lambda: dict(CONFIRMATION_TIMEOUTS))
    default_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT
    network_preferences: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TransferConfig":
        return cls(
            poll_interval=settings.transfer_poll_interval_seconds,
            confirmation_ratio=Decimal(str(settings.transfer_confirmation_ratio)),
            network_preferences=dict(settings.network_preferences),
        )

    def timeout_for(self, network: str) -> float:
        return self.timeouts.get(network.upper(), self.default_timeout)


def is_confirmed(sent_amount: Decimal, balance_delta: Decimal, ratio: Decimal) -> bool:
    """
    Whether a destination balance increase confirms a transfer.

    Example:
        >>> is_confirmed(Decimal("10"), Decimal("9.6"), Decimal("0.95"))
        True
        >>> is_confirmed(Decimal("10"), Decimal("9.0"), Decimal("0.95"))
        False
    """
    return sent_amount > 0 and balance_delta >= sent_amount * ratio


class TransferCoordinator:
    """Moves assets between exchanges and confirms receipt."""

    def __init__(self, registry: AdapterRegistry, config: TransferConfig | None = None) -> None:
        self._registry = registry
        self._config = config or TransferConfig()

    @property
    def config(self) -> TransferConfig:
        return self._config

    def candidate_networks(self, asset: str, preferred: str | None = None) -> list[str]:
        """Networks to try for an asset, most preferred first."""
        asset = asset.upper()
        ordered: list[str] = []
        configured = self._config.network_preferences.get(asset)
        for network in (preferred, configured, *NETWORK_PRIORITY.get(asset, ()), asset):
            if network and network.upper() not in ordered:
                ordered.append(network.upper())
        return ordered

    def select_network(
        self,
        asset: str,
        from_exchange: str,
        to_exchange: str,
        preferred: str | None = None,
    ) -> str:
        """
        Pick the first canonical network both exchanges can map.

        Args:
            asset: Asset to move.
            from_exchange: Withdrawing exchange.
            to_exchange: Receiving exchange.
            preferred: Explicit network; must be mappable on both sides.

        Returns:
            Canonical network name.

        Raises:
            ConfigurationError: If the preferred network, or every
                candidate, is unmapped on either exchange.
        """
        source = self._registry.get(from_exchange)
        destination = self._registry.get(to_exchange)

        if preferred:
            source.resolve_network(asset, preferred)
            destination.resolve_network(asset, preferred)
            return preferred.upper()

        for network in self.candidate_networks(asset):
            try:
                source.resolve_network(asset, network)
                destination.resolve_network(asset, network)
            except ConfigurationError:
                continue
            return network

        raise ConfigurationError(
            f"no network mapped for {asset} between {source.name} and {destination.name}"
        )

    async def transfer(self, request: TransferRequest) -> TransferResult:
        """
        Withdraw from one exchange and wait for the deposit on the other.

        Args:
            request: Asset, amount and the two exchanges.

        Returns:
            Confirmed TransferResult.

        Raises:
            ConfigurationError: Unmapped network.
            AllowlistBlockedError: Destination address not allow-listed.
            InsufficientBalanceError: Withdrawable balance short after preparation.
            TransferTimeoutError: Deposit not credited in time.
        """
        source = self._registry.get(request.from_exchange)
        destination = self._registry.get(request.to_exchange)
        asset = request.asset.upper()

        network = self.select_network(
            asset, request.from_exchange, request.to_exchange, request.preferred_network
        )

        # 1. No deposit address, no withdrawal
        address = await destination.get_deposit_address(asset, network)
        fee = await source.get_withdrawal_fee(asset, network)

        # 2. Sub-account move on the source side, verified by the adapter
        await source.prepare_withdrawal(asset, request.amount)

        # 3. Withdraw
        send_amount = request.amount if source.withdrawal_fee_inclusive else request.amount - fee
        if send_amount <= 0:
            raise InsufficientBalanceError(
                f"{source.name}: {request.amount} {asset} does not cover the {fee} {asset} "
                f"withdrawal fee on {network}"
            )

        baseline = await destination.get_deposit_balance(asset)
        logger.info(
            f"Withdrawing {send_amount} {asset} {source.name} -> {destination.name} "
            f"via {network} (fee {fee})"
        )
        withdrawal_id = await source.withdraw(
            asset,
            send_amount,
            address.address,
            network,
            memo=address.memo,
            fee=fee,
        )

        # 4. Confirm
        received = await self.confirm_arrival(
            destination,
            asset,
            baseline,
            request.amount,
            self._config.timeout_for(network),
        )

        await destination.prepare_trading(asset, received)

        logger.info(
            f"Transfer {withdrawal_id} confirmed: {received} {asset} credited on {destination.name}"
        )
        return TransferResult(
            asset=asset,
            amount=send_amount,
            from_exchange=source.name,
            to_exchange=destination.name,
            network=network,
            deposit_address=address.address,
            withdrawal_id=withdrawal_id,
            confirmed=True,
            received_amount=received,
            fee=fee,
        )

    async def confirm_arrival(
        self,
        adapter: ExchangeAdapter,
        asset: str,
        baseline: Decimal,
        sent_amount: Decimal,
        timeout: float,
    ) -> Decimal:
        """
        Poll a deposit balance until it grows by the confirmation ratio.

        Args:
            adapter: Receiving exchange.
            asset: Deposited asset.
            baseline: Deposit balance before the withdrawal.
            sent_amount: Amount withdrawn.
            timeout: Seconds to wait before giving up.

        Returns:
            The observed balance increase.

        Raises:
            TransferTimeoutError: If the increase is not observed in time.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        delta = Decimal("0")

        while True:
            try:
                delta = await adapter.get_deposit_balance(asset) - baseline
            except TransientNetworkError as e:
                logger.warning(f"{adapter.name}: deposit poll failed: {e}")
            else:
                if is_confirmed(sent_amount, delta, self._config.confirmation_ratio):
                    return delta
                logger.debug(f"{adapter.name}: {asset} credited {delta}/{sent_amount} so far")

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise TransferTimeoutError(
                    f"{sent_amount} {asset} not confirmed on {adapter.name} within {timeout:.0f}s "
                    f"(observed {delta})"
                )
            await asyncio.sleep(min(self._config.poll_interval, remaining))

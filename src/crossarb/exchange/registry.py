"""
Adapter registry keyed by exchange name.

Adding an exchange means registering one more adapter here; the
orchestrator only ever looks adapters up by name.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field

from crossarb.config.settings import Settings
from crossarb.core.errors import ConfigurationError
from crossarb.exchange.base import ExchangeAdapter
from crossarb.exchange.binance import BinanceAdapter
from crossarb.exchange.okx import OkxAdapter


@dataclass(slots=True, frozen=True)
class ExchangeCredentials:
    """API credentials for one exchange. Secrets are kept out of repr."""

    api_key: str
    api_secret: str = field(repr=False)
    passphrase: str | None = field(default=None, repr=False)


class AdapterRegistry:
    """Holds one adapter per exchange."""

    def __init__(self, adapters: list[ExchangeAdapter] | None = None) -> None:
        self._adapters: dict[str, ExchangeAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ExchangeAdapter) -> None:
        self._adapters[adapter.name.lower()] = adapter

    def get(self, name: str) -> ExchangeAdapter:
        """
        Look up an adapter by exchange name (case-insensitive).

        Raises:
            ConfigurationError: If the exchange is not registered.
        """
        adapter = self._adapters.get(name.lower())
        if adapter is None:
            raise ConfigurationError(
                f"unsupported exchange '{name}' (available: {', '.join(self.names)})"
            )
        return adapter

    @property
    def names(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._adapters

    def __iter__(self) -> Iterator[ExchangeAdapter]:
        return iter(self._adapters.values())

    async def close(self) -> None:
        """Close every adapter session."""
        for adapter in self._adapters.values():
            await adapter.close()

    @classmethod
    def from_credentials(
        cls,
        binance: ExchangeCredentials | None = None,
        okx: ExchangeCredentials | None = None,
    ) -> "AdapterRegistry":
        """Build Binance and OKX adapters; missing credentials give public-only adapters."""
        return cls(
            [
                BinanceAdapter(
                    api_key=binance.api_key if binance else None,
                    api_secret=binance.api_secret if binance else None,
                ),
                OkxAdapter(
                    api_key=okx.api_key if okx else None,
                    api_secret=okx.api_secret if okx else None,
                    passphrase=okx.passphrase if okx else None,
                ),
            ]
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdapterRegistry":
        """Build the registry from environment settings."""
        binance = None
        if settings.binance_api_key and settings.binance_api_secret:
            binance = ExchangeCredentials(
                api_key=settings.binance_api_key.get_secret_value(),
                api_secret=settings.binance_api_secret.get_secret_value(),
            )
        okx = None
        if settings.okx_api_key and settings.okx_api_secret and settings.okx_passphrase:
            okx = ExchangeCredentials(
                api_key=settings.okx_api_key.get_secret_value(),
                api_secret=settings.okx_api_secret.get_secret_value(),
                passphrase=settings.okx_passphrase.get_secret_value(),
            )
        return cls.from_credentials(binance=binance, okx=okx)


"""
Application settings with environment variable support.

Uses Pydantic Settings for type-safe configuration with automatic
environment variable loading and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crossarb.config.constants import (
    DEFAULT_CAPITAL_SAFETY_MARGIN,
    DEFAULT_AUTO_INTERVAL,
    DEFAULT_CONFIRMATION_RATIO,
    DEFAULT_FEE_RATE,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_INVESTMENT,
    DEFAULT_MAX_SLIPPAGE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SCAN_INTERVAL,
    DEFAULT_TRACKED_SYMBOLS,
    MAX_OPPORTUNITIES,
    MAX_SPREAD_PCT,
    MIN_NET_PROFIT,
    MIN_SPREAD_PCT,
    STANDARD_NOTIONAL,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Credentials are optional so the system can run in simulation
    mode without any exchange account.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Exchange Credentials
    # =========================================================================

    binance_api_key: SecretStr | None = Field(
        default=None,
        description="Binance API key",
    )
    binance_api_secret: SecretStr | None = Field(
        default=None,
        description="Binance API secret for signing requests",
    )
    okx_api_key: SecretStr | None = Field(
        default=None,
        description="OKX API key",
    )
    okx_api_secret: SecretStr | None = Field(
        default=None,
        description="OKX API secret for signing requests",
    )
    okx_passphrase: SecretStr | None = Field(
        default=None,
        description="OKX API passphrase",
    )

    # =========================================================================
    # Trading Configuration
    # =========================================================================

    mode: Literal["simulation", "real"] = Field(
        default="simulation",
        description="Simulate executions or place real orders",
    )

    quote_asset: Literal["USDT", "USDC"] = Field(
        default="USDT",
        description="Quote currency used for every leg",
    )

    fee_rate: float = Field(
        default=DEFAULT_FEE_RATE,
        ge=0.0,
        le=0.02,
        description="Trading fee rate per leg (e.g., 0.002 = 0.2%)",
    )

    max_slippage: float = Field(
        default=DEFAULT_MAX_SLIPPAGE,
        ge=0.0,
        le=5.0,
        description="Tolerated spread erosion before execution, in percentage points",
    )

    capital_safety_margin: float = Field(
        default=DEFAULT_CAPITAL_SAFETY_MARGIN,
        gt=0.0,
        le=1.0,
        description="Fraction of the quote balance that may be deployed",
    )

    default_investment: float = Field(
        default=DEFAULT_INVESTMENT,
        gt=0.0,
        description="Investment used by simulated executions",
    )

    network_preferences: dict[str, str] = Field(
        default_factory=dict,
        description="Asset to preferred transfer network (e.g., {\"USDT\": \"ARBITRUM\"})",
    )

    fallback_exchanges: list[str] = Field(
        default_factory=list,
        description="Alternate sell venues for hedged executions, tried in order",
    )

    lock_policy: Literal["reject", "queue"] = Field(
        default="reject",
        description="What to do with a request whose capital is claimed by another run",
    )

    # =========================================================================
    # Opportunity Detection
    # =========================================================================

    scan_interval_seconds: float = Field(default=DEFAULT_SCAN_INTERVAL, gt=0.0)
    fetch_timeout_seconds: float = Field(default=DEFAULT_FETCH_TIMEOUT, gt=0.0)
    standard_notional: float = Field(default=STANDARD_NOTIONAL, gt=0.0)
    min_spread_pct: float = Field(default=MIN_SPREAD_PCT, ge=0.0)
    max_spread_pct: float = Field(default=MAX_SPREAD_PCT, gt=0.0)
    min_net_profit: float = Field(default=MIN_NET_PROFIT, ge=0.0)
    max_opportunities: int = Field(default=MAX_OPPORTUNITIES, ge=1, le=500)
    tracked_symbols: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TRACKED_SYMBOLS),
        description="Base assets to scan; empty means every common symbol",
    )

    # =========================================================================
    # Transfers
    # =========================================================================

    transfer_poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0.0)
    transfer_confirmation_ratio: float = Field(
        default=DEFAULT_CONFIRMATION_RATIO,
        gt=0.0,
        le=1.0,
        description="Fraction of the sent amount that must arrive",
    )

    # =========================================================================
    # Auto-Execution
    # =========================================================================

    auto_execute: bool = Field(
        default=False,
        description="Submit filtered opportunities without a caller",
    )
    auto_interval_seconds: float = Field(default=DEFAULT_AUTO_INTERVAL, gt=0.0)
    auto_min_spread_pct: float = Field(default=MIN_SPREAD_PCT, ge=0.0)
    auto_max_investment: float = Field(
        default=DEFAULT_INVESTMENT,
        gt=0.0,
        description="Quote amount deployed per auto-executed opportunity",
    )
    auto_min_profit: float = Field(
        default=0.0,
        ge=0.0,
        description="Minimum projected net profit, in quote units",
    )
    auto_symbols: list[str] = Field(
        default_factory=list,
        description="Base assets eligible for auto-execution; empty means all detected",
    )
    auto_exchanges: list[str] = Field(
        default_factory=list,
        description="Exchanges both legs must use; empty means any",
    )
    auto_max_concurrent: int = Field(default=1, ge=1, le=20)
    auto_skip_funding_windows: bool = Field(
        default=True,
        description="Pause during the first half hour of the 00/08/16 UTC funding periods",
    )
    auto_strategy: Literal["transfer", "hedged"] = Field(default="transfer")

    # =========================================================================
    # Persistence, Logging & Server
    # =========================================================================

    ledger_path: Path | None = Field(
        default=None,
        description="Append-only JSONL trade ledger; in-memory when unset",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: Path | None = Field(default=None)

    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8000, ge=1, le=65535)

    use_uvloop: bool = Field(
        default=True,
        description="Use uvloop for the server event loop when installed",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("network_preferences", mode="after")
    @classmethod
    def normalize_network_preferences(cls, v: dict[str, str]) -> dict[str, str]:
        """Upper-case asset and network identifiers."""
        return {asset.upper(): network.upper() for asset, network in v.items()}

    @field_validator(
        "tracked_symbols", "fallback_exchanges", "auto_symbols", "auto_exchanges", mode="after"
    )
    @classmethod
    def normalize_names(cls, v: list[str]) -> list[str]:
        """Strip whitespace and drop empty entries."""
        return [item.strip() for item in v if item.strip()]

    @model_validator(mode="after")
    def validate_okx_credentials(self) -> "Settings":
        """OKX signs with three values; a partial set cannot authenticate."""
        okx_values = (self.okx_api_key, self.okx_api_secret, self.okx_passphrase)
        provided = [v is not None and bool(v.get_secret_value()) for v in okx_values]
        if any(provided) and not all(provided):
            raise ValueError("OKX credentials need api key, secret and passphrase")
        if self.min_spread_pct >= self.max_spread_pct:
            raise ValueError("min_spread_pct must be lower than max_spread_pct")
        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_real(self) -> bool:
        """Whether real orders and withdrawals are allowed."""
        return self.mode == "real"

    @property
    def has_binance_credentials(self) -> bool:
        return bool(self.binance_api_key and self.binance_api_secret)

    @property
    def has_okx_credentials(self) -> bool:
        return bool(self.okx_api_key and self.okx_api_secret and self.okx_passphrase)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded only once.
    Clear cache with `get_settings.cache_clear()` if needed.
    """
    return Settings()

"""
Unit tests for environment-driven settings.
"""

import pytest
from pydantic import ValidationError

from crossarb.config.settings import Settings
from crossarb.execution.transfer import TransferConfig
from crossarb.strategy.detector import DetectorConfig


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.mode == "simulation"
        assert not settings.is_real
        assert settings.lock_policy == "reject"
        assert settings.fee_rate == pytest.approx(0.002)
        assert not settings.has_binance_credentials

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MODE", "real")
        monkeypatch.setenv("BINANCE_API_KEY", "k")
        monkeypatch.setenv("BINANCE_API_SECRET", "s")
        monkeypatch.setenv("NETWORK_PREFERENCES", '{"usdt": "arbitrum"}')
        monkeypatch.setenv("TRACKED_SYMBOLS", '["BTC", " ETH ", ""]')

        settings = Settings(_env_file=None)

        assert settings.is_real
        assert settings.has_binance_credentials
        assert settings.network_preferences == {"USDT": "ARBITRUM"}
        assert settings.tracked_symbols == ["BTC", "ETH"]

    def test_secrets_hidden(self) -> None:
        settings = Settings(_env_file=None, binance_api_key="k", binance_api_secret="topsecret")

        assert "topsecret" not in repr(settings)

    def test_partial_okx_credentials_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, okx_api_key="k", okx_api_secret="s")

    def test_spread_window_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, min_spread_pct=5.0, max_spread_pct=1.0)

    def test_fee_rate_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, fee_rate=0.5)

    def test_component_configs(self) -> None:
        settings = Settings(
            _env_file=None,
            scan_interval_seconds=5,
            tracked_symbols=["btc"],
            network_preferences={"USDT": "TRC20"},
        )

        detector = DetectorConfig.from_settings(settings)
        transfer = TransferConfig.from_settings(settings)

        assert detector.scan_interval == 5
        assert detector.tracked_symbols == ("BTC",)
        assert transfer.network_preferences == {"USDT": "TRC20"}

"""Exchange adapters for Binance and OKX."""

from crossarb.exchange.base import ExchangeAdapter
from crossarb.exchange.binance import BinanceAdapter
from crossarb.exchange.okx import OkxAdapter
from crossarb.exchange.registry import AdapterRegistry, ExchangeCredentials


__all__ = [
    "AdapterRegistry",
    "BinanceAdapter",
    "ExchangeAdapter",
    "ExchangeCredentials",
    "OkxAdapter",
]

"""
Symbol normalisation across exchanges.

Binance quotes BTCUSDT, OKX quotes BTC-USDT; the detector and the
orchestrator work with the bare base asset ("BTC").
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal

from crossarb.config.constants import DEFAULT_QUOTE_ASSET, QUOTE_SUFFIXES, SYMBOL_SEPARATORS


def normalize_symbol(raw: str, quote: str = DEFAULT_QUOTE_ASSET) -> str | None:
    """
    Reduce an exchange symbol to its base asset.

    Args:
        raw: Exchange symbol (e.g., "BTCUSDT", "BTC-USDT", "btc/usdt").
        quote: Quote asset the symbol must be priced in.

    Returns:
        Base asset, or None when the symbol is not quoted in ``quote``.

    Example:
        >>> normalize_symbol("BTC-USDT")
        'BTC'
        >>> normalize_symbol("ETHBTC") is None
        True
    """
    symbol = raw.strip().upper()
    suffixes = QUOTE_SUFFIXES if quote == DEFAULT_QUOTE_ASSET else tuple(
        f"{sep}{quote}" for sep in SYMBOL_SEPARATORS
    ) + (quote,)

    for suffix in suffixes:
        if symbol.endswith(suffix) and len(symbol) > len(suffix):
            base = symbol[: -len(suffix)]
            for sep in SYMBOL_SEPARATORS:
                base = base.replace(sep, "")
            return base or None
    return None


def split_pair(symbol: str, quote: str = DEFAULT_QUOTE_ASSET) -> tuple[str, str]:
    """
    Split a request symbol into (base, quote).

    Accepts "BTC", "BTCUSDT", "BTC-USDT" or "BTC/USDT".
    """
    base = normalize_symbol(symbol, quote)
    if base is None:
        base = symbol.strip().upper()
        for sep in SYMBOL_SEPARATORS:
            base = base.replace(sep, "")
    return base, quote


def normalize_prices(
    prices: Mapping[str, Decimal],
    quote: str = DEFAULT_QUOTE_ASSET,
    tracked: Iterable[str] | None = None,
) -> dict[str, Decimal]:
    """
    Re-key an exchange price map by base asset.

    Args:
        prices: Exchange symbol -> price.
        quote: Quote asset to keep.
        tracked: Base assets to keep; None keeps all.

    Returns:
        Base asset -> price, positive prices only.
    """
    tracked_set = {s.upper() for s in tracked} if tracked else None
    normalized: dict[str, Decimal] = {}
    for raw, price in prices.items():
        base = normalize_symbol(raw, quote)
        if base is None or price <= 0:
            continue
        if tracked_set is not None and base not in tracked_set:
            continue
        normalized[base] = price
    return normalized

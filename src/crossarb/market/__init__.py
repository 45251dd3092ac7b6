"""Market symbol handling."""

from crossarb.market.symbols import normalize_prices, normalize_symbol, split_pair


__all__ = ["normalize_prices", "normalize_symbol", "split_pair"]

"""
Cross-exchange arbitrage between Binance and OKX.

Detects price discrepancies for the same asset on two exchanges and
executes buy -> on-chain transfer -> sell sequences with a recorded,
auditable outcome for every attempt.
"""

__version__ = "1.0.0"

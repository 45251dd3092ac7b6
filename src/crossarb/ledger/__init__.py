"""Trade ledger implementations."""

from crossarb.ledger.store import InMemoryTradeLedger, JsonlTradeLedger, TradeLedger


__all__ = ["InMemoryTradeLedger", "JsonlTradeLedger", "TradeLedger"]

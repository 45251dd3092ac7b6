"""Mock implementations for testing."""

from tests.mocks.exchange import MockExchangeAdapter


__all__ = [
    "MockExchangeAdapter",
]

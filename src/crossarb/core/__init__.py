"""Core types and errors."""

from crossarb.core.errors import (
    AllowlistBlockedError,
    ArbitrageError,
    AuthenticationError,
    ConfigurationError,
    DuplicateOrderError,
    ExchangeError,
    ExecutionInProgressError,
    InsufficientBalanceError,
    OrderRejectedError,
    StaleOpportunityError,
    TransferTimeoutError,
    TransientNetworkError,
    WithdrawalUnconfirmedError,
)
from crossarb.core.types import (
    Balance,
    ExecutionConfig,
    ExecutionRequest,
    ExecutionResult,
    Opportunity,
    OrderSide,
    TradeRecord,
    TradeStatus,
    TradingMode,
)


__all__ = [
    "AllowlistBlockedError",
    "ArbitrageError",
    "AuthenticationError",
    "Balance",
    "ConfigurationError",
    "DuplicateOrderError",
    "ExchangeError",
    "ExecutionConfig",
    "ExecutionInProgressError",
    "ExecutionRequest",
    "ExecutionResult",
    "InsufficientBalanceError",
    "Opportunity",
    "OrderRejectedError",
    "OrderSide",
    "StaleOpportunityError",
    "TradeRecord",
    "TradeStatus",
    "TradingMode",
    "TransferTimeoutError",
    "TransientNetworkError",
    "WithdrawalUnconfirmedError",
]

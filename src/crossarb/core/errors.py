"""
Error taxonomy for exchange access, transfers and orchestration.

Adapters and the transfer coordinator raise these typed errors; the
orchestrator catches them at the saga level and turns them into a
failed trade record with a short, actionable message.
"""


class ArbitrageError(Exception):
    """Base exception for all expected failures."""

    kind = "error"
    remediation = ""
    retryable = False

    def __init__(self, message: str, code: int | str | None = None) -> None:
        super().__init__(message)
        self.code = code


class AuthenticationError(ArbitrageError):
    """Bad, expired or under-privileged credentials, or a stale request timestamp."""

    kind = "authentication"
    remediation = "check the API key, secret and permissions, and that the system clock is in sync"


class InsufficientBalanceError(ArbitrageError):
    """Not enough funds for the requested step."""

    kind = "insufficient_balance"
    remediation = "fund the account or lower the investment amount"


class OrderRejectedError(ArbitrageError):
    """Order refused by the exchange's trading rules. Never retried as-is."""

    kind = "order_rejected"
    remediation = "adjust the order size to the exchange's lot size and minimum notional"

    def __init__(
        self,
        message: str,
        param: str | None = None,
        code: int | str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.param = param


class TransientNetworkError(ArbitrageError):
    """Timeout, rate limit or server-side failure."""

    kind = "network"
    remediation = "the exchange was unreachable or rate limited; try again shortly"
    retryable = True

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: int | str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.status = status


class AllowlistBlockedError(ArbitrageError):
    """Destination address is not on the source exchange's withdrawal allow-list."""

    kind = "allowlist_blocked"

    def __init__(self, exchange: str, message: str, code: int | str | None = None) -> None:
        super().__init__(message, code=code)
        self.exchange = exchange

    @property
    def remediation(self) -> str:  # type: ignore[override]
        return (
            f"destination address not verified: add it to the {self.exchange} "
            "withdrawal allow-list (address book) and retry"
        )


class TransferTimeoutError(ArbitrageError):
    """Deposit was not confirmed within the timeout. Funds may still arrive."""

    kind = "transfer_timeout"
    remediation = (
        "transfer not confirmed in time; reconcile both exchange balances manually "
        "before retrying"
    )


class WithdrawalUnconfirmedError(ArbitrageError):
    """
    A withdrawal request failed in transit and the exchange could not
    confirm whether it was accepted. It is never re-sent.
    """

    kind = "withdrawal_unconfirmed"
    remediation = (
        "withdrawal outcome unclear; check the source exchange's withdrawal history "
        "and reconcile both balances before retrying"
    )


class ConfigurationError(ArbitrageError):
    """Unsupported exchange, unmapped network or missing setting."""

    kind = "configuration"
    remediation = "fix the exchange or network configuration"


class StaleOpportunityError(ArbitrageError):
    """Spread no longer holds against live prices."""

    kind = "stale_opportunity"
    remediation = "refresh opportunities and retry with current prices"


class ExecutionInProgressError(ArbitrageError):
    """Another execution holds the capital this request needs."""

    kind = "execution_in_progress"
    remediation = "wait for the running execution on this exchange and asset to finish"


class ExchangeError(ArbitrageError):
    """Any other permanent error reported by an exchange."""

    kind = "exchange_error"


class DuplicateOrderError(ExchangeError):
    """The exchange already holds an order with this client order id."""

    kind = "duplicate_order"


def is_retryable(exc: BaseException) -> bool:
    """Default retry classifier: only transient network errors are retried."""
    return isinstance(exc, ArbitrageError) and exc.retryable


def describe_failure(exc: BaseException) -> str:
    """
    Render a human-actionable failure message.

    Args:
        exc: Exception raised during an execution.

    Returns:
        Short classification with remediation text, never a stack trace.
    """
    if isinstance(exc, ArbitrageError):
        message = str(exc)
        if exc.remediation:
            return f"{message} ({exc.remediation})"
        return message
    return f"unexpected error: {type(exc).__name__}"

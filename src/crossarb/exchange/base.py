"""
Exchange adapter interface.

Every exchange implements the same async surface so the orchestrator,
the transfer coordinator and the detector never branch on exchange
name. Shared plumbing lives here:
- one aiohttp session per adapter with connection pooling
- orjson parsing and HTTP status classification
- per-adapter rate limiting
- retry with bounded backoff around every request
- lot-size rounding and order validation before submission
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any, TypeVar

import aiohttp
import orjson

from crossarb.config.constants import (
    ALLOWLIST_ERROR_MARKERS,
    AUTH_FAILURE_STATUSES,
    HTTP_TIMEOUT_SECONDS,
    RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRYABLE_STATUSES,
)
from crossarb.core.errors import (
    ArbitrageError,
    AuthenticationError,
    DuplicateOrderError,
    ExchangeError,
    OrderRejectedError,
    TransientNetworkError,
    WithdrawalUnconfirmedError,
)
from crossarb.core.types import (
    Balance,
    DepositAddress,
    OrderResult,
    OrderSide,
    SymbolRules,
)
from crossarb.exchange.rate_limiter import RateLimiter
from crossarb.utils.retry import retry_async


logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_allowlist_message(text: str) -> bool:
    """Check whether exchange error text describes an allow-list rejection."""
    lowered = text.lower()
    return any(marker in lowered for marker in ALLOWLIST_ERROR_MARKERS)


class ExchangeAdapter(ABC):
    """
    Uniform async interface to one exchange's REST API.

    Subclasses implement signing and payload mapping; callers only use
    the public methods below.
    """

    name: str = ""
    # Whether the withdrawal fee is taken out of the withdrawn amount
    withdrawal_fee_inclusive: bool = True

    def __init__(
        self,
        base_url: str,
        rate_limiter: RateLimiter,
        retry_attempts: int = RETRY_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY,
        timeout_seconds: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            base_url: REST base URL.
            rate_limiter: Rate limiter for this exchange.
            retry_attempts: Total attempts for transient failures.
            retry_base_delay: First backoff delay in seconds.
            timeout_seconds: Total timeout for a single HTTP call.
        """
        self._base_url = base_url
        self._rate_limiter = rate_limiter
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None
        self._rules_cache: dict[str, SymbolRules] = {}

    # =========================================================================
    # Session Management
    # =========================================================================

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=50,
                limit_per_host=20,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=self._timeout,
                json_serialize=lambda x: orjson.dumps(x).decode(),
            )
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "ExchangeAdapter":
        await self._get_session()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # =========================================================================
    # Request Plumbing
    # =========================================================================

    async def _http(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[int, str]:
        """
        Perform one HTTP call.

        Returns:
            Tuple of (status, response text).

        Raises:
            TransientNetworkError: On connection errors and timeouts.
        """
        session = await self._get_session()
        try:
            async with session.request(
                method, url, params=params, data=data, headers=headers
            ) as response:
                return response.status, await response.text()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransientNetworkError(f"{self.name} network error: {e!r}") from e

    def _parse_response(self, status: int, text: str) -> Any:
        """
        Decode a response body and classify HTTP-level failures.

        Exchange-specific error payloads are left to the subclass.

        Raises:
            AuthenticationError: On 401/403.
            TransientNetworkError: On 429 and 5xx.
            ExchangeError: On an undecodable body.
        """
        try:
            payload = orjson.loads(text) if text else {}
        except orjson.JSONDecodeError:
            payload = None

        if status in AUTH_FAILURE_STATUSES:
            raise AuthenticationError(
                f"{self.name} rejected the request (HTTP {status}): {text[:200]}",
                code=status,
            )
        if status in RETRYABLE_STATUSES or status >= 500:
            raise TransientNetworkError(
                f"{self.name} unavailable (HTTP {status})",
                status=status,
            )
        if payload is None:
            raise ExchangeError(f"{self.name} returned invalid JSON (HTTP {status})", code=status)
        return payload

    async def _with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str,
    ) -> T:
        """Run a request through the shared retry policy."""
        return await retry_async(
            operation,
            attempts=self._retry_attempts,
            base_delay=self._retry_base_delay,
            description=f"{self.name} {description}",
        )

    def _require_credentials(self) -> None:
        if not self.has_credentials:
            raise AuthenticationError(f"no API credentials configured for {self.name}")

    async def _submit_order_once(
        self,
        client_id: str,
        send: Callable[[], Awaitable[OrderResult]],
        lookup: Callable[[], Awaitable[OrderResult | None]],
    ) -> OrderResult:
        """
        Submit an order under a fixed client order id.

        ``send`` must not retry on its own. Every retry looks the client id
        up first, so an order that filled behind a timeout is returned
        instead of being placed again. A duplicate-order reply is answered
        the same way.
        """
        sent = False

        async def attempt() -> OrderResult:
            nonlocal sent
            if sent:
                existing = await lookup()
                if existing is not None:
                    logger.warning(f"{self.name}: order {client_id} was placed by an earlier attempt")
                    return existing
            sent = True
            try:
                return await send()
            except DuplicateOrderError:
                existing = await lookup()
                if existing is None:
                    raise
                logger.warning(f"{self.name}: duplicate order {client_id}, using the existing fill")
                return existing

        return await self._with_retry(attempt, f"order {client_id}")

    async def _submit_withdrawal_once(
        self,
        client_id: str,
        send: Callable[[], Awaitable[str]],
        lookup: Callable[[], Awaitable[str | None]],
    ) -> str:
        """
        Send a withdrawal exactly once under a fixed client id.

        When the request fails in transit the withdrawal history is
        searched for the client id; a withdrawal is never re-sent.

        Raises:
            WithdrawalUnconfirmedError: If the outcome cannot be established.
        """
        try:
            return await send()
        except TransientNetworkError as e:
            logger.warning(f"{self.name}: withdrawal {client_id} outcome unclear ({e}), checking history")
            try:
                withdrawal_id = await lookup()
            except ArbitrageError as lookup_error:
                raise WithdrawalUnconfirmedError(
                    f"{self.name}: withdrawal {client_id} failed in transit and the history "
                    f"lookup failed: {lookup_error}"
                ) from lookup_error
            if withdrawal_id is None:
                raise WithdrawalUnconfirmedError(
                    f"{self.name}: withdrawal {client_id} failed in transit ({e}) and is not "
                    "in the withdrawal history yet"
                ) from e
            logger.info(f"{self.name}: withdrawal {client_id} found in history as {withdrawal_id}")
            return withdrawal_id

    # =========================================================================
    # Interface
    # =========================================================================

    @property
    @abstractmethod
    def has_credentials(self) -> bool:
        """Whether signed endpoints can be called."""

    @abstractmethod
    def exchange_symbol(self, base: str, quote: str) -> str:
        """Exchange-specific market symbol (e.g., BTCUSDT or BTC-USDT)."""

    @abstractmethod
    def resolve_network(self, asset: str, network: str) -> str:
        """
        Map a canonical network to this exchange's identifier.

        Raises:
            ConfigurationError: If the asset/network pair is unmapped.
        """

    @abstractmethod
    async def get_balance(self, asset: str) -> Balance:
        """Spendable trading balance for an asset."""

    @abstractmethod
    async def get_price(self, base: str, quote: str) -> Decimal:
        """Last traded price for a market."""

    @abstractmethod
    async def get_all_prices(self) -> dict[str, Decimal]:
        """Last price of every spot market, keyed by exchange symbol."""

    @abstractmethod
    async def _fetch_symbol_rules(self, base: str, quote: str) -> SymbolRules:
        """Load lot-size and notional rules from the exchange."""

    @abstractmethod
    async def _submit_market_order(
        self,
        rules: SymbolRules,
        side: OrderSide,
        quantity: Decimal | None,
        quote_amount: Decimal | None,
    ) -> OrderResult:
        """Submit an already validated market order."""

    @abstractmethod
    async def get_deposit_address(self, asset: str, network: str) -> DepositAddress:
        """Deposit address for an asset on a canonical network."""

    @abstractmethod
    async def get_withdrawal_fee(self, asset: str, network: str) -> Decimal:
        """Withdrawal fee, in units of the asset, for a canonical network."""

    @abstractmethod
    async def withdraw(
        self,
        asset: str,
        amount: Decimal,
        address: str,
        network: str,
        memo: str | None = None,
        fee: Decimal | None = None,
    ) -> str:
        """
        Initiate an on-chain withdrawal.

        Returns:
            Exchange withdrawal id.

        Raises:
            AllowlistBlockedError: If the address is not allow-listed.
        """

    async def get_deposit_balance(self, asset: str) -> Decimal:
        """Available balance of the account deposits are credited to."""
        balance = await self.get_balance(asset)
        return balance.available

    async def prepare_withdrawal(self, asset: str, amount: Decimal) -> None:
        """Move funds to the withdrawable account. No-op by default."""

    async def prepare_trading(self, asset: str, amount: Decimal) -> None:
        """Move deposited funds to the trading account. No-op by default."""

    # =========================================================================
    # Orders
    # =========================================================================

    async def get_symbol_rules(self, base: str, quote: str) -> SymbolRules:
        """
        Trading rules for a market, cached per adapter.

        Exchange metadata is static configuration; balances are never cached.
        """
        key = f"{base}/{quote}"
        rules = self._rules_cache.get(key)
        if rules is None:
            rules = await self._fetch_symbol_rules(base, quote)
            self._rules_cache[key] = rules
        return rules

    def validate_order(
        self,
        rules: SymbolRules,
        quantity: Decimal | None,
        quote_amount: Decimal | None,
        reference_price: Decimal | None = None,
    ) -> Decimal | None:
        """
        Round and validate an order before submission.

        Args:
            rules: Market rules.
            quantity: Base quantity, for quantity-sized orders.
            quote_amount: Quote amount, for notional-sized buys.
            reference_price: Price used for the notional check.

        Returns:
            Rounded quantity, or None for notional-sized orders.

        Raises:
            OrderRejectedError: With the offending parameter.
        """
        if quote_amount is not None:
            if quote_amount <= 0 or (rules.min_notional and quote_amount < rules.min_notional):
                raise OrderRejectedError(
                    f"{self.name} {rules.symbol}: notional {quote_amount} below minimum "
                    f"{rules.min_notional}",
                    param="notional",
                )
            return None
        if quantity is None:
            raise ValueError("quantity or quote_amount is required")

        rounded = rules.round_quantity(quantity)
        if rounded <= 0 or not rules.is_valid_quantity(rounded):
            raise OrderRejectedError(
                f"{self.name} {rules.symbol}: quantity {rounded} (raw {quantity}) outside "
                f"lot rules min={rules.min_qty} max={rules.max_qty} step={rules.step_size}",
                param="quantity",
            )
        if reference_price and rules.min_notional and rounded * reference_price < rules.min_notional:
            raise OrderRejectedError(
                f"{self.name} {rules.symbol}: notional {rounded * reference_price} below minimum "
                f"{rules.min_notional}",
                param="notional",
            )
        return rounded

    async def place_market_order(
        self,
        base: str,
        quote: str,
        side: OrderSide,
        quantity: Decimal | None = None,
        quote_amount: Decimal | None = None,
        reference_price: Decimal | None = None,
    ) -> OrderResult:
        """
        Place a market order sized by base quantity or by quote amount.

        Quantities are rounded down to the lot step and validated
        against minimum quantity and notional before anything is sent.

        Args:
            base: Base asset (e.g., "BTC").
            quote: Quote asset (e.g., "USDT").
            side: Order side.
            quantity: Base quantity to trade.
            quote_amount: Quote amount to spend (buys only).
            reference_price: Expected price, for the notional check.

        Returns:
            OrderResult with the actually executed quantity.
        """
        if (quantity is None) == (quote_amount is None):
            raise ValueError("Pass exactly one of quantity or quote_amount")
        if quote_amount is not None and side is not OrderSide.BUY:
            raise ValueError("Quote-sized market orders are buys only")

        self._require_credentials()
        rules = await self.get_symbol_rules(base, quote)
        rounded = self.validate_order(rules, quantity, quote_amount, reference_price)

        size = f"qty={rounded}" if rounded is not None else f"notional={quote_amount}"
        logger.info(f"{self.name}: market {side.value} {rules.symbol} {size}")

        result = await self._submit_market_order(rules, side, rounded, quote_amount)

        logger.info(
            f"{self.name}: order {result.order_id} filled {result.executed_qty} "
            f"@ {result.executed_price}"
        )
        return result

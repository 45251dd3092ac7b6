"""
Binance spot adapter.

Signed endpoints carry the API key in the ``X-MBX-APIKEY`` header and a
hex HMAC-SHA256 signature over the query string (timestamp and
recvWindow included). Errors come back as ``{"code": -NNNN, "msg": ...}``.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any

from crossarb.config.constants import (
    BINANCE_ENDPOINT_ACCOUNT,
    BINANCE_ENDPOINT_COIN_CONFIG,
    BINANCE_ENDPOINT_DEPOSIT_ADDRESS,
    BINANCE_ENDPOINT_EXCHANGE_INFO,
    BINANCE_ENDPOINT_ORDER,
    BINANCE_ENDPOINT_TICKER_PRICE,
    BINANCE_ENDPOINT_WITHDRAW,
    BINANCE_ENDPOINT_WITHDRAW_HISTORY,
    BINANCE_NETWORKS,
    BINANCE_ORDERS_PER_SECOND,
    BINANCE_RECV_WINDOW_MS,
    BINANCE_REQUESTS_PER_SECOND,
    BINANCE_REST_URL,
    EXCHANGE_BINANCE,
    ORDER_TYPE_MARKET,
    RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
)
from crossarb.core.errors import (
    AllowlistBlockedError,
    AuthenticationError,
    ConfigurationError,
    DuplicateOrderError,
    ExchangeError,
    InsufficientBalanceError,
    OrderRejectedError,
    TransientNetworkError,
)
from crossarb.core.types import (
    Balance,
    DepositAddress,
    OrderResult,
    OrderSide,
    SymbolRules,
)
from crossarb.exchange.base import ExchangeAdapter, is_allowlist_message
from crossarb.exchange.models import (
    AccountInfo,
    BinanceDepositAddress,
    BinanceWithdrawRecord,
    BinanceWithdrawResponse,
    CoinConfig,
    ExchangeInfo,
    OrderResponse,
    TickerPrice,
)
from crossarb.exchange.rate_limiter import RateLimiter
from crossarb.exchange.signer import BinanceSigner
from crossarb.utils.math import format_decimal


logger = logging.getLogger(__name__)

# Invalid key, bad signature, missing permission, timestamp outside recvWindow
AUTH_ERROR_CODES = frozenset({-1002, -1021, -1022, -2014, -2015})
# Filter failures, bad precision, unknown symbol
ORDER_REJECT_CODES = frozenset({-1013, -1100, -1102, -1111, -1121})
INSUFFICIENT_BALANCE_CODES = frozenset({-2010})
RATE_LIMIT_CODES = frozenset({-1003, -1015})
ORDER_NOT_FOUND_CODE = -2013


class BinanceAdapter(ExchangeAdapter):
    """
    Async Binance REST adapter.

    Public endpoints work without credentials, so the detector can use
    an unauthenticated instance.
    """

    name = EXCHANGE_BINANCE

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        base_url: str = BINANCE_REST_URL,
        rate_limiter: RateLimiter | None = None,
        retry_attempts: int = RETRY_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ) -> None:
        """
        Initialize the Binance adapter.

        Args:
            api_key: Binance API key.
            api_secret: Binance API secret.
            base_url: REST base URL.
            rate_limiter: Optional rate limiter instance.
            retry_attempts: Total attempts for transient failures.
            retry_base_delay: First backoff delay in seconds.
        """
        super().__init__(
            base_url,
            rate_limiter or RateLimiter(BINANCE_REQUESTS_PER_SECOND, BINANCE_ORDERS_PER_SECOND),
            retry_attempts=retry_attempts,
            retry_base_delay=retry_base_delay,
        )
        self._api_key = api_key or ""
        self._signer = BinanceSigner(api_secret) if api_secret else None

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key and self._signer)

    def exchange_symbol(self, base: str, quote: str) -> str:
        return f"{base}{quote}"

    def resolve_network(self, asset: str, network: str) -> str:
        mapped = BINANCE_NETWORKS.get(network.upper())
        if mapped is None:
            raise ConfigurationError(f"{self.name}: no network mapping for {asset} on {network}")
        return mapped

    # =========================================================================
    # Request Plumbing
    # =========================================================================

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        signed: bool = False,
        is_order: bool = False,
        retry: bool = True,
    ) -> Any:
        """
        Make an API request with rate limiting and retries.

        The signature is rebuilt on every attempt with a fresh timestamp.

        Args:
            method: HTTP method (GET, POST).
            endpoint: API endpoint.
            params: Request parameters.
            signed: Whether request requires signature.
            is_order: Whether to use the order rate bucket.
            retry: Retry transient failures. Off for requests that move funds.

        Returns:
            Parsed JSON response.
        """
        signer = self._require_signer() if signed else None

        async def attempt() -> Any:
            if is_order:
                await self._rate_limiter.acquire_order()
            else:
                await self._rate_limiter.acquire_request()

            request_params: dict[str, Any] = dict(params or {})
            headers: dict[str, str] = {}
            if signer is not None:
                request_params = signer.create_signed_params(
                    request_params, recv_window=BINANCE_RECV_WINDOW_MS
                )
                headers["X-MBX-APIKEY"] = self._api_key

            url = f"{self._base_url}{endpoint}"
            if method == "GET":
                status, text = await self._http(method, url, params=request_params, headers=headers)
            else:
                status, text = await self._http(method, url, data=request_params, headers=headers)

            payload = self._parse_response(status, text)
            if status >= 400:
                self._raise_for_error(payload, status)
            return payload

        if not retry:
            return await attempt()
        return await self._with_retry(attempt, f"{method} {endpoint}")

    def _require_signer(self) -> BinanceSigner:
        if self._signer is None or not self._api_key:
            raise AuthenticationError(f"no API credentials configured for {self.name}")
        return self._signer

    def _raise_for_error(self, payload: Any, status: int) -> None:
        """Translate a Binance error payload into a typed error."""
        code = payload.get("code") if isinstance(payload, dict) else None
        msg = str(payload.get("msg", "")) if isinstance(payload, dict) else str(payload)
        text = f"{self.name} error {code}: {msg}"

        if is_allowlist_message(msg):
            raise AllowlistBlockedError(self.name, text, code=code)
        if code in AUTH_ERROR_CODES:
            raise AuthenticationError(text, code=code)
        if code in ORDER_REJECT_CODES:
            raise OrderRejectedError(text, param=self._offending_param(code, msg), code=code)
        if "duplicate order" in msg.lower():
            raise DuplicateOrderError(text, code=code)
        if code in INSUFFICIENT_BALANCE_CODES or "insufficient" in msg.lower():
            raise InsufficientBalanceError(text, code=code)
        if code in RATE_LIMIT_CODES:
            raise TransientNetworkError(text, status=status, code=code)
        raise ExchangeError(text, code=code)

    @staticmethod
    def _offending_param(code: int, msg: str) -> str:
        upper = msg.upper()
        if code == -1121:
            return "symbol"
        if "NOTIONAL" in upper:
            return "notional"
        if "LOT_SIZE" in upper or "QUANTITY" in upper or code == -1111:
            return "quantity"
        return "order"

    # =========================================================================
    # Market Data
    # =========================================================================

    async def get_price(self, base: str, quote: str) -> Decimal:
        data = await self._request(
            "GET", BINANCE_ENDPOINT_TICKER_PRICE, {"symbol": self.exchange_symbol(base, quote)}
        )
        return TickerPrice.model_validate(data).price

    async def get_all_prices(self) -> dict[str, Decimal]:
        data = await self._request("GET", BINANCE_ENDPOINT_TICKER_PRICE)
        tickers = [TickerPrice.model_validate(item) for item in data]
        return {t.symbol: t.price for t in tickers}

    async def _fetch_symbol_rules(self, base: str, quote: str) -> SymbolRules:
        symbol = self.exchange_symbol(base, quote)
        data = await self._request("GET", BINANCE_ENDPOINT_EXCHANGE_INFO, {"symbol": symbol})
        info = ExchangeInfo.model_validate(data)
        if not info.symbols:
            raise OrderRejectedError(f"{self.name}: unknown symbol {symbol}", param="symbol")

        symbol_data = info.symbols[0]
        lot = symbol_data.get_filter("LOT_SIZE")
        notional = symbol_data.get_filter("NOTIONAL", "MIN_NOTIONAL")
        zero = Decimal("0")

        return SymbolRules(
            symbol=symbol,
            base_asset=symbol_data.base_asset,
            quote_asset=symbol_data.quote_asset,
            step_size=(lot.step_size or zero) if lot else zero,
            min_qty=(lot.min_qty or zero) if lot else zero,
            max_qty=lot.max_qty if lot else None,
            min_notional=(notional.min_notional or zero) if notional else zero,
        )

    # =========================================================================
    # Account & Orders (Signed)
    # =========================================================================

    async def get_balance(self, asset: str) -> Balance:
        data = await self._request("GET", BINANCE_ENDPOINT_ACCOUNT, signed=True)
        account = AccountInfo.model_validate(data)
        entry = account.get_balance(asset)
        if entry is None:
            return Balance(exchange=self.name, asset=asset, available=Decimal("0"))
        return Balance(exchange=self.name, asset=asset, available=entry.free, locked=entry.locked)

    async def _submit_market_order(
        self,
        rules: SymbolRules,
        side: OrderSide,
        quantity: Decimal | None,
        quote_amount: Decimal | None,
    ) -> OrderResult:
        client_id = f"xarb{uuid.uuid4().hex[:28]}"
        params: dict[str, Any] = {
            "symbol": rules.symbol,
            "side": side.value,
            "type": ORDER_TYPE_MARKET,
            "newOrderRespType": "FULL",
            "newClientOrderId": client_id,
        }
        if quantity is not None:
            params["quantity"] = format_decimal(quantity)
        elif quote_amount is not None:
            params["quoteOrderQty"] = format_decimal(quote_amount)
        else:
            raise ValueError("quantity or quote_amount is required")

        async def send() -> OrderResult:
            data = await self._request(
                "POST", BINANCE_ENDPOINT_ORDER, params, signed=True, is_order=True, retry=False
            )
            return self._order_result(OrderResponse.model_validate(data), side)

        async def lookup() -> OrderResult | None:
            return await self._find_order(rules.symbol, client_id, side)

        return await self._submit_order_once(client_id, send, lookup)

    async def _find_order(self, symbol: str, client_id: str, side: OrderSide) -> OrderResult | None:
        """Query an order by client order id; None if Binance does not know it."""
        try:
            data = await self._request(
                "GET",
                BINANCE_ENDPOINT_ORDER,
                {"symbol": symbol, "origClientOrderId": client_id},
                signed=True,
            )
        except ExchangeError as e:
            if e.code == ORDER_NOT_FOUND_CODE:
                return None
            raise
        return self._order_result(OrderResponse.model_validate(data), side)

    def _order_result(self, response: OrderResponse, side: OrderSide) -> OrderResult:
        return OrderResult(
            exchange=self.name,
            order_id=str(response.order_id),
            symbol=response.symbol,
            side=side,
            executed_qty=response.executed_qty,
            executed_price=response.avg_fill_price,
            quote_qty=response.cummulative_quote_qty,
            commission=response.total_commission,
            commission_asset=response.commission_asset,
        )

    # =========================================================================
    # Deposits & Withdrawals (Signed)
    # =========================================================================

    async def get_deposit_address(self, asset: str, network: str) -> DepositAddress:
        params = {"coin": asset, "network": self.resolve_network(asset, network)}
        data = await self._request("GET", BINANCE_ENDPOINT_DEPOSIT_ADDRESS, params, signed=True)
        address = BinanceDepositAddress.model_validate(data)
        if not address.address:
            raise ExchangeError(f"{self.name}: no {asset} deposit address on {network}")
        return DepositAddress(
            exchange=self.name,
            asset=asset,
            network=network,
            address=address.address,
            memo=address.tag or None,
        )

    async def get_withdrawal_fee(self, asset: str, network: str) -> Decimal:
        binance_network = self.resolve_network(asset, network)
        data = await self._request("GET", BINANCE_ENDPOINT_COIN_CONFIG, signed=True)
        for item in data:
            coin = CoinConfig.model_validate(item)
            if coin.coin != asset:
                continue
            for entry in coin.network_list:
                if entry.network == binance_network:
                    if not entry.withdraw_enable:
                        raise ConfigurationError(
                            f"{self.name}: {asset} withdrawals on {network} are disabled"
                        )
                    return entry.withdraw_fee
        raise ConfigurationError(f"{self.name}: {asset} is not withdrawable on {network}")

    async def withdraw(
        self,
        asset: str,
        amount: Decimal,
        address: str,
        network: str,
        memo: str | None = None,
        fee: Decimal | None = None,
    ) -> str:
        # Binance deducts the fee itself; the fee argument is informational
        client_id = f"xarbwd{uuid.uuid4().hex[:24]}"
        params: dict[str, Any] = {
            "coin": asset,
            "network": self.resolve_network(asset, network),
            "address": address,
            "amount": format_decimal(amount),
            "withdrawOrderId": client_id,
        }
        if memo:
            params["addressTag"] = memo

        async def send() -> str:
            data = await self._request("POST", BINANCE_ENDPOINT_WITHDRAW, params, signed=True, retry=False)
            return BinanceWithdrawResponse.model_validate(data).id

        async def lookup() -> str | None:
            data = await self._request(
                "GET",
                BINANCE_ENDPOINT_WITHDRAW_HISTORY,
                {"coin": asset, "withdrawOrderId": client_id},
                signed=True,
            )
            for item in data:
                record = BinanceWithdrawRecord.model_validate(item)
                if record.withdraw_order_id == client_id:
                    return record.id
            return None

        logger.info(f"{self.name}: withdrawing {amount} {asset} via {network} ({client_id})")
        return await self._submit_withdrawal_once(client_id, send, lookup)

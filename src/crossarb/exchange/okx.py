"""
OKX spot adapter.

Requests are signed with base64 HMAC-SHA256 over
``timestamp + METHOD + requestPath + body`` and carry key, signature,
timestamp and passphrase headers. OKX answers HTTP 200 for most
business errors; any ``code`` other than "0" is a failure.

OKX keeps two relevant sub-accounts: trading (18) where orders settle,
and funding (6) where deposits land and withdrawals are taken from.
"""

import asyncio
import logging
import uuid
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

import orjson

from crossarb.config.constants import (
    EXCHANGE_OKX,
    OKX_ACCOUNT_FUNDING,
    OKX_ACCOUNT_TRADING,
    OKX_CHAIN_SUFFIXES,
    OKX_ENDPOINT_CURRENCIES,
    OKX_ENDPOINT_DEPOSIT_ADDRESS,
    OKX_ENDPOINT_FUNDING_BALANCE,
    OKX_ENDPOINT_INSTRUMENTS,
    OKX_ENDPOINT_ORDER,
    OKX_ENDPOINT_TICKER,
    OKX_ENDPOINT_TICKERS,
    OKX_ENDPOINT_TRADING_BALANCE,
    OKX_ENDPOINT_TRANSFER,
    OKX_ENDPOINT_WITHDRAWAL,
    OKX_ENDPOINT_WITHDRAWAL_HISTORY,
    OKX_ORDERS_PER_SECOND,
    OKX_REQUESTS_PER_SECOND,
    OKX_REST_URL,
    OKX_WITHDRAW_DEST_ONCHAIN,
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
    OkxAccountBalance,
    OkxCurrency,
    OkxDepositAddress,
    OkxFundingBalance,
    OkxInstrument,
    OkxOrderAck,
    OkxOrderDetail,
    OkxTicker,
    OkxWithdrawal,
    OkxWithdrawalRecord,
)
from crossarb.exchange.rate_limiter import RateLimiter
from crossarb.exchange.signer import OkxSigner
from crossarb.utils.math import format_decimal


logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = frozenset({"50102", "50103", "50104", "50105", "50111", "50113", "50114"})
ORDER_REJECT_CODES = frozenset({"51000", "51001", "51020", "51121", "51400"})
INSUFFICIENT_BALANCE_CODES = frozenset({"51008", "58350"})
ALLOWLIST_CODES = frozenset({"58207"})
TRANSIENT_CODES = frozenset({"50001", "50011", "50013", "50026"})
DUPLICATE_ORDER_CODE = "51016"
ORDER_NOT_FOUND_CODE = "51603"

# Fill details can lag the order acknowledgement briefly
FILL_CHECK_ATTEMPTS = 5
FILL_CHECK_DELAY = 0.2


class OkxAdapter(ExchangeAdapter):
    """Async OKX REST adapter."""

    name = EXCHANGE_OKX
    withdrawal_fee_inclusive = False

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        passphrase: str | None = None,
        base_url: str = OKX_REST_URL,
        rate_limiter: RateLimiter | None = None,
        retry_attempts: int = RETRY_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY,
        fill_check_delay: float = FILL_CHECK_DELAY,
    ) -> None:
        super().__init__(
            base_url,
            rate_limiter or RateLimiter(OKX_REQUESTS_PER_SECOND, OKX_ORDERS_PER_SECOND),
            retry_attempts=retry_attempts,
            retry_base_delay=retry_base_delay,
        )
        self._signer = (
            OkxSigner(api_key, api_secret, passphrase)
            if api_key and api_secret and passphrase
            else None
        )
        self._fill_check_delay = fill_check_delay

    @property
    def has_credentials(self) -> bool:
        return self._signer is not None

    def exchange_symbol(self, base: str, quote: str) -> str:
        return f"{base}-{quote}"

    def resolve_network(self, asset: str, network: str) -> str:
        suffix = OKX_CHAIN_SUFFIXES.get(network.upper())
        if suffix is None:
            raise ConfigurationError(f"{self.name}: no chain mapping for {asset} on {network}")
        return f"{asset}-{suffix}"

    # =========================================================================
    # Request Plumbing
    # =========================================================================

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        signed: bool = False,
        is_order: bool = False,
        retry: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Make an API request with rate limiting and retries.

        Args:
            method: HTTP method (GET, POST).
            endpoint: API endpoint.
            params: Query parameters.
            body: JSON body for POST requests.
            signed: Whether request requires signature.
            is_order: Whether to use the order rate bucket.
            retry: Retry transient failures. Off for requests that move funds.

        Returns:
            The ``data`` array of the response.
        """
        signer = self._require_signer() if signed else None

        request_path = endpoint
        if params:
            request_path = f"{endpoint}?{urlencode(params)}"
        body_text = orjson.dumps(body).decode() if body is not None else ""

        async def attempt() -> list[dict[str, Any]]:
            if is_order:
                await self._rate_limiter.acquire_order()
            else:
                await self._rate_limiter.acquire_request()

            headers = {"Content-Type": "application/json"}
            if signer is not None:
                headers.update(signer.create_headers(method, request_path, body_text))

            status, text = await self._http(
                method,
                f"{self._base_url}{request_path}",
                data=body_text or None,
                headers=headers,
            )
            payload = self._parse_response(status, text)
            if not isinstance(payload, dict) or str(payload.get("code", "")) != "0":
                self._raise_for_error(payload, status)
            return payload.get("data") or []

        if not retry:
            return await attempt()
        return await self._with_retry(attempt, f"{method} {endpoint}")

    def _require_signer(self) -> OkxSigner:
        if self._signer is None:
            raise AuthenticationError(f"no API credentials configured for {self.name}")
        return self._signer

    def _raise_for_error(self, payload: Any, status: int) -> None:
        """Translate an OKX error payload into a typed error."""
        code = ""
        msg = str(payload)
        if isinstance(payload, dict):
            code = str(payload.get("code", ""))
            msg = str(payload.get("msg", ""))
            # Batch-style endpoints put the real reason in data[0]
            data = payload.get("data") or []
            if data and isinstance(data[0], dict) and data[0].get("sCode", "0") != "0":
                code = str(data[0]["sCode"])
                msg = str(data[0].get("sMsg", msg))
        self._raise_for_code(code, msg, status)

    def _raise_for_code(self, code: str, msg: str, status: int = 200) -> None:
        text = f"{self.name} error {code}: {msg}"
        if code in ALLOWLIST_CODES or is_allowlist_message(msg):
            raise AllowlistBlockedError(self.name, text, code=code)
        if code in AUTH_ERROR_CODES:
            raise AuthenticationError(text, code=code)
        if code == DUPLICATE_ORDER_CODE:
            raise DuplicateOrderError(text, code=code)
        if code in INSUFFICIENT_BALANCE_CODES:
            raise InsufficientBalanceError(text, code=code)
        if code in ORDER_REJECT_CODES:
            param = "notional" if code == "51020" else "quantity" if code == "51121" else "order"
            raise OrderRejectedError(text, param=param, code=code)
        if code in TRANSIENT_CODES:
            raise TransientNetworkError(text, status=status, code=code)
        raise ExchangeError(text, code=code)

    # =========================================================================
    # Market Data
    # =========================================================================

    async def get_price(self, base: str, quote: str) -> Decimal:
        data = await self._request(
            "GET", OKX_ENDPOINT_TICKER, {"instId": self.exchange_symbol(base, quote)}
        )
        if not data:
            raise OrderRejectedError(f"{self.name}: no ticker for {base}-{quote}", param="symbol")
        return OkxTicker.model_validate(data[0]).last

    async def get_all_prices(self) -> dict[str, Decimal]:
        data = await self._request("GET", OKX_ENDPOINT_TICKERS, {"instType": "SPOT"})
        prices: dict[str, Decimal] = {}
        for item in data:
            if not item.get("last"):
                continue
            ticker = OkxTicker.model_validate(item)
            prices[ticker.inst_id] = ticker.last
        return prices

    async def _fetch_symbol_rules(self, base: str, quote: str) -> SymbolRules:
        inst_id = self.exchange_symbol(base, quote)
        data = await self._request(
            "GET", OKX_ENDPOINT_INSTRUMENTS, {"instType": "SPOT", "instId": inst_id}
        )
        if not data:
            raise OrderRejectedError(f"{self.name}: unknown instrument {inst_id}", param="symbol")

        instrument = OkxInstrument.model_validate(data[0])
        return SymbolRules(
            symbol=instrument.inst_id,
            base_asset=instrument.base_ccy,
            quote_asset=instrument.quote_ccy,
            step_size=instrument.lot_sz,
            min_qty=instrument.min_sz,
            max_qty=instrument.max_mkt_sz,
        )

    # =========================================================================
    # Balances
    # =========================================================================

    async def get_balance(self, asset: str) -> Balance:
        data = await self._request(
            "GET", OKX_ENDPOINT_TRADING_BALANCE, {"ccy": asset}, signed=True
        )
        for entry in data:
            for detail in OkxAccountBalance.model_validate(entry).details:
                if detail.ccy == asset:
                    return Balance(
                        exchange=self.name,
                        asset=asset,
                        available=detail.avail_bal,
                        locked=detail.frozen_bal,
                    )
        return Balance(exchange=self.name, asset=asset, available=Decimal("0"))

    async def get_funding_balance(self, asset: str) -> Decimal:
        data = await self._request(
            "GET", OKX_ENDPOINT_FUNDING_BALANCE, {"ccy": asset}, signed=True
        )
        for entry in data:
            funding = OkxFundingBalance.model_validate(entry)
            if funding.ccy == asset:
                return funding.avail_bal
        return Decimal("0")

    async def get_deposit_balance(self, asset: str) -> Decimal:
        # Deposits are credited to the funding account
        return await self.get_funding_balance(asset)

    async def _internal_transfer(
        self, asset: str, amount: Decimal, from_account: str, to_account: str
    ) -> None:
        body = {
            "ccy": asset,
            "amt": format_decimal(amount),
            "from": from_account,
            "to": to_account,
            "type": "0",
        }
        await self._request("POST", OKX_ENDPOINT_TRANSFER, body=body, signed=True)

    async def prepare_withdrawal(self, asset: str, amount: Decimal) -> None:
        """
        Make ``amount`` available in the funding account.

        Moves the shortfall from trading to funding, then re-reads the
        funding balance.

        Raises:
            InsufficientBalanceError: If funding still holds less than amount.
        """
        funding = await self.get_funding_balance(asset)
        shortfall = amount - funding
        if shortfall > 0:
            trading = await self.get_balance(asset)
            if trading.available < shortfall:
                raise InsufficientBalanceError(
                    f"{self.name}: need {shortfall} {asset} moved to funding, "
                    f"trading account holds {trading.available}"
                )
            logger.info(f"{self.name}: moving {shortfall} {asset} trading -> funding")
            await self._internal_transfer(asset, shortfall, OKX_ACCOUNT_TRADING, OKX_ACCOUNT_FUNDING)

            funding = await self.get_funding_balance(asset)
            if funding < amount:
                raise InsufficientBalanceError(
                    f"{self.name}: funding account holds {funding} {asset} after move, "
                    f"{amount} required"
                )

    async def prepare_trading(self, asset: str, amount: Decimal) -> None:
        """Move up to ``amount`` of deposited funds into the trading account."""
        funding = await self.get_funding_balance(asset)
        to_move = min(funding, amount)
        if to_move <= 0:
            return
        logger.info(f"{self.name}: moving {to_move} {asset} funding -> trading")
        await self._internal_transfer(asset, to_move, OKX_ACCOUNT_FUNDING, OKX_ACCOUNT_TRADING)

    # =========================================================================
    # Orders
    # =========================================================================

    async def _submit_market_order(
        self,
        rules: SymbolRules,
        side: OrderSide,
        quantity: Decimal | None,
        quote_amount: Decimal | None,
    ) -> OrderResult:
        client_id = f"xarb{uuid.uuid4().hex[:28]}"
        body: dict[str, Any] = {
            "instId": rules.symbol,
            "tdMode": "cash",
            "side": side.value.lower(),
            "ordType": "market",
            "clOrdId": client_id,
        }
        if quantity is not None:
            body["sz"] = format_decimal(quantity)
            body["tgtCcy"] = "base_ccy"
        elif quote_amount is not None:
            body["sz"] = format_decimal(quote_amount)
            body["tgtCcy"] = "quote_ccy"
        else:
            raise ValueError("quantity or quote_amount is required")

        async def send() -> OrderResult:
            data = await self._request(
                "POST", OKX_ENDPOINT_ORDER, body=body, signed=True, is_order=True, retry=False
            )
            if not data:
                raise ExchangeError(f"{self.name}: empty order acknowledgement")
            ack = OkxOrderAck.model_validate(data[0])
            if ack.s_code != "0":
                self._raise_for_code(ack.s_code, ack.s_msg)
            return await self._filled_order(rules.symbol, side, ack.ord_id)

        async def lookup() -> OrderResult | None:
            return await self._find_order(rules.symbol, client_id, side)

        return await self._submit_order_once(client_id, send, lookup)

    async def _find_order(self, inst_id: str, client_id: str, side: OrderSide) -> OrderResult | None:
        """Query an order by client order id; None if OKX does not know it."""
        try:
            data = await self._request(
                "GET", OKX_ENDPOINT_ORDER, {"instId": inst_id, "clOrdId": client_id}, signed=True
            )
        except ExchangeError as e:
            if e.code == ORDER_NOT_FOUND_CODE:
                return None
            raise
        if not data:
            return None
        order_id = OkxOrderDetail.model_validate(data[0]).ord_id
        return await self._filled_order(inst_id, side, order_id)

    async def _filled_order(self, inst_id: str, side: OrderSide, order_id: str) -> OrderResult:
        detail = await self._fetch_fill(inst_id, order_id)
        price = detail.avg_px or Decimal("0")
        return OrderResult(
            exchange=self.name,
            order_id=order_id,
            symbol=inst_id,
            side=side,
            executed_qty=detail.acc_fill_sz,
            executed_price=price,
            quote_qty=detail.acc_fill_sz * price,
            commission=abs(detail.fee),
            commission_asset=detail.fee_ccy,
        )

    async def _fetch_fill(self, inst_id: str, order_id: str) -> OkxOrderDetail:
        """Read order details until the market order reports as filled."""
        detail: OkxOrderDetail | None = None
        for _ in range(FILL_CHECK_ATTEMPTS):
            data = await self._request(
                "GET", OKX_ENDPOINT_ORDER, {"instId": inst_id, "ordId": order_id}, signed=True
            )
            if data:
                detail = OkxOrderDetail.model_validate(data[0])
                if detail.state in ("filled", "canceled"):
                    return detail
            await asyncio.sleep(self._fill_check_delay)

        if detail is None:
            raise ExchangeError(f"{self.name}: order {order_id} not found")
        return detail

    # =========================================================================
    # Deposits & Withdrawals
    # =========================================================================

    async def get_deposit_address(self, asset: str, network: str) -> DepositAddress:
        chain = self.resolve_network(asset, network)
        data = await self._request(
            "GET", OKX_ENDPOINT_DEPOSIT_ADDRESS, {"ccy": asset}, signed=True
        )
        for item in data:
            entry = OkxDepositAddress.model_validate(item)
            if entry.chain == chain:
                return DepositAddress(
                    exchange=self.name,
                    asset=asset,
                    network=network,
                    address=entry.addr,
                    memo=entry.memo or entry.tag or None,
                )
        raise ConfigurationError(f"{self.name}: no {asset} deposit address on chain {chain}")

    async def get_withdrawal_fee(self, asset: str, network: str) -> Decimal:
        chain = self.resolve_network(asset, network)
        data = await self._request("GET", OKX_ENDPOINT_CURRENCIES, {"ccy": asset}, signed=True)
        for item in data:
            currency = OkxCurrency.model_validate(item)
            if currency.chain == chain:
                if not currency.can_wd:
                    raise ConfigurationError(f"{self.name}: {asset} withdrawals on {chain} are disabled")
                return currency.min_fee
        raise ConfigurationError(f"{self.name}: {asset} is not withdrawable on {chain}")

    async def withdraw(
        self,
        asset: str,
        amount: Decimal,
        address: str,
        network: str,
        memo: str | None = None,
        fee: Decimal | None = None,
    ) -> str:
        chain = self.resolve_network(asset, network)
        if fee is None:
            fee = await self.get_withdrawal_fee(asset, network)

        client_id = f"xarbwd{uuid.uuid4().hex[:24]}"
        body = {
            "ccy": asset,
            "amt": format_decimal(amount),
            "dest": OKX_WITHDRAW_DEST_ONCHAIN,
            "toAddr": f"{address}:{memo}" if memo else address,
            "fee": format_decimal(fee),
            "chain": chain,
            "clientId": client_id,
        }

        async def send() -> str:
            data = await self._request("POST", OKX_ENDPOINT_WITHDRAWAL, body=body, signed=True, retry=False)
            if not data:
                raise ExchangeError(f"{self.name}: empty withdrawal acknowledgement")
            return OkxWithdrawal.model_validate(data[0]).wd_id

        async def lookup() -> str | None:
            data = await self._request(
                "GET",
                OKX_ENDPOINT_WITHDRAWAL_HISTORY,
                {"ccy": asset, "clientId": client_id},
                signed=True,
            )
            for item in data:
                record = OkxWithdrawalRecord.model_validate(item)
                if record.client_id == client_id:
                    return record.wd_id
            return None

        logger.info(f"{self.name}: withdrawing {amount} {asset} via {chain} ({client_id})")
        return await self._submit_withdrawal_once(client_id, send, lookup)

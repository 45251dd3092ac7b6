"""
Pydantic models for Binance and OKX API responses.

These models provide type-safe parsing of exchange responses with
automatic validation. Numeric strings are parsed straight to Decimal.
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Binance
# =============================================================================


class SymbolFilter(BaseModel):
    """Symbol trading filter from exchange info."""

    filter_type: str = Field(alias="filterType")
    min_qty: Decimal | None = Field(default=None, alias="minQty")
    max_qty: Decimal | None = Field(default=None, alias="maxQty")
    step_size: Decimal | None = Field(default=None, alias="stepSize")
    min_notional: Decimal | None = Field(default=None, alias="minNotional")

    model_config = {"populate_by_name": True}


class SymbolData(BaseModel):
    """Symbol information from exchange info."""

    symbol: str
    status: str = "TRADING"
    base_asset: str = Field(alias="baseAsset")
    quote_asset: str = Field(alias="quoteAsset")
    filters: list[SymbolFilter] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def get_filter(self, *filter_types: str) -> SymbolFilter | None:
        """Get the first filter matching any of the given types."""
        for f in self.filters:
            if f.filter_type in filter_types:
                return f
        return None


class ExchangeInfo(BaseModel):
    """Exchange information response (only the parts we use)."""

    symbols: list[SymbolData]


class BinanceBalance(BaseModel):
    """Account balance for a single asset."""

    asset: str
    free: Decimal
    locked: Decimal


class AccountInfo(BaseModel):
    """Account information response."""

    can_trade: bool = Field(default=True, alias="canTrade")
    can_withdraw: bool = Field(default=True, alias="canWithdraw")
    balances: list[BinanceBalance]

    model_config = {"populate_by_name": True}

    def get_balance(self, asset: str) -> BinanceBalance | None:
        for b in self.balances:
            if b.asset == asset:
                return b
        return None


class OrderFill(BaseModel):
    """Single fill in an order response."""

    price: Decimal
    qty: Decimal
    commission: Decimal
    commission_asset: str = Field(alias="commissionAsset")

    model_config = {"populate_by_name": True}


class OrderResponse(BaseModel):
    """Order placement response (FULL response type)."""

    symbol: str
    order_id: int = Field(alias="orderId")
    status: str
    side: str
    executed_qty: Decimal = Field(alias="executedQty")
    cummulative_quote_qty: Decimal = Field(alias="cummulativeQuoteQty")
    fills: list[OrderFill] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @property
    def avg_fill_price(self) -> Decimal:
        """Average price from quote volume, falling back to fills."""
        if self.executed_qty > 0:
            return self.cummulative_quote_qty / self.executed_qty
        if self.fills:
            return self.fills[0].price
        return Decimal("0")

    @property
    def total_commission(self) -> Decimal:
        return sum((f.commission for f in self.fills), Decimal("0"))

    @property
    def commission_asset(self) -> str:
        return self.fills[0].commission_asset if self.fills else ""


class TickerPrice(BaseModel):
    """Latest price for a symbol."""

    symbol: str
    price: Decimal


class BinanceDepositAddress(BaseModel):
    """Deposit address response."""

    coin: str
    address: str
    tag: str = ""


class BinanceWithdrawResponse(BaseModel):
    """Withdrawal request acknowledgement."""

    id: str


class BinanceWithdrawRecord(BaseModel):
    """Withdrawal history entry."""

    id: str
    coin: str = ""
    amount: Decimal = Decimal("0")
    status: int = 0
    withdraw_order_id: str = Field(default="", alias="withdrawOrderId")

    model_config = {"populate_by_name": True}


class CoinNetwork(BaseModel):
    """Per-network withdrawal configuration for a coin."""

    network: str
    withdraw_enable: bool = Field(default=True, alias="withdrawEnable")
    withdraw_fee: Decimal = Field(default=Decimal("0"), alias="withdrawFee")
    withdraw_min: Decimal = Field(default=Decimal("0"), alias="withdrawMin")

    model_config = {"populate_by_name": True}


class CoinConfig(BaseModel):
    """Coin configuration from the capital config endpoint."""

    coin: str
    network_list: list[CoinNetwork] = Field(default_factory=list, alias="networkList")

    model_config = {"populate_by_name": True}


# =============================================================================
# OKX
# =============================================================================


class OkxBalanceDetail(BaseModel):
    """Trading account balance for one currency."""

    ccy: str
    avail_bal: Decimal = Field(default=Decimal("0"), alias="availBal")
    frozen_bal: Decimal = Field(default=Decimal("0"), alias="frozenBal")

    model_config = {"populate_by_name": True}

    @field_validator("avail_bal", "frozen_bal", mode="before")
    @classmethod
    def blank_as_zero(cls, v: object) -> object:
        return v or "0"


class OkxAccountBalance(BaseModel):
    """Trading account balance response entry."""

    details: list[OkxBalanceDetail] = Field(default_factory=list)


class OkxFundingBalance(BaseModel):
    """Funding account balance for one currency."""

    ccy: str
    avail_bal: Decimal = Field(default=Decimal("0"), alias="availBal")
    frozen_bal: Decimal = Field(default=Decimal("0"), alias="frozenBal")

    model_config = {"populate_by_name": True}


class OkxInstrument(BaseModel):
    """Spot instrument trading rules."""

    inst_id: str = Field(alias="instId")
    base_ccy: str = Field(alias="baseCcy")
    quote_ccy: str = Field(alias="quoteCcy")
    lot_sz: Decimal = Field(alias="lotSz")
    min_sz: Decimal = Field(default=Decimal("0"), alias="minSz")
    max_mkt_sz: Decimal | None = Field(default=None, alias="maxMktSz")

    model_config = {"populate_by_name": True}


class OkxTicker(BaseModel):
    """Ticker snapshot."""

    inst_id: str = Field(alias="instId")
    last: Decimal

    model_config = {"populate_by_name": True}


class OkxOrderAck(BaseModel):
    """Order placement acknowledgement."""

    ord_id: str = Field(alias="ordId")
    s_code: str = Field(default="0", alias="sCode")
    s_msg: str = Field(default="", alias="sMsg")

    model_config = {"populate_by_name": True}


class OkxOrderDetail(BaseModel):
    """Order details after execution."""

    ord_id: str = Field(alias="ordId")
    inst_id: str = Field(alias="instId")
    state: str = ""
    acc_fill_sz: Decimal = Field(default=Decimal("0"), alias="accFillSz")
    avg_px: Decimal | None = Field(default=None, alias="avgPx")
    fee: Decimal = Decimal("0")
    fee_ccy: str = Field(default="", alias="feeCcy")

    model_config = {"populate_by_name": True}

    @field_validator("acc_fill_sz", "fee", mode="before")
    @classmethod
    def blank_as_zero(cls, v: object) -> object:
        """OKX reports unfilled amounts as empty strings."""
        return v or "0"

    @field_validator("avg_px", mode="before")
    @classmethod
    def blank_as_none(cls, v: object) -> object:
        return v or None


class OkxDepositAddress(BaseModel):
    """Deposit address entry; one per chain."""

    ccy: str
    chain: str
    addr: str
    memo: str = ""
    tag: str = ""


class OkxCurrency(BaseModel):
    """Currency withdrawal configuration for one chain."""

    ccy: str
    chain: str
    can_wd: bool = Field(default=True, alias="canWd")
    min_fee: Decimal = Field(default=Decimal("0"), alias="minFee")
    min_wd: Decimal = Field(default=Decimal("0"), alias="minWd")

    model_config = {"populate_by_name": True}


class OkxWithdrawal(BaseModel):
    """Withdrawal acknowledgement."""

    wd_id: str = Field(alias="wdId")

    model_config = {"populate_by_name": True}


class OkxWithdrawalRecord(BaseModel):
    """Withdrawal history entry."""

    wd_id: str = Field(alias="wdId")
    client_id: str = Field(default="", alias="clientId")
    state: str = ""

    model_config = {"populate_by_name": True}

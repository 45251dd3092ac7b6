"""
Type definitions for the arbitrage system.

This module contains the enums and dataclasses shared by the exchange
adapters, the detector, the orchestrator and the ledger. Monetary and
quantity fields are Decimal; floats only appear at the JSON boundary.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any

from crossarb.config.constants import OPPORTUNITY_TTL_SECONDS


ZERO = Decimal("0")


# =============================================================================
# Enums
# =============================================================================


class OrderSide(str, Enum):
    """Order side enumeration."""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class TradingMode(str, Enum):
    """Execution mode."""

    SIMULATION = "simulation"
    REAL = "real"


class TradeStatus(str, Enum):
    """Final status of an orchestration attempt."""

    COMPLETED = "completed"
    FAILED = "failed"


class RiskLevel(str, Enum):
    """Risk bucket derived from spread size."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Strategy(str, Enum):
    """How the asset reaches the sell exchange."""

    TRANSFER = "transfer"  # buy, withdraw on-chain, sell
    HEDGED = "hedged"  # buy and sell from inventory held on both sides


# =============================================================================
# Exchange Data Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class Balance:
    """Balance of one asset on one exchange."""

    exchange: str
    asset: str
    available: Decimal
    locked: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.available + self.locked


@dataclass(slots=True, frozen=True)
class SymbolRules:
    """
    Trading rules for one spot market.

    Quantities are floored to the step size so an order never asks
    for more than the account holds.
    """

    symbol: str
    base_asset: str
    quote_asset: str
    step_size: Decimal
    min_qty: Decimal = ZERO
    min_notional: Decimal = ZERO
    max_qty: Decimal | None = None

    def round_quantity(self, quantity: Decimal) -> Decimal:
        """Round a quantity down to the step size."""
        if self.step_size <= 0:
            return quantity
        steps = (quantity / self.step_size).to_integral_value(rounding=ROUND_DOWN)
        return (steps * self.step_size).quantize(self.step_size)

    def is_valid_quantity(self, quantity: Decimal) -> bool:
        """Check if quantity meets symbol constraints."""
        if quantity < self.min_qty:
            return False
        return self.max_qty is None or quantity <= self.max_qty


@dataclass(slots=True, frozen=True)
class OrderResult:
    """Fill summary of a market order."""

    exchange: str
    order_id: str
    symbol: str
    side: OrderSide
    executed_qty: Decimal
    executed_price: Decimal
    quote_qty: Decimal
    commission: Decimal = ZERO
    commission_asset: str = ""

    def base_received(self, base_asset: str) -> Decimal:
        """Base quantity credited by a buy, net of base-denominated commission."""
        if self.commission_asset == base_asset:
            return self.executed_qty - self.commission
        return self.executed_qty


@dataclass(slots=True, frozen=True)
class DepositAddress:
    """Deposit address for an asset on a given network."""

    exchange: str
    asset: str
    network: str
    address: str
    memo: str | None = None


# =============================================================================
# Opportunity Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class Opportunity:
    """
    Detected cross-exchange price discrepancy.

    Recomputed every detection cycle. The estimated profit is based on
    a standardized notional, not on any account balance.
    """

    symbol: str
    buy_exchange: str
    sell_exchange: str
    buy_price: Decimal
    sell_price: Decimal
    spread_pct: Decimal
    estimated_net_profit: Decimal
    risk_level: RiskLevel
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.expires_at is None:
            object.__setattr__(
                self,
                "expires_at",
                self.detected_at + timedelta(seconds=OPPORTUNITY_TTL_SECONDS),
            )

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.symbol, self.buy_exchange, self.sell_exchange)

    @property
    def expiry(self) -> datetime:
        return self.expires_at or self.detected_at + timedelta(seconds=OPPORTUNITY_TTL_SECONDS)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the opportunity must be re-validated."""
        return (now or datetime.now(UTC)) >= self.expiry

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the opportunity feed."""
        return {
            "symbol": self.symbol,
            "buyExchange": self.buy_exchange,
            "sellExchange": self.sell_exchange,
            "buyPrice": float(self.buy_price),
            "sellPrice": float(self.sell_price),
            "spreadPercentage": float(self.spread_pct),
            "estimatedNetProfit": float(self.estimated_net_profit),
            "riskLevel": self.risk_level.value,
            "detectedAt": self.detected_at.isoformat(),
            "expiresAt": self.expiry.isoformat(),
        }


# =============================================================================
# Execution Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class ExecutionConfig:
    """Per-request execution parameters."""

    max_slippage: float = 0.3  # percentage points
    fee_rate: float = 0.002
    stop_loss: float | None = None  # max tolerated projected loss, percent
    preferred_network: str | None = None
    investment_amount: Decimal | None = None  # cap on deployed capital
    fallback_exchanges: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ExecutionRequest:
    """Instruction to execute one arbitrage. Immutable once submitted."""

    symbol: str
    buy_exchange: str
    sell_exchange: str
    buy_price: Decimal
    sell_price: Decimal
    mode: TradingMode = TradingMode.SIMULATION
    config: ExecutionConfig = field(default_factory=ExecutionConfig)
    strategy: Strategy = Strategy.TRANSFER
    expires_at: datetime | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_opportunity(
        cls,
        opportunity: Opportunity,
        mode: TradingMode = TradingMode.SIMULATION,
        config: ExecutionConfig | None = None,
        strategy: Strategy = Strategy.TRANSFER,
    ) -> "ExecutionRequest":
        """Build a request carrying the opportunity's prices and expiry."""
        return cls(
            symbol=opportunity.symbol,
            buy_exchange=opportunity.buy_exchange,
            sell_exchange=opportunity.sell_exchange,
            buy_price=opportunity.buy_price,
            sell_price=opportunity.sell_price,
            mode=mode,
            config=config or ExecutionConfig(),
            strategy=strategy,
            expires_at=opportunity.expiry,
        )

    @property
    def spread_pct(self) -> Decimal:
        if self.buy_price <= 0:
            return ZERO
        return (self.sell_price - self.buy_price) / self.buy_price * 100


@dataclass(slots=True, frozen=True)
class TransferRequest:
    """Instruction to move an asset between exchanges."""

    asset: str
    amount: Decimal
    from_exchange: str
    to_exchange: str
    preferred_network: str | None = None


@dataclass(slots=True, frozen=True)
class TransferResult:
    """Outcome of a confirmed on-chain transfer."""

    asset: str
    amount: Decimal
    from_exchange: str
    to_exchange: str
    network: str
    deposit_address: str
    withdrawal_id: str
    confirmed: bool
    received_amount: Decimal = ZERO
    fee: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset": self.asset,
            "amount": float(self.amount),
            "fromExchange": self.from_exchange,
            "toExchange": self.to_exchange,
            "network": self.network,
            "depositAddress": self.deposit_address,
            "withdrawalId": self.withdrawal_id,
            "confirmed": self.confirmed,
            "receivedAmount": float(self.received_amount),
            "fee": float(self.fee),
        }


@dataclass(slots=True, frozen=True)
class TradeRecord:
    """
    Immutable ledger entry for one orchestration attempt.

    ``net_profit`` is the raw value and may be negative; only
    ``display_net_profit`` is clamped.
    """

    symbol: str
    buy_exchange: str
    sell_exchange: str
    buy_price: Decimal
    sell_price: Decimal
    invested_amount: Decimal
    gross_profit: Decimal
    fees: Decimal
    net_profit: Decimal
    roi_percent: Decimal
    execution_time_ms: int
    status: TradeStatus
    mode: TradingMode
    error_message: str | None = None
    quantity: Decimal = ZERO
    strategy: Strategy = Strategy.TRANSFER
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    executed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def display_net_profit(self) -> Decimal:
        return max(ZERO, self.net_profit)

    def to_dict(self, exact: bool = False) -> dict[str, Any]:
        """
        Serialize with float money fields for JSON consumers.

        With ``exact``, money fields are decimal strings so the ledger
        round-trips them without binary rounding.
        """
        money: Callable[[Decimal], float | str] = str if exact else float
        return {
            "id": self.id,
            "symbol": self.symbol,
            "buyExchange": self.buy_exchange,
            "sellExchange": self.sell_exchange,
            "buyPrice": money(self.buy_price),
            "sellPrice": money(self.sell_price),
            "investedAmount": money(self.invested_amount),
            "quantity": money(self.quantity),
            "grossProfit": money(self.gross_profit),
            "fees": money(self.fees),
            "netProfit": money(self.net_profit),
            "roiPercentage": money(self.roi_percent),
            "executionTimeMs": self.execution_time_ms,
            "status": self.status.value,
            "errorMessage": self.error_message,
            "mode": self.mode.value,
            "strategy": self.strategy.value,
            "executedAt": self.executed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradeRecord":
        """Rebuild a record from either ``to_dict`` form."""
        return cls(
            id=data["id"],
            symbol=data["symbol"],
            buy_exchange=data["buyExchange"],
            sell_exchange=data["sellExchange"],
            buy_price=Decimal(str(data["buyPrice"])),
            sell_price=Decimal(str(data["sellPrice"])),
            invested_amount=Decimal(str(data["investedAmount"])),
            quantity=Decimal(str(data.get("quantity", 0))),
            gross_profit=Decimal(str(data["grossProfit"])),
            fees=Decimal(str(data["fees"])),
            net_profit=Decimal(str(data["netProfit"])),
            roi_percent=Decimal(str(data["roiPercentage"])),
            execution_time_ms=int(data["executionTimeMs"]),
            status=TradeStatus(data["status"]),
            error_message=data.get("errorMessage"),
            mode=TradingMode(data["mode"]),
            strategy=Strategy(data.get("strategy", Strategy.TRANSFER.value)),
            executed_at=datetime.fromisoformat(data["executedAt"]),
        )


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of one orchestration attempt returned to the caller."""

    record: TradeRecord
    saga_trace: tuple[str, ...] = ()
    skipped_buy: bool = False
    transfer: TransferResult | None = None
    error_kind: str | None = None
    rolled_back: bool = False
    venue: str | None = None

    @property
    def success(self) -> bool:
        return self.record.status == TradeStatus.COMPLETED

    def to_response(self) -> dict[str, Any]:
        """Build the JSON body returned by the execute endpoint."""
        record = self.record
        return {
            "success": self.success,
            "transactionId": record.id,
            "netProfit": float(record.display_net_profit),
            "roiPercentage": float(record.roi_percent),
            "errorMessage": record.error_message,
            "executionDetails": {
                "symbol": record.symbol,
                "buyExchange": record.buy_exchange,
                "sellExchange": self.venue or record.sell_exchange,
                "mode": record.mode.value,
                "strategy": record.strategy.value,
                "investedAmount": float(record.invested_amount),
                "quantity": float(record.quantity),
                "grossProfit": float(record.gross_profit),
                "fees": float(record.fees),
                "rawNetProfit": float(record.net_profit),
                "executionTimeMs": record.execution_time_ms,
                "skippedBuy": self.skipped_buy,
                "rolledBack": self.rolled_back,
                "errorKind": self.error_kind,
                "transfer": self.transfer.to_dict() if self.transfer else None,
                "sagaTrace": list(self.saga_trace),
            },
        }

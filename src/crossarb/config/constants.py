"""
Exchange, trading and transfer constants.

This module contains all hardcoded values used throughout the arbitrage system.
Values are organized by category for easy maintenance and auditing.
"""

from decimal import Decimal
from typing import Final


# =============================================================================
# Exchange Names
# =============================================================================

EXCHANGE_BINANCE: Final[str] = "binance"
EXCHANGE_OKX: Final[str] = "okx"

SUPPORTED_EXCHANGES: Final[tuple[str, ...]] = (EXCHANGE_BINANCE, EXCHANGE_OKX)


# =============================================================================
# Binance API Endpoints
# =============================================================================

BINANCE_REST_URL: Final[str] = "https://api.binance.com"

BINANCE_ENDPOINT_ACCOUNT: Final[str] = "/api/v3/account"
BINANCE_ENDPOINT_ORDER: Final[str] = "/api/v3/order"
BINANCE_ENDPOINT_EXCHANGE_INFO: Final[str] = "/api/v3/exchangeInfo"
BINANCE_ENDPOINT_TICKER_PRICE: Final[str] = "/api/v3/ticker/price"
BINANCE_ENDPOINT_DEPOSIT_ADDRESS: Final[str] = "/sapi/v1/capital/deposit/address"
BINANCE_ENDPOINT_WITHDRAW: Final[str] = "/sapi/v1/capital/withdraw/apply"
BINANCE_ENDPOINT_WITHDRAW_HISTORY: Final[str] = "/sapi/v1/capital/withdraw/history"
BINANCE_ENDPOINT_COIN_CONFIG: Final[str] = "/sapi/v1/capital/config/getall"

BINANCE_RECV_WINDOW_MS: Final[int] = 5000


# =============================================================================
# OKX API Endpoints
# =============================================================================

OKX_REST_URL: Final[str] = "https://www.okx.com"

OKX_ENDPOINT_TRADING_BALANCE: Final[str] = "/api/v5/account/balance"
OKX_ENDPOINT_FUNDING_BALANCE: Final[str] = "/api/v5/asset/balances"
OKX_ENDPOINT_ORDER: Final[str] = "/api/v5/trade/order"
OKX_ENDPOINT_INSTRUMENTS: Final[str] = "/api/v5/public/instruments"
OKX_ENDPOINT_TICKER: Final[str] = "/api/v5/market/ticker"
OKX_ENDPOINT_TICKERS: Final[str] = "/api/v5/market/tickers"
OKX_ENDPOINT_DEPOSIT_ADDRESS: Final[str] = "/api/v5/asset/deposit-address"
OKX_ENDPOINT_TRANSFER: Final[str] = "/api/v5/asset/transfer"
OKX_ENDPOINT_WITHDRAWAL: Final[str] = "/api/v5/asset/withdrawal"
OKX_ENDPOINT_WITHDRAWAL_HISTORY: Final[str] = "/api/v5/asset/withdrawal-history"
OKX_ENDPOINT_CURRENCIES: Final[str] = "/api/v5/asset/currencies"

# OKX account type identifiers for internal transfers
OKX_ACCOUNT_FUNDING: Final[str] = "6"
OKX_ACCOUNT_TRADING: Final[str] = "18"

# On-chain withdrawal destination type
OKX_WITHDRAW_DEST_ONCHAIN: Final[str] = "4"


# =============================================================================
# Order Configuration
# =============================================================================

ORDER_TYPE_MARKET: Final[str] = "MARKET"

SIDE_BUY: Final[str] = "BUY"
SIDE_SELL: Final[str] = "SELL"

DEFAULT_QUOTE_ASSET: Final[str] = "USDT"


# =============================================================================
# Retry Strategy
# =============================================================================

RETRY_ATTEMPTS: Final[int] = 3
RETRY_BASE_DELAY: Final[float] = 0.5  # seconds
RETRY_MAX_DELAY: Final[float] = 8.0  # seconds
RETRY_MULTIPLIER: Final[float] = 2.0

# HTTP statuses treated as transient
RETRYABLE_STATUSES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

# HTTP statuses that mean bad or expired credentials
AUTH_FAILURE_STATUSES: Final[frozenset[int]] = frozenset({401, 403})

HTTP_TIMEOUT_SECONDS: Final[float] = 10.0


# =============================================================================
# Rate Limiting
# =============================================================================

BINANCE_REQUESTS_PER_SECOND: Final[int] = 10
BINANCE_ORDERS_PER_SECOND: Final[int] = 5
OKX_REQUESTS_PER_SECOND: Final[int] = 10
OKX_ORDERS_PER_SECOND: Final[int] = 5


# =============================================================================
# Trading Fees & Capital
# =============================================================================

# Blended taker fee per cross-exchange round trip (0.2%)
DEFAULT_FEE_RATE: Final[float] = 0.002

# Allowed spread erosion between detection and execution, in percentage points
DEFAULT_MAX_SLIPPAGE: Final[float] = 0.3

# Fraction of quote balance that may be deployed
DEFAULT_CAPITAL_SAFETY_MARGIN: Final[float] = 0.95

# Investment used when no live balance can be consulted (simulation)
DEFAULT_INVESTMENT: Final[float] = 10.0

# Estimated transfer fee on a rollup network, in USDT
ESTIMATED_TRANSFER_FEE_USDT: Final[Decimal] = Decimal("0.10")


# =============================================================================
# Opportunity Detection
# =============================================================================

DEFAULT_SCAN_INTERVAL: Final[float] = 30.0  # seconds
DEFAULT_FETCH_TIMEOUT: Final[float] = 5.0  # seconds

# Fixed notional used to make opportunities comparable across symbols
STANDARD_NOTIONAL: Final[float] = 10.0

MIN_SPREAD_PCT: Final[float] = 0.08
MAX_SPREAD_PCT: Final[float] = 5.0
MIN_NET_PROFIT: Final[float] = 0.001
MAX_OPPORTUNITIES: Final[int] = 20

OPPORTUNITY_TTL_SECONDS: Final[int] = 300

HIGH_RISK_SPREAD_PCT: Final[float] = 2.0
MEDIUM_RISK_SPREAD_PCT: Final[float] = 1.0

# Auto-execution
DEFAULT_AUTO_INTERVAL: Final[float] = 60.0  # seconds
AUTO_FUNDING_HOURS_UTC: Final[tuple[int, ...]] = (0, 8, 16)
AUTO_FUNDING_WINDOW_MINUTES: Final[int] = 30

DEFAULT_TRACKED_SYMBOLS: Final[tuple[str, ...]] = (
    "BTC",
    "ETH",
    "BNB",
    "SOL",
    "XRP",
    "ADA",
    "DOGE",
    "DOT",
    "AVAX",
    "LINK",
    "LTC",
    "TRX",
)

# Quote suffixes and separators stripped during symbol normalisation
QUOTE_SUFFIXES: Final[tuple[str, ...]] = ("-USDT", "/USDT", "_USDT", "USDT")
SYMBOL_SEPARATORS: Final[tuple[str, ...]] = ("-", "/", "_")


# =============================================================================
# Transfers
# =============================================================================

DEFAULT_POLL_INTERVAL: Final[float] = 30.0  # seconds
DEFAULT_CONFIRMATION_RATIO: Final[float] = 0.95

# Canonical network identifiers
NETWORK_ARBITRUM: Final[str] = "ARBITRUM"
NETWORK_OPTIMISM: Final[str] = "OPTIMISM"
NETWORK_TRC20: Final[str] = "TRC20"
NETWORK_BEP20: Final[str] = "BEP20"
NETWORK_BEP2: Final[str] = "BEP2"
NETWORK_POLYGON: Final[str] = "POLYGON"
NETWORK_ERC20: Final[str] = "ERC20"

# Preference order per asset: rollups first, then cheap chains, then the native chain
NETWORK_PRIORITY: Final[dict[str, tuple[str, ...]]] = {
    "USDT": (NETWORK_ARBITRUM, NETWORK_TRC20, NETWORK_BEP20, NETWORK_POLYGON, NETWORK_ERC20),
    "USDC": (NETWORK_ARBITRUM, NETWORK_OPTIMISM, NETWORK_POLYGON, NETWORK_BEP20, NETWORK_ERC20),
    "ETH": (NETWORK_ARBITRUM, NETWORK_OPTIMISM, NETWORK_ERC20),
    "LINK": (NETWORK_ARBITRUM, NETWORK_ERC20),
    "BNB": (NETWORK_BEP20,),
    "TRX": (NETWORK_TRC20,),
}

# Seconds to wait for a deposit to be credited, per network
CONFIRMATION_TIMEOUTS: Final[dict[str, float]] = {
    NETWORK_ARBITRUM: 480.0,
    NETWORK_OPTIMISM: 480.0,
    NETWORK_TRC20: 900.0,
    NETWORK_BEP20: 900.0,
    NETWORK_POLYGON: 900.0,
    "SOL": 900.0,
    "XRP": 900.0,
    NETWORK_ERC20: 1800.0,
    "BTC": 3600.0,
}
DEFAULT_CONFIRMATION_TIMEOUT: Final[float] = 1800.0

# Binance network identifiers for canonical networks
BINANCE_NETWORKS: Final[dict[str, str]] = {
    NETWORK_TRC20: "TRX",
    NETWORK_ERC20: "ETH",
    NETWORK_BEP20: "BSC",
    NETWORK_BEP2: "BNB",
    NETWORK_ARBITRUM: "ARBITRUM",
    NETWORK_POLYGON: "MATIC",
    NETWORK_OPTIMISM: "OPTIMISM",
    "BTC": "BTC",
    "SOL": "SOL",
    "XRP": "XRP",
    "ADA": "ADA",
    "DOGE": "DOGE",
    "DOT": "DOT",
    "LTC": "LTC",
    "AVAX": "AVAXC",
}

# OKX chain suffixes; the full chain name is "{ASSET}-{suffix}"
OKX_CHAIN_SUFFIXES: Final[dict[str, str]] = {
    NETWORK_TRC20: "TRC20",
    NETWORK_ERC20: "ERC20",
    NETWORK_BEP20: "BSC",
    NETWORK_ARBITRUM: "Arbitrum One",
    NETWORK_POLYGON: "Polygon",
    NETWORK_OPTIMISM: "Optimism",
    "BTC": "Bitcoin",
    "SOL": "Solana",
    "XRP": "Ripple",
    "ADA": "Cardano",
    "DOGE": "Dogecoin",
    "DOT": "Polkadot",
    "LTC": "Litecoin",
    "AVAX": "Avalanche C-Chain",
}

# Substrings that identify an allow-list rejection in exchange error text
ALLOWLIST_ERROR_MARKERS: Final[tuple[str, ...]] = (
    "whitelist",
    "white list",
    "allowlist",
    "allow-list",
    "verified address",
    "address book",
)


# =============================================================================
# Logging & Telemetry
# =============================================================================

LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

MAX_LOG_QUEUE_SIZE: Final[int] = 10_000

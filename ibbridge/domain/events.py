"""
Domain events

One immutable dataclass per reply message. Every event class carries a
``category`` used by the dispatcher to route it; request-scoped events also
carry the ``request_id`` of the request that produced them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, TypeAlias

from ibbridge.domain.models import (
    CommissionReport,
    Contract,
    ContractDetails,
    DeltaNeutralContract,
    Execution,
    Order,
    OrderState,
)
from ibbridge.domain.wire_codes import (
    FADataType,
    MarketDataType,
    MarketDepthOperation,
    MarketDepthSide,
    NewsType,
    OrderStatus,
    TickType,
)

if TYPE_CHECKING:
    from ibbridge.domain.request_kinds import RequestKind


class EventCategory(Enum):
    # Connection scope
    CONNECTION_CLOSED = "connection_closed"
    CONNECTION_ERROR = "connection_error"
    CURRENT_TIME = "current_time"
    NEXT_VALID_ID = "next_valid_id"
    MANAGED_ACCOUNTS = "managed_accounts"
    SCANNER_PARAMETERS = "scanner_parameters"
    NEWS_BULLETIN = "news_bulletin"
    RECEIVE_FA = "receive_fa"
    ACCOUNT_VALUE = "account_value"
    PORTFOLIO_UPDATE = "portfolio_update"
    ACCOUNT_TIME = "account_time"
    ACCOUNT_DOWNLOAD_END = "account_download_end"
    ORDER_STATUS = "order_status"
    OPEN_ORDER = "open_order"
    OPEN_ORDER_END = "open_order_end"
    COMMISSION_REPORT = "commission_report"
    POSITION = "position"
    POSITION_END = "position_end"
    # Request scope
    REQUEST_ERROR = "request_error"
    TICK_PRICE = "tick_price"
    TICK_SIZE = "tick_size"
    TICK_STRING = "tick_string"
    TICK_GENERIC = "tick_generic"
    TICK_EFP = "tick_efp"
    TICK_OPTION_COMPUTATION = "tick_option_computation"
    TICK_SNAPSHOT_END = "tick_snapshot_end"
    MARKET_DATA_TYPE = "market_data_type"
    DELTA_NEUTRAL_VALIDATION = "delta_neutral_validation"
    CONTRACT_DETAILS = "contract_details"
    CONTRACT_DETAILS_END = "contract_details_end"
    EXECUTION_DETAILS = "execution_details"
    EXECUTION_DETAILS_END = "execution_details_end"
    FUNDAMENTAL_DATA = "fundamental_data"
    HISTORICAL_BAR = "historical_bar"
    HISTORICAL_DATA_END = "historical_data_end"
    MARKET_DEPTH = "market_depth"
    REAL_TIME_BAR = "real_time_bar"
    SCANNER_DATA = "scanner_data"
    SCANNER_DATA_END = "scanner_data_end"
    ACCOUNT_SUMMARY = "account_summary"
    ACCOUNT_SUMMARY_END = "account_summary_end"


# ---------------------------------------------------------------------------
# Connection-scoped events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectionClosed:
    category: ClassVar[EventCategory] = EventCategory.CONNECTION_CLOSED


@dataclass(frozen=True, slots=True)
class ConnectionErrorEvent:
    """Connection-level error; source is "server" or "client" (local decode)."""

    category: ClassVar[EventCategory] = EventCategory.CONNECTION_ERROR

    message: str
    code: int | None = None
    error_type: str = ""
    source: str = "server"
    request_id: int | None = None


@dataclass(frozen=True, slots=True)
class CurrentTime:
    category: ClassVar[EventCategory] = EventCategory.CURRENT_TIME

    time: datetime


@dataclass(frozen=True, slots=True)
class NextValidId:
    category: ClassVar[EventCategory] = EventCategory.NEXT_VALID_ID

    order_id: int


@dataclass(frozen=True, slots=True)
class ManagedAccounts:
    category: ClassVar[EventCategory] = EventCategory.MANAGED_ACCOUNTS

    accounts: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ScannerParameters:
    category: ClassVar[EventCategory] = EventCategory.SCANNER_PARAMETERS

    xml: str


@dataclass(frozen=True, slots=True)
class NewsBulletin:
    category: ClassVar[EventCategory] = EventCategory.NEWS_BULLETIN

    message_id: int
    news_type: NewsType
    message: str
    origin_exchange: str


@dataclass(frozen=True, slots=True)
class ReceiveFA:
    category: ClassVar[EventCategory] = EventCategory.RECEIVE_FA

    data_type: FADataType
    xml: str


@dataclass(frozen=True, slots=True)
class AccountValue:
    category: ClassVar[EventCategory] = EventCategory.ACCOUNT_VALUE

    key: str
    value: str
    currency: str
    account: str


@dataclass(frozen=True, slots=True)
class PortfolioUpdate:
    category: ClassVar[EventCategory] = EventCategory.PORTFOLIO_UPDATE

    contract: Contract
    position: float
    market_price: float
    market_value: float
    average_cost: float
    unrealized_pnl: float
    realized_pnl: float
    account: str


@dataclass(frozen=True, slots=True)
class AccountTime:
    category: ClassVar[EventCategory] = EventCategory.ACCOUNT_TIME

    timestamp: str


@dataclass(frozen=True, slots=True)
class AccountDownloadEnd:
    category: ClassVar[EventCategory] = EventCategory.ACCOUNT_DOWNLOAD_END

    account: str


@dataclass(frozen=True, slots=True)
class OrderStatusEvent:
    category: ClassVar[EventCategory] = EventCategory.ORDER_STATUS

    order_id: int
    status: OrderStatus
    filled: float
    remaining: float
    avg_fill_price: float
    perm_id: int
    parent_id: int
    last_fill_price: float
    client_id: int
    why_held: str


@dataclass(frozen=True, slots=True)
class OpenOrder:
    category: ClassVar[EventCategory] = EventCategory.OPEN_ORDER

    order_id: int
    contract: Contract
    order: Order
    order_state: OrderState


@dataclass(frozen=True, slots=True)
class OpenOrderEnd:
    category: ClassVar[EventCategory] = EventCategory.OPEN_ORDER_END


@dataclass(frozen=True, slots=True)
class CommissionReportEvent:
    category: ClassVar[EventCategory] = EventCategory.COMMISSION_REPORT

    report: CommissionReport


@dataclass(frozen=True, slots=True)
class Position:
    category: ClassVar[EventCategory] = EventCategory.POSITION

    account: str
    contract: Contract
    position: float
    average_cost: float


@dataclass(frozen=True, slots=True)
class PositionEnd:
    category: ClassVar[EventCategory] = EventCategory.POSITION_END


# ---------------------------------------------------------------------------
# Request-scoped events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RequestErrorEvent:
    """Server error attributed to a request id (kind is None if not pending)."""

    category: ClassVar[EventCategory] = EventCategory.REQUEST_ERROR

    request_id: int
    code: int
    message: str
    request_kind: RequestKind | None = None


@dataclass(frozen=True, slots=True)
class TickPrice:
    category: ClassVar[EventCategory] = EventCategory.TICK_PRICE

    request_id: int
    tick_type: TickType
    price: float
    can_auto_execute: bool = False


@dataclass(frozen=True, slots=True)
class TickSize:
    category: ClassVar[EventCategory] = EventCategory.TICK_SIZE

    request_id: int
    tick_type: TickType
    size: int


@dataclass(frozen=True, slots=True)
class TickString:
    category: ClassVar[EventCategory] = EventCategory.TICK_STRING

    request_id: int
    tick_type: TickType
    value: str


@dataclass(frozen=True, slots=True)
class TickGeneric:
    category: ClassVar[EventCategory] = EventCategory.TICK_GENERIC

    request_id: int
    tick_type: TickType
    value: float


@dataclass(frozen=True, slots=True)
class TickEfp:
    category: ClassVar[EventCategory] = EventCategory.TICK_EFP

    request_id: int
    tick_type: TickType
    basis_points: float
    formatted_basis_points: str
    implied_future: float
    hold_days: int
    future_last_trade_date: str
    dividend_impact: float
    dividends_to_last_trade_date: float


@dataclass(frozen=True, slots=True)
class TickOptionComputation:
    category: ClassVar[EventCategory] = EventCategory.TICK_OPTION_COMPUTATION

    request_id: int
    tick_type: TickType
    implied_volatility: float | None
    delta: float | None
    option_price: float | None
    pv_dividend: float | None
    gamma: float | None
    vega: float | None
    theta: float | None
    underlying_price: float | None


@dataclass(frozen=True, slots=True)
class TickSnapshotEnd:
    category: ClassVar[EventCategory] = EventCategory.TICK_SNAPSHOT_END

    request_id: int


@dataclass(frozen=True, slots=True)
class MarketDataTypeEvent:
    category: ClassVar[EventCategory] = EventCategory.MARKET_DATA_TYPE

    request_id: int
    market_data_type: MarketDataType


@dataclass(frozen=True, slots=True)
class DeltaNeutralValidation:
    category: ClassVar[EventCategory] = EventCategory.DELTA_NEUTRAL_VALIDATION

    request_id: int
    contract: DeltaNeutralContract


@dataclass(frozen=True, slots=True)
class ContractDetailsData:
    category: ClassVar[EventCategory] = EventCategory.CONTRACT_DETAILS

    request_id: int
    details: ContractDetails


@dataclass(frozen=True, slots=True)
class ContractDetailsEnd:
    category: ClassVar[EventCategory] = EventCategory.CONTRACT_DETAILS_END

    request_id: int


@dataclass(frozen=True, slots=True)
class ExecutionDetails:
    category: ClassVar[EventCategory] = EventCategory.EXECUTION_DETAILS

    request_id: int
    contract: Contract
    execution: Execution


@dataclass(frozen=True, slots=True)
class ExecutionDetailsEnd:
    category: ClassVar[EventCategory] = EventCategory.EXECUTION_DETAILS_END

    request_id: int


@dataclass(frozen=True, slots=True)
class FundamentalData:
    category: ClassVar[EventCategory] = EventCategory.FUNDAMENTAL_DATA

    request_id: int
    data: str


@dataclass(frozen=True, slots=True)
class HistoricalBar:
    """One historical bar; record_index/record_total are 1-based."""

    category: ClassVar[EventCategory] = EventCategory.HISTORICAL_BAR

    request_id: int
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int
    trade_count: int
    wap: float
    has_gaps: bool
    record_index: int
    record_total: int


@dataclass(frozen=True, slots=True)
class HistoricalDataEnd:
    category: ClassVar[EventCategory] = EventCategory.HISTORICAL_DATA_END

    request_id: int
    start: str
    end: str


@dataclass(frozen=True, slots=True)
class MarketDepthUpdate:
    """Level 1 (market_maker empty) or level 2 book update"""

    category: ClassVar[EventCategory] = EventCategory.MARKET_DEPTH

    request_id: int
    position: int
    operation: MarketDepthOperation
    side: MarketDepthSide
    price: float
    size: int
    market_maker: str = ""


@dataclass(frozen=True, slots=True)
class RealTimeBar:
    category: ClassVar[EventCategory] = EventCategory.REAL_TIME_BAR

    request_id: int
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int
    wap: float
    count: int


@dataclass(frozen=True, slots=True)
class ScannerData:
    category: ClassVar[EventCategory] = EventCategory.SCANNER_DATA

    request_id: int
    rank: int
    details: ContractDetails
    distance: str = ""
    benchmark: str = ""
    projection: str = ""
    legs: str = ""


@dataclass(frozen=True, slots=True)
class ScannerDataEnd:
    category: ClassVar[EventCategory] = EventCategory.SCANNER_DATA_END

    request_id: int


@dataclass(frozen=True, slots=True)
class AccountSummary:
    category: ClassVar[EventCategory] = EventCategory.ACCOUNT_SUMMARY

    request_id: int
    account: str
    tag: str
    value: str
    currency: str


@dataclass(frozen=True, slots=True)
class AccountSummaryEnd:
    category: ClassVar[EventCategory] = EventCategory.ACCOUNT_SUMMARY_END

    request_id: int


DomainEvent: TypeAlias = (
    ConnectionClosed
    | ConnectionErrorEvent
    | CurrentTime
    | NextValidId
    | ManagedAccounts
    | ScannerParameters
    | NewsBulletin
    | ReceiveFA
    | AccountValue
    | PortfolioUpdate
    | AccountTime
    | AccountDownloadEnd
    | OrderStatusEvent
    | OpenOrder
    | OpenOrderEnd
    | CommissionReportEvent
    | Position
    | PositionEnd
    | RequestErrorEvent
    | TickPrice
    | TickSize
    | TickString
    | TickGeneric
    | TickEfp
    | TickOptionComputation
    | TickSnapshotEnd
    | MarketDataTypeEvent
    | DeltaNeutralValidation
    | ContractDetailsData
    | ContractDetailsEnd
    | ExecutionDetails
    | ExecutionDetailsEnd
    | FundamentalData
    | HistoricalBar
    | HistoricalDataEnd
    | MarketDepthUpdate
    | RealTimeBar
    | ScannerData
    | ScannerDataEnd
    | AccountSummary
    | AccountSummaryEnd
)

"""Bidirectional code tables between domain enumerations and wire tokens.

Every enumeration below carries its wire representation as its value. Use
``encode`` to turn a member into the exact token the protocol expects and
``decode`` to map a raw reply value (text or integer) back to a member.
Unknown raw values raise ``UnknownEnumValue``; they are never coerced to a
default. Enumerations whose protocol defines an empty "none" sentinel expose
it as a ``NONE`` member, and only those accept ``""``/``None`` on decode.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum, IntEnum, unique
from functools import cache
from typing import Any, TypeVar

from ibbridge.core.error_handler import InvalidArgument, UnknownEnumValue

E = TypeVar("E", bound=Enum)


@unique
class BarSize(Enum):
    ONE_SECOND = "1 secs"
    FIVE_SECONDS = "5 secs"
    TEN_SECONDS = "10 secs"
    FIFTEEN_SECONDS = "15 secs"
    THIRTY_SECONDS = "30 secs"
    ONE_MINUTE = "1 min"
    TWO_MINUTES = "2 mins"
    THREE_MINUTES = "3 mins"
    FIVE_MINUTES = "5 mins"
    TEN_MINUTES = "10 mins"
    FIFTEEN_MINUTES = "15 mins"
    TWENTY_MINUTES = "20 mins"
    THIRTY_MINUTES = "30 mins"
    ONE_HOUR = "1 hour"
    TWO_HOURS = "2 hours"
    THREE_HOURS = "3 hours"
    FOUR_HOURS = "4 hours"
    EIGHT_HOURS = "8 hours"
    ONE_DAY = "1 day"
    ONE_WEEK = "1 week"
    ONE_MONTH = "1 month"


@unique
class WhatToShow(Enum):
    """Historical data type"""

    TRADES = "TRADES"
    MIDPOINT = "MIDPOINT"
    BID = "BID"
    ASK = "ASK"
    BID_ASK = "BID_ASK"
    ADJUSTED_LAST = "ADJUSTED_LAST"
    HISTORICAL_VOLATILITY = "HISTORICAL_VOLATILITY"
    OPTION_IMPLIED_VOLATILITY = "OPTION_IMPLIED_VOLATILITY"


@unique
class RealTimeBarType(Enum):
    TRADES = "TRADES"
    MIDPOINT = "MIDPOINT"
    BID = "BID"
    ASK = "ASK"


@unique
class TickType(IntEnum):
    BID_SIZE = 0
    BID = 1
    ASK = 2
    ASK_SIZE = 3
    LAST = 4
    LAST_SIZE = 5
    HIGH = 6
    LOW = 7
    VOLUME = 8
    CLOSE = 9
    BID_OPTION = 10
    ASK_OPTION = 11
    LAST_OPTION = 12
    MODEL_OPTION = 13
    OPEN = 14
    LOW_13_WEEK = 15
    HIGH_13_WEEK = 16
    LOW_26_WEEK = 17
    HIGH_26_WEEK = 18
    LOW_52_WEEK = 19
    HIGH_52_WEEK = 20
    AVERAGE_VOLUME = 21
    OPEN_INTEREST = 22
    OPTION_HISTORICAL_VOLATILITY = 23
    OPTION_IMPLIED_VOLATILITY = 24
    OPTION_BID_EXCHANGE = 25
    OPTION_ASK_EXCHANGE = 26
    OPTION_CALL_OPEN_INTEREST = 27
    OPTION_PUT_OPEN_INTEREST = 28
    OPTION_CALL_VOLUME = 29
    OPTION_PUT_VOLUME = 30
    INDEX_FUTURE_PREMIUM = 31
    BID_EXCHANGE = 32
    ASK_EXCHANGE = 33
    AUCTION_VOLUME = 34
    AUCTION_PRICE = 35
    AUCTION_IMBALANCE = 36
    MARK_PRICE = 37
    BID_EFP_COMPUTATION = 38
    ASK_EFP_COMPUTATION = 39
    LAST_EFP_COMPUTATION = 40
    OPEN_EFP_COMPUTATION = 41
    HIGH_EFP_COMPUTATION = 42
    LOW_EFP_COMPUTATION = 43
    CLOSE_EFP_COMPUTATION = 44
    LAST_TIMESTAMP = 45
    SHORTABLE = 46
    FUNDAMENTAL_RATIOS = 47
    RT_VOLUME = 48
    HALTED = 49
    BID_YIELD = 50
    ASK_YIELD = 51
    LAST_YIELD = 52
    CUST_OPTION_COMPUTATION = 53
    TRADE_COUNT = 54
    TRADE_RATE = 55
    VOLUME_RATE = 56
    LAST_RTH_TRADE = 57


@unique
class GenericTickType(IntEnum):
    """Generic tick ids requested alongside market data"""

    OPTION_VOLUME = 100
    OPTION_OPEN_INTEREST = 101
    HISTORICAL_VOLATILITY = 104
    OPTION_IMPLIED_VOLATILITY = 106
    INDEX_FUTURE_PREMIUM = 162
    MISCELLANEOUS_STATS = 165
    MARK_PRICE = 221
    AUCTION_VALUES = 225
    RT_VOLUME = 233
    SHORTABLE = 236
    INVENTORY = 256
    FUNDAMENTAL_RATIOS = 258
    REALTIME_HISTORICAL_VOLATILITY = 411


@unique
class OrderStatus(Enum):
    NONE = ""
    PENDING_SUBMIT = "PendingSubmit"
    PENDING_CANCEL = "PendingCancel"
    PRE_SUBMITTED = "PreSubmitted"
    SUBMITTED = "Submitted"
    API_PENDING = "ApiPending"
    API_CANCELLED = "ApiCancelled"
    CANCELLED = "Cancelled"
    FILLED = "Filled"
    INACTIVE = "Inactive"
    PARTIALLY_FILLED = "PartiallyFilled"


@unique
class MarketDataType(IntEnum):
    REAL_TIME = 1
    FROZEN = 2
    DELAYED = 3
    DELAYED_FROZEN = 4


@unique
class MarketDepthOperation(IntEnum):
    INSERT = 0
    UPDATE = 1
    DELETE = 2


@unique
class MarketDepthSide(IntEnum):
    ASK = 0
    BID = 1


@unique
class NewsType(IntEnum):
    REGULAR = 1
    EXCHANGE_NO_LONGER_TRADEABLE = 2
    EXCHANGE_AVAILABLE_FOR_TRADING = 3


@unique
class FADataType(IntEnum):
    """Financial advisor configuration document type"""

    GROUPS = 1
    PROFILES = 2
    ALIASES = 3


@unique
class ExerciseAction(IntEnum):
    EXERCISE = 1
    LAPSE = 2


@unique
class ServerLogLevel(IntEnum):
    SYSTEM = 1
    ERROR = 2
    WARNING = 3
    INFORMATION = 4
    DETAIL = 5


@unique
class SecurityType(Enum):
    NONE = ""
    STOCK = "STK"
    OPTION = "OPT"
    FUTURE = "FUT"
    INDEX = "IND"
    FUTURE_OPTION = "FOP"
    CASH = "CASH"
    BAG = "BAG"
    WARRANT = "WAR"
    BOND = "BOND"
    COMMODITY = "CMDTY"
    NEWS = "NEWS"
    FUND = "FUND"
    CFD = "CFD"
    CRYPTO = "CRYPTO"


@unique
class ActionSide(Enum):
    NONE = ""
    BUY = "BUY"
    SELL = "SELL"
    SHORT_SELL = "SSHORT"


@unique
class AccountSummaryTag(Enum):
    """Account summary fields; member order is the wire order for tag lists"""

    ACCOUNT_TYPE = "AccountType"
    NET_LIQUIDATION = "NetLiquidation"
    TOTAL_CASH_VALUE = "TotalCashValue"
    SETTLED_CASH = "SettledCash"
    ACCRUED_CASH = "AccruedCash"
    BUYING_POWER = "BuyingPower"
    EQUITY_WITH_LOAN_VALUE = "EquityWithLoanValue"
    PREVIOUS_EQUITY_WITH_LOAN_VALUE = "PreviousEquityWithLoanValue"
    GROSS_POSITION_VALUE = "GrossPositionValue"
    REG_T_EQUITY = "RegTEquity"
    REG_T_MARGIN = "RegTMargin"
    SMA = "SMA"
    INIT_MARGIN_REQ = "InitMarginReq"
    MAINT_MARGIN_REQ = "MaintMarginReq"
    AVAILABLE_FUNDS = "AvailableFunds"
    EXCESS_LIQUIDITY = "ExcessLiquidity"
    CUSHION = "Cushion"
    FULL_INIT_MARGIN_REQ = "FullInitMarginReq"
    FULL_MAINT_MARGIN_REQ = "FullMaintMarginReq"
    FULL_AVAILABLE_FUNDS = "FullAvailableFunds"
    FULL_EXCESS_LIQUIDITY = "FullExcessLiquidity"
    LOOK_AHEAD_NEXT_CHANGE = "LookAheadNextChange"
    LOOK_AHEAD_INIT_MARGIN_REQ = "LookAheadInitMarginReq"
    LOOK_AHEAD_MAINT_MARGIN_REQ = "LookAheadMaintMarginReq"
    LOOK_AHEAD_AVAILABLE_FUNDS = "LookAheadAvailableFunds"
    LOOK_AHEAD_EXCESS_LIQUIDITY = "LookAheadExcessLiquidity"
    HIGHEST_SEVERITY = "HighestSeverity"
    DAY_TRADES_REMAINING = "DayTradesRemaining"
    LEVERAGE = "Leverage"


class ErrorCode(IntEnum):
    """Well-known server error codes (informational; callbacks keep the raw int)"""

    HISTORICAL_DATA_SERVICE_ERROR = 162
    HISTORICAL_DATA_QUERY_MESSAGE = 165
    NO_SECURITY_DEFINITION = 200
    ORDER_REJECTED = 201
    ORDER_CANCELLED = 202
    TICKER_ID_NOT_FOUND = 300
    VALIDATION_ERROR = 321
    SERVER_ERROR = 322
    MARKET_DEPTH_NOT_SUBSCRIBED = 354
    NO_HISTORICAL_QUERY_FOUND = 366
    CONNECT_FAIL = 502
    NOT_CONNECTED = 504
    CONNECTIVITY_LOST = 1100
    CONNECTIVITY_RESTORED_DATA_LOST = 1101
    CONNECTIVITY_RESTORED_DATA_MAINTAINED = 1102
    MARKET_DATA_FARM_CONNECTED = 2104
    HISTORICAL_DATA_FARM_CONNECTED = 2106
    SEC_DEF_DATA_FARM_CONNECTED = 2158
    DELAYED_MARKET_DATA_DISPLAYED = 10167
    MARKET_DATA_NOT_SUBSCRIBED = 10168


def describe_error_code(code: int) -> ErrorCode | None:
    """Return the known ErrorCode for a raw code, or None."""
    try:
        return ErrorCode(code)
    except ValueError:
        return None


def is_warning_code(code: int) -> bool:
    """Codes 2100-2199 and the delayed-data notice are not failures.

    10167 is sent ahead of delayed ticks, so the request keeps going.
    """
    return 2100 <= code < 2200 or code == ErrorCode.DELAYED_MARKET_DATA_DISPLAYED


def is_connectivity_code(code: int) -> bool:
    return code in (
        ErrorCode.CONNECTIVITY_LOST,
        ErrorCode.CONNECTIVITY_RESTORED_DATA_LOST,
        ErrorCode.CONNECTIVITY_RESTORED_DATA_MAINTAINED,
    )


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def has_none_sentinel(enum_cls: type[Enum]) -> bool:
    return "NONE" in enum_cls.__members__


@cache
def _reverse_table(enum_cls: type[Enum]) -> dict[str, Enum]:
    return {str(member.value): member for member in enum_cls}


def encode(member: Enum) -> str:
    """Return the wire token for an enumeration member."""
    if not isinstance(member, Enum):
        raise InvalidArgument(f"Expected an enumeration member, got {member!r}")
    return str(member.value)


def decode(enum_cls: type[E], raw: Any) -> E:
    """Map a raw wire value (text or int) to its enumeration member."""
    if raw is None or raw == "":
        if has_none_sentinel(enum_cls):
            return enum_cls.__members__["NONE"]  # type: ignore[return-value]
        raise UnknownEnumValue(enum_cls.__name__, raw)
    if isinstance(raw, enum_cls):
        return raw
    if isinstance(raw, bool) or not isinstance(raw, str | int):
        raise UnknownEnumValue(enum_cls.__name__, raw)
    member = _reverse_table(enum_cls).get(str(raw))
    if member is None:
        raise UnknownEnumValue(enum_cls.__name__, raw)
    return member  # type: ignore[return-value]


def encode_flags(members: Iterable[E], enum_cls: type[E] | None = None) -> str:
    """Comma-join selected members in table order without duplicates."""
    selected = list(members)
    if not selected:
        return ""
    cls = enum_cls or type(selected[0])
    for member in selected:
        if not isinstance(member, cls):
            raise InvalidArgument(f"{member!r} is not a {cls.__name__} member")
    wanted = set(selected)
    return ",".join(encode(member) for member in cls if member in wanted)


__all__ = [
    "BarSize",
    "WhatToShow",
    "RealTimeBarType",
    "TickType",
    "GenericTickType",
    "OrderStatus",
    "MarketDataType",
    "MarketDepthOperation",
    "MarketDepthSide",
    "NewsType",
    "FADataType",
    "ExerciseAction",
    "ServerLogLevel",
    "SecurityType",
    "ActionSide",
    "AccountSummaryTag",
    "ErrorCode",
    "describe_error_code",
    "is_warning_code",
    "is_connectivity_code",
    "has_none_sentinel",
    "encode",
    "decode",
    "encode_flags",
]

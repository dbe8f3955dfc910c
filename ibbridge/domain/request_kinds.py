"""Request kinds and the reply shape each one follows."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ibbridge.domain.events import EventCategory


class RequestKind(Enum):
    MARKET_DATA = "market_data"
    MARKET_DATA_SNAPSHOT = "market_data_snapshot"
    HISTORICAL_DATA = "historical_data"
    CONTRACT_DETAILS = "contract_details"
    REAL_TIME_BARS = "real_time_bars"
    MARKET_DEPTH = "market_depth"
    SCANNER = "scanner"
    EXECUTIONS = "executions"
    ACCOUNT_SUMMARY = "account_summary"
    FUNDAMENTAL_DATA = "fundamental_data"
    IMPLIED_VOLATILITY = "implied_volatility"
    OPTION_PRICE = "option_price"


class ReplyShape(Enum):
    BATCH = "batch"  # data, then exactly one terminal End
    STREAMING = "streaming"  # data until cancelled
    SINGLE_SHOT = "single_shot"  # first reply retires the id


@dataclass(frozen=True, slots=True)
class RequestProfile:
    shape: ReplyShape
    data: frozenset[EventCategory]
    end: EventCategory | None = None

    @property
    def terminal_end(self) -> bool:
        return self.shape is ReplyShape.BATCH and self.end is not None

    def accepts(self, category: EventCategory) -> bool:
        return category in self.data or category == self.end


_TICKS = frozenset(
    {
        EventCategory.TICK_PRICE,
        EventCategory.TICK_SIZE,
        EventCategory.TICK_STRING,
        EventCategory.TICK_GENERIC,
        EventCategory.TICK_EFP,
        EventCategory.TICK_OPTION_COMPUTATION,
        EventCategory.MARKET_DATA_TYPE,
        EventCategory.DELTA_NEUTRAL_VALIDATION,
    }
)

REQUEST_PROFILES: dict[RequestKind, RequestProfile] = {
    RequestKind.MARKET_DATA: RequestProfile(ReplyShape.STREAMING, _TICKS),
    RequestKind.MARKET_DATA_SNAPSHOT: RequestProfile(
        ReplyShape.BATCH, _TICKS, EventCategory.TICK_SNAPSHOT_END
    ),
    RequestKind.HISTORICAL_DATA: RequestProfile(
        ReplyShape.BATCH,
        frozenset({EventCategory.HISTORICAL_BAR}),
        EventCategory.HISTORICAL_DATA_END,
    ),
    RequestKind.CONTRACT_DETAILS: RequestProfile(
        ReplyShape.BATCH,
        frozenset({EventCategory.CONTRACT_DETAILS}),
        EventCategory.CONTRACT_DETAILS_END,
    ),
    RequestKind.REAL_TIME_BARS: RequestProfile(
        ReplyShape.STREAMING, frozenset({EventCategory.REAL_TIME_BAR})
    ),
    RequestKind.MARKET_DEPTH: RequestProfile(
        ReplyShape.STREAMING, frozenset({EventCategory.MARKET_DEPTH})
    ),
    RequestKind.SCANNER: RequestProfile(
        ReplyShape.BATCH,
        frozenset({EventCategory.SCANNER_DATA}),
        EventCategory.SCANNER_DATA_END,
    ),
    RequestKind.EXECUTIONS: RequestProfile(
        ReplyShape.BATCH,
        frozenset({EventCategory.EXECUTION_DETAILS}),
        EventCategory.EXECUTION_DETAILS_END,
    ),
    # The End only marks the initial snapshot; updates keep streaming
    RequestKind.ACCOUNT_SUMMARY: RequestProfile(
        ReplyShape.STREAMING,
        frozenset({EventCategory.ACCOUNT_SUMMARY}),
        EventCategory.ACCOUNT_SUMMARY_END,
    ),
    RequestKind.FUNDAMENTAL_DATA: RequestProfile(
        ReplyShape.SINGLE_SHOT, frozenset({EventCategory.FUNDAMENTAL_DATA})
    ),
    RequestKind.IMPLIED_VOLATILITY: RequestProfile(
        ReplyShape.STREAMING, frozenset({EventCategory.TICK_OPTION_COMPUTATION})
    ),
    RequestKind.OPTION_PRICE: RequestProfile(
        ReplyShape.STREAMING, frozenset({EventCategory.TICK_OPTION_COMPUTATION})
    ),
}


def profile_for(kind: RequestKind) -> RequestProfile:
    return REQUEST_PROFILES[kind]

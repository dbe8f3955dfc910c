"""Lightweight public API facade (lazy-loaded).

Exposes a stable import surface while deferring optional or heavy imports
(the ibapi bridge, pandas-backed collection) until first access. Importing
``ibbridge.api`` must not require optional extras.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

# Mapping of exported names to callables that resolve and return the object.
_LAZY: dict[str, Any] = {}


def _export(name: str):
    def dec(fn):
        _LAZY[name] = fn
        return fn

    return dec


# ---- Core light-weight types (safe to import eagerly) ---------------------
from .core.config import AdapterConfig, ConfigManager, get_config  # noqa: E402
from .core.error_handler import (  # noqa: E402
    AdapterError,
    ErrorHandler,
    InvalidArgument,
    MalformedData,
    ProtocolError,
    ProtocolViolation,
    UnknownEnumValue,
    UnknownRequestId,
)
from .domain import events as _events  # noqa: E402
from .domain import wire_codes as _codes  # noqa: E402
from .domain.models import (  # noqa: E402
    Contract,
    ExecutionFilter,
    Order,
    ScannerSubscription,
)
from .domain.request_kinds import RequestKind  # noqa: E402
from .infra import (  # noqa: E402
    IBClient,
    IBUnavailableError,
    Transport,
    create_ibapi_client,
    ibapi_available,
)
from .services.event_dispatcher import EventDispatcher  # noqa: E402
from .services.request_registry import RequestRegistry  # noqa: E402
from .utils.time_utils import (  # noqa: E402
    decode_bar_timestamp,
    encode_duration,
    format_end_datetime,
)

EventCategory = _events.EventCategory
HistoricalBar = _events.HistoricalBar
HistoricalDataEnd = _events.HistoricalDataEnd
RequestErrorEvent = _events.RequestErrorEvent
ConnectionErrorEvent = _events.ConnectionErrorEvent

BarSize = _codes.BarSize
WhatToShow = _codes.WhatToShow
TickType = _codes.TickType
GenericTickType = _codes.GenericTickType
AccountSummaryTag = _codes.AccountSummaryTag
SecurityType = _codes.SecurityType
ActionSide = _codes.ActionSide
OrderStatus = _codes.OrderStatus


# ---- Lazy heavy / optional components -------------------------------------
@_export("IbapiTransport")
def _load_ibapi_transport():
    return import_module("ibbridge.infra.ibapi_transport").IbapiTransport


@_export("HistoricalDataCollector")
def _load_historical_collector():
    return import_module(
        "ibbridge.services.historical_data_service"
    ).HistoricalDataCollector


@_export("bars_to_frame")
def _load_bars_to_frame():
    return import_module("ibbridge.services.historical_data_service").bars_to_frame


def __getattr__(name: str) -> Any:
    if name in _LAZY:
        obj = _LAZY[name]()
        globals()[name] = obj
        return obj
    raise AttributeError(name)


__all__ = [  # noqa: F822 - some names are provided lazily via __getattr__
    # Configuration
    "AdapterConfig",
    "ConfigManager",
    "get_config",
    # Errors
    "AdapterError",
    "ErrorHandler",
    "InvalidArgument",
    "MalformedData",
    "ProtocolError",
    "ProtocolViolation",
    "UnknownEnumValue",
    "UnknownRequestId",
    "IBUnavailableError",
    # Domain
    "Contract",
    "ExecutionFilter",
    "Order",
    "ScannerSubscription",
    "RequestKind",
    "EventCategory",
    "HistoricalBar",
    "HistoricalDataEnd",
    "RequestErrorEvent",
    "ConnectionErrorEvent",
    "BarSize",
    "WhatToShow",
    "TickType",
    "GenericTickType",
    "AccountSummaryTag",
    "SecurityType",
    "ActionSide",
    "OrderStatus",
    # Facade and services
    "IBClient",
    "Transport",
    "EventDispatcher",
    "RequestRegistry",
    "create_ibapi_client",
    "ibapi_available",
    "IbapiTransport",
    "HistoricalDataCollector",
    "bars_to_frame",
    # Wire helpers
    "decode_bar_timestamp",
    "encode_duration",
    "format_end_datetime",
]

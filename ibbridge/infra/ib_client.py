"""
Connection facade

``IBClient`` validates and encodes request parameters, assigns request ids
through the registry and writes to the transport under one lock. Replies
are never returned from these methods; they arrive as domain events through
``subscribe``/``channel``. Request methods return the request id in use.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

from ibbridge.core.config import AdapterConfig, get_config
from ibbridge.core.error_handler import (
    ErrorHandler,
    InvalidArgument,
    UnknownEnumValue,
    get_error_handler,
)
from ibbridge.domain.events import DomainEvent, EventCategory
from ibbridge.domain.models import (
    Contract,
    ExecutionFilter,
    Order,
    ScannerSubscription,
)
from ibbridge.domain.request_kinds import RequestKind
from ibbridge.domain.wire_codes import (
    AccountSummaryTag,
    BarSize,
    ExerciseAction,
    FADataType,
    GenericTickType,
    MarketDataType,
    RealTimeBarType,
    ServerLogLevel,
    WhatToShow,
    decode,
    encode,
    encode_flags,
)
from ibbridge.infra.transport import Transport
from ibbridge.observability import metrics
from ibbridge.services.correlator import EventCorrelator
from ibbridge.services.event_dispatcher import EventDispatcher
from ibbridge.services.request_registry import RequestRegistry, RetireReason
from ibbridge.types import Subscriber
from ibbridge.utils.time_utils import encode_duration, format_end_datetime

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

# Dates in historical replies are sent as epoch seconds (day stamps for daily bars)
FORMAT_DATE_EPOCH = 2
REAL_TIME_BAR_SECONDS = 5


def _member(value: Any, enum_cls: type[E], name: str) -> E:
    """Accept an enum member or its wire token."""
    if isinstance(value, enum_cls):
        return value
    try:
        return decode(enum_cls, value)
    except UnknownEnumValue as e:
        raise InvalidArgument(f"Invalid {name}: {value!r}") from e


def _require(value: Any, name: str) -> Any:
    if value is None:
        raise InvalidArgument(f"{name} must not be None")
    return value


class IBClient:
    """Request/response facade over one transport connection."""

    def __init__(
        self,
        transport: Transport,
        registry: RequestRegistry | None = None,
        dispatcher: EventDispatcher | None = None,
        config: AdapterConfig | None = None,
        error_handler: ErrorHandler | None = None,
    ):
        self.config = config or get_config()
        self.transport = transport
        self.registry = registry or RequestRegistry.from_config(self.config.registry)
        self.dispatcher = dispatcher or EventDispatcher.from_config(
            self.config.dispatch
        )
        self.error_handler = error_handler or get_error_handler()
        self.correlator = EventCorrelator(
            self.registry, self.dispatcher, self.error_handler
        )
        self._write_lock = threading.RLock()
        self.transport.bind(self.correlator)

    # -------------- lifecycle -----------------
    def connect(
        self,
        host: str | None = None,
        port: int | None = None,
        client_id: int | None = None,
    ) -> None:
        cfg = self.config.connection
        host = host or cfg.host
        port = cfg.port if port is None else port
        client_id = cfg.client_id if client_id is None else client_id
        self.dispatcher.start()
        logger.info("Connecting to %s:%s (client id %s)", host, port, client_id)
        with self._write_lock:
            self.transport.eConnect(host, port, client_id)

    def disconnect(self) -> None:
        with self._write_lock:
            self.transport.eDisconnect()
        dropped = self.registry.retire_all(RetireReason.DISCONNECTED)
        if dropped:
            logger.info("Disconnected with %d outstanding request(s)", len(dropped))
        else:
            logger.info("Disconnected")

    def close(self) -> None:
        """Disconnect if needed and stop the dispatcher after it drains."""
        if self.is_connected():
            self.disconnect()
        self.dispatcher.stop()

    def __enter__(self) -> IBClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def is_connected(self) -> bool:
        with self._write_lock:
            return bool(self.transport.isConnected())

    # -------------- subscriptions -----------------
    def subscribe(self, category: EventCategory, callback: Subscriber) -> None:
        self.dispatcher.subscribe(category, callback)

    def subscribe_all(self, callback: Subscriber) -> None:
        self.dispatcher.subscribe_all(callback)

    def unsubscribe(
        self, callback: Subscriber, category: EventCategory | None = None
    ) -> None:
        self.dispatcher.unsubscribe(callback, category)

    def channel(
        self,
        category: EventCategory | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.Queue[DomainEvent]:
        return self.dispatcher.channel(category, loop)

    # -------------- plumbing -----------------
    def _send(
        self,
        kind: RequestKind,
        request_id: int | None,
        write: Callable[[int], None],
    ) -> int:
        if request_id is None:
            rid = self.registry.allocate(kind)
        else:
            rid = self.registry.register(request_id, kind).request_id
        try:
            with self._write_lock:
                write(rid)
        except Exception:
            self.registry.retire(rid, RetireReason.FAILED)
            metrics.inc(metrics.REQUESTS_FAILED)
            metrics.emit_event("request_failed", req_id=rid, kind=kind.value)
            logger.error("Transport rejected %s request %s", kind.value, rid)
            raise
        metrics.inc(metrics.REQUESTS_SENT, label=kind.value)
        metrics.emit_event("request_sent", req_id=rid, kind=kind.value)
        logger.debug("Sent %s request %s", kind.value, rid)
        return rid

    def _cancel(
        self,
        kinds: tuple[RequestKind, ...],
        request_id: int,
        write: Callable[[], None],
    ) -> None:
        pending = self.registry.get(request_id)
        if pending is None:
            logger.warning("Cancelling request %s which is not outstanding", request_id)
        elif pending.kind not in kinds:
            raise InvalidArgument(
                f"Request {request_id} is a {pending.kind.value} request, "
                f"not {kinds[0].value}"
            )
        else:
            self.registry.retire(request_id, RetireReason.CANCELLED)
            metrics.inc(metrics.REQUESTS_CANCELLED)
        with self._write_lock:
            write()

    def _write(self, write: Callable[[], None]) -> None:
        with self._write_lock:
            write()

    # -------------- market data -----------------
    def request_market_data(
        self,
        contract: Contract,
        generic_ticks: Iterable[GenericTickType] = (),
        snapshot: bool = False,
        request_id: int | None = None,
    ) -> int:
        _require(contract, "contract")
        ticks = [_member(t, GenericTickType, "generic tick") for t in generic_ticks]
        tick_list = encode_flags(ticks, GenericTickType)
        kind = RequestKind.MARKET_DATA_SNAPSHOT if snapshot else RequestKind.MARKET_DATA
        return self._send(
            kind,
            request_id,
            lambda rid: self.transport.reqMktData(rid, contract, tick_list, snapshot),
        )

    def cancel_market_data(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.MARKET_DATA, RequestKind.MARKET_DATA_SNAPSHOT),
            request_id,
            lambda: self.transport.cancelMktData(request_id),
        )

    def request_market_data_type(self, market_data_type: MarketDataType) -> None:
        mdt = _member(market_data_type, MarketDataType, "market data type")
        self._write(lambda: self.transport.reqMarketDataType(int(mdt)))

    def request_market_depth(
        self, contract: Contract, num_rows: int, request_id: int | None = None
    ) -> int:
        _require(contract, "contract")
        if num_rows <= 0:
            raise InvalidArgument(f"num_rows must be positive, got {num_rows}")
        return self._send(
            RequestKind.MARKET_DEPTH,
            request_id,
            lambda rid: self.transport.reqMktDepth(rid, contract, num_rows),
        )

    def cancel_market_depth(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.MARKET_DEPTH,),
            request_id,
            lambda: self.transport.cancelMktDepth(request_id),
        )

    # -------------- historical and real-time bars -----------------
    def request_historical_data(
        self,
        contract: Contract,
        duration: timedelta | str,
        bar_size: BarSize | str,
        what_to_show: WhatToShow | str = WhatToShow.TRADES,
        end: datetime | None = None,
        use_rth: bool = True,
        request_id: int | None = None,
    ) -> int:
        """Request bars covering ``duration`` back from ``end`` (None means now)."""
        _require(contract, "contract")
        duration_token = encode_duration(duration)
        end_text = format_end_datetime(end)
        bar_token = encode(_member(bar_size, BarSize, "bar size"))
        show_token = encode(_member(what_to_show, WhatToShow, "what_to_show"))
        return self._send(
            RequestKind.HISTORICAL_DATA,
            request_id,
            lambda rid: self.transport.reqHistoricalData(
                rid,
                contract,
                end_text,
                duration_token,
                bar_token,
                show_token,
                int(use_rth),
                FORMAT_DATE_EPOCH,
            ),
        )

    def cancel_historical_data(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.HISTORICAL_DATA,),
            request_id,
            lambda: self.transport.cancelHistoricalData(request_id),
        )

    def request_real_time_bars(
        self,
        contract: Contract,
        what_to_show: RealTimeBarType | str = RealTimeBarType.TRADES,
        use_rth: bool = True,
        bar_size: int = REAL_TIME_BAR_SECONDS,
        request_id: int | None = None,
    ) -> int:
        _require(contract, "contract")
        if bar_size != REAL_TIME_BAR_SECONDS:
            raise InvalidArgument(
                f"Real-time bars are only available in {REAL_TIME_BAR_SECONDS}s size"
            )
        show_token = encode(_member(what_to_show, RealTimeBarType, "what_to_show"))
        return self._send(
            RequestKind.REAL_TIME_BARS,
            request_id,
            lambda rid: self.transport.reqRealTimeBars(
                rid, contract, bar_size, show_token, use_rth
            ),
        )

    def cancel_real_time_bars(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.REAL_TIME_BARS,),
            request_id,
            lambda: self.transport.cancelRealTimeBars(request_id),
        )

    # -------------- contracts, scanners, fundamentals -----------------
    def request_contract_details(
        self, contract: Contract, request_id: int | None = None
    ) -> int:
        _require(contract, "contract")
        return self._send(
            RequestKind.CONTRACT_DETAILS,
            request_id,
            lambda rid: self.transport.reqContractDetails(rid, contract),
        )

    def request_scanner_parameters(self) -> None:
        self._write(self.transport.reqScannerParameters)

    def request_scanner_subscription(
        self, subscription: ScannerSubscription, request_id: int | None = None
    ) -> int:
        _require(subscription, "subscription")
        return self._send(
            RequestKind.SCANNER,
            request_id,
            lambda rid: self.transport.reqScannerSubscription(rid, subscription),
        )

    def cancel_scanner_subscription(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.SCANNER,),
            request_id,
            lambda: self.transport.cancelScannerSubscription(request_id),
        )

    def request_fundamental_data(
        self, contract: Contract, report_type: str, request_id: int | None = None
    ) -> int:
        _require(contract, "contract")
        if not report_type:
            raise InvalidArgument("report_type must not be empty")
        return self._send(
            RequestKind.FUNDAMENTAL_DATA,
            request_id,
            lambda rid: self.transport.reqFundamentalData(rid, contract, report_type),
        )

    def cancel_fundamental_data(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.FUNDAMENTAL_DATA,),
            request_id,
            lambda: self.transport.cancelFundamentalData(request_id),
        )

    # -------------- options -----------------
    def exercise_options(
        self,
        request_id: int,
        contract: Contract,
        action: ExerciseAction,
        quantity: int,
        account: str = "",
        override: bool = False,
    ) -> int:
        """Exercise or lapse an option; replies arrive as order events."""
        _require(contract, "contract")
        exercise = _member(action, ExerciseAction, "exercise action")
        if quantity < 1:
            raise InvalidArgument(f"quantity must be at least 1, got {quantity}")
        self._write(
            lambda: self.transport.exerciseOptions(
                request_id, contract, int(exercise), quantity, account, int(override)
            )
        )
        return request_id

    def calculate_implied_volatility(
        self,
        contract: Contract,
        option_price: float,
        under_price: float,
        request_id: int | None = None,
    ) -> int:
        _require(contract, "contract")
        return self._send(
            RequestKind.IMPLIED_VOLATILITY,
            request_id,
            lambda rid: self.transport.calculateImpliedVolatility(
                rid, contract, option_price, under_price
            ),
        )

    def cancel_implied_volatility(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.IMPLIED_VOLATILITY,),
            request_id,
            lambda: self.transport.cancelCalculateImpliedVolatility(request_id),
        )

    def calculate_option_price(
        self,
        contract: Contract,
        volatility: float,
        under_price: float,
        request_id: int | None = None,
    ) -> int:
        _require(contract, "contract")
        return self._send(
            RequestKind.OPTION_PRICE,
            request_id,
            lambda rid: self.transport.calculateOptionPrice(
                rid, contract, volatility, under_price
            ),
        )

    def cancel_option_price(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.OPTION_PRICE,),
            request_id,
            lambda: self.transport.cancelCalculateOptionPrice(request_id),
        )

    # -------------- orders -----------------
    def place_order(self, order_id: int, contract: Contract, order: Order) -> int:
        _require(contract, "contract")
        _require(order, "order")
        if order_id < 0:
            raise InvalidArgument(f"order_id must be non-negative, got {order_id}")
        self._write(lambda: self.transport.placeOrder(order_id, contract, order))
        return order_id

    def cancel_order(self, order_id: int) -> None:
        self._write(lambda: self.transport.cancelOrder(order_id))

    def request_open_orders(self) -> None:
        self._write(self.transport.reqOpenOrders)

    def request_all_open_orders(self) -> None:
        self._write(self.transport.reqAllOpenOrders)

    def request_auto_open_orders(self, auto_bind: bool) -> None:
        self._write(lambda: self.transport.reqAutoOpenOrders(auto_bind))

    def request_ids(self, num_ids: int = 1) -> None:
        if num_ids < 1:
            raise InvalidArgument(f"num_ids must be at least 1, got {num_ids}")
        self._write(lambda: self.transport.reqIds(num_ids))

    def request_global_cancel(self) -> None:
        self._write(self.transport.reqGlobalCancel)

    # -------------- account -----------------
    def request_account_updates(self, subscribe: bool, account: str = "") -> None:
        self._write(lambda: self.transport.reqAccountUpdates(subscribe, account))

    def request_executions(
        self,
        exec_filter: ExecutionFilter | None = None,
        request_id: int | None = None,
    ) -> int:
        flt = exec_filter or ExecutionFilter()
        return self._send(
            RequestKind.EXECUTIONS,
            request_id,
            lambda rid: self.transport.reqExecutions(rid, flt),
        )

    def request_managed_accounts(self) -> None:
        self._write(self.transport.reqManagedAccts)

    def request_account_summary(
        self,
        tags: Iterable[AccountSummaryTag | str],
        group: str = "All",
        request_id: int | None = None,
    ) -> int:
        selected = [_member(t, AccountSummaryTag, "account summary tag") for t in tags]
        if not selected:
            raise InvalidArgument("At least one account summary tag is required")
        if not group:
            raise InvalidArgument("group must not be empty")
        tag_list = encode_flags(selected, AccountSummaryTag)
        return self._send(
            RequestKind.ACCOUNT_SUMMARY,
            request_id,
            lambda rid: self.transport.reqAccountSummary(rid, group, tag_list),
        )

    def cancel_account_summary(self, request_id: int) -> None:
        self._cancel(
            (RequestKind.ACCOUNT_SUMMARY,),
            request_id,
            lambda: self.transport.cancelAccountSummary(request_id),
        )

    def request_positions(self) -> None:
        self._write(self.transport.reqPositions)

    def cancel_positions(self) -> None:
        self._write(self.transport.cancelPositions)

    # -------------- news, FA, misc -----------------
    def request_news_bulletins(self, all_messages: bool = True) -> None:
        self._write(lambda: self.transport.reqNewsBulletins(all_messages))

    def cancel_news_bulletins(self) -> None:
        self._write(self.transport.cancelNewsBulletins)

    def request_fa(self, data_type: FADataType) -> None:
        fa = _member(data_type, FADataType, "FA data type")
        self._write(lambda: self.transport.requestFA(int(fa)))

    def replace_fa(self, data_type: FADataType, xml: str) -> None:
        fa = _member(data_type, FADataType, "FA data type")
        _require(xml, "xml")
        self._write(lambda: self.transport.replaceFA(int(fa), xml))

    def request_current_time(self) -> None:
        self._write(self.transport.reqCurrentTime)

    def set_server_log_level(self, level: ServerLogLevel) -> None:
        lvl = _member(level, ServerLogLevel, "server log level")
        self._write(lambda: self.transport.setServerLogLevel(int(lvl)))


__all__ = ["IBClient", "FORMAT_DATE_EPOCH"]

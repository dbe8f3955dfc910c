#!/usr/bin/env python3
"""
Historical Data Service

Collects HistoricalBar events per request id and turns each completed
request into a pandas DataFrame. Callers either wait on a
``concurrent.futures.Future`` from ``expect`` or use ``collect`` which
issues the request through an ``IBClient`` and blocks for the result.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Iterable
from concurrent.futures import Future
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import pandas as pd

from ibbridge.core.error_handler import AdapterError, ErrorCategory, ProtocolError
from ibbridge.domain.events import (
    ConnectionClosed,
    EventCategory,
    HistoricalBar,
    HistoricalDataEnd,
    RequestErrorEvent,
)
from ibbridge.domain.models import Contract
from ibbridge.domain.wire_codes import BarSize, WhatToShow, is_warning_code
from ibbridge.services.event_dispatcher import EventDispatcher

if TYPE_CHECKING:
    from ibbridge.infra.ib_client import IBClient

logger = logging.getLogger(__name__)

BAR_COLUMNS = ["open", "high", "low", "close", "volume", "wap", "count", "has_gaps"]


def bars_to_frame(bars: Iterable[HistoricalBar]) -> pd.DataFrame:
    """Convert bars to a DataFrame indexed by UTC bar time"""
    data: list[dict[str, Any]] = []
    for bar in bars:
        data.append(
            {
                "date": bar.timestamp,
                "open": bar.open,
                "high": bar.high,
                "low": bar.low,
                "close": bar.close,
                "volume": bar.volume,
                "wap": bar.wap,
                "count": bar.trade_count,
                "has_gaps": bar.has_gaps,
            }
        )
    if not data:
        return pd.DataFrame(
            columns=BAR_COLUMNS, index=pd.DatetimeIndex([], tz="UTC", name="date")
        )
    df = pd.DataFrame(data)
    df["date"] = pd.to_datetime(df["date"], utc=True)
    df.set_index("date", inplace=True)
    df.sort_index(inplace=True)
    return df


class HistoricalDataCollector:
    """Accumulates bars per request id until the End event arrives.

    Results for ids nobody is waiting on yet are kept for the most recent
    ``completed_history`` requests only.
    """

    def __init__(self, dispatcher: EventDispatcher, completed_history: int = 64):
        self._dispatcher = dispatcher
        self._lock = threading.Lock()
        self._completed_history = completed_history
        self._bars: dict[int, list[HistoricalBar]] = {}
        self._done: OrderedDict[int, pd.DataFrame | BaseException] = OrderedDict()
        self._futures: dict[int, Future[pd.DataFrame]] = {}
        dispatcher.subscribe(EventCategory.HISTORICAL_BAR, self._on_bar)
        dispatcher.subscribe(EventCategory.HISTORICAL_DATA_END, self._on_end)
        dispatcher.subscribe(EventCategory.REQUEST_ERROR, self._on_error)
        dispatcher.subscribe(EventCategory.CONNECTION_CLOSED, self._on_closed)

    def close(self) -> None:
        for category, callback in (
            (EventCategory.HISTORICAL_BAR, self._on_bar),
            (EventCategory.HISTORICAL_DATA_END, self._on_end),
            (EventCategory.REQUEST_ERROR, self._on_error),
            (EventCategory.CONNECTION_CLOSED, self._on_closed),
        ):
            self._dispatcher.unsubscribe(callback, category)

    # -------------- public API -----------------
    def expect(self, request_id: int) -> Future[pd.DataFrame]:
        """Future resolved with the request's bars (or its error)."""
        with self._lock:
            future = self._futures.get(request_id)
            if future is None:
                future = Future()
                self._futures[request_id] = future
            outcome = self._done.pop(request_id, None)
        if outcome is not None:
            self._resolve(request_id, outcome)
        return future

    def forget(self, request_id: int) -> None:
        """Drop buffered bars and cancel the pending future (after a cancel)."""
        with self._lock:
            self._bars.pop(request_id, None)
            self._done.pop(request_id, None)
            future = self._futures.pop(request_id, None)
        if future is not None:
            future.cancel()

    def collect(
        self,
        client: IBClient,
        contract: Contract,
        duration: timedelta | str,
        bar_size: BarSize | str,
        what_to_show: WhatToShow | str = WhatToShow.TRADES,
        end: datetime | None = None,
        use_rth: bool = True,
        timeout: float | None = None,
    ) -> pd.DataFrame:
        request_id = client.request_historical_data(
            contract,
            duration,
            bar_size,
            what_to_show=what_to_show,
            end=end,
            use_rth=use_rth,
        )
        future = self.expect(request_id)
        try:
            return future.result(timeout)
        except TimeoutError:
            logger.error("Historical data request %s timed out", request_id)
            client.cancel_historical_data(request_id)
            self.forget(request_id)
            raise

    # -------------- event handlers -----------------
    def _on_bar(self, event: HistoricalBar) -> None:
        with self._lock:
            self._bars.setdefault(event.request_id, []).append(event)

    def _on_end(self, event: HistoricalDataEnd) -> None:
        with self._lock:
            bars = self._bars.pop(event.request_id, [])
        df = bars_to_frame(bars)
        logger.info("Collected %d bars for request %s", len(df), event.request_id)
        self._finish(event.request_id, df)

    def _on_error(self, event: RequestErrorEvent) -> None:
        if is_warning_code(event.code):
            return
        with self._lock:
            known = event.request_id in self._bars or event.request_id in self._futures
            self._bars.pop(event.request_id, None)
        if known:
            self._finish(
                event.request_id,
                ProtocolError(event.request_id, event.code, event.message),
            )

    def _on_closed(self, event: ConnectionClosed) -> None:
        with self._lock:
            pending = list(self._futures)
            self._bars.clear()
        for request_id in pending:
            self._finish(
                request_id,
                AdapterError("Connection closed", category=ErrorCategory.CONNECTION),
            )

    def _finish(self, request_id: int, outcome: pd.DataFrame | BaseException) -> None:
        with self._lock:
            if request_id not in self._futures:
                self._done[request_id] = outcome
                self._done.move_to_end(request_id)
                while len(self._done) > self._completed_history:
                    self._done.popitem(last=False)
                return
        self._resolve(request_id, outcome)

    def _resolve(self, request_id: int, outcome: pd.DataFrame | BaseException) -> None:
        with self._lock:
            future = self._futures.pop(request_id, None)
        if future is None or future.done():
            return
        if isinstance(outcome, BaseException):
            future.set_exception(outcome)
        else:
            future.set_result(outcome)

from datetime import UTC, datetime, timedelta

import pandas as pd
import pytest

from ibbridge.core.error_handler import AdapterError, ProtocolError
from ibbridge.domain.events import (
    ConnectionClosed,
    HistoricalBar,
    HistoricalDataEnd,
    RequestErrorEvent,
)
from ibbridge.services.historical_data_service import (
    BAR_COLUMNS,
    HistoricalDataCollector,
    bars_to_frame,
)

T0 = datetime(2023, 6, 14, tzinfo=UTC)


def make_bar(rid: int, index: int, total: int, hours: int | None = None):
    ts = T0 + timedelta(hours=index - 1 if hours is None else hours)
    return HistoricalBar(
        request_id=rid,
        timestamp=ts,
        open=1.0,
        high=2.0,
        low=0.5,
        close=1.5,
        volume=100 * index,
        trade_count=index,
        wap=1.25,
        has_gaps=False,
        record_index=index,
        record_total=total,
    )


def test_bars_to_frame_sorted_utc_index():
    bars = [make_bar(1, 1, 2, hours=5), make_bar(1, 2, 2, hours=1)]
    df = bars_to_frame(bars)
    assert list(df.columns) == BAR_COLUMNS
    assert df.index.name == "date"
    assert str(df.index.tz) == "UTC"
    assert df.index.is_monotonic_increasing
    assert df["volume"].tolist() == [200, 100]


def test_bars_to_frame_empty():
    df = bars_to_frame([])
    assert df.empty
    assert list(df.columns) == BAR_COLUMNS
    assert isinstance(df.index, pd.DatetimeIndex)


def test_collector_resolves_on_end(dispatcher):
    collector = HistoricalDataCollector(dispatcher)
    future = collector.expect(3)
    for i in range(1, 4):
        dispatcher.publish(make_bar(3, i, 3))
    dispatcher.publish(make_bar(4, 1, 1))  # other request, ignored
    dispatcher.publish(HistoricalDataEnd(3, "", ""))
    df = future.result(timeout=5)
    assert len(df) == 3
    assert df["count"].tolist() == [1, 2, 3]
    collector.close()


def test_expect_after_end_still_resolves(dispatcher):
    collector = HistoricalDataCollector(dispatcher)
    dispatcher.publish(make_bar(8, 1, 1))
    dispatcher.publish(HistoricalDataEnd(8, "", ""))
    assert dispatcher.drain(timeout=5)
    df = collector.expect(8).result(timeout=1)
    assert len(df) == 1
    collector.close()


def test_request_error_fails_future(dispatcher):
    collector = HistoricalDataCollector(dispatcher)
    future = collector.expect(5)
    dispatcher.publish(RequestErrorEvent(5, 2106, "farm OK"))  # warning, ignored
    dispatcher.publish(RequestErrorEvent(5, 162, "no data"))
    with pytest.raises(ProtocolError) as exc_info:
        future.result(timeout=5)
    assert exc_info.value.code == 162
    collector.close()


def test_connection_closed_fails_outstanding(dispatcher):
    collector = HistoricalDataCollector(dispatcher)
    future = collector.expect(6)
    dispatcher.publish(ConnectionClosed())
    with pytest.raises(AdapterError, match="Connection closed"):
        future.result(timeout=5)
    collector.close()


def test_forget_cancels_future(dispatcher):
    collector = HistoricalDataCollector(dispatcher)
    future = collector.expect(7)
    collector.forget(7)
    assert future.cancelled()
    collector.close()


def test_close_unsubscribes(dispatcher):
    collector = HistoricalDataCollector(dispatcher)
    collector.close()
    assert dispatcher._subscriptions == []


def test_unclaimed_results_are_bounded(dispatcher):
    collector = HistoricalDataCollector(dispatcher, completed_history=3)
    for rid in range(10, 20):
        dispatcher.publish(make_bar(rid, 1, 1))
        dispatcher.publish(HistoricalDataEnd(rid, "", ""))
    assert dispatcher.drain(timeout=5)

    assert list(collector._done) == [17, 18, 19]
    assert collector._bars == {}
    assert len(collector.expect(19).result(timeout=1)) == 1
    # evicted results are no longer available
    assert not collector.expect(10).done()
    collector.close()

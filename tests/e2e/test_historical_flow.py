"""
End-to-end: historical bars over the fake transport, through the facade,
correlator and dispatcher to subscribers and the DataFrame collector.
"""

from datetime import UTC, datetime, timedelta

import pandas as pd
import pytest

from ibbridge.core.error_handler import ProtocolError
from ibbridge.domain import events as ev
from ibbridge.domain.events import EventCategory
from ibbridge.domain.models import Contract
from ibbridge.domain.wire_codes import BarSize
from ibbridge.observability import metrics
from ibbridge.services.historical_data_service import HistoricalDataCollector
from ibbridge.services.request_registry import RetireReason

pytestmark = pytest.mark.e2e

END = datetime(2023, 6, 15, tzinfo=UTC)
START_EPOCH = int((END - timedelta(days=2)).timestamp())


def emit_bar(transport, rid: int, index: int, total: int) -> None:
    stamp = START_EPOCH + 3600 * (index - 1)
    px = 100.0 + index
    transport.emit(
        "historicalData",
        rid,
        str(stamp),
        px,
        px + 0.5,
        px - 0.5,
        px + 0.25,
        1000 + index,
        10,
        px,
        False,
        index,
        total,
    )


def test_two_day_hourly_request(client, transport, dispatcher, recorder, registry):
    collector = HistoricalDataCollector(dispatcher)
    rid = client.request_historical_data(
        Contract.stock("AAPL"), timedelta(days=2), BarSize.ONE_HOUR, end=END
    )
    future = collector.expect(rid)

    args = transport.last_call("reqHistoricalData")
    assert args[2] == "20230615 00:00:00 UTC"
    assert args[3] == "2 D"
    assert args[4] == "1 hour"

    for i in range(1, 49):
        emit_bar(transport, rid, i, 48)
    transport.emit("historicalDataEnd", rid, "20230613  00:00:00", "20230615  00:00:00")
    assert dispatcher.drain(timeout=5)

    bars = recorder.of_type(ev.HistoricalBar)
    assert len(bars) == 48
    assert [b.record_index for b in bars] == list(range(1, 49))
    assert {b.record_total for b in bars} == {48}
    assert bars[0].timestamp == END - timedelta(days=2)
    assert bars[-1].timestamp == END - timedelta(hours=1)

    ends = recorder.of_type(ev.HistoricalDataEnd)
    assert len(ends) == 1
    # End is the last event for this id
    assert recorder.events[-1] is ends[0]
    assert registry.retired_reason(rid) is RetireReason.ENDED

    df = future.result(timeout=5)
    assert isinstance(df, pd.DataFrame)
    assert len(df) == 48
    assert df.index.is_monotonic_increasing
    assert df.index[0] == pd.Timestamp("2023-06-13 00:00:00", tz="UTC")
    assert df["volume"].iloc[-1] == 1048
    collector.close()


def test_cancel_mid_stream_discards_late_bars(
    client, transport, dispatcher, recorder, registry
):
    subscriber_errors: list[object] = []
    client.subscribe(EventCategory.CONNECTION_ERROR, subscriber_errors.append)

    rid = client.request_historical_data(
        Contract.stock("MSFT"), timedelta(days=2), BarSize.ONE_HOUR, end=END
    )
    for i in range(1, 11):
        emit_bar(transport, rid, i, 48)
    client.cancel_historical_data(rid)
    assert transport.last_call("cancelHistoricalData") == (rid,)
    assert registry.retired_reason(rid) is RetireReason.CANCELLED

    # already in flight when the cancel went out
    for i in range(11, 15):
        emit_bar(transport, rid, i, 48)
    transport.emit("historicalDataEnd", rid, "", "")
    assert dispatcher.drain(timeout=5)

    assert len(recorder.of_type(ev.HistoricalBar)) == 10
    assert recorder.of_type(ev.HistoricalDataEnd) == []
    assert subscriber_errors == []
    assert metrics.get(metrics.LATE_CALLBACKS_DISCARDED) == 5


def test_server_error_fails_collector_future(client, transport, dispatcher):
    collector = HistoricalDataCollector(dispatcher)
    rid = client.request_historical_data(
        Contract.stock("ZZZZ"), "1 D", BarSize.ONE_MINUTE
    )
    future = collector.expect(rid)
    transport.emit("error", rid, 200, "No security definition has been found")
    with pytest.raises(ProtocolError) as exc_info:
        future.result(timeout=5)
    assert exc_info.value.code == 200
    assert exc_info.value.request_id == rid
    collector.close()

"""Bridge from ibapi's EWrapper callbacks to the adapter's callback sink.

Skipped when the real ibapi package is not installed. No socket is opened.
"""

import pytest

pytest.importorskip("ibapi")

from ibapi.common import BarData  # noqa: E402

from ibbridge.domain.models import Contract, Order  # noqa: E402
from ibbridge.domain.wire_codes import ActionSide, SecurityType  # noqa: E402
from ibbridge.infra._ib_availability import ibapi_available  # noqa: E402
from ibbridge.infra.ibapi_transport import (  # noqa: E402
    IbapiTransport,
    from_ib_contract,
    from_ib_order,
    to_ib_contract,
    to_ib_order,
)


class RecordingSink:
    def __init__(self):
        self.calls = []
        self.reports = []

    def handle(self, message, *args):
        self.calls.append((message, args))

    def report(self, error, message):
        self.reports.append((message, error))


def make_bar(date: str, close: float) -> BarData:
    bar = BarData()
    bar.date = date
    bar.open = close - 1
    bar.high = close + 1
    bar.low = close - 2
    bar.close = close
    bar.volume = 100
    bar.barCount = 7
    bar.average = close
    return bar


@pytest.fixture
def bridge():
    ibapi_available.cache_clear()
    transport = IbapiTransport()
    sink = RecordingSink()
    transport.bind(sink)
    return transport, sink


def test_contract_conversion_round_trip():
    contract = Contract.stock("AAPL", currency="USD")
    ib = to_ib_contract(contract)
    assert ib.secType == "STK"
    assert ib.exchange == "SMART"
    back = from_ib_contract(ib)
    assert back == contract
    assert back.sec_type is SecurityType.STOCK


def test_order_conversion_round_trip():
    order = Order(
        action=ActionSide.BUY,
        total_quantity=10,
        order_type="LMT",
        lmt_price=101.5,
        tif="DAY",
    )
    ib = to_ib_order(order)
    assert ib.action == "BUY"
    assert ib.lmtPrice == 101.5
    back = from_ib_order(ib)
    assert back.action is ActionSide.BUY
    assert back.lmt_price == 101.5
    # unset vendor doubles come back as None
    assert back.aux_price is None


def test_bars_replayed_with_index_and_total(bridge):
    transport, sink = bridge
    wrapper = transport._wrapper
    wrapper.historicalData(4, make_bar("20230614", 10.0))
    wrapper.historicalData(4, make_bar("20230615", 11.0))
    assert sink.calls == []

    wrapper.historicalDataEnd(4, "20230613", "20230615")
    messages = [m for m, _ in sink.calls]
    assert messages == ["historicalData", "historicalData", "historicalDataEnd"]
    first, second = sink.calls[0][1], sink.calls[1][1]
    assert first[:2] == (4, "20230614")
    assert first[-2:] == (1, 2)
    assert second[5] == 11.0
    assert second[-2:] == (2, 2)
    assert sink.calls[2][1] == (4, "20230613", "20230615")


def test_error_drops_buffered_bars(bridge):
    transport, sink = bridge
    wrapper = transport._wrapper
    wrapper.historicalData(5, make_bar("20230614", 10.0))
    wrapper.error(5, 162, "pacing violation")
    wrapper.historicalDataEnd(5, "", "")
    messages = [m for m, _ in sink.calls]
    assert messages == ["error", "historicalDataEnd"]
    assert sink.calls[0][1] == (5, 162, "pacing violation")


def test_warning_keeps_buffered_bars(bridge):
    transport, sink = bridge
    wrapper = transport._wrapper
    wrapper.historicalData(6, make_bar("20230614", 10.0))
    wrapper.error(6, 2106, "HMDS data farm connection is OK")
    wrapper.historicalDataEnd(6, "", "")
    messages = [m for m, _ in sink.calls]
    assert messages == ["error", "historicalData", "historicalDataEnd"]


def test_conversion_failure_is_reported(bridge):
    transport, sink = bridge

    def broken():
        raise ValueError("bad vendor object")

    transport.forward_converted("contractDetails", broken)
    assert sink.calls == []
    assert sink.reports[0][0] == "contractDetails"
    assert isinstance(sink.reports[0][1], ValueError)


def test_forward_without_sink_is_dropped():
    ibapi_available.cache_clear()
    transport = IbapiTransport()
    transport.forward("currentTime", 1)
    assert transport.isConnected() is False


def bar_calls(sink):
    return [args for message, args in sink.calls if message == "historicalData"]


def test_cancel_drops_buffered_bars_before_id_reuse(bridge):
    transport, sink = bridge
    wrapper = transport._wrapper
    for day in ("20230601", "20230602", "20230603"):
        wrapper.historicalData(5, make_bar(day, 10.0))
    transport.cancelHistoricalData(5)

    # same id, new request
    wrapper.historicalData(5, make_bar("20230614", 20.0))
    wrapper.historicalData(5, make_bar("20230615", 21.0))
    wrapper.historicalDataEnd(5, "20230613", "20230615")

    bars = bar_calls(sink)
    assert [args[1] for args in bars] == ["20230614", "20230615"]
    assert [args[-2:] for args in bars] == [(1, 2), (2, 2)]


def test_disconnect_clears_all_buffers(bridge):
    transport, sink = bridge
    wrapper = transport._wrapper
    wrapper.historicalData(7, make_bar("20230601", 10.0))
    wrapper.historicalData(8, make_bar("20230601", 10.0))
    transport.eDisconnect()

    wrapper.historicalDataEnd(7, "", "")
    wrapper.historicalDataEnd(8, "", "")
    assert bar_calls(sink) == []
    assert [m for m, _ in sink.calls].count("historicalDataEnd") == 2

"""
Functional tests for ibbridge/core/error_handler.py
Covers the exception taxonomy, error capture, callbacks and logged output.
"""

import logging

from ibbridge.core import error_handler as eh
from ibbridge.core.error_handler import (
    AdapterError,
    ErrorCategory,
    ErrorHandler,
    ErrorSeverity,
    InvalidArgument,
    MalformedData,
    ProtocolError,
    ProtocolViolation,
    UnknownEnumValue,
    UnknownRequestId,
)


def test_taxonomy_categories():
    assert InvalidArgument("x").category is ErrorCategory.ARGUMENT
    assert MalformedData("x").category is ErrorCategory.DATA
    assert UnknownRequestId(1).category is ErrorCategory.CORRELATION
    assert UnknownEnumValue("TickType", 999).category is ErrorCategory.DATA
    assert ProtocolError(1, 200, "x").category is ErrorCategory.PROTOCOL
    assert ProtocolViolation("x").category is ErrorCategory.PROTOCOL


def test_builtin_bases_for_callers():
    assert isinstance(InvalidArgument("x"), ValueError)
    assert isinstance(UnknownRequestId(1), LookupError)
    assert isinstance(UnknownEnumValue("BarSize", "x"), LookupError)


def test_context_carries_wire_fields():
    err = ProtocolError(12, 162, "no data")
    assert err.context == {"reqId": 12, "errorCode": 162}
    assert str(err) == "no data"
    assert UnknownRequestId(5).context["reqId"] == 5
    assert MalformedData("bad", raw="zz").context["raw"] == "zz"


def test_error_capture():
    handler = ErrorHandler()
    err = AdapterError("fail", ErrorCategory.DATA, ErrorSeverity.HIGH)
    report = handler.handle_error(err, module="mod", function="func")
    assert report.message == "fail"
    assert report.category == ErrorCategory.DATA
    assert report.severity == ErrorSeverity.HIGH
    assert report.module == "mod"
    assert report.function == "func"
    assert report.error_type == "AdapterError"


def test_plain_exception_is_system_error():
    handler = ErrorHandler()
    report = handler.handle_error(RuntimeError("boom"), context={"k": 1})
    assert report.category is ErrorCategory.SYSTEM
    assert report.context == {"k": 1}


def test_context_is_merged():
    handler = ErrorHandler()
    report = handler.handle_error(
        UnknownRequestId(9), context={"callback": "tickPrice"}
    )
    assert report.context == {"reqId": 9, "callback": "tickPrice"}


def test_category_callback():
    handler = ErrorHandler()
    called = []
    handler.register_error_callback(ErrorCategory.PROTOCOL, called.append)
    handler.handle_error(ProtocolViolation("after end", request_id=3))
    handler.handle_error(InvalidArgument("ignored"))
    assert [r.error_type for r in called] == ["ProtocolViolation"]


def test_failing_callback_is_logged(caplog):
    handler = ErrorHandler()

    def broken(report):
        raise RuntimeError("callback broke")

    handler.register_error_callback(ErrorCategory.DATA, broken)
    with caplog.at_level(logging.ERROR):
        handler.handle_error(MalformedData("bad"))
    assert "callback broke" in caplog.text


def test_logged_output(caplog):
    handler = ErrorHandler()
    err = AdapterError("fail", ErrorCategory.SYSTEM, ErrorSeverity.CRITICAL)
    with caplog.at_level("CRITICAL"):
        handler.handle_error(err)
    assert any("CRITICAL" in record.levelname for record in caplog.records)


def test_low_severity_logs_info(caplog):
    handler = ErrorHandler()
    with caplog.at_level(logging.INFO):
        handler.handle_error(UnknownRequestId(4))
    (record,) = [r for r in caplog.records if "UnknownRequestId" in r.getMessage()]
    assert record.levelno == logging.INFO


def test_history_is_bounded_and_summarized():
    handler = ErrorHandler(history_size=3)
    for i in range(5):
        handler.handle_error(UnknownRequestId(i))
    handler.handle_error(MalformedData("bad"))
    summary = handler.get_error_summary()
    assert summary["total_errors"] == 3
    assert summary["by_type"] == {"UnknownRequestId": 2, "MalformedData": 1}
    assert summary["by_category"] == {"correlation": 2, "data": 1}
    assert len(summary["recent_errors"]) == 3
    handler.clear_error_history()
    assert handler.get_error_summary()["total_errors"] == 0
    assert handler.error_count == 0


def test_global_handler(monkeypatch):
    monkeypatch.setattr(eh, "_error_handler", None)
    first = eh.get_error_handler()
    assert eh.get_error_handler() is first
    report = eh.handle_error(InvalidArgument("bad span"))
    assert first.error_history[-1] is report

"""
Functional tests for ibbridge/infra/_ib_availability.py
Covers detection of both available and unavailable ibapi states using
IBBRIDGE_DISABLE_IBAPI.
"""

import pytest

from ibbridge.infra._ib_availability import (
    IBUnavailableError,
    ibapi_available,
    require_ibapi,
)


@pytest.fixture(autouse=True)
def fresh_detection():
    ibapi_available.cache_clear()
    yield
    ibapi_available.cache_clear()


def test_ibapi_disabled(monkeypatch):
    monkeypatch.setenv("IBBRIDGE_DISABLE_IBAPI", "1")
    assert ibapi_available() is False
    with pytest.raises(IBUnavailableError, match="pip install"):
        require_ibapi()


def test_ibapi_detection_without_override(monkeypatch):
    monkeypatch.delenv("IBBRIDGE_DISABLE_IBAPI", raising=False)
    # The real dependency may or may not be installed
    if ibapi_available():
        require_ibapi()
    else:
        with pytest.raises(IBUnavailableError):
            require_ibapi()


def test_result_is_cached(monkeypatch):
    monkeypatch.setenv("IBBRIDGE_DISABLE_IBAPI", "1")
    assert ibapi_available() is False
    monkeypatch.delenv("IBBRIDGE_DISABLE_IBAPI")
    assert ibapi_available() is False

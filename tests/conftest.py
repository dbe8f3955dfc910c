"""
Test fixtures for the protocol adapter.

Everything runs against the in-memory FakeTransport; nothing here needs a
TWS/Gateway or the optional ibapi package.
"""

import threading

import pytest

from ibbridge.core.config import AdapterConfig, reset_config
from ibbridge.core.error_handler import ErrorHandler
from ibbridge.infra.ib_client import IBClient
from ibbridge.observability import metrics
from ibbridge.services.event_dispatcher import EventDispatcher
from ibbridge.services.request_registry import RequestRegistry
from tests.fakes.fake_transport import FakeTransport


class EventRecorder:
    """Thread-safe subscriber that keeps every event it receives."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[object] = []

    def __call__(self, event: object) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[object]:
        with self._lock:
            return list(self._events)

    def of_type(self, cls: type) -> list:
        return [e for e in self.events if isinstance(e, cls)]


@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    for key in ("IB_HOST", "IB_PORT", "IB_CLIENT_ID", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def error_handler() -> ErrorHandler:
    return ErrorHandler(history_size=50)


@pytest.fixture
def registry() -> RequestRegistry:
    return RequestRegistry()


@pytest.fixture
def dispatcher():
    d = EventDispatcher(thread_name="test-dispatch", stop_timeout=2.0)
    d.start()
    yield d
    d.stop()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def recorder(dispatcher: EventDispatcher) -> EventRecorder:
    rec = EventRecorder()
    dispatcher.subscribe_all(rec)
    return rec


@pytest.fixture
def client(transport, registry, dispatcher, error_handler):
    c = IBClient(
        transport,
        registry=registry,
        dispatcher=dispatcher,
        config=AdapterConfig(),
        error_handler=error_handler,
    )
    c.connect()
    yield c
    c.close()

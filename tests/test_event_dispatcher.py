"""
Tests for event fan-out: ordering, isolation, non-blocking publish and
asyncio channels
"""

import asyncio
import logging
import threading
import time

import pytest

from ibbridge.domain.events import (
    CurrentTime,
    EventCategory,
    NextValidId,
    TickSize,
)
from ibbridge.domain.wire_codes import TickType
from ibbridge.observability import metrics
from ibbridge.services.event_dispatcher import EventDispatcher


def test_delivers_in_publish_order(dispatcher, recorder):
    events = [NextValidId(i) for i in range(200)]
    for event in events:
        dispatcher.publish(event)
    assert dispatcher.drain(timeout=5)
    assert recorder.events == events


def test_category_filtering(dispatcher):
    ids: list[int] = []
    dispatcher.subscribe(EventCategory.NEXT_VALID_ID, lambda e: ids.append(e.order_id))
    dispatcher.publish(TickSize(1, TickType.BID_SIZE, 100))
    dispatcher.publish(NextValidId(5))
    assert dispatcher.drain(timeout=5)
    assert ids == [5]


def test_subscribers_called_in_subscription_order(dispatcher):
    calls: list[str] = []
    dispatcher.subscribe(EventCategory.NEXT_VALID_ID, lambda e: calls.append("a"))
    dispatcher.subscribe_all(lambda e: calls.append("b"))
    dispatcher.subscribe(EventCategory.NEXT_VALID_ID, lambda e: calls.append("c"))
    dispatcher.publish(NextValidId(1))
    assert dispatcher.drain(timeout=5)
    assert calls == ["a", "b", "c"]


def test_failing_subscriber_is_isolated(dispatcher, recorder, caplog):
    def broken(event):
        raise RuntimeError("subscriber bug")

    dispatcher.subscribe(EventCategory.NEXT_VALID_ID, broken)
    with caplog.at_level(logging.ERROR):
        dispatcher.publish(NextValidId(1))
        dispatcher.publish(NextValidId(2))
        assert dispatcher.drain(timeout=5)

    assert [e.order_id for e in recorder.events] == [1, 2]
    assert metrics.get(metrics.SUBSCRIBER_ERRORS) == 2
    assert any(
        r.exc_info and "subscriber bug" in str(r.exc_info[1]) for r in caplog.records
    )


def test_publish_does_not_wait_for_slow_subscriber(dispatcher):
    release = threading.Event()
    seen: list[int] = []

    def slow(event):
        release.wait(5)
        seen.append(event.order_id)

    dispatcher.subscribe(EventCategory.NEXT_VALID_ID, slow)
    started = time.monotonic()
    for i in range(50):
        dispatcher.publish(NextValidId(i))
    assert time.monotonic() - started < 1.0
    release.set()
    assert dispatcher.drain(timeout=5)
    assert seen == list(range(50))


def test_duplicate_subscription_is_ignored(dispatcher):
    calls: list[object] = []
    dispatcher.subscribe(EventCategory.NEXT_VALID_ID, calls.append)
    dispatcher.subscribe(EventCategory.NEXT_VALID_ID, calls.append)
    dispatcher.publish(NextValidId(1))
    assert dispatcher.drain(timeout=5)
    assert len(calls) == 1


def test_unsubscribe(dispatcher):
    calls: list[object] = []
    dispatcher.subscribe(EventCategory.NEXT_VALID_ID, calls.append)
    dispatcher.subscribe(EventCategory.CURRENT_TIME, calls.append)
    dispatcher.unsubscribe(calls.append, EventCategory.NEXT_VALID_ID)
    dispatcher.publish(NextValidId(1))
    assert dispatcher.drain(timeout=5)
    assert calls == []
    dispatcher.unsubscribe(calls.append)
    assert dispatcher._subscriptions == []


def test_stop_delivers_queued_events():
    d = EventDispatcher(thread_name="stop-test")
    seen: list[object] = []
    d.subscribe_all(seen.append)
    for i in range(10):
        d.publish(NextValidId(i))
    d.start()
    d.stop(timeout=5)
    assert len(seen) == 10
    assert not d.is_running


def test_start_is_idempotent():
    d = EventDispatcher()
    d.start()
    first = d._thread
    d.start()
    assert d._thread is first
    d.stop()


def test_restart_after_timed_out_stop_keeps_one_worker():
    d = EventDispatcher(thread_name="restart-test")
    gate = threading.Event()
    seen: list[int] = []

    def slow(event):
        gate.wait(5)
        seen.append(event.order_id)

    d.subscribe(EventCategory.NEXT_VALID_ID, slow)
    d.start()
    first = d._thread
    d.publish(NextValidId(1))
    d.stop(timeout=0.05)
    assert d.is_running

    d.start()
    assert d._thread is first
    d.publish(NextValidId(2))
    d.publish(NextValidId(3))
    gate.set()
    assert d.drain(timeout=5)

    assert seen == [1, 2, 3]
    assert d.is_running
    workers = [t for t in threading.enumerate() if t.name == "restart-test"]
    assert workers == [first]

    d.stop(timeout=5)
    assert not d.is_running
    assert not first.is_alive()


def test_drain_times_out_when_not_running():
    d = EventDispatcher()
    d.publish(NextValidId(1))
    assert d.pending() == 1
    assert d.drain(timeout=0.05) is False


def test_from_config():
    from ibbridge.core.config import DispatchConfig

    d = EventDispatcher.from_config(DispatchConfig(thread_name="x", stop_timeout=1.0))
    assert d.thread_name == "x"
    assert d.stop_timeout == 1.0


@pytest.mark.asyncio
async def test_channel_feeds_asyncio_queue(dispatcher):
    queue = dispatcher.channel(EventCategory.NEXT_VALID_ID)
    dispatcher.publish(CurrentTime(None))  # type: ignore[arg-type]
    dispatcher.publish(NextValidId(3))
    dispatcher.publish(NextValidId(4))

    first = await asyncio.wait_for(queue.get(), timeout=5)
    second = await asyncio.wait_for(queue.get(), timeout=5)
    assert (first.order_id, second.order_id) == (3, 4)
    assert queue.empty()


@pytest.mark.asyncio
async def test_channel_for_all_categories(dispatcher):
    queue = dispatcher.channel()
    dispatcher.publish(NextValidId(1))
    dispatcher.publish(TickSize(2, TickType.ASK_SIZE, 10))
    got = [await asyncio.wait_for(queue.get(), timeout=5) for _ in range(2)]
    assert [type(e) for e in got] == [NextValidId, TickSize]

"""
Event fan-out

``publish`` only enqueues; a dedicated worker thread drains the FIFO queue
and calls every matching subscriber in subscription order. A failing
subscriber is logged and counted and does not affect the others.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from typing import Any

from ibbridge.core.config import DispatchConfig
from ibbridge.domain.events import DomainEvent, EventCategory
from ibbridge.observability import metrics
from ibbridge.types import Subscriber

logger = logging.getLogger(__name__)


class _StopToken:
    """Queued by stop(); only the most recent token ends the worker."""


class EventDispatcher:
    def __init__(self, thread_name: str = "ib-dispatch", stop_timeout: float = 5.0):
        self.thread_name = thread_name
        self.stop_timeout = stop_timeout
        self._queue: queue.Queue[Any] = queue.Queue()
        # (category or None for every category, callback), in subscription order
        self._subscriptions: list[tuple[EventCategory | None, Subscriber]] = []
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._state_lock = threading.Lock()
        self._active = False
        self._stop_token: _StopToken | None = None

    @classmethod
    def from_config(cls, config: DispatchConfig) -> EventDispatcher:
        return cls(config.thread_name, config.stop_timeout)

    # -------------- subscriptions -----------------
    def subscribe(self, category: EventCategory, callback: Subscriber) -> None:
        with self._lock:
            if (category, callback) not in self._subscriptions:
                self._subscriptions.append((category, callback))

    def subscribe_all(self, callback: Subscriber) -> None:
        with self._lock:
            if (None, callback) not in self._subscriptions:
                self._subscriptions.append((None, callback))

    def unsubscribe(
        self, callback: Subscriber, category: EventCategory | None = None
    ) -> None:
        """Remove a callback from one category, or from all when category is None."""
        with self._lock:
            self._subscriptions = [
                (cat, cb)
                for cat, cb in self._subscriptions
                if not (cb == callback and (category is None or cat == category))
            ]

    def channel(
        self,
        category: EventCategory | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.Queue[DomainEvent]:
        """Return an asyncio.Queue fed with events from the worker thread.

        Must be called from the loop's thread unless ``loop`` is given.
        """
        target = loop or asyncio.get_running_loop()
        q: asyncio.Queue[DomainEvent] = asyncio.Queue()

        def _forward(event: DomainEvent) -> None:
            if target.is_closed():
                self.unsubscribe(_forward)
                return
            target.call_soon_threadsafe(q.put_nowait, event)

        if category is None:
            self.subscribe_all(_forward)
        else:
            self.subscribe(category, _forward)
        return q

    # -------------- publishing -----------------
    def publish(self, event: DomainEvent) -> None:
        self._queue.put_nowait(event)
        metrics.inc(metrics.EVENTS_PUBLISHED)

    def _deliver(self, event: DomainEvent) -> None:
        category = event.category
        with self._lock:
            targets = [
                cb for cat, cb in self._subscriptions if cat is None or cat == category
            ]
        for callback in targets:
            try:
                callback(event)
            except Exception:
                metrics.inc(metrics.SUBSCRIBER_ERRORS)
                logger.exception(
                    "Subscriber %r failed on %s", callback, type(event).__name__
                )
        metrics.inc(metrics.EVENTS_DELIVERED)

    def _run(self) -> None:
        logger.debug("Dispatcher thread %s started", self.thread_name)
        while True:
            item = self._queue.get()
            try:
                if isinstance(item, _StopToken):
                    with self._state_lock:
                        if item is self._stop_token:
                            self._active = False
                            break
                    # left behind by a stop() that a later start() overrode
                    continue
                self._deliver(item)
            finally:
                self._queue.task_done()
        logger.debug("Dispatcher thread %s stopped", self.thread_name)

    # -------------- lifecycle -----------------
    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._active

    def start(self) -> None:
        """Start the worker, or keep the current one if it has not exited yet.

        There is never more than one worker draining the queue.
        """
        with self._state_lock:
            self._stop_token = None
            if self._active:
                return
            self._active = True
            self._thread = threading.Thread(
                target=self._run, name=self.thread_name, daemon=True
            )
            self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Deliver everything already queued, then stop the worker."""
        with self._state_lock:
            thread = self._thread
            if thread is None or not self._active:
                return
            token = _StopToken()
            self._stop_token = token
        self._queue.put_nowait(token)
        thread.join(self.stop_timeout if timeout is None else timeout)
        if thread.is_alive() and self.is_running:
            logger.warning(
                "Dispatcher thread %s did not stop within timeout; "
                "it exits once the queued events are delivered",
                self.thread_name,
            )

    def drain(self, timeout: float | None = None) -> bool:
        """Block until every queued event has been delivered; False on timeout."""
        with self._queue.all_tasks_done:
            return self._queue.all_tasks_done.wait_for(
                lambda: self._queue.unfinished_tasks == 0, timeout
            )

    def pending(self) -> int:
        return self._queue.qsize()

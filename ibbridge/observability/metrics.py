"""Process-wide counters for the receive and dispatch paths.

Counters are plain named integers. Labelled counters are stored under
``"<name>.<label>"`` so a snapshot stays a flat mapping.
"""

from __future__ import annotations

import logging
import threading
from time import time
from typing import Any

REQUESTS_SENT = "requests.sent"
REQUESTS_FAILED = "requests.failed"
REQUESTS_CANCELLED = "requests.cancelled"
CALLBACKS_RECEIVED = "callbacks.received"
EVENTS_PUBLISHED = "events.published"
EVENTS_DELIVERED = "events.delivered"
LATE_CALLBACKS_DISCARDED = "callbacks.late_discarded"
DECODE_FAILURES = "callbacks.decode_failures"
PROTOCOL_VIOLATIONS = "callbacks.protocol_violations"
UNKNOWN_REQUEST_IDS = "callbacks.unknown_request_ids"
SUBSCRIBER_ERRORS = "dispatch.subscriber_errors"

_logger = logging.getLogger(__name__)
_lock = threading.Lock()
_counters: dict[str, int] = {}


def inc(name: str, value: int = 1, label: str | None = None) -> None:
    key = f"{name}.{label}" if label else name
    with _lock:
        _counters[key] = _counters.get(key, 0) + value


def get(name: str, label: str | None = None) -> int:
    key = f"{name}.{label}" if label else name
    with _lock:
        return _counters.get(key, 0)


def snapshot(prefix: str = "") -> dict[str, int]:
    with _lock:
        return {k: v for k, v in _counters.items() if k.startswith(prefix)}


def reset() -> None:
    with _lock:
        _counters.clear()


def emit_event(event: str, **fields: Any) -> None:
    """Log one flat key=value line (grep friendly)."""
    payload = {"event": event, "ts": int(time()), **fields}
    _logger.info(" ".join(f"{k}={v}" for k, v in payload.items()))

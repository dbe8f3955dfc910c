"""
Request Identifier Registry

Tracks the request ids outstanding on one connection and the kind of request
each one belongs to. Retired ids are remembered (bounded) together with the
reason they were retired so late callbacks can be classified.

All public methods take the registry lock, so each call is atomic with
respect to the others.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from ibbridge.core.config import RegistryConfig
from ibbridge.core.error_handler import InvalidArgument, UnknownRequestId
from ibbridge.domain.request_kinds import RequestKind

logger = logging.getLogger(__name__)

MAX_REQUEST_ID = 2**31 - 1


class RetireReason(Enum):
    ENDED = "ended"
    CANCELLED = "cancelled"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PendingRequest:
    request_id: int
    kind: RequestKind
    created_at: datetime


class RequestRegistry:
    """Owned, thread-safe table of outstanding request ids."""

    def __init__(self, first_request_id: int = 1, retired_history: int = 1024):
        if not (0 <= first_request_id <= MAX_REQUEST_ID):
            raise InvalidArgument(f"first_request_id out of range: {first_request_id}")
        if retired_history < 0:
            raise InvalidArgument("retired_history must be non-negative")
        self._first_id = first_request_id
        self._next_id = first_request_id
        self._retired_history = retired_history
        self._pending: dict[int, PendingRequest] = {}
        self._progress: dict[int, tuple[int, int]] = {}
        self._retired: OrderedDict[int, RetireReason] = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RegistryConfig) -> RequestRegistry:
        return cls(config.first_request_id, config.retired_history)

    # -------------- allocation -----------------
    def allocate(self, kind: RequestKind) -> int:
        """Assign the next id that is not currently outstanding."""
        with self._lock:
            if len(self._pending) > MAX_REQUEST_ID - self._first_id:
                raise InvalidArgument("No free request ids")
            while True:
                candidate = self._next_id
                self._next_id = (
                    candidate + 1 if candidate < MAX_REQUEST_ID else self._first_id
                )
                if candidate not in self._pending:
                    self._add(candidate, kind)
                    return candidate

    def register(self, request_id: int, kind: RequestKind) -> PendingRequest:
        """Track a caller-assigned id."""
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            raise InvalidArgument(f"Request id must be an int, got {request_id!r}")
        if not (0 <= request_id <= MAX_REQUEST_ID):
            raise InvalidArgument(f"Request id out of range: {request_id}")
        with self._lock:
            if request_id in self._pending:
                raise InvalidArgument(f"Request id {request_id} is already pending")
            return self._add(request_id, kind)

    def _add(self, request_id: int, kind: RequestKind) -> PendingRequest:
        pending = PendingRequest(request_id, kind, datetime.now(UTC))
        self._pending[request_id] = pending
        self._retired.pop(request_id, None)
        return pending

    # -------------- retirement -----------------
    def retire(self, request_id: int, reason: RetireReason) -> PendingRequest | None:
        """Drop an outstanding id; returns None if it was not outstanding."""
        with self._lock:
            return self._retire(request_id, reason)

    def _retire(self, request_id: int, reason: RetireReason) -> PendingRequest | None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return None
        self._progress.pop(request_id, None)
        if self._retired_history:
            self._retired[request_id] = reason
            self._retired.move_to_end(request_id)
            while len(self._retired) > self._retired_history:
                self._retired.popitem(last=False)
        logger.debug(
            "Retired request %s (%s): %s",
            request_id,
            pending.kind.value,
            reason.value,
        )
        return pending

    def retire_all(self, reason: RetireReason) -> list[PendingRequest]:
        with self._lock:
            ids = sorted(self._pending)
            return [p for p in (self._retire(i, reason) for i in ids) if p is not None]

    def retired_reason(self, request_id: int) -> RetireReason | None:
        with self._lock:
            return self._retired.get(request_id)

    # -------------- queries -----------------
    def lookup(self, request_id: int) -> RequestKind:
        with self._lock:
            pending = self._pending.get(request_id)
        if pending is None:
            raise UnknownRequestId(request_id)
        return pending.kind

    def get(self, request_id: int) -> PendingRequest | None:
        with self._lock:
            return self._pending.get(request_id)

    def active(self) -> list[PendingRequest]:
        with self._lock:
            return [self._pending[i] for i in sorted(self._pending)]

    def record_progress(self, request_id: int, index: int, total: int) -> bool:
        """Accept a (record index, record total) pair for an outstanding id.

        Indexes are 1-based, may not go backwards and the total may not change
        within one request lifetime.
        """
        with self._lock:
            if request_id not in self._pending:
                return False
            if total < 1 or not (1 <= index <= total):
                return False
            previous = self._progress.get(request_id)
            if previous is not None:
                last_index, last_total = previous
                if total != last_total or index < last_index:
                    return False
            self._progress[request_id] = (index, total)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._pending

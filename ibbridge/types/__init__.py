"""Type definitions shared across the adapter."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeAlias

# Subscriber callables receive one DomainEvent (or an ErrorReport for
# error-category callbacks)
Subscriber: TypeAlias = Callable[[Any], None]


__all__ = ["Subscriber"]

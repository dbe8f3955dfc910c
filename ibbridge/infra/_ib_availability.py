"""Runtime detection for the optional ``ibapi`` package.

The core adapter never imports ``ibapi``. Only the bridge in
``ibapi_transport`` needs it, and that module checks ``ibapi_available()``
before touching the vendor classes.
"""

from __future__ import annotations

import os
from functools import lru_cache


class IBUnavailableError(RuntimeError):
    """Raised when the ibapi bridge is used without the dependency."""


@lru_cache(maxsize=1)
def ibapi_available() -> bool:
    """Return True only if the real ``ibapi`` package can be imported.

    IBBRIDGE_DISABLE_IBAPI=1 forces unavailability (used in tests).
    """
    if os.getenv("IBBRIDGE_DISABLE_IBAPI", "") == "1":
        return False
    try:  # pragma: no cover - trivial branch
        import ibapi.client  # noqa: F401
        import ibapi.wrapper  # noqa: F401
    except ModuleNotFoundError:
        return False
    else:
        return True


def require_ibapi() -> None:
    if not ibapi_available():
        raise IBUnavailableError(
            "Interactive Brokers dependency 'ibapi' not installed. "
            "Install with 'pip install .[ibkr]'."
        )


__all__ = ["ibapi_available", "require_ibapi", "IBUnavailableError"]

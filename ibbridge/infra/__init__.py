"""Infrastructure layer public exports (lazy, optional IB dependency).

``import ibbridge.infra`` never imports ``ibapi``. The vendor bridge is
loaded by ``create_ibapi_client`` only when it is first called, so the
facade runs against any ``Transport`` without the ``[ibkr]`` extra.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ._ib_availability import IBUnavailableError, ibapi_available, require_ibapi
from .ib_client import IBClient
from .transport import CallbackSink, Transport

if TYPE_CHECKING:  # pragma: no cover - static typing only
    from ibbridge.core.config import AdapterConfig


def create_ibapi_client(config: AdapterConfig | None = None) -> IBClient:
    """Build an ``IBClient`` over the ibapi socket bridge."""
    require_ibapi()
    from .ibapi_transport import IbapiTransport

    return IBClient(IbapiTransport(), config=config)


__all__ = [
    "CallbackSink",
    "IBClient",
    "IBUnavailableError",
    "Transport",
    "create_ibapi_client",
    "ibapi_available",
    "require_ibapi",
]

# Centralized error handling and exception hierarchy for the protocol adapter

import logging
import threading
import traceback
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ibbridge.types import Subscriber


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    ARGUMENT = "argument"
    DATA = "data"
    CORRELATION = "correlation"
    PROTOCOL = "protocol"
    CONNECTION = "connection"
    SYSTEM = "system"


# Custom Exception Hierarchy
class AdapterError(Exception):
    """Base exception for the adapter"""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or {}
        self.timestamp = datetime.now(UTC)


class InvalidArgument(AdapterError, ValueError):
    """Caller-supplied parameter violates a documented constraint"""

    def __init__(
        self, message: str, severity: ErrorSeverity = ErrorSeverity.HIGH, **kwargs: Any
    ):
        super().__init__(message, ErrorCategory.ARGUMENT, severity, **kwargs)


class MalformedData(AdapterError):
    """A reply field could not be decoded"""

    def __init__(
        self,
        message: str,
        raw: Any = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        **kwargs: Any,
    ):
        super().__init__(message, ErrorCategory.DATA, severity, **kwargs)
        self.raw = raw
        self.context.setdefault("raw", raw)


class UnknownRequestId(AdapterError, LookupError):
    """The request id is not currently pending"""

    def __init__(
        self,
        request_id: int,
        severity: ErrorSeverity = ErrorSeverity.LOW,
        **kwargs: Any,
    ):
        super().__init__(
            f"Unknown request id {request_id}",
            ErrorCategory.CORRELATION,
            severity,
            **kwargs,
        )
        self.request_id = request_id
        self.context.setdefault("reqId", request_id)


class UnknownEnumValue(AdapterError, LookupError):
    """A wire value has no entry in its code table"""

    def __init__(
        self,
        enum_name: str,
        raw: Any,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        **kwargs: Any,
    ):
        super().__init__(
            f"Unknown {enum_name} wire value {raw!r}",
            ErrorCategory.DATA,
            severity,
            **kwargs,
        )
        self.enum_name = enum_name
        self.raw = raw
        self.context.setdefault("raw", raw)


class ProtocolError(AdapterError):
    """Error reported by the server through the error callback"""

    def __init__(
        self,
        request_id: int,
        code: int,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        **kwargs: Any,
    ):
        super().__init__(message, ErrorCategory.PROTOCOL, severity, **kwargs)
        self.request_id = request_id
        self.code = code
        self.context.setdefault("reqId", request_id)
        self.context.setdefault("errorCode", code)


class ProtocolViolation(AdapterError):
    """Reply sequence breaks a correlation invariant (data after End, wrong kind)"""

    def __init__(
        self,
        message: str,
        request_id: int | None = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        **kwargs: Any,
    ):
        super().__init__(message, ErrorCategory.PROTOCOL, severity, **kwargs)
        self.request_id = request_id
        if request_id is not None:
            self.context.setdefault("reqId", request_id)


@dataclass
class ErrorReport:
    """Structured error report"""

    error_id: str
    timestamp: datetime
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    error_type: str
    traceback: str
    context: dict[str, Any]
    module: str
    function: str


class ErrorHandler:
    """Centralized error reporting with bounded history"""

    def __init__(self, logger: logging.Logger | None = None, history_size: int = 100):
        self.logger = logger or logging.getLogger(__name__)
        self.history_size = history_size
        self.error_count = 0
        self.error_history: list[ErrorReport] = []
        self.error_callbacks: dict[ErrorCategory, Subscriber] = {}
        self._lock = threading.Lock()

    def handle_error(
        self,
        error: Exception,
        context: dict[str, Any] | None = None,
        module: str = "",
        function: str = "",
    ) -> ErrorReport:
        """Log an error, keep it in history and run the category callback"""

        if isinstance(error, AdapterError):
            category = error.category
            severity = error.severity
            message = error.message
            error_context = {**(error.context or {}), **(context or {})}
        else:
            category = ErrorCategory.SYSTEM
            severity = ErrorSeverity.MEDIUM
            message = str(error)
            error_context = context or {}

        with self._lock:
            self.error_count += 1
            now = datetime.now(UTC)
            error_report = ErrorReport(
                error_id=f"ERR_{now.strftime('%Y%m%d_%H%M%S')}_{self.error_count:04d}",
                timestamp=now,
                category=category,
                severity=severity,
                message=message,
                error_type=type(error).__name__,
                traceback="".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                ),
                context=error_context,
                module=module,
                function=function,
            )
            self.error_history.append(error_report)
            if len(self.error_history) > self.history_size:
                self.error_history.pop(0)
            callback = self.error_callbacks.get(category)

        self._log_error(error_report)

        if callback is not None:
            try:
                callback(error_report)
            except Exception as callback_error:
                self.logger.error("Error in error callback: %s", callback_error)

        return error_report

    def _log_error(self, error_report: ErrorReport):
        """Log error with appropriate level"""
        log_message = (
            f"[{error_report.error_id}] {error_report.category.value.upper()} "
            f"{error_report.error_type}: {error_report.message}"
        )

        if error_report.context:
            log_message += f" | Context: {error_report.context}"

        if error_report.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(log_message)
            self.logger.critical("Traceback: %s", error_report.traceback)
        elif error_report.severity == ErrorSeverity.HIGH:
            self.logger.error(log_message)
            self.logger.debug("Traceback: %s", error_report.traceback)
        elif error_report.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(log_message)
        else:  # LOW
            self.logger.info(log_message)

    def register_error_callback(self, category: ErrorCategory, callback: Subscriber):
        """Register a callback for specific error categories"""
        with self._lock:
            self.error_callbacks[category] = callback

    def get_error_summary(self) -> dict[str, Any]:
        """Get summary of recent errors"""
        with self._lock:
            history = list(self.error_history)

        category_counts: dict[str, int] = {}
        type_counts: dict[str, int] = {}
        for error in history:
            category_counts[error.category.value] = (
                category_counts.get(error.category.value, 0) + 1
            )
            type_counts[error.error_type] = type_counts.get(error.error_type, 0) + 1

        return {
            "total_errors": len(history),
            "by_category": category_counts,
            "by_type": type_counts,
            "recent_errors": [
                {
                    "id": error.error_id,
                    "timestamp": error.timestamp.isoformat(),
                    "category": error.category.value,
                    "type": error.error_type,
                    "message": error.message,
                }
                for error in history[-10:]
            ],
        }

    def clear_error_history(self):
        """Clear error history"""
        with self._lock:
            self.error_history.clear()
            self.error_count = 0


# Global error handler instance
_error_handler: ErrorHandler | None = None


def get_error_handler() -> ErrorHandler:
    """Get global error handler instance"""
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler()
    return _error_handler


def handle_error(
    error: Exception,
    context: dict[str, Any] | None = None,
    module: str = "",
    function: str = "",
) -> ErrorReport:
    """Handle an error using the global error handler"""
    return get_error_handler().handle_error(error, context, module, function)

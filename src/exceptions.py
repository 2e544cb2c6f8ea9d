"""Custom exception hierarchy for TickerLens.

This module defines domain-specific exceptions that provide semantic clarity
and enable targeted error handling throughout the extraction pipeline. Each
exception includes contextual information to aid debugging and observability.

Most extraction exceptions are not failures: ParseSkip, SourceUnavailable
and ConcurrentScanAborted are raised at the point of detection and caught one
layer up, where the affected fragment degrades to "field absent". Only store
and startup errors propagate to the host.
"""

from datetime import UTC, datetime
from typing import Any


class TickerLensError(Exception):
    """Base exception for all TickerLens errors.

    All custom exceptions inherit from this base, enabling blanket catches
    for application-specific errors while distinguishing from system errors.

    Attributes:
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


class ParseSkip(TickerLensError):
    """Raised when a single occurrence or cell cannot be normalized.

    The pipeline catches this, drops the fragment and moves on to the
    next occurrence of the same field.
    """

    def __init__(self, key: str, value: Any, reason: str) -> None:
        super().__init__(
            message=f"Skipped value for '{key}': {reason}",
            context={"key": key, "value": value, "reason": reason},
        )
        self.key = key
        self.value = value
        self.reason = reason


class SourceUnavailable(TickerLensError):
    """Raised when a scan strategy finds none of its structural anchors.

    The strategy yields nothing; the remaining strategies still run.
    """

    def __init__(self, strategy: str, reason: str) -> None:
        super().__init__(
            message=f"Strategy '{strategy}' found nothing to scan: {reason}",
            context={"strategy": strategy, "reason": reason},
        )
        self.strategy = strategy


class ConcurrentScanAborted(TickerLensError):
    """Raised when a scan is requested while one is in flight on the same snapshot.

    Informational: the second request is a no-op.
    """

    def __init__(self, snapshot_id: int) -> None:
        super().__init__(
            message="Scan already in progress for snapshot",
            context={"snapshot_id": snapshot_id},
        )
        self.snapshot_id = snapshot_id


class StoreError(TickerLensError):
    """Raised when the ticker store cannot read or write a record.

    Common causes include I/O errors and stored payloads that no longer
    validate against the record schema.
    """

    def __init__(self, symbol: str, reason: str, path: str | None = None) -> None:
        super().__init__(
            message=f"Ticker store operation failed for '{symbol}': {reason}",
            context={"symbol": symbol, "reason": reason, "path": path},
        )
        self.symbol = symbol


class UnknownSourceError(TickerLensError):
    """Raised when a source location matches no registered source profile."""

    def __init__(self, location: str) -> None:
        super().__init__(
            message=f"No source profile matches '{location}'",
            context={"location": location},
        )


class LoggingInitializationError(TickerLensError):
    """Raised when the logging system fails to initialize.

    This is a startup-blocking error - the host cannot proceed
    without a functioning logging infrastructure.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )

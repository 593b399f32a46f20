"""Exception and warning types raised by the analytics core."""

from typing import Optional


class InputValidationError(ValueError):
    """Malformed request parameters, rejected before any data is fetched."""


class InsufficientDataError(Exception):
    """Not enough qualifying records, even after widening the lookback window."""

    def __init__(self, reason: str, window=None):
        super().__init__(reason)
        self.reason = reason
        self.window = window


class UpstreamFetchError(RuntimeError):
    """The telemetry store could not be read or written."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class MalformedTelemetryWarning(UserWarning):
    """Samples with implausible fields were skipped."""

"""Telemetry storage."""

from .base import TelemetryStore
from .database.manager import DatabaseManager

__all__ = ["DatabaseManager", "TelemetryStore"]

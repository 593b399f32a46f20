"""Data models for telemetry inputs and analysis results."""

from .telemetry import ActivitySummary, ProfileEntry, TelemetrySample

__all__ = ["ActivitySummary", "ProfileEntry", "TelemetrySample"]

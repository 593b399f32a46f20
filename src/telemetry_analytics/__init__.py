"""Telemetry analytics core: climbs, FTP, cadence and performance trends."""

from .service import TelemetryAnalytics

__all__ = ["TelemetryAnalytics"]

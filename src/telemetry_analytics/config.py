"""Centralized configuration for the telemetry analytics core."""

import os
from pathlib import Path

from pydantic import BaseModel, Field


def default_data_dir() -> Path:
    """``TELEMETRY_DATA_DIR``, else ``data/`` under the working directory."""
    return Path(os.environ.get("TELEMETRY_DATA_DIR", Path.cwd() / "data"))


# Base paths
DATA_DIR = default_data_dir()

# Database configuration
DATABASE_PATH = os.environ.get(
    "TELEMETRY_DB_PATH",
    str(DATA_DIR / "telemetry_analytics.db")
)

# Input bounds
MIN_PERIOD_MONTHS = 1
MAX_PERIOD_MONTHS = 24
MIN_FTP_WATTS = 50
MAX_FTP_WATTS = 600

# Sample plausibility
MIN_PLAUSIBLE_ELEVATION_M = -500.0
MAX_PLAUSIBLE_ELEVATION_M = 9000.0
MIN_REALISTIC_CADENCE_RPM = 40
MAX_REALISTIC_CADENCE_RPM = 140

# Monthly series lengths
CLIMB_TREND_MONTHS = 8
SEASONAL_TREND_MONTHS = 12

# Power durations (seconds)
POWER_CURVE_DURATIONS = [300, 600, 1200, 1800, 3600]
POWER_BEST_DURATIONS = [5, 15, 30, 60, 300, 600, 1200, 1800, 3600, 5400]

# FTP estimates at or above this confidence may be flagged reliable
RELIABLE_CONFIDENCE = 0.8


class ClimbDetectionConfig(BaseModel):
    """Parameters for climb extraction and validation."""

    smoothing_half_window: int = 5
    min_points: int = 10
    start_threshold_m: float = 2.0
    descent_threshold_m: float = 5.0

    min_distance_km: float = 0.5
    min_elevation_m: float = 100.0
    min_gradient_pct: float = 3.0
    max_gradient_pct: float = 25.0
    min_vam: float = 200.0
    max_vam: float = 3000.0


class GroupingConfig(BaseModel):
    """Tolerances for recognising the same climb across activities."""

    distance_tolerance: float = 0.20
    elevation_tolerance: float = 0.15
    max_groups: int = 20
    trend_threshold: float = 0.05


class LookbackConfig(BaseModel):
    """Window chain and per-analysis minimum record counts."""

    windows_months: list[int] = Field(default_factory=lambda: [12, 18, 24, 36])
    trend_windows_months: list[int] = Field(default_factory=lambda: [3, 6, 12, 24, 36])
    min_climbs: int = 1
    min_ftp_activities: int = 3
    min_cadence_activities: int = 2
    min_trend_activities: int = 2

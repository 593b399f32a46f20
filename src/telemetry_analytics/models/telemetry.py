"""Telemetry input models: samples, activity summaries and profile history."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telemetry_analytics.config import (
    MAX_PLAUSIBLE_ELEVATION_M,
    MIN_PLAUSIBLE_ELEVATION_M,
)


class TelemetrySample(BaseModel):
    """One second of an activity."""
    model_config = ConfigDict(frozen=True)

    timestamp: dt.datetime
    lat: Optional[float] = None
    lng: Optional[float] = None
    elevation_m: Optional[float] = None
    power_w: Optional[float] = None
    cadence_rpm: Optional[float] = None
    heart_rate_bpm: Optional[float] = None

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def valid_elevation(self) -> Optional[float]:
        """Elevation if present and physically plausible."""
        if self.elevation_m is None:
            return None
        if not MIN_PLAUSIBLE_ELEVATION_M <= self.elevation_m <= MAX_PLAUSIBLE_ELEVATION_M:
            return None
        return self.elevation_m

    @property
    def valid_power(self) -> Optional[float]:
        if self.power_w is None or self.power_w < 0:
            return None
        return self.power_w

    @property
    def is_malformed(self) -> bool:
        """True when a recorded field is outside its plausible range."""
        bad_elevation = self.elevation_m is not None and self.valid_elevation is None
        bad_power = self.power_w is not None and self.power_w < 0
        return bad_elevation or bad_power


class ActivitySummary(BaseModel):
    """One completed activity as supplied by the telemetry store."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    # Core identifiers
    id: str
    athlete_id: str
    date: dt.date
    title: str = ""

    # Duration and distance
    duration_s: float
    distance_m: Optional[float] = None
    elevation_gain_m: Optional[float] = None

    # Power data
    avg_power_w: Optional[float] = None
    normalized_power_w: Optional[float] = None
    max_power_w: Optional[float] = None
    intensity_factor: Optional[float] = None
    tss: Optional[float] = None

    # Cadence and heart rate
    avg_cadence_rpm: Optional[float] = None
    avg_heart_rate_bpm: Optional[float] = None

    # Attached best average power per duration (seconds -> watts)
    power_bests: dict[int, float] = Field(default_factory=dict)

    samples: Optional[list[TelemetrySample]] = None

    @field_validator("title", mode="before")
    @classmethod
    def default_title(cls, v):
        """Treat a missing title as empty."""
        return v if v is not None else ""

    @property
    def has_power(self) -> bool:
        return self.avg_power_w is not None and self.avg_power_w > 0

    @property
    def effort_power_w(self) -> Optional[float]:
        """Normalized power when recorded, otherwise average power."""
        return self.normalized_power_w or self.avg_power_w


class ProfileEntry(BaseModel):
    """Athlete profile values in force from ``effective_date``."""
    model_config = ConfigDict(frozen=True)

    athlete_id: str
    effective_date: dt.date
    ftp_w: Optional[float] = None
    weight_kg: Optional[float] = None

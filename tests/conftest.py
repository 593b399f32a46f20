"""Pytest configuration and fixtures."""

from datetime import date, datetime, timedelta

import pytest

from telemetry_analytics.models.analysis import ClimbCategory, ClimbRecord
from telemetry_analytics.models.telemetry import ActivitySummary, ProfileEntry, TelemetrySample
from telemetry_analytics.service import TelemetryAnalytics
from telemetry_analytics.storage.database.manager import DatabaseManager

REFERENCE_DATE = date(2024, 6, 15)

# Metres per degree of latitude on a 6371 km sphere
METRES_PER_DEGREE = 111194.93


def build_samples(segments, start=None, base_elevation=500.0, power=None, cadence=None, heart_rate=None):
    """Build 1 Hz samples moving due north through profile segments.

    Args:
        segments: (distance_m, elevation_change_m, duration_s) per segment
        start: Timestamp of the first sample
        base_elevation: Starting elevation
        power, cadence, heart_rate: Constant values for every sample
    """
    start = start or datetime(2024, 5, 1, 8, 0, 0)
    lat, elevation, t = 45.0, base_elevation, 0
    samples = [
        TelemetrySample(
            timestamp=start, lat=lat, lng=7.0, elevation_m=elevation,
            power_w=power, cadence_rpm=cadence, heart_rate_bpm=heart_rate,
        )
    ]
    for distance_m, elevation_change_m, duration_s in segments:
        step_lat = distance_m / duration_s / METRES_PER_DEGREE
        step_elevation = elevation_change_m / duration_s
        for _ in range(int(duration_s)):
            t += 1
            lat += step_lat
            elevation += step_elevation
            samples.append(TelemetrySample(
                timestamp=start + timedelta(seconds=t), lat=lat, lng=7.0, elevation_m=elevation,
                power_w=power, cadence_rpm=cadence, heart_rate_bpm=heart_rate,
            ))
    return samples


def make_activity(activity_id, activity_date, title="Morning Ride", duration_s=3600, **fields):
    return ActivitySummary(
        id=activity_id,
        athlete_id=fields.pop("athlete_id", "athlete-1"),
        date=activity_date,
        title=title,
        duration_s=duration_s,
        **fields,
    )


def make_record(climb_id, distance_km, elevation_m, vam=1000.0, record_date=date(2024, 5, 1), **fields):
    return ClimbRecord(
        climb_id=climb_id,
        name=fields.pop("name", f"Climb {climb_id}"),
        category=fields.pop("category", ClimbCategory.CAT3),
        distance_km=distance_km,
        elevation_m=elevation_m,
        avg_gradient_pct=round(elevation_m / (distance_km * 1000) * 100, 1),
        duration_s=fields.pop("duration_s", elevation_m / vam * 3600),
        vam_m_per_h=vam,
        activity_id=fields.pop("activity_id", climb_id.split("_")[0]),
        date=record_date,
        **fields,
    )


@pytest.fixture
def sample_builder():
    """Factory for synthetic 1 Hz sample sequences."""
    return build_samples


@pytest.fixture
def activity_factory():
    """Factory for activity summaries."""
    return make_activity


@pytest.fixture
def record_factory():
    """Factory for climb records."""
    return make_record


@pytest.fixture
def linear_climb_samples():
    """0 to 400 m over 4 km in an hour."""
    return build_samples([(4000, 400, 3600)], base_elevation=0.0, power=250, cadence=80, heart_rate=150)


@pytest.fixture
def db(tmp_path):
    """Database manager on a temporary SQLite file."""
    return DatabaseManager(str(tmp_path / "telemetry_test.db"))


@pytest.fixture
def analytics(db):
    """Analytics service with a fixed reference date."""
    return TelemetryAnalytics(db, today=lambda: REFERENCE_DATE)


@pytest.fixture
def profile_history():
    """FTP rising 5 W a month through the first half of 2024, most recent first."""
    entries = [
        ProfileEntry(
            athlete_id="athlete-1",
            effective_date=date(2024, month, 1),
            ftp_w=250 + 5 * (month - 1),
            weight_kg=70.0,
        )
        for month in range(1, 7)
    ]
    return list(reversed(entries))

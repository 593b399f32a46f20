"""Numeric helpers shared by the analytics components."""

import calendar
import logging
import warnings
from datetime import date
from typing import Optional, Sequence

import numpy as np

from telemetry_analytics.errors import MalformedTelemetryWarning
from telemetry_analytics.models.telemetry import TelemetrySample

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def haversine_m(lats: Sequence[float], lngs: Sequence[float]) -> np.ndarray:
    """Great-circle distance between consecutive points.

    Args:
        lats: Latitudes in degrees
        lngs: Longitudes in degrees

    Returns:
        Array of ``len(lats) - 1`` step distances in metres
    """
    lat = np.radians(np.asarray(lats, dtype=float))
    lng = np.radians(np.asarray(lngs, dtype=float))
    if lat.size < 2:
        return np.zeros(0)

    dlat = np.diff(lat)
    dlng = np.diff(lng)
    a = np.sin(dlat / 2) ** 2 + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def path_distance_km(samples: Sequence[TelemetrySample]) -> float:
    """Sum of haversine steps over the samples that carry a position."""
    positioned = [s for s in samples if s.has_position]
    if len(positioned) < 2:
        return 0.0
    steps = haversine_m([s.lat for s in positioned], [s.lng for s in positioned])
    return float(steps.sum()) / 1000


def centered_moving_average(values: Sequence[float], half_window: int = 5) -> list[float]:
    """Unweighted centered mean over ``2 * half_window + 1`` points.

    The first and last ``half_window`` points are returned unchanged, as is
    any sequence shorter than a full window.
    """
    arr = np.asarray(values, dtype=float)
    width = 2 * half_window + 1
    if half_window <= 0 or arr.size < width:
        return arr.tolist()

    smoothed = arr.copy()
    kernel = np.ones(width) / width
    smoothed[half_window:arr.size - half_window] = np.convolve(arr, kernel, mode="valid")
    return smoothed.tolist()


def mean_or_none(values: Sequence[Optional[float]]) -> Optional[float]:
    """Mean of the non-null values, ``None`` when there are none."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return float(np.mean(present))


def months_ago(reference: date, months: int) -> date:
    """Same day ``months`` calendar months before ``reference`` (clamped to month end)."""
    total = reference.year * 12 + (reference.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(reference.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_keys(reference: date, count: int) -> list[str]:
    """The ``count`` calendar months ending with the reference month, oldest first."""
    return [month_key(months_ago(reference.replace(day=1), i)) for i in range(count - 1, -1, -1)]


def month_end(key: str) -> date:
    year, month = (int(part) for part in key.split("-"))
    return date(year, month, calendar.monthrange(year, month)[1])


def check_samples(samples: Sequence[TelemetrySample], activity_id: str) -> None:
    """Warn about samples with implausible fields, stating how many.

    Malformed samples stay in the sequence; each consumer skips the fields it
    cannot use.
    """
    malformed = sum(1 for s in samples if s.is_malformed)
    if malformed:
        message = f"Activity {activity_id}: {malformed} of {len(samples)} samples have implausible values"
        logger.warning(message)
        warnings.warn(message, MalformedTelemetryWarning, stacklevel=2)


def rolling_power_bests(
    samples: Sequence[TelemetrySample],
    durations: Sequence[int],
) -> dict[int, float]:
    """Best average power over each duration from 1 Hz samples.

    Missing or negative power counts as zero. Durations longer than the
    activity are omitted.
    """
    power = np.array(
        [s.valid_power if s.valid_power is not None else 0.0 for s in samples],
        dtype=float,
    )
    cumulative = np.concatenate(([0.0], np.cumsum(power)))

    bests = {}
    for duration in durations:
        if duration <= 0 or duration > power.size:
            continue
        window_sums = cumulative[duration:] - cumulative[:-duration]
        bests[duration] = round(float(window_sums.max()) / duration, 1)
    return bests

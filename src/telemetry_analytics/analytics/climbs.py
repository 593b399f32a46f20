"""Climb extraction from per-second elevation telemetry."""

import logging
from typing import Optional, Protocol, Sequence

from telemetry_analytics.analytics.statistics import (
    centered_moving_average,
    check_samples,
    mean_or_none,
    path_distance_km,
)
from telemetry_analytics.config import ClimbDetectionConfig
from telemetry_analytics.models.analysis import ClimbCandidate, ClimbCategory, ClimbRecord
from telemetry_analytics.models.telemetry import ActivitySummary, TelemetrySample

logger = logging.getLogger(__name__)

# Upper elevation bound (exclusive) per category
CATEGORY_LIMITS = [
    (300, ClimbCategory.CAT4),
    (600, ClimbCategory.CAT3),
    (900, ClimbCategory.CAT2),
    (1500, ClimbCategory.CAT1),
]


def classify_climb(elevation_m: float) -> ClimbCategory:
    """Category from total elevation gain."""
    for limit, category in CATEGORY_LIMITS:
        if elevation_m < limit:
            return category
    return ClimbCategory.HC


class Segmenter(Protocol):
    """Splits a smoothed elevation profile into ascent candidates."""

    def segment(self, elevations: Sequence[float]) -> list[ClimbCandidate]:
        ...


class ThresholdSegmenter:
    """Greedy ascent/descent state machine with hysteresis.

    A climb starts once elevation rises ``start_threshold_m`` above the lowest
    point seen since the previous climb, and ends at its summit once elevation
    falls ``descent_threshold_m`` below the running maximum.
    """

    def __init__(self, start_threshold_m: float = 2.0, descent_threshold_m: float = 5.0):
        self.start_threshold_m = start_threshold_m
        self.descent_threshold_m = descent_threshold_m

    def segment(self, elevations: Sequence[float]) -> list[ClimbCandidate]:
        candidates = []
        climbing = False
        base = 0
        summit = 0

        for i, elevation in enumerate(elevations):
            if not climbing:
                if elevation < elevations[base]:
                    base = i
                elif elevation - elevations[base] > self.start_threshold_m:
                    climbing = True
                    summit = i
                continue

            if elevation > elevations[summit]:
                summit = i
            elif elevations[summit] - elevation > self.descent_threshold_m:
                candidates.append(ClimbCandidate(start_index=base, end_index=summit))
                climbing = False
                base = i

        if climbing:
            candidates.append(ClimbCandidate(start_index=base, end_index=summit))

        return candidates


class ClimbExtractor:
    """Turn an activity's samples into validated, classified climb records."""

    def __init__(
        self,
        config: Optional[ClimbDetectionConfig] = None,
        segmenter: Optional[Segmenter] = None,
    ):
        """Initialize climb extractor.

        Args:
            config: Detection and validation parameters (defaults if None)
            segmenter: Segmentation strategy (threshold state machine if None)
        """
        self.config = config or ClimbDetectionConfig()
        self.segmenter = segmenter or ThresholdSegmenter(
            self.config.start_threshold_m,
            self.config.descent_threshold_m,
        )

    def extract(
        self,
        activity: ActivitySummary,
        samples: Optional[Sequence[TelemetrySample]] = None,
    ) -> list[ClimbRecord]:
        """Extract climbs from one activity.

        Args:
            activity: Activity the samples belong to
            samples: Ordered samples (uses ``activity.samples`` if None)

        Returns:
            Validated climb records in the order they were ridden
        """
        if samples is None:
            samples = activity.samples or []
        check_samples(samples, activity.id)

        points = [s for s in samples if s.valid_elevation is not None]
        if len(points) < self.config.min_points:
            logger.debug(f"Activity {activity.id}: {len(points)} usable points, skipping")
            return []

        smoothed = centered_moving_average(
            [p.elevation_m for p in points],
            self.config.smoothing_half_window,
        )

        climbs: list[ClimbRecord] = []
        for candidate in self.segmenter.segment(smoothed):
            record = self._build_record(activity, points, smoothed, candidate, len(climbs))
            if record is not None:
                climbs.append(record)

        logger.debug(f"Activity {activity.id}: {len(climbs)} climbs detected")
        return climbs

    def validate(
        self,
        distance_km: float,
        elevation_m: float,
        duration_s: float,
    ) -> Optional[str]:
        """Check a segment against the plausibility bounds.

        Returns:
            Rejection reason, or None if the segment is a valid climb
        """
        cfg = self.config
        if distance_km < cfg.min_distance_km:
            return f"distance {distance_km:.2f} km below {cfg.min_distance_km}"
        if elevation_m < cfg.min_elevation_m:
            return f"elevation {elevation_m:.0f} m below {cfg.min_elevation_m}"
        if duration_s <= 0:
            return "non-positive duration"

        gradient = elevation_m / (distance_km * 1000) * 100
        if not cfg.min_gradient_pct <= gradient <= cfg.max_gradient_pct:
            return f"gradient {gradient:.1f}% out of range"

        vam = elevation_m / (duration_s / 3600)
        if not cfg.min_vam <= vam <= cfg.max_vam:
            return f"VAM {vam:.0f} m/h out of range"

        return None

    def _build_record(
        self,
        activity: ActivitySummary,
        points: list[TelemetrySample],
        smoothed: list[float],
        candidate: ClimbCandidate,
        climb_index: int,
    ) -> Optional[ClimbRecord]:
        segment = points[candidate.start_index:candidate.end_index + 1]
        distance_km = path_distance_km(segment)
        elevation_m = smoothed[candidate.end_index] - smoothed[candidate.start_index]
        duration_s = (segment[-1].timestamp - segment[0].timestamp).total_seconds()

        reason = self.validate(distance_km, elevation_m, duration_s)
        if reason is not None:
            logger.debug(
                f"Activity {activity.id}: rejected candidate "
                f"{candidate.start_index}-{candidate.end_index}: {reason}"
            )
            return None

        avg_power = mean_or_none([s.valid_power for s in segment])
        avg_hr = mean_or_none([s.heart_rate_bpm for s in segment])
        avg_cadence = mean_or_none([s.cadence_rpm for s in segment])

        return ClimbRecord(
            climb_id=f"{activity.id}_{climb_index}",
            name=climb_name(activity.title, climb_index, distance_km, elevation_m),
            category=classify_climb(elevation_m),
            distance_km=round(distance_km, 2),
            elevation_m=round(elevation_m),
            avg_gradient_pct=round(elevation_m / (distance_km * 1000) * 100, 1),
            duration_s=duration_s,
            vam_m_per_h=round(elevation_m / (duration_s / 3600)),
            avg_power_w=round(avg_power) if avg_power is not None else None,
            avg_heart_rate_bpm=round(avg_hr) if avg_hr is not None else None,
            avg_cadence_rpm=round(avg_cadence) if avg_cadence is not None else None,
            activity_id=activity.id,
            date=activity.date,
        )


def climb_name(title: str, climb_index: int, distance_km: float, elevation_m: float) -> str:
    """Display name for the ``climb_index``-th (0-based) climb of an activity."""
    if title and title.lower() != "untitled":
        return title if climb_index == 0 else f"{title} - Climb {climb_index + 1}"
    return f"Climb {distance_km:.1f}km +{elevation_m:.0f}m"

"""Power curve and FTP estimation from activity summaries."""

import logging
import re
from typing import NamedTuple, Optional, Protocol, Sequence

from telemetry_analytics.config import POWER_CURVE_DURATIONS, RELIABLE_CONFIDENCE
from telemetry_analytics.models.analysis import (
    FTPEstimate,
    FTPMethod,
    PowerCurvePoint,
    WorkoutType,
)
from telemetry_analytics.models.telemetry import ActivitySummary

logger = logging.getLogger(__name__)


class MethodSpec(NamedTuple):
    factor: float
    confidence: float


FTP_METHODS = {
    FTPMethod.TWENTY_MINUTE_TEST: MethodSpec(0.95, 0.95),
    FTPMethod.EIGHT_MINUTE_TEST: MethodSpec(0.90, 0.85),
    FTPMethod.SIXTY_MINUTE_POWER: MethodSpec(1.00, 0.98),
    FTPMethod.THRESHOLD_WORKOUTS: MethodSpec(1.05, 0.75),
    FTPMethod.CRITICAL_POWER: MethodSpec(1.00, 0.80),
}

# Accepted test durations in seconds, checked in this order
TEST_BANDS = [
    (1140, 1260, FTPMethod.TWENTY_MINUTE_TEST),
    (450, 540, FTPMethod.EIGHT_MINUTE_TEST),
    (3540, 3660, FTPMethod.SIXTY_MINUTE_POWER),
]

TEST_PATTERNS = [
    r"ftp.*test", r"test.*ftp", r"20.*min.*test", r"8.*min.*test",
    r"threshold.*test", r"test.*threshold", r"cp.*test", r"test.*cp",
]
CLIMB_PATTERNS = [r"salita", r"climb", r"ascent", r"monte", r"passo", r"\bcol\b", r"colle"]
WORKOUT_PATTERNS = [r"interval", r"workout", r"training", r"sweet.*spot", r"threshold", r"tempo"]
RACE_PATTERNS = [
    r"race", r"gara", r"criterium", r"\bcrit\b", r"\btt\b", r"time.*trial", r"crono",
]

MIN_CANDIDATE_DURATION_S = 300
MIN_CURVE_POINTS_RELIABLE = 3
SUGGESTION_THRESHOLD = 0.10


def _compile(patterns: Sequence[str]) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


class WorkoutClassifier(Protocol):
    """Decides the likely intent of an activity."""

    def classify(
        self,
        activity: ActivitySummary,
        intensity_factor: Optional[float] = None,
    ) -> WorkoutType:
        ...


class TitlePatternClassifier:
    """Classify workouts by title vocabulary, then by power shape.

    Title keywords cover English and Italian. Without a keyword match, a
    steady 8-25 minute effort counts as a test, as does a steady 19-30 minute
    effort on a climb-titled activity. Rides over an hour at low intensity
    are endurance.
    """

    def __init__(self):
        self.test_patterns = _compile(TEST_PATTERNS)
        self.climb_patterns = _compile(CLIMB_PATTERNS)
        self.workout_patterns = _compile(WORKOUT_PATTERNS)
        self.race_patterns = _compile(RACE_PATTERNS)

    @staticmethod
    def _matches(patterns: list[re.Pattern], title: str) -> bool:
        return any(p.search(title) for p in patterns)

    def classify(
        self,
        activity: ActivitySummary,
        intensity_factor: Optional[float] = None,
    ) -> WorkoutType:
        title = activity.title.lower()
        duration = activity.duration_s
        steadiness = None
        if activity.normalized_power_w and activity.avg_power_w:
            steadiness = activity.normalized_power_w / activity.avg_power_w

        if self._matches(self.test_patterns, title):
            return WorkoutType.TEST

        if steadiness is not None and 480 <= duration <= 1500 and steadiness > 0.95:
            return WorkoutType.TEST

        if (
            steadiness is not None
            and self._matches(self.climb_patterns, title)
            and 1140 <= duration <= 1800
            and steadiness > 0.92
        ):
            return WorkoutType.TEST

        if self._matches(self.workout_patterns, title):
            return WorkoutType.WORKOUT

        if self._matches(self.race_patterns, title):
            return WorkoutType.RACE

        if intensity_factor is None:
            intensity_factor = activity.intensity_factor
        if duration > 3600 and intensity_factor and intensity_factor < 0.75:
            return WorkoutType.ENDURANCE

        return WorkoutType.UNKNOWN


def candidate_activities(activities: Sequence[ActivitySummary]) -> list[ActivitySummary]:
    """Activities with power lasting over five minutes, most recent first."""
    candidates = [
        a for a in activities
        if a.has_power and a.duration_s > MIN_CANDIDATE_DURATION_S
    ]
    return sorted(candidates, key=lambda a: a.date, reverse=True)


def build_power_curve(
    activities: Sequence[ActivitySummary],
    durations: Sequence[int] = POWER_CURVE_DURATIONS,
) -> list[PowerCurvePoint]:
    """Best NP-or-average power among activities at least as long as each duration.

    Activity-level power stands in for a true best effort when no samples
    are analysed. On equal power the first activity in input order wins.
    """
    curve = []
    for duration in durations:
        best: Optional[ActivitySummary] = None
        for activity in activities:
            if not activity.has_power or activity.duration_s < duration:
                continue
            if best is None or activity.effort_power_w > best.effort_power_w:
                best = activity
        if best is not None:
            curve.append(PowerCurvePoint(
                duration_s=duration,
                best_power_w=best.effort_power_w,
                source_activity_id=best.id,
                date=best.date,
            ))
    return curve


def ftp_from_curve(curve: Sequence[PowerCurvePoint]) -> Optional[int]:
    """FTP from the longest sustained efforts on the curve, None if under 20 minutes."""
    points = {p.duration_s: p.best_power_w for p in curve}
    long_efforts = sorted(d for d in points if d >= 1200)
    if not long_efforts:
        return None

    if 3600 in points:
        return round(points[3600])
    if 1200 in points:
        return round(points[1200] * 0.95)
    if 1800 in points:
        return round(points[1800] * 0.98)

    longest = long_efforts[-1]
    factor = 0.98 if longest >= 1800 else 0.95
    return round(points[longest] * factor)


class FTPEstimator:
    """Estimate FTP from tests, the power curve or threshold workouts."""

    def __init__(
        self,
        classifier: Optional[WorkoutClassifier] = None,
        current_ftp: Optional[float] = None,
    ):
        """Initialize FTP estimator.

        Args:
            classifier: Workout classifier (title patterns if None)
            current_ftp: Latest recorded FTP, used to derive missing intensity factors
        """
        self.classifier = classifier or TitlePatternClassifier()
        self.current_ftp = current_ftp

    def intensity_factor(self, activity: ActivitySummary) -> Optional[float]:
        if activity.intensity_factor is not None:
            return activity.intensity_factor
        if self.current_ftp and activity.effort_power_w:
            return activity.effort_power_w / self.current_ftp
        return None

    def classify(self, activities: Sequence[ActivitySummary]) -> list[tuple[ActivitySummary, WorkoutType]]:
        return [(a, self.classifier.classify(a, self.intensity_factor(a))) for a in activities]

    def estimate(
        self,
        activities: Sequence[ActivitySummary],
        curve: Optional[Sequence[PowerCurvePoint]] = None,
    ) -> Optional[FTPEstimate]:
        """Run the estimation cascade.

        Args:
            activities: Activity summaries in any order
            curve: Precomputed power curve over the candidates (built if None)

        Returns:
            First estimate the cascade produces, or None
        """
        candidates = candidate_activities(activities)
        if not candidates:
            return None
        classified = self.classify(candidates)

        estimate = self._from_tests(classified)
        if estimate is not None:
            return estimate

        if curve is None:
            curve = build_power_curve(candidates)
        estimate = self._from_curve(curve)
        if estimate is not None:
            return estimate

        estimate = self._from_threshold_workouts(classified)
        if estimate is None:
            logger.info(f"No FTP estimate from {len(candidates)} candidate activities")
        return estimate

    def _from_tests(self, classified) -> Optional[FTPEstimate]:
        for activity, workout_type in classified:
            if workout_type != WorkoutType.TEST:
                continue
            for low, high, method in TEST_BANDS:
                if low <= activity.duration_s <= high:
                    spec = FTP_METHODS[method]
                    value = round(activity.avg_power_w * spec.factor)
                    return FTPEstimate(
                        value_w=value,
                        method=method,
                        confidence=spec.confidence,
                        source_activity_id=activity.id,
                        reasoning=(
                            f"{round(activity.duration_s / 60)}-minute test on {activity.date}: "
                            f"{value}W ({spec.factor:.0%} of {activity.avg_power_w:.0f}W)"
                        ),
                        is_reliable=spec.confidence >= RELIABLE_CONFIDENCE,
                    )
        return None

    def _from_curve(self, curve: Sequence[PowerCurvePoint]) -> Optional[FTPEstimate]:
        value = ftp_from_curve(curve)
        if value is None:
            return None

        spec = FTP_METHODS[FTPMethod.CRITICAL_POWER]
        latest = max(curve, key=lambda p: p.date)
        return FTPEstimate(
            value_w=value,
            method=FTPMethod.CRITICAL_POWER,
            confidence=spec.confidence,
            source_activity_id=latest.source_activity_id,
            reasoning=f"Power curve analysis over {len(curve)} best efforts",
            is_reliable=(
                len(curve) >= MIN_CURVE_POINTS_RELIABLE
                and spec.confidence >= RELIABLE_CONFIDENCE
            ),
        )

    def _from_threshold_workouts(self, classified) -> Optional[FTPEstimate]:
        for activity, workout_type in classified:
            if workout_type != WorkoutType.WORKOUT or activity.duration_s < 1200:
                continue
            intensity = self.intensity_factor(activity)
            if intensity is None or not 0.85 <= intensity <= 1.10:
                continue

            spec = FTP_METHODS[FTPMethod.THRESHOLD_WORKOUTS]
            value = round(activity.effort_power_w * spec.factor)
            return FTPEstimate(
                value_w=value,
                method=FTPMethod.THRESHOLD_WORKOUTS,
                confidence=spec.confidence,
                source_activity_id=activity.id,
                reasoning=(
                    f"Threshold workout on {activity.date} (IF {intensity:.2f}), "
                    "conservative estimate"
                ),
                is_reliable=False,
            )
        return None


def should_suggest_ftp_update(
    estimate: FTPEstimate,
    current_ftp: Optional[float] = None,
    threshold: float = SUGGESTION_THRESHOLD,
) -> bool:
    """True when a reliable estimate differs enough from the recorded FTP."""
    if not estimate.is_reliable:
        return False
    if not current_ftp or current_ftp <= 0:
        return True
    return abs(estimate.value_w - current_ftp) / current_ftp >= threshold

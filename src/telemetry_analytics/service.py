"""Public entry points of the telemetry analytics core."""

import logging
import math
from datetime import date
from typing import Callable, Optional, Union

from telemetry_analytics.analytics.cadence import CadenceAnalyzer
from telemetry_analytics.analytics.climb_trends import ClimbTrendAnalyzer
from telemetry_analytics.analytics.climbs import ClimbExtractor
from telemetry_analytics.analytics.grouping import ClimbGrouper
from telemetry_analytics.analytics.power import (
    FTPEstimator,
    WorkoutClassifier,
    build_power_curve,
    candidate_activities,
    should_suggest_ftp_update,
)
from telemetry_analytics.analytics.statistics import months_ago, rolling_power_bests
from telemetry_analytics.analytics.trends import COMPARISON_PERIOD_MONTHS, TrendAnalyzer
from telemetry_analytics.config import (
    MAX_FTP_WATTS,
    MAX_PERIOD_MONTHS,
    MIN_FTP_WATTS,
    MIN_PERIOD_MONTHS,
    POWER_BEST_DURATIONS,
    SEASONAL_TREND_MONTHS,
    ClimbDetectionConfig,
    GroupingConfig,
    LookbackConfig,
)
from telemetry_analytics.data.lookback import AdaptiveLookbackRetriever
from telemetry_analytics.errors import InputValidationError, InsufficientDataError
from telemetry_analytics.models.analysis import (
    CadenceAnalysis,
    ClimbAnalysis,
    ClimbRecord,
    FTPAnalysis,
    FTPEstimate,
    InsufficientData,
    TrendsAnalysis,
)
from telemetry_analytics.models.telemetry import ProfileEntry
from telemetry_analytics.storage.base import TelemetryStore

logger = logging.getLogger(__name__)


def validate_athlete_id(athlete_id: str) -> str:
    if not athlete_id or not str(athlete_id).strip():
        raise InputValidationError("Athlete id must not be blank")
    return str(athlete_id).strip()


def validate_period(period_months: int) -> int:
    if (
        isinstance(period_months, bool)
        or not isinstance(period_months, int)
        or not MIN_PERIOD_MONTHS <= period_months <= MAX_PERIOD_MONTHS
    ):
        raise InputValidationError(
            f"Period must be between {MIN_PERIOD_MONTHS} and {MAX_PERIOD_MONTHS} months, "
            f"got {period_months!r}"
        )
    return period_months


def validate_ftp(ftp_w: float) -> float:
    if not MIN_FTP_WATTS <= ftp_w <= MAX_FTP_WATTS:
        raise InputValidationError(
            f"FTP must be between {MIN_FTP_WATTS} and {MAX_FTP_WATTS} W, got {ftp_w}"
        )
    return ftp_w


def latest_ftp(history: list[ProfileEntry]) -> Optional[float]:
    """Most recent recorded FTP from a most-recent-first history."""
    return next((e.ftp_w for e in history if e.ftp_w), None)


class TelemetryAnalytics:
    """Climb, FTP, cadence and trend analysis over a telemetry store."""

    def __init__(
        self,
        store: TelemetryStore,
        lookback: Optional[LookbackConfig] = None,
        climb_detection: Optional[ClimbDetectionConfig] = None,
        grouping: Optional[GroupingConfig] = None,
        classifier: Optional[WorkoutClassifier] = None,
        today: Callable[[], date] = date.today,
    ):
        """Initialize analytics service.

        Args:
            store: Telemetry store to read from and write derived values to
            lookback: Window chain and minimum record counts
            climb_detection: Climb extraction parameters
            grouping: Climb grouping tolerances
            classifier: Workout classifier for FTP estimation
            today: Clock used as the reference date of every analysis
        """
        self.store = store
        self.lookback = lookback or LookbackConfig()
        self.extractor = ClimbExtractor(climb_detection)
        self.grouper = ClimbGrouper(grouping)
        self.climb_trends = ClimbTrendAnalyzer(grouping)
        self.classifier = classifier
        self.today = today

    def _retriever(self, windows_months: list[int]) -> AdaptiveLookbackRetriever:
        return AdaptiveLookbackRetriever(windows_months, self.today())

    def analyze_climbs(
        self,
        athlete_id: str,
        period_months: int,
    ) -> Union[ClimbAnalysis, InsufficientData]:
        """Detect, group and summarize climbs over the lookback window."""
        athlete_id = validate_athlete_id(athlete_id)
        validate_period(period_months)
        reference = self.today()

        def fetch_climbs(since: Optional[date]) -> list[ClimbRecord]:
            records = []
            for activity in self.store.fetch_activities(athlete_id, since, requires=["elevation"]):
                records.extend(self.extractor.extract(activity, self.store.fetch_samples(activity.id)))
            return records

        # Windows are judged by validated climbs, not by activities with elevation
        try:
            found = self._retriever(self.lookback.windows_months).retrieve(
                fetch_climbs,
                period_months,
                self.lookback.min_climbs,
            )
        except InsufficientDataError as e:
            logger.warning(f"Climb analysis for {athlete_id}: {e.reason}")
            return InsufficientData(reason=e.reason, window_used=e.window)

        records = found.records
        groups = self.grouper.group(records)
        performances = self.climb_trends.performances(groups)

        logger.info(
            f"Climb analysis for {athlete_id}: {len(records)} climbs, "
            f"{len(performances)} distinct"
        )
        return ClimbAnalysis(
            performances=performances,
            vam_by_category=self.climb_trends.vam_by_category(records),
            monthly_trends=self.climb_trends.monthly_trends(records, reference),
            segment_estimates=self.climb_trends.segment_estimates(performances),
            window_used=found.window,
        )

    def estimate_ftp(
        self,
        athlete_id: str,
        period_months: int,
    ) -> Union[FTPAnalysis, InsufficientData]:
        """Estimate FTP and build the power curve over the lookback window."""
        athlete_id = validate_athlete_id(athlete_id)
        validate_period(period_months)

        try:
            found = self._retriever(self.lookback.windows_months).retrieve(
                lambda since: candidate_activities(
                    self.store.fetch_activities(athlete_id, since, requires=["power"])
                ),
                period_months,
                self.lookback.min_ftp_activities,
            )
        except InsufficientDataError as e:
            logger.warning(f"FTP estimation for {athlete_id}: {e.reason}")
            return InsufficientData(reason=e.reason, window_used=e.window)

        current_ftp = latest_ftp(self.store.fetch_profile_history(athlete_id))
        curve = build_power_curve(found.records)
        estimator = FTPEstimator(self.classifier, current_ftp)
        estimate = estimator.estimate(found.records, curve)

        suggest = estimate is not None and should_suggest_ftp_update(estimate, current_ftp)
        if estimate is not None:
            logger.info(
                f"FTP estimate for {athlete_id}: {estimate.value_w}W via {estimate.method.value} "
                f"(confidence {estimate.confidence:.2f})"
            )

        return FTPAnalysis(
            estimate=estimate,
            power_curve=curve,
            current_ftp_w=current_ftp,
            suggest_update=suggest,
            window_used=found.window,
        )

    def analyze_cadence(
        self,
        athlete_id: str,
        period_months: int,
        ftp_w: Optional[float] = None,
    ) -> Union[CadenceAnalysis, InsufficientData]:
        """Cadence efficiency by band and power zone over the lookback window.

        Args:
            athlete_id: Athlete to analyze
            period_months: Requested window
            ftp_w: FTP for power zones (latest profile FTP if None)
        """
        athlete_id = validate_athlete_id(athlete_id)
        validate_period(period_months)
        if ftp_w is not None:
            validate_ftp(ftp_w)

        try:
            found = self._retriever(self.lookback.windows_months).retrieve(
                lambda since: self.store.fetch_activities(
                    athlete_id, since, requires=["power", "cadence"]
                ),
                period_months,
                self.lookback.min_cadence_activities,
            )
        except InsufficientDataError as e:
            logger.warning(f"Cadence analysis for {athlete_id}: {e.reason}")
            return InsufficientData(reason=e.reason, window_used=e.window)

        if ftp_w is None:
            ftp_w = latest_ftp(self.store.fetch_profile_history(athlete_id))

        samples = {a.id: self.store.fetch_samples(a.id) for a in found.records}
        analyzer = CadenceAnalyzer(found.records, samples)

        bands = analyzer.efficiency_by_band()
        zones = analyzer.cadence_by_power_zone(ftp_w)
        optimal = analyzer.optimal_cadence(bands)

        logger.info(
            f"Cadence analysis for {athlete_id}: {len(bands)} bands, {len(zones)} zones, "
            f"optimal {optimal} rpm"
        )
        return CadenceAnalysis(
            efficiency_by_cadence_band=bands,
            cadence_by_power_zone=zones,
            optimal_cadence=optimal,
            cadence_trends=analyzer.monthly_trends(),
            recommendations=analyzer.recommendations(optimal, zones, bands),
            window_used=found.window,
        )

    def analyze_trends(
        self,
        athlete_id: str,
        comparison_period: str,
    ) -> Union[TrendsAnalysis, InsufficientData]:
        """Period comparison, seasonal series, improvements and FTP forecast.

        Args:
            athlete_id: Athlete to analyze
            comparison_period: One of ``month``, ``quarter`` or ``year``
        """
        athlete_id = validate_athlete_id(athlete_id)
        if comparison_period not in COMPARISON_PERIOD_MONTHS:
            raise InputValidationError(
                f"Comparison period must be one of {sorted(COMPARISON_PERIOD_MONTHS)}, "
                f"got {comparison_period!r}"
            )
        requested = COMPARISON_PERIOD_MONTHS[comparison_period]
        reference = self.today()

        try:
            found = self._retriever(self.lookback.trend_windows_months).retrieve(
                lambda since: self.store.fetch_activities(athlete_id, since),
                requested,
                self.lookback.min_trend_activities,
            )
        except InsufficientDataError as e:
            logger.warning(f"Trend analysis for {athlete_id}: {e.reason}")
            return InsufficientData(reason=e.reason, window_used=e.window)

        if len(found.records) < self.lookback.min_trend_activities:
            reason = (
                f"Found {len(found.records)} activities, "
                f"{self.lookback.min_trend_activities} needed for trends"
            )
            logger.warning(f"Trend analysis for {athlete_id}: {reason}")
            return InsufficientData(reason=reason, window_used=found.window)

        months = found.window.actual_months_used
        if months is None:
            oldest = min(a.date for a in found.records)
            span = (reference.year - oldest.year) * 12 + reference.month - oldest.month
            months = max(requested, span + 1)

        current_start = months_ago(reference, months)
        previous = [
            a for a in self.store.fetch_activities(athlete_id, months_ago(reference, 2 * months))
            if a.date < current_start
        ]
        current = [a for a in found.records if a.date >= current_start]
        seasonal = self.store.fetch_activities(
            athlete_id, months_ago(reference, max(SEASONAL_TREND_MONTHS, months))
        )

        analyzer = TrendAnalyzer(self.store.fetch_profile_history(athlete_id), reference)
        series = analyzer.seasonal_series(seasonal)

        logger.info(
            f"Trend analysis for {athlete_id}: {len(current)} current, "
            f"{len(previous)} previous activities over {months} months"
        )
        return TrendsAnalysis(
            comparison_metrics=analyzer.comparison_metrics(current, previous, months),
            seasonal_series=series,
            improvements=analyzer.improvements(current, seasonal),
            forecast=analyzer.forecast(series),
            window_used=found.window,
        )

    def record_ftp_estimate(
        self,
        athlete_id: str,
        estimate: Union[FTPEstimate, float],
        effective_date: Optional[date] = None,
    ) -> ProfileEntry:
        """Write an FTP value to the athlete's profile history.

        Repeating the call for the same date overwrites the earlier value.
        """
        athlete_id = validate_athlete_id(athlete_id)
        value = estimate.value_w if isinstance(estimate, FTPEstimate) else estimate
        if value is None or (isinstance(value, float) and math.isnan(value)):
            raise InputValidationError("FTP value is required")
        validate_ftp(value)

        effective_date = effective_date or self.today()
        self.store.upsert_profile_entry(athlete_id, effective_date, {"ftp_w": value})
        return ProfileEntry(athlete_id=athlete_id, effective_date=effective_date, ftp_w=value)

    def refresh_power_bests(self, activity_id: str) -> dict[int, float]:
        """Compute rolling power bests from an activity's samples and store them."""
        samples = self.store.fetch_samples(activity_id)
        if not samples:
            logger.warning(f"Activity {activity_id} has no samples, no power bests computed")
            return {}

        bests = rolling_power_bests(samples, POWER_BEST_DURATIONS)
        self.store.attach_power_bests(activity_id, bests)
        logger.info(f"Activity {activity_id}: {len(bests)} power bests refreshed")
        return bests

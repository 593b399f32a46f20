"""Long-term performance trends: period comparison, seasonal series, forecast."""

import logging
import math
from datetime import date
from typing import Optional, Sequence

import polars as pl
from scipy import stats

from telemetry_analytics.analytics.statistics import month_end, month_key, month_keys, months_ago
from telemetry_analytics.config import SEASONAL_TREND_MONTHS
from telemetry_analytics.models.analysis import (
    ComparisonMetric,
    ForecastPoint,
    Improvement,
    SeasonalPoint,
)
from telemetry_analytics.models.telemetry import ActivitySummary, ProfileEntry

logger = logging.getLogger(__name__)

COMPARISON_PERIOD_MONTHS = {"month": 1, "quarter": 3, "year": 12}

TREND_CHANGE_PCT = 2.0
PREVIOUS_FTP_FROM_POWER = 1.05
FORECAST_MONTHS = 6
FORECAST_MIN_POINTS = 3
EARLY_SEASON_FRACTION = 0.2


def profile_value_at(
    history: Sequence[ProfileEntry],
    on: date,
    field: str,
) -> Optional[float]:
    """Value of ``field`` from the latest profile entry in force on ``on``."""
    in_force = [
        e for e in history
        if e.effective_date <= on and getattr(e, field) is not None
    ]
    if not in_force:
        return None
    return getattr(max(in_force, key=lambda e: e.effective_date), field)


def comparison_metric(metric: str, current: float, previous: float, unit: str) -> ComparisonMetric:
    change = current - previous
    change_pct = change / previous * 100 if previous > 0 else 0.0
    trend = "stable"
    if abs(change_pct) > TREND_CHANGE_PCT:
        trend = "up" if change_pct > 0 else "down"
    return ComparisonMetric(
        metric=metric,
        current=current,
        previous=previous,
        change=round(change, 2),
        change_pct=round(change_pct, 1),
        trend=trend,
        unit=unit,
    )


def improvement(category: str, current: float, start: float, unit: str) -> Improvement:
    return Improvement(
        category=category,
        current_value=current,
        start_value=start,
        improvement=round(current - start, 2),
        improvement_pct=round((current - start) / start * 100, 1) if start else 0.0,
        unit=unit,
    )


def _period_stats(activities: Sequence[ActivitySummary]) -> dict:
    powered = [a.avg_power_w for a in activities if a.has_power]
    tss = [a.tss for a in activities if a.tss]
    return {
        "hours": sum(a.duration_s for a in activities) / 3600,
        "avg_power": sum(powered) / len(powered) if powered else 0.0,
        "tss": sum(tss),
    }


def _best_power(activities: Sequence[ActivitySummary], duration: int) -> float:
    return max((a.power_bests.get(duration, 0.0) for a in activities), default=0.0)


class TrendAnalyzer:
    """Compare training periods and project FTP forward."""

    def __init__(
        self,
        profile_history: Sequence[ProfileEntry],
        reference_date: date,
    ):
        """Initialize trend analyzer.

        Args:
            profile_history: Athlete profile entries in any order
            reference_date: The day the analysis is computed for
        """
        self.history = list(profile_history)
        self.reference_date = reference_date

    def ftp_at(self, on: date) -> Optional[float]:
        return profile_value_at(self.history, on, "ftp_w")

    def weight_at(self, on: date) -> Optional[float]:
        return profile_value_at(self.history, on, "weight_kg")

    def _weeks_since(self, start: date) -> float:
        return max(1.0, (self.reference_date - start).days / 7)

    def comparison_metrics(
        self,
        current: Sequence[ActivitySummary],
        previous: Sequence[ActivitySummary],
        months: int,
    ) -> list[ComparisonMetric]:
        """Current window against the preceding window of equal length.

        Metrics needing the earlier period are omitted when it holds no activities.
        """
        current_start = months_ago(self.reference_date, months)
        previous_start = months_ago(self.reference_date, 2 * months)
        weeks = (current_start - previous_start).days / 7 or 1.0

        cur = _period_stats(current)
        prev = _period_stats(previous)
        metrics = []

        current_ftp = self.ftp_at(self.reference_date)
        previous_ftp = self.ftp_at(previous_start)
        if previous_ftp is None and prev["avg_power"] > 0:
            previous_ftp = round(prev["avg_power"] * PREVIOUS_FTP_FROM_POWER)
        if current_ftp and previous_ftp:
            metrics.append(comparison_metric("FTP", round(current_ftp), round(previous_ftp), "W"))

        current_weight = self.weight_at(self.reference_date)
        previous_weight = self.weight_at(current_start)
        if current_weight and previous_weight:
            metrics.append(comparison_metric(
                "Weight", round(current_weight, 2), round(previous_weight, 2), "kg"
            ))

        if current_ftp and previous_ftp and current_weight:
            metrics.append(comparison_metric(
                "W/kg",
                round(current_ftp / current_weight, 2),
                round(previous_ftp / (previous_weight or current_weight), 2),
                "W/kg",
            ))

        if not previous:
            return metrics

        metrics.append(comparison_metric(
            "Hours/week", round(cur["hours"] / weeks, 1), round(prev["hours"] / weeks, 1), "h"
        ))

        if cur["tss"] > 0 and prev["tss"] > 0:
            metrics.append(comparison_metric(
                "TSS/week", round(cur["tss"] / weeks), round(prev["tss"] / weeks), ""
            ))

        if cur["avg_power"] > 0 and prev["avg_power"] > 0:
            metrics.append(comparison_metric(
                "Average power", round(cur["avg_power"]), round(prev["avg_power"]), "W"
            ))

        return metrics

    def seasonal_series(
        self,
        activities: Sequence[ActivitySummary],
        months: int = SEASONAL_TREND_MONTHS,
    ) -> list[SeasonalPoint]:
        """Monthly FTP, volume, intensity and peak power; empty months report zeros."""
        calendar_df = pl.DataFrame({"month": month_keys(self.reference_date, months)})
        activities_df = pl.DataFrame(
            {
                "month": [month_key(a.date) for a in activities],
                "duration_s": [a.duration_s for a in activities],
                "avg_power": [a.avg_power_w if a.has_power else None for a in activities],
                "max_power": [a.max_power_w for a in activities],
            },
            schema={
                "month": pl.Utf8,
                "duration_s": pl.Float64,
                "avg_power": pl.Float64,
                "max_power": pl.Float64,
            },
        )
        monthly = activities_df.group_by("month").agg([
            (pl.col("duration_s").sum() / 3600).round(1).alias("volume_h"),
            pl.col("avg_power").mean().round(0).alias("intensity_w"),
            pl.col("max_power").max().round(0).alias("peak_power_w"),
        ])
        series_df = (
            calendar_df
            .join(monthly, on="month", how="left")
            .with_columns(pl.col(["volume_h", "intensity_w", "peak_power_w"]).fill_null(0))
            .sort("month")
        )

        return [
            SeasonalPoint(ftp_w=self.ftp_at(month_end(row["month"])), **row)
            for row in series_df.iter_rows(named=True)
        ]

    def improvements(
        self,
        current: Sequence[ActivitySummary],
        seasonal: Sequence[ActivitySummary],
    ) -> list[Improvement]:
        """Changes since 1 January of the reference year."""
        start_of_year = date(self.reference_date.year, 1, 1)
        year_activities = sorted(
            (a for a in seasonal if a.date >= start_of_year),
            key=lambda a: a.date,
        )
        if not year_activities:
            return []

        results = []
        current_ftp = self.ftp_at(self.reference_date)
        start_ftp = self.ftp_at(start_of_year)
        if current_ftp and start_ftp:
            results.append(improvement("FTP", current_ftp, start_ftp, "W"))

            current_weight = self.weight_at(self.reference_date)
            start_weight = self.weight_at(start_of_year) or current_weight
            if current_weight and start_weight:
                results.append(improvement(
                    "W/kg FTP",
                    round(current_ftp / current_weight, 2),
                    round(start_ftp / start_weight, 2),
                    "W/kg",
                ))

        early = year_activities[:math.ceil(len(year_activities) * EARLY_SEASON_FRACTION)]
        for duration, label in ((300, "5-min power"), (60, "1-min power")):
            current_best = _best_power(current, duration)
            start_best = _best_power(early, duration)
            if current_best > 0 and start_best > 0 and current_best > start_best:
                results.append(improvement(label, current_best, start_best, "W"))

        if current:
            window_start = min(a.date for a in current)
            current_weekly = _period_stats(current)["hours"] / self._weeks_since(window_start)
            year_weekly = _period_stats(year_activities)["hours"] / self._weeks_since(start_of_year)
            if current_weekly > 0 and year_weekly > 0:
                results.append(improvement(
                    "Weekly volume", round(current_weekly, 1), round(year_weekly, 1), "h"
                ))

        return results

    def forecast(self, series: Sequence[SeasonalPoint]) -> list[ForecastPoint]:
        """Project FTP six months ahead from the recent monthly slope."""
        current_ftp = self.ftp_at(self.reference_date)
        recent = [p.ftp_w for p in series[-FORECAST_MONTHS:] if p.ftp_w]
        if not current_ftp or len(recent) < FORECAST_MIN_POINTS:
            return []

        slope = stats.linregress(list(range(1, len(recent) + 1)), recent).slope
        if math.isnan(slope):
            slope = 0.0

        points = []
        for i in range(1, FORECAST_MONTHS + 1):
            predicted = round(current_ftp + slope * i)
            band = max(5, 20 - 2 * i)
            points.append(ForecastPoint(
                date=months_ago(self.reference_date, -i),
                predicted_ftp_w=predicted,
                confidence_min_w=predicted - band,
                confidence_max_w=predicted + band,
            ))
        logger.debug(f"FTP forecast slope {slope:.2f} W/month from {len(recent)} points")
        return points

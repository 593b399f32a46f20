"""Aggregation of climb records: best efforts, category VAM and monthly trends."""

import logging
from datetime import date
from typing import Optional, Sequence

import polars as pl

from telemetry_analytics.analytics.statistics import month_key, month_keys
from telemetry_analytics.config import CLIMB_TREND_MONTHS, GroupingConfig
from telemetry_analytics.models.analysis import (
    CategoryVAM,
    ClimbCategory,
    ClimbGroup,
    ClimbPerformance,
    ClimbRecord,
    ClimbTrend,
    MonthlyClimbTrend,
    SegmentEstimate,
)

logger = logging.getLogger(__name__)

# Display-only reference VAM per category (m/h)
BENCHMARK_VAM = {
    ClimbCategory.CAT4: 1000,
    ClimbCategory.CAT3: 1200,
    ClimbCategory.CAT2: 1300,
    ClimbCategory.CAT1: 1400,
    ClimbCategory.HC: 1500,
}

# Reference time as a fraction of the personal time
REFERENCE_TIME_FACTOR = 0.82
SEGMENT_ESTIMATE_COUNT = 4


class ClimbTrendAnalyzer:
    """Summarize grouped climb records."""

    def __init__(self, config: Optional[GroupingConfig] = None):
        self.config = config or GroupingConfig()

    def trend(self, members: Sequence[ClimbRecord]) -> ClimbTrend:
        """Compare the chronologically first and last attempts' VAM."""
        if len(members) < 2:
            return ClimbTrend.STABLE

        ordered = sorted(members, key=lambda r: r.date)
        first, last = ordered[0].vam_m_per_h, ordered[-1].vam_m_per_h
        if first <= 0:
            return ClimbTrend.STABLE

        change = (last - first) / first
        if change > self.config.trend_threshold:
            return ClimbTrend.IMPROVING
        if change < -self.config.trend_threshold:
            return ClimbTrend.DECLINING
        return ClimbTrend.STABLE

    def performances(self, groups: Sequence[ClimbGroup]) -> list[ClimbPerformance]:
        """Best attempt of each group with attempt count, trend and last date."""
        performances = []
        for group in groups:
            if not group.members:
                continue
            best = max(group.members, key=lambda r: r.vam_m_per_h)
            performances.append(ClimbPerformance(
                **best.model_dump(),
                attempts=group.size,
                trend=self.trend(group.members),
                last_attempt=max(r.date for r in group.members),
            ))
        return performances

    @staticmethod
    def vam_by_category(records: Sequence[ClimbRecord]) -> list[CategoryVAM]:
        """Average and best VAM per category; every category is reported."""
        stats = []
        for category in ClimbCategory:
            vams = [r.vam_m_per_h for r in records if r.category == category]
            stats.append(CategoryVAM(
                category=category,
                label=category.label,
                average_vam=round(sum(vams) / len(vams)) if vams else 0,
                best_vam=max(vams) if vams else 0,
                attempts=len(vams),
                benchmark_vam=BENCHMARK_VAM[category],
            ))
        return stats

    @staticmethod
    def monthly_trends(
        records: Sequence[ClimbRecord],
        reference_date: date,
        months: int = CLIMB_TREND_MONTHS,
    ) -> list[MonthlyClimbTrend]:
        """Per-month climb counts and VAM for the last ``months`` calendar months.

        Months without climbs report zeros.
        """
        calendar_df = pl.DataFrame({"month": month_keys(reference_date, months)})

        climbs_df = pl.DataFrame(
            {
                "month": [month_key(r.date) for r in records],
                "vam": [float(r.vam_m_per_h) for r in records],
                "elevation": [float(r.elevation_m) for r in records],
            },
            schema={"month": pl.Utf8, "vam": pl.Float64, "elevation": pl.Float64},
        )
        monthly = climbs_df.group_by("month").agg([
            pl.col("vam").mean().round(0).alias("avg_vam"),
            pl.col("vam").max().alias("max_vam"),
            pl.len().alias("climbs"),
            pl.col("elevation").sum().round(0).alias("total_elevation_m"),
        ])

        trend_df = (
            calendar_df
            .join(monthly, on="month", how="left")
            .with_columns(pl.col(["avg_vam", "max_vam", "climbs", "total_elevation_m"]).fill_null(0))
            .sort("month")
        )
        return [MonthlyClimbTrend(**row) for row in trend_df.iter_rows(named=True)]

    @staticmethod
    def segment_estimates(performances: Sequence[ClimbPerformance]) -> list[SegmentEstimate]:
        """Approximate standing of the top performances against a reference time."""
        estimates = []
        for i, perf in enumerate(performances[:SEGMENT_ESTIMATE_COUNT]):
            reference_time = round(perf.duration_s * REFERENCE_TIME_FACTOR)
            if reference_time <= 0:
                continue
            estimates.append(SegmentEstimate(
                segment_name=f"{perf.name} - Segment {i + 1}",
                personal_time_s=perf.duration_s,
                personal_vam=perf.vam_m_per_h,
                personal_watts=perf.avg_power_w,
                reference_time_s=reference_time,
                reference_vam=round(perf.vam_m_per_h / REFERENCE_TIME_FACTOR),
                percentage_off=round((perf.duration_s - reference_time) / reference_time * 100, 1),
                total_attempts=perf.attempts,
            ))
        return estimates

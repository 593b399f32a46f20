"""Cadence efficiency analysis."""

import logging
import math
from typing import Optional, Sequence

import polars as pl

from telemetry_analytics.analytics.statistics import check_samples, month_key
from telemetry_analytics.config import MAX_REALISTIC_CADENCE_RPM, MIN_REALISTIC_CADENCE_RPM
from telemetry_analytics.models.analysis import (
    CadenceBandEfficiency,
    CadenceRecommendation,
    CadenceTrend,
    CadenceZone,
)
from telemetry_analytics.models.telemetry import ActivitySummary, TelemetrySample

logger = logging.getLogger(__name__)

CADENCE_BANDS = [(60, 70), (70, 80), (80, 90), (90, 100), (100, 110), (110, 130)]

# (zone, name, min % of FTP, max % of FTP, reference cadence)
POWER_ZONES = [
    ("Z1", "Recovery", 0, 55, 85),
    ("Z2", "Endurance", 55, 75, 85),
    ("Z3", "Tempo", 75, 90, 90),
    ("Z4", "Threshold", 90, 105, 90),
    ("Z5", "VO2max", 105, 120, 95),
    ("Z6", "Anaerobic", 120, 150, 95),
]

MIN_BAND_SAMPLES = 100
MIN_ZONE_SAMPLES = 50
INITIAL_OPTIMAL_CADENCE = 90
RECOVERY_CADENCE = 82

SAMPLE_SCHEMA = {"cadence": pl.Float64, "power": pl.Float64, "heart_rate": pl.Float64}


def sustainability_index(minutes: float) -> float:
    """Logarithmic 0-100 score for time spent in a band."""
    return min(100.0, 50 * math.log10(minutes + 1))


class CadenceAnalyzer:
    """Analyze pedalling cadence against power output."""

    def __init__(
        self,
        activities: Sequence[ActivitySummary],
        samples: Optional[dict[str, list[TelemetrySample]]] = None,
    ):
        """Initialize cadence analyzer.

        Args:
            activities: Activities to analyze
            samples: Samples per activity id (falls back to ``activity.samples``)
        """
        self.activities = list(activities)
        self.samples_df = self._build_samples_frame(samples or {})

    def _build_samples_frame(self, samples: dict[str, list[TelemetrySample]]) -> pl.DataFrame:
        rows = {"cadence": [], "power": [], "heart_rate": []}
        for activity in self.activities:
            activity_samples = samples.get(activity.id, activity.samples) or []
            check_samples(activity_samples, activity.id)
            for s in activity_samples:
                rows["cadence"].append(s.cadence_rpm)
                rows["power"].append(s.valid_power)
                rows["heart_rate"].append(s.heart_rate_bpm)

        df = pl.DataFrame(rows, schema=SAMPLE_SCHEMA)
        return df.filter(
            pl.col("cadence").is_between(MIN_REALISTIC_CADENCE_RPM, MAX_REALISTIC_CADENCE_RPM)
            & (pl.col("power") > 0)
        )

    def efficiency_by_band(self) -> list[CadenceBandEfficiency]:
        """Power, efficiency and time per cadence band, most efficient first."""
        metrics = []
        for low, high in CADENCE_BANDS:
            band = self.samples_df.filter(
                (pl.col("cadence") >= low) & (pl.col("cadence") < high)
            )
            if band.height < MIN_BAND_SAMPLES:
                continue

            avg_power = band["power"].mean()
            avg_cadence = band["cadence"].mean()
            minutes = band.height / 60
            heart_rates = band["heart_rate"].filter(band["heart_rate"] > 0)
            avg_hr = heart_rates.mean() if heart_rates.len() > 0 else None

            metrics.append(CadenceBandEfficiency(
                cadence_band=f"{low}-{high} rpm",
                min_rpm=low,
                max_rpm=high,
                average_power_w=round(avg_power, 2),
                efficiency=round(avg_power / avg_cadence, 2),
                sustainability_index=round(sustainability_index(minutes)),
                minutes=round(minutes),
                average_heart_rate_bpm=round(avg_hr) if avg_hr is not None else None,
            ))

        return sorted(metrics, key=lambda m: m.efficiency, reverse=True)

    def cadence_by_power_zone(self, ftp_w: Optional[float]) -> list[CadenceZone]:
        """Average cadence per FTP-relative power zone; empty without an FTP."""
        if not ftp_w or ftp_w <= 0:
            logger.warning("No FTP available, skipping cadence by power zone")
            return []

        zones = []
        for zone, name, low_pct, high_pct, optimal in POWER_ZONES:
            min_watts = round(ftp_w * low_pct / 100)
            max_watts = round(ftp_w * high_pct / 100)
            in_zone = self.samples_df.filter(
                (pl.col("power") >= min_watts) & (pl.col("power") < max_watts)
            )
            if in_zone.height < MIN_ZONE_SAMPLES:
                continue

            avg_cadence = in_zone["cadence"].mean()
            avg_power = in_zone["power"].mean()
            zones.append(CadenceZone(
                power_zone=zone,
                zone_name=name,
                min_watts=min_watts,
                max_watts=max_watts,
                average_cadence_rpm=round(avg_cadence),
                optimal_cadence_rpm=optimal,
                efficiency=round(avg_power / avg_cadence, 2),
                sample_size=in_zone.height,
            ))
        return zones

    @staticmethod
    def optimal_cadence(bands: Sequence[CadenceBandEfficiency]) -> Optional[int]:
        """Midpoint of the band with the best efficiency/sustainability/usage score."""
        best_score = 0.0
        optimal = None
        for band in bands:
            score = (
                0.5 * band.efficiency
                + 0.3 * band.sustainability_index / 100
                + 0.2 * min(1.0, band.minutes / 120)
            )
            if score > best_score:
                best_score = score
                optimal = round((band.min_rpm + band.max_rpm) / 2)
        return optimal

    def monthly_trends(self) -> list[CadenceTrend]:
        """Monthly averages of activity cadence and power, oldest first."""
        df = pl.DataFrame(
            {
                "month": [month_key(a.date) for a in self.activities],
                "cadence": [a.avg_cadence_rpm for a in self.activities],
                "power": [a.avg_power_w for a in self.activities],
            },
            schema={"month": pl.Utf8, "cadence": pl.Float64, "power": pl.Float64},
        )
        monthly = (
            df.filter(
                pl.col("power").is_not_null()
                & pl.col("cadence").is_between(MIN_REALISTIC_CADENCE_RPM, MAX_REALISTIC_CADENCE_RPM)
            )
            .group_by("month")
            .agg([
                pl.col("cadence").mean().alias("avg_cadence"),
                pl.col("power").mean().alias("avg_power"),
            ])
            .sort("month")
        )

        trends = []
        progressive = INITIAL_OPTIMAL_CADENCE
        for row in monthly.iter_rows(named=True):
            progressive = round(progressive * 0.9 + row["avg_cadence"] * 0.1)
            trends.append(CadenceTrend(
                month=row["month"],
                average_cadence_rpm=round(row["avg_cadence"]),
                optimal_cadence_rpm=progressive,
                efficiency=round(row["avg_power"] / row["avg_cadence"], 2),
                power_output_w=round(row["avg_power"]),
            ))
        return trends

    @staticmethod
    def recommendations(
        optimal: Optional[int],
        zones: Sequence[CadenceZone],
        bands: Sequence[CadenceBandEfficiency],
    ) -> list[CadenceRecommendation]:
        recs = []
        if optimal:
            recs.append(CadenceRecommendation(
                type="training",
                title="Base cadence training",
                description=f"Z2 rides at {optimal} rpm to build pedalling efficiency",
                target_cadence_rpm=optimal,
                duration="60-90 minutes",
                rationale="Based on your most efficient cadence in aerobic zones",
            ))
            recs.append(CadenceRecommendation(
                type="race",
                title="Race strategy",
                description=f"Hold {optimal}±5 rpm through the decisive phases of a race",
                target_cadence_rpm=optimal,
                duration="Whole race",
                rationale="Balances power against fatigue for sustainable output",
            ))

        z4 = next((z for z in zones if z.power_zone == "Z4"), None)
        if z4 and z4.average_cadence_rpm < z4.optimal_cadence_rpm - 5:
            recs.append(CadenceRecommendation(
                type="training",
                title="Threshold cadence drill",
                description=(
                    f"Raise Z4 cadence from {z4.average_cadence_rpm} "
                    f"to {z4.optimal_cadence_rpm} rpm"
                ),
                target_cadence_rpm=z4.optimal_cadence_rpm,
                duration="15-20 minutes",
                rationale="Threshold cadence is below the range that suits muscle recruitment",
            ))

        if any(b.min_rpm == 80 for b in bands):
            recs.append(CadenceRecommendation(
                type="recovery",
                title="Active recovery",
                description="Spin at 80-85 rpm during recoveries",
                target_cadence_rpm=RECOVERY_CADENCE,
                duration="10-15 minutes",
                rationale="Moderate cadence keeps circulation up without adding fatigue",
            ))

        return recs

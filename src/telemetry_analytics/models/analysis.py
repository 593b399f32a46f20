"""Result models produced by the analytics components."""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ClimbCategory(str, Enum):
    """Climb categories by total elevation gain."""
    CAT4 = "4"  # < 300 m
    CAT3 = "3"  # < 600 m
    CAT2 = "2"  # < 900 m
    CAT1 = "1"  # < 1500 m
    HC = "HC"

    @property
    def label(self) -> str:
        return "HC" if self is ClimbCategory.HC else f"Cat {self.value}"


class ClimbTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class WorkoutType(str, Enum):
    """Likely intent of an activity."""
    TEST = "test"
    WORKOUT = "workout"
    RACE = "race"
    ENDURANCE = "endurance"
    UNKNOWN = "unknown"


class FTPMethod(str, Enum):
    TWENTY_MINUTE_TEST = "TWENTY_MINUTE_TEST"
    EIGHT_MINUTE_TEST = "EIGHT_MINUTE_TEST"
    SIXTY_MINUTE_POWER = "SIXTY_MINUTE_POWER"
    CRITICAL_POWER = "CRITICAL_POWER"
    THRESHOLD_WORKOUTS = "THRESHOLD_WORKOUTS"


class AnalysisWindow(BaseModel):
    """The lookback window an analysis was actually computed over."""
    model_config = ConfigDict(frozen=True)

    requested_months: int
    actual_months_used: Optional[int] = None  # None when all history was used
    sample_count: int
    widened: bool = False
    all_history: bool = False


class InsufficientData(BaseModel):
    """Structured "no result" outcome."""

    reason: str
    window_used: Optional[AnalysisWindow] = None
    insufficient_data: bool = True


# Climbs

class ClimbCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_index: int
    end_index: int


class ClimbRecord(BaseModel):
    """A validated climb occurrence within one activity."""
    model_config = ConfigDict(frozen=True)

    climb_id: str
    name: str
    category: ClimbCategory
    distance_km: float
    elevation_m: float
    avg_gradient_pct: float
    duration_s: float
    vam_m_per_h: float
    avg_power_w: Optional[float] = None
    avg_heart_rate_bpm: Optional[float] = None
    avg_cadence_rpm: Optional[float] = None
    activity_id: str
    date: dt.date


class ClimbGroup(BaseModel):
    """Records judged to be the same physical climb as ``seed``."""

    seed: ClimbRecord
    members: list[ClimbRecord]

    @property
    def size(self) -> int:
        return len(self.members)


class ClimbPerformance(ClimbRecord):
    """Best record of a group plus aggregate fields."""

    attempts: int
    trend: ClimbTrend = ClimbTrend.STABLE
    last_attempt: dt.date


class CategoryVAM(BaseModel):
    category: ClimbCategory
    label: str
    average_vam: float = 0
    best_vam: float = 0
    attempts: int = 0
    benchmark_vam: float


class MonthlyClimbTrend(BaseModel):
    month: str  # YYYY-MM
    avg_vam: float = 0
    max_vam: float = 0
    climbs: int = 0
    total_elevation_m: float = 0


class SegmentEstimate(BaseModel):
    """Approximate ranking of a personal best against a reference time."""

    segment_name: str
    personal_time_s: float
    personal_vam: float
    personal_watts: Optional[float] = None
    reference_time_s: float
    reference_vam: float
    percentage_off: float
    total_attempts: int


class ClimbAnalysis(BaseModel):
    performances: list[ClimbPerformance] = Field(default_factory=list)
    vam_by_category: list[CategoryVAM] = Field(default_factory=list)
    monthly_trends: list[MonthlyClimbTrend] = Field(default_factory=list)
    segment_estimates: list[SegmentEstimate] = Field(default_factory=list)
    window_used: AnalysisWindow


# Power / FTP

class PowerCurvePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration_s: int
    best_power_w: float
    source_activity_id: str
    date: dt.date


class FTPEstimate(BaseModel):
    value_w: int
    method: FTPMethod
    confidence: float = Field(ge=0, le=1)
    source_activity_id: Optional[str] = None
    reasoning: str
    is_reliable: bool


class FTPAnalysis(BaseModel):
    estimate: Optional[FTPEstimate] = None
    power_curve: list[PowerCurvePoint] = Field(default_factory=list)
    current_ftp_w: Optional[float] = None
    suggest_update: bool = False
    window_used: AnalysisWindow


# Cadence

class CadenceBandEfficiency(BaseModel):
    cadence_band: str
    min_rpm: int
    max_rpm: int
    average_power_w: float
    efficiency: float  # watts per rpm
    sustainability_index: int  # 0-100
    minutes: int
    average_heart_rate_bpm: Optional[int] = None


class CadenceZone(BaseModel):
    power_zone: str
    zone_name: str
    min_watts: int
    max_watts: int
    average_cadence_rpm: int
    optimal_cadence_rpm: int
    efficiency: float
    sample_size: int


class CadenceTrend(BaseModel):
    month: str
    average_cadence_rpm: int
    optimal_cadence_rpm: int
    efficiency: float
    power_output_w: int


class CadenceRecommendation(BaseModel):
    type: str  # training, race, recovery
    title: str
    description: str
    target_cadence_rpm: int
    duration: str
    rationale: str


class CadenceAnalysis(BaseModel):
    efficiency_by_cadence_band: list[CadenceBandEfficiency] = Field(default_factory=list)
    cadence_by_power_zone: list[CadenceZone] = Field(default_factory=list)
    optimal_cadence: Optional[int] = None
    cadence_trends: list[CadenceTrend] = Field(default_factory=list)
    recommendations: list[CadenceRecommendation] = Field(default_factory=list)
    window_used: AnalysisWindow


# Performance trends

class ComparisonMetric(BaseModel):
    metric: str
    current: float
    previous: float
    change: float
    change_pct: float
    trend: str  # up, down, stable
    unit: str


class SeasonalPoint(BaseModel):
    month: str
    ftp_w: Optional[float] = None
    volume_h: float = 0
    intensity_w: float = 0
    peak_power_w: float = 0


class Improvement(BaseModel):
    category: str
    current_value: float
    start_value: float
    improvement: float
    improvement_pct: float
    unit: str


class ForecastPoint(BaseModel):
    date: dt.date
    predicted_ftp_w: int
    confidence_min_w: int
    confidence_max_w: int


class TrendsAnalysis(BaseModel):
    comparison_metrics: list[ComparisonMetric] = Field(default_factory=list)
    seasonal_series: list[SeasonalPoint] = Field(default_factory=list)
    improvements: list[Improvement] = Field(default_factory=list)
    forecast: list[ForecastPoint] = Field(default_factory=list)
    window_used: AnalysisWindow

"""Telemetry store interface consumed by the analytics service."""

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, Optional

from telemetry_analytics.models.telemetry import ActivitySummary, ProfileEntry, TelemetrySample

# Field groups an activity may be required to carry
REQUIREMENTS = {"power", "cadence", "elevation"}


class TelemetryStore(ABC):
    """Read/write access to activities, samples and profile history.

    Implementations raise ``UpstreamFetchError`` when the backend fails.
    """

    @abstractmethod
    def fetch_activities(
        self,
        athlete_id: str,
        since_date: Optional[date] = None,
        requires: Optional[Iterable[str]] = None,
    ) -> list[ActivitySummary]:
        """Activities on or after ``since_date``, most recent first."""

    @abstractmethod
    def fetch_samples(self, activity_id: str) -> list[TelemetrySample]:
        """Samples of one activity in timestamp order."""

    @abstractmethod
    def fetch_profile_history(self, athlete_id: str) -> list[ProfileEntry]:
        """Profile entries, most recent first."""

    @abstractmethod
    def upsert_profile_entry(self, athlete_id: str, effective_date: date, fields: dict) -> None:
        """Insert or update the entry keyed by athlete and effective date."""

    @abstractmethod
    def attach_power_bests(self, activity_id: str, bests: dict[int, float]) -> None:
        """Store best average power per duration for an activity."""

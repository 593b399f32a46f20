"""Adaptive lookback: widen the retrieval window until enough records are found."""

import logging
from datetime import date
from typing import Callable, Generic, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict

from telemetry_analytics.analytics.statistics import months_ago
from telemetry_analytics.errors import InsufficientDataError
from telemetry_analytics.models.analysis import AnalysisWindow

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fetch records on or after the given date; None means no lower bound
Fetcher = Callable[[Optional[date]], Sequence[T]]


class LookbackResult(BaseModel, Generic[T]):
    """Records from the first window that satisfied the threshold."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    records: list[T]
    window: AnalysisWindow
    since_date: Optional[date] = None


class AdaptiveLookbackRetriever:
    """Try progressively wider windows, then all history.

    The requested window is tried first, followed by each configured window
    larger than it. Each step is a plain fetch with no side effects, so a
    caller may stop between steps.
    """

    def __init__(self, windows_months: Sequence[int], reference_date: date):
        """Initialize retriever.

        Args:
            windows_months: Widening chain in months, ascending
            reference_date: The day windows are measured back from
        """
        self.windows_months = sorted(windows_months)
        self.reference_date = reference_date

    def window_chain(self, requested_months: int) -> list[int]:
        return [requested_months] + [m for m in self.windows_months if m > requested_months]

    def retrieve(
        self,
        fetch: Fetcher,
        requested_months: int,
        min_records: int,
    ) -> LookbackResult:
        """Fetch with widening windows.

        Args:
            fetch: Callable returning records since a date (None for all history)
            requested_months: The caller's window
            min_records: Records needed for a window to be accepted

        Returns:
            LookbackResult with the records and the window used

        Raises:
            InsufficientDataError: If even all history holds no records
        """
        for months in self.window_chain(requested_months):
            since = months_ago(self.reference_date, months)
            records = list(fetch(since))
            if len(records) >= min_records:
                widened = months != requested_months
                if widened:
                    logger.warning(
                        f"Widened lookback from {requested_months} to {months} months "
                        f"({len(records)} records)"
                    )
                return LookbackResult(
                    records=records,
                    since_date=since,
                    window=AnalysisWindow(
                        requested_months=requested_months,
                        actual_months_used=months,
                        sample_count=len(records),
                        widened=widened,
                    ),
                )
            logger.debug(f"{months}-month window holds {len(records)} of {min_records} records")

        records = list(fetch(None))
        window = AnalysisWindow(
            requested_months=requested_months,
            actual_months_used=None,
            sample_count=len(records),
            widened=True,
            all_history=True,
        )
        if not records:
            raise InsufficientDataError("No qualifying records in the full history", window)

        logger.warning(f"Falling back to all history ({len(records)} records)")
        return LookbackResult(records=records, window=window)

"""Tests for climb performance aggregation."""

from datetime import date

import pytest

from telemetry_analytics.analytics.climb_trends import ClimbTrendAnalyzer
from telemetry_analytics.analytics.grouping import ClimbGrouper
from telemetry_analytics.models.analysis import ClimbCategory, ClimbGroup, ClimbTrend


@pytest.mark.parametrize("first_vam, last_vam, expected", [
    (1000, 1060, ClimbTrend.IMPROVING),
    (1000, 970, ClimbTrend.STABLE),
    (1000, 1050, ClimbTrend.STABLE),
    (1000, 940, ClimbTrend.DECLINING),
])
def test_trend_thresholds(record_factory, first_vam, last_vam, expected):
    first = record_factory("a_0", 5.0, 400, vam=first_vam, record_date=date(2024, 1, 10))
    last = record_factory("b_0", 5.0, 400, vam=last_vam, record_date=date(2024, 4, 10))
    # Chronological order decides, not input order
    assert ClimbTrendAnalyzer().trend([last, first]) == expected


def test_single_attempt_is_stable(record_factory):
    assert ClimbTrendAnalyzer().trend([record_factory("a_0", 5.0, 400)]) == ClimbTrend.STABLE


def test_performance_uses_best_attempt(record_factory):
    attempts = [
        record_factory("a_0", 5.0, 400, vam=950, record_date=date(2024, 1, 5)),
        record_factory("b_0", 5.1, 410, vam=1100, record_date=date(2024, 2, 5)),
        record_factory("c_0", 4.9, 395, vam=1050, record_date=date(2024, 3, 5)),
    ]
    group = ClimbGroup(seed=attempts[0], members=attempts)
    [perf] = ClimbTrendAnalyzer().performances([group])

    assert perf.climb_id == "b_0"
    assert perf.vam_m_per_h == 1100
    assert perf.attempts == 3
    assert perf.trend == ClimbTrend.IMPROVING
    assert perf.last_attempt == date(2024, 3, 5)


def test_vam_by_category_reports_all_categories(record_factory):
    records = [
        record_factory("a_0", 3.0, 200, vam=900, category=ClimbCategory.CAT4),
        record_factory("b_0", 3.0, 210, vam=1100, category=ClimbCategory.CAT4),
        record_factory("c_0", 8.0, 700, vam=1250, category=ClimbCategory.CAT2),
    ]
    stats = {s.category: s for s in ClimbTrendAnalyzer.vam_by_category(records)}

    assert list(stats) == list(ClimbCategory)
    assert stats[ClimbCategory.CAT4].average_vam == 1000
    assert stats[ClimbCategory.CAT4].best_vam == 1100
    assert stats[ClimbCategory.CAT4].attempts == 2
    assert stats[ClimbCategory.CAT4].benchmark_vam == 1000
    assert stats[ClimbCategory.CAT2].best_vam == 1250
    assert stats[ClimbCategory.HC].attempts == 0
    assert stats[ClimbCategory.HC].average_vam == 0
    assert stats[ClimbCategory.HC].benchmark_vam == 1500
    assert stats[ClimbCategory.HC].label == "HC"
    assert stats[ClimbCategory.CAT1].label == "Cat 1"


def test_monthly_trends_zero_fill(record_factory):
    records = [
        record_factory("a_0", 5.0, 400, vam=1000, record_date=date(2024, 6, 2)),
        record_factory("b_0", 5.0, 300, vam=1200, record_date=date(2024, 6, 9)),
        record_factory("c_0", 5.0, 350, vam=900, record_date=date(2024, 3, 9)),
        # Outside the eight-month window
        record_factory("d_0", 5.0, 350, vam=900, record_date=date(2023, 1, 9)),
    ]
    trends = ClimbTrendAnalyzer.monthly_trends(records, date(2024, 6, 15))

    assert [t.month for t in trends] == [
        "2023-11", "2023-12", "2024-01", "2024-02",
        "2024-03", "2024-04", "2024-05", "2024-06",
    ]
    june = trends[-1]
    assert june.climbs == 2
    assert june.avg_vam == 1100
    assert june.max_vam == 1200
    assert june.total_elevation_m == 700
    assert trends[4].climbs == 1
    assert trends[5].climbs == 0
    assert trends[5].avg_vam == 0
    assert trends[5].total_elevation_m == 0


def test_monthly_trends_without_records():
    trends = ClimbTrendAnalyzer.monthly_trends([], date(2024, 6, 15), months=3)
    assert [t.month for t in trends] == ["2024-04", "2024-05", "2024-06"]
    assert all(t.climbs == 0 for t in trends)


def test_segment_estimates(record_factory):
    records = [
        record_factory(f"r{i}_0", 2.0 + i * 3, 150 + i * 250, vam=1000, duration_s=1000)
        for i in range(6)
    ]
    analyzer = ClimbTrendAnalyzer()
    performances = analyzer.performances(ClimbGrouper().group(records))
    estimates = analyzer.segment_estimates(performances)

    assert len(estimates) == 4
    first = estimates[0]
    assert first.segment_name.endswith("- Segment 1")
    assert first.personal_time_s == 1000
    assert first.reference_time_s == 820
    assert first.reference_vam == 1220
    assert first.percentage_off == pytest.approx(22.0)
    assert first.total_attempts == 1


def test_segment_estimates_are_deterministic(record_factory):
    records = [record_factory("a_0", 5.0, 400, vam=1000)]
    analyzer = ClimbTrendAnalyzer()
    performances = analyzer.performances(ClimbGrouper().group(records))
    assert analyzer.segment_estimates(performances) == analyzer.segment_estimates(performances)

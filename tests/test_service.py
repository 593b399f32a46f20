"""End-to-end tests for the analytics service over a SQLite store."""

from datetime import date, datetime

import pytest

from telemetry_analytics.errors import InputValidationError
from telemetry_analytics.models.analysis import (
    ClimbAnalysis,
    FTPMethod,
    InsufficientData,
    TrendsAnalysis,
)


@pytest.fixture
def climb_ride(db, activity_factory, linear_climb_samples):
    activity = activity_factory("a1", date(2024, 5, 1), title="Passo Test", samples=linear_climb_samples)
    db.save_activities([activity])
    return activity


@pytest.fixture
def stored_profile(db, profile_history):
    for entry in profile_history:
        db.upsert_profile_entry(
            entry.athlete_id, entry.effective_date,
            {"ftp_w": entry.ftp_w, "weight_kg": entry.weight_kg},
        )
    return profile_history


def test_analyze_climbs(analytics, climb_ride):
    result = analytics.analyze_climbs("athlete-1", 12)

    assert isinstance(result, ClimbAnalysis)
    assert result.window_used.requested_months == 12
    assert result.window_used.actual_months_used == 12
    assert result.window_used.widened is False

    [performance] = result.performances
    assert performance.name == "Passo Test"
    assert performance.elevation_m == pytest.approx(400, abs=1)
    assert performance.attempts == 1
    assert len(result.vam_by_category) == 5
    assert len(result.monthly_trends) == 8
    assert result.monthly_trends[-2].climbs == 1
    assert len(result.segment_estimates) == 1


def test_analyze_climbs_widens_window(db, analytics, activity_factory, linear_climb_samples):
    db.save_activities([
        activity_factory("old", date(2022, 12, 1), samples=linear_climb_samples),
    ])
    result = analytics.analyze_climbs("athlete-1", 12)

    assert result.window_used.actual_months_used == 24
    assert result.window_used.widened is True
    assert len(result.performances) == 1


def test_flat_recent_ride_does_not_stop_widening(db, analytics, activity_factory, sample_builder):
    """Windows are judged by climbs found, so a flat ride alone widens the lookback."""
    activities = [
        activity_factory("flat", date(2024, 6, 1), samples=sample_builder([(10000, 0, 3600)])),
    ]
    activities += [
        activity_factory(
            f"hill{i}", date(2023, 9, 2 + i),
            samples=sample_builder([(4000, 400, 3600)], base_elevation=0.0),
        )
        for i in range(5)
    ]
    db.save_activities(activities)

    result = analytics.analyze_climbs("athlete-1", 1)

    assert result.window_used.actual_months_used == 12
    assert result.window_used.widened is True
    assert result.window_used.sample_count == 5
    [performance] = result.performances
    assert performance.attempts == 5


def test_analyze_climbs_without_data(analytics):
    result = analytics.analyze_climbs("athlete-1", 6)

    assert isinstance(result, InsufficientData)
    assert result.insufficient_data is True
    assert result.window_used.all_history is True


def test_analyze_climbs_is_deterministic(analytics, climb_ride):
    first = analytics.analyze_climbs("athlete-1", 12)
    second = analytics.analyze_climbs("athlete-1", 12)
    assert first.model_dump() == second.model_dump()


@pytest.mark.parametrize("period", [0, 25, True, "12", 1.5])
def test_invalid_period_rejected(analytics, period):
    with pytest.raises(InputValidationError):
        analytics.analyze_climbs("athlete-1", period)


def test_blank_athlete_rejected(analytics):
    with pytest.raises(InputValidationError):
        analytics.estimate_ftp("  ", 3)


def test_estimate_ftp(db, analytics, activity_factory):
    db.save_activities([
        activity_factory("t1", date(2024, 5, 20), title="FTP Test", duration_s=1200, avg_power_w=280),
        activity_factory("r1", date(2024, 5, 10), duration_s=5400, avg_power_w=200, normalized_power_w=215),
        activity_factory("r2", date(2024, 5, 1), duration_s=4000, avg_power_w=190),
    ])
    db.upsert_profile_entry("athlete-1", date(2024, 1, 1), {"ftp_w": 240})

    result = analytics.estimate_ftp("athlete-1", 3)

    assert result.estimate.value_w == 266
    assert result.estimate.method == FTPMethod.TWENTY_MINUTE_TEST
    assert result.current_ftp_w == 240
    assert result.suggest_update is True
    assert [p.duration_s for p in result.power_curve] == [300, 600, 1200, 1800, 3600]
    assert result.power_curve[2].best_power_w == 280


def test_short_rides_do_not_stop_ftp_widening(db, analytics, activity_factory):
    """Rides of five minutes or less are not FTP candidates and do not fill a window."""
    db.save_activities(
        [activity_factory(f"s{i}", date(2024, 6, 1 + i), duration_s=200, avg_power_w=300) for i in range(3)]
        + [activity_factory(f"r{i}", date(2023, 9, 1 + i), duration_s=4000, avg_power_w=230) for i in range(3)]
    )

    result = analytics.estimate_ftp("athlete-1", 3)

    assert result.window_used.actual_months_used == 12
    assert result.window_used.widened is True
    assert result.window_used.sample_count == 3
    assert result.estimate.value_w == 230
    assert result.estimate.method == FTPMethod.CRITICAL_POWER
    assert {p.source_activity_id for p in result.power_curve} <= {"r0", "r1", "r2"}


def test_estimate_ftp_insufficient(db, analytics, activity_factory):
    db.save_activities([activity_factory("r1", date(2024, 5, 10), avg_power_w=200)])
    result = analytics.estimate_ftp("athlete-1", 3)

    # One powered activity is below the threshold in every window, so all history is used
    assert result.window_used.all_history is True
    assert result.power_curve[-1].best_power_w == 200


def test_record_ftp_estimate_is_idempotent(db, analytics):
    analytics.record_ftp_estimate("athlete-1", 266.0, date(2024, 6, 1))
    entry = analytics.record_ftp_estimate("athlete-1", 270.0, date(2024, 6, 1))

    assert entry.ftp_w == 270
    history = db.fetch_profile_history("athlete-1")
    assert len(history) == 1
    assert history[0].ftp_w == 270


def test_record_ftp_estimate_defaults_to_today(db, analytics):
    entry = analytics.record_ftp_estimate("athlete-1", 250)
    assert entry.effective_date == date(2024, 6, 15)


@pytest.mark.parametrize("value", [30, 700, float("nan")])
def test_record_ftp_estimate_rejects_bad_values(analytics, value):
    with pytest.raises(InputValidationError):
        analytics.record_ftp_estimate("athlete-1", value)


def test_refresh_power_bests(db, analytics, climb_ride):
    bests = analytics.refresh_power_bests("a1")

    assert bests[60] == 250
    assert bests[3600] == 250
    assert 5400 not in bests
    [activity] = db.fetch_activities("athlete-1")
    assert activity.power_bests == bests


def test_refresh_power_bests_without_samples(db, analytics, activity_factory):
    db.save_activities([activity_factory("bare", date(2024, 5, 1), avg_power_w=200)])
    assert analytics.refresh_power_bests("bare") == {}


def test_analyze_cadence(db, analytics, activity_factory, sample_builder, stored_profile):
    db.save_activities([
        activity_factory(
            "c1", date(2024, 5, 1), avg_power_w=200, avg_cadence_rpm=85,
            samples=sample_builder([(3000, 0, 600)], power=200, cadence=85),
        ),
        activity_factory(
            "c2", date(2024, 5, 8), avg_power_w=240, avg_cadence_rpm=95,
            samples=sample_builder([(3500, 0, 600)], start=datetime(2024, 5, 8, 8), power=240, cadence=95),
        ),
    ])
    result = analytics.analyze_cadence("athlete-1", 6)

    assert result.optimal_cadence == 95
    # Zones come from the latest profile FTP of 275 W
    assert [z.power_zone for z in result.cadence_by_power_zone] == ["Z2", "Z3"]
    assert [t.month for t in result.cadence_trends] == ["2024-05"]
    assert result.window_used.actual_months_used == 6


def test_analyze_cadence_rejects_bad_ftp(analytics):
    with pytest.raises(InputValidationError):
        analytics.analyze_cadence("athlete-1", 6, ftp_w=700)


def test_analyze_trends(db, analytics, activity_factory, stored_profile):
    db.save_activities([
        activity_factory("a", date(2024, 6, 1), duration_s=7200, avg_power_w=220),
        activity_factory("b", date(2024, 5, 10), duration_s=5400, avg_power_w=230),
        activity_factory("c", date(2024, 4, 1), duration_s=3600, avg_power_w=210),
        activity_factory("d", date(2024, 2, 1), duration_s=3600, avg_power_w=200),
        activity_factory("e", date(2024, 1, 10), duration_s=3600, avg_power_w=200),
    ])
    result = analytics.analyze_trends("athlete-1", "quarter")

    assert isinstance(result, TrendsAnalysis)
    assert result.window_used.actual_months_used == 3
    metrics = {m.metric: m for m in result.comparison_metrics}
    assert metrics["FTP"].current == 275
    assert metrics["Average power"].current == 220
    assert metrics["Average power"].previous == 200
    assert len(result.seasonal_series) == 12
    assert len(result.forecast) == 6


def test_analyze_trends_insufficient(db, analytics, activity_factory):
    db.save_activities([activity_factory("a", date(2024, 6, 1))])
    result = analytics.analyze_trends("athlete-1", "month")

    assert isinstance(result, InsufficientData)
    assert result.window_used.all_history is True


def test_analyze_trends_rejects_unknown_period(analytics):
    with pytest.raises(InputValidationError):
        analytics.analyze_trends("athlete-1", "week")

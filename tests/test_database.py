"""Tests for database manager module."""

from datetime import date

import pytest
from sqlalchemy import text

from telemetry_analytics.errors import InputValidationError, UpstreamFetchError


@pytest.fixture
def sample_activities(activity_factory, sample_builder):
    """Three activities: powered with samples, powered only, and neither."""
    return [
        activity_factory(
            "act1", date(2024, 5, 1), avg_power_w=220, avg_cadence_rpm=88,
            samples=sample_builder([(1000, 50, 60)], power=220, cadence=88),
            power_bests={60: 260.0, 300: 240.0},
        ),
        activity_factory("act2", date(2024, 5, 10), avg_power_w=200),
        activity_factory("act3", date(2024, 4, 1), title=None),
    ]


def test_database_initialization(db):
    """Test database initialization and schema creation."""
    with db.engine.connect() as conn:
        result = conn.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))
        tables = [row[0] for row in result]

    assert "activities" in tables
    assert "samples" in tables
    assert "profile_entries" in tables
    assert "activity_power_bests" in tables


def test_save_activities(db, sample_activities):
    """Test saving activities to database."""
    stats = db.save_activities(sample_activities)

    assert stats["saved"] == 3
    assert stats["updated"] == 0
    assert stats["skipped"] == 0

    # Save again - should update
    stats = db.save_activities(sample_activities, update_existing=True)

    assert stats["saved"] == 0
    assert stats["updated"] == 3

    # Save again without updates - should skip
    stats = db.save_activities(sample_activities, update_existing=False)

    assert stats["skipped"] == 3


def test_save_nothing(db):
    assert db.save_activities([]) == {"saved": 0, "updated": 0, "skipped": 0}


def test_fetch_activities(db, sample_activities):
    """Test retrieving activities from database."""
    db.save_activities(sample_activities)

    activities = db.fetch_activities("athlete-1")
    assert [a.id for a in activities] == ["act2", "act1", "act3"]
    assert activities[1].date == date(2024, 5, 1)
    assert activities[1].power_bests == {60: 260.0, 300: 240.0}
    assert activities[2].title == ""

    recent = db.fetch_activities("athlete-1", since_date=date(2024, 5, 1))
    assert [a.id for a in recent] == ["act2", "act1"]

    assert db.fetch_activities("someone-else") == []


def test_fetch_activities_requirements(db, sample_activities):
    db.save_activities(sample_activities)

    assert [a.id for a in db.fetch_activities("athlete-1", requires=["power"])] == ["act2", "act1"]
    assert [a.id for a in db.fetch_activities("athlete-1", requires=["power", "cadence"])] == ["act1"]
    assert [a.id for a in db.fetch_activities("athlete-1", requires=["elevation"])] == ["act1"]


def test_unknown_requirement_rejected(db):
    with pytest.raises(InputValidationError):
        db.fetch_activities("athlete-1", requires=["heart_rate"])


def test_fetch_samples(db, sample_activities):
    db.save_activities(sample_activities)

    samples = db.fetch_samples("act1")
    assert len(samples) == 61
    assert samples[0].timestamp < samples[-1].timestamp
    assert samples[0].power_w == 220
    assert samples[-1].elevation_m == pytest.approx(550)
    assert db.fetch_samples("act2") == []


def test_samples_replaced_on_update(db, activity_factory, sample_builder):
    db.save_activities([
        activity_factory("act1", date(2024, 5, 1), samples=sample_builder([(1000, 50, 60)]))
    ])
    db.save_activities([
        activity_factory("act1", date(2024, 5, 1), samples=sample_builder([(1000, 50, 10)]))
    ])
    assert len(db.fetch_samples("act1")) == 11


def test_upsert_profile_entry(db):
    db.upsert_profile_entry("athlete-1", date(2024, 1, 1), {"ftp_w": 250, "weight_kg": 70.0})
    db.upsert_profile_entry("athlete-1", date(2024, 3, 1), {"ftp_w": 260})

    # Fields left out keep their stored value
    db.upsert_profile_entry("athlete-1", date(2024, 1, 1), {"ftp_w": 255})

    history = db.fetch_profile_history("athlete-1")
    assert [e.effective_date for e in history] == [date(2024, 3, 1), date(2024, 1, 1)]
    assert history[1].ftp_w == 255
    assert history[1].weight_kg == 70.0
    assert history[0].weight_kg is None


def test_upsert_unknown_profile_field(db):
    with pytest.raises(InputValidationError):
        db.upsert_profile_entry("athlete-1", date(2024, 1, 1), {"vo2max": 60})


def test_attach_power_bests_is_idempotent(db, sample_activities):
    db.save_activities(sample_activities)

    db.attach_power_bests("act2", {5: 600.0, 60: 350.0})
    db.attach_power_bests("act2", {5: 610.0, 60: 350.0})

    [act2] = [a for a in db.fetch_activities("athlete-1") if a.id == "act2"]
    assert act2.power_bests == {5: 610.0, 60: 350.0}
    assert db.get_summary_stats()["activity_power_bests"] == 4


def test_get_summary_stats(db, sample_activities):
    db.save_activities(sample_activities)
    db.upsert_profile_entry("athlete-1", date(2024, 1, 1), {"ftp_w": 250})

    stats = db.get_summary_stats()
    assert stats == {
        "activities": 3,
        "samples": 61,
        "profile_entries": 1,
        "activity_power_bests": 2,
    }


def test_store_failure_raises_upstream_error(db):
    with db.engine.connect() as conn:
        conn.execute(text("DROP TABLE activity_power_bests"))
        conn.execute(text("DROP TABLE activities"))
        conn.commit()

    with pytest.raises(UpstreamFetchError) as exc_info:
        db.fetch_activities("athlete-1")
    assert exc_info.value.operation == "fetch_activities"

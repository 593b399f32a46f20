"""SQLite telemetry store."""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from telemetry_analytics.config import DATABASE_PATH
from telemetry_analytics.errors import InputValidationError, UpstreamFetchError
from telemetry_analytics.models.telemetry import ActivitySummary, ProfileEntry, TelemetrySample
from telemetry_analytics.storage.base import REQUIREMENTS, TelemetryStore

logger = logging.getLogger(__name__)

ACTIVITY_COLUMNS = [
    "id", "athlete_id", "activity_date", "title",
    "duration_s", "distance_m", "elevation_gain_m",
    "avg_power_w", "normalized_power_w", "max_power_w", "intensity_factor", "tss",
    "avg_cadence_rpm", "avg_heart_rate_bpm",
]

SAMPLE_COLUMNS = [
    "timestamp", "lat", "lng", "elevation_m", "power_w", "cadence_rpm", "heart_rate_bpm",
]

PROFILE_FIELDS = {"ftp_w", "weight_kg"}

REQUIREMENT_FILTERS = {
    "power": "a.avg_power_w > 0",
    "cadence": "a.avg_cadence_rpm IS NOT NULL",
    "elevation": (
        "EXISTS (SELECT 1 FROM samples s "
        "WHERE s.activity_id = a.id AND s.elevation_m IS NOT NULL)"
    ),
}


class DatabaseManager(TelemetryStore):
    """Manage SQLite database operations."""

    def __init__(self, db_path: str = None):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file (uses config default if None)
        """
        self.db_path = Path(db_path if db_path else DATABASE_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # SQLAlchemy engine with WAL mode for concurrent readers and writers
        self.engine = self._create_engine()

        self._initialize_database()

    def _create_engine(self) -> Engine:
        """Create SQLAlchemy engine with optimized settings."""
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={
                "check_same_thread": False,
                "timeout": 30,
            },
            pool_pre_ping=True,
            echo=False,
        )

        with engine.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.execute(text("PRAGMA synchronous=NORMAL"))
            conn.execute(text("PRAGMA temp_store=MEMORY"))
            conn.commit()

        return engine

    @contextmanager
    def _connection(self, operation: str):
        """Connection that commits on success and wraps driver errors."""
        try:
            with self.engine.connect() as conn:
                yield conn
                conn.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database {operation} failed: {e}")
            raise UpstreamFetchError(f"Database {operation} failed: {e}", operation) from e

    def _initialize_database(self):
        """Initialize database schema."""
        with self._connection("initialize") as conn:
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS activities (
                    id TEXT PRIMARY KEY,
                    athlete_id TEXT NOT NULL,
                    activity_date DATE NOT NULL,
                    title TEXT,

                    -- Duration and distance
                    duration_s REAL NOT NULL,
                    distance_m REAL,
                    elevation_gain_m REAL,

                    -- Power data
                    avg_power_w REAL,
                    normalized_power_w REAL,
                    max_power_w REAL,
                    intensity_factor REAL,
                    tss REAL,

                    -- Cadence and heart rate
                    avg_cadence_rpm REAL,
                    avg_heart_rate_bpm REAL,

                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text(
                "CREATE INDEX IF NOT EXISTS idx_activities_athlete_date "
                "ON activities(athlete_id, activity_date)"
            ))

            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS samples (
                    activity_id TEXT NOT NULL REFERENCES activities(id),
                    timestamp TIMESTAMP NOT NULL,
                    lat REAL,
                    lng REAL,
                    elevation_m REAL,
                    power_w REAL,
                    cadence_rpm REAL,
                    heart_rate_bpm REAL,
                    PRIMARY KEY (activity_id, timestamp)
                )
            """))

            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS profile_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    athlete_id TEXT NOT NULL,
                    effective_date DATE NOT NULL,
                    ftp_w REAL,
                    weight_kg REAL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (athlete_id, effective_date)
                )
            """))

            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS activity_power_bests (
                    activity_id TEXT NOT NULL REFERENCES activities(id),
                    duration_s INTEGER NOT NULL,
                    power_w REAL NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (activity_id, duration_s)
                )
            """))

        logger.info(f"Database initialized at {self.db_path}")

    def save_activities(
        self,
        activities: Iterable[ActivitySummary],
        update_existing: bool = True,
    ) -> dict:
        """Save activities, with their samples and power bests when present.

        Args:
            activities: Activities to store
            update_existing: Whether to overwrite activities already stored

        Returns:
            Dictionary with save statistics
        """
        stats = {"saved": 0, "updated": 0, "skipped": 0}
        activities = list(activities)
        if not activities:
            return stats

        with self._connection("save_activities") as conn:
            existing_ids = {row[0] for row in conn.execute(text("SELECT id FROM activities"))}

            for activity in activities:
                exists = activity.id in existing_ids
                if exists and not update_existing:
                    stats["skipped"] += 1
                    continue

                row = self._activity_row(activity)
                if exists:
                    assignments = ", ".join(f"{c} = :{c}" for c in ACTIVITY_COLUMNS if c != "id")
                    conn.execute(
                        text(f"UPDATE activities SET {assignments}, updated_at = :updated_at WHERE id = :id"),
                        {**row, "updated_at": datetime.now().isoformat()},
                    )
                    stats["updated"] += 1
                else:
                    conn.execute(
                        text(
                            f"INSERT INTO activities ({', '.join(ACTIVITY_COLUMNS)}) "
                            f"VALUES ({', '.join(':' + c for c in ACTIVITY_COLUMNS)})"
                        ),
                        row,
                    )
                    stats["saved"] += 1

                if activity.samples is not None:
                    self._replace_samples(conn, activity.id, activity.samples)
                if activity.power_bests:
                    self._upsert_power_bests(conn, activity.id, activity.power_bests)

        logger.info(
            f"Saved {stats['saved']} new, updated {stats['updated']}, "
            f"skipped {stats['skipped']} activities"
        )
        return stats

    @staticmethod
    def _activity_row(activity: ActivitySummary) -> dict:
        row = activity.model_dump(exclude={"samples", "power_bests", "date"})
        row["activity_date"] = activity.date.isoformat()
        return {c: row.get(c) for c in ACTIVITY_COLUMNS}

    @staticmethod
    def _replace_samples(conn: Connection, activity_id: str, samples: list[TelemetrySample]):
        conn.execute(text("DELETE FROM samples WHERE activity_id = :id"), {"id": activity_id})
        if not samples:
            return
        rows = [
            {
                "activity_id": activity_id,
                **s.model_dump(),
                "timestamp": s.timestamp.isoformat(),
            }
            for s in samples
        ]
        conn.execute(
            text(
                f"INSERT OR REPLACE INTO samples (activity_id, {', '.join(SAMPLE_COLUMNS)}) "
                f"VALUES (:activity_id, {', '.join(':' + c for c in SAMPLE_COLUMNS)})"
            ),
            rows,
        )

    @staticmethod
    def _upsert_power_bests(conn: Connection, activity_id: str, bests: dict[int, float]):
        conn.execute(
            text("""
                INSERT INTO activity_power_bests (activity_id, duration_s, power_w, updated_at)
                VALUES (:activity_id, :duration_s, :power_w, :updated_at)
                ON CONFLICT (activity_id, duration_s) DO UPDATE SET
                    power_w = excluded.power_w,
                    updated_at = excluded.updated_at
            """),
            [
                {
                    "activity_id": activity_id,
                    "duration_s": int(duration),
                    "power_w": float(power),
                    "updated_at": datetime.now().isoformat(),
                }
                for duration, power in bests.items()
            ],
        )

    def fetch_activities(
        self,
        athlete_id: str,
        since_date: Optional[date] = None,
        requires: Optional[Iterable[str]] = None,
    ) -> list[ActivitySummary]:
        """Retrieve activities from database.

        Args:
            athlete_id: Athlete to fetch for
            since_date: Earliest activity date (no bound if None)
            requires: Field groups the activity must carry (power, cadence, elevation)

        Returns:
            Activities with power bests attached, most recent first
        """
        requires = set(requires or [])
        unknown = requires - REQUIREMENTS
        if unknown:
            raise InputValidationError(f"Unknown activity requirements: {sorted(unknown)}")

        query = f"SELECT {', '.join('a.' + c for c in ACTIVITY_COLUMNS)} FROM activities a WHERE a.athlete_id = :athlete_id"
        params = {"athlete_id": athlete_id}

        if since_date:
            query += " AND a.activity_date >= :since_date"
            params["since_date"] = since_date.isoformat()

        for requirement in sorted(requires):
            query += f" AND {REQUIREMENT_FILTERS[requirement]}"

        query += " ORDER BY a.activity_date DESC, a.id"

        logger.debug(f"Query: {query}")
        logger.debug(f"Params: {params}")

        with self._connection("fetch_activities") as conn:
            rows = conn.execute(text(query), params).mappings().all()
            bests = self._power_bests_for(conn, [r["id"] for r in rows])

        activities = []
        for row in rows:
            data = dict(row)
            data["date"] = data.pop("activity_date")
            activities.append(ActivitySummary(**data, power_bests=bests.get(row["id"], {})))

        logger.info(f"Retrieved {len(activities)} activities for athlete {athlete_id}")
        return activities

    @staticmethod
    def _power_bests_for(conn: Connection, activity_ids: list[str]) -> dict[str, dict[int, float]]:
        if not activity_ids:
            return {}
        placeholders = ", ".join(f":id{i}" for i in range(len(activity_ids)))
        result = conn.execute(
            text(
                "SELECT activity_id, duration_s, power_w FROM activity_power_bests "
                f"WHERE activity_id IN ({placeholders})"
            ),
            {f"id{i}": activity_id for i, activity_id in enumerate(activity_ids)},
        )
        bests: dict[str, dict[int, float]] = {}
        for activity_id, duration, power in result:
            bests.setdefault(activity_id, {})[int(duration)] = power
        return bests

    def fetch_samples(self, activity_id: str) -> list[TelemetrySample]:
        with self._connection("fetch_samples") as conn:
            rows = conn.execute(
                text(
                    f"SELECT {', '.join(SAMPLE_COLUMNS)} FROM samples "
                    "WHERE activity_id = :id ORDER BY timestamp"
                ),
                {"id": activity_id},
            ).mappings().all()
        return [TelemetrySample(**row) for row in rows]

    def fetch_profile_history(self, athlete_id: str) -> list[ProfileEntry]:
        with self._connection("fetch_profile_history") as conn:
            rows = conn.execute(
                text("""
                    SELECT athlete_id, effective_date, ftp_w, weight_kg
                    FROM profile_entries
                    WHERE athlete_id = :athlete_id
                    ORDER BY effective_date DESC
                """),
                {"athlete_id": athlete_id},
            ).mappings().all()
        return [ProfileEntry(**row) for row in rows]

    def upsert_profile_entry(self, athlete_id: str, effective_date: date, fields: dict) -> None:
        """Insert or update a profile entry; fields left out keep their stored value."""
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise InputValidationError(f"Unknown profile fields: {sorted(unknown)}")

        with self._connection("upsert_profile_entry") as conn:
            conn.execute(
                text("""
                    INSERT INTO profile_entries (athlete_id, effective_date, ftp_w, weight_kg, updated_at)
                    VALUES (:athlete_id, :effective_date, :ftp_w, :weight_kg, :updated_at)
                    ON CONFLICT (athlete_id, effective_date) DO UPDATE SET
                        ftp_w = COALESCE(excluded.ftp_w, profile_entries.ftp_w),
                        weight_kg = COALESCE(excluded.weight_kg, profile_entries.weight_kg),
                        updated_at = excluded.updated_at
                """),
                {
                    "athlete_id": athlete_id,
                    "effective_date": effective_date.isoformat(),
                    "ftp_w": fields.get("ftp_w"),
                    "weight_kg": fields.get("weight_kg"),
                    "updated_at": datetime.now().isoformat(),
                },
            )
        logger.info(f"Profile entry for {athlete_id} on {effective_date} upserted: {fields}")

    def attach_power_bests(self, activity_id: str, bests: dict[int, float]) -> None:
        if not bests:
            return
        with self._connection("attach_power_bests") as conn:
            self._upsert_power_bests(conn, activity_id, bests)
        logger.debug(f"Attached {len(bests)} power bests to activity {activity_id}")

    def get_summary_stats(self) -> dict:
        """Row counts per table."""
        stats = {}
        with self._connection("get_summary_stats") as conn:
            for table in ("activities", "samples", "profile_entries", "activity_power_bests"):
                stats[table] = conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()
        return stats

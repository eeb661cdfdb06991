"""SQLite database layer for habit-xp.

Implements the ledger store contract and keeps the activity history the
caller needs to rebuild recent-activity windows.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator

from habit_xp.errors import StorageUnavailableError
from habit_xp.ledger import DailyLimit
from habit_xp.levels import level_from_total_exp
from habit_xp.models import Activity, ActivityQuality, Category

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".habit-xp" / "data.db"


def _to_stored_time(moment: datetime) -> str:
    """Aware timestamps are stored in UTC so text ordering matches time ordering."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.isoformat()


def _row_to_limit(row: sqlite3.Row) -> DailyLimit:
    return DailyLimit(
        user_id=row["user_id"],
        category=Category(row["category"]),
        day=date.fromisoformat(row["date"]),
        base_cap=row["base_cap"],
        bonus_cap=row["bonus_cap"],
        granted_so_far=row["granted_so_far"],
        activity_count=row["activity_count"],
        unique_activity_count=row["unique_activity_count"],
        violation_count=row["violation_count"],
        streak_days_at_creation=row["streak_days_at_creation"],
    )


def _row_to_activity(row: sqlite3.Row) -> Activity:
    return Activity(
        user_id=row["user_id"],
        category=Category(row["category"]),
        name=row["name"],
        quality=ActivityQuality(row["quality"]),
        timestamp=datetime.fromisoformat(row["timestamp"]),
        duration=row["duration"],
        media_attached=bool(row["media_attached"]),
    )


class Database:
    """SQLite database manager with WAL mode.

    The connection runs in autocommit mode; the grant path opens its own
    BEGIN IMMEDIATE transaction so the headroom check and the increment
    happen under one write lock, across threads and processes.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        try:
            self.conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"cannot open database at {self.db_path}: {exc}") from exc
        self.init_db()

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except sqlite3.Error as exc:
                logger.error("Database failure while trying to %s: %s", action, exc)
                raise StorageUnavailableError(f"could not {action}: {exc}") from exc

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        with self._guard("initialize schema"):
            self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS daily_limits (
                    user_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    date TEXT NOT NULL,
                    base_cap INTEGER NOT NULL,
                    bonus_cap INTEGER NOT NULL,
                    granted_so_far INTEGER DEFAULT 0,
                    activity_count INTEGER DEFAULT 0,
                    unique_activity_count INTEGER DEFAULT 0,
                    violation_count INTEGER DEFAULT 0,
                    streak_days_at_creation INTEGER DEFAULT 0,
                    PRIMARY KEY (user_id, category, date)
                );

                CREATE TABLE IF NOT EXISTS daily_limit_names (
                    user_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    date TEXT NOT NULL,
                    name TEXT NOT NULL,
                    PRIMARY KEY (user_id, category, date, name)
                );

                CREATE TABLE IF NOT EXISTS activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    name TEXT NOT NULL,
                    quality TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    experience INTEGER NOT NULL,
                    duration INTEGER,
                    media_attached BOOLEAN DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS idx_activities_user_time
                    ON activities (user_id, timestamp);
            """)

    # ── Ledger store ──────────────────────────────────────────────────────────

    def get(self, user_id: str, category: Category, day: date) -> DailyLimit | None:
        """Get the daily limit for a key."""
        with self._guard("read daily limit"):
            row = self.conn.execute(
                "SELECT * FROM daily_limits WHERE user_id = ? AND category = ? AND date = ?",
                (user_id, category.value, day.isoformat()),
            ).fetchone()
        return _row_to_limit(row) if row else None

    def create(self, limit: DailyLimit) -> DailyLimit:
        """Insert a daily limit unless one exists; return the stored row."""
        with self._guard("create daily limit"):
            self.conn.execute(
                "INSERT OR IGNORE INTO daily_limits "
                "(user_id, category, date, base_cap, bonus_cap, granted_so_far, activity_count, "
                "unique_activity_count, violation_count, streak_days_at_creation) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    limit.user_id, limit.category.value, limit.day.isoformat(),
                    limit.base_cap, limit.bonus_cap, limit.granted_so_far, limit.activity_count,
                    limit.unique_activity_count, limit.violation_count, limit.streak_days_at_creation,
                ),
            )
            stored = self.get(limit.user_id, limit.category, limit.day)
        if stored is None:
            raise StorageUnavailableError(f"daily limit for {limit.user_id}/{limit.category.value} was not stored")
        return stored

    def increment_with_ceiling(
        self,
        user_id: str,
        category: Category,
        day: date,
        requested: int,
        activity_name: str | None = None,
    ) -> int:
        """Grant min(requested, headroom) in one transaction and return the amount."""
        key = (user_id, category.value, day.isoformat())
        with self._guard("grant experience"), self._transaction():
            row = self.conn.execute(
                "SELECT base_cap, bonus_cap, granted_so_far FROM daily_limits "
                "WHERE user_id = ? AND category = ? AND date = ?",
                key,
            ).fetchone()
            if row is None:
                raise KeyError(key)
            headroom = max(0, row["base_cap"] + row["bonus_cap"] - row["granted_so_far"])
            granted = min(requested, headroom)
            self.conn.execute(
                "UPDATE daily_limits SET granted_so_far = granted_so_far + ?, "
                "activity_count = activity_count + 1, violation_count = violation_count + ? "
                "WHERE user_id = ? AND category = ? AND date = ?",
                (granted, 1 if granted < requested else 0, *key),
            )
            if activity_name:
                self.conn.execute(
                    "INSERT OR IGNORE INTO daily_limit_names (user_id, category, date, name) "
                    "VALUES (?, ?, ?, ?)",
                    (*key, activity_name),
                )
                self.conn.execute(
                    "UPDATE daily_limits SET unique_activity_count = ("
                    "SELECT COUNT(*) FROM daily_limit_names "
                    "WHERE user_id = ? AND category = ? AND date = ?) "
                    "WHERE user_id = ? AND category = ? AND date = ?",
                    (*key, *key),
                )
        return granted

    def record_violation(self, user_id: str, category: Category, day: date) -> None:
        with self._guard("record violation"):
            self.conn.execute(
                "UPDATE daily_limits SET violation_count = violation_count + 1 "
                "WHERE user_id = ? AND category = ? AND date = ?",
                (user_id, category.value, day.isoformat()),
            )

    def history(self, user_id: str, category: Category, before: date) -> list[DailyLimit]:
        """Daily limits for a key dated before `before`, newest first."""
        with self._guard("read daily limit history"):
            rows = self.conn.execute(
                "SELECT * FROM daily_limits WHERE user_id = ? AND category = ? AND date < ? "
                "ORDER BY date DESC",
                (user_id, category.value, before.isoformat()),
            ).fetchall()
        return [_row_to_limit(row) for row in rows]

    def entries_since(self, user_id: str, since: date) -> list[DailyLimit]:
        with self._guard("read daily limits"):
            rows = self.conn.execute(
                "SELECT * FROM daily_limits WHERE user_id = ? AND date >= ? ORDER BY date, category",
                (user_id, since.isoformat()),
            ).fetchall()
        return [_row_to_limit(row) for row in rows]

    def delete_before(self, day: date) -> int:
        """Delete daily limits dated before `day`. Returns the number removed."""
        with self._guard("sweep daily limits"), self._transaction():
            cursor = self.conn.execute("DELETE FROM daily_limits WHERE date < ?", (day.isoformat(),))
            self.conn.execute("DELETE FROM daily_limit_names WHERE date < ?", (day.isoformat(),))
        return cursor.rowcount

    # ── Activity history ──────────────────────────────────────────────────────

    def record_activity(self, activity: Activity, experience: int) -> int:
        """Persist an activity with the experience it earned. Returns the row id."""
        with self._guard("record activity"):
            cursor = self.conn.execute(
                "INSERT INTO activities "
                "(user_id, category, name, quality, timestamp, experience, duration, media_attached) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    activity.user_id, activity.category.value, activity.name,
                    activity.quality.value, _to_stored_time(activity.timestamp), experience,
                    activity.duration, activity.media_attached,
                ),
            )
        return cursor.lastrowid

    def recent_activities(
        self, user_id: str, since: datetime, until: datetime | None = None
    ) -> list[Activity]:
        """Activities logged at or after `since` (and at or before `until`), oldest first."""
        query = "SELECT * FROM activities WHERE user_id = ? AND timestamp >= ?"
        params = [user_id, _to_stored_time(since)]
        if until is not None:
            query += " AND timestamp <= ?"
            params.append(_to_stored_time(until))
        with self._guard("read recent activities"):
            rows = self.conn.execute(query + " ORDER BY timestamp", params).fetchall()
        return [_row_to_activity(row) for row in rows]

    def activity_timestamps(self, user_id: str) -> list[datetime]:
        """Timestamps of every activity that earned experience."""
        with self._guard("read activity dates"):
            rows = self.conn.execute(
                "SELECT timestamp FROM activities WHERE user_id = ? AND experience > 0",
                (user_id,),
            ).fetchall()
        return [datetime.fromisoformat(row["timestamp"]) for row in rows]

    def total_exp(self, user_id: str, category: Category | None = None) -> int:
        """Sum of experience earned, overall or for one category."""
        query = "SELECT COALESCE(SUM(experience), 0) AS total FROM activities WHERE user_id = ?"
        params: list[str] = [user_id]
        if category is not None:
            query += " AND category = ?"
            params.append(category.value)
        with self._guard("read total experience"):
            row = self.conn.execute(query, params).fetchone()
        return int(row["total"])

    def category_levels(self, user_id: str) -> dict[Category, int]:
        """Current level per category, from the stored experience totals."""
        return {
            category: level_from_total_exp(self.total_exp(user_id, category)).level
            for category in Category
        }

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

"""Tests for the SQLite database layer."""

import threading
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from habit_xp.db import Database
from habit_xp.errors import StorageUnavailableError
from habit_xp.ledger import DailyLimit, DailyLimitLedger, LimitState
from habit_xp.models import Activity, ActivityQuality, Category

WEDNESDAY = date(2026, 3, 4)
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    db_path = tmp_path / "test.db"
    database = Database(db_path=db_path)
    yield database
    database.close()


def _limit(day=WEDNESDAY, category=Category.HEALTH, **overrides):
    fields = dict(user_id="u1", category=category, day=day, base_cap=600, bonus_cap=0)
    fields.update(overrides)
    return DailyLimit(**fields)


def _activity(name="run", category=Category.HEALTH, at=NOW, user_id="u1"):
    return Activity(user_id=user_id, category=category, name=name, quality=ActivityQuality.B, timestamp=at)


class TestDatabaseCreation:
    def test_creates_db_file(self, tmp_path):
        db_path = tmp_path / "sub" / "test.db"
        database = Database(db_path=db_path)
        assert db_path.exists()
        database.close()

    def test_tables_exist(self, db):
        cursor = db.conn.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
        tables = {row["name"] for row in cursor.fetchall()}
        assert {"activities", "daily_limits", "daily_limit_names"} <= tables

    def test_wal_mode_enabled(self, db):
        result = db.conn.execute("PRAGMA journal_mode").fetchone()
        assert result[0] == "wal"

    def test_init_is_idempotent(self, db):
        db.init_db()
        db.init_db()


class TestLedgerStore:
    def test_get_missing(self, db):
        assert db.get("u1", Category.HEALTH, WEDNESDAY) is None

    def test_create_and_get(self, db):
        stored = db.create(_limit(bonus_cap=100, streak_days_at_creation=7))
        assert stored.total_cap == 700
        fetched = db.get("u1", Category.HEALTH, WEDNESDAY)
        assert fetched == stored
        assert fetched.streak_days_at_creation == 7

    def test_create_keeps_existing(self, db):
        db.create(_limit(base_cap=600))
        stored = db.create(_limit(base_cap=999))
        assert stored.base_cap == 600

    def test_create_raises_when_row_missing(self, db):
        with patch.object(db, "get", return_value=None):
            with pytest.raises(StorageUnavailableError):
                db.create(_limit())

    def test_increment_with_ceiling(self, db):
        db.create(_limit())
        assert db.increment_with_ceiling("u1", Category.HEALTH, WEDNESDAY, 400, "run") == 400
        assert db.increment_with_ceiling("u1", Category.HEALTH, WEDNESDAY, 400, "swim") == 200
        entry = db.get("u1", Category.HEALTH, WEDNESDAY)
        assert entry.granted_so_far == 600
        assert entry.activity_count == 2
        assert entry.unique_activity_count == 2
        assert entry.violation_count == 1
        assert entry.state == LimitState.EXHAUSTED

    def test_increment_repeated_name(self, db):
        db.create(_limit())
        db.increment_with_ceiling("u1", Category.HEALTH, WEDNESDAY, 10, "run")
        db.increment_with_ceiling("u1", Category.HEALTH, WEDNESDAY, 10, "run")
        assert db.get("u1", Category.HEALTH, WEDNESDAY).unique_activity_count == 1

    def test_increment_missing_entry(self, db):
        with pytest.raises(KeyError):
            db.increment_with_ceiling("u1", Category.HEALTH, WEDNESDAY, 10)

    def test_increment_rolls_back_on_error(self, db):
        with pytest.raises(KeyError):
            db.increment_with_ceiling("u1", Category.HEALTH, WEDNESDAY, 10)
        # The connection is usable again after the rollback.
        db.create(_limit())
        assert db.increment_with_ceiling("u1", Category.HEALTH, WEDNESDAY, 10) == 10

    def test_record_violation(self, db):
        db.create(_limit())
        db.record_violation("u1", Category.HEALTH, WEDNESDAY)
        assert db.get("u1", Category.HEALTH, WEDNESDAY).violation_count == 1

    def test_history_newest_first(self, db):
        for offset in (3, 1, 2, 0):
            db.create(_limit(day=WEDNESDAY - timedelta(days=offset)))
        history = db.history("u1", Category.HEALTH, before=WEDNESDAY)
        assert [e.day for e in history] == [WEDNESDAY - timedelta(days=d) for d in (1, 2, 3)]

    def test_entries_since(self, db):
        db.create(_limit(day=WEDNESDAY - timedelta(days=10)))
        db.create(_limit(day=WEDNESDAY))
        db.create(_limit(day=WEDNESDAY, category=Category.LEARNING))
        entries = db.entries_since("u1", WEDNESDAY - timedelta(days=7))
        assert [(e.day, e.category) for e in entries] == [
            (WEDNESDAY, Category.HEALTH),
            (WEDNESDAY, Category.LEARNING),
        ]

    def test_delete_before(self, db):
        db.create(_limit(day=WEDNESDAY - timedelta(days=2)))
        db.increment_with_ceiling("u1", Category.HEALTH, WEDNESDAY - timedelta(days=2), 10, "run")
        db.create(_limit(day=WEDNESDAY))
        assert db.delete_before(WEDNESDAY - timedelta(days=1)) == 1
        assert db.get("u1", Category.HEALTH, WEDNESDAY) is not None
        names = db.conn.execute("SELECT COUNT(*) FROM daily_limit_names").fetchone()[0]
        assert names == 0

    def test_ledger_over_database(self, db):
        ledger = DailyLimitLedger(db)
        assert ledger.try_grant("u1", Category.RELATIONSHIP, WEDNESDAY, 300, "call mom") == 300
        assert ledger.try_grant("u1", Category.RELATIONSHIP, WEDNESDAY, 300, "dinner") == 100
        assert ledger.state("u1", Category.RELATIONSHIP, WEDNESDAY) == LimitState.EXHAUSTED

    def test_concurrent_grants_never_exceed_cap(self, db):
        ledger = DailyLimitLedger(db)
        ledger.get_or_create("u1", Category.HEALTH, WEDNESDAY)
        results: list[int] = []
        lock = threading.Lock()

        def grant():
            granted = ledger.try_grant("u1", Category.HEALTH, WEDNESDAY, 70)
            with lock:
                results.append(granted)

        threads = [threading.Thread(target=grant) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(results) == 600
        assert db.get("u1", Category.HEALTH, WEDNESDAY).granted_so_far == 600


class TestActivities:
    def test_record_returns_id(self, db):
        first = db.record_activity(_activity(), 100)
        second = db.record_activity(_activity("swim"), 50)
        assert second > first

    def test_recent_activities(self, db):
        db.record_activity(_activity("old", at=NOW - timedelta(days=2)), 10)
        db.record_activity(_activity("run", at=NOW - timedelta(hours=1)), 10)
        recent = db.recent_activities("u1", NOW - timedelta(days=1))
        assert [a.name for a in recent] == ["run"]
        assert recent[0].timestamp == NOW - timedelta(hours=1)
        assert recent[0].quality == ActivityQuality.B

    def test_recent_activities_ordered_across_offsets(self, db):
        seoul = timezone(timedelta(hours=9))
        # 08:00 in Seoul is 23:00 UTC the day before, earlier than 10:00 UTC
        db.record_activity(_activity("late", at=NOW - timedelta(hours=2)), 10)
        db.record_activity(_activity("early", at=datetime(2026, 3, 4, 8, 0, tzinfo=seoul)), 10)
        recent = db.recent_activities("u1", NOW - timedelta(days=1))
        assert [a.name for a in recent] == ["early", "late"]

    def test_recent_activities_until(self, db):
        db.record_activity(_activity("before", at=NOW - timedelta(hours=1)), 10)
        db.record_activity(_activity("at", at=NOW), 10)
        db.record_activity(_activity("after", at=NOW + timedelta(hours=6)), 10)
        recent = db.recent_activities("u1", NOW - timedelta(days=1), until=NOW)
        assert [a.name for a in recent] == ["before", "at"]

    def test_recent_activities_per_user(self, db):
        db.record_activity(_activity(user_id="u2"), 10)
        assert db.recent_activities("u1", NOW - timedelta(days=1)) == []

    def test_activity_timestamps_skip_zero_exp(self, db):
        db.record_activity(_activity("run"), 0)
        db.record_activity(_activity("swim", at=NOW - timedelta(days=1)), 40)
        assert db.activity_timestamps("u1") == [NOW - timedelta(days=1)]

    def test_total_exp(self, db):
        db.record_activity(_activity("run"), 100)
        db.record_activity(_activity("read", category=Category.LEARNING), 250)
        assert db.total_exp("u1") == 350
        assert db.total_exp("u1", Category.LEARNING) == 250
        assert db.total_exp("nobody") == 0

    def test_category_levels(self, db):
        db.record_activity(_activity("read", category=Category.LEARNING), 1000)
        levels = db.category_levels("u1")
        assert levels[Category.LEARNING] == 5
        assert levels[Category.HEALTH] == 1


class TestStorageErrors:
    def test_closed_connection_raises_storage_error(self, tmp_path):
        database = Database(db_path=tmp_path / "test.db")
        database.close()
        with pytest.raises(StorageUnavailableError):
            database.get("u1", Category.HEALTH, WEDNESDAY)

    def test_unopenable_path(self, tmp_path):
        with pytest.raises(StorageUnavailableError):
            Database(db_path=tmp_path)

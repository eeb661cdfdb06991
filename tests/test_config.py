"""Tests for the config module."""
import json
from datetime import date

from habit_xp.config import (
    build_engine,
    build_ledger,
    build_time_policy,
    get_blocked_hours,
    get_daily_caps,
    get_holidays,
    get_retention_days,
    get_timezone,
    load_config,
    save_config,
    set_timezone,
)
from habit_xp.db import Database
from habit_xp.ledger import InMemoryLedgerStore
from habit_xp.models import Category
from habit_xp.policies import DuplicateActivityVerifier, LevelBalancePolicy


class TestLoadConfig:
    def test_missing_file_returns_empty(self, tmp_path):
        assert load_config(tmp_path / "nonexistent.json") == {}

    def test_invalid_json_returns_empty(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("not json", encoding="utf-8")
        assert load_config(path) == {}

    def test_loads_valid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"key": "value"}', encoding="utf-8")
        assert load_config(path) == {"key": "value"}

    def test_default_path(self, isolated_config):
        isolated_config.write_text('{"timezone": "Europe/Berlin"}', encoding="utf-8")
        assert load_config() == {"timezone": "Europe/Berlin"}


class TestSaveConfig:
    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "sub" / "dir" / "config.json"
        save_config({"nested": True}, path)
        assert json.loads(path.read_text()) == {"nested": True}


class TestTimezone:
    def test_default_utc(self, tmp_path):
        assert get_timezone(tmp_path / "config.json") == "UTC"

    def test_set_and_get(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"holidays": ["2026-12-25"]}, path)
        set_timezone("Asia/Seoul", path)
        assert get_timezone(path) == "Asia/Seoul"
        assert load_config(path)["holidays"] == ["2026-12-25"]


class TestAccessors:
    def test_daily_caps(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"daily_caps": {"health": 700, "gaming": 100, "learning": "lots"}}, path)
        assert get_daily_caps(path) == {Category.HEALTH: 700}

    def test_holidays(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"holidays": ["2026-12-25", "someday"]}, path)
        assert get_holidays(path) == {date(2026, 12, 25)}

    def test_blocked_hours(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"blocked_hours": {"health": [[2, 4], [23, 1]], "bogus": [[1, 2]]}}, path)
        assert get_blocked_hours(path) == {Category.HEALTH: [(2, 4), (23, 1)]}

    def test_retention_days(self, tmp_path):
        path = tmp_path / "config.json"
        assert get_retention_days(path) == 1
        save_config({"retention_days": 14}, path)
        assert get_retention_days(path) == 14
        save_config({"retention_days": "forever"}, path)
        assert get_retention_days(path) == 1


class TestBuilders:
    def test_build_time_policy(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"blocked_hours": {"health": [[12, 14]]}}, path)
        policy = build_time_policy(path)
        assert policy.time_state(Category.HEALTH, 13).is_restricted
        assert policy.time_state(Category.HEALTH, 7).multiplier == 1.2

    def test_build_ledger_applies_overrides(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"daily_caps": {"relationship": 800}, "holidays": ["2026-03-04"], "retention_days": 3}, path)
        ledger = build_ledger(InMemoryLedgerStore(), path)
        assert ledger.base_cap_for(Category.RELATIONSHIP) == 800
        assert ledger.bonus_cap_for(date(2026, 3, 4), 0) == 300
        assert ledger.retention_days == 3

    def test_build_engine(self, tmp_path):
        path = tmp_path / "config.json"
        save_config({"blocked_hours": {"learning": [[0, 6]]}}, path)
        db = Database(db_path=tmp_path / "test.db")
        try:
            engine = build_engine(db, path)
            assert engine.ledger.store is db
            assert isinstance(engine.verifier, DuplicateActivityVerifier)
            assert isinstance(engine.balance_policy, LevelBalancePolicy)
            assert engine.time_policy.time_state(Category.LEARNING, 3).is_restricted
            assert not engine.time_policy.time_state(Category.HEALTH, 3).is_restricted
        finally:
            db.close()

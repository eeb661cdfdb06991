from unittest.mock import MagicMock, patch

import pytest

from habit_xp.db import Database
from habit_xp.errors import StorageUnavailableError
from habit_xp.mcp_server import (
    calculate_exp,
    get_daily_limits,
    get_time_advice,
    get_level,
    get_level_preview,
    get_statistics,
    log_habit,
)

AT = "2026-03-04T12:00:00+00:00"


@pytest.fixture
def db_factory(tmp_path):
    """Each tool call opens and closes its own connection to the same file."""
    path = tmp_path / "test.db"
    return lambda: Database(db_path=path)


class TestCalculateExp:
    def test_preview_does_not_store(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            result = calculate_exp("health", "run", "C", timestamp=AT)
            assert result["final_exp"] == 90
            assert result["remaining_today"] is None
            assert get_level()["total_exp"] == 0

    def test_invalid_category(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            result = calculate_exp("gaming", "raid")
        assert "error" in result

    def test_storage_failure(self):
        with patch("habit_xp.mcp_server._get_db", side_effect=StorageUnavailableError("locked")):
            assert calculate_exp("health", "run") == {"error": "locked"}


class TestLogHabit:
    def test_stores_and_caps(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            first = log_habit("learning", "read", "S", timestamp=AT)
            assert first["outcome"] == "capped"
            assert first["final_exp"] == 500
            assert first["activity_id"] is not None
            assert get_level(category="learning")["total_exp"] == 500

    def test_bad_timestamp(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            assert "error" in log_habit("health", "run", timestamp="soon")


class TestGetLevel:
    @patch("habit_xp.mcp_server._get_db")
    def test_overall(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.total_exp.return_value = 1499
        mock_get_db.return_value = mock_db
        result = get_level()
        assert result["category"] == "overall"
        assert result["level"] == 5
        assert result["current_level_exp"] == 499
        mock_db.total_exp.assert_called_once_with("me", None)
        mock_db.close.assert_called_once()

    @patch("habit_xp.mcp_server._get_db")
    def test_unknown_category(self, mock_get_db):
        mock_get_db.return_value = MagicMock()
        assert "error" in get_level(category="gaming")


class TestGetDailyLimits:
    def test_fresh_user_all_absent(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            result = get_daily_limits()
        assert set(result["categories"]) == {"health", "learning", "relationship", "achievement"}
        assert all(c["state"] == "absent" for c in result["categories"].values())
        assert result["categories"]["health"]["granted"] == 0

    def test_after_logging_today(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            logged = log_habit("health", "walk", "B")
            result = get_daily_limits()
        health = result["categories"]["health"]
        assert health["state"] == "active"
        assert health["granted"] == logged["final_exp"]
        assert health["total_cap"] >= 600


class TestGetStatistics:
    def test_empty(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            result = get_statistics()
        assert result["total_exp"] == 0
        assert result["total_days"] == 7
        assert "health" in result["category_breakdown"]

    def test_invalid_days(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            assert "error" in get_statistics(days=0)


class TestGetLevelPreview:
    @patch("habit_xp.mcp_server._get_db")
    def test_preview(self, mock_get_db):
        mock_db = MagicMock()
        mock_db.total_exp.return_value = 0
        mock_get_db.return_value = mock_db
        result = get_level_preview(levels_ahead=3)
        assert result["current_level"] == 1
        assert [p["level"] for p in result["levels"]] == [2, 3, 4]
        assert result["levels"][0]["total_exp_needed"] == 100


class TestGetTimeAdvice:
    def test_all_categories(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            result = get_time_advice()
        assert set(result["categories"]) == {"health", "learning", "relationship", "achievement"}
        assert 0 <= result["hour"] <= 23
        assert result["patterns"]["recommendations"] == []

    def test_one_category(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            result = get_time_advice(category="health")
        assert list(result["categories"]) == ["health"]

    def test_unknown_category(self, db_factory):
        with patch("habit_xp.mcp_server._get_db", side_effect=db_factory):
            assert "error" in get_time_advice(category="gaming")

"""MCP server for habit-xp.

Exposes experience calculation and level/limit readouts as MCP tools.
Run via: python3 -m habit_xp.mcp_server
"""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any

from mcp.server.fastmcp import FastMCP

from habit_xp.cli import DEFAULT_USER, build_context, local_now, log_activity, time_advice
from habit_xp.config import build_ledger, build_time_policy, get_timezone
from habit_xp.db import Database
from habit_xp.engine import ExpEngine
from habit_xp.errors import HabitXpError
from habit_xp.ledger import DailyLimitLedger
from habit_xp.levels import level_from_total_exp, level_preview
from habit_xp.models import Activity, Category, as_local, resolve_zone
from habit_xp.policies import LevelBalancePolicy

mcp = FastMCP(name="habit-xp")


def _get_db() -> Database:
    return Database()


def _activity(
    user_id: str,
    category: str,
    name: str,
    quality: str,
    timestamp: str,
    duration: int | None,
    media_attached: bool,
) -> Activity:
    zone = resolve_zone(get_timezone())
    moment = as_local(datetime.fromisoformat(timestamp), zone) if timestamp else datetime.now(zone)
    return Activity.from_record(
        {
            "user_id": user_id,
            "category": category,
            "name": name,
            "quality": quality,
            "timestamp": moment,
            "duration": duration,
            "media_attached": media_attached,
        }
    )


@mcp.tool()
def calculate_exp(
    category: str,
    name: str,
    quality: str = "C",
    user_id: str = DEFAULT_USER,
    timestamp: str = "",
    duration: int | None = None,
    media_attached: bool = False,
) -> dict[str, Any]:
    """Preview the experience an activity would earn. Nothing is stored and no daily cap is applied."""
    db = None
    try:
        db = _get_db()
        activity = _activity(user_id, category, name, quality, timestamp, duration, media_attached)
        context = build_context(db, user_id, activity.timestamp, get_timezone())
        engine = ExpEngine(
            time_policy=build_time_policy(),
            balance_policy=LevelBalancePolicy(db.category_levels),
        )
        return engine.calculate_activity_exp(activity, context).to_dict()
    except (HabitXpError, ValueError) as exc:
        return {"error": str(exc)}
    finally:
        if db is not None:
            db.close()


@mcp.tool()
def log_habit(
    category: str,
    name: str,
    quality: str = "C",
    user_id: str = DEFAULT_USER,
    timestamp: str = "",
    duration: int | None = None,
    media_attached: bool = False,
) -> dict[str, Any]:
    """Log an activity: apply bonuses, penalties and the daily cap, then store it."""
    db = None
    try:
        db = _get_db()
        activity = _activity(user_id, category, name, quality, timestamp, duration, media_attached)
        data, _ = log_activity(db, activity)
        return data
    except (HabitXpError, ValueError) as exc:
        return {"error": str(exc)}
    finally:
        if db is not None:
            db.close()


@mcp.tool()
def get_level(user_id: str = DEFAULT_USER, category: str = "") -> dict[str, Any]:
    """Get level and progress, overall or for one category."""
    db = None
    try:
        db = _get_db()
        selected = Category(category) if category else None
        info = level_from_total_exp(db.total_exp(user_id, selected))
        return {"category": category or "overall", **asdict(info)}
    except (HabitXpError, ValueError) as exc:
        return {"error": str(exc)}
    finally:
        if db is not None:
            db.close()


@mcp.tool()
def get_daily_limits(user_id: str = DEFAULT_USER) -> dict[str, Any]:
    """Get today's cap, usage and state for every category."""
    db = None
    try:
        db = _get_db()
        ledger = build_ledger(db)
        now = local_now()
        today = now.date()
        categories: dict[str, Any] = {}
        for category in Category:
            entry = ledger.get(user_id, category, today)
            categories[category.value] = {
                "state": ledger.state(user_id, category, today).value,
                "granted": entry.granted_so_far if entry else 0,
                "total_cap": entry.total_cap if entry else None,
                "remaining": entry.remaining if entry else None,
            }
        return {
            "date": today.isoformat(),
            "categories": categories,
            "minutes_until_reset": DailyLimitLedger.minutes_until_reset(now),
        }
    except HabitXpError as exc:
        return {"error": str(exc)}
    finally:
        if db is not None:
            db.close()


@mcp.tool()
def get_statistics(user_id: str = DEFAULT_USER, days: int = 7) -> dict[str, Any]:
    """Summarize granted experience over the last `days` days."""
    db = None
    try:
        db = _get_db()
        stats = build_ledger(db).statistics(user_id, local_now().date(), days=days)
        data = asdict(stats)
        data["category_breakdown"] = {
            category.value: asdict(breakdown) for category, breakdown in stats.category_breakdown.items()
        }
        return data
    except HabitXpError as exc:
        return {"error": str(exc)}
    finally:
        if db is not None:
            db.close()


@mcp.tool()
def get_level_preview(user_id: str = DEFAULT_USER, category: str = "", levels_ahead: int = 5) -> dict[str, Any]:
    """Get the requirements and milestones for the next few levels."""
    db = None
    try:
        db = _get_db()
        selected = Category(category) if category else None
        info = level_from_total_exp(db.total_exp(user_id, selected))
        return {
            "current_level": info.level,
            "levels": [asdict(p) for p in level_preview(info.level, levels_ahead)],
        }
    except (HabitXpError, ValueError) as exc:
        return {"error": str(exc)}
    finally:
        if db is not None:
            db.close()


@mcp.tool()
def get_time_advice(user_id: str = DEFAULT_USER, category: str = "") -> dict[str, Any]:
    """Get whether now is a good hour per category, the next good hour, and the user's activity pattern."""
    db = None
    try:
        db = _get_db()
        return time_advice(db, user_id, local_now(), category or None)
    except (HabitXpError, ValueError) as exc:
        return {"error": str(exc)}
    finally:
        if db is not None:
            db.close()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()

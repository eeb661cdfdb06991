"""Configuration file management for habit-xp.

Reads and writes ~/.habit-xp/config.json for settings that don't belong in the
DB: cap overrides, holidays, the user's timezone and blocked hours.

Example:

    {
      "timezone": "Asia/Seoul",
      "daily_caps": {"health": 700},
      "holidays": ["2026-12-25"],
      "blocked_hours": {"health": [[2, 4]]},
      "retention_days": 1
    }
"""
from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path

from habit_xp.db import Database
from habit_xp.engine import ExpEngine
from habit_xp.ledger import DEFAULT_RETENTION_DAYS, DailyLimitLedger, LedgerStore
from habit_xp.models import Category
from habit_xp.policies import DefaultTimePolicy, DuplicateActivityVerifier, LevelBalancePolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH: Path = Path.home() / ".habit-xp" / "config.json"


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def get_timezone(config_path: Path | None = None) -> str:
    """Return the configured IANA timezone name, default UTC."""
    return load_config(config_path).get("timezone") or "UTC"


def set_timezone(name: str, config_path: Path | None = None) -> None:
    """Persist the timezone name to config."""
    config = load_config(config_path)
    config["timezone"] = name
    save_config(config, config_path)


def get_daily_caps(config_path: Path | None = None) -> dict[Category, int]:
    """Return per-category base cap overrides. Unknown categories are skipped."""
    caps: dict[Category, int] = {}
    for name, value in (load_config(config_path).get("daily_caps") or {}).items():
        try:
            caps[Category(name)] = int(value)
        except (ValueError, TypeError):
            logger.warning("Ignoring daily cap override %r=%r", name, value)
    return caps


def get_holidays(config_path: Path | None = None) -> set[date]:
    """Return configured holiday dates. Malformed entries are skipped."""
    holidays: set[date] = set()
    for raw in load_config(config_path).get("holidays") or []:
        try:
            holidays.add(date.fromisoformat(raw))
        except (ValueError, TypeError):
            logger.warning("Ignoring holiday %r", raw)
    return holidays


def get_blocked_hours(config_path: Path | None = None) -> dict[Category, list[tuple[int, int]]]:
    """Return blocked [start, end) hour windows per category."""
    blocked: dict[Category, list[tuple[int, int]]] = {}
    for name, spans in (load_config(config_path).get("blocked_hours") or {}).items():
        try:
            category = Category(name)
            blocked[category] = [(int(start), int(end)) for start, end in spans]
        except (ValueError, TypeError):
            logger.warning("Ignoring blocked hours for %r", name)
    return blocked


def get_retention_days(config_path: Path | None = None) -> int:
    value = load_config(config_path).get("retention_days", DEFAULT_RETENTION_DAYS)
    try:
        return max(1, int(value))
    except (ValueError, TypeError):
        return DEFAULT_RETENTION_DAYS


def build_ledger(store: LedgerStore, config_path: Path | None = None) -> DailyLimitLedger:
    """Daily limit ledger over `store` with config overrides applied."""
    return DailyLimitLedger(
        store,
        base_caps=get_daily_caps(config_path),
        holidays=get_holidays(config_path),
        retention_days=get_retention_days(config_path),
    )


def build_time_policy(config_path: Path | None = None) -> DefaultTimePolicy:
    """Default time windows plus the configured blocked hours."""
    return DefaultTimePolicy(blocked=get_blocked_hours(config_path))


def build_engine(db: Database, config_path: Path | None = None) -> ExpEngine:
    """Wire an engine to a Database: ledger, duplicate checks, config time policy and level balance."""
    return ExpEngine(
        ledger=build_ledger(db, config_path),
        verifier=DuplicateActivityVerifier(),
        time_policy=build_time_policy(config_path),
        balance_policy=LevelBalancePolicy(db.category_levels),
    )

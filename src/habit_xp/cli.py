"""CLI commands for habit-xp."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timedelta
from pathlib import Path

from habit_xp.config import build_engine, build_ledger, build_time_policy, get_timezone, set_timezone
from habit_xp.db import Database
from habit_xp.display import (
    console,
    print_calculation_result,
    print_category_levels,
    print_daily_limits,
    print_error,
    print_level_info,
    print_level_preview,
    print_statistics,
    print_sweep_result,
    print_time_advice,
)
from habit_xp.errors import HabitXpError, InvalidArgumentError
from habit_xp.ledger import DailyLimitLedger
from habit_xp.levels import level_from_total_exp, level_preview
from habit_xp.models import (
    QUALITY_ORDER,
    Activity,
    Category,
    ExpCalculationResult,
    ExpContext,
    Outcome,
    UserSnapshot,
    as_local,
    resolve_zone,
)
from habit_xp.policies import analyze_time_patterns
from habit_xp.streaks import calculate_streak

DEFAULT_USER = "me"

# How far back recent activities are loaded for bonus and penalty checks.
RECENT_WINDOW = timedelta(days=1)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="habit-xp",
        description="Earn experience for your daily habits",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log engine decisions to stderr")
    subparsers = parser.add_subparsers(dest="command")

    categories = [c.value for c in Category]
    qualities = [q.value for q in QUALITY_ORDER]

    log_parser = subparsers.add_parser("log", help="Log an activity and earn experience")
    log_parser.add_argument("category", choices=categories)
    log_parser.add_argument("name", help="What you did")
    log_parser.add_argument("quality", nargs="?", default="C", type=str.upper, choices=qualities)
    log_parser.add_argument("--user", "-u", default=DEFAULT_USER)
    log_parser.add_argument("--at", default=None, help="ISO timestamp, defaults to now")
    log_parser.add_argument("--duration", type=int, default=None, help="Minutes spent")
    log_parser.add_argument("--media", action="store_true", help="A photo or video was attached")

    level_parser = subparsers.add_parser("level", help="Show levels per category")
    level_parser.add_argument("--user", "-u", default=DEFAULT_USER)
    level_parser.add_argument("--total", type=int, default=None, help="Show the level for a raw total")

    limits_parser = subparsers.add_parser("limits", help="Show today's daily caps")
    limits_parser.add_argument("--user", "-u", default=DEFAULT_USER)

    stats_parser = subparsers.add_parser("stats", help="Summarize recent days")
    stats_parser.add_argument("--user", "-u", default=DEFAULT_USER)
    stats_parser.add_argument("--days", type=int, default=7)

    preview_parser = subparsers.add_parser("preview", help="Show upcoming level requirements")
    preview_parser.add_argument("--user", "-u", default=DEFAULT_USER)
    preview_parser.add_argument("--category", "-c", choices=categories, default=None)
    preview_parser.add_argument("--ahead", type=int, default=5)

    hours_parser = subparsers.add_parser("hours", help="Show good hours and your activity pattern")
    hours_parser.add_argument("--user", "-u", default=DEFAULT_USER)
    hours_parser.add_argument("--category", "-c", choices=categories, default=None)

    subparsers.add_parser("sweep", help="Delete expired daily limit entries")

    tz_parser = subparsers.add_parser("timezone", help="Set the timezone used for days and hours")
    tz_parser.add_argument("name", help="IANA name, e.g. Europe/Berlin")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    command = args.command
    if command is None:
        parser.print_help()
        return

    try:
        if command == "timezone":
            do_timezone(args.name)
            return
        if command == "level" and args.total is not None:
            do_level_for_total(args.total)
            return

        db = Database()
        try:
            if command == "log":
                do_log(
                    db,
                    category=args.category,
                    name=args.name,
                    quality=args.quality,
                    user_id=args.user,
                    at=args.at,
                    duration=args.duration,
                    media=args.media,
                )
            elif command == "level":
                do_level(db, user_id=args.user)
            elif command == "limits":
                do_limits(db, user_id=args.user)
            elif command == "stats":
                do_stats(db, user_id=args.user, days=args.days)
            elif command == "preview":
                do_preview(db, user_id=args.user, category=args.category, ahead=args.ahead)
            elif command == "hours":
                do_hours(db, user_id=args.user, category=args.category)
            elif command == "sweep":
                do_sweep(db)
        finally:
            db.close()
    except HabitXpError as exc:
        print_error(str(exc))
        sys.exit(1)


def local_now(config_path: Path | None = None) -> datetime:
    """Current time in the configured timezone."""
    return datetime.now(resolve_zone(get_timezone(config_path)))


def build_context(db: Database, user_id: str, now: datetime, timezone_name: str) -> ExpContext:
    """Assemble the calculation snapshot from stored history."""
    zone = resolve_zone(timezone_name)
    active_dates = {as_local(ts, zone).date() for ts in db.activity_timestamps(user_id)}
    streak = calculate_streak(active_dates, as_local(now, zone).date())
    level = level_from_total_exp(db.total_exp(user_id)).level
    return ExpContext(
        now=now,
        user=UserSnapshot(level=level, streak_days=streak.current_streak, timezone=timezone_name),
        recent_activities=db.recent_activities(user_id, now - RECENT_WINDOW, until=now),
    )


def log_activity(
    db: Database, activity: Activity, config_path: Path | None = None
) -> tuple[dict, ExpCalculationResult]:
    """Calculate, and persist when earned, experience for one activity.

    Rejected and time-blocked activities are not stored. Capped ones are,
    with whatever was granted, so they still count toward repetition.
    """
    timezone_name = get_timezone(config_path)
    context = build_context(db, activity.user_id, activity.timestamp, timezone_name)
    result = build_engine(db, config_path).calculate_activity_exp(activity, context)

    activity_id = None
    if result.outcome in (Outcome.GRANTED, Outcome.CAPPED):
        activity_id = db.record_activity(activity, result.final_exp)
    return {"activity_id": activity_id, **result.to_dict()}, result


def do_log(
    db: Database,
    category: str,
    name: str,
    quality: str = "C",
    user_id: str = DEFAULT_USER,
    at: str | None = None,
    duration: int | None = None,
    media: bool = False,
    config_path: Path | None = None,
) -> dict:
    """Log one activity. Returns the calculation as a dict."""
    zone = resolve_zone(get_timezone(config_path))
    if at:
        try:
            timestamp = as_local(datetime.fromisoformat(at), zone)
        except ValueError as exc:
            raise InvalidArgumentError(f"invalid timestamp: {at!r}") from exc
    else:
        timestamp = datetime.now(zone)

    activity = Activity.from_record(
        {
            "user_id": user_id,
            "category": category,
            "name": name,
            "quality": quality,
            "timestamp": timestamp,
            "duration": duration,
            "media_attached": media,
        }
    )
    data, result = log_activity(db, activity, config_path)
    print_calculation_result(activity, result)
    return data


def do_level_for_total(total: int) -> dict:
    info = level_from_total_exp(total)
    print_level_info(info)
    return asdict(info)


def do_level(db: Database, user_id: str = DEFAULT_USER) -> dict:
    """Show the overall level and one row per category."""
    overall = level_from_total_exp(db.total_exp(user_id))
    levels = {category: level_from_total_exp(db.total_exp(user_id, category)) for category in Category}
    print_level_info(overall, title=f"{user_id}: Overall")
    print_category_levels(levels)
    return {
        "overall": asdict(overall),
        "categories": {category.value: asdict(info) for category, info in levels.items()},
    }


def do_limits(db: Database, user_id: str = DEFAULT_USER, config_path: Path | None = None) -> dict:
    """Show today's ledger entries. Categories untouched today are reported as absent."""
    ledger = build_ledger(db, config_path)
    now = local_now(config_path)
    today = now.date()

    limits = []
    states: dict[str, str] = {}
    for category in Category:
        entry = ledger.get(user_id, category, today)
        states[category.value] = ledger.state(user_id, category, today).value
        if entry is not None:
            limits.append(entry)

    minutes = DailyLimitLedger.minutes_until_reset(now)
    if limits:
        print_daily_limits(limits, minutes)
    else:
        console.print("[dim]No experience granted today.[/]")
    return {
        "date": today.isoformat(),
        "states": states,
        "limits": [
            {
                "category": entry.category.value,
                "granted": entry.granted_so_far,
                "total_cap": entry.total_cap,
                "remaining": entry.remaining,
                "activity_count": entry.activity_count,
                "unique_activity_count": entry.unique_activity_count,
            }
            for entry in limits
        ],
        "minutes_until_reset": minutes,
    }


def do_stats(
    db: Database, user_id: str = DEFAULT_USER, days: int = 7, config_path: Path | None = None
) -> dict:
    """Show a summary of the last `days` days of grants."""
    ledger = build_ledger(db, config_path)
    stats = ledger.statistics(user_id, local_now(config_path).date(), days=days)
    print_statistics(stats)
    data = asdict(stats)
    data["category_breakdown"] = {
        category.value: asdict(breakdown) for category, breakdown in stats.category_breakdown.items()
    }
    return data


def do_preview(
    db: Database,
    user_id: str = DEFAULT_USER,
    category: str | None = None,
    ahead: int = 5,
) -> dict:
    """Show the next levels overall, or for one category."""
    selected = Category(category) if category else None
    info = level_from_total_exp(db.total_exp(user_id, selected))
    previews = level_preview(info.level, ahead)
    print_level_preview(previews)
    return {"current_level": info.level, "levels": [asdict(p) for p in previews]}


def time_advice(
    db: Database,
    user_id: str,
    now: datetime,
    category: str | None = None,
    config_path: Path | None = None,
) -> dict:
    """Time-of-day standing per category at `now`, plus the user's activity pattern."""
    policy = build_time_policy(config_path)
    zone = resolve_zone(get_timezone(config_path))
    hour = as_local(now, zone).hour
    selected = [Category(category)] if category else list(Category)

    categories = {}
    for cat in selected:
        state = policy.time_state(cat, hour)
        upcoming = policy.next_good_time(cat, hour)
        categories[cat.value] = {
            "label": state.label,
            "multiplier": state.multiplier,
            "restricted": state.is_restricted,
            "good_time": policy.is_good_time(cat, hour),
            "next_good_time": asdict(upcoming) if upcoming else None,
        }
    patterns = analyze_time_patterns(db.activity_timestamps(user_id), zone)
    return {"hour": hour, "categories": categories, "patterns": asdict(patterns)}


def do_hours(
    db: Database,
    user_id: str = DEFAULT_USER,
    category: str | None = None,
    config_path: Path | None = None,
) -> dict:
    """Show whether now is a good hour, when the next one is, and when you usually log."""
    advice = time_advice(db, user_id, local_now(config_path), category, config_path)
    print_time_advice(advice)
    return advice


def do_sweep(db: Database, config_path: Path | None = None) -> dict:
    """Delete ledger entries older than the retention window."""
    removed = build_ledger(db, config_path).sweep(local_now(config_path).date())
    print_sweep_result(removed)
    return {"removed": removed}


def do_timezone(name: str, config_path: Path | None = None) -> dict:
    resolve_zone(name)
    set_timezone(name, config_path)
    console.print(f"[green]Timezone set to {name}.[/]")
    return {"timezone": name}


if __name__ == "__main__":
    main()

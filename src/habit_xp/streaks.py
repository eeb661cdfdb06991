"""Streak tracking over sets of active dates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta


@dataclass
class StreakInfo:
    current_streak: int
    longest_streak: int
    last_active_date: date | None
    is_active_today: bool


def get_streak_from_dates(active_dates: set[date], reference: date) -> int:
    """Count consecutive active days backwards from reference (inclusive)."""
    streak = 0
    current = reference
    while current in active_dates:
        streak += 1
        current -= timedelta(days=1)
    return streak


def count_streak_before(active_dates: set[date], day: date) -> int:
    """Consecutive active days ending the day before `day`.

    If the previous day was not active, the streak is 0.
    """
    return get_streak_from_dates(active_dates, day - timedelta(days=1))


def calculate_streak(active_dates: set[date], today: date) -> StreakInfo:
    """Calculate the streak as of today.

    Rules:
    - Today counts if present
    - Otherwise the streak continues from yesterday, if yesterday was active
    """
    if not active_dates:
        return StreakInfo(
            current_streak=0,
            longest_streak=0,
            last_active_date=None,
            is_active_today=False,
        )

    is_active_today = today in active_dates
    if is_active_today:
        current_streak = get_streak_from_dates(active_dates, today)
    else:
        current_streak = count_streak_before(active_dates, today)

    sorted_dates = sorted(active_dates)
    longest = 1
    streak = 1
    for prev, curr in zip(sorted_dates, sorted_dates[1:]):
        if (curr - prev).days == 1:
            streak += 1
        else:
            streak = 1
        longest = max(longest, streak)

    return StreakInfo(
        current_streak=current_streak,
        longest_streak=max(longest, current_streak),
        last_active_date=sorted_dates[-1],
        is_active_today=is_active_today,
    )

"""Daily experience caps per (user, category, date).

An entry is created lazily on the first grant of the day with a base cap from
the category table and a bonus cap from weekend, holiday and streak rules.
Grants are clamped to the remaining headroom; once the headroom is gone the
entry is exhausted and further grants return 0.

Headroom checks and increments happen inside the store in one atomic step, so
two concurrent submissions for the same key can never exceed the cap.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Mapping, Protocol

from habit_xp.errors import InvalidArgumentError
from habit_xp.models import Category
from habit_xp.streaks import calculate_streak, count_streak_before

logger = logging.getLogger(__name__)

BASE_DAILY_CAPS: dict[Category, int] = {
    Category.HEALTH: 600,
    Category.LEARNING: 500,
    Category.RELATIONSHIP: 400,
    Category.ACHIEVEMENT: 500,
}
DEFAULT_BASE_CAP = 500

WEEKEND_BONUS_CAP = 200
HOLIDAY_BONUS_CAP = 300

# Streak length -> bonus cap
STREAK_BONUS_CAPS: dict[int, int] = {
    7: 100,
    30: 200,
    100: 500,
}

# Entries dated before today minus this many days may be swept.
DEFAULT_RETENTION_DAYS = 1


class LimitState(str, Enum):
    ABSENT = "absent"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


LedgerKey = tuple[str, Category, date]


@dataclass
class DailyLimit:
    user_id: str
    category: Category
    day: date
    base_cap: int
    bonus_cap: int
    granted_so_far: int = 0
    activity_count: int = 0
    unique_activity_count: int = 0
    violation_count: int = 0
    streak_days_at_creation: int = 0

    @property
    def key(self) -> LedgerKey:
        return (self.user_id, self.category, self.day)

    @property
    def total_cap(self) -> int:
        return self.base_cap + self.bonus_cap

    @property
    def remaining(self) -> int:
        return max(0, self.total_cap - self.granted_so_far)

    @property
    def state(self) -> LimitState:
        return LimitState.EXHAUSTED if self.remaining == 0 else LimitState.ACTIVE


class LedgerStore(Protocol):
    """Storage contract for daily limits. Any backend honoring it will do."""

    def get(self, user_id: str, category: Category, day: date) -> DailyLimit | None: ...

    def create(self, limit: DailyLimit) -> DailyLimit:
        """Insert `limit` unless the key exists; return the stored entry either way."""
        ...

    def increment_with_ceiling(
        self,
        user_id: str,
        category: Category,
        day: date,
        requested: int,
        activity_name: str | None = None,
    ) -> int:
        """Atomically grant min(requested, headroom) and return the amount granted.

        Also bumps activity_count, tracks unique activity names, and counts a
        violation when the request was clamped.
        """
        ...

    def record_violation(self, user_id: str, category: Category, day: date) -> None: ...

    def history(self, user_id: str, category: Category, before: date) -> list[DailyLimit]:
        """Entries for the key dated strictly before `before`, newest first."""
        ...

    def entries_since(self, user_id: str, since: date) -> list[DailyLimit]: ...

    def delete_before(self, day: date) -> int: ...


class InMemoryLedgerStore:
    """Process-local ledger store. Every mutation runs under one lock."""

    def __init__(self) -> None:
        self._entries: dict[LedgerKey, DailyLimit] = {}
        self._names: dict[LedgerKey, set[str]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str, category: Category, day: date) -> DailyLimit | None:
        with self._lock:
            entry = self._entries.get((user_id, category, day))
            return replace(entry) if entry else None

    def create(self, limit: DailyLimit) -> DailyLimit:
        with self._lock:
            stored = self._entries.setdefault(limit.key, replace(limit))
            self._names.setdefault(limit.key, set())
            return replace(stored)

    def increment_with_ceiling(
        self,
        user_id: str,
        category: Category,
        day: date,
        requested: int,
        activity_name: str | None = None,
    ) -> int:
        key = (user_id, category, day)
        with self._lock:
            entry = self._entries[key]
            granted = min(requested, entry.remaining)
            entry.granted_so_far += granted
            entry.activity_count += 1
            if granted < requested:
                entry.violation_count += 1
            if activity_name:
                names = self._names[key]
                names.add(activity_name)
                entry.unique_activity_count = len(names)
            return granted

    def record_violation(self, user_id: str, category: Category, day: date) -> None:
        with self._lock:
            entry = self._entries.get((user_id, category, day))
            if entry is not None:
                entry.violation_count += 1

    def history(self, user_id: str, category: Category, before: date) -> list[DailyLimit]:
        with self._lock:
            rows = [
                replace(e)
                for (uid, cat, day), e in self._entries.items()
                if uid == user_id and cat == category and day < before
            ]
        return sorted(rows, key=lambda e: e.day, reverse=True)

    def entries_since(self, user_id: str, since: date) -> list[DailyLimit]:
        with self._lock:
            rows = [replace(e) for (uid, _, day), e in self._entries.items() if uid == user_id and day >= since]
        return sorted(rows, key=lambda e: (e.day, e.category.value))

    def delete_before(self, day: date) -> int:
        with self._lock:
            stale = [key for key in self._entries if key[2] < day]
            for key in stale:
                del self._entries[key]
                self._names.pop(key, None)
            return len(stale)


@dataclass
class CategoryStatistics:
    total_exp: int = 0
    days: int = 0
    average_daily: float = 0.0


@dataclass
class DailyLimitStatistics:
    total_days: int
    active_days: int
    total_exp: int
    average_daily: float
    category_breakdown: dict[Category, CategoryStatistics] = field(default_factory=dict)
    violation_count: int = 0
    current_streak: int = 0


class DailyLimitLedger:
    """Enforces daily caps over a LedgerStore."""

    def __init__(
        self,
        store: LedgerStore,
        base_caps: Mapping[Category, int] | None = None,
        holidays: Iterable[date] = (),
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> None:
        if retention_days < 1:
            raise InvalidArgumentError("retention_days must be at least 1")
        self.store = store
        self.base_caps: dict[Category, int] = {**BASE_DAILY_CAPS, **(base_caps or {})}
        self.holidays: frozenset[date] = frozenset(holidays)
        self.retention_days = retention_days

    def base_cap_for(self, category: Category) -> int:
        return self.base_caps.get(category, DEFAULT_BASE_CAP)

    def bonus_cap_for(self, day: date, streak_days: int) -> int:
        """Largest applicable bonus: weekend, holiday, or streak tier. Never summed."""
        candidates = [0]
        if day.weekday() >= 5:
            candidates.append(WEEKEND_BONUS_CAP)
        if day in self.holidays:
            candidates.append(HOLIDAY_BONUS_CAP)
        for threshold in sorted(STREAK_BONUS_CAPS):
            if streak_days >= threshold:
                candidates.append(STREAK_BONUS_CAPS[threshold])
        return max(candidates)

    def streak_days(self, user_id: str, category: Category, day: date) -> int:
        """Consecutive days before `day` with at least one activity in the category."""
        active = {e.day for e in self.store.history(user_id, category, before=day) if e.activity_count > 0}
        return count_streak_before(active, day)

    def get(self, user_id: str, category: Category, day: date) -> DailyLimit | None:
        return self.store.get(user_id, category, day)

    def state(self, user_id: str, category: Category, day: date) -> LimitState:
        entry = self.store.get(user_id, category, day)
        return entry.state if entry else LimitState.ABSENT

    def get_or_create(
        self,
        user_id: str,
        category: Category,
        day: date,
        streak_hint: int = 0,
    ) -> DailyLimit:
        """Return the entry for the key, creating it on first touch.

        `streak_hint` is a caller-known streak; the larger of it and the
        ledger-derived streak drives the bonus cap, since sweeps may have
        removed older history.
        """
        entry = self.store.get(user_id, category, day)
        if entry is not None:
            return entry

        streak = max(self.streak_days(user_id, category, day), streak_hint)
        entry = self.store.create(
            DailyLimit(
                user_id=user_id,
                category=category,
                day=day,
                base_cap=self.base_cap_for(category),
                bonus_cap=self.bonus_cap_for(day, streak),
                streak_days_at_creation=streak,
            )
        )
        logger.debug(
            "Created daily limit for %s/%s on %s: base=%d bonus=%d streak=%d",
            user_id, category.value, day, entry.base_cap, entry.bonus_cap, streak,
        )
        return entry

    def try_grant(
        self,
        user_id: str,
        category: Category,
        day: date,
        requested: int,
        activity_name: str | None = None,
        streak_hint: int = 0,
    ) -> int:
        """Grant up to `requested` experience from today's headroom; return what was granted."""
        if requested < 0:
            raise InvalidArgumentError(f"requested experience cannot be negative, got {requested}")
        self.get_or_create(user_id, category, day, streak_hint=streak_hint)
        granted = self.store.increment_with_ceiling(user_id, category, day, requested, activity_name)
        if granted < requested:
            logger.info(
                "Daily cap clamped %s/%s on %s: requested=%d granted=%d",
                user_id, category.value, day, requested, granted,
            )
        return granted

    def record_violation(self, user_id: str, category: Category, day: date, reason: str) -> None:
        self.store.record_violation(user_id, category, day)
        logger.warning("Violation recorded for %s/%s on %s: %s", user_id, category.value, day, reason)

    def sweep(self, today: date) -> int:
        """Delete entries older than the retention window. Returns the number removed."""
        cutoff = today - timedelta(days=self.retention_days)
        removed = self.store.delete_before(cutoff)
        logger.info("Swept %d daily limit entries dated before %s", removed, cutoff)
        return removed

    @staticmethod
    def minutes_until_reset(now: datetime) -> int:
        """Whole minutes until the next local midnight."""
        tomorrow = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=now.tzinfo)
        if now.tzinfo is not None:
            # Same-tzinfo subtraction ignores DST shifts; UTC does not.
            tomorrow, now = tomorrow.astimezone(timezone.utc), now.astimezone(timezone.utc)
        return int((tomorrow - now).total_seconds() // 60)

    def statistics(self, user_id: str, today: date, days: int = 7) -> DailyLimitStatistics:
        """Summarize the last `days` days of grants for a user."""
        if days <= 0:
            raise InvalidArgumentError("days must be positive")
        entries = self.store.entries_since(user_id, today - timedelta(days=days))

        breakdown = {category: CategoryStatistics() for category in Category}
        for entry in entries:
            stats = breakdown[entry.category]
            stats.total_exp += entry.granted_so_far
            stats.days += 1
        for stats in breakdown.values():
            stats.average_daily = stats.total_exp / stats.days if stats.days else 0.0

        active_days = len({e.day for e in entries})
        total_exp = sum(e.granted_so_far for e in entries)

        current_streak = 0
        for category in Category:
            history = self.store.history(user_id, category, before=today + timedelta(days=1))
            active = {e.day for e in history if e.activity_count > 0}
            current_streak = max(current_streak, calculate_streak(active, today).current_streak)

        return DailyLimitStatistics(
            total_days=days,
            active_days=active_days,
            total_exp=total_exp,
            average_daily=total_exp / active_days if active_days else 0.0,
            category_breakdown=breakdown,
            violation_count=sum(e.violation_count for e in entries),
            current_streak=current_streak,
        )

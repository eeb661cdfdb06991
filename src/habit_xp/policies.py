"""Collaborator contracts consulted by the engine, with default implementations.

Verification decides whether a submission counts at all, the time policy
supplies the time-of-day multiplier (or a block), and the balance policy
rewards or penalizes training one category over the others. The time policy
also answers when a good hour comes next, and `analyze_time_patterns` scores
when a user tends to be active.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Mapping, Protocol
from zoneinfo import ZoneInfo

from habit_xp.errors import InvalidArgumentError
from habit_xp.models import Activity, Category, ExpContext, as_local


@dataclass
class VerificationResult:
    is_valid: bool
    reason: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class TimeState:
    is_restricted: bool
    multiplier: float
    label: str = "regular hours"
    message: str | None = None


@dataclass
class BalanceBonus:
    multiplier: float
    name: str
    description: str = ""


class Verifier(Protocol):
    def verify(self, activity: Activity, context: ExpContext) -> VerificationResult: ...


class TimePolicy(Protocol):
    def time_state(self, category: Category, hour: int) -> TimeState: ...


class BalancePolicy(Protocol):
    def balance_bonus(self, user_id: str, category: Category) -> BalanceBonus: ...


# ── Verification ──────────────────────────────────────────────────────────────


class AllowAllVerifier:
    """Accepts every submission."""

    def verify(self, activity: Activity, context: ExpContext) -> VerificationResult:
        return VerificationResult(is_valid=True)


class DuplicateActivityVerifier:
    """Rejects exact resubmissions and flags bursts of activity.

    An activity with the same category, name and quality as one logged within
    `window` before it is rejected. `rapid_count` or more same-category
    activities inside the window only produce a warning.
    """

    def __init__(self, window: timedelta = timedelta(minutes=5), rapid_count: int = 10) -> None:
        self.window = window
        self.rapid_count = rapid_count

    def verify(self, activity: Activity, context: ExpContext) -> VerificationResult:
        zone = context.user.zone
        submitted_at = as_local(activity.timestamp, zone)

        same_category = []
        for prior in context.recent_activities:
            if prior.category != activity.category:
                continue
            age = submitted_at - as_local(prior.timestamp, zone)
            if timedelta(0) <= age <= self.window:
                same_category.append(prior)

        for prior in same_category:
            if prior.name == activity.name and prior.quality == activity.quality:
                return VerificationResult(
                    is_valid=False,
                    reason="This activity was already recorded a moment ago",
                )

        warnings: list[str] = []
        if len(same_category) >= self.rapid_count:
            warnings.append(
                "Lots of activities logged in a short time. Are you focusing on the real thing?"
            )
        return VerificationResult(is_valid=True, warnings=warnings)


# ── Time of day ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TimeWindow:
    """Hours [start, end) with a multiplier. Windows may wrap past midnight."""

    start: int
    end: int
    label: str
    multiplier: float = 1.0
    message: str = ""
    blocked: bool = False
    categories: frozenset[Category] | None = None  # None applies to all

    def contains(self, hour: int) -> bool:
        if self.start <= self.end:
            return self.start <= hour < self.end
        return hour >= self.start or hour < self.end

    def applies_to(self, category: Category) -> bool:
        return self.categories is None or category in self.categories


@dataclass(frozen=True)
class GoodTime:
    hour: int
    label: str
    is_bonus: bool


def _check_hour(hour: int) -> None:
    if not 0 <= hour <= 23:
        raise InvalidArgumentError(f"hour must be within 0-23, got {hour}")


DEFAULT_TIME_WINDOWS: list[TimeWindow] = [
    TimeWindow(6, 9, "morning", 1.2, "Fresh morning hours"),
    TimeWindow(18, 21, "evening", 1.15, "Active evening hours"),
    TimeWindow(0, 5, "late night", 0.8, "Late-night activity. Sleep matters too."),
]


class DefaultTimePolicy:
    """Table-driven time policy.

    Precedence when windows overlap: blocked, then the harshest penalty, then
    the largest bonus.
    """

    def __init__(
        self,
        windows: Iterable[TimeWindow] | None = None,
        blocked: Mapping[Category, Iterable[tuple[int, int]]] | None = None,
    ) -> None:
        self.windows: list[TimeWindow] = list(DEFAULT_TIME_WINDOWS if windows is None else windows)
        for category, spans in (blocked or {}).items():
            for start, end in spans:
                self.windows.append(
                    TimeWindow(
                        start,
                        end,
                        "restricted hours",
                        multiplier=0.0,
                        message=f"{category.value.capitalize()} activities are restricted at this hour",
                        blocked=True,
                        categories=frozenset({category}),
                    )
                )

    def time_state(self, category: Category, hour: int) -> TimeState:
        _check_hour(hour)

        matching = [w for w in self.windows if w.contains(hour) and w.applies_to(category)]
        blocked = [w for w in matching if w.blocked]
        if blocked:
            window = blocked[0]
            return TimeState(True, 0.0, window.label, window.message or None)

        penalties = [w for w in matching if w.multiplier < 1]
        if penalties:
            window = min(penalties, key=lambda w: w.multiplier)
            return TimeState(False, window.multiplier, window.label, window.message or None)

        bonuses = [w for w in matching if w.multiplier > 1]
        if bonuses:
            window = max(bonuses, key=lambda w: w.multiplier)
            return TimeState(False, window.multiplier, window.label, window.message or None)

        return TimeState(False, 1.0)

    def is_good_time(self, category: Category, hour: int) -> bool:
        """Neither restricted nor penalized."""
        state = self.time_state(category, hour)
        return not state.is_restricted and state.multiplier >= 1

    def next_good_time(self, category: Category, hour: int) -> GoodTime | None:
        """The first good hour after `hour` within the next 24, or None if every hour is bad."""
        _check_hour(hour)
        for offset in range(1, 25):
            candidate = (hour + offset) % 24
            if self.is_good_time(category, candidate):
                state = self.time_state(category, candidate)
                return GoodTime(hour=candidate, label=state.label, is_bonus=state.multiplier > 1)
        return None


# ── Activity patterns ─────────────────────────────────────────────────────────

NIGHT_OWL_HOURS = (22, 23, 0, 1, 2, 3)
MORNING_HOURS = (5, 6, 7, 8, 9)
HEALTHY_HOURS = tuple(range(6, 22))
LATE_NIGHT_HOURS = tuple(range(0, 5))


@dataclass
class TimePatterns:
    """When a user tends to be active, scored 0-100 on three axes."""

    hour_counts: list[int]
    most_active_hours: list[tuple[int, int]]
    least_active_hours: list[tuple[int, int]]
    night_owl_score: int = 0
    morning_person_score: int = 0
    healthy_pattern_score: int = 0
    recommendations: list[str] = field(default_factory=list)


def _share(hour_counts: list[int], hours: Iterable[int]) -> float:
    return sum(hour_counts[h] for h in hours) / sum(hour_counts)


def analyze_time_patterns(timestamps: Iterable[datetime], zone: ZoneInfo) -> TimePatterns:
    """Count activities per local hour and score the shape of the day.

    Night-owl and morning-person scores are twice the share of activity in
    their hours, capped at 100. The healthy score is the daytime share minus
    half the 00-05 share. With no activity there is nothing to score.
    """
    hour_counts = [0] * 24
    for moment in timestamps:
        hour_counts[as_local(moment, zone).hour] += 1
    if not any(hour_counts):
        return TimePatterns(hour_counts=hour_counts, most_active_hours=[], least_active_hours=[])

    ranked = sorted(range(24), key=lambda h: -hour_counts[h])
    most_active = [(h, hour_counts[h]) for h in ranked[:3]]
    least_active = [(h, hour_counts[h]) for h in reversed(ranked[-3:])]

    night_owl = min(100, round(_share(hour_counts, NIGHT_OWL_HOURS) * 200))
    morning_person = min(100, round(_share(hour_counts, MORNING_HOURS) * 200))
    healthy = _share(hour_counts, HEALTHY_HOURS) * 100 - _share(hour_counts, LATE_NIGHT_HOURS) * 50
    healthy = max(0, min(100, round(healthy)))

    recommendations: list[str] = []
    if healthy < 50:
        recommendations.append("Cut back on late-night activity and keep a regular sleep schedule")
    if night_owl > 70:
        recommendations.append("Strong night-owl pattern. Try moving your bedtime earlier bit by bit")
    if morning_person > 70:
        recommendations.append("Morning person! Make the most of the 7-9 o'clock window")
    peak_hour = most_active[0][0]
    if peak_hour >= 22 or peak_hour <= 4:
        recommendations.append("Shifting your main activity into daytime hours earns more experience")
    if not recommendations:
        recommendations.append("Great activity pattern, keep it up!")

    return TimePatterns(
        hour_counts=hour_counts,
        most_active_hours=most_active,
        least_active_hours=least_active,
        night_owl_score=night_owl,
        morning_person_score=morning_person,
        healthy_pattern_score=healthy,
        recommendations=recommendations,
    )


# ── Balance ───────────────────────────────────────────────────────────────────


class NeutralBalancePolicy:
    """Never rewards or penalizes category balance."""

    def balance_bonus(self, user_id: str, category: Category) -> BalanceBonus:
        return BalanceBonus(multiplier=1.0, name="neutral")


# (score threshold, multiplier, name, description), best first
BALANCE_TIERS: list[tuple[int, float, str, str]] = [
    (90, 1.5, "Perfect balance", "Every category is growing evenly"),
    (70, 1.2, "Good balance", "Keeping a balanced growth pace"),
    (40, 1.0, "Specialized", "Focusing on a particular area"),
    (20, 0.8, "Imbalanced", "Some categories need attention"),
    (0, 0.5, "Severe imbalance", "Grow the other categories too"),
]

LOWEST_CATEGORY_GAP = 5
LOWEST_CATEGORY_BOOST = 1.5
HIGHEST_CATEGORY_GAP = 10
HIGHEST_CATEGORY_DAMPING = 0.7


def balance_score(levels: Mapping[Category, int]) -> int:
    """Score 0-100 from per-category levels: gap 50%, deviation 30%, min/max ratio 20%."""
    values = [levels.get(category, 1) for category in Category]
    average = sum(values) / len(values)
    gap = max(values) - min(values)

    gap_score = max(0.0, 100 - gap * 5)
    variance = sum((v - average) ** 2 for v in values) / len(values)
    deviation_score = max(0.0, 100 - math.sqrt(variance) * 10)
    ratio_score = min(values) / max(values) * 100 if max(values) > 0 else 100.0

    total = gap_score * 0.5 + deviation_score * 0.3 + ratio_score * 0.2
    return round(max(0.0, min(100.0, total)))


class LevelBalancePolicy:
    """Balance policy driven by the user's per-category levels.

    `levels_for(user_id)` returns a mapping of category to level; missing
    categories count as level 1.
    """

    def __init__(self, levels_for: Callable[[str], Mapping[Category, int]]) -> None:
        self.levels_for = levels_for

    def balance_bonus(self, user_id: str, category: Category) -> BalanceBonus:
        known = self.levels_for(user_id)
        levels = {c: known.get(c, 1) for c in Category}
        score = balance_score(levels)
        _, multiplier, name, description = next(t for t in BALANCE_TIERS if score >= t[0])

        gap = max(levels.values()) - min(levels.values())
        lowest = min(Category, key=lambda c: levels[c])
        highest = max(Category, key=lambda c: levels[c])
        if category == lowest and gap > LOWEST_CATEGORY_GAP:
            multiplier *= LOWEST_CATEGORY_BOOST
        if category == highest and gap > HIGHEST_CATEGORY_GAP:
            multiplier *= HIGHEST_CATEGORY_DAMPING

        return BalanceBonus(multiplier=multiplier, name=name, description=description)

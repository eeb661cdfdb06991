"""Bonus engine: additive multiplier contributions for an activity.

Each contribution is computed independently and only included when positive.
Signed inputs (time of day, balance) are shared with the penalty engine; the
bonus side keeps only the positive part.
"""

from __future__ import annotations

from datetime import date

from habit_xp.models import Activity, AppliedBonus, BonusKind, Category, ExpContext, as_local
from habit_xp.policies import BalanceBonus, TimeState

# Streak bonus (threshold days -> bonus fraction)
STREAK_BONUSES: dict[int, float] = {
    3: 0.1,
    7: 0.2,
    30: 0.5,
    100: 1.0,
}

# Distinct activity names logged today (threshold -> bonus fraction)
NAME_VARIETY_BONUSES: dict[int, float] = {
    3: 0.1,
    5: 0.3,
    10: 0.5,
}

ALL_CATEGORIES_BONUS = 0.2
FIRST_TIME_BONUS = 0.5


def _tiered(value: int, tiers: dict[int, float]) -> float:
    """Highest tier whose threshold `value` reaches, or 0."""
    result = 0.0
    for threshold in sorted(tiers):
        if value >= threshold:
            result = tiers[threshold]
    return result


def time_of_day_adjustment(time_state: TimeState) -> float:
    """Signed contribution from the time policy: +0.2 for a 1.2 multiplier, -0.2 for 0.8."""
    if time_state.is_restricted:
        return 0.0
    return round(time_state.multiplier - 1.0, 4)


def balance_adjustment(balance: BalanceBonus) -> float:
    """Signed contribution from the balance policy."""
    return round(balance.multiplier - 1.0, 4)


def get_streak_bonus(streak_days: int) -> float:
    """Bonus fraction for the current streak length.

    E.g. streak_days=10 -> 0.2 (7-day tier), streak_days=2 -> 0.
    """
    return _tiered(streak_days, STREAK_BONUSES)


def _activities_on(day: date, context: ExpContext) -> list[Activity]:
    zone = context.user.zone
    return [a for a in context.recent_activities if as_local(a.timestamp, zone).date() == day]


def variety_bonus(context: ExpContext) -> AppliedBonus | None:
    """Reward a varied day: distinct names logged today, plus all categories touched."""
    today = _activities_on(context.local_now.date(), context)
    unique_names = {a.name for a in today}
    unique_categories = {a.category for a in today}

    value = _tiered(len(unique_names), NAME_VARIETY_BONUSES)
    reasons: list[str] = []
    if value:
        reasons.append(f"{len(unique_names)} different activities today")
    if unique_categories == set(Category):
        value += ALL_CATEGORIES_BONUS
        reasons.append("every category trained today")

    if value <= 0:
        return None
    return AppliedBonus(
        kind=BonusKind.VARIETY,
        label="Variety bonus",
        magnitude=round(value, 4),
        rationale=" + ".join(reasons),
    )


def is_first_time(activity: Activity, context: ExpContext) -> bool:
    """True if no recent activity shares this activity's name."""
    return not any(a.name == activity.name for a in context.recent_activities)


def calculate_bonuses(
    activity: Activity,
    context: ExpContext,
    time_state: TimeState,
    balance: BalanceBonus,
) -> list[AppliedBonus]:
    """Collect every positive bonus for this activity, in a stable order."""
    bonuses: list[AppliedBonus] = []

    time_value = time_of_day_adjustment(time_state)
    if time_value > 0:
        bonuses.append(
            AppliedBonus(
                kind=BonusKind.TIME,
                label=f"{time_state.label.capitalize()} bonus",
                magnitude=time_value,
                rationale=time_state.message or "",
            )
        )

    streak_value = get_streak_bonus(context.user.streak_days)
    if streak_value > 0:
        bonuses.append(
            AppliedBonus(
                kind=BonusKind.STREAK,
                label="Streak bonus",
                magnitude=streak_value,
                rationale=f"{context.user.streak_days}-day streak",
            )
        )

    variety = variety_bonus(context)
    if variety is not None:
        bonuses.append(variety)

    if is_first_time(activity, context):
        bonuses.append(
            AppliedBonus(
                kind=BonusKind.FIRST_TIME,
                label="First-time bonus",
                magnitude=FIRST_TIME_BONUS,
                rationale="Trying something new",
            )
        )

    balance_value = balance_adjustment(balance)
    if balance_value > 0:
        bonuses.append(
            AppliedBonus(
                kind=BonusKind.BALANCE,
                label=balance.name,
                magnitude=balance_value,
                rationale=balance.description,
            )
        )

    return bonuses

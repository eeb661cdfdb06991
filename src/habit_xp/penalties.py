"""Penalty engine: subtractive multiplier contributions for an activity."""

from __future__ import annotations

from datetime import timedelta

from habit_xp.bonuses import balance_adjustment, time_of_day_adjustment
from habit_xp.models import Activity, AppliedPenalty, ExpContext, PenaltyKind, as_local
from habit_xp.policies import BalanceBonus, TimeState

REPETITION_WINDOW = timedelta(hours=1)

# Same-name activities within REPETITION_WINDOW (threshold -> penalty fraction)
REPETITION_PENALTIES: dict[int, float] = {
    3: 0.2,
    5: 0.5,
    10: 0.7,
}
REPETITION_WARNING_AT = 0.2

# Minutes since the last same-category activity (upper bound -> penalty), tightest first
INTERVAL_PENALTIES: list[tuple[float, float]] = [
    (1, 0.9),
    (5, 0.3),
]


def repetition_count(activity: Activity, context: ExpContext) -> int:
    """Number of same-name activities in the trailing hour before context.now."""
    zone = context.user.zone
    now = context.local_now
    cutoff = now - REPETITION_WINDOW
    return sum(
        1
        for a in context.recent_activities
        if a.name == activity.name and cutoff <= as_local(a.timestamp, zone) <= now
    )


def get_repetition_penalty(count: int) -> float:
    result = 0.0
    for threshold in sorted(REPETITION_PENALTIES):
        if count >= threshold:
            result = REPETITION_PENALTIES[threshold]
    return result


def minutes_since_last_in_category(activity: Activity, context: ExpContext) -> float | None:
    """Minutes between this activity and the latest earlier one in its category."""
    zone = context.user.zone
    submitted_at = as_local(activity.timestamp, zone)
    earlier = [
        as_local(a.timestamp, zone)
        for a in context.recent_activities
        if a.category == activity.category and as_local(a.timestamp, zone) <= submitted_at
    ]
    if not earlier:
        return None
    return (submitted_at - max(earlier)).total_seconds() / 60


def get_interval_penalty(minutes: float | None) -> float:
    if minutes is None:
        return 0.0
    for bound, penalty in INTERVAL_PENALTIES:
        if minutes < bound:
            return penalty
    return 0.0


def calculate_penalties(
    activity: Activity,
    context: ExpContext,
    time_state: TimeState,
    balance: BalanceBonus,
) -> tuple[list[AppliedPenalty], list[str]]:
    """Collect every penalty for this activity plus the warnings they raise.

    A restricted time state is not handled here; the engine short-circuits
    before penalties are computed.
    """
    penalties: list[AppliedPenalty] = []
    warnings: list[str] = []

    time_value = time_of_day_adjustment(time_state)
    if time_value < 0:
        penalties.append(
            AppliedPenalty(
                kind=PenaltyKind.TIME,
                label=f"{time_state.label.capitalize()} penalty",
                magnitude=-time_value,
                rationale=time_state.message or "",
            )
        )

    balance_value = balance_adjustment(balance)
    if balance_value < 0:
        penalties.append(
            AppliedPenalty(
                kind=PenaltyKind.BALANCE,
                label=balance.name,
                magnitude=-balance_value,
                rationale=balance.description,
            )
        )

    count = repetition_count(activity, context)
    repetition = get_repetition_penalty(count)
    if repetition > 0:
        penalties.append(
            AppliedPenalty(
                kind=PenaltyKind.REPETITION,
                label="Repetition penalty",
                magnitude=repetition,
                rationale=f"Same activity {count} times in the last hour",
            )
        )
    if repetition >= REPETITION_WARNING_AT:
        warnings.append("You are repeating the same activity too often")

    minutes = minutes_since_last_in_category(activity, context)
    interval = get_interval_penalty(minutes)
    if interval > 0:
        penalties.append(
            AppliedPenalty(
                kind=PenaltyKind.INTERVAL,
                label="Short interval penalty",
                magnitude=interval,
                rationale=f"{minutes:.1f} minutes since the last {activity.category.value} activity",
            )
        )
        warnings.append("Activities are too close together")

    return penalties, warnings

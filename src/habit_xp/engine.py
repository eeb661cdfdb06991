"""Experience orchestration.

Sequencing for one activity, in order:

1. verification (may reject -> 0)
2. time restriction (may block -> 0)
3. quality lookup
4. bonuses
5. penalties
6. composition
7. daily ledger clamp

Nothing after a short-circuit runs, so a rejected or blocked activity never
touches the ledger.
"""

from __future__ import annotations

import logging

from habit_xp.bonuses import calculate_bonuses
from habit_xp.errors import InvalidArgumentError
from habit_xp.ledger import DailyLimitLedger
from habit_xp.levels import LevelInfo, level_from_total_exp
from habit_xp.models import Activity, ExpCalculationResult, ExpContext, Outcome
from habit_xp.penalties import calculate_penalties
from habit_xp.policies import (
    AllowAllVerifier,
    BalancePolicy,
    DefaultTimePolicy,
    NeutralBalancePolicy,
    TimePolicy,
    Verifier,
)
from habit_xp.xp import base_exp_for, compose_exp, quality_multiplier_for

logger = logging.getLogger(__name__)

DAILY_LIMIT_REACHED = "Daily experience limit reached for this category"


class ExpEngine:
    """Computes experience awards. Collaborators are injected; none are global.

    Without a ledger, results are never capped.
    """

    def __init__(
        self,
        ledger: DailyLimitLedger | None = None,
        verifier: Verifier | None = None,
        time_policy: TimePolicy | None = None,
        balance_policy: BalancePolicy | None = None,
    ) -> None:
        self.ledger = ledger
        self.verifier = verifier or AllowAllVerifier()
        self.time_policy = time_policy or DefaultTimePolicy()
        self.balance_policy = balance_policy or NeutralBalancePolicy()

    def calculate_activity_exp(self, activity: Activity, context: ExpContext) -> ExpCalculationResult:
        """Award experience for one activity."""
        if not isinstance(activity, Activity):
            raise InvalidArgumentError("activity must be an Activity")
        if not isinstance(context, ExpContext):
            raise InvalidArgumentError("context must be an ExpContext")

        verification = self.verifier.verify(activity, context)
        if not verification.is_valid:
            reason = verification.reason or "The activity could not be verified"
            logger.info("Rejected activity %r for %s: %s", activity.name, activity.user_id, reason)
            return ExpCalculationResult(
                base_exp=0,
                quality_multiplier=1.0,
                final_exp=0,
                warnings=[reason, *verification.warnings],
                outcome=Outcome.REJECTED,
            )

        local_now = context.local_now
        time_state = self.time_policy.time_state(activity.category, local_now.hour)
        if time_state.is_restricted:
            message = time_state.message or "Activities are restricted at this hour"
            logger.info(
                "Blocked %s activity for %s at hour %d", activity.category.value, activity.user_id, local_now.hour
            )
            return ExpCalculationResult(
                base_exp=0,
                quality_multiplier=1.0,
                final_exp=compose_exp(0, 1.0, blocked=True),
                warnings=[message, *verification.warnings],
                outcome=Outcome.RESTRICTED,
            )

        base_exp = base_exp_for(activity.quality)
        quality_multiplier = quality_multiplier_for(activity.quality)
        balance = self.balance_policy.balance_bonus(activity.user_id, activity.category)
        bonuses = calculate_bonuses(activity, context, time_state, balance)
        penalties, warnings = calculate_penalties(activity, context, time_state, balance)
        warnings = [*verification.warnings, *warnings]

        composed = compose_exp(base_exp, quality_multiplier, bonuses, penalties)

        result = ExpCalculationResult(
            base_exp=base_exp,
            quality_multiplier=quality_multiplier,
            bonuses=bonuses,
            penalties=penalties,
            final_exp=composed,
            warnings=warnings,
            composed_exp=composed,
        )
        if self.ledger is None:
            return result

        day = local_now.date()
        granted = self.ledger.try_grant(
            activity.user_id,
            activity.category,
            day,
            composed,
            activity_name=activity.name,
            streak_hint=context.user.streak_days,
        )
        entry = self.ledger.get(activity.user_id, activity.category, day)
        result.final_exp = granted
        result.remaining_today = entry.remaining if entry else None
        if granted < composed:
            result.was_capped = True
            result.capped_at = granted
            result.outcome = Outcome.CAPPED
            result.warnings.append(DAILY_LIMIT_REACHED)
        return result

    def level_from_total_exp(self, total_exp: int) -> LevelInfo:
        """Level readout for a cumulative experience total."""
        return level_from_total_exp(total_exp)


def calculate_activity_exp(activity: Activity, context: ExpContext) -> ExpCalculationResult:
    """Uncapped calculation with default collaborators."""
    return ExpEngine().calculate_activity_exp(activity, context)

"""Quality table and experience composition.

Pure functions that turn a quality tier plus bonus/penalty contributions into
an integer experience award. All results are floored to integers.
"""

from __future__ import annotations

import math
from typing import Iterable

from habit_xp.errors import InvalidArgumentError
from habit_xp.models import ActivityQuality, AppliedBonus, AppliedPenalty

# Base experience per quality tier
QUALITY_BASE_EXP: dict[ActivityQuality, int] = {
    ActivityQuality.D: 10,
    ActivityQuality.C: 30,
    ActivityQuality.B: 50,
    ActivityQuality.A: 70,
    ActivityQuality.S: 100,
}

# Quality multipliers
QUALITY_MULTIPLIERS: dict[ActivityQuality, float] = {
    ActivityQuality.D: 1.0,
    ActivityQuality.C: 1.5,
    ActivityQuality.B: 2.0,
    ActivityQuality.A: 2.5,
    ActivityQuality.S: 3.0,
}

# Every non-blocked activity earns at least this much
MIN_EXP = 1

# Fractions are not exact in binary; without this 100 * (1 - 0.9) floors to 9.
_FLOOR_TOLERANCE = 1e-9


def base_exp_for(quality: ActivityQuality) -> int:
    """Return base experience for a quality tier."""
    return QUALITY_BASE_EXP[quality]


def quality_multiplier_for(quality: ActivityQuality) -> float:
    """Return the multiplier for a quality tier."""
    return QUALITY_MULTIPLIERS[quality]


def bonus_multiplier(bonuses: Iterable[AppliedBonus]) -> float:
    """1 + sum of bonus magnitudes."""
    return 1.0 + sum(b.magnitude for b in bonuses)


def penalty_multiplier(penalties: Iterable[AppliedPenalty]) -> float:
    """1 - sum of penalty magnitudes, never below 0."""
    return max(0.0, 1.0 - sum(p.magnitude for p in penalties))


def compose_exp(
    base_exp: int,
    quality_multiplier: float,
    bonuses: Iterable[AppliedBonus] = (),
    penalties: Iterable[AppliedPenalty] = (),
    blocked: bool = False,
) -> int:
    """Combine base experience, quality and contributions into a final value.

    final = floor(base * quality * (1 + sum(bonuses)) * max(0, 1 - sum(penalties)))
    The result is at least MIN_EXP unless the activity is blocked, which yields 0.
    Contributions carry non-negative magnitudes; signs are decided by which list
    they are in.
    """
    if blocked:
        return 0

    bonuses = list(bonuses)
    penalties = list(penalties)
    if base_exp < 0 or quality_multiplier < 0:
        raise InvalidArgumentError("base experience and quality multiplier must be non-negative")
    if any(b.magnitude < 0 for b in bonuses) or any(p.magnitude < 0 for p in penalties):
        raise InvalidArgumentError("bonus and penalty magnitudes must be non-negative")

    raw = base_exp * quality_multiplier * bonus_multiplier(bonuses) * penalty_multiplier(penalties)
    return max(MIN_EXP, math.floor(raw + _FLOOR_TOLERANCE))

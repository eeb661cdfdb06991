"""Level curve calculation. Pure functions, no side effects."""

from __future__ import annotations

import math
from dataclasses import dataclass

from habit_xp.errors import InvalidArgumentError

# Levels above this accrue prestige, one per PRESTIGE_BAND_SIZE levels.
PRESTIGE_START_LEVEL = 100
PRESTIGE_BAND_SIZE = 10

# Last level of each band before the prestige band.
_BAND_ENDS: tuple[int, ...] = (10, 30, 50)

MILESTONES: dict[int, str] = {
    10: "Novice graduate",
    30: "Seasoned",
    50: "Expert",
    100: "Master",
}


@dataclass
class LevelInfo:
    level: int
    current_level_exp: int
    required_exp_for_level: int
    total_exp: int
    progress_percent: float
    next_level_required_exp: int
    prestige_level: int | None = None


@dataclass
class LevelPreview:
    level: int
    required_exp: int
    total_exp_needed: int
    milestone: str | None = None


def _band_exp(level: int) -> int:
    """Raw per-band curve.

    1: 100. 2-10: linear. 11-30: mild exponential. 31-50: steep exponential.
    51+: prestige band.
    """
    if level == 1:
        return 100
    if level <= 10:
        return 100 * level
    if level <= 30:
        return math.floor(200 * level * 1.1 ** (level - 10))
    if level <= 50:
        return math.floor(500 * level * 1.2 ** (level - 30))
    return math.floor(1000 * level * 1.3 ** (level - 50))


def required_exp(level: int) -> int:
    """Experience needed to clear `level`. Levels <= 0 need nothing.

    The 31 and 51 bands start below the peak of the band before them; that
    peak is held until the new band overtakes it, so requirements never drop.
    """
    if level <= 0:
        return 0
    peaks = [_band_exp(end) for end in _BAND_ENDS if end < level]
    return max([_band_exp(level), *peaks])


def cumulative_exp_for_level(level: int) -> int:
    """Total experience needed to reach `level` from zero."""
    if level <= 1:
        return 0
    return sum(required_exp(lv) for lv in range(1, level))


def prestige_for_level(level: int) -> int | None:
    """Prestige counter for levels past PRESTIGE_START_LEVEL, else None."""
    if level <= PRESTIGE_START_LEVEL:
        return None
    return (level - PRESTIGE_START_LEVEL) // PRESTIGE_BAND_SIZE


def level_from_total_exp(total_exp: int) -> LevelInfo:
    """Turn a cumulative experience total into level and progress.

    Subtracts each level's requirement while the remainder covers it.
    total_exp=0 -> level 1 with no progress. Negative totals are rejected.
    """
    if isinstance(total_exp, bool) or not isinstance(total_exp, int):
        raise InvalidArgumentError(f"total_exp must be an integer, got {total_exp!r}")
    if total_exp < 0:
        raise InvalidArgumentError(f"total_exp cannot be negative, got {total_exp}")

    level = 1
    remaining = total_exp
    while remaining >= required_exp(level):
        remaining -= required_exp(level)
        level += 1

    required = required_exp(level)
    return LevelInfo(
        level=level,
        current_level_exp=remaining,
        required_exp_for_level=required,
        total_exp=total_exp,
        progress_percent=remaining / required * 100,
        next_level_required_exp=required_exp(level + 1),
        prestige_level=prestige_for_level(level),
    )


def level_milestone(level: int) -> str | None:
    """Label for notable levels: named ones, then any multiple of 10."""
    if level in MILESTONES:
        return MILESTONES[level]
    if level > 0 and level % 10 == 0:
        return f"Level {level} reached"
    return None


def level_preview(current_level: int, levels_ahead: int = 5) -> list[LevelPreview]:
    """Requirements for the next `levels_ahead` levels after `current_level`."""
    if levels_ahead < 0:
        raise InvalidArgumentError("levels_ahead cannot be negative")
    previews: list[LevelPreview] = []
    for offset in range(1, levels_ahead + 1):
        level = current_level + offset
        previews.append(
            LevelPreview(
                level=level,
                required_exp=required_exp(level),
                total_exp_needed=cumulative_exp_for_level(level),
                milestone=level_milestone(level),
            )
        )
    return previews

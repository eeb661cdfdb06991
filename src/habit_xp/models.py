"""Core data types: activities, calculation context, and calculation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from habit_xp.errors import InvalidArgumentError


class ActivityQuality(str, Enum):
    """How substantive a submission is, worst (D) to best (S)."""

    D = "D"  # single tap
    C = "C"  # activity name only
    B = "B"  # concrete description
    A = "A"  # time and place included
    S = "S"  # media attached

    @property
    def rank(self) -> int:
        return QUALITY_ORDER.index(self)


QUALITY_ORDER: list[ActivityQuality] = [
    ActivityQuality.D,
    ActivityQuality.C,
    ActivityQuality.B,
    ActivityQuality.A,
    ActivityQuality.S,
]


class Category(str, Enum):
    HEALTH = "health"
    LEARNING = "learning"
    RELATIONSHIP = "relationship"
    ACHIEVEMENT = "achievement"


class BonusKind(str, Enum):
    TIME = "time"
    STREAK = "streak"
    VARIETY = "variety"
    FIRST_TIME = "first_time"
    BALANCE = "balance"


class PenaltyKind(str, Enum):
    REPETITION = "repetition"
    INTERVAL = "interval"
    TIME = "time"
    BALANCE = "balance"


class Outcome(str, Enum):
    GRANTED = "granted"
    CAPPED = "capped"
    REJECTED = "rejected"
    RESTRICTED = "restricted"


def resolve_zone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for an IANA name, raising InvalidArgumentError if unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidArgumentError(f"unknown timezone: {name!r}") from exc


def as_local(moment: datetime, zone: ZoneInfo) -> datetime:
    """Express a timestamp in the user's zone. Naive values are taken as already local."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=zone)
    return moment.astimezone(zone)


@dataclass(frozen=True)
class Activity:
    """A single user submission. Immutable once created."""

    user_id: str
    category: Category
    name: str
    quality: ActivityQuality
    timestamp: datetime
    duration: int | None = None  # minutes
    media_attached: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise InvalidArgumentError("activity user_id is required")
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidArgumentError("activity name is required")
        if not isinstance(self.category, Category):
            raise InvalidArgumentError(f"invalid category: {self.category!r}")
        if not isinstance(self.quality, ActivityQuality):
            raise InvalidArgumentError(f"invalid quality: {self.quality!r}")
        if not isinstance(self.timestamp, datetime):
            raise InvalidArgumentError("activity timestamp must be a datetime")
        if self.duration is not None and self.duration < 0:
            raise InvalidArgumentError("activity duration cannot be negative")

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Activity:
        """Build an Activity from a plain mapping (CLI input, stored rows, tool calls).

        String categories, qualities and ISO timestamps are coerced.
        """
        try:
            category = Category(record["category"])
            quality = ActivityQuality(str(record["quality"]).upper())
        except KeyError as exc:
            raise InvalidArgumentError(f"missing activity field: {exc.args[0]}") from exc
        except ValueError as exc:
            raise InvalidArgumentError(str(exc)) from exc

        timestamp = record.get("timestamp")
        if isinstance(timestamp, str):
            try:
                timestamp = datetime.fromisoformat(timestamp)
            except ValueError as exc:
                raise InvalidArgumentError(f"invalid timestamp: {timestamp!r}") from exc

        return cls(
            user_id=record.get("user_id", ""),
            category=category,
            name=record.get("name", ""),
            quality=quality,
            timestamp=timestamp,
            duration=record.get("duration"),
            media_attached=bool(record.get("media_attached", False)),
        )


@dataclass(frozen=True)
class UserSnapshot:
    level: int = 1
    streak_days: int = 0
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if self.level < 0:
            raise InvalidArgumentError("user level cannot be negative")
        if self.streak_days < 0:
            raise InvalidArgumentError("streak_days cannot be negative")

    @property
    def zone(self) -> ZoneInfo:
        return resolve_zone(self.timezone)


@dataclass(frozen=True)
class ExpContext:
    """Read-only snapshot assembled by the caller for one calculation."""

    now: datetime
    user: UserSnapshot = field(default_factory=UserSnapshot)
    recent_activities: tuple[Activity, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.now, datetime):
            raise InvalidArgumentError("context.now must be a datetime")
        # Accept any iterable but store it immutably.
        object.__setattr__(self, "recent_activities", tuple(self.recent_activities))

    @property
    def local_now(self) -> datetime:
        return as_local(self.now, self.user.zone)


@dataclass(frozen=True)
class AppliedBonus:
    kind: BonusKind
    label: str
    magnitude: float  # fraction, 0.2 == +20%
    rationale: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "magnitude": self.magnitude,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class AppliedPenalty:
    kind: PenaltyKind
    label: str
    magnitude: float  # fraction, 0.3 == -30%
    rationale: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "magnitude": self.magnitude,
            "rationale": self.rationale,
        }


@dataclass
class ExpCalculationResult:
    """Outcome of one calculation. The caller decides whether to persist it."""

    base_exp: int
    quality_multiplier: float
    bonuses: list[AppliedBonus] = field(default_factory=list)
    penalties: list[AppliedPenalty] = field(default_factory=list)
    final_exp: int = 0
    was_capped: bool = False
    capped_at: int | None = None
    warnings: list[str] = field(default_factory=list)
    outcome: Outcome = Outcome.GRANTED
    composed_exp: int = 0  # value before the daily ledger clamp
    remaining_today: int | None = None

    @property
    def bonus_total(self) -> float:
        return sum(b.magnitude for b in self.bonuses)

    @property
    def penalty_total(self) -> float:
        return sum(p.magnitude for p in self.penalties)

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_exp": self.base_exp,
            "quality_multiplier": self.quality_multiplier,
            "bonuses": [b.to_dict() for b in self.bonuses],
            "penalties": [p.to_dict() for p in self.penalties],
            "final_exp": self.final_exp,
            "was_capped": self.was_capped,
            "capped_at": self.capped_at,
            "warnings": list(self.warnings),
            "outcome": self.outcome.value,
            "composed_exp": self.composed_exp,
            "remaining_today": self.remaining_today,
        }

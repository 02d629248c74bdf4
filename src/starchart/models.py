"""Domain models used by the Star Chart package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from .money import require_non_negative, to_decimal


class HomeworkStatus(str, Enum):
    """Enumerates the states a tracked homework day can be in."""

    PENDING = "pending"
    DONE = "done"
    NOT_DONE = "not_done"
    DAY_OFF = "day_off"


@dataclass(slots=True)
class RewardThreshold:
    """Global (stars, amount) pair defining one reward unit."""

    stars: int
    amount: Decimal

    def __post_init__(self) -> None:
        if int(self.stars) < 1:
            raise ValueError("Threshold stars must be at least 1.")
        self.stars = int(self.stars)
        self.amount = require_non_negative(to_decimal(self.amount))


@dataclass(slots=True)
class LedgerEntry:
    """Represents a single signed star event for a child.

    ``undone_at`` is the only field that ever changes after creation.
    """

    id: Optional[int]
    child_id: int
    stars: int
    created_at: datetime
    task_id: Optional[int] = None
    note: Optional[str] = None
    undone_at: Optional[datetime] = None
    task_name: Optional[str] = None
    task_icon: Optional[str] = None

    @property
    def is_undone(self) -> bool:
        return self.undone_at is not None

    @property
    def is_manual(self) -> bool:
        return self.task_id is None


@dataclass(slots=True)
class RewardSummary:
    """Snapshot of a child's reward accounting."""

    total_stars: int
    total_paid_stars: int
    outstanding_stars: int
    stars_toward_next: int
    threshold_stars: int
    threshold_amount: Decimal
    rewards_earned: int
    rewards_paid: int
    total_earned_amount: Decimal
    total_paid_amount: Decimal
    unpaid_amount: Decimal
    progress_percent: int


@dataclass(slots=True)
class AwardResult:
    """Outcome of awarding a task's stars to a child."""

    entry: LedgerEntry
    new_total: int
    outstanding: int
    stars_awarded: int
    threshold_reached: bool
    threshold_stars: int


@dataclass(slots=True)
class TaskBreakdown:
    """Completion count and star sum for one task."""

    task_id: int
    name: str
    icon: Optional[str]
    completions: int
    total_stars: int


@dataclass(slots=True)
class StarInsights:
    """Derived statistics for one child."""

    total_stars: int
    stars_this_week: int
    stars_this_month: int
    avg_stars_per_day: float
    active_days: int
    current_streak: int
    best_streak: int
    days_since_first: int
    most_completed_task: Optional[TaskBreakdown]
    highest_earning_task: Optional[TaskBreakdown]
    task_breakdown: List[TaskBreakdown]
    rank: str
    rewards: RewardSummary


@dataclass(slots=True)
class HomeworkDay:
    """One weekday inside a homework week view."""

    date: date
    day_name: str
    status: HomeworkStatus
    is_today: bool
    is_past: bool
    is_future: bool


@dataclass(slots=True)
class WeekSummary:
    """Quota evaluation for a Monday-Friday homework week."""

    done: int
    not_done: int
    day_off: int
    pending: int
    total_school_days: int
    required: int
    earned: bool
    still_possible: bool
    lost: bool


@dataclass(slots=True)
class HomeworkWeekView:
    """Days and summary for the week containing a reference date."""

    week_start: date
    week_end: date
    days: Tuple[HomeworkDay, ...]
    summary: WeekSummary


@dataclass(slots=True)
class WeekRollup:
    """Historical counts for one Monday-anchored week."""

    week_start: date
    done: int = 0
    not_done: int = 0
    day_off: int = 0
    total_school_days: int = 5
    required: int = 0
    earned: bool = False


@dataclass(slots=True)
class PayoutRecord:
    """Represents a cash payout that consumed stars from the balance."""

    id: Optional[int]
    child_id: int
    stars_spent: int
    amount: Decimal
    note: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        if int(self.stars_spent) < 1:
            raise ValueError("stars_spent must be at least 1.")
        self.amount = require_non_negative(to_decimal(self.amount))


__all__ = [
    "AwardResult",
    "HomeworkDay",
    "HomeworkStatus",
    "HomeworkWeekView",
    "LedgerEntry",
    "PayoutRecord",
    "RewardSummary",
    "RewardThreshold",
    "StarInsights",
    "TaskBreakdown",
    "WeekRollup",
    "WeekSummary",
]

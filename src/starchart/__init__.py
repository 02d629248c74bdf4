"""Star Chart: star accrual, reward thresholds and homework quotas for kids."""

from .api import ApiExporter
from .exceptions import NotFoundError, StarChartError, UnauthorizedError, ValidationError
from .homework import Weekday, build_week, next_status, rollup_history, summarize_week, week_start
from .insights import build_insights, star_rank
from .models import (
    AwardResult,
    HomeworkDay,
    HomeworkStatus,
    HomeworkWeekView,
    LedgerEntry,
    PayoutRecord,
    RewardSummary,
    RewardThreshold,
    StarInsights,
    TaskBreakdown,
    WeekRollup,
    WeekSummary,
)
from .ops import HealthMonitor, StructuredLogger
from .rewards import stars_for_payout, summarize, threshold_crossed
from .security import PinGate, check_pin, hash_pin

__all__ = [
    "ApiExporter",
    "AwardResult",
    "HealthMonitor",
    "HomeworkDay",
    "HomeworkStatus",
    "HomeworkWeekView",
    "LedgerEntry",
    "NotFoundError",
    "PayoutRecord",
    "PinGate",
    "RewardSummary",
    "RewardThreshold",
    "StarChartError",
    "StarInsights",
    "StructuredLogger",
    "TaskBreakdown",
    "UnauthorizedError",
    "ValidationError",
    "WeekRollup",
    "WeekSummary",
    "Weekday",
    "build_insights",
    "build_week",
    "check_pin",
    "hash_pin",
    "next_status",
    "rollup_history",
    "stars_for_payout",
    "star_rank",
    "summarize",
    "summarize_week",
    "threshold_crossed",
    "week_start",
]

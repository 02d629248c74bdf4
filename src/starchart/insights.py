"""Streaks, averages, ranks and task breakdowns for a child's star history."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import rewards
from .models import LedgerEntry, RewardThreshold, StarInsights, TaskBreakdown

RANK_TIERS: Tuple[Tuple[int, str], ...] = (
    (0, "New Star"),
    (5, "Star Starter"),
    (20, "Rising Star"),
    (50, "Star Explorer"),
    (100, "Superstar"),
    (200, "Star Champion"),
    (500, "Star Legend"),
)


def star_rank(total_stars: int) -> str:
    """Return the highest rank whose threshold ``total_stars`` reaches."""

    rank = RANK_TIERS[0][1]
    for minimum, name in RANK_TIERS:
        if total_stars >= minimum:
            rank = name
    return rank


def active_dates(entries: Iterable[LedgerEntry]) -> List[date]:
    """Distinct calendar dates with at least one counted entry, ascending."""

    return sorted({entry.created_at.date() for entry in entries if not entry.is_undone})


def best_streak(days: Sequence[date]) -> int:
    best = 0
    run = 0
    previous: Optional[date] = None
    for day in days:
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        best = max(best, run)
        previous = day
    return best


def current_streak(days: Sequence[date], today: date) -> int:
    """Length of the run ending at the latest active date.

    The run only counts while it is still alive, i.e. the latest active date
    is today or yesterday.
    """

    if not days:
        return 0
    if (today - days[-1]).days > 1:
        return 0
    streak = 1
    for index in range(len(days) - 1, 0, -1):
        if days[index] - days[index - 1] == timedelta(days=1):
            streak += 1
        else:
            break
    return streak


def task_breakdown(entries: Iterable[LedgerEntry]) -> List[TaskBreakdown]:
    """Per-task completions and star sums, most completed first."""

    grouped: Dict[int, TaskBreakdown] = {}
    for entry in entries:
        if entry.is_undone or entry.is_manual:
            continue
        item = grouped.get(entry.task_id)
        if item is None:
            item = TaskBreakdown(
                task_id=entry.task_id,
                name=entry.task_name or entry.note or "",
                icon=entry.task_icon,
                completions=0,
                total_stars=0,
            )
            grouped[entry.task_id] = item
        item.completions += 1
        item.total_stars += entry.stars
    return sorted(grouped.values(), key=lambda item: item.completions, reverse=True)


def _window_sum(entries: Sequence[LedgerEntry], since: datetime) -> int:
    return sum(entry.stars for entry in entries if entry.created_at >= since)


def build_insights(
    entries: Iterable[LedgerEntry],
    *,
    total_paid_stars: int,
    threshold: RewardThreshold,
    now: datetime,
) -> StarInsights:
    """Compute the full insights snapshot for one child's ledger."""

    counted = [entry for entry in entries if not entry.is_undone]
    total = sum(entry.stars for entry in counted)
    days = active_dates(counted)
    if days:
        average = (Decimal(total) / Decimal(len(days))).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        avg_per_day = float(average)
    else:
        avg_per_day = 0.0
    breakdown = task_breakdown(counted)
    highest = sorted(breakdown, key=lambda item: item.total_stars, reverse=True)
    first = min((entry.created_at for entry in counted), default=None)
    return StarInsights(
        total_stars=total,
        stars_this_week=_window_sum(counted, now - timedelta(days=7)),
        stars_this_month=_window_sum(counted, now - timedelta(days=30)),
        avg_stars_per_day=avg_per_day,
        active_days=len(days),
        current_streak=current_streak(days, now.date()),
        best_streak=best_streak(days),
        days_since_first=max((now - first).days, 0) if first else 0,
        most_completed_task=breakdown[0] if breakdown else None,
        highest_earning_task=highest[0] if highest else None,
        task_breakdown=breakdown,
        rank=star_rank(total),
        rewards=rewards.summarize(total, total_paid_stars, threshold),
    )


__all__ = [
    "RANK_TIERS",
    "active_dates",
    "best_streak",
    "build_insights",
    "current_streak",
    "star_rank",
    "task_breakdown",
]

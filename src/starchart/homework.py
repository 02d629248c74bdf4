"""Weekly homework quota tracking.

Each Monday-Friday day of a tracked child is in one of the
:class:`~starchart.models.HomeworkStatus` states.  Days that have passed
without an explicit status are settled as ``not_done``; everything else is an
explicit choice that may be overwritten at any time.
"""

from __future__ import annotations

from datetime import date, timedelta
from enum import IntEnum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .exceptions import ValidationError
from .models import HomeworkDay, HomeworkStatus, HomeworkWeekView, WeekRollup, WeekSummary

SCHOOL_DAYS_PER_WEEK = 5


class Weekday(IntEnum):
    """Days of the week using :meth:`date.weekday` numbering."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def is_weekend(self) -> bool:
        return self >= Weekday.SATURDAY


_PRESENT_CYCLE: Dict[HomeworkStatus, HomeworkStatus] = {
    HomeworkStatus.PENDING: HomeworkStatus.DONE,
    HomeworkStatus.DONE: HomeworkStatus.NOT_DONE,
    HomeworkStatus.NOT_DONE: HomeworkStatus.DAY_OFF,
    HomeworkStatus.DAY_OFF: HomeworkStatus.PENDING,
}

_PAST_CYCLE: Dict[HomeworkStatus, HomeworkStatus] = {
    HomeworkStatus.PENDING: HomeworkStatus.DONE,
    HomeworkStatus.DONE: HomeworkStatus.NOT_DONE,
    HomeworkStatus.NOT_DONE: HomeworkStatus.DAY_OFF,
    HomeworkStatus.DAY_OFF: HomeworkStatus.DONE,
}


def week_start(day: date) -> date:
    """Return the Monday of the week containing ``day``.

    Weekend days belong to the week that just finished.
    """

    return day - timedelta(days=day.weekday())


def school_week(reference: date) -> Tuple[date, ...]:
    monday = week_start(reference)
    return tuple(monday + timedelta(days=offset) for offset in range(SCHOOL_DAYS_PER_WEEK))


def parse_status(value: str) -> HomeworkStatus:
    try:
        return HomeworkStatus(value)
    except ValueError:
        allowed = ", ".join(status.value for status in HomeworkStatus)
        raise ValidationError(
            "Invalid homework status.", fields={"status": f"must be one of: {allowed}"}
        ) from None


def require_weekday(day: date) -> date:
    if Weekday(day.weekday()).is_weekend:
        raise ValidationError(
            "Homework can only be tracked on weekdays",
            fields={"date": f"{day.isoformat()} is a {Weekday(day.weekday()).label}"},
        )
    return day


def next_status(current: HomeworkStatus, *, is_past: bool) -> HomeworkStatus:
    """Status a display layer should offer after ``current`` on a tap.

    Past days cannot go back to pending, so their cycle jumps from day off
    straight to done.  The server accepts any status regardless.
    """

    cycle = _PAST_CYCLE if is_past else _PRESENT_CYCLE
    return cycle[current]


def settle_status(stored: Optional[HomeworkStatus], day: date, today: date) -> HomeworkStatus:
    if stored is not None:
        return stored
    if day < today:
        return HomeworkStatus.NOT_DONE
    return HomeworkStatus.PENDING


def required_days(total_school_days: int, homework_required: int, homework_total_days: int) -> int:
    """Days that must be done for the week's reward.

    A week shortened by days off below the configured length requires every
    remaining school day.
    """

    if total_school_days < homework_total_days:
        return total_school_days
    return homework_required


def summarize_week(
    statuses: Sequence[HomeworkStatus],
    *,
    homework_required: int,
    homework_total_days: int,
) -> WeekSummary:
    done = sum(1 for status in statuses if status is HomeworkStatus.DONE)
    not_done = sum(1 for status in statuses if status is HomeworkStatus.NOT_DONE)
    day_off = sum(1 for status in statuses if status is HomeworkStatus.DAY_OFF)
    pending = sum(1 for status in statuses if status is HomeworkStatus.PENDING)
    total_school_days = SCHOOL_DAYS_PER_WEEK - day_off
    required = required_days(total_school_days, homework_required, homework_total_days)
    earned = done >= required
    still_possible = done + pending >= required
    return WeekSummary(
        done=done,
        not_done=not_done,
        day_off=day_off,
        pending=pending,
        total_school_days=total_school_days,
        required=required,
        earned=earned,
        still_possible=still_possible,
        lost=not earned and not still_possible,
    )


def build_week(
    reference: date,
    stored: Mapping[date, HomeworkStatus],
    *,
    today: date,
    homework_required: int,
    homework_total_days: int,
) -> Tuple[HomeworkWeekView, List[date]]:
    """Build the week view and list the past days that need settling.

    The caller persists ``not_done`` for every returned date.
    """

    days: List[HomeworkDay] = []
    to_settle: List[date] = []
    for day in school_week(reference):
        status = settle_status(stored.get(day), day, today)
        if day not in stored and status is HomeworkStatus.NOT_DONE:
            to_settle.append(day)
        days.append(
            HomeworkDay(
                date=day,
                day_name=Weekday(day.weekday()).label,
                status=status,
                is_today=day == today,
                is_past=day < today,
                is_future=day > today,
            )
        )
    summary = summarize_week(
        [item.status for item in days],
        homework_required=homework_required,
        homework_total_days=homework_total_days,
    )
    view = HomeworkWeekView(
        week_start=days[0].date,
        week_end=days[-1].date,
        days=tuple(days),
        summary=summary,
    )
    return view, to_settle


def rollup_history(
    rows: Iterable[Tuple[date, HomeworkStatus]],
    *,
    homework_required: int,
    homework_total_days: int,
) -> List[WeekRollup]:
    """Group stored day statuses into Monday-anchored weeks, newest first."""

    weeks: Dict[date, WeekRollup] = {}
    for day, status in rows:
        monday = week_start(day)
        rollup = weeks.setdefault(monday, WeekRollup(week_start=monday))
        if status is HomeworkStatus.DONE:
            rollup.done += 1
        elif status is HomeworkStatus.NOT_DONE:
            rollup.not_done += 1
        elif status is HomeworkStatus.DAY_OFF:
            rollup.day_off += 1
    for rollup in weeks.values():
        rollup.total_school_days = SCHOOL_DAYS_PER_WEEK - rollup.day_off
        rollup.required = required_days(rollup.total_school_days, homework_required, homework_total_days)
        rollup.earned = rollup.done >= rollup.required
    return sorted(weeks.values(), key=lambda rollup: rollup.week_start, reverse=True)


__all__ = [
    "SCHOOL_DAYS_PER_WEEK",
    "Weekday",
    "build_week",
    "next_status",
    "parse_status",
    "require_weekday",
    "required_days",
    "rollup_history",
    "school_week",
    "settle_status",
    "summarize_week",
    "week_start",
]

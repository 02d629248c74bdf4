"""Store-backed operations behind the Star Chart HTTP endpoints.

Every function opens its own session and commits once, so an award, undo,
payout or homework write is a single transaction.  Aggregates are recomputed
from stored rows on every call.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, col, desc, select

from .. import homework, insights, rewards
from ..exceptions import NotFoundError, UnauthorizedError, ValidationError
from ..models import (
    AwardResult,
    HomeworkStatus,
    HomeworkWeekView,
    LedgerEntry,
    PayoutRecord,
    RewardSummary,
    RewardThreshold,
    StarInsights,
    WeekRollup,
)
from ..money import AmountLike, to_decimal
from ..security import check_pin, hash_pin
from .config import (
    DEFAULT_HISTORY_WEEKS,
    DEFAULT_PIN,
    DEFAULT_REMOVE_NOTE,
    DEFAULT_THRESHOLD_AMOUNT,
    DEFAULT_THRESHOLD_STARS,
    SETTING_PIN_HASH,
    SETTING_THRESHOLD_AMOUNT,
    SETTING_THRESHOLD_STARS,
)
from .persistence import Child, HomeworkLog, Payout, Setting, StarLog, Task, get_session

# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------
_time_provider: Callable[[], datetime] = datetime.now


def now_local() -> datetime:
    """Return naive local time using the configured provider."""

    return _time_provider()


def set_time_provider(provider: Optional[Callable[[], datetime]]) -> None:
    global _time_provider
    _time_provider = provider or datetime.now


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
class SettingsDAO:
    @staticmethod
    def get(session: Session, key: str) -> Optional[str]:
        row = session.get(Setting, key)
        return row.value if row else None

    @staticmethod
    def set(session: Session, key: str, value: str) -> None:
        row = session.get(Setting, key)
        if row:
            row.value = value
            session.add(row)
        else:
            session.add(Setting(key=key, value=value))


def seed_settings() -> None:
    """Insert default settings that are not stored yet."""

    defaults = {
        SETTING_THRESHOLD_STARS: str(DEFAULT_THRESHOLD_STARS),
        SETTING_THRESHOLD_AMOUNT: str(to_decimal(DEFAULT_THRESHOLD_AMOUNT)),
    }
    with get_session() as session:
        for key, value in defaults.items():
            if SettingsDAO.get(session, key) is None:
                session.add(Setting(key=key, value=value))
        if SettingsDAO.get(session, SETTING_PIN_HASH) is None:
            session.add(Setting(key=SETTING_PIN_HASH, value=hash_pin(DEFAULT_PIN)))
        session.commit()


def _threshold(session: Session) -> RewardThreshold:
    stars = SettingsDAO.get(session, SETTING_THRESHOLD_STARS) or str(DEFAULT_THRESHOLD_STARS)
    amount = SettingsDAO.get(session, SETTING_THRESHOLD_AMOUNT) or DEFAULT_THRESHOLD_AMOUNT
    return RewardThreshold(stars=int(stars), amount=to_decimal(amount))


def get_threshold() -> RewardThreshold:
    with get_session() as session:
        return _threshold(session)


def update_threshold(stars: int, amount: AmountLike) -> RewardThreshold:
    try:
        threshold = RewardThreshold(stars=stars, amount=to_decimal(amount))
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    with get_session() as session:
        SettingsDAO.set(session, SETTING_THRESHOLD_STARS, str(threshold.stars))
        SettingsDAO.set(session, SETTING_THRESHOLD_AMOUNT, str(threshold.amount))
        session.commit()
    return threshold


def stored_pin_hash() -> Optional[str]:
    with get_session() as session:
        return SettingsDAO.get(session, SETTING_PIN_HASH)


def change_pin(current_pin: str, new_pin: str) -> None:
    with get_session() as session:
        stored = SettingsDAO.get(session, SETTING_PIN_HASH)
        if not stored or not check_pin(current_pin, stored):
            raise UnauthorizedError("Current PIN is incorrect")
        SettingsDAO.set(session, SETTING_PIN_HASH, hash_pin(new_pin))
        session.commit()


# ---------------------------------------------------------------------------
# Children & tasks
# ---------------------------------------------------------------------------
def _child(session: Session, child_id: int, *, include_deleted: bool = False) -> Child:
    child = session.get(Child, child_id)
    if child is None or (child.deleted_at is not None and not include_deleted):
        raise NotFoundError("Child not found")
    return child


def _task(session: Session, task_id: int) -> Task:
    task = session.get(Task, task_id)
    if task is None or task.deleted_at is not None:
        raise NotFoundError("Task not found")
    return task


def _star_total(session: Session, child_id: int) -> int:
    statement = select(func.coalesce(func.sum(StarLog.stars), 0)).where(
        StarLog.child_id == child_id, col(StarLog.undone_at).is_(None)
    )
    return int(session.exec(statement).one())


def _paid_total(session: Session, child_id: int) -> int:
    statement = select(func.coalesce(func.sum(Payout.stars_spent), 0)).where(Payout.child_id == child_id)
    return int(session.exec(statement).one())


def list_children() -> List[Tuple[Child, int, int]]:
    """Active children, oldest first, with lifetime and paid star totals."""

    with get_session() as session:
        children = session.exec(
            select(Child).where(col(Child.deleted_at).is_(None)).order_by(Child.created_at, Child.id)
        ).all()
        return [(child, _star_total(session, child.id), _paid_total(session, child.id)) for child in children]


def create_child(**fields: object) -> Child:
    with get_session() as session:
        child = Child(**fields, created_at=now_local())
        session.add(child)
        session.commit()
        session.refresh(child)
        return child


def update_child(child_id: int, **fields: object) -> Child:
    with get_session() as session:
        child = _child(session, child_id)
        for key, value in fields.items():
            setattr(child, key, value)
        session.add(child)
        session.commit()
        session.refresh(child)
        return child


def soft_delete_child(child_id: int) -> None:
    with get_session() as session:
        child = _child(session, child_id)
        child.deleted_at = now_local()
        session.add(child)
        session.commit()


def list_tasks() -> List[Task]:
    with get_session() as session:
        return list(
            session.exec(
                select(Task)
                .where(col(Task.deleted_at).is_(None))
                .order_by(Task.sort_order, Task.created_at, Task.id)
            ).all()
        )


def create_task(**fields: object) -> Task:
    with get_session() as session:
        task = Task(**fields, created_at=now_local())
        session.add(task)
        session.commit()
        session.refresh(task)
        return task


def update_task(task_id: int, **fields: object) -> Task:
    with get_session() as session:
        task = _task(session, task_id)
        for key, value in fields.items():
            setattr(task, key, value)
        session.add(task)
        session.commit()
        session.refresh(task)
        return task


def soft_delete_task(task_id: int) -> None:
    with get_session() as session:
        task = _task(session, task_id)
        task.deleted_at = now_local()
        session.add(task)
        session.commit()


# ---------------------------------------------------------------------------
# Star ledger
# ---------------------------------------------------------------------------
def _entry(log: StarLog, task: Optional[Task] = None) -> LedgerEntry:
    return LedgerEntry(
        id=log.id,
        child_id=log.child_id,
        task_id=log.task_id,
        stars=log.stars,
        note=log.note,
        created_at=log.created_at,
        undone_at=log.undone_at,
        task_name=task.name if task else None,
        task_icon=task.icon if task else None,
    )


def _ledger(session: Session, child_id: int) -> List[LedgerEntry]:
    rows = session.exec(
        select(StarLog, Task)
        .join(Task, StarLog.task_id == Task.id, isouter=True)
        .where(StarLog.child_id == child_id)
        .order_by(desc(StarLog.created_at), desc(StarLog.id))
    ).all()
    return [_entry(log, task) for log, task in rows]


def award_stars(child_id: int, task_id: int) -> AwardResult:
    """Append a task's stars to a child's ledger and report threshold crossing.

    The balance read and the insert share one write-locked transaction.
    """

    with get_session() as session:
        _child(session, child_id)
        task = _task(session, task_id)
        before_total = _star_total(session, child_id)
        paid_total = _paid_total(session, child_id)
        threshold = _threshold(session)
        log = StarLog(
            child_id=child_id,
            task_id=task.id,
            stars=task.star_value,
            note=task.name,
            created_at=now_local(),
        )
        session.add(log)
        session.commit()
        session.refresh(log)
        new_total = before_total + task.star_value
        outstanding = rewards.outstanding_stars(new_total, paid_total)
        return AwardResult(
            entry=_entry(log, task),
            new_total=new_total,
            outstanding=outstanding,
            stars_awarded=task.star_value,
            threshold_reached=rewards.threshold_crossed(outstanding, task.star_value, threshold),
            threshold_stars=threshold.stars,
        )


def remove_stars(child_id: int, count: int, note: Optional[str] = None) -> Tuple[LedgerEntry, int]:
    """Append a manual negative entry and return it with the new total.

    The balance is allowed to go below zero.
    """

    if count < 1:
        raise ValidationError("Invalid star count.", fields={"stars": "must be at least 1"})
    with get_session() as session:
        _child(session, child_id)
        log = StarLog(
            child_id=child_id,
            task_id=None,
            stars=-count,
            note=note or DEFAULT_REMOVE_NOTE,
            created_at=now_local(),
        )
        session.add(log)
        session.commit()
        session.refresh(log)
        return _entry(log), _star_total(session, child_id)


def undo_entry(child_id: int, entry_id: int) -> int:
    """Mark a ledger entry as undone and return the child's new total."""

    with get_session() as session:
        log = session.exec(
            select(StarLog).where(
                StarLog.id == entry_id,
                StarLog.child_id == child_id,
                col(StarLog.undone_at).is_(None),
            )
        ).first()
        if log is None:
            raise NotFoundError("Star log not found or already undone")
        log.undone_at = now_local()
        session.add(log)
        session.commit()
        return _star_total(session, child_id)


def list_history(child_id: int) -> List[LedgerEntry]:
    """Every entry for ``child_id``, newest first, undone entries included."""

    with get_session() as session:
        _child(session, child_id, include_deleted=True)
        return _ledger(session, child_id)


def reward_summary(child_id: int) -> RewardSummary:
    with get_session() as session:
        _child(session, child_id, include_deleted=True)
        return rewards.summarize(_star_total(session, child_id), _paid_total(session, child_id), _threshold(session))


def child_insights(child_id: int) -> StarInsights:
    with get_session() as session:
        _child(session, child_id, include_deleted=True)
        return insights.build_insights(
            _ledger(session, child_id),
            total_paid_stars=_paid_total(session, child_id),
            threshold=_threshold(session),
            now=now_local(),
        )


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------
def _payout_record(payout: Payout) -> PayoutRecord:
    return PayoutRecord(
        id=payout.id,
        child_id=payout.child_id,
        stars_spent=payout.stars_spent,
        amount=Decimal(payout.amount_cents) / 100,
        note=payout.note,
        created_at=payout.created_at,
    )


def record_payout(
    child_id: int,
    amount: AmountLike,
    *,
    stars_spent: Optional[int] = None,
    note: Optional[str] = None,
) -> PayoutRecord:
    """Record a cash payout.

    Without an explicit ``stars_spent`` the stars are derived from the current
    threshold ratio.
    """

    value = to_decimal(amount)
    if value < 0:
        raise ValidationError("Invalid payout amount.", fields={"amount": "must be zero or greater"})
    if stars_spent is not None and stars_spent < 1:
        raise ValidationError("Invalid payout stars.", fields={"stars_spent": "must be at least 1"})
    with get_session() as session:
        _child(session, child_id)
        spent = stars_spent if stars_spent is not None else rewards.stars_for_payout(value, _threshold(session))
        payout = Payout(
            child_id=child_id,
            stars_spent=spent,
            amount_cents=int(value * 100),
            note=note or None,
            created_at=now_local(),
        )
        session.add(payout)
        session.commit()
        session.refresh(payout)
        return _payout_record(payout)


def list_payouts(child_id: int) -> List[PayoutRecord]:
    with get_session() as session:
        _child(session, child_id, include_deleted=True)
        payouts = session.exec(
            select(Payout)
            .where(Payout.child_id == child_id)
            .order_by(desc(Payout.created_at), desc(Payout.id))
        ).all()
        return [_payout_record(payout) for payout in payouts]


# ---------------------------------------------------------------------------
# Homework
# ---------------------------------------------------------------------------
def load_homework_week(child_id: int, reference: Optional[date] = None) -> HomeworkWeekView:
    """Return the week view, persisting ``not_done`` for unsettled past days."""

    today = now_local().date()
    week = homework.school_week(reference or today)
    with get_session() as session:
        child = _child(session, child_id)
        rows = session.exec(
            select(HomeworkLog).where(
                HomeworkLog.child_id == child_id,
                HomeworkLog.day >= week[0],
                HomeworkLog.day <= week[-1],
            )
        ).all()
        stored: Dict[date, HomeworkStatus] = {row.day: HomeworkStatus(row.status) for row in rows}
        view, to_settle = homework.build_week(
            reference or today,
            stored,
            today=today,
            homework_required=child.homework_required,
            homework_total_days=child.homework_total_days,
        )
        stamp = now_local()
        for day in to_settle:
            session.exec(
                sqlite_insert(HomeworkLog)
                .values(child_id=child_id, day=day, status=HomeworkStatus.NOT_DONE.value, updated_at=stamp)
                .on_conflict_do_nothing(index_elements=["child_id", "day"])
            )
        session.commit()
        return view


def set_homework_status(child_id: int, day: date, status: HomeworkStatus) -> HomeworkStatus:
    """Store an explicit status for a weekday, overwriting any previous one."""

    stamp = now_local()
    with get_session() as session:
        _child(session, child_id)
        homework.require_weekday(day)
        statement = sqlite_insert(HomeworkLog).values(
            child_id=child_id, day=day, status=status.value, updated_at=stamp
        )
        session.exec(
            statement.on_conflict_do_update(
                index_elements=["child_id", "day"],
                set_={"status": status.value, "updated_at": stamp},
            )
        )
        session.commit()
    return status


def homework_history(child_id: int, weeks: int = DEFAULT_HISTORY_WEEKS) -> List[WeekRollup]:
    if weeks < 1:
        raise ValidationError("Invalid week count.", fields={"weeks": "must be at least 1"})
    start = now_local().date() - timedelta(days=weeks * 7)
    with get_session() as session:
        child = _child(session, child_id)
        rows = session.exec(
            select(HomeworkLog)
            .where(HomeworkLog.child_id == child_id, HomeworkLog.day >= start)
            .order_by(HomeworkLog.day)
        ).all()
        return homework.rollup_history(
            [(row.day, HomeworkStatus(row.status)) for row in rows],
            homework_required=child.homework_required,
            homework_total_days=child.homework_total_days,
        )


__all__ = [
    "SettingsDAO",
    "award_stars",
    "change_pin",
    "child_insights",
    "create_child",
    "create_task",
    "get_threshold",
    "homework_history",
    "list_children",
    "list_history",
    "list_payouts",
    "list_tasks",
    "load_homework_week",
    "now_local",
    "record_payout",
    "remove_stars",
    "reward_summary",
    "seed_settings",
    "set_homework_status",
    "set_time_provider",
    "soft_delete_child",
    "soft_delete_task",
    "stored_pin_hash",
    "undo_entry",
    "update_child",
    "update_task",
]

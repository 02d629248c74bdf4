"""Persistence and SQLModel definitions for the Star Chart web backend."""
from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Any, List, Optional

from sqlalchemy import UniqueConstraint, event
from sqlmodel import Field, Session, SQLModel, create_engine

from .config import (
    DEFAULT_CHILD_COLOR,
    DEFAULT_HOMEWORK_REQUIRED,
    DEFAULT_HOMEWORK_TOTAL_DAYS,
    SQLITE_FILE_NAME,
)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
engine = create_engine(
    f"sqlite:///{SQLITE_FILE_NAME}",
    echo=False,
    connect_args={"check_same_thread": False, "timeout": 30},
)


@event.listens_for(engine, "connect")
def _configure_sqlite(dbapi_connection: Any, _connection_record: Any) -> None:
    # Hand transaction control to SQLAlchemy so "begin" below is honoured.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
    finally:
        cursor.close()


@event.listens_for(engine, "begin")
def _begin_immediate(conn: Any) -> None:
    # Take the write lock up front: read-then-write sequences such as an award
    # cannot interleave with another writer.
    conn.exec_driver_sql("BEGIN IMMEDIATE")


# Ensure fresh metadata when re-importing in test contexts.
SQLModel.metadata.clear()


def get_session() -> Session:
    return Session(engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
class Child(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    color: str = DEFAULT_CHILD_COLOR
    avatar_url: Optional[str] = None
    homework_tracking: bool = False
    homework_required: int = DEFAULT_HOMEWORK_REQUIRED
    homework_total_days: int = DEFAULT_HOMEWORK_TOTAL_DAYS
    created_at: datetime = Field(default_factory=datetime.now)
    deleted_at: Optional[datetime] = None


class Task(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    star_value: int
    icon: Optional[str] = None
    sort_order: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    deleted_at: Optional[datetime] = None


class StarLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = Field(foreign_key="child.id", index=True)
    task_id: Optional[int] = Field(default=None, foreign_key="task.id")
    stars: int
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    undone_at: Optional[datetime] = None


class Payout(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = Field(foreign_key="child.id", index=True)
    stars_spent: int
    amount_cents: int
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class Setting(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str


class HomeworkLog(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "day", name="uq_homeworklog_child_day"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = Field(foreign_key="child.id", index=True)
    day: date
    status: str = "pending"  # pending|done|not_done|day_off
    updated_at: datetime = Field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Database initialisation & migrations
# ---------------------------------------------------------------------------
def create_db_and_tables() -> None:
    SQLModel.metadata.create_all(engine)


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    cur = conn.execute(f"PRAGMA table_info({table});")
    return any(row[1] == column for row in cur.fetchall())


def run_migrations() -> List[str]:
    """Bring databases created by older releases up to the current schema.

    Returns the names of the steps that changed something.
    """

    applied: List[str] = []
    raw = sqlite3.connect(SQLITE_FILE_NAME)
    try:
        if not _column_exists(raw, "child", "homework_tracking"):
            raw.execute("ALTER TABLE child ADD COLUMN homework_tracking BOOLEAN DEFAULT 0;")
            applied.append("child.homework_tracking")
        if not _column_exists(raw, "child", "homework_required"):
            raw.execute(
                f"ALTER TABLE child ADD COLUMN homework_required INTEGER DEFAULT {DEFAULT_HOMEWORK_REQUIRED};"
            )
            applied.append("child.homework_required")
        if not _column_exists(raw, "child", "homework_total_days"):
            raw.execute(
                f"ALTER TABLE child ADD COLUMN homework_total_days INTEGER DEFAULT {DEFAULT_HOMEWORK_TOTAL_DAYS};"
            )
            applied.append("child.homework_total_days")
        if not _column_exists(raw, "starlog", "undone_at"):
            raw.execute("ALTER TABLE starlog ADD COLUMN undone_at DATETIME;")
            applied.append("starlog.undone_at")
        if not _column_exists(raw, "payout", "note"):
            raw.execute("ALTER TABLE payout ADD COLUMN note VARCHAR;")
            applied.append("payout.note")
        if not _column_exists(raw, "homeworklog", "updated_at"):
            raw.execute("ALTER TABLE homeworklog ADD COLUMN updated_at DATETIME;")
            applied.append("homeworklog.updated_at")
        raw.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_homeworklog_child_day
            ON homeworklog(child_id, day);
            """
        )
        raw.commit()
    finally:
        raw.close()
    return applied


create_db_and_tables()
APPLIED_MIGRATIONS: List[str] = run_migrations()


__all__ = [
    "engine",
    "get_session",
    "Child",
    "Task",
    "StarLog",
    "Payout",
    "Setting",
    "HomeworkLog",
    "APPLIED_MIGRATIONS",
    "create_db_and_tables",
    "run_migrations",
]

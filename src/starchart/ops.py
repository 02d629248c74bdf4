"""Operational utilities for Star Chart."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional


class HealthMonitor:
    """Aggregate runtime health information for the status endpoint."""

    def __init__(self) -> None:
        self.database_online = True
        self.migrations: list[str] = []
        self.started_at: datetime = datetime.now()

    def add_migration(self, name: str) -> None:
        if name not in self.migrations:
            self.migrations.append(name)

    def status(self) -> dict:
        return {
            "status": "healthy" if self.database_online else "degraded",
            "database": "ok" if self.database_online else "down",
            "migrations": list(self.migrations),
            "uptime_seconds": self.uptime_seconds(),
        }

    def uptime_seconds(self, *, at: Optional[datetime] = None) -> int:
        return int(((at or datetime.now()) - self.started_at).total_seconds())


class StructuredLogger:
    """Write JSON lines log entries for parent inspection."""

    def __init__(self, *, path: Path | None = None, keep: int = 500) -> None:
        self.path = path
        self._keep = keep
        self._entries: list[dict] = []

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": datetime.now().isoformat(), "event": event_type, **fields}
        self._entries.append(entry)
        if len(self._entries) > self._keep:
            del self._entries[: len(self._entries) - self._keep]
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, default=str) + "\n")
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        return tuple(self._entries[-limit:])

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["HealthMonitor", "StructuredLogger"]

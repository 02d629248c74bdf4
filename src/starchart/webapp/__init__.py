"""Star Chart web backend: ``uvicorn starchart.webapp:app``."""
from __future__ import annotations

from . import persistence, services
from .application import app, event_log, health, pin_gate
from .persistence import *  # noqa: F401,F403
from .services import now_local, set_time_provider

__all__ = [
    "app",
    "event_log",
    "health",
    "now_local",
    "persistence",
    "pin_gate",
    "services",
    "set_time_provider",
    *persistence.__all__,
]

"""Configuration constants for the Star Chart web backend."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

SQLITE_FILE_NAME = os.environ.get("STARCHART_SQLITE", "starchart.db")
DEFAULT_PIN = os.environ.get("STARCHART_DEFAULT_PIN", "1234")
DEFAULT_THRESHOLD_STARS = int(os.environ.get("STARCHART_DEFAULT_THRESHOLD_STARS", "20"))
DEFAULT_THRESHOLD_AMOUNT = os.environ.get("STARCHART_DEFAULT_THRESHOLD_AMOUNT", "10.00")
PIN_MAX_ATTEMPTS = int(os.environ.get("STARCHART_PIN_MAX_ATTEMPTS", "5"))
PIN_LOCKOUT_MINUTES = int(os.environ.get("STARCHART_PIN_LOCKOUT_MINUTES", "15"))

_event_log_raw = os.environ.get("STARCHART_EVENT_LOG", "").strip()
EVENT_LOG_PATH: Optional[Path] = Path(_event_log_raw) if _event_log_raw else None

PIN_HEADER = "X-Parent-Pin"
DEFAULT_CHILD_COLOR = "#FFD700"
DEFAULT_HOMEWORK_REQUIRED = 4
DEFAULT_HOMEWORK_TOTAL_DAYS = 5
DEFAULT_HISTORY_WEEKS = 8
DEFAULT_REMOVE_NOTE = "Stars removed"

SETTING_PIN_HASH = "pin_hash"
SETTING_THRESHOLD_STARS = "reward_threshold_stars"
SETTING_THRESHOLD_AMOUNT = "reward_threshold_amount"

__all__ = [
    "SQLITE_FILE_NAME",
    "DEFAULT_PIN",
    "DEFAULT_THRESHOLD_STARS",
    "DEFAULT_THRESHOLD_AMOUNT",
    "PIN_MAX_ATTEMPTS",
    "PIN_LOCKOUT_MINUTES",
    "EVENT_LOG_PATH",
    "PIN_HEADER",
    "DEFAULT_CHILD_COLOR",
    "DEFAULT_HOMEWORK_REQUIRED",
    "DEFAULT_HOMEWORK_TOTAL_DAYS",
    "DEFAULT_HISTORY_WEEKS",
    "DEFAULT_REMOVE_NOTE",
    "SETTING_PIN_HASH",
    "SETTING_THRESHOLD_STARS",
    "SETTING_THRESHOLD_AMOUNT",
]

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# The web backend binds its SQLite engine at import time.
_DB_DIR = Path(tempfile.mkdtemp(prefix="starchart-tests-"))
os.environ["STARCHART_SQLITE"] = str(_DB_DIR / "starchart.db")
os.environ["STARCHART_DEFAULT_PIN"] = "1234"
os.environ.pop("STARCHART_EVENT_LOG", None)

PARENT_PIN = "1234"


class FrozenClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **kwargs: float) -> datetime:
        self.moment += timedelta(**kwargs)
        return self.moment


@pytest.fixture()
def clock() -> FrozenClock:
    # Wednesday
    return FrozenClock(datetime(2026, 10, 14, 12, 0))


@pytest.fixture()
def pin_headers() -> dict:
    return {"X-Parent-Pin": PARENT_PIN}

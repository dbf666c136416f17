from datetime import datetime, timedelta

import pytest

from lms.config import Settings
from lms.main import LibraryManager
from lms.seed import build_library
from lms.utils.ui_helpers import OUTPUT_MODE_ENV


class FixedClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 1, 10, 0, 0))


@pytest.fixture
def lib(clock, monkeypatch):
    # Each test gets a freshly seeded ledger; the CLI shares it through LibraryManager
    monkeypatch.delenv(OUTPUT_MODE_ENV, raising=False)
    lib = build_library(Settings(seed_file=None, default_borrow_days=14, require_known_members=True), clock=clock)
    LibraryManager.set_instance(lib)
    yield lib
    LibraryManager.set_instance(None)

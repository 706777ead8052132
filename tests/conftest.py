"""Shared fixtures for taskcadence tests."""

from collections.abc import Iterator
from zoneinfo import ZoneInfo

import pytest

from taskcadence.engines.schedule_engine import RecurrenceEngine
from taskcadence.utils import dt_utils


@pytest.fixture(autouse=True)
def reset_default_timezone() -> Iterator[None]:
    """Restore the library default timezone after every test."""
    original = dt_utils.get_default_timezone()
    yield
    dt_utils.set_default_timezone(original)


@pytest.fixture
def utc_tz() -> ZoneInfo:
    """Return UTC timezone."""
    return ZoneInfo("UTC")


@pytest.fixture
def local_tz() -> ZoneInfo:
    """Return a local timezone (Europe/Berlin for DST testing)."""
    return ZoneInfo("Europe/Berlin")


@pytest.fixture
def engine() -> RecurrenceEngine:
    """Return a fresh RecurrenceEngine evaluating in UTC."""
    return RecurrenceEngine(cache_size=100, default_timezone="UTC")

"""
Shared test helpers
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from models.cooking import CookThresholds, TemperatureSample


def dt(hh: int, mm: int = 0, ss: int = 0, *, day: int = 14, month: int = 1, year: int = 2026) -> datetime:
    return datetime(year, month, day, hh, mm, ss, tzinfo=timezone.utc)


def f_to_c(fahrenheit: float) -> float:
    return (fahrenheit - 32) * 5 / 9


def sample(base: datetime, seconds: float, celsius: float) -> TemperatureSample:
    """Sample `seconds` after `base`"""
    return TemperatureSample(timestamp=base + timedelta(seconds=seconds), celsius=celsius)


@pytest.fixture
def thresholds():
    """Default brisket thresholds"""
    return CookThresholds(wrap_temp_f=165, target_temp_f=203)


@pytest.fixture
def notifier():
    """Notification collaborator double"""
    sink = AsyncMock()
    sink.schedule_notification = AsyncMock(return_value=None)
    return sink


@pytest.fixture
def persistence():
    """Persistence collaborator double that always succeeds"""
    sink = AsyncMock()
    sink.save_session = AsyncMock(return_value=True)
    return sink

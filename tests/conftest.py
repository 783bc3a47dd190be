"""
Shared test doubles for the tracker's collaborators.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from usage_tracker.core.environment import UsageContext


class FakeTimer:
    """Timer that only runs when the test fires it."""

    def __init__(self, interval: float, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.function()


class FakeTimerFactory:
    """Records every timer the scheduler creates."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class MemorySettings:
    """In-memory Settings collaborator."""

    def __init__(self, values: Dict[str, Any] = None):
        self.values = dict(values or {})
        self.set_calls = []

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.set_calls.append((key, value))
        self.values[key] = value


class RecordingMetricsService:
    """MetricsService that records uploads and can be told to fail."""

    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = []

    def post_usage(self, reports):
        self.calls.append(list(reports))
        if self.error is not None:
            raise self.error


@pytest.fixture
def timer_factory():
    return FakeTimerFactory()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return MemorySettings()


@pytest.fixture
def metrics_service():
    return RecordingMetricsService()


@pytest.fixture
def context():
    return UsageContext(
        app_version="1.2.0",
        unity_version="2019.4.1f1",
        lang="en-US",
        current_lang="de-DE",
    )

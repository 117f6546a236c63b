"""
Shared fixtures: a manual clock, a manual timer service and a recording
notifier, so lifecycle timing can be tested without real waits.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

import pytest

from floodwatch.alerts.collaborators import BroadcastResult
from floodwatch.alerts.engine import AlertEngine
from floodwatch.alerts.models import Alert, WeatherSnapshot
from floodwatch.core.scheduler import TimerHandle

# Monsoon afternoon, Guwahati (UTC)
T0 = datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0.0, *, minutes: float = 0.0) -> datetime:
        self.now += timedelta(seconds=seconds, minutes=minutes)
        return self.now


class ManualTimerService:
    """Timer service whose callbacks fire only from ``advance``."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.pending: List[Tuple[datetime, TimerHandle, Callable[[], None]]] = []

    def schedule_once(
        self, delay_seconds: float, callback: Callable[[], None],
    ) -> TimerHandle:
        handle = TimerHandle(delay_seconds=delay_seconds)
        due = self.clock() + timedelta(seconds=delay_seconds)
        self.pending.append((due, handle, callback))
        return handle

    def cancel(self, handle: TimerHandle) -> bool:
        for entry in self.pending:
            if entry[1] is handle:
                self.pending.remove(entry)
                handle.cancelled = True
                return True
        return False

    def advance(self, seconds: float = 0.0, *, minutes: float = 0.0) -> int:
        """Move the clock and fire every timer now due. Returns fired count."""
        self.clock.advance(seconds, minutes=minutes)
        now = self.clock()
        due = [e for e in self.pending if e[0] <= now]
        self.pending = [e for e in self.pending if e[0] > now]
        for _, handle, callback in due:
            handle.fired = True
            callback()
        return len(due)


class RecordingNotifier:
    """Notifier double that records every broadcast, or fails on demand."""

    def __init__(self, fail_with: Optional[Exception] = None) -> None:
        self.sent: List[Tuple[str, str, str]] = []
        self.fail_with = fail_with

    def broadcast(
        self, alert: Alert, audience: str, message: Optional[str] = None,
    ) -> BroadcastResult:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((alert.id, audience, message or ""))
        return BroadcastResult(sent_count=1)

    def audiences(self) -> List[str]:
        return [audience for _, audience, _ in self.sent]


def make_weather(rainfall_mm: float = 12.5, *, raining: Optional[bool] = None) -> WeatherSnapshot:
    return WeatherSnapshot(
        is_raining=rainfall_mm > 0 if raining is None else raining,
        rainfall_mm=rainfall_mm,
        temperature=28.0,
        humidity=85.0,
        last_updated=T0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timer(clock) -> ManualTimerService:
    return ManualTimerService(clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(clock, timer, notifier) -> AlertEngine:
    return AlertEngine(notifier=notifier, timer=timer, clock=clock)


@pytest.fixture
def rainy() -> WeatherSnapshot:
    return make_weather(12.5)


@pytest.fixture
def dry() -> WeatherSnapshot:
    return make_weather(0.0)

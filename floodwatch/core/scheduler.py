"""
scheduler.py — Clock and one-shot timer abstractions.

The alert lifecycle never reads wall-clock time or sleeps directly. It is
handed a ``Clock`` (a zero-argument callable returning an aware UTC
datetime) and a ``TimerService`` exposing::

    schedule_once(delay_seconds, callback) → TimerHandle

so follow-up prompts can be exercised in tests with a manual clock
instead of real waits.

Cancellation is best-effort. A callback that fires after its alert has
been resolved must be a no-op on its own (the engine re-checks state
before acting).
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Protocol

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TimerHandle:
    """Opaque handle returned by ``schedule_once``."""
    handle_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    delay_seconds: float = 0.0
    cancelled: bool = False
    fired: bool = False


class TimerService(Protocol):
    def schedule_once(
        self, delay_seconds: float, callback: Callable[[], None],
    ) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle) -> bool: ...


class ThreadingTimerService:
    """
    Real timer service backed by ``threading.Timer``.

    Timers are daemon threads so a pending follow-up never keeps the
    process alive on shutdown.
    """

    def __init__(self) -> None:
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule_once(
        self, delay_seconds: float, callback: Callable[[], None],
    ) -> TimerHandle:
        handle = TimerHandle(delay_seconds=delay_seconds)

        def _run() -> None:
            with self._lock:
                self._timers.pop(handle.handle_id, None)
            if handle.cancelled:
                return
            handle.fired = True
            try:
                callback()
            except Exception:
                logger.exception("Timer %s callback failed", handle.handle_id)

        timer = threading.Timer(delay_seconds, _run)
        timer.daemon = True
        with self._lock:
            self._timers[handle.handle_id] = timer
        timer.start()

        logger.debug("Scheduled timer %s in %.1fs", handle.handle_id, delay_seconds)
        return handle

    def cancel(self, handle: TimerHandle) -> bool:
        with self._lock:
            timer = self._timers.pop(handle.handle_id, None)
        if timer is None:
            return False
        handle.cancelled = True
        timer.cancel()
        return True

    def shutdown(self) -> None:
        """Cancel every pending timer (application shutdown)."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info("Cancelled %d pending timer(s)", len(timers))

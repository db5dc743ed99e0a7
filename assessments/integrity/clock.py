"""
Clocks for the integrity monitor.

The monitor never reads the time or starts threads itself. It is given a
clock that supplies timestamps and repeating callbacks, so tests can drive
the countdown second by second with ``ManualClock``.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from django.utils import timezone

logger = logging.getLogger(__name__)


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        pass

    @abstractmethod
    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        """Invoke ``callback`` every ``interval`` seconds until cancelled."""


class _RepeatingTimer(TimerHandle):
    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name='integrity-tick', daemon=True)

    def start(self):
        self._thread.start()
        return self

    def _run(self):
        next_fire = time.monotonic() + self.interval
        while not self._stopped.wait(max(0.0, next_fire - time.monotonic())):
            try:
                self.callback()
            except Exception:
                logger.exception("Integrity tick callback failed")
            next_fire += self.interval

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def active(self) -> bool:
        return not self._stopped.is_set()


class SystemClock(Clock):
    """Wall-clock timestamps, ticks paced by the monotonic clock on a daemon thread."""

    def now(self) -> datetime:
        return timezone.now()

    def call_every(self, interval, callback) -> TimerHandle:
        return _RepeatingTimer(interval, callback).start()


class _ManualTimer(TimerHandle):
    def __init__(self, interval: float, callback: Callable[[], None], first_fire: float):
        self.interval = interval
        self.callback = callback
        self.next_fire = first_fire
        self._active = True

    def cancel(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active


class ManualClock(Clock):
    """Clock that only moves when ``advance`` is called. Timers fire in order."""

    def __init__(self, start: Optional[datetime] = None):
        self.start = start or timezone.now()
        self.elapsed = 0.0
        self._timers: List[_ManualTimer] = []

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)

    def call_every(self, interval, callback) -> TimerHandle:
        timer = _ManualTimer(interval, callback, self.elapsed + interval)
        self._timers.append(timer)
        return timer

    @property
    def active_timers(self) -> int:
        return sum(1 for t in self._timers if t.active)

    def advance(self, seconds: float) -> None:
        target = self.elapsed + seconds
        while True:
            self._timers = [t for t in self._timers if t.active]
            due = [t for t in self._timers if t.next_fire <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.next_fire)
            self.elapsed = timer.next_fire
            timer.next_fire += timer.interval
            timer.callback()
        self.elapsed = target

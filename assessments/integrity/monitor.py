"""
Defocus countdown state machine.

    FOCUSED --blur--> UNFOCUSED(grace) --tick--> UNFOCUSED(n - 1)
       ^                  |                          |
       +------focus-------+                   n == 0 v
                                                TERMINATED

Every transition is computed by ``transition(state, signal, now)``, which
returns the next state plus the events to append and the timer actions to
perform. ``DefocusMonitor`` applies those results: it owns the event log,
the countdown timer handle and the lock that keeps ticks from interleaving
with focus changes.
"""
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Tuple

from django.conf import settings

from .clock import Clock, TimerHandle
from .events import EventKind, IntegrityEvent, IntegrityEventLog

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD_SECONDS = 60
DEFAULT_TICK_SECONDS = 1
TERMINATION_REASON = 'exceeded defocus grace period'


def get_monitor_settings() -> dict:
    config = getattr(settings, 'INTEGRITY_MONITOR', {})
    return {
        'grace_period': int(config.get('GRACE_PERIOD_SECONDS', DEFAULT_GRACE_PERIOD_SECONDS)),
        'tick_seconds': float(config.get('TICK_SECONDS', DEFAULT_TICK_SECONDS)),
    }


class MonitorStatus(str, Enum):
    FOCUSED = 'focused'
    UNFOCUSED = 'unfocused'
    TERMINATED = 'terminated'


class Signal(str, Enum):
    FOCUS = 'focus'
    BLUR = 'blur'
    TICK = 'tick'


@dataclass(frozen=True)
class DefocusState:
    status: MonitorStatus = MonitorStatus.FOCUSED
    grace_period: int = DEFAULT_GRACE_PERIOD_SECONDS
    seconds_remaining: int = DEFAULT_GRACE_PERIOD_SECONDS
    warning_count: int = 0
    defocus_count: int = 0

    @classmethod
    def initial(cls, grace_period: int = DEFAULT_GRACE_PERIOD_SECONDS) -> 'DefocusState':
        if grace_period < 1:
            raise ValueError("Grace period must be at least one second")
        return cls(grace_period=grace_period, seconds_remaining=grace_period)

    @property
    def terminated(self) -> bool:
        return self.status == MonitorStatus.TERMINATED

    @property
    def seconds_away(self) -> int:
        return self.grace_period - self.seconds_remaining


@dataclass(frozen=True)
class Transition:
    state: DefocusState
    events: Tuple[IntegrityEvent, ...] = ()
    start_countdown: bool = False
    cancel_countdown: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.events) or self.start_countdown or self.cancel_countdown


def transition(state: DefocusState, signal: Signal, now: datetime) -> Transition:
    signal = Signal(signal)

    if state.status == MonitorStatus.TERMINATED:
        return Transition(state)

    if state.status == MonitorStatus.FOCUSED:
        if signal != Signal.BLUR:
            return Transition(state)
        warning_number = state.warning_count + 1
        return Transition(
            state=replace(
                state,
                status=MonitorStatus.UNFOCUSED,
                seconds_remaining=state.grace_period,
                warning_count=warning_number,
                defocus_count=state.defocus_count + 1,
            ),
            events=(IntegrityEvent(EventKind.BLUR, now, warning_number=warning_number),),
            start_countdown=True,
        )

    # UNFOCUSED
    if signal == Signal.FOCUS:
        return Transition(
            state=replace(state, status=MonitorStatus.FOCUSED, seconds_remaining=state.grace_period),
            events=(IntegrityEvent(EventKind.FOCUS, now, time_away_seconds=state.seconds_away),),
            cancel_countdown=True,
        )

    if signal == Signal.TICK:
        remaining = state.seconds_remaining - 1
        if remaining > 0:
            return Transition(replace(state, seconds_remaining=remaining))
        return Transition(
            state=replace(state, status=MonitorStatus.TERMINATED, seconds_remaining=0),
            events=(IntegrityEvent(EventKind.TERMINATE, now, reason=TERMINATION_REASON),),
            cancel_countdown=True,
        )

    # Repeated blur while already away
    return Transition(state)


class DefocusMonitor:
    """
    Observes window focus changes during a timed session and terminates the
    session once the candidate stays away for the whole grace period.

    ``on_terminate`` is called once, outside the monitor lock, with the
    monitor as its only argument.
    """

    def __init__(
        self,
        clock: Clock,
        grace_period: Optional[int] = None,
        tick_seconds: Optional[float] = None,
        on_terminate: Optional[Callable[['DefocusMonitor'], None]] = None,
    ):
        config = get_monitor_settings()
        self.clock = clock
        self.tick_seconds = tick_seconds or config['tick_seconds']
        self.on_terminate = on_terminate
        self.log = IntegrityEventLog()
        self._state = DefocusState.initial(grace_period or config['grace_period'])
        self._lock = threading.RLock()
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._closed = False

    @property
    def state(self) -> DefocusState:
        return self._state

    @property
    def terminated(self) -> bool:
        return self._state.terminated

    @property
    def countdown_active(self) -> bool:
        return self._timer is not None and self._timer.active

    def window_blurred(self) -> DefocusState:
        return self._dispatch(Signal.BLUR)

    def window_focused(self) -> DefocusState:
        return self._dispatch(Signal.FOCUS)

    def focus_changed(self, focused: bool) -> DefocusState:
        return self.window_focused() if focused else self.window_blurred()

    def shutdown(self) -> None:
        """Stop the countdown for good. Later signals are ignored."""
        with self._lock:
            self._closed = True
            self._cancel_timer()

    def _tick(self, generation: int) -> None:
        self._dispatch(Signal.TICK, generation)

    def _dispatch(self, signal: Signal, generation: Optional[int] = None) -> DefocusState:
        just_terminated = False
        with self._lock:
            if self._closed:
                logger.debug(f"Signal {signal.value} ignored after shutdown")
                return self._state
            if generation is not None and generation != self._generation:
                logger.debug("Stale countdown tick ignored")
                return self._state

            result = transition(self._state, signal, self.clock.now())
            if not result.changed and signal != Signal.TICK:
                logger.debug(f"Signal {signal.value} ignored in state {self._state.status.value}")

            for event in result.events:
                self.log.append(event)
            if result.cancel_countdown:
                self._cancel_timer()
            if result.start_countdown:
                self._start_timer()

            was_terminated = self._state.terminated
            self._state = result.state
            just_terminated = self._state.terminated and not was_terminated

            if signal == Signal.BLUR and result.changed:
                logger.info(f"Focus lost: warning {self._state.warning_count}")

        if just_terminated:
            logger.warning(
                f"Session terminated after {self._state.grace_period}s away "
                f"({self._state.warning_count} warnings)"
            )
            if self.on_terminate:
                self.on_terminate(self)
        return self._state

    def _start_timer(self):
        self._cancel_timer()
        self._generation += 1
        generation = self._generation
        self._timer = self.clock.call_every(self.tick_seconds, lambda: self._tick(generation))

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

"""
Integrity log replay.

Submissions persist ``warning_count``, ``total_defocus_count`` and
``terminated`` next to the log for querying. They are always re-derived
here from the log itself rather than taken from the client.
"""
from dataclasses import dataclass, field
from typing import Iterable, List

from .events import EventKind, IntegrityEvent


class IntegrityLogError(ValueError):
    """The event sequence could not have been produced by the monitor."""


@dataclass(frozen=True)
class IntegritySummary:
    warning_count: int = 0
    total_defocus_count: int = 0
    terminated: bool = False
    total_time_away_seconds: int = 0
    blur_events: List[IntegrityEvent] = field(default_factory=list)
    terminated_at: object = None


def _coerce(events: Iterable) -> List[IntegrityEvent]:
    coerced = []
    for index, event in enumerate(events or []):
        if isinstance(event, IntegrityEvent):
            coerced.append(event)
            continue
        try:
            coerced.append(IntegrityEvent.from_dict(event))
        except (KeyError, TypeError, ValueError) as e:
            raise IntegrityLogError(f"Event {index} is malformed: {e}") from e
    return coerced


def validate_log(events: Iterable) -> List[IntegrityEvent]:
    """Check ordering and pairing rules. Returns the parsed events."""
    events = _coerce(events)
    away = False
    expected_warning = 1
    previous = None

    for index, event in enumerate(events):
        if previous is not None:
            if previous.kind == EventKind.TERMINATE:
                raise IntegrityLogError(f"Event {index} follows termination")
            try:
                out_of_order = event.timestamp < previous.timestamp
            except TypeError as e:
                raise IntegrityLogError(f"Event {index} mixes naive and aware timestamps") from e
            if out_of_order:
                raise IntegrityLogError(f"Event {index} is older than the event before it")

        if event.kind == EventKind.BLUR:
            if away:
                raise IntegrityLogError(f"Event {index}: blur while already unfocused")
            if event.warning_number != expected_warning:
                raise IntegrityLogError(
                    f"Event {index}: expected warning {expected_warning}, got {event.warning_number}"
                )
            expected_warning += 1
            away = True
        elif event.kind == EventKind.FOCUS:
            if not away:
                raise IntegrityLogError(f"Event {index}: focus without a preceding blur")
            if event.time_away_seconds is not None and event.time_away_seconds < 0:
                raise IntegrityLogError(f"Event {index}: negative time away")
            away = False
        elif not away:
            raise IntegrityLogError(f"Event {index}: termination while focused")

        previous = event

    return events


def summarize(events: Iterable) -> IntegritySummary:
    events = validate_log(events)
    blurs = [e for e in events if e.kind == EventKind.BLUR]
    terminations = [e for e in events if e.kind == EventKind.TERMINATE]
    return IntegritySummary(
        warning_count=max((e.warning_number for e in blurs), default=0),
        total_defocus_count=len(blurs),
        terminated=bool(terminations),
        total_time_away_seconds=sum(
            e.time_away_seconds or 0 for e in events if e.kind == EventKind.FOCUS
        ),
        blur_events=blurs,
        terminated_at=terminations[0].timestamp if terminations else None,
    )

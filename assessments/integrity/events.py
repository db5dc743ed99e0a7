from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterator, Optional, Tuple

from django.utils.dateparse import parse_datetime


class EventKind(str, Enum):
    FOCUS = 'focus'
    BLUR = 'blur'
    TERMINATE = 'terminate'


@dataclass(frozen=True)
class IntegrityEvent:
    kind: EventKind
    timestamp: datetime
    warning_number: Optional[int] = None
    time_away_seconds: Optional[int] = None
    reason: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'kind', EventKind(self.kind))

    def to_dict(self) -> dict:
        data = {'kind': self.kind.value, 'timestamp': self.timestamp.isoformat()}
        if self.warning_number is not None:
            data['warning_number'] = self.warning_number
        if self.time_away_seconds is not None:
            data['time_away_seconds'] = self.time_away_seconds
        if self.reason is not None:
            data['reason'] = self.reason
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'IntegrityEvent':
        timestamp = data['timestamp']
        if isinstance(timestamp, str):
            parsed = parse_datetime(timestamp)
            if parsed is None:
                raise ValueError(f"Invalid event timestamp: {timestamp!r}")
            timestamp = parsed
        return cls(
            kind=data['kind'],
            timestamp=timestamp,
            warning_number=data.get('warning_number'),
            time_away_seconds=data.get('time_away_seconds'),
            reason=data.get('reason'),
        )


class IntegrityEventLog:
    """Append-only, ordered record of integrity events."""

    def __init__(self, events=()):
        self._events = []
        for event in events:
            self.append(event)

    def append(self, event: IntegrityEvent) -> IntegrityEvent:
        if not isinstance(event, IntegrityEvent):
            event = IntegrityEvent.from_dict(event)
        self._events.append(event)
        return event

    @property
    def events(self) -> Tuple[IntegrityEvent, ...]:
        return tuple(self._events)

    def count(self, kind) -> int:
        kind = EventKind(kind)
        return sum(1 for e in self._events if e.kind == kind)

    def to_list(self) -> list:
        return [e.to_dict() for e in self._events]

    def __iter__(self) -> Iterator[IntegrityEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index):
        return self.events[index]

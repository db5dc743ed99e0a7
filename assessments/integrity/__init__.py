from .clock import Clock, ManualClock, SystemClock, TimerHandle
from .events import EventKind, IntegrityEvent, IntegrityEventLog
from .monitor import DefocusMonitor, DefocusState, MonitorStatus, Signal, Transition, transition
from .summary import IntegrityLogError, IntegritySummary, summarize, validate_log

__all__ = [
    'Clock', 'ManualClock', 'SystemClock', 'TimerHandle',
    'EventKind', 'IntegrityEvent', 'IntegrityEventLog',
    'DefocusMonitor', 'DefocusState', 'MonitorStatus', 'Signal', 'Transition', 'transition',
    'IntegrityLogError', 'IntegritySummary', 'summarize', 'validate_log',
]

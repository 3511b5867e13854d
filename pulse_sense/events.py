"""
Session events and a small synchronous dispatcher.

Listeners subscribe to an event class and are called on the processing
thread, in subscription order, right after the tick that produced the
event.  A failing listener is logged and skipped; it never aborts the
tick or the remaining listeners.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, DefaultDict, Deque, List, Optional, Tuple, Type, TypeVar

from .types import CalibrationParams, VitalSignType

logger = logging.getLogger(__name__)

HISTORY_SIZE = 100


@dataclass(frozen=True)
class Event:
    timestamp: float


@dataclass(frozen=True)
class BeatEvent(Event):
    """An accepted cardiac peak."""

    heart_rate: int
    confidence: float
    rr_intervals: Tuple[float, ...] = ()


@dataclass(frozen=True)
class ArrhythmiaEvent(Event):
    """The rhythm just entered the irregular state."""

    heart_rate: int
    arrhythmia_count: int


@dataclass(frozen=True)
class PresenceChanged(Event):
    detected: bool
    confidence: float


@dataclass(frozen=True)
class CalibrationUpdated(Event):
    params: CalibrationParams


@dataclass(frozen=True)
class ChannelFault(Event):
    channel: VitalSignType
    held_value: float
    error: Optional[str] = None


E = TypeVar("E", bound=Event)
Listener = Callable[[Event], None]


class EventDispatcher:
    """
    Publish/subscribe hub for :class:`Event` subclasses.

    Subscribing to :class:`Event` itself receives every event.  The last
    ``history_size`` published events are kept for diagnostics.
    """

    def __init__(self, history_size: int = HISTORY_SIZE) -> None:
        self._listeners: DefaultDict[Type[Event], List[Listener]] = defaultdict(list)
        self._history: Deque[Event] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        """Register *callback* and return a function that removes it again."""
        with self._lock:
            self._listeners[event_type].append(callback)  # type: ignore[arg-type]

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(event_type, [])
                if callback in listeners:
                    listeners.remove(callback)  # type: ignore[arg-type]

        return unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            self._history.append(event)
            targets = [
                listener
                for event_type, listeners in self._listeners.items()
                if isinstance(event, event_type)
                for listener in listeners
            ]
        for listener in targets:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s", listener, type(event).__name__)

    def history(self, event_type: Optional[Type[Event]] = None) -> List[Event]:
        with self._lock:
            events = list(self._history)
        if event_type is None:
            return events
        return [e for e in events if isinstance(e, event_type)]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

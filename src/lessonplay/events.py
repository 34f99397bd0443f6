"""Session event emitter.

Every accepted mutation of a session produces one or more events, delivered
to listeners synchronously and in emission order. A listener that raises is
logged and skipped; it never breaks the session or the other listeners.

A small replay buffer lets a listener that subscribes late (for example a
host that attaches after resume) catch up on recent events.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from lessonplay.parameters import EVENT_REPLAY_SIZE

logger = logging.getLogger(__name__)


class Events:
    """Event type names."""

    # Scene lifecycle
    SCENE_ENTERED = "scene_entered"
    SCENE_COMPLETED = "scene_completed"
    SCENE_SKIPPED = "scene_skipped"
    CHOICE_MADE = "choice_made"

    # Scoring
    QUESTION_SCORED = "question_scored"
    SCENE_SCORED = "scene_scored"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"

    # Session lifecycle
    SESSION_COMPLETED = "session_completed"
    SESSION_ABANDONED = "session_abandoned"
    PERSISTENCE_FAILED = "persistence_failed"

    # Hub
    WORLD_STARTED = "world_started"
    WORLD_COMPLETED = "world_completed"


@dataclass(frozen=True)
class Event:
    """A single engine event.

    Attributes:
        type: One of the Events names
        sequence: Per-session monotonic counter (0 for hub events)
        timestamp: When the event was produced (engine clock)
        session_id: Session or hub session the event belongs to
        data: Event payload: scene/world ids and score data
    """

    type: str
    sequence: int
    timestamp: datetime
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def scene_id(self) -> str | None:
        return self.data.get("sceneId")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "sessionId": self.session_id,
            "data": dict(self.data),
        }


Listener = Callable[[Event], None]


class EventEmitter:
    """Synchronous pub/sub with a replay buffer for late subscribers."""

    def __init__(self, replay_size: int = EVENT_REPLAY_SIZE):
        self._listeners: dict[int, tuple[Listener, frozenset[str] | None]] = {}
        self._replay_buffer: deque[Event] = deque(maxlen=replay_size)
        self._listener_counter = 0

    def subscribe(
        self,
        listener: Listener,
        event_types: list[str] | None = None,
        replay: bool = False,
    ) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Called with each Event
            event_types: Only deliver these types (all types if None)
            replay: If True, deliver buffered recent events immediately

        Returns:
            A callable that unsubscribes the listener.
        """
        self._listener_counter += 1
        listener_id = self._listener_counter
        wanted = frozenset(event_types) if event_types is not None else None
        self._listeners[listener_id] = (listener, wanted)

        if replay:
            for event in list(self._replay_buffer):
                if wanted is None or event.type in wanted:
                    self._deliver(listener_id, listener, event)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def publish(self, event: Event) -> None:
        """Deliver an event to every interested listener, in subscription order."""
        self._replay_buffer.append(event)
        for listener_id, (listener, wanted) in list(self._listeners.items()):
            if wanted is None or event.type in wanted:
                self._deliver(listener_id, listener, event)
        logger.debug(f"Published {event.type} #{event.sequence} for {event.session_id}")

    def recent_events(self) -> list[Event]:
        return list(self._replay_buffer)

    def listener_count(self) -> int:
        return len(self._listeners)

    def clear(self) -> None:
        self._listeners.clear()

    def _deliver(self, listener_id: int, listener: Listener, event: Event) -> None:
        try:
            listener(event)
        except Exception as e:
            logger.error(f"Listener {listener_id} failed on {event.type}: {e}")

"""
Streak event service.
In-process publish/subscribe for streak changes.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel

from habit_engine.schemas import SessionRecord
from habit_engine.services.phase_service import PhaseService

logger = logging.getLogger("habit_engine.events")


class StreakEvent(str, Enum):
    STREAK_UPDATED = "streak-updated"
    STREAK_CALCULATED = "streak-calculated"
    HISTORY_UPDATED = "history-updated"


class StreakUpdatedEvent(BaseModel):
    kind: Literal[StreakEvent.STREAK_UPDATED] = StreakEvent.STREAK_UPDATED
    user_id: str
    previous_streak: int
    new_streak: int
    new_session: Optional[SessionRecord] = None
    celebrate: bool = False
    timestamp: datetime


class StreakCalculatedEvent(BaseModel):
    kind: Literal[StreakEvent.STREAK_CALCULATED] = StreakEvent.STREAK_CALCULATED
    user_id: str
    new_streak: int
    timestamp: datetime


class HistoryUpdatedEvent(BaseModel):
    kind: Literal[StreakEvent.HISTORY_UPDATED] = StreakEvent.HISTORY_UPDATED
    user_id: str
    period_count: int
    longest_streak: int
    timestamp: datetime


StreakEventPayload = Union[StreakUpdatedEvent, StreakCalculatedEvent, HistoryUpdatedEvent]
Listener = Callable[[StreakEventPayload], None]


class EventNotifier:
    """Publish/subscribe registry owned by a single engine instance"""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._listeners: Dict[StreakEvent, List[Listener]] = {event: [] for event in StreakEvent}
        self._clock = clock

    def subscribe(self, event: StreakEvent, callback: Listener) -> Callable[[], None]:
        """
        Subscribe to a streak event.

        Returns:
            Function that removes the subscription (safe to call twice)
        """
        event = StreakEvent(event)
        self._listeners[event].append(callback)

        def unsubscribe() -> None:
            callbacks = self._listeners[event]
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def emit(self, payload: StreakEventPayload) -> None:
        """
        Deliver a payload to every subscriber of its event.

        A failing subscriber is logged and skipped; it never reaches the
        caller or the remaining subscribers.
        """
        # Copy so subscribers may unsubscribe while being notified
        for callback in list(self._listeners[payload.kind]):
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"Error in streak event callback for {payload.kind.value}: {e}", exc_info=True)

    def emit_streak_update(
        self,
        user_id: str,
        previous_streak: int,
        new_streak: int,
        new_session: Optional[SessionRecord] = None
    ) -> StreakUpdatedEvent:
        payload = StreakUpdatedEvent(
            user_id=user_id,
            previous_streak=previous_streak,
            new_streak=new_streak,
            new_session=new_session,
            celebrate=self.should_celebrate(previous_streak, new_streak),
            timestamp=self._clock()
        )
        self.emit(payload)
        return payload

    def emit_streak_calculated(self, user_id: str, new_streak: int) -> StreakCalculatedEvent:
        payload = StreakCalculatedEvent(user_id=user_id, new_streak=new_streak, timestamp=self._clock())
        self.emit(payload)
        return payload

    def emit_history_updated(self, user_id: str, period_count: int, longest_streak: int) -> HistoryUpdatedEvent:
        payload = HistoryUpdatedEvent(
            user_id=user_id,
            period_count=period_count,
            longest_streak=longest_streak,
            timestamp=self._clock()
        )
        self.emit(payload)
        return payload

    @staticmethod
    def should_celebrate(previous_streak: int, current_streak: int) -> bool:
        return PhaseService.should_celebrate(previous_streak, current_streak)

    def clear(self) -> None:
        """Remove all subscribers"""
        for callbacks in self._listeners.values():
            callbacks.clear()

    def listener_count(self, event: StreakEvent) -> int:
        return len(self._listeners[StreakEvent(event)])

    def has_listeners(self, event: StreakEvent) -> bool:
        return self.listener_count(event) > 0

"""Typed publish/subscribe channel between the interpreter and its collaborators."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping

from storyloom.core.logger import get_logger

logger = get_logger(__name__)


class EventType(str, Enum):
    """Closed set of events the interpreter emits."""

    SCENE_ENTER = "scene:enter"
    SCENE_EXIT = "scene:exit"
    DIALOGUE_START = "dialogue:start"
    DIALOGUE_COMPLETE = "dialogue:complete"
    CHOICE_SHOW = "choice:show"
    CHOICE_SELECT = "choice:select"
    CHARACTER_ENTER = "character:enter"
    CHARACTER_EXIT = "character:exit"
    CHARACTER_EXPRESSION = "character:expression"
    BACKGROUND_CHANGE = "background:change"
    BGM_PLAY = "bgm:play"
    BGM_STOP = "bgm:stop"
    SFX_PLAY = "sfx:play"
    VOICE_PLAY = "voice:play"
    TRANSITION_START = "transition:start"
    ENDING_REACH = "ending:reach"
    PAUSE = "pause"
    RESUME = "resume"
    SAVE = "save"
    LOAD = "load"


@dataclass(frozen=True, slots=True)
class StoryEvent:
    """Ephemeral notification; never stored in runtime state."""

    type: EventType
    timestamp: float
    data: Mapping[str, object] = field(default_factory=dict)


EventListener = Callable[[StoryEvent], None]


@dataclass(frozen=True, slots=True)
class Subscription:
    """Token returned by ``EventBus.on``; pass it to ``unsubscribe``."""

    event_type: EventType
    listener: EventListener


class EventBus:
    """Listener registry keyed by event type.

    Listeners run synchronously in subscription order. A listener that raises
    is logged and skipped so the remaining listeners still receive the event.
    """

    def __init__(self) -> None:
        self._listeners: Dict[EventType, List[EventListener]] = {}

    def on(self, event_type: EventType | str, listener: EventListener) -> Subscription:
        resolved = EventType(event_type)
        listeners = self._listeners.setdefault(resolved, [])
        if listener not in listeners:
            listeners.append(listener)
        return Subscription(event_type=resolved, listener=listener)

    def off(self, event_type: EventType | str, listener: EventListener) -> bool:
        """Remove ``listener``; returns False if it was not subscribed."""
        listeners = self._listeners.get(EventType(event_type))
        if not listeners or listener not in listeners:
            return False
        listeners.remove(listener)
        return True

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self.off(subscription.event_type, subscription.listener)

    def listener_count(self, event_type: EventType | str) -> int:
        return len(self._listeners.get(EventType(event_type), []))

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, event_type: EventType, data: Mapping[str, object], timestamp: float) -> StoryEvent:
        event = StoryEvent(type=event_type, timestamp=timestamp, data=data)
        for listener in list(self._listeners.get(event_type, [])):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed while handling %s", listener, event_type.value)
        return event

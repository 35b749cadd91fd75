"""Service layer exports."""

from .errors import SaveLoadError
from .event_bus import EventBus, EventType, StoryEvent, Subscription
from .save_service import SaveService
from .story_graph_validator import Issue, ensure_valid_story_graph, format_issue, validate_story_graph
from .story_interpreter import StoryInterpreter
from .typewriter import Typewriter

__all__ = [
    "SaveLoadError",
    "EventBus",
    "EventType",
    "StoryEvent",
    "Subscription",
    "SaveService",
    "Issue",
    "ensure_valid_story_graph",
    "format_issue",
    "validate_story_graph",
    "StoryInterpreter",
    "Typewriter",
]

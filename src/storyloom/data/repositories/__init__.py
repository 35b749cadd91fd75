"""Repository exports."""

from .story_repo import StoryGraphRepository

__all__ = ["StoryGraphRepository"]

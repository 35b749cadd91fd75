"""Narrative graph interpreter: branching scenes, dialogue and choices."""

__version__ = "0.3.0"

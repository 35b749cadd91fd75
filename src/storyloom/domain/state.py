"""Mutable playback state owned by the interpreter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from storyloom.core.types import VariableStore


@dataclass
class CharacterState:
    """On-screen state of a visible character."""

    character_id: str
    position: str = "center"
    expression: str = "neutral"
    scale: float = 1.0
    alpha: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    highlighted: bool = False


@dataclass
class HistoryEntry:
    """Backlog record of a displayed line."""

    node_id: str
    dialogue_id: str
    speaker_id: str | None
    text: str
    timestamp: float


@dataclass
class ChoiceRecord:
    """A choice the player made."""

    node_id: str
    choice_id: str
    timestamp: float


@dataclass
class RuntimeState:
    """Where the player is. Plain data only, so it can be snapshotted at any time."""

    current_node_id: str | None = None
    dialogue_index: int = 0
    waiting_for_input: bool = False
    showing_choices: bool = False
    variables: VariableStore = field(default_factory=dict)
    visible_characters: List[CharacterState] = field(default_factory=list)
    current_background: str | None = None
    current_bgm: str | None = None
    history: List[HistoryEntry] = field(default_factory=list)
    choices_made: List[ChoiceRecord] = field(default_factory=list)
    playtime: int = 0
    is_paused: bool = False
    auto_play: bool = False
    skip_mode: bool = False
    text_speed: float = 0.5
    halted: bool = False

    def find_character(self, character_id: str) -> CharacterState | None:
        for character in self.visible_characters:
            if character.character_id == character_id:
                return character
        return None

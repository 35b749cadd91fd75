"""Story graph definition structures used by the interpreter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Union

EdgeType = Literal["flow", "choice"]
CharacterPosition = Literal["far-left", "left", "center", "right", "far-right"]

DEFAULT_ENDING_TYPE = "neutral"


@dataclass(frozen=True, slots=True)
class DialogueDef:
    """Single authored line inside a scene."""

    id: str
    text: str
    speaker_id: str | None = None
    emotion: str | None = None
    voice_asset_id: int | str | None = None

    @property
    def is_narration(self) -> bool:
        return self.speaker_id is None


@dataclass(frozen=True, slots=True)
class ChoiceDef:
    """Represents a selectable choice at the end of a scene."""

    id: str
    text: str
    condition: str | None = None
    target_node_id: str | None = None


@dataclass(frozen=True, slots=True)
class SceneCharacterDef:
    """Character placement authored on a scene."""

    character_id: str
    position: CharacterPosition = "center"
    expression: str = "neutral"


@dataclass(frozen=True, slots=True)
class SceneEffectDef:
    """Opaque scene effect, forwarded to collaborators verbatim."""

    type: str
    params: Dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SceneNodeDef:
    """Scene node: the only node kind with player-visible content."""

    id: str
    name: str = ""
    dialogues: List[DialogueDef] = field(default_factory=list)
    choices: List[ChoiceDef] = field(default_factory=list)
    characters: List[SceneCharacterDef] = field(default_factory=list)
    location_id: str | None = None
    effects: List[SceneEffectDef] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class StartNodeDef:
    """Entry point marker. Never displayed."""

    id: str
    name: str = ""


@dataclass(frozen=True, slots=True)
class EndNodeDef:
    """Terminal marker with an optional ending type."""

    id: str
    name: str = ""
    ending_type: str | None = None


StoryNodeDef = Union[SceneNodeDef, StartNodeDef, EndNodeDef]


@dataclass(frozen=True, slots=True)
class StoryEdgeDef:
    """Directed connection between two nodes."""

    id: str
    from_node_id: str
    to_node_id: str
    edge_type: EdgeType = "flow"
    choice_id: str | None = None
    condition: str | None = None
    priority: float | None = None


@dataclass(frozen=True, slots=True)
class StoryMetadataDef:
    """Descriptive metadata attached to a story document."""

    title: str = ""
    description: str = ""
    created_at: str = ""
    updated_at: str = ""

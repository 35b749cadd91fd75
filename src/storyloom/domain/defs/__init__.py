"""Domain definition exports."""

from .story_def import (
    DEFAULT_ENDING_TYPE,
    ChoiceDef,
    DialogueDef,
    EndNodeDef,
    SceneCharacterDef,
    SceneEffectDef,
    SceneNodeDef,
    StartNodeDef,
    StoryEdgeDef,
    StoryMetadataDef,
    StoryNodeDef,
)

__all__ = [
    "DEFAULT_ENDING_TYPE",
    "ChoiceDef",
    "DialogueDef",
    "EndNodeDef",
    "SceneCharacterDef",
    "SceneEffectDef",
    "SceneNodeDef",
    "StartNodeDef",
    "StoryEdgeDef",
    "StoryMetadataDef",
    "StoryNodeDef",
]

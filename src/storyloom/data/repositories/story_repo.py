"""Repository for story graph documents."""
from __future__ import annotations

from typing import Dict, List

from storyloom.data.errors import DataValidationError
from storyloom.data.repositories.base import RepositoryBase
from storyloom.domain.defs import (
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
from storyloom.domain.story_graph import StoryGraph

_EDGE_TYPES = ("flow", "choice")


class StoryGraphRepository(RepositoryBase[StoryGraph]):
    """Loads a story graph document and checks its structure."""

    @property
    def story_id(self) -> str:
        return self._path.stem if self._path is not None else "default"

    def _build(self, raw: dict[str, object]) -> StoryGraph:
        version = raw.get("version", 1)
        if isinstance(version, bool) or not isinstance(version, int):
            raise DataValidationError("story version must be an integer.")
        metadata = self._parse_metadata(raw.get("metadata"))
        nodes = self._parse_nodes(raw.get("nodes"))
        edges = self._parse_edges(raw.get("edges"))
        return StoryGraph(nodes, edges, metadata=metadata, version=version)

    def _parse_metadata(self, raw_metadata: object) -> StoryMetadataDef:
        if raw_metadata is None:
            return StoryMetadataDef()
        data = self._require_mapping(raw_metadata, "story metadata")
        return StoryMetadataDef(
            title=self._require_optional_str(data.get("title"), "story metadata title") or "",
            description=self._require_optional_str(data.get("description"), "story metadata description")
            or "",
            created_at=self._require_optional_str(data.get("createdAt"), "story metadata createdAt") or "",
            updated_at=self._require_optional_str(data.get("updatedAt"), "story metadata updatedAt") or "",
        )

    def _keyed_entries(self, raw_entries: object, label: str) -> List[tuple[str, dict[str, object]]]:
        """Accept either ``{id: payload}`` or ``[{"id": ...}, ...]`` and reject duplicate ids."""
        entries: List[tuple[str, dict[str, object]]] = []
        if isinstance(raw_entries, dict):
            for entry_id, payload in raw_entries.items():
                data = self._require_mapping(payload, f"{label} '{entry_id}'")
                inner_id = data.get("id", entry_id)
                if inner_id != entry_id:
                    raise DataValidationError(f"{label} '{entry_id}' declares mismatched id '{inner_id}'.")
                entries.append((entry_id, data))
        elif isinstance(raw_entries, list):
            seen: set[str] = set()
            for index, payload in enumerate(raw_entries):
                data = self._require_mapping(payload, f"{label}s[{index}]")
                entry_id = self._require_str(data.get("id"), f"{label}s[{index}] id")
                if entry_id in seen:
                    raise DataValidationError(f"Duplicate {label} id '{entry_id}'.")
                seen.add(entry_id)
                entries.append((entry_id, data))
        elif raw_entries is not None:
            raise DataValidationError(f"story {label}s must be an object or a list.")
        return entries

    def _parse_nodes(self, raw_nodes: object) -> Dict[str, StoryNodeDef]:
        nodes: Dict[str, StoryNodeDef] = {}
        for node_id, data in self._keyed_entries(raw_nodes, "node"):
            context = f"story node '{node_id}'"
            node_type = self._require_str(data.get("nodeType"), f"{context} nodeType")
            name = self._require_optional_str(data.get("name"), f"{context} name") or ""
            if node_type == "scene":
                nodes[node_id] = self._parse_scene(node_id, name, data)
            elif node_type == "start":
                nodes[node_id] = StartNodeDef(id=node_id, name=name)
            elif node_type == "end":
                ending_type = self._require_optional_str(data.get("endingType"), f"{context} endingType")
                nodes[node_id] = EndNodeDef(id=node_id, name=name, ending_type=ending_type)
            else:
                raise DataValidationError(f"{context} has unknown nodeType '{node_type}'.")
        return nodes

    def _parse_scene(self, node_id: str, name: str, data: dict[str, object]) -> SceneNodeDef:
        context = f"story node '{node_id}'"
        return SceneNodeDef(
            id=node_id,
            name=name,
            dialogues=self._parse_dialogues(data.get("dialogues"), context),
            choices=self._parse_choices(data.get("choices"), context),
            characters=self._parse_characters(data.get("characters"), context),
            location_id=self._require_optional_str(data.get("locationId"), f"{context} locationId"),
            effects=self._parse_effects(data.get("effects"), context),
        )

    def _parse_dialogues(self, raw_dialogues: object, context: str) -> List[DialogueDef]:
        dialogues: List[DialogueDef] = []
        for index, entry in enumerate(self._require_list(raw_dialogues, f"{context} dialogues")):
            line_ctx = f"{context} dialogues[{index}]"
            line = self._require_mapping(entry, line_ctx)
            voice = line.get("voiceAssetId")
            if voice is not None and (isinstance(voice, bool) or not isinstance(voice, (int, str))):
                raise DataValidationError(f"{line_ctx} voiceAssetId must be a string or integer.")
            dialogues.append(
                DialogueDef(
                    id=self._require_str(line.get("id"), f"{line_ctx} id"),
                    text=self._require_str(line.get("text"), f"{line_ctx} text"),
                    speaker_id=self._require_optional_str(line.get("speakerId"), f"{line_ctx} speakerId"),
                    emotion=self._require_optional_str(line.get("emotion"), f"{line_ctx} emotion"),
                    voice_asset_id=voice,
                )
            )
        return dialogues

    def _parse_choices(self, raw_choices: object, context: str) -> List[ChoiceDef]:
        choices: List[ChoiceDef] = []
        for index, entry in enumerate(self._require_list(raw_choices, f"{context} choices")):
            choice_ctx = f"{context} choices[{index}]"
            choice = self._require_mapping(entry, choice_ctx)
            choices.append(
                ChoiceDef(
                    id=self._require_str(choice.get("id"), f"{choice_ctx} id"),
                    text=self._require_str(choice.get("text"), f"{choice_ctx} text"),
                    condition=self._require_optional_str(choice.get("condition"), f"{choice_ctx} condition"),
                    target_node_id=self._require_optional_str(
                        choice.get("targetNodeId"), f"{choice_ctx} targetNodeId"
                    ),
                )
            )
        return choices

    def _parse_characters(self, raw_characters: object, context: str) -> List[SceneCharacterDef]:
        characters: List[SceneCharacterDef] = []
        for index, entry in enumerate(self._require_list(raw_characters, f"{context} characters")):
            char_ctx = f"{context} characters[{index}]"
            character = self._require_mapping(entry, char_ctx)
            characters.append(
                SceneCharacterDef(
                    character_id=self._require_str(character.get("characterId"), f"{char_ctx} characterId"),
                    position=self._require_optional_str(character.get("position"), f"{char_ctx} position")
                    or "center",
                    expression=self._require_optional_str(
                        character.get("expression"), f"{char_ctx} expression"
                    )
                    or "neutral",
                )
            )
        return characters

    def _parse_effects(self, raw_effects: object, context: str) -> List[SceneEffectDef]:
        effects: List[SceneEffectDef] = []
        for index, entry in enumerate(self._require_list(raw_effects, f"{context} effects")):
            effect_ctx = f"{context} effects[{index}]"
            effect = self._require_mapping(entry, effect_ctx)
            effect_type = self._require_str(effect.get("type"), f"{effect_ctx} type")
            params = effect.get("params")
            if params is None:
                params = {key: value for key, value in effect.items() if key != "type"}
            effects.append(
                SceneEffectDef(type=effect_type, params=dict(self._require_mapping(params, f"{effect_ctx} params")))
            )
        return effects

    def _parse_edges(self, raw_edges: object) -> Dict[str, StoryEdgeDef]:
        edges: Dict[str, StoryEdgeDef] = {}
        for edge_id, data in self._keyed_entries(raw_edges, "edge"):
            context = f"story edge '{edge_id}'"
            edge_type = data.get("edgeType", "flow")
            if edge_type not in _EDGE_TYPES:
                raise DataValidationError(f"{context} edgeType must be one of {', '.join(_EDGE_TYPES)}.")
            edges[edge_id] = StoryEdgeDef(
                id=edge_id,
                from_node_id=self._require_str(data.get("from"), f"{context} from"),
                to_node_id=self._require_str(data.get("to"), f"{context} to"),
                edge_type=edge_type,
                choice_id=self._require_optional_str(data.get("choiceId"), f"{context} choiceId"),
                condition=self._require_optional_str(data.get("condition"), f"{context} condition"),
                priority=self._require_optional_number(data.get("priority"), f"{context} priority"),
            )
        return edges

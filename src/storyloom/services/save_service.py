"""Serialization helpers for runtime state snapshots."""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from storyloom.domain.defs import SceneNodeDef
from storyloom.domain.state import CharacterState, ChoiceRecord, HistoryEntry, RuntimeState
from storyloom.domain.story_graph import StoryGraph
from storyloom.services.errors import SaveLoadError

SavePayload = Dict[str, Any]

_SCALAR_TYPES = (str, int, float, bool)


class SaveService:
    """Converts runtime state to/from a validated, versioned snapshot."""

    SAVE_VERSION = 1

    def __init__(self, graph: StoryGraph, story_id: str) -> None:
        self._graph = graph
        self._story_id = story_id

    def serialize(self, state: RuntimeState) -> SavePayload:
        """Return a plain, JSON-compatible snapshot of ``state``."""
        return {
            "save_version": self.SAVE_VERSION,
            "story_id": self._story_id,
            "state": asdict(state),
        }

    def build_save_data(self, snapshot: SavePayload, slot_id: int, label: str | None = None) -> SavePayload:
        """Wrap a snapshot with slot metadata for persistence collaborators."""
        state_payload = snapshot.get("state", {})
        saved_at = datetime.now(timezone.utc).isoformat()
        return {
            "slot_id": slot_id,
            "label": label or f"Save {slot_id}",
            "created_at": saved_at,
            "updated_at": saved_at,
            "metadata": {
                "label": label or f"Save {slot_id}",
                "story_id": self._story_id,
                "current_node_id": state_payload.get("current_node_id"),
                "playtime": state_payload.get("playtime", 0),
                "saved_at": saved_at,
            },
            "snapshot": snapshot,
        }

    def deserialize(self, payload: Mapping[str, Any]) -> RuntimeState:
        """Rehydrate a RuntimeState from a snapshot, validating every field."""
        if not isinstance(payload, Mapping):
            raise SaveLoadError("Save data must be a JSON object.")
        if "snapshot" in payload and "state" not in payload:
            payload = payload["snapshot"]
            if not isinstance(payload, Mapping):
                raise SaveLoadError("Save slot is missing its snapshot.")
        if payload.get("save_version") != self.SAVE_VERSION:
            raise SaveLoadError(f"Unsupported save version: {payload.get('save_version')!r}.")
        if payload.get("story_id") != self._story_id:
            raise SaveLoadError(
                f"Save belongs to story {payload.get('story_id')!r}, not {self._story_id!r}."
            )
        state_payload = payload.get("state")
        if not isinstance(state_payload, Mapping):
            raise SaveLoadError("Save data is missing the state section.")

        state = RuntimeState(
            current_node_id=self._coerce_optional_str(state_payload.get("current_node_id"), "state.current_node_id"),
            dialogue_index=self._require_non_negative_int(state_payload.get("dialogue_index"), "state.dialogue_index"),
            waiting_for_input=self._require_bool(state_payload.get("waiting_for_input"), "state.waiting_for_input"),
            showing_choices=self._require_bool(state_payload.get("showing_choices"), "state.showing_choices"),
            variables=self._coerce_variables(state_payload.get("variables")),
            visible_characters=self._coerce_characters(state_payload.get("visible_characters")),
            current_background=self._coerce_optional_str(
                state_payload.get("current_background"), "state.current_background"
            ),
            current_bgm=self._coerce_optional_str(state_payload.get("current_bgm"), "state.current_bgm"),
            history=self._coerce_history(state_payload.get("history")),
            choices_made=self._coerce_choices_made(state_payload.get("choices_made")),
            playtime=self._require_non_negative_int(state_payload.get("playtime"), "state.playtime"),
            is_paused=self._require_bool(state_payload.get("is_paused"), "state.is_paused"),
            auto_play=self._require_bool(state_payload.get("auto_play"), "state.auto_play"),
            skip_mode=self._require_bool(state_payload.get("skip_mode"), "state.skip_mode"),
            text_speed=self._require_number(state_payload.get("text_speed"), "state.text_speed"),
            halted=self._require_bool(state_payload.get("halted", False), "state.halted"),
        )
        self._validate_position(state)
        return state

    def _validate_position(self, state: RuntimeState) -> None:
        if not 0.0 <= state.text_speed <= 1.0:
            raise SaveLoadError("state.text_speed must be between 0 and 1.")
        if state.current_node_id is None:
            return
        node = self._graph.find_node(state.current_node_id)
        if node is None:
            raise SaveLoadError(f"Save references unknown story node '{state.current_node_id}'.")
        if state.dialogue_index == 0:
            return
        if not isinstance(node, SceneNodeDef) or state.dialogue_index >= len(node.dialogues):
            raise SaveLoadError(
                f"Dialogue index {state.dialogue_index} is out of range for node '{node.id}'."
            )

    def _coerce_variables(self, raw: object) -> Dict[str, Any]:
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise SaveLoadError("state.variables must be an object.")
        variables: Dict[str, Any] = {}
        for name, value in raw.items():
            if not isinstance(name, str):
                raise SaveLoadError("state.variables keys must be strings.")
            if value is not None and not isinstance(value, _SCALAR_TYPES):
                raise SaveLoadError(f"state.variables['{name}'] must be a scalar value.")
            variables[name] = value
        return variables

    def _coerce_characters(self, raw: object) -> List[CharacterState]:
        characters: List[CharacterState] = []
        for index, entry in enumerate(self._require_list(raw, "state.visible_characters")):
            context = f"state.visible_characters[{index}]"
            if not isinstance(entry, Mapping):
                raise SaveLoadError(f"{context} must be an object.")
            characters.append(
                CharacterState(
                    character_id=self._require_str(entry.get("character_id"), f"{context}.character_id"),
                    position=self._require_str(entry.get("position"), f"{context}.position"),
                    expression=self._require_str(entry.get("expression"), f"{context}.expression"),
                    scale=self._require_number(entry.get("scale"), f"{context}.scale"),
                    alpha=self._require_number(entry.get("alpha"), f"{context}.alpha"),
                    offset_x=self._require_number(entry.get("offset_x"), f"{context}.offset_x"),
                    offset_y=self._require_number(entry.get("offset_y"), f"{context}.offset_y"),
                    highlighted=self._require_bool(entry.get("highlighted"), f"{context}.highlighted"),
                )
            )
        return characters

    def _coerce_history(self, raw: object) -> List[HistoryEntry]:
        history: List[HistoryEntry] = []
        for index, entry in enumerate(self._require_list(raw, "state.history")):
            context = f"state.history[{index}]"
            if not isinstance(entry, Mapping):
                raise SaveLoadError(f"{context} must be an object.")
            history.append(
                HistoryEntry(
                    node_id=self._require_str(entry.get("node_id"), f"{context}.node_id"),
                    dialogue_id=self._require_str(entry.get("dialogue_id"), f"{context}.dialogue_id"),
                    speaker_id=self._coerce_optional_str(entry.get("speaker_id"), f"{context}.speaker_id"),
                    text=self._require_str(entry.get("text"), f"{context}.text"),
                    timestamp=self._require_number(entry.get("timestamp"), f"{context}.timestamp"),
                )
            )
        return history

    def _coerce_choices_made(self, raw: object) -> List[ChoiceRecord]:
        records: List[ChoiceRecord] = []
        for index, entry in enumerate(self._require_list(raw, "state.choices_made")):
            context = f"state.choices_made[{index}]"
            if not isinstance(entry, Mapping):
                raise SaveLoadError(f"{context} must be an object.")
            records.append(
                ChoiceRecord(
                    node_id=self._require_str(entry.get("node_id"), f"{context}.node_id"),
                    choice_id=self._require_str(entry.get("choice_id"), f"{context}.choice_id"),
                    timestamp=self._require_number(entry.get("timestamp"), f"{context}.timestamp"),
                )
            )
        return records

    @staticmethod
    def _require_list(value: object, context: str) -> list:
        if value is None:
            return []
        if not isinstance(value, list):
            raise SaveLoadError(f"{context} must be a list.")
        return value

    @staticmethod
    def _require_str(value: object, context: str) -> str:
        if not isinstance(value, str):
            raise SaveLoadError(f"{context} must be a string.")
        return value

    @staticmethod
    def _coerce_optional_str(value: object, context: str) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise SaveLoadError(f"{context} must be a string or null.")
        return value

    @staticmethod
    def _require_bool(value: object, context: str) -> bool:
        if not isinstance(value, bool):
            raise SaveLoadError(f"{context} must be a boolean.")
        return value

    @staticmethod
    def _require_number(value: object, context: str) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise SaveLoadError(f"{context} must be a number.")
        return value

    @staticmethod
    def _require_non_negative_int(value: object, context: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise SaveLoadError(f"{context} must be a non-negative integer.")
        return value

"""File-system helpers for save slot storage."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from storyloom.presentation.cli import config


@dataclass(slots=True)
class SlotMetadata:
    """Summary of one save slot, read from the metadata written with the save."""

    slot: int
    exists: bool
    label: str | None = None
    current_node_id: str | None = None
    playtime: int = 0
    saved_at: str | None = None
    is_corrupt: bool = False

    @property
    def is_loadable(self) -> bool:
        return self.exists and not self.is_corrupt


class SaveSlotStore:
    """Save slots for one story, stored as ``<base_dir>/<story_id>/slot_<n>.json``.

    Payloads are the dicts built by ``StoryInterpreter.create_save_data``. A
    slot whose file cannot be parsed, lacks a snapshot, or was written for a
    different story is listed as corrupt rather than raising.
    """

    def __init__(self, story_id: str, base_dir: Path | str | None = None, slot_count: int = 5) -> None:
        root = Path(base_dir) if base_dir is not None else config.get_save_dir()
        self._story_id = story_id
        self._base_dir = root / story_id
        self._slot_count = slot_count

    @property
    def slot_count(self) -> int:
        return self._slot_count

    def list_slots(self) -> List[SlotMetadata]:
        return [self._describe(slot) for slot in range(1, self._slot_count + 1)]

    def most_recent(self) -> SlotMetadata | None:
        """Return the loadable slot saved last, or None when there is none."""
        candidates = [slot for slot in self.list_slots() if slot.is_loadable and slot.saved_at]
        if not candidates:
            return None
        return max(candidates, key=lambda slot: slot.saved_at or "")

    def slot_exists(self, slot: int) -> bool:
        self._validate_slot(slot)
        return self._slot_path(slot).exists()

    def read_slot(self, slot: int) -> Dict[str, Any]:
        self._validate_slot(slot)
        return json.loads(self._slot_path(slot).read_text(encoding="utf-8"))

    def write_slot(self, slot: int, payload: Dict[str, Any]) -> None:
        self._validate_slot(slot)
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._slot_path(slot).write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

    def delete_slot(self, slot: int) -> None:
        self._validate_slot(slot)
        self._slot_path(slot).unlink(missing_ok=True)

    def _describe(self, slot: int) -> SlotMetadata:
        path = self._slot_path(slot)
        if not path.exists():
            return SlotMetadata(slot=slot, exists=False)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return SlotMetadata(slot=slot, exists=True, is_corrupt=True)
        metadata = payload.get("metadata") if isinstance(payload, dict) else None
        if not isinstance(metadata, dict) or not isinstance(payload.get("snapshot"), dict):
            return SlotMetadata(slot=slot, exists=True, is_corrupt=True)
        if metadata.get("story_id") not in (None, self._story_id):
            return SlotMetadata(slot=slot, exists=True, is_corrupt=True)
        playtime = metadata.get("playtime")
        return SlotMetadata(
            slot=slot,
            exists=True,
            label=_optional_str(metadata.get("label")),
            current_node_id=_optional_str(metadata.get("current_node_id")),
            playtime=playtime if isinstance(playtime, int) and not isinstance(playtime, bool) else 0,
            saved_at=_optional_str(metadata.get("saved_at")),
        )

    def _slot_path(self, slot: int) -> Path:
        return self._base_dir / f"slot_{slot}.json"

    def _validate_slot(self, slot: int) -> None:
        if not 1 <= slot <= self._slot_count:
            raise ValueError(f"Slot index must be between 1 and {self._slot_count}.")


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None

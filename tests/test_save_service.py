from __future__ import annotations

import json

import pytest

from storyloom.domain.state import CharacterState, ChoiceRecord, HistoryEntry, RuntimeState
from storyloom.services.errors import SaveLoadError
from storyloom.services.save_service import SaveService
from tests.helpers.story_docs import build_graph, linear_story


def _service(story_id: str = "tale") -> SaveService:
    return SaveService(build_graph(linear_story()), story_id)


def _sample_state() -> RuntimeState:
    return RuntimeState(
        current_node_id="a",
        dialogue_index=1,
        waiting_for_input=True,
        variables={"gold": 5, "name": "Ada", "ratio": 0.5, "flag": False, "unset": None},
        visible_characters=[CharacterState(character_id="alice", position="left", highlighted=True)],
        current_background="harbor",
        history=[HistoryEntry(node_id="a", dialogue_id="a_line_0", speaker_id="alice", text="Hi.", timestamp=1.0)],
        choices_made=[ChoiceRecord(node_id="a", choice_id="c1", timestamp=2.0)],
        playtime=42,
        auto_play=True,
        text_speed=0.25,
    )


def test_save_round_trip_preserves_state() -> None:
    service = _service()
    state = _sample_state()

    payload = json.loads(json.dumps(service.serialize(state)))
    restored = service.deserialize(payload)

    assert payload["save_version"] == SaveService.SAVE_VERSION
    assert payload["story_id"] == "tale"
    assert restored == state
    assert restored is not state


def test_build_save_data_adds_slot_metadata() -> None:
    service = _service()
    snapshot = service.serialize(_sample_state())

    data = service.build_save_data(snapshot, 3, label="Before the storm")

    assert data["slot_id"] == 3
    assert data["label"] == "Before the storm"
    assert data["created_at"] == data["updated_at"]
    assert data["metadata"]["playtime"] == 42
    assert data["metadata"]["current_node_id"] == "a"
    assert service.deserialize(data) == _sample_state()


def test_load_rejects_other_story() -> None:
    payload = _service("other").serialize(_sample_state())

    with pytest.raises(SaveLoadError, match="other"):
        _service("tale").deserialize(payload)


def test_load_rejects_unknown_version() -> None:
    payload = _service().serialize(_sample_state())
    payload["save_version"] = 99

    with pytest.raises(SaveLoadError, match="Unsupported save version"):
        _service().deserialize(payload)


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("dialogue_index", -1),
        ("dialogue_index", 7),
        ("playtime", "long"),
        ("is_paused", "yes"),
        ("text_speed", 1.5),
        ("variables", {"bag": ["sword"]}),
        ("visible_characters", [{"character_id": "alice"}]),
        ("history", "nope"),
        ("current_node_id", "missing"),
    ],
)
def test_load_rejects_malformed_state(field: str, value: object) -> None:
    payload = _service().serialize(_sample_state())
    payload["state"][field] = value

    with pytest.raises(SaveLoadError):
        _service().deserialize(payload)


def test_load_rejects_non_object_payloads() -> None:
    with pytest.raises(SaveLoadError):
        _service().deserialize(["not", "a", "save"])  # type: ignore[arg-type]
    with pytest.raises(SaveLoadError):
        _service().deserialize({"save_version": 1, "story_id": "tale"})

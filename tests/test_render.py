"""Tests for CLI rendering utilities."""
import pytest

from storyloom.domain.state import HistoryEntry
from storyloom.presentation.cli.render import (
    debug_enabled,
    describe_event,
    format_line,
    render_backlog,
    render_slots,
    wrap_text,
)
from storyloom.presentation.cli.save_slots import SlotMetadata
from storyloom.services.event_bus import EventType, StoryEvent


def _event(event_type: EventType, **data: object) -> StoryEvent:
    return StoryEvent(type=event_type, timestamp=0.0, data=dict(data))


def test_wrap_text_short_text() -> None:
    assert wrap_text("Hello world", width=50) == ["Hello world"]


def test_wrap_text_long_text_indents_continuation() -> None:
    text = "This is a very long line that definitely needs to be wrapped because it exceeds the width"
    result = wrap_text(text, width=40)

    assert len(result) > 1
    for line in result:
        assert len(line) <= 40
    for line in result[1:]:
        assert line.startswith("  ")
    assert " ".join(line.strip() for line in result) == text


def test_format_line_labels_narration() -> None:
    assert format_line(None, "The wind picks up.") == ["Narrator: The wind picks up."]
    assert format_line("alice", "Hello.") == ["alice: Hello."]


def test_describe_stage_events() -> None:
    assert describe_event(_event(EventType.SCENE_ENTER, node_id="a", node_type="scene", name="Harbor")) == "~ Harbor ~"
    assert describe_event(_event(EventType.SCENE_ENTER, node_id="end", node_type="end", name=None)) is None
    assert (
        describe_event(_event(EventType.CHARACTER_ENTER, character={"character_id": "alice", "position": "left"}))
        == "(alice enters, left)"
    )
    assert describe_event(_event(EventType.CHARACTER_EXIT, character_id="bob")) == "(bob leaves)"
    assert (
        describe_event(_event(EventType.CHARACTER_EXPRESSION, character_id="alice", expression="happy"))
        == "(alice looks happy)"
    )
    assert describe_event(_event(EventType.BACKGROUND_CHANGE, location_id="harbor")) == "[Location: harbor]"
    assert describe_event(_event(EventType.BGM_PLAY, music_id="theme")) == "[Music: theme]"
    assert describe_event(_event(EventType.BGM_STOP, music_id="theme")) == "[Music stops]"
    assert describe_event(_event(EventType.ENDING_REACH, ending_type="good")) == "*** Ending reached: good ***"


def test_debug_events_only_shown_when_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    event = _event(EventType.SFX_PLAY, sound_id="door")

    monkeypatch.delenv("STORYLOOM_DEBUG", raising=False)
    assert not debug_enabled()
    assert describe_event(event) is None

    monkeypatch.setenv("STORYLOOM_DEBUG", "1")
    assert debug_enabled()
    assert describe_event(event) == "[debug] sfx:play {'sound_id': 'door'}"


def test_render_backlog_shows_latest_entries(capsys: pytest.CaptureFixture[str]) -> None:
    history = [
        HistoryEntry(node_id="a", dialogue_id=f"l{index}", speaker_id=None, text=f"Line {index}", timestamp=0.0)
        for index in range(5)
    ]

    render_backlog(history, limit=2)

    output = capsys.readouterr().out
    assert "Line 3" in output
    assert "Line 4" in output
    assert "Line 2" not in output


def test_render_backlog_empty(capsys: pytest.CaptureFixture[str]) -> None:
    render_backlog([])

    assert "(nothing yet)" in capsys.readouterr().out


def test_render_slots_describes_each_state(capsys: pytest.CaptureFixture[str]) -> None:
    render_slots(
        [
            SlotMetadata(slot=1, exists=False),
            SlotMetadata(slot=2, exists=True, is_corrupt=True),
            SlotMetadata(slot=3, exists=True, label="Slot 3", current_node_id="fork", playtime=9),
            SlotMetadata(slot=4, exists=True, current_node_id="intro"),
        ]
    )

    output = capsys.readouterr().out
    assert "1. (empty)" in output
    assert "2. (unreadable)" in output
    assert "3. Slot 3 @ fork (9s)" in output
    assert "4. Save 4 @ intro (0s)" in output

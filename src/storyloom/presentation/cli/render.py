"""Shared CLI rendering helpers."""
from __future__ import annotations

import os
import textwrap
from typing import Iterable, Mapping, Sequence

from storyloom.domain.defs import ChoiceDef
from storyloom.domain.state import HistoryEntry
from storyloom.presentation.cli.save_slots import SlotMetadata
from storyloom.services.event_bus import EventType, StoryEvent

_WRAP_WIDTH = 76


def debug_enabled() -> bool:
    """Return True only when STORYLOOM_DEBUG is explicitly set to '1'."""
    return os.getenv("STORYLOOM_DEBUG") == "1"


def wrap_text(text: str, width: int = _WRAP_WIDTH) -> list[str]:
    """Wrap text on word boundaries, indenting continuation lines."""
    if not text or width <= 0:
        return [text] if text else [""]
    wrapped = textwrap.fill(
        text,
        width=width,
        subsequent_indent="  ",
        break_long_words=False,
        break_on_hyphens=False,
    )
    return wrapped.split("\n")


def speaker_label(speaker_id: str | None) -> str:
    return speaker_id if speaker_id else "Narrator"


def format_line(speaker_id: str | None, text: str) -> list[str]:
    return wrap_text(f"{speaker_label(speaker_id)}: {text}")


def describe_event(event: StoryEvent) -> str | None:
    """Return a one-line stage direction for an event, or None if it has no console form."""
    data: Mapping[str, object] = event.data
    if event.type == EventType.SCENE_ENTER:
        name = data.get("name") or data.get("node_id")
        if data.get("node_type") == "end":
            return None
        return f"~ {name} ~"
    if event.type == EventType.CHARACTER_ENTER:
        character = data.get("character")
        if isinstance(character, Mapping):
            return f"({character.get('character_id')} enters, {character.get('position')})"
        return None
    if event.type == EventType.CHARACTER_EXIT:
        return f"({data.get('character_id')} leaves)"
    if event.type == EventType.CHARACTER_EXPRESSION:
        return f"({data.get('character_id')} looks {data.get('expression')})"
    if event.type == EventType.BACKGROUND_CHANGE:
        return f"[Location: {data.get('location_id')}]"
    if event.type == EventType.BGM_PLAY:
        return f"[Music: {data.get('music_id')}]"
    if event.type == EventType.BGM_STOP:
        return "[Music stops]"
    if event.type == EventType.ENDING_REACH:
        return f"*** Ending reached: {data.get('ending_type')} ***"
    if debug_enabled():
        return f"[debug] {event.type.value} {dict(data)}"
    return None


def render_heading(title: str) -> None:
    """Print a consistent section heading."""
    print(f"\n=== {title} ===")


def render_line(speaker_id: str | None, text: str, node_id: str | None = None) -> None:
    if debug_enabled() and node_id:
        print(f"[{node_id}]")
    for line in format_line(speaker_id, text):
        print(line)


def render_choices(choices: Sequence[ChoiceDef]) -> None:
    """Display numbered story choices."""
    if not choices:
        return
    render_heading("Choices")
    for idx, choice in enumerate(choices, start=1):
        print(f"{idx}. {choice.text}")


def render_backlog(history: Iterable[HistoryEntry], limit: int = 20) -> None:
    entries = list(history)[-limit:]
    render_heading("Backlog")
    if not entries:
        print("(nothing yet)")
        return
    for entry in entries:
        for line in format_line(entry.speaker_id, entry.text):
            print(line)


def render_slots(slots: Sequence[SlotMetadata]) -> None:
    render_heading("Save Slots")
    for slot in slots:
        if not slot.exists:
            print(f"{slot.slot}. (empty)")
        elif slot.is_corrupt:
            print(f"{slot.slot}. (unreadable)")
        else:
            label = slot.label or f"Save {slot.slot}"
            print(f"{slot.slot}. {label} @ {slot.current_node_id} ({slot.playtime}s)")


def render_help() -> None:
    render_heading("Controls")
    for line in (
        "Enter      advance",
        "1..9       pick a choice",
        "a          toggle auto-play",
        "s          toggle skip",
        "b          show backlog",
        "save N     save to slot N",
        "load N     load slot N",
        "load       load the most recent save",
        "slots      list save slots",
        "q          quit",
    ):
        print(f"- {line}")

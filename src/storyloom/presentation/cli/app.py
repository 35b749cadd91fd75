"""Console-driven player loop for Storyloom."""
from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Callable

from storyloom.core.logger import get_logger
from storyloom.core.scheduler import ManualScheduler
from storyloom.data import DataError
from storyloom.data.repositories import StoryGraphRepository
from storyloom.domain.settings import PlayerSettings
from storyloom.presentation.cli import render
from storyloom.presentation.cli.save_slots import SaveSlotStore
from storyloom.services import (
    EventType,
    SaveLoadError,
    StoryEvent,
    StoryInterpreter,
    format_issue,
    validate_story_graph,
)

logger = get_logger(__name__)

_TICK_SECONDS = 0.03
_MAX_CLOCK_STEP = 60.0


class ConsolePlayer:
    """Plays one story in the terminal.

    The interpreter runs on a ``ManualScheduler``; the player moves that clock
    forward by the wall-clock time that passed between prompts, and streams
    each line while it is being revealed.
    """

    def __init__(
        self,
        interpreter: StoryInterpreter,
        scheduler: ManualScheduler,
        slots: SaveSlotStore,
        *,
        input_fn: Callable[[str], str] = input,
        sleep_fn: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interpreter = interpreter
        self._scheduler = scheduler
        self._slots = slots
        self._input = input_fn
        self._sleep = sleep_fn
        self._clock = clock
        self._last_clock = clock()
        self._printed = 0
        self._quit = False
        self._end_announced = False
        for event_type in EventType:
            interpreter.on(event_type, self._on_event)

    def run(self) -> None:
        self._interpreter.start()
        while not self._quit:
            self._play_out_reveal()
            phase = self._interpreter.phase
            if phase in ("ended", "halted"):
                self._announce_end(phase)
            elif phase == "awaiting_input" and self._interpreter.get_state().auto_play:
                self._wait_for_auto_play()
                continue
            raw = self._prompt()
            if raw is None:
                break
            self._sync_clock()
            self._handle_command(raw)
        self._interpreter.destroy()

    # ----------------------------------------------------------------- Input
    def _prompt(self) -> str | None:
        try:
            return self._input("> ")
        except EOFError:
            return None

    def _handle_command(self, raw: str) -> None:
        command = raw.strip().lower()
        interpreter = self._interpreter
        if command == "":
            if interpreter.phase in ("ended", "halted"):
                self._quit = True
            elif interpreter.phase == "presenting_choices":
                print("Pick a choice by number.")
            else:
                interpreter.advance()
        elif command.isdigit():
            if interpreter.phase != "presenting_choices":
                print("There is nothing to choose right now.")
                return
            interpreter.select_choice(int(command) - 1)
            if interpreter.phase == "presenting_choices":
                print(f"Please enter a value between 1 and {len(interpreter.get_current_choices())}.")
        elif command == "a":
            interpreter.toggle_auto_play()
            print(f"(auto-play {'on' if interpreter.get_state().auto_play else 'off'})")
        elif command == "s":
            interpreter.toggle_skip_mode()
            print(f"(skip {'on' if interpreter.get_state().skip_mode else 'off'})")
        elif command == "b":
            render.render_backlog(interpreter.get_history())
        elif command == "slots":
            render.render_slots(self._slots.list_slots())
        elif command.startswith(("save", "load")):
            self._handle_slot_command(command)
        elif command in ("h", "help", "?"):
            render.render_help()
        elif command in ("q", "quit"):
            self._quit = True
        else:
            print("Unknown command. Type 'h' for help.")

    def _handle_slot_command(self, command: str) -> None:
        action, _, argument = command.partition(" ")
        if action == "load" and not argument.strip():
            latest = self._slots.most_recent()
            if latest is None:
                print("There are no saves to load.")
                return
            self._load(latest.slot)
            return
        try:
            slot = int(argument)
        except ValueError:
            print(f"Usage: {action} N (1-{self._slots.slot_count})")
            return
        try:
            if action == "save":
                self._save(slot)
            elif action == "load":
                self._load(slot)
            else:
                print("Unknown command. Type 'h' for help.")
        except ValueError as exc:
            print(str(exc))

    def _save(self, slot: int) -> None:
        payload = self._interpreter.create_save_data(slot, label=f"Slot {slot}")
        self._slots.write_slot(slot, payload)
        print(f"Saved to slot {slot}.")

    def _load(self, slot: int) -> None:
        if not self._slots.slot_exists(slot):
            print(f"Slot {slot} is empty.")
            return
        try:
            payload = self._slots.read_slot(slot)
            self._interpreter.restore_state(payload)
        except (OSError, ValueError, SaveLoadError) as exc:
            logger.warning("Could not load slot %d: %s", slot, exc)
            print(f"Slot {slot} could not be loaded: {exc}")
            return
        self._end_announced = False
        print(f"Loaded slot {slot}.")
        dialogue = self._interpreter.get_current_dialogue()
        if dialogue is not None:
            render.render_line(dialogue.speaker_id, dialogue.text, self._interpreter.get_state().current_node_id)
        if self._interpreter.phase == "presenting_choices":
            render.render_choices(self._interpreter.get_current_choices())

    # ------------------------------------------------------------------ Time
    def _sync_clock(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_clock)
        self._last_clock = now
        while elapsed > 0:
            step = min(elapsed, _MAX_CLOCK_STEP)
            self._scheduler.advance(step)
            elapsed -= step

    def _play_out_reveal(self) -> None:
        try:
            while self._interpreter.phase == "advancing_dialogue":
                self._sleep(_TICK_SECONDS)
                self._sync_clock()
                self._flush_reveal()
        except KeyboardInterrupt:
            self._interpreter.advance()

    def _wait_for_auto_play(self) -> None:
        try:
            while self._interpreter.get_state().auto_play and self._interpreter.phase == "awaiting_input":
                self._sleep(_TICK_SECONDS)
                self._sync_clock()
                self._play_out_reveal()
        except KeyboardInterrupt:
            self._interpreter.set_auto_play(False)
            print("\n(auto-play off)")

    # ---------------------------------------------------------------- Output
    def _on_event(self, event: StoryEvent) -> None:
        if event.type == EventType.DIALOGUE_START:
            dialogue = event.data.get("dialogue")
            speaker_id = dialogue.get("speaker_id") if isinstance(dialogue, dict) else None
            if render.debug_enabled():
                print(f"[{event.data.get('node_id')}]")
            print(f"{render.speaker_label(speaker_id)}: ", end="", flush=True)
            self._printed = 0
            return
        if event.type == EventType.DIALOGUE_COMPLETE:
            self._flush_reveal()
            print()
            return
        if event.type == EventType.CHOICE_SHOW:
            render.render_choices(self._interpreter.get_current_choices())
            return
        line = render.describe_event(event)
        if line:
            print(line)

    def _flush_reveal(self) -> None:
        text = self._interpreter.displayed_text
        if len(text) > self._printed:
            print(text[self._printed :], end="", flush=True)
            self._printed = len(text)

    def _announce_end(self, phase: str) -> None:
        if self._end_announced:
            return
        self._end_announced = True
        if phase == "halted":
            print(f"Playback stopped: {self._interpreter.last_error}")
        print("Press Enter to quit, or 'load N' to continue from a save.")


def play(
    story_path: Path,
    *,
    settings: PlayerSettings | None = None,
    save_dir: Path | None = None,
) -> int:
    """Load ``story_path`` and play it interactively. Returns a process exit code."""
    scheduler = ManualScheduler()
    try:
        interpreter = StoryInterpreter.from_file(story_path, scheduler, settings=settings)
    except DataError as exc:
        print(f"Could not load story: {exc}", file=sys.stderr)
        return 1
    title = interpreter.graph.metadata.title or interpreter.story_id
    print(f"=== {title} ===")
    print("Type 'h' for controls.")
    slots = SaveSlotStore(interpreter.story_id, base_dir=save_dir)
    ConsolePlayer(interpreter, scheduler, slots).run()
    print("Goodbye!")
    return 0


def validate(story_path: Path) -> int:
    """Print every validation issue for ``story_path``. Returns 1 if any is an error."""
    try:
        graph = StoryGraphRepository(story_path).load()
    except DataError as exc:
        print(f"Could not load story: {exc}", file=sys.stderr)
        return 1
    issues = validate_story_graph(graph)
    for issue in issues:
        print(format_issue(issue))
    if not issues:
        print(f"{story_path}: OK ({len(graph)} nodes, {len(graph.edges)} edges)")
    return 1 if any(issue.severity == "ERROR" for issue in issues) else 0

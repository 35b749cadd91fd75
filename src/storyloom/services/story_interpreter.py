"""Story interpreter: walks the story graph and drives playback."""
from __future__ import annotations

import copy
from collections import deque
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Deque, List, Mapping

from storyloom.core.logger import get_logger
from storyloom.core.scheduler import Scheduler, TimerHandle
from storyloom.core.types import PlaybackPhase, VariableValue
from storyloom.data.repositories import StoryGraphRepository
from storyloom.domain.defs import (
    DEFAULT_ENDING_TYPE,
    ChoiceDef,
    DialogueDef,
    EndNodeDef,
    SceneNodeDef,
    StartNodeDef,
    StoryNodeDef,
)
from storyloom.domain.expressions import ConditionEvaluator
from storyloom.domain.settings import PlayerSettings, clamp_unit
from storyloom.domain.state import CharacterState, ChoiceRecord, HistoryEntry, RuntimeState
from storyloom.domain.story_graph import StoryGraph, order_edges
from storyloom.services.event_bus import EventBus, EventListener, EventType, Subscription
from storyloom.services.save_service import SavePayload, SaveService
from storyloom.services.story_graph_validator import ensure_valid_story_graph
from storyloom.services.typewriter import Typewriter

logger = get_logger(__name__)

_PLAYTIME_TICK_SECONDS = 1.0
_SCALAR_TYPES = (str, int, float, bool)


class StoryInterpreter:
    """Single-writer state machine over one story graph.

    Every public command runs to completion before the next one starts.
    Commands issued from event listeners or timer callbacks while another
    command is running are queued and run afterwards, in call order.
    """

    def __init__(
        self,
        graph: StoryGraph,
        scheduler: Scheduler,
        *,
        settings: PlayerSettings | None = None,
        story_id: str = "default",
        evaluator: ConditionEvaluator | None = None,
    ) -> None:
        ensure_valid_story_graph(graph)
        self._graph = graph
        self._scheduler = scheduler
        self._settings = settings or PlayerSettings()
        self._story_id = story_id
        self._evaluator = evaluator or ConditionEvaluator()
        self._events = EventBus()
        self._save_service = SaveService(graph, story_id)
        self._typewriter = Typewriter(scheduler, on_complete=self._on_typewriter_complete)
        self._state = self._fresh_state()
        self._auto_play_timer: TimerHandle | None = None
        self._playtime_timer: TimerHandle | None = None
        self._pending: Deque[Callable[[], None]] = deque()
        self._busy = False
        self._destroyed = False
        self._last_error: str | None = None

    @classmethod
    def from_file(cls, path: Path | str, scheduler: Scheduler, **kwargs: Any) -> "StoryInterpreter":
        """Load and validate a story document, then build an interpreter for it."""
        repo = StoryGraphRepository(Path(path))
        kwargs.setdefault("story_id", repo.story_id)
        return cls(repo.load(), scheduler, **kwargs)

    # ------------------------------------------------------- Read-only views
    @property
    def graph(self) -> StoryGraph:
        return self._graph

    @property
    def story_id(self) -> str:
        return self._story_id

    @property
    def settings(self) -> PlayerSettings:
        return self._settings

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def last_error(self) -> str | None:
        """Why playback halted, if it did."""
        return self._last_error

    @property
    def phase(self) -> PlaybackPhase:
        state = self._state
        if state.halted:
            return "halted"
        node = self._graph.find_node(state.current_node_id)
        if node is None:
            return "idle"
        if isinstance(node, EndNodeDef):
            return "ended"
        if state.showing_choices:
            return "presenting_choices"
        if not self._typewriter.is_complete:
            return "advancing_dialogue"
        return "awaiting_input"

    @property
    def displayed_text(self) -> str:
        return self._typewriter.displayed_text

    @property
    def target_text(self) -> str:
        return self._typewriter.target_text

    def is_text_complete(self) -> bool:
        return self._typewriter.is_complete

    def get_state(self) -> RuntimeState:
        """Return a deep copy of the runtime state."""
        return copy.deepcopy(self._state)

    def get_current_node(self) -> StoryNodeDef | None:
        return self._graph.find_node(self._state.current_node_id)

    def get_current_dialogue(self) -> DialogueDef | None:
        node = self.get_current_node()
        if not isinstance(node, SceneNodeDef):
            return None
        if 0 <= self._state.dialogue_index < len(node.dialogues):
            return node.dialogues[self._state.dialogue_index]
        return None

    def get_current_choices(self) -> List[ChoiceDef]:
        """Choices of the current scene whose conditions pass right now."""
        node = self.get_current_node()
        if not isinstance(node, SceneNodeDef):
            return []
        return self._available_choices(node)

    def get_history(self) -> List[HistoryEntry]:
        return copy.deepcopy(self._state.history)

    def get_variable(self, name: str) -> VariableValue:
        return self._state.variables.get(name)

    # --------------------------------------------------------- Subscriptions
    def on(self, event_type: EventType | str, listener: EventListener) -> Subscription:
        return self._events.on(event_type, listener)

    def off(self, event_type: EventType | str, listener: EventListener) -> bool:
        return self._events.off(event_type, listener)

    # -------------------------------------------------------------- Commands
    def start(self) -> None:
        """Reset runtime state and begin at the start node."""
        self._dispatch(self._start)

    def advance(self) -> None:
        """Finish the current line, or move past it if it is already complete."""
        self._dispatch(self._advance)

    def select_choice(self, index: int) -> None:
        """Pick the ``index``-th currently available choice; out-of-range is ignored."""
        self._dispatch(lambda: self._select_choice(index))

    def pause(self) -> None:
        self._dispatch(self._pause)

    def resume(self) -> None:
        self._dispatch(self._resume)

    def set_auto_play(self, enabled: bool) -> None:
        self._dispatch(lambda: self._set_auto_play(bool(enabled)))

    def toggle_auto_play(self) -> None:
        self._dispatch(lambda: self._set_auto_play(not self._state.auto_play))

    def set_skip_mode(self, enabled: bool) -> None:
        self._dispatch(lambda: self._set_skip_mode(bool(enabled)))

    def toggle_skip_mode(self) -> None:
        self._dispatch(lambda: self._set_skip_mode(not self._state.skip_mode))

    def set_text_speed(self, speed: float) -> None:
        """Set reveal speed in [0, 1]; 1 shows lines instantly. Applies from the next line."""
        if isinstance(speed, bool) or not isinstance(speed, (int, float)):
            logger.warning("Ignoring non-numeric text speed %r", speed)
            return
        self._state.text_speed = clamp_unit(speed)

    def set_variable(self, name: str, value: VariableValue) -> None:
        if not isinstance(name, str) or not name:
            logger.warning("Ignoring variable with invalid name %r", name)
            return
        if value is not None and not isinstance(value, _SCALAR_TYPES):
            logger.warning("Ignoring non-scalar value for variable '%s': %r", name, value)
            return
        self._state.variables[name] = value

    def show_character(self, character_id: str, position: str = "center", expression: str = "neutral") -> None:
        self._dispatch(lambda: self._show_character(character_id, position, expression))

    def hide_character(self, character_id: str) -> None:
        self._dispatch(lambda: self._hide_character(character_id))

    def set_character_expression(self, character_id: str, expression: str) -> None:
        self._dispatch(lambda: self._set_character_expression(character_id, expression))

    def play_bgm(self, music_id: str) -> None:
        self._dispatch(lambda: self._play_bgm(music_id))

    def stop_bgm(self) -> None:
        self._dispatch(self._stop_bgm)

    def play_sfx(self, sound_id: str) -> None:
        self._dispatch(lambda: self._emit(EventType.SFX_PLAY, sound_id=sound_id))

    def play_voice(self, voice_id: str) -> None:
        self._dispatch(lambda: self._emit(EventType.VOICE_PLAY, voice_id=voice_id))

    def create_save_snapshot(self) -> SavePayload:
        """Return a JSON-compatible snapshot of the runtime state."""
        snapshot = self._save_service.serialize(self._state)
        self._emit(EventType.SAVE, node_id=self._state.current_node_id)
        return snapshot

    def create_save_data(self, slot_id: int, label: str | None = None) -> SavePayload:
        """Return a snapshot wrapped with slot metadata."""
        return self._save_service.build_save_data(self.create_save_snapshot(), slot_id, label)

    def restore_state(self, snapshot: Mapping[str, Any]) -> None:
        """Replace the runtime state with a validated snapshot.

        Raises SaveLoadError and leaves the current state untouched when the
        snapshot does not match this story.
        """
        state = self._save_service.deserialize(snapshot)
        self._dispatch(lambda: self._restore(state))

    def destroy(self) -> None:
        """Cancel every timer and drop all listeners. Further commands are ignored."""
        self._cancel_timers()
        self._pending.clear()
        self._events.clear()
        self._destroyed = True

    # -------------------------------------------------------------- Dispatch
    def _dispatch(self, action: Callable[[], None]) -> None:
        if self._destroyed:
            return
        if self._busy:
            self._pending.append(action)
            return
        self._busy = True
        try:
            action()
            while self._pending and not self._destroyed:
                self._pending.popleft()()
        finally:
            self._busy = False
            self._pending.clear()

    def _emit(self, event_type: EventType, **data: object) -> None:
        self._events.emit(event_type, data, self._scheduler.now())

    # -------------------------------------------------------- Command bodies
    def _start(self) -> None:
        start_node = self._graph.start_node()
        if start_node is None:
            self._halt("Story has no start node.")
            return
        self._cancel_timers()
        self._typewriter.show_complete("")
        self._state = self._fresh_state()
        self._last_error = None
        self._start_playtime()
        self._enter_node(start_node.id)

    def _advance(self) -> None:
        self._cancel_auto_play()
        self._advance_once()

    def _advance_once(self) -> None:
        state = self._state
        if state.is_paused or state.halted:
            return
        node = self._graph.find_node(state.current_node_id)
        if not isinstance(node, SceneNodeDef):
            return
        if not self._typewriter.is_complete:
            self._typewriter.complete()
            return
        if state.showing_choices:
            return
        if state.dialogue_index < len(node.dialogues) - 1:
            state.dialogue_index += 1
            state.waiting_for_input = False
            self._begin_dialogue(node)
            return
        if self._present_choices(node):
            return
        target = self._resolve_flow_target(node.id)
        if target is not None:
            self._enter_node(target)

    def _select_choice(self, index: int) -> None:
        state = self._state
        if not state.showing_choices or state.is_paused or state.halted:
            return
        node = self._graph.find_node(state.current_node_id)
        if not isinstance(node, SceneNodeDef):
            return
        choices = self._available_choices(node)
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(choices):
            logger.debug("Ignoring choice index %r; %d choices available", index, len(choices))
            return
        choice = choices[index]
        state.choices_made.append(ChoiceRecord(node.id, choice.id, self._scheduler.now()))
        state.showing_choices = False
        state.waiting_for_input = False
        self._emit(EventType.CHOICE_SELECT, node_id=node.id, index=index, choice=asdict(choice))
        target = self._resolve_choice_target(node, choice)
        if target is None:
            return
        self._enter_node(target)
        self._run_skip_loop()

    def _pause(self) -> None:
        if self._state.is_paused:
            return
        self._state.is_paused = True
        self._cancel_auto_play()
        self._emit(EventType.PAUSE, node_id=self._state.current_node_id)

    def _resume(self) -> None:
        state = self._state
        if not state.is_paused:
            return
        node = self._graph.find_node(state.current_node_id)
        if isinstance(node, EndNodeDef):
            logger.debug("Ignoring resume at ending node '%s'", node.id)
            return
        state.is_paused = False
        if self._playtime_timer is None and node is not None:
            self._start_playtime()
        self._emit(EventType.RESUME, node_id=state.current_node_id)
        self._run_skip_loop()
        if self._auto_play_ready():
            self._arm_auto_play()

    def _set_auto_play(self, enabled: bool) -> None:
        self._state.auto_play = enabled
        if self._auto_play_ready():
            self._arm_auto_play()
        else:
            self._cancel_auto_play()

    def _set_skip_mode(self, enabled: bool) -> None:
        self._state.skip_mode = enabled
        self._run_skip_loop()

    def _restore(self, state: RuntimeState) -> None:
        self._cancel_timers()
        self._state = state
        self._last_error = None
        dialogue = self.get_current_dialogue()
        self._typewriter.show_complete(dialogue.text if dialogue is not None else "")
        node = self._graph.find_node(state.current_node_id)
        if node is not None and not isinstance(node, EndNodeDef):
            self._start_playtime()
        self._emit(EventType.LOAD, node_id=state.current_node_id)
        if self._auto_play_ready():
            self._arm_auto_play()

    def _show_character(self, character_id: str, position: str, expression: str) -> None:
        character = self._state.find_character(character_id)
        if character is None:
            character = CharacterState(character_id=character_id, position=position, expression=expression)
            self._state.visible_characters.append(character)
            self._emit(EventType.CHARACTER_ENTER, character=asdict(character))
            return
        character.position = position
        if character.expression != expression:
            character.expression = expression
            self._emit(EventType.CHARACTER_EXPRESSION, character_id=character_id, expression=expression)

    def _hide_character(self, character_id: str) -> None:
        character = self._state.find_character(character_id)
        if character is None:
            return
        self._state.visible_characters.remove(character)
        self._emit(EventType.CHARACTER_EXIT, character_id=character_id)

    def _set_character_expression(self, character_id: str, expression: str) -> None:
        character = self._state.find_character(character_id)
        if character is None or character.expression == expression:
            return
        character.expression = expression
        self._emit(EventType.CHARACTER_EXPRESSION, character_id=character_id, expression=expression)

    def _play_bgm(self, music_id: str) -> None:
        self._state.current_bgm = music_id
        self._emit(EventType.BGM_PLAY, music_id=music_id)

    def _stop_bgm(self) -> None:
        if self._state.current_bgm is None:
            return
        music_id = self._state.current_bgm
        self._state.current_bgm = None
        self._emit(EventType.BGM_STOP, music_id=music_id)

    # ------------------------------------------------------- Graph traversal
    def _enter_node(self, node_id: str) -> None:
        """Move to ``node_id``, following automatic transitions until playback rests."""
        limit = self._settings.auto_advance_hop_limit
        next_node_id: str | None = node_id
        hops = 0
        while next_node_id is not None:
            hops += 1
            if hops > limit:
                self._halt(f"Automatic transitions from '{node_id}' exceeded {limit} hops.")
                return
            next_node_id = self._arrive_at(next_node_id)

    def _arrive_at(self, node_id: str) -> str | None:
        """Enter one node. Returns the next node id when the node passes straight through."""
        node = self._graph.find_node(node_id)
        if node is None:
            self._halt(f"Story node '{node_id}' does not exist.")
            return None
        self._leave_current_node()
        state = self._state
        state.current_node_id = node.id
        state.dialogue_index = 0
        state.showing_choices = False
        state.waiting_for_input = False
        self._typewriter.show_complete("")

        if isinstance(node, StartNodeDef):
            return self._resolve_flow_target(node.id)
        if isinstance(node, EndNodeDef):
            self._emit(EventType.SCENE_ENTER, node_id=node.id, node_type="end", name=node.name)
            self._reach_ending(node)
            return None
        if isinstance(node, SceneNodeDef):
            self._emit(EventType.SCENE_ENTER, node_id=node.id, node_type="scene", name=node.name)
            self._setup_scene(node)
            if node.dialogues:
                self._begin_dialogue(node)
                return None
            if self._present_choices(node):
                return None
            return self._resolve_flow_target(node.id)
        raise TypeError(f"Unsupported story node type: {type(node).__name__}")

    def _leave_current_node(self) -> None:
        self._cancel_auto_play()
        node = self._graph.find_node(self._state.current_node_id)
        if isinstance(node, (SceneNodeDef, EndNodeDef)):
            self._emit(EventType.SCENE_EXIT, node_id=node.id)

    def _setup_scene(self, node: SceneNodeDef) -> None:
        state = self._state
        previous = {character.character_id: character for character in state.visible_characters}
        incoming = [
            CharacterState(
                character_id=entry.character_id,
                position=entry.position,
                expression=entry.expression,
            )
            for entry in node.characters
        ]
        incoming_ids = {character.character_id for character in incoming}
        state.visible_characters = incoming

        for character_id in previous:
            if character_id not in incoming_ids:
                self._emit(EventType.CHARACTER_EXIT, character_id=character_id)
        for character in incoming:
            if character.character_id not in previous:
                self._emit(EventType.CHARACTER_ENTER, character=asdict(character))
        for character in incoming:
            before = previous.get(character.character_id)
            if before is not None and before.expression != character.expression:
                self._emit(
                    EventType.CHARACTER_EXPRESSION,
                    character_id=character.character_id,
                    expression=character.expression,
                )

        if node.location_id and node.location_id != state.current_background:
            state.current_background = node.location_id
            self._emit(EventType.BACKGROUND_CHANGE, location_id=node.location_id)
        for effect in node.effects:
            self._emit(
                EventType.TRANSITION_START,
                node_id=node.id,
                effect={"type": effect.type, "params": dict(effect.params)},
            )

    def _begin_dialogue(self, node: SceneNodeDef) -> None:
        state = self._state
        dialogue = node.dialogues[state.dialogue_index]
        for character in state.visible_characters:
            character.highlighted = dialogue.speaker_id is not None and character.character_id == dialogue.speaker_id
        self._record_history(node.id, dialogue)
        self._emit(
            EventType.DIALOGUE_START,
            node_id=node.id,
            index=state.dialogue_index,
            dialogue=asdict(dialogue),
        )
        rate = None if state.skip_mode else self._settings.chars_per_second(state.text_speed)
        self._typewriter.start(dialogue.text, rate)

    def _record_history(self, node_id: str, dialogue: DialogueDef) -> None:
        history = self._state.history
        history.append(
            HistoryEntry(
                node_id=node_id,
                dialogue_id=dialogue.id,
                speaker_id=dialogue.speaker_id,
                text=dialogue.text,
                timestamp=self._scheduler.now(),
            )
        )
        overflow = len(history) - self._settings.history_limit
        if overflow > 0:
            del history[:overflow]

    def _present_choices(self, node: SceneNodeDef) -> bool:
        choices = self._available_choices(node)
        if not choices:
            return False
        state = self._state
        state.showing_choices = True
        state.waiting_for_input = True
        self._cancel_auto_play()
        self._emit(EventType.CHOICE_SHOW, node_id=node.id, choices=[asdict(choice) for choice in choices])
        return True

    def _available_choices(self, node: SceneNodeDef) -> List[ChoiceDef]:
        variables = self._state.variables
        return [choice for choice in node.choices if self._evaluator.evaluate(choice.condition, variables)]

    def _resolve_flow_target(self, node_id: str) -> str | None:
        for edge in order_edges(self._graph.edges_from(node_id, "flow")):
            if self._evaluator.evaluate(edge.condition, self._state.variables):
                return edge.to_node_id
        self._halt(f"No outgoing flow edge from '{node_id}' can be followed.")
        return None

    def _resolve_choice_target(self, node: SceneNodeDef, choice: ChoiceDef) -> str | None:
        if choice.target_node_id:
            return choice.target_node_id
        for edge in order_edges(self._graph.edges_from(node.id, "choice")):
            if edge.choice_id != choice.id:
                continue
            if self._evaluator.evaluate(edge.condition, self._state.variables):
                return edge.to_node_id
        self._halt(f"Choice '{choice.id}' on node '{node.id}' has no reachable target.")
        return None

    def _reach_ending(self, node: EndNodeDef) -> None:
        state = self._state
        self._stop_playtime()
        self._cancel_auto_play()
        state.is_paused = True
        state.waiting_for_input = False
        self._emit(
            EventType.ENDING_REACH,
            node_id=node.id,
            ending_type=node.ending_type or DEFAULT_ENDING_TYPE,
            playtime=state.playtime,
        )

    def _halt(self, message: str) -> None:
        self._last_error = message
        self._state.halted = True
        self._state.waiting_for_input = False
        self._cancel_auto_play()
        self._stop_playtime()
        logger.error("Playback halted: %s", message)

    # -------------------------------------------- Skip, auto-play and timers
    def _run_skip_loop(self) -> None:
        cap = self._settings.skip_iteration_cap
        for _ in range(cap):
            if not self._can_skip():
                return
            self._cancel_auto_play()
            self._advance_once()
        if self._can_skip():
            logger.warning("Skip mode stopped after %d steps without reaching a choice or an ending", cap)

    def _can_skip(self) -> bool:
        state = self._state
        if not state.skip_mode or state.is_paused or state.halted or state.showing_choices:
            return False
        return isinstance(self._graph.find_node(state.current_node_id), SceneNodeDef)

    def _auto_play_ready(self) -> bool:
        state = self._state
        if not state.auto_play or state.is_paused or state.halted or state.showing_choices:
            return False
        if not self._typewriter.is_complete:
            return False
        return isinstance(self._graph.find_node(state.current_node_id), SceneNodeDef)

    def _arm_auto_play(self) -> None:
        self._cancel_auto_play()
        self._auto_play_timer = self._scheduler.call_later(self._settings.auto_play_delay, self._on_auto_play_timer)

    def _cancel_auto_play(self) -> None:
        if self._auto_play_timer is not None:
            self._auto_play_timer.cancel()
            self._auto_play_timer = None

    def _on_auto_play_timer(self) -> None:
        self._auto_play_timer = None
        if self._auto_play_ready():
            self.advance()

    def _on_typewriter_complete(self) -> None:
        if self._busy:
            self._finish_line()
        else:
            self._dispatch(self._finish_line)

    def _finish_line(self) -> None:
        state = self._state
        state.waiting_for_input = True
        self._emit(
            EventType.DIALOGUE_COMPLETE,
            node_id=state.current_node_id,
            index=state.dialogue_index,
            text=self._typewriter.target_text,
        )
        if self._auto_play_ready():
            self._arm_auto_play()

    def _start_playtime(self) -> None:
        self._stop_playtime()
        self._playtime_timer = self._scheduler.call_repeating(_PLAYTIME_TICK_SECONDS, self._tick_playtime)

    def _stop_playtime(self) -> None:
        if self._playtime_timer is not None:
            self._playtime_timer.cancel()
            self._playtime_timer = None

    def _tick_playtime(self) -> None:
        if not self._state.is_paused:
            self._state.playtime += 1

    def _cancel_timers(self) -> None:
        self._typewriter.cancel()
        self._cancel_auto_play()
        self._stop_playtime()

    def _fresh_state(self) -> RuntimeState:
        return RuntimeState(text_speed=clamp_unit(self._settings.text_speed))

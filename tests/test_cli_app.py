import itertools
import json
from pathlib import Path
from typing import Iterable

import pytest

from storyloom import main as main_module
from storyloom.presentation.cli.app import ConsolePlayer, play, validate
from storyloom.presentation.cli.save_slots import SaveSlotStore
from tests.helpers.story_docs import branching_story, build_interpreter, flow, scene, start, story


def _scripted(commands: Iterable[str]):
    remaining = iter(commands)

    def _input(prompt: str) -> str:
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError from None

    return _input


def _player(tmp_path: Path, commands: Iterable[str], document: dict | None = None, **settings) -> ConsolePlayer:
    interpreter, scheduler = build_interpreter(document or branching_story(), **settings)
    slots = SaveSlotStore(interpreter.story_id, base_dir=tmp_path)
    ticks = itertools.count(0.0, 0.1)
    return ConsolePlayer(
        interpreter,
        scheduler,
        slots,
        input_fn=_scripted(commands),
        sleep_fn=lambda seconds: None,
        clock=lambda: next(ticks),
    )


def test_plays_story_to_an_ending(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _player(tmp_path, ["", "", "5", "2", ""]).run()

    output = capsys.readouterr().out
    assert "~ Intro ~" in output
    assert "Narrator: Welcome." in output
    assert "1. Go left" in output
    assert "Open the vault" not in output
    assert "Please enter a value between 1 and 2." in output
    assert "*** Ending reached: bad ***" in output
    assert "Press Enter to quit" in output


def test_streams_lines_at_reading_speed(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _player(tmp_path, ["", "", "1", ""], text_speed=0.0).run()

    output = capsys.readouterr().out
    assert "Narrator: Welcome.\n" in output
    assert "Narrator: Which way?\n" in output
    assert "*** Ending reached: good ***" in output


def test_save_and_load_slot(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _player(tmp_path, ["", "", "save 1", "1", "load 1", "2", "q"]).run()

    output = capsys.readouterr().out
    assert "Saved to slot 1." in output
    assert "*** Ending reached: good ***" in output
    assert "Loaded slot 1." in output
    assert "*** Ending reached: bad ***" in output
    assert (tmp_path / "default" / "slot_1.json").exists()


def test_bare_load_restores_most_recent_save(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _player(tmp_path, ["load", "", "", "save 2", "1", "load", "2", "q"]).run()

    output = capsys.readouterr().out
    assert "There are no saves to load." in output
    assert "Saved to slot 2." in output
    assert "Loaded slot 2." in output
    assert "*** Ending reached: bad ***" in output


def test_slot_command_errors(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _player(tmp_path, ["load 2", "save x", "save 9", "slots", "nonsense", "q"]).run()

    output = capsys.readouterr().out
    assert "Slot 2 is empty." in output
    assert "Usage: save N (1-5)" in output
    assert "Slot index must be between 1 and 5." in output
    assert "1. (empty)" in output
    assert "Unknown command. Type 'h' for help." in output


def test_corrupt_slot_reports_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    (tmp_path / "default").mkdir()
    (tmp_path / "default" / "slot_1.json").write_text(json.dumps({"save_version": 99}), encoding="utf-8")

    _player(tmp_path, ["load 1", "q"]).run()

    assert "Slot 1 could not be loaded" in capsys.readouterr().out


def test_toggles_and_backlog(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _player(tmp_path, ["b", "a", "a", "s", "q"]).run()

    output = capsys.readouterr().out
    assert "=== Backlog ===" in output
    assert "(auto-play on)" in output
    assert "(auto-play off)" in output
    assert "(skip on)" in output


def test_halted_story_reports_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    document = story(
        [start(), scene("a", "Hi."), scene("b", "Never shown.")],
        [flow("e1", "start", "a"), flow("e2", "a", "b", condition="false")],
    )

    _player(tmp_path, ["", ""], document).run()

    output = capsys.readouterr().out
    assert "Playback stopped: No outgoing flow edge from 'a' can be followed." in output
    assert "Never shown." not in output


def test_validate_prints_warnings_but_passes(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "warn.json"
    path.write_text(
        json.dumps(story([start(), scene("a", "Hi.")], [flow("e1", "start", "a", condition="((")])),
        encoding="utf-8",
    )

    assert validate(path) == 0
    assert "[WARNING] INVALID_CONDITION" in capsys.readouterr().out


def test_play_reports_unloadable_story(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert play(tmp_path / "missing.json") == 1
    assert "Could not load story" in capsys.readouterr().err


def test_main_validate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    calls: list[tuple] = []
    monkeypatch.setattr(main_module, "setup_logging", lambda *args: calls.append(args))
    good = tmp_path / "good.json"
    good.write_text(json.dumps(branching_story()), encoding="utf-8")
    broken = tmp_path / "broken.json"
    broken.write_text(json.dumps(story([start(), scene("a", "Hi.")], [flow("e1", "start", "ghost")])), encoding="utf-8")

    assert main_module.main([str(good), "--validate", "--log-level", "DEBUG"]) == 0
    assert "OK (7 nodes, 4 edges)" in capsys.readouterr().out
    assert main_module.main([str(broken), "--validate"]) == 1
    assert "EDGE_MISSING_TARGET" in capsys.readouterr().out
    assert calls[0] == ("DEBUG", None)

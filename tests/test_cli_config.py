import json
import os
from pathlib import Path

from storyloom.domain.settings import PlayerSettings
from storyloom.presentation.cli import config


def test_missing_config_returns_defaults(tmp_path: Path) -> None:
    assert config.load_config(tmp_path / "absent.json") == PlayerSettings()


def test_corrupt_config_returns_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    assert config.load_config(path) == PlayerSettings()


def test_non_object_config_returns_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert config.load_config(path) == PlayerSettings()


def test_config_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    settings = PlayerSettings(text_speed=0.8, auto_play_delay=3.5, history_limit=50)

    config.save_config(settings, path)

    assert config.load_config(path) == settings
    assert json.loads(path.read_text(encoding="utf-8"))["history_limit"] == 50


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "text_speed": 4,
                "auto_play_delay": "slow",
                "history_limit": 0,
                "skip_iteration_cap": True,
                "min_chars_per_second": 80,
                "max_chars_per_second": 40,
            }
        ),
        encoding="utf-8",
    )

    settings = config.load_config(path)
    defaults = PlayerSettings()

    assert settings.text_speed == 1.0
    assert settings.auto_play_delay == defaults.auto_play_delay
    assert settings.history_limit == defaults.history_limit
    assert settings.skip_iteration_cap == defaults.skip_iteration_cap
    assert settings.min_chars_per_second == 80.0
    assert settings.max_chars_per_second == 80.0


def test_user_data_dir_uses_appdata_on_windows(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(os, "name", "nt")
    monkeypatch.setenv("APPDATA", str(tmp_path))

    assert config.get_user_data_dir() == tmp_path / "Storyloom"
    assert config.get_save_dir() == tmp_path / "Storyloom" / "saves"


def test_user_data_dir_defaults_to_home_config(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(os, "name", "posix")
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

    assert config.get_default_config_path() == tmp_path / ".config" / "storyloom" / "config.json"

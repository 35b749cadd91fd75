"""CLI configuration helpers for player settings persistence."""
from __future__ import annotations

import json
import os
from dataclasses import asdict, fields
from pathlib import Path

from storyloom.core.logger import get_logger
from storyloom.domain.settings import PlayerSettings, clamp_unit

logger = get_logger(__name__)


def get_user_data_dir() -> Path:
    """Return the per-user data directory."""
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "Storyloom"
        return Path.home() / "Storyloom"
    return Path.home() / ".config" / "storyloom"


def get_default_config_path() -> Path:
    """Return the default per-user config path."""
    return get_user_data_dir() / "config.json"


def get_save_dir() -> Path:
    """Return the per-user save directory."""
    return get_user_data_dir() / "saves"


def _normalize(raw: dict) -> PlayerSettings:
    defaults = PlayerSettings()
    values = {}
    for settings_field in fields(PlayerSettings):
        default = getattr(defaults, settings_field.name)
        value = raw.get(settings_field.name, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            value = default
        elif isinstance(default, int) and value < 1:
            value = default
        values[settings_field.name] = type(default)(value)
    values["text_speed"] = clamp_unit(values["text_speed"])
    if values["max_chars_per_second"] < values["min_chars_per_second"]:
        values["max_chars_per_second"] = values["min_chars_per_second"]
    return PlayerSettings(**values)


def load_config(path: Path | None = None) -> PlayerSettings:
    """Load settings from disk or return defaults."""
    config_path = path or get_default_config_path()
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return PlayerSettings()
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config at %s: %s", config_path, exc)
        return PlayerSettings()
    if not isinstance(raw, dict):
        return PlayerSettings()
    return _normalize(raw)


def save_config(settings: PlayerSettings, path: Path | None = None) -> None:
    """Persist settings to disk."""
    config_path = path or get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    payload = asdict(_normalize(asdict(settings)))
    config_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

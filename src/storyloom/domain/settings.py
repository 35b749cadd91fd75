"""Player-facing playback settings."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class PlayerSettings:
    """Tunables for text reveal, auto-play and safety caps."""

    text_speed: float = 0.5
    auto_play_delay: float = 2.0
    min_chars_per_second: float = 30.0
    max_chars_per_second: float = 100.0
    history_limit: int = 500
    skip_iteration_cap: int = 100
    auto_advance_hop_limit: int = 100

    def chars_per_second(self, text_speed: float) -> float | None:
        """Return the reveal rate for ``text_speed``, or None for instant display."""
        speed = clamp_unit(text_speed)
        if speed >= 1.0:
            return None
        span = self.max_chars_per_second - self.min_chars_per_second
        return self.min_chars_per_second + speed * span


def clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, float(value)))

"""Progressive reveal of a dialogue line."""
from __future__ import annotations

from typing import Callable

from storyloom.core.scheduler import Scheduler, TimerHandle


class Typewriter:
    """Reveals one character per tick and reports completion exactly once per line."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        on_complete: Callable[[], None],
        on_reveal: Callable[[str], None] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._on_complete = on_complete
        self._on_reveal = on_reveal
        self._timer: TimerHandle | None = None
        self._displayed = ""
        self._target = ""
        self._completion_reported = True

    @property
    def displayed_text(self) -> str:
        return self._displayed

    @property
    def target_text(self) -> str:
        return self._target

    @property
    def is_complete(self) -> bool:
        return self._displayed == self._target

    @property
    def is_running(self) -> bool:
        return self._timer is not None

    def start(self, text: str, chars_per_second: float | None) -> None:
        """Begin revealing ``text``; ``None`` as the rate shows it at once."""
        self._cancel_timer()
        self._target = text
        self._displayed = ""
        self._completion_reported = False
        if chars_per_second is None or chars_per_second <= 0 or not text:
            self.complete()
            return
        self._timer = self._scheduler.call_repeating(1.0 / chars_per_second, self._tick)

    def complete(self) -> None:
        """Show the whole line now. Completion is reported once per started line."""
        self._cancel_timer()
        self._displayed = self._target
        if self._completion_reported:
            return
        self._completion_reported = True
        self._on_complete()

    def show_complete(self, text: str) -> None:
        """Display ``text`` as already revealed without reporting completion."""
        self._cancel_timer()
        self._target = text
        self._displayed = text
        self._completion_reported = True

    def cancel(self) -> None:
        self._cancel_timer()

    def _tick(self) -> None:
        if len(self._displayed) < len(self._target):
            self._displayed = self._target[: len(self._displayed) + 1]
            if self._on_reveal is not None:
                self._on_reveal(self._displayed)
        if len(self._displayed) >= len(self._target):
            self.complete()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

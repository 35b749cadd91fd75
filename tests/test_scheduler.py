from __future__ import annotations

import asyncio

import pytest

from storyloom.core.scheduler import AsyncioScheduler, ManualScheduler


def test_call_later_fires_once_when_due() -> None:
    scheduler = ManualScheduler()
    calls: list[float] = []
    handle = scheduler.call_later(2.0, lambda: calls.append(scheduler.now()))

    scheduler.advance(1.0)
    assert calls == []
    scheduler.advance(1.0)
    scheduler.advance(5.0)

    assert calls == [2.0]
    assert handle.cancelled is True
    assert scheduler.now() == 7.0


def test_repeating_timer_fires_each_interval_until_cancelled() -> None:
    scheduler = ManualScheduler()
    ticks: list[float] = []
    handle = scheduler.call_repeating(0.5, lambda: ticks.append(scheduler.now()))

    scheduler.advance(2.0)
    handle.cancel()
    scheduler.advance(2.0)

    assert ticks == [0.5, 1.0, 1.5, 2.0]
    assert handle.repeating is True


def test_callbacks_fire_in_time_order() -> None:
    scheduler = ManualScheduler()
    order: list[str] = []
    scheduler.call_later(3.0, lambda: order.append("late"))
    scheduler.call_later(1.0, lambda: order.append("early"))
    scheduler.call_later(1.0, lambda: order.append("early-second"))

    scheduler.advance(5.0)

    assert order == ["early", "early-second", "late"]


def test_cancelled_timer_never_fires() -> None:
    scheduler = ManualScheduler()
    calls: list[str] = []
    handle = scheduler.call_later(1.0, lambda: calls.append("fired"))

    handle.cancel()
    handle.cancel()
    scheduler.advance(10.0)

    assert calls == []
    assert scheduler.pending_count == 0


def test_callback_can_schedule_and_cancel_other_timers() -> None:
    scheduler = ManualScheduler()
    calls: list[str] = []
    victim = scheduler.call_later(2.0, lambda: calls.append("victim"))

    def first() -> None:
        calls.append("first")
        victim.cancel()
        scheduler.call_later(0.5, lambda: calls.append("chained"))

    scheduler.call_later(1.0, first)
    scheduler.advance(3.0)

    assert calls == ["first", "chained"]


def test_run_pending_fires_zero_delay_callbacks() -> None:
    scheduler = ManualScheduler(start_time=10.0)
    calls: list[float] = []
    scheduler.call_later(0, lambda: calls.append(scheduler.now()))

    scheduler.run_pending()

    assert calls == [10.0]


def test_invalid_arguments_are_rejected() -> None:
    scheduler = ManualScheduler()

    with pytest.raises(ValueError):
        scheduler.call_repeating(0, lambda: None)
    with pytest.raises(ValueError):
        scheduler.advance(-1.0)


def test_asyncio_scheduler_runs_callbacks_on_loop() -> None:
    async def scenario() -> list[str]:
        scheduler = AsyncioScheduler()
        calls: list[str] = []
        scheduler.call_later(0.01, lambda: calls.append("once"))
        repeating = scheduler.call_repeating(0.01, lambda: calls.append("tick"))
        cancelled = scheduler.call_later(0.01, lambda: calls.append("never"))
        cancelled.cancel()
        await asyncio.sleep(0.1)
        repeating.cancel()
        count = calls.count("tick")
        await asyncio.sleep(0.05)
        assert calls.count("tick") == count
        return calls

    calls = asyncio.run(scenario())

    assert "once" in calls
    assert calls.count("tick") >= 2
    assert "never" not in calls

from __future__ import annotations

import asyncio

import pytest

from fakes import ManualTimer, viewport
from geo.aoi import BBox
from viewport.timer import AsyncioTimer
from viewport.tracker import ViewportTracker


def _pan(i: int):
    return viewport(10 + i * 0.1, BBox.around(-71.0 + i * 0.01, 42.0, pad=0.05))


def test_burst_of_events_settles_once_with_last_viewport():
    timer = ManualTimer()
    tracker = ViewportTracker(debounce_ms=300, timer=timer)
    settled = []
    tracker.subscribe(settled.append)

    for i in range(10):
        tracker.on_map_event(_pan(i))

    assert settled == []
    assert timer.delay_s == pytest.approx(0.3)
    timer.fire()

    assert settled == [_pan(9)]
    assert tracker.current == _pan(9)
    assert not tracker.pending


def test_no_listener_schedules_nothing():
    timer = ManualTimer()
    tracker = ViewportTracker(timer=timer)
    tracker.on_map_event(_pan(0))
    assert timer.scheduled == 0
    assert tracker.latest == _pan(0)
    assert tracker.current is None


def test_disposing_last_listener_cancels_pending_emission():
    timer = ManualTimer()
    tracker = ViewportTracker(timer=timer)
    dispose = tracker.subscribe(lambda vp: None)
    tracker.on_map_event(_pan(0))
    assert tracker.pending

    dispose()
    assert not tracker.pending


def test_close_cancels_and_ignores_later_events():
    timer = ManualTimer()
    tracker = ViewportTracker(timer=timer)
    settled = []
    tracker.subscribe(settled.append)
    tracker.on_map_event(_pan(0))

    tracker.close()
    assert not tracker.pending
    tracker.on_map_event(_pan(1))
    tracker.settle_now(_pan(2))
    assert settled == []
    with pytest.raises(RuntimeError):
        tracker.subscribe(settled.append)


def test_settle_now_skips_the_debounce():
    timer = ManualTimer()
    tracker = ViewportTracker(timer=timer)
    settled = []
    tracker.subscribe(settled.append)
    tracker.on_map_event(_pan(0))

    tracker.settle_now(_pan(1))
    assert settled == [_pan(1)]
    assert not tracker.pending


def test_asyncio_timer_debounces_in_real_time():
    async def run():
        tracker = ViewportTracker(debounce_ms=50, timer=AsyncioTimer())
        settled = []
        tracker.subscribe(settled.append)
        for i in range(10):
            tracker.on_map_event(_pan(i))
            await asyncio.sleep(0.001)
        await asyncio.sleep(0.25)
        tracker.close()
        return settled

    assert asyncio.run(run()) == [_pan(9)]

from __future__ import annotations

from typing import Callable

from loguru import logger

from viewport.timer import AsyncioTimer, Timer
from viewport.types import Viewport


SettledListener = Callable[[Viewport], None]


class ViewportTracker:
    """
    Debounces raw move/zoom events into a single "settled" viewport.

    Only the last viewport of a burst is emitted; intermediate ones are dropped. With
    no listener registered nothing is scheduled, and `close()` cancels any pending
    emission for good.
    """

    def __init__(self, *, debounce_ms: float = 300.0, timer: Timer | None = None) -> None:
        self._debounce_s = float(debounce_ms) / 1000.0
        self._timer: Timer = timer or AsyncioTimer()
        self._listeners: list[SettledListener] = []
        self._latest: Viewport | None = None
        self._current: Viewport | None = None
        self._closed = False

    @property
    def current(self) -> Viewport | None:
        """Last settled viewport."""
        return self._current

    @property
    def latest(self) -> Viewport | None:
        """Last raw viewport, settled or not."""
        return self._latest

    @property
    def pending(self) -> bool:
        return self._timer.pending

    def subscribe(self, listener: SettledListener) -> Callable[[], None]:
        if self._closed:
            raise RuntimeError("ViewportTracker is closed")
        self._listeners.append(listener)

        def dispose() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return
            if not self._listeners:
                self._timer.cancel()

        return dispose

    def on_map_event(self, viewport: Viewport) -> None:
        if self._closed:
            return
        self._latest = viewport
        if not self._listeners:
            return
        self._timer.schedule(self._settle, self._debounce_s)

    def settle_now(self, viewport: Viewport | None = None) -> None:
        """
        Emit immediately (e.g. the map's first idle), cancelling any pending emission.
        """
        if self._closed:
            return
        if viewport is not None:
            self._latest = viewport
        self._timer.cancel()
        self._settle()

    def close(self) -> None:
        self._closed = True
        self._timer.cancel()
        self._listeners.clear()

    def _settle(self) -> None:
        viewport = self._latest
        if self._closed or viewport is None or not self._listeners:
            return
        self._current = viewport
        logger.debug("Viewport settled at zoom {:.2f}", viewport.zoom)
        for listener in list(self._listeners):
            listener(viewport)

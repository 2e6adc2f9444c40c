from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class Timer(Protocol):
    """
    A single re-armable timer: scheduling again replaces the pending callback.
    """

    @property
    def pending(self) -> bool: ...

    def schedule(self, fn: Callable[[], None], delay_s: float) -> None: ...

    def cancel(self) -> None: ...


class AsyncioTimer:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, fn: Callable[[], None], delay_s: float) -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(max(0.0, float(delay_s)), self._fire, fn)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, fn: Callable[[], None]) -> None:
        self._handle = None
        fn()

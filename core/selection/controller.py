from __future__ import annotations

from typing import Callable

from loguru import logger

from clusters.lookup import RequestTokens
from selection.highlight import HighlightFilter, build_highlight
from viewport.types import FrameSource


HighlightListener = Callable[[HighlightFilter], None]


class SelectionController:
    """
    Owns the single highlighted species and the highlight filter derived from it.

    Every recompute takes a fresh request token. A recompute that finishes after a
    newer one started (or after `close()`) is dropped without touching the filter.
    """

    def __init__(self, frame: FrameSource) -> None:
        self._frame = frame
        self._selected: str | None = None
        self._filter = HighlightFilter.none()
        self._tokens = RequestTokens()
        self._listeners: list[HighlightListener] = []

    @property
    def selected(self) -> str | None:
        return self._selected

    @property
    def filter(self) -> HighlightFilter:
        return self._filter

    def subscribe(self, listener: HighlightListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return dispose

    async def select(self, group_key: str | None) -> HighlightFilter:
        """
        Toggle: selecting the current key (or None) clears the selection.
        """
        if group_key is None or group_key == self._selected:
            return await self.clear()
        self._selected = group_key
        logger.debug("Selected species {!r}", group_key)
        await self._refresh()
        return self._filter

    async def clear(self) -> HighlightFilter:
        self._selected = None
        self._tokens.invalidate()
        self._apply(HighlightFilter.none())
        return self._filter

    async def on_feature_store_changed(self) -> None:
        if self._selected is not None:
            await self._refresh()

    async def on_viewport_settled(self) -> None:
        if self._selected is not None:
            await self._refresh()

    def close(self) -> None:
        self._tokens.close()
        self._listeners.clear()

    async def _refresh(self) -> None:
        key = self._selected
        if key is None or self._tokens.closed:
            return
        token = self._tokens.issue()
        frame = self._frame()
        if frame is None:
            # Nothing settled yet: the key is kept, nothing is on screen to mark.
            self._apply(HighlightFilter(group_key=key))
            return
        result = await build_highlight(frame.index, frame.viewport, key, token)
        if result is None:
            return
        self._apply(result)

    def _apply(self, value: HighlightFilter) -> None:
        if self._tokens.closed:
            return
        self._filter = value
        for listener in list(self._listeners):
            listener(value)

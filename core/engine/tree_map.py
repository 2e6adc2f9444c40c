from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

from loguru import logger

from audit.store import AuditStore
from clusters.index import ClusterIndex, build_cluster_index
from clusters.types import ClusterParams
from edits.coordinator import EditCoordinator
from engine.types import EditForm, MapSurface
from interaction.events import PointerEvent
from interaction.mediator import InteractionMediator
from remote.client import TreeBackend
from selection.controller import SelectionController
from settings.types import DeploymentConfig
from trees.geojson import feature_collection
from trees.store import FeatureStore, StoreChange
from viewport.timer import Timer
from viewport.tracker import ViewportTracker
from viewport.types import Frame, Viewport
from visibility.summary import VisibilityAggregator


class TreeMapEngine:
    """
    Wires the feature store, cluster index and controllers together.

    Ordering guarantee: the engine subscribes to the store before anything else and
    rebuilds the index inside that listener, so every recompute triggered by the same
    change already reads the new snapshot.

    `stop()` cancels the debounce timer and every in-flight recompute, invalidates
    outstanding request tokens and disposes all subscriptions.
    """

    def __init__(
        self,
        *,
        backend: TreeBackend,
        surface: MapSurface,
        form: EditForm,
        config: DeploymentConfig,
        store: FeatureStore | None = None,
        timer: Timer | None = None,
        popup_timer: Timer | None = None,
        audit: AuditStore | None = None,
        species_info: Mapping[str, Mapping[str, Any]] | None = None,
        owns_backend: bool = False,
    ) -> None:
        self.config = config
        self.params = ClusterParams.from_config(config.clustering)
        self.store = store or FeatureStore()
        self._backend = backend
        self._owns_backend = owns_backend
        self._surface = surface
        self._index: ClusterIndex = build_cluster_index([], self.params)

        ix = config.interaction
        self.tracker = ViewportTracker(debounce_ms=ix.debounceMs, timer=timer)
        self.visibility = VisibilityAggregator(self.frame)
        self.selection = SelectionController(self.frame)
        self.edits = EditCoordinator(
            self.store, backend, optimistic=config.edits.optimistic, audit=audit
        )
        self.mediator = InteractionMediator(
            store=self.store,
            edits=self.edits,
            surface=surface,
            form=form,
            frame=self.frame,
            double_tap_ms=ix.doubleTapMs,
            tap_tolerance_px=ix.tapTolerancePx,
            touch_popup_timeout_ms=ix.touchPopupTimeoutMs,
            popup_timer=popup_timer,
            species_info=species_info,
            default_source=config.edits.defaultSource,
        )

        self._disposers: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task] = set()
        self._running = False
        self._stopped = False

    @property
    def index(self) -> ClusterIndex:
        return self._index

    @property
    def running(self) -> bool:
        return self._running

    def frame(self) -> Frame | None:
        viewport = self.tracker.current
        if viewport is None:
            return None
        return Frame(index=self._index, viewport=viewport)

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError("TreeMapEngine cannot be restarted after stop()")
        if self._running:
            return
        self._running = True
        # Store listener first: the index must be rebuilt before anyone recomputes.
        self._disposers.append(self.store.subscribe(self._on_store_changed))
        self._disposers.append(self.tracker.subscribe(self._on_viewport_settled))
        self._disposers.append(self.selection.subscribe(self._surface.set_highlight))
        self._rebuild()
        logger.info("Tree map engine started ({})", self.config.id)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._stopped = True
        self.tracker.close()
        self.selection.close()
        self.mediator.close()
        for dispose in reversed(self._disposers):
            dispose()
        self._disposers.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        logger.info("Tree map engine stopped ({})", self.config.id)

    async def __aenter__(self) -> "TreeMapEngine":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """
        Stop, then close the backend client if this engine created it.
        """
        self.stop()
        if self._owns_backend:
            self._owns_backend = False
            aclose = getattr(self._backend, "aclose", None)
            if aclose is not None:
                await aclose()

    async def load(self) -> int:
        """
        Initial load from the backend; returns the number of active trees.
        """
        features = await self._backend.fetch_trees()
        if not self._running:
            return 0
        self.store.load(features)
        return len(self._index)

    def on_map_event(self, viewport: Viewport) -> None:
        if self._running:
            self.tracker.on_map_event(viewport)

    def on_map_idle(self, viewport: Viewport) -> None:
        """
        The map finished its first render: settle without waiting for the debounce.
        """
        if self._running:
            self.tracker.settle_now(viewport)

    async def select(self, group_key: str | None) -> None:
        if self._running:
            await self.selection.select(group_key)

    async def clear_selection(self) -> None:
        if self._running:
            await self.selection.clear()

    async def handle_pointer(self, event: PointerEvent):
        if not self._running:
            return None
        return await self.mediator.handle(event)

    def set_panel_visible(self, visible: bool) -> None:
        if self._running:
            self.visibility.set_panel_visible(visible)

    async def drain(self) -> None:
        """
        Wait for recomputes spawned by viewport/store events (used by tests).
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=False)

    def _rebuild(self) -> None:
        active = self.store.active()
        self._index = build_cluster_index(active, self.params)
        self._surface.set_source_data(feature_collection(active))
        logger.debug("Cluster index rebuilt: {} active trees", len(self._index))

    def _on_store_changed(self, change: StoreChange) -> None:
        if not self._running:
            return
        self._rebuild()
        self.visibility.on_feature_store_changed()
        if self.selection.selected is not None:
            self._spawn(self.selection.on_feature_store_changed())

    def _on_viewport_settled(self, viewport: Viewport) -> None:
        if not self._running:
            return
        self.visibility.on_viewport_settled()
        if self.selection.selected is not None:
            self._spawn(self.selection.on_viewport_settled())

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

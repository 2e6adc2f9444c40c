from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from loguru import logger

from clusters.types import UnknownClusterError
from edits.coordinator import EditCoordinator
from edits.errors import ValidationError
from edits.pending import EditResult
from engine.types import EditForm, MapSurface
from interaction.events import PointerAction, PointerEvent, PointerKind
from interaction.popup import build_popup_content
from trees.store import FeatureStore
from trees.types import TreeCandidate
from viewport.timer import AsyncioTimer, Timer
from viewport.types import FrameSource


class MapMode(str, Enum):
    normal = "normal"
    add = "add"
    remove = "remove"


class InteractionMediator:
    """
    Turns pointer events on the map into popups, add prompts and removals.

    Hover: one popup at a time, keyed by feature id. Repeated enter/move events for
    the open feature are ignored so the popup does not flicker while dragging.

    Add: in normal mode a double tap on empty map (second tap within `double_tap_ms`
    and `tap_tolerance_px` of the first) opens the add form; in add mode a single
    empty-map tap does. Taps on trees or clusters never count toward the gesture.

    Remove: in remove mode a tap on a tree asks the form for the remover's name; an
    empty answer is a decline and changes nothing.
    """

    def __init__(
        self,
        *,
        store: FeatureStore,
        edits: EditCoordinator,
        surface: MapSurface,
        form: EditForm,
        frame: FrameSource,
        double_tap_ms: float = 200.0,
        tap_tolerance_px: float = 10.0,
        touch_popup_timeout_ms: float = 3000.0,
        popup_timer: Timer | None = None,
        species_info: Mapping[str, Mapping[str, Any]] | None = None,
        default_source: str = "",
    ) -> None:
        self._store = store
        self._edits = edits
        self._surface = surface
        self._form = form
        self._frame = frame
        self._double_tap_ms = float(double_tap_ms)
        self._tap_tolerance_px = float(tap_tolerance_px)
        self._touch_popup_timeout_s = float(touch_popup_timeout_ms) / 1000.0
        self._popup_timer: Timer = popup_timer or AsyncioTimer()
        self._species_info = species_info or {}
        self._species_by_name = {
            str(info.get("common_name") or "").strip().lower(): info
            for info in self._species_info.values()
            if info.get("common_name")
        }
        self._default_source = default_source

        self._mode = MapMode.normal
        self._popup_id: str | None = None
        self._last_tap: PointerEvent | None = None
        self._pending_add: tuple[float, float] | None = None
        self._closed = False

    @property
    def mode(self) -> MapMode:
        return self._mode

    @property
    def popup_feature_id(self) -> str | None:
        return self._popup_id

    @property
    def last_tap(self) -> PointerEvent | None:
        return self._last_tap

    @property
    def pending_add(self) -> tuple[float, float] | None:
        return self._pending_add

    def toggle_mode(self, mode: MapMode) -> MapMode:
        """
        Enter `mode`, or go back to normal when already in it.
        """
        self._mode = MapMode.normal if self._mode == mode else MapMode(mode)
        self._last_tap = None
        logger.debug("Map mode -> {}", self._mode.value)
        return self._mode

    async def handle(self, event: PointerEvent) -> EditResult | None:
        if self._closed:
            return None
        if event.action in (PointerAction.enter, PointerAction.move):
            self._hover(event)
            return None
        if event.action == PointerAction.leave:
            self._close_popup()
            return None
        return await self._tap(event)

    def cancel(self) -> None:
        """
        Escape: close the popup and forget any half-finished gesture or add.
        """
        self._close_popup()
        self._last_tap = None
        self._pending_add = None
        self._mode = MapMode.normal

    def close(self) -> None:
        self._closed = True
        self._popup_timer.cancel()
        self._popup_id = None
        self._last_tap = None
        self._pending_add = None

    async def submit_add(self, fields: Mapping[str, Any]) -> EditResult:
        """
        Submit the add form for the location picked by the add gesture.
        """
        if self._pending_add is None:
            return EditResult(
                operation="add",
                error=ValidationError(
                    "No location selected for the new tree",
                    user_message="Please pick a location on the map.",
                ),
            )
        lon, lat = self._pending_add
        common_name = str(fields.get("common_name") or "")
        species = self._species_by_name.get(common_name.strip().lower(), {})

        def field(name: str) -> str:
            # Blank form fields fall back to the species table.
            return str(fields.get(name) or species.get(name) or "")

        candidate = TreeCandidate(
            common_name=common_name,
            lon=lon,
            lat=lat,
            source=str(fields.get("source") or self._default_source or ""),
            tree_id=field("tree_id"),
            latin_name=field("latin_name"),
            family=field("family"),
            is_native=bool(fields.get("is_native", False)),
        )
        result = await self._edits.add(candidate)
        if result.ok and not self._closed:
            self._pending_add = None
            self._mode = MapMode.normal
        return result

    async def request_remove(self, feature_id: str) -> EditResult | None:
        feature = self._store.get(feature_id)
        if feature is None or not feature.active:
            return None

        actor = await self._form.confirm_remove(feature)
        if self._closed:
            return None
        self._mode = MapMode.normal
        if not (actor or "").strip():
            logger.info("Removal of tree {} declined", feature.id)
            return None

        result = await self._edits.remove(feature.id, actor)
        if result.ok and not self._closed and self._popup_id == feature.id:
            self._close_popup()
        return result

    def _hover(self, event: PointerEvent) -> None:
        fid = event.feature_id
        if fid is None or fid == self._popup_id:
            return
        self._open_popup(fid)

    async def _tap(self, event: PointerEvent) -> EditResult | None:
        if event.feature_id is not None:
            if self._mode == MapMode.remove:
                return await self.request_remove(event.feature_id)
            if event.pointer == PointerKind.touch:
                if event.feature_id != self._popup_id:
                    self._open_popup(event.feature_id)
                if self._popup_id is not None:
                    self._popup_timer.schedule(self._close_popup, self._touch_popup_timeout_s)
            return None

        if event.pointer == PointerKind.touch:
            # Any touch off the open tree dismisses its popup.
            self._close_popup()
        if event.cluster_id is not None:
            self._zoom_into(event)
            return None

        if self._mode == MapMode.add:
            self._begin_add(event.lon, event.lat)
        elif self._mode == MapMode.normal:
            self._register_empty_tap(event)
        return None

    def _register_empty_tap(self, event: PointerEvent) -> None:
        last = self._last_tap
        if (
            last is not None
            and 0.0 <= event.t_ms - last.t_ms <= self._double_tap_ms
            and event.distance_px(last) <= self._tap_tolerance_px
        ):
            self._last_tap = None
            self._begin_add(last.lon, last.lat)
            return
        self._last_tap = event

    def _begin_add(self, lon: float, lat: float) -> None:
        self._last_tap = None
        self._pending_add = (float(lon), float(lat))
        self._close_popup()
        logger.debug("Add prompt at {:.6f},{:.6f}", lon, lat)
        self._form.open_add(float(lon), float(lat))

    def _zoom_into(self, event: PointerEvent) -> None:
        frame = self._frame()
        if frame is None or event.cluster_id is None:
            return
        try:
            zoom = frame.index.expansion_zoom(event.cluster_id)
        except UnknownClusterError:
            # Tap raced a rebuild; the cluster is gone.
            logger.debug("Tap on unknown cluster {}", event.cluster_id)
            return
        self._surface.ease_to(event.lon, event.lat, float(zoom))

    def _open_popup(self, feature_id: str) -> None:
        feature = self._store.get(feature_id)
        if feature is None or not feature.active:
            self._close_popup()
            return
        self._popup_timer.cancel()
        self._popup_id = feature.id
        self._surface.show_popup(build_popup_content(feature, self._species_info))

    def _close_popup(self) -> None:
        self._popup_timer.cancel()
        if self._popup_id is None:
            return
        self._popup_id = None
        self._surface.close_popup()

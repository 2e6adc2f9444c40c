from __future__ import annotations

import asyncio
from typing import Any, Callable

from edits.errors import RemoteFailure
from geo.aoi import BBox
from interaction.popup import PopupContent
from selection.highlight import HighlightFilter
from settings.types import (
    DeploymentCenter,
    DeploymentConfig,
    DeploymentDefaultView,
    DeploymentEdits,
    DeploymentInteraction,
)
from trees.types import Feature, TreeCandidate
from viewport.types import Viewport


def tree(fid: str, lon: float, lat: float, name: str, **kw: Any) -> Feature:
    return Feature(id=fid, lon=lon, lat=lat, common_name=name, **kw)


def oak_maple_trees() -> list[Feature]:
    # Two oaks a few metres apart (one cluster up to zoom 16) and a lone maple.
    return [
        tree("1", -71.0, 42.0, "Oak"),
        tree("2", -71.0001, 42.0001, "Oak"),
        tree("3", -72.0, 43.0, "Maple"),
    ]


def viewport(zoom: float, bounds: BBox | None = None) -> Viewport:
    return Viewport(bounds=bounds or BBox.world(), zoom=float(zoom))


def make_config(*, optimistic: bool = True, debounce_ms: float = 300.0) -> DeploymentConfig:
    return DeploymentConfig(
        id="test",
        title="Test",
        defaultView=DeploymentDefaultView(
            center=DeploymentCenter(lat=42.38, lon=-71.09), zoom=14.0
        ),
        interaction=DeploymentInteraction(debounceMs=debounce_ms),
        edits=DeploymentEdits(optimistic=optimistic),
    )


class ManualTimer:
    """Timer driven by the test: nothing fires until `fire()`."""

    def __init__(self) -> None:
        self.callback: Callable[[], None] | None = None
        self.delay_s: float | None = None
        self.scheduled = 0

    @property
    def pending(self) -> bool:
        return self.callback is not None

    def schedule(self, fn: Callable[[], None], delay_s: float) -> None:
        self.callback = fn
        self.delay_s = delay_s
        self.scheduled += 1

    def cancel(self) -> None:
        self.callback = None

    def fire(self) -> None:
        fn = self.callback
        assert fn is not None, "nothing scheduled"
        self.callback = None
        fn()


class RecordingSurface:
    def __init__(self) -> None:
        self.source_data: list[dict[str, Any]] = []
        self.highlights: list[HighlightFilter] = []
        self.popups: list[PopupContent] = []
        self.closed_popups = 0
        self.eases: list[tuple[float, float, float]] = []

    def set_source_data(self, feature_collection: dict[str, Any]) -> None:
        self.source_data.append(feature_collection)

    def set_highlight(self, highlight: HighlightFilter) -> None:
        self.highlights.append(highlight)

    def show_popup(self, content: PopupContent) -> None:
        self.popups.append(content)

    def close_popup(self) -> None:
        self.closed_popups += 1

    def ease_to(self, lon: float, lat: float, zoom: float) -> None:
        self.eases.append((lon, lat, zoom))


class ScriptedForm:
    def __init__(self, answer: str | None = None) -> None:
        self.answer = answer
        self.opened_add: list[tuple[float, float]] = []
        self.confirm_calls: list[str] = []

    def open_add(self, lon: float, lat: float) -> None:
        self.opened_add.append((lon, lat))

    async def confirm_remove(self, feature: Feature) -> str | None:
        self.confirm_calls.append(feature.id)
        return self.answer


class FakeBackend:
    """
    In-memory backend. `gate` (an asyncio.Event) holds create/remove calls until set.
    """

    def __init__(
        self,
        trees: list[Feature] | None = None,
        *,
        fail_create: bool = False,
        fail_remove: bool = False,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.trees = list(trees or [])
        self.fail_create = fail_create
        self.fail_remove = fail_remove
        self.gate = gate
        self.calls: list[tuple[str, Any]] = []
        self._next_id = 100

    async def fetch_trees(self) -> list[Feature]:
        self.calls.append(("fetch", None))
        return list(self.trees)

    async def create_tree(self, candidate: TreeCandidate) -> Feature:
        self.calls.append(("create", candidate))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_create:
            raise RemoteFailure("HTTP error! status: 500", status_code=500)
        self._next_id += 1
        created = candidate.to_feature(str(self._next_id))
        self.trees.append(created)
        return created

    async def remove_tree(self, location_id: str, removed_by: str) -> Any:
        self.calls.append(("remove", (location_id, removed_by)))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_remove:
            raise RemoteFailure("HTTP error! status: 503", status_code=503)
        return {"location_id": location_id, "removed_by": removed_by}

    def network_calls(self) -> list[str]:
        return [c[0] for c in self.calls if c[0] != "fetch"]

from __future__ import annotations

from typing import Any, Protocol

from interaction.popup import PopupContent
from selection.highlight import HighlightFilter
from trees.types import Feature


class MapSurface(Protocol):
    """
    The rendering map the engine drives.

    - set_source_data: GeoJSON FeatureCollection of active trees (the clustered source)
    - set_highlight: point + cluster highlight filters, always applied together
    """

    def set_source_data(self, feature_collection: dict[str, Any]) -> None: ...

    def set_highlight(self, highlight: HighlightFilter) -> None: ...

    def show_popup(self, content: PopupContent) -> None: ...

    def close_popup(self) -> None: ...

    def ease_to(self, lon: float, lat: float, zoom: float) -> None: ...


class EditForm(Protocol):
    """
    The add/remove form UI.

    `confirm_remove` returns the name of the person removing the tree, or None when
    the user declined.
    """

    def open_add(self, lon: float, lat: float) -> None: ...

    async def confirm_remove(self, feature: Feature) -> str | None: ...

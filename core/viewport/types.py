from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from geo.aoi import BBox

if TYPE_CHECKING:
    from clusters.index import ClusterIndex


@dataclass(frozen=True)
class Viewport:
    """
    Visible map region plus zoom. Superseded by every later update, never queued.
    """

    bounds: BBox
    zoom: float
    center: tuple[float, float] | None = None  # (lon, lat)

    @classmethod
    def world(cls, zoom: float = 0.0) -> "Viewport":
        return cls(bounds=BBox.world(), zoom=float(zoom))


@dataclass(frozen=True)
class Frame:
    """
    The index snapshot and settled viewport a recompute reads together.
    """

    index: "ClusterIndex"
    viewport: Viewport


FrameSource = Callable[[], "Frame | None"]

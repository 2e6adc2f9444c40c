from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from trees.types import Feature


@dataclass(frozen=True)
class ClusterParams:
    """
    Clustering parameters, fixed per deployment.

    `max_zoom` is the last zoom that still clusters; from `max_zoom + 1` on every
    feature is its own leaf. `radius` is in pixels of a tile `extent` pixels wide.
    """

    max_zoom: int = 16
    radius: float = 50.0
    extent: int = 512
    min_zoom: int = 0
    min_points: int = 2

    def __post_init__(self) -> None:
        if not (0 <= self.min_zoom <= self.max_zoom <= 30):
            raise ValueError(
                f"Invalid zoom range: min_zoom={self.min_zoom}, max_zoom={self.max_zoom}"
            )
        if self.radius <= 0 or self.extent <= 0:
            raise ValueError("radius and extent must be positive")
        if self.min_points < 2:
            raise ValueError("min_points must be >= 2")

    @classmethod
    def from_config(cls, cfg: Any) -> "ClusterParams":
        return cls(
            max_zoom=int(cfg.maxZoom),
            radius=float(cfg.radius),
            extent=int(cfg.extent),
            min_zoom=int(cfg.minZoom),
            min_points=int(cfg.minPoints),
        )


@dataclass(frozen=True)
class ClusterNode:
    """
    What the map renders at a given zoom: a single tree (leaf) or a cluster.

    Clusters only carry their id and size; their trees are expanded on demand through
    the index snapshot that produced them.
    """

    lon: float
    lat: float
    point_count: int = 1
    cluster_id: int | None = None
    feature: Feature | None = None

    @property
    def is_cluster(self) -> bool:
        return self.cluster_id is not None

    @property
    def key(self) -> str:
        if self.cluster_id is not None:
            return f"cluster:{self.cluster_id}"
        return self.feature.id if self.feature is not None else ""


class UnknownClusterError(KeyError):
    """Raised for a cluster id that does not exist in this index snapshot."""

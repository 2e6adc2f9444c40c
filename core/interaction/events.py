from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class PointerKind(str, Enum):
    mouse = "mouse"
    touch = "touch"


class PointerAction(str, Enum):
    enter = "enter"
    move = "move"
    leave = "leave"
    tap = "tap"


@dataclass(frozen=True)
class PointerEvent:
    """
    A pointer event on the map, already hit-tested by the map surface.

    `x`/`y` are screen pixels, `lon`/`lat` the map position under the pointer.
    `feature_id` is set when a rendered tree was hit, `cluster_id` when a cluster was.
    """

    action: PointerAction
    x: float
    y: float
    lon: float
    lat: float
    t_ms: float
    pointer: PointerKind = PointerKind.mouse
    feature_id: str | None = None
    cluster_id: int | None = None

    @property
    def on_target(self) -> bool:
        return self.feature_id is not None or self.cluster_id is not None

    def distance_px(self, other: "PointerEvent") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

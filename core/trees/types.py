from __future__ import annotations

import math
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Feature:
    """
    One tree location.

    `id` is the backend `location_id` and is stable once assigned. `active=False`
    marks a soft-removed tree: it stays in the store for audit/rollback but never
    reaches clustering, visibility or selection.
    """

    id: str
    lon: float
    lat: float
    common_name: str
    tree_id: str = ""
    latin_name: str = ""
    family: str = ""
    is_native: bool = False
    source: str = ""
    active: bool = True

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.lon, self.lat)

    def with_active(self, active: bool) -> "Feature":
        return replace(self, active=bool(active))


@dataclass(frozen=True)
class TreeCandidate:
    """
    Form data for a tree that does not exist yet.
    """

    common_name: str
    lon: float
    lat: float
    source: str
    tree_id: str = ""
    latin_name: str = ""
    family: str = ""
    is_native: bool = False

    def edit_key(self, decimals: int = 6) -> str:
        # Two submissions of the same species at the same spot are the same edit.
        return (
            f"add:{(self.common_name or '').strip().lower()}"
            f"@{round(float(self.lon), decimals)},{round(float(self.lat), decimals)}"
        )

    def has_valid_coordinates(self) -> bool:
        try:
            lon = float(self.lon)
            lat = float(self.lat)
        except (TypeError, ValueError):
            return False
        if not (math.isfinite(lon) and math.isfinite(lat)):
            return False
        return -180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0

    def to_feature(self, feature_id: str) -> Feature:
        return Feature(
            id=feature_id,
            lon=float(self.lon),
            lat=float(self.lat),
            common_name=self.common_name,
            tree_id=self.tree_id,
            latin_name=self.latin_name,
            family=self.family,
            is_native=bool(self.is_native),
            source=self.source,
        )

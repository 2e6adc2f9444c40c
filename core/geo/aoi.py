from __future__ import annotations

from dataclasses import dataclass


def wrap_lon(lon: float) -> float:
    """
    Wrap a longitude into [-180, 180).
    """
    return ((float(lon) + 180.0) % 360.0 + 360.0) % 360.0 - 180.0


@dataclass(frozen=True)
class BBox:
    """
    WGS84 bounding box in lon/lat degrees.

    Convention used throughout this repo:
    - minLon, minLat, maxLon, maxLat
    - map surfaces may report longitudes outside [-180, 180] after panning across the
      antimeridian; `lon_ranges()` splits such boxes for index queries.
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def world(cls) -> "BBox":
        return cls(min_lon=-180.0, min_lat=-90.0, max_lon=180.0, max_lat=90.0)

    @classmethod
    def around(cls, lon: float, lat: float, *, pad: float) -> "BBox":
        return cls(
            min_lon=lon - pad, min_lat=lat - pad, max_lon=lon + pad, max_lat=lat + pad
        )

    def normalized(self) -> "BBox":
        min_lat = min(self.min_lat, self.max_lat)
        max_lat = max(self.min_lat, self.max_lat)
        return BBox(
            min_lon=self.min_lon, min_lat=min_lat, max_lon=self.max_lon, max_lat=max_lat
        )

    def lon_ranges(self) -> list[tuple[float, float]]:
        """
        Longitude intervals covered by the box, each within [-180, 180].

        A box wider than the world collapses to one full range; a box that crosses the
        antimeridian yields two ranges.
        """
        if self.max_lon - self.min_lon >= 360.0:
            return [(-180.0, 180.0)]
        lo = wrap_lon(self.min_lon)
        hi = wrap_lon(self.max_lon)
        if self.max_lon == 180.0:
            hi = 180.0
        if lo > hi:
            return [(lo, 180.0), (-180.0, hi)]
        return [(lo, hi)]

    def contains(self, lon: float, lat: float) -> bool:
        b = self.normalized()
        if not (b.min_lat <= lat <= b.max_lat):
            return False
        wrapped = wrap_lon(lon) if lon != 180.0 else 180.0
        return any(lo <= wrapped <= hi for lo, hi in b.lon_ranges())

    def rounded_key(self, decimals: int = 4) -> tuple[float, float, float, float]:
        """
        A stable, hashable key for comparing viewports.

        decimals=4 is ~11m-ish in latitude, which is good enough for interactive panning.
        """
        b = self.normalized()
        return (
            round(b.min_lon, decimals),
            round(b.min_lat, decimals),
            round(b.max_lon, decimals),
            round(b.max_lat, decimals),
        )

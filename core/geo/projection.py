from __future__ import annotations

from functools import lru_cache
from typing import Sequence

from pyproj import Transformer


_MAX_MERCATOR_LAT = 85.05112878
# Half of the EPSG:3857 world width in meters.
_HALF_WORLD_M = 20037508.342789244


@lru_cache(maxsize=1)
def transformer_4326_to_3857() -> Transformer:
    return Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


@lru_cache(maxsize=1)
def transformer_3857_to_4326() -> Transformer:
    return Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)


def clamp_lat(lat: float) -> float:
    return max(-_MAX_MERCATOR_LAT, min(_MAX_MERCATOR_LAT, float(lat)))


def _clamp_unit(v: float) -> float:
    return max(0.0, min(1.0, float(v)))


def lonlat_to_unit(lon: float, lat: float) -> tuple[float, float]:
    """
    Project lon/lat (EPSG:4326) into the unit Web Mercator square.

    x grows eastwards from 0 at -180 to 1 at 180, y grows southwards from 0 at the
    northern Mercator limit to 1 at the southern one. This is the space clustering
    radii are expressed in: one tile of `extent` pixels at zoom z spans 1 / 2**z.
    """
    x, y = transformer_4326_to_3857().transform(float(lon), clamp_lat(lat))
    return (
        _clamp_unit((x + _HALF_WORLD_M) / (2.0 * _HALF_WORLD_M)),
        _clamp_unit((_HALF_WORLD_M - y) / (2.0 * _HALF_WORLD_M)),
    )


def project_many(
    lons: Sequence[float], lats: Sequence[float]
) -> tuple[list[float], list[float]]:
    """
    Batch variant of `lonlat_to_unit` (one pyproj call for the whole input).
    """
    if not lons:
        return [], []
    xs, ys = transformer_4326_to_3857().transform(
        [float(v) for v in lons], [clamp_lat(v) for v in lats]
    )
    ux = [_clamp_unit((x + _HALF_WORLD_M) / (2.0 * _HALF_WORLD_M)) for x in xs]
    uy = [_clamp_unit((_HALF_WORLD_M - y) / (2.0 * _HALF_WORLD_M)) for y in ys]
    return ux, uy


def unit_to_lonlat(x: float, y: float) -> tuple[float, float]:
    mx = float(x) * 2.0 * _HALF_WORLD_M - _HALF_WORLD_M
    my = _HALF_WORLD_M - float(y) * 2.0 * _HALF_WORLD_M
    lon, lat = transformer_3857_to_4326().transform(mx, my)
    return float(lon), float(lat)

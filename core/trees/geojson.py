from __future__ import annotations

from typing import Any, Iterable

from clusters.types import ClusterNode
from trees.types import Feature


def feature_to_geojson(f: Feature) -> dict[str, Any]:
    return {
        "type": "Feature",
        "id": f.id,
        "geometry": {"type": "Point", "coordinates": [f.lon, f.lat]},
        "properties": {
            "location_id": f.id,
            "tree_id": f.tree_id,
            "latin_name": f.latin_name,
            "source": f.source,
            "common_name": f.common_name,
            "family": f.family,
            "is_native": f.is_native,
        },
    }


def feature_collection(features: Iterable[Feature]) -> dict[str, Any]:
    """
    Source data for the map surface. Only active features are rendered.
    """
    return {
        "type": "FeatureCollection",
        "features": [feature_to_geojson(f) for f in features if f.active],
    }


def abbreviate_count(count: int) -> str:
    # Same abbreviation the map source uses for `point_count_abbreviated`.
    n = int(count)
    if n >= 10_000:
        return f"{round(n / 1000)}k"
    if n >= 1_000:
        return f"{round(n / 100) / 10:g}k"
    return str(n)


def node_to_geojson(node: ClusterNode) -> dict[str, Any]:
    if node.feature is not None:
        return feature_to_geojson(node.feature)
    return {
        "type": "Feature",
        "id": node.cluster_id,
        "geometry": {"type": "Point", "coordinates": [node.lon, node.lat]},
        "properties": {
            "cluster": True,
            "cluster_id": node.cluster_id,
            "point_count": node.point_count,
            "point_count_abbreviated": abbreviate_count(node.point_count),
        },
    }


def nodes_collection(nodes: Iterable[ClusterNode]) -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": [node_to_geojson(n) for n in nodes]}

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable

from shapely.geometry import Point
from shapely.geometry import box as shapely_box
from shapely.strtree import STRtree

from clusters.types import ClusterNode, ClusterParams, UnknownClusterError
from geo.aoi import BBox
from geo.projection import lonlat_to_unit, project_many, unit_to_lonlat
from trees.types import Feature
from viewport.types import Viewport


# Cluster ids pack (origin index, origin zoom) into one int, like the map source does:
# id = (index << 5) + origin_zoom + n_leaves. Zoom must therefore stay below 32.
_ZOOM_BITS = 5
_ZOOM_MASK = (1 << _ZOOM_BITS) - 1


@dataclass(eq=False)
class _Node:
    # Position in unit Web Mercator space.
    x: float
    y: float
    num_points: int = 1
    # Lowest zoom this node was already processed at (inf = not yet).
    zoom: float = math.inf
    parent_id: int = -1
    cluster_id: int | None = None
    # Index into `ClusterIndex.features` for leaves, -1 for clusters.
    source: int = -1


@dataclass(eq=False)
class _Level:
    nodes: list[_Node]
    tree: STRtree

    @classmethod
    def build(cls, nodes: list[_Node]) -> "_Level":
        geoms = [Point(n.x, n.y) for n in nodes]
        return cls(nodes=nodes, tree=STRtree(geoms) if geoms else STRtree([]))

    def within(self, x: float, y: float, r: float) -> list[int]:
        if not self.nodes:
            return []
        idxs = _to_int_list(self.tree.query(shapely_box(x - r, y - r, x + r, y + r)))
        r2 = r * r
        out = [
            i
            for i in idxs
            if (self.nodes[i].x - x) ** 2 + (self.nodes[i].y - y) ** 2 <= r2
        ]
        out.sort()
        return out

    def in_box(self, x0: float, y0: float, x1: float, y1: float) -> list[int]:
        if not self.nodes:
            return []
        return _to_int_list(self.tree.query(shapely_box(x0, y0, x1, y1)))


@dataclass(frozen=True)
class ClusterIndex:
    """
    Immutable clustering snapshot over the active features.

    Built bottom-up: leaves live at `max_zoom + 1`, and each lower zoom greedily merges
    nodes of the zoom above that fall within the pixel radius of a seed node. Every
    zoom level keeps its own STRtree for neighbour and viewport queries.

    A snapshot is never mutated after `build_cluster_index` returns, so concurrent and
    repeated `leaves_of` calls are safe and return the same order.
    """

    features: tuple[Feature, ...]
    params: ClusterParams
    _levels: dict[int, _Level] = field(default_factory=dict, repr=False)

    def __len__(self) -> int:
        return len(self.features)

    def limit_zoom(self, zoom: float) -> int:
        p = self.params
        return max(p.min_zoom, min(int(math.floor(float(zoom))), p.max_zoom + 1))

    def query_visible(self, viewport: Viewport) -> list[ClusterNode]:
        return self.query_bounds(viewport.bounds, viewport.zoom)

    def query_bounds(self, bounds: BBox, zoom: float) -> list[ClusterNode]:
        """
        Clusters and standalone leaves inside `bounds` at `zoom`, in index order.
        """
        level = self._levels.get(self.limit_zoom(zoom))
        if level is None or not level.nodes:
            return []

        b = bounds.normalized()
        _, y0 = lonlat_to_unit(0.0, b.max_lat)
        _, y1 = lonlat_to_unit(0.0, b.min_lat)

        found: set[int] = set()
        for lo, hi in b.lon_ranges():
            x0, _ = lonlat_to_unit(lo, 0.0)
            x1, _ = lonlat_to_unit(hi, 0.0)
            found.update(level.in_box(x0, y0, x1, y1))

        return [self._to_cluster_node(level.nodes[i]) for i in sorted(found)]

    def children_of(self, cluster_id: int) -> list[ClusterNode]:
        return [self._to_cluster_node(n) for n in self._children(cluster_id)]

    def leaves_of(
        self, cluster_id: int, *, limit: int | None = None, offset: int = 0
    ) -> list[Feature]:
        """
        All features under `cluster_id`, depth-first in child index order.
        """
        out: list[Feature] = []
        self._append_leaves(out, int(cluster_id))
        end = None if limit is None else offset + int(limit)
        return out[offset:end]

    def expansion_zoom(self, cluster_id: int) -> int:
        """
        Lowest zoom at which the cluster breaks apart into more than one child.
        """
        cid = int(cluster_id)
        zoom = self._origin(cid)[0] - 1
        while zoom <= self.params.max_zoom:
            children = self._children(cid)
            zoom += 1
            if len(children) != 1 or children[0].cluster_id is None:
                break
            cid = children[0].cluster_id
        return zoom

    def _append_leaves(self, out: list[Feature], cluster_id: int) -> None:
        for child in self._children(cluster_id):
            if child.cluster_id is not None:
                self._append_leaves(out, child.cluster_id)
            else:
                out.append(self.features[child.source])

    def _origin(self, cluster_id: int) -> tuple[int, int]:
        raw = int(cluster_id) - len(self.features)
        if raw < 0:
            raise UnknownClusterError(cluster_id)
        origin_zoom = raw & _ZOOM_MASK
        origin_idx = raw >> _ZOOM_BITS
        level = self._levels.get(origin_zoom)
        if level is None or origin_idx >= len(level.nodes):
            raise UnknownClusterError(cluster_id)
        return origin_zoom, origin_idx

    def _children(self, cluster_id: int) -> list[_Node]:
        origin_zoom, origin_idx = self._origin(cluster_id)
        level = self._levels[origin_zoom]
        origin = level.nodes[origin_idx]
        r = _radius(self.params, origin_zoom - 1)
        children = [
            level.nodes[i]
            for i in level.within(origin.x, origin.y, r)
            if level.nodes[i].parent_id == cluster_id
        ]
        if not children:
            raise UnknownClusterError(cluster_id)
        return children

    def _to_cluster_node(self, node: _Node) -> ClusterNode:
        if node.cluster_id is None:
            f = self.features[node.source]
            return ClusterNode(lon=f.lon, lat=f.lat, point_count=1, feature=f)
        lon, lat = unit_to_lonlat(node.x, node.y)
        return ClusterNode(
            lon=lon, lat=lat, point_count=node.num_points, cluster_id=node.cluster_id
        )


def build_cluster_index(
    features: Iterable[Feature], params: ClusterParams | None = None
) -> ClusterIndex:
    """
    Build a clustering snapshot. Inactive features are skipped; an empty input yields
    an index with zero nodes.
    """
    p = params or ClusterParams()
    active = tuple(f for f in features if f.active)
    xs, ys = project_many([f.lon for f in active], [f.lat for f in active])
    leaves = [_Node(x=x, y=y, source=i) for i, (x, y) in enumerate(zip(xs, ys))]

    levels: dict[int, _Level] = {p.max_zoom + 1: _Level.build(leaves)}
    for z in range(p.max_zoom, p.min_zoom - 1, -1):
        nodes = _cluster_level(levels[z + 1], z, p, n_leaves=len(active))
        levels[z] = _Level.build(nodes)

    return ClusterIndex(features=active, params=p, _levels=levels)


def _radius(p: ClusterParams, zoom: int) -> float:
    return p.radius / (p.extent * (2**zoom))


def _cluster_level(
    level: _Level, zoom: int, p: ClusterParams, *, n_leaves: int
) -> list[_Node]:
    r = _radius(p, zoom)
    out: list[_Node] = []

    for i, node in enumerate(level.nodes):
        if node.zoom <= zoom:
            continue
        node.zoom = zoom

        neighbor_ids = level.within(node.x, node.y, r)
        num_points = node.num_points
        for j in neighbor_ids:
            b = level.nodes[j]
            if b.zoom > zoom:
                num_points += b.num_points

        if num_points > node.num_points and num_points >= p.min_points:
            wx = node.x * node.num_points
            wy = node.y * node.num_points
            cluster_id = (i << _ZOOM_BITS) + (zoom + 1) + n_leaves
            for j in neighbor_ids:
                b = level.nodes[j]
                if b.zoom <= zoom:
                    continue
                b.zoom = zoom
                wx += b.x * b.num_points
                wy += b.y * b.num_points
                b.parent_id = cluster_id
            node.parent_id = cluster_id
            out.append(
                _Node(
                    x=wx / num_points,
                    y=wy / num_points,
                    num_points=num_points,
                    cluster_id=cluster_id,
                )
            )
        else:
            out.append(node)
            if num_points > 1:
                # Too few for a cluster (min_points > 2): neighbours stay standalone.
                for j in neighbor_ids:
                    b = level.nodes[j]
                    if b.zoom <= zoom:
                        continue
                    b.zoom = zoom
                    out.append(b)

    return out


def _to_int_list(idxs: Any) -> list[int]:
    if idxs is None:
        return []
    return [int(i) for i in idxs]

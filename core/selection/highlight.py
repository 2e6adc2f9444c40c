from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from clusters.index import ClusterIndex
from clusters.lookup import RequestToken, gather_leaves
from viewport.types import Viewport


@dataclass(frozen=True)
class HighlightFilter:
    """
    Which standalone points and which clusters to draw as highlighted.

    Both sets always belong to the same computation; the map surface applies them
    together.
    """

    group_key: str | None
    point_ids: frozenset[str] = field(default_factory=frozenset)
    cluster_ids: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def none(cls) -> "HighlightFilter":
        return cls(group_key=None)

    @property
    def is_empty(self) -> bool:
        return self.group_key is None

    def point_expression(self) -> list[Any]:
        # Layer filter for "highlighted-point"; "" matches nothing.
        return ["in", "common_name", self.group_key or ""]

    def cluster_expression(self) -> list[Any]:
        # Layer filter for "highlighted-cluster".
        if not self.cluster_ids:
            return ["in", "cluster_id", ""]
        return ["in", "cluster_id", *sorted(self.cluster_ids)]


async def build_highlight(
    index: ClusterIndex, viewport: Viewport, group_key: str, token: RequestToken
) -> HighlightFilter | None:
    """
    Highlight for `group_key` in the current view, or None when `token` went stale.

    One leaf lookup per visible cluster; the filter is only built once all of them
    resolved.
    """
    nodes = index.query_visible(viewport)
    point_ids = frozenset(
        n.feature.id
        for n in nodes
        if n.feature is not None and n.feature.common_name == group_key
    )
    cluster_ids = [n.cluster_id for n in nodes if n.cluster_id is not None]

    leaves = await gather_leaves(index, cluster_ids, token)
    if leaves is None:
        return None

    matching = frozenset(
        cid
        for cid, feats in leaves.items()
        if any(f.common_name == group_key for f in feats)
    )
    return HighlightFilter(group_key=group_key, point_ids=point_ids, cluster_ids=matching)

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeAlias

from loguru import logger

from clusters.index import ClusterIndex
from trees.types import Feature
from viewport.types import FrameSource, Viewport


@dataclass(frozen=True)
class SummaryGroup:
    group_key: str
    members: tuple[Feature, ...]

    @property
    def count(self) -> int:
        return len(self.members)

    def as_row(self) -> tuple[str, int]:
        return (self.group_key, self.count)


VisibilitySummary: TypeAlias = tuple[SummaryGroup, ...]
SummaryListener = Callable[[VisibilitySummary], None]


def summarize_visible(index: ClusterIndex, viewport: Viewport) -> VisibilitySummary:
    """
    Group every visible tree by species, largest group first.

    Clusters are expanded to their leaves. A tree reachable through more than one
    visible node is counted once. Groups of equal size keep the order in which their
    first member arrived from the index query.
    """
    seen: set[str] = set()
    buckets: dict[str, list[Feature]] = {}
    for node in index.query_visible(viewport):
        if node.cluster_id is not None:
            leaves = index.leaves_of(node.cluster_id)
        elif node.feature is not None:
            leaves = [node.feature]
        else:
            continue
        for f in leaves:
            if f.id in seen:
                continue
            seen.add(f.id)
            buckets.setdefault(f.common_name, []).append(f)

    groups = [SummaryGroup(group_key=k, members=tuple(v)) for k, v in buckets.items()]
    groups.sort(key=lambda g: g.count, reverse=True)
    return tuple(groups)


class VisibilityAggregator:
    """
    Keeps the "visible trees" summary in step with the map.

    Settled viewports only recompute while the summary panel is visible; store
    mutations always recompute so a later reveal is consistent right away.
    """

    def __init__(self, frame: FrameSource, *, panel_visible: bool = True) -> None:
        self._frame = frame
        self._panel_visible = bool(panel_visible)
        self._latest: VisibilitySummary = ()
        self._listeners: list[SummaryListener] = []

    @property
    def latest(self) -> VisibilitySummary:
        return self._latest

    @property
    def panel_visible(self) -> bool:
        return self._panel_visible

    def subscribe(self, listener: SummaryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return dispose

    def recompute(self, index: ClusterIndex, viewport: Viewport) -> VisibilitySummary:
        summary = summarize_visible(index, viewport)
        self._latest = summary
        logger.debug(
            "Visible trees: {} species, {} trees",
            len(summary),
            sum(g.count for g in summary),
        )
        for listener in list(self._listeners):
            listener(summary)
        return summary

    def refresh(self) -> VisibilitySummary | None:
        frame = self._frame()
        if frame is None:
            return None
        return self.recompute(frame.index, frame.viewport)

    def on_viewport_settled(self) -> VisibilitySummary | None:
        if not self._panel_visible:
            return None
        return self.refresh()

    def on_feature_store_changed(self) -> VisibilitySummary | None:
        return self.refresh()

    def set_panel_visible(self, visible: bool) -> VisibilitySummary | None:
        self._panel_visible = bool(visible)
        if self._panel_visible:
            return self.refresh()
        return None

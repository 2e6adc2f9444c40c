from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from clusters.index import ClusterIndex
from trees.types import Feature


class RequestTokens:
    """
    Issues generation tokens; only the most recently issued token is current.

    `invalidate()` makes every outstanding token stale, `close()` does so permanently.
    """

    def __init__(self) -> None:
        self._generation = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def issue(self) -> "RequestToken":
        self._generation += 1
        return RequestToken(source=self, generation=self._generation)

    def invalidate(self) -> None:
        self._generation += 1

    def close(self) -> None:
        self._closed = True
        self._generation += 1

    def is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation


@dataclass(frozen=True)
class RequestToken:
    source: RequestTokens
    generation: int

    @property
    def is_current(self) -> bool:
        return self.source.is_current(self.generation)


async def fetch_leaves(index: ClusterIndex, cluster_id: int) -> list[Feature]:
    # Yield once so lookups for several clusters interleave like real async calls.
    await asyncio.sleep(0)
    return index.leaves_of(cluster_id)


async def gather_leaves(
    index: ClusterIndex, cluster_ids: Sequence[int], token: RequestToken
) -> dict[int, list[Feature]] | None:
    """
    Expand several clusters concurrently; None when `token` went stale meanwhile.
    """
    results = await asyncio.gather(*(fetch_leaves(index, cid) for cid in cluster_ids))
    if not token.is_current:
        logger.debug(
            "Dropping stale leaf lookup (generation {}, {} clusters)",
            token.generation,
            len(cluster_ids),
        )
        return None
    return dict(zip(cluster_ids, results))

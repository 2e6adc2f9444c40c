from __future__ import annotations

import asyncio
import random

import pytest

from clusters.index import build_cluster_index
from clusters.lookup import RequestTokens
from fakes import oak_maple_trees, tree, viewport
from selection import HighlightFilter, SelectionController, build_highlight
from viewport.types import Frame


def _controller(trees=None, zoom=14):
    frame = Frame(index=build_cluster_index(trees or oak_maple_trees()), viewport=viewport(zoom))
    ctrl = SelectionController(lambda: frame)
    emitted = []
    ctrl.subscribe(emitted.append)
    return ctrl, frame, emitted


def test_select_highlights_matching_cluster_and_points():
    ctrl, frame, emitted = _controller()

    result = asyncio.run(ctrl.select("Oak"))

    cluster = next(n for n in frame.index.query_visible(frame.viewport) if n.is_cluster)
    assert result.group_key == "Oak"
    assert result.cluster_ids == {cluster.cluster_id}
    assert result.point_ids == frozenset()
    assert emitted == [result]

    maple = asyncio.run(ctrl.select("Maple"))
    assert maple.point_ids == {"3"}
    assert maple.cluster_ids == frozenset()


def test_selecting_same_key_twice_clears():
    ctrl, _, emitted = _controller()

    async def run():
        await ctrl.select("Oak")
        await ctrl.select("Oak")

    asyncio.run(run())
    assert ctrl.selected is None
    assert ctrl.filter == HighlightFilter.none()
    assert emitted[-1].is_empty


def test_select_none_clears():
    ctrl, _, _ = _controller()

    async def run():
        await ctrl.select("Maple")
        return await ctrl.select(None)

    assert asyncio.run(run()).is_empty
    assert ctrl.selected is None


def test_newer_selection_wins_over_slower_one():
    ctrl, _, emitted = _controller()

    async def run():
        first = asyncio.ensure_future(ctrl.select("Oak"))
        second = asyncio.ensure_future(ctrl.select("Maple"))
        await asyncio.gather(first, second)

    asyncio.run(run())
    assert ctrl.selected == "Maple"
    assert [f.group_key for f in emitted] == ["Maple"]


def test_clear_drops_in_flight_result():
    ctrl, _, emitted = _controller()

    async def run():
        pending = asyncio.ensure_future(ctrl.select("Oak"))
        await asyncio.sleep(0)
        await ctrl.clear()
        await pending

    asyncio.run(run())
    assert ctrl.selected is None
    assert emitted == [HighlightFilter.none()]


def test_closed_controller_emits_nothing():
    ctrl, _, emitted = _controller()
    ctrl.close()
    asyncio.run(ctrl.select("Oak"))
    assert emitted == []
    assert ctrl.filter.is_empty


def test_selection_without_settled_view_keeps_key():
    ctrl = SelectionController(lambda: None)
    result = asyncio.run(ctrl.select("Oak"))
    assert result.group_key == "Oak"
    assert result.point_ids == frozenset()
    assert result.cluster_ids == frozenset()


@pytest.mark.parametrize("zoom", [2, 8, 13, 17])
def test_highlight_marks_exactly_the_clusters_holding_the_species(zoom):
    rng = random.Random(11)
    names = ["Oak", "Maple", "Elm"]
    trees = [
        tree(str(i), -71.1 + rng.uniform(-0.05, 0.05), 42.4 + rng.uniform(-0.05, 0.05), rng.choice(names))
        for i in range(150)
    ]
    index = build_cluster_index(trees)
    vp = viewport(zoom)
    token = RequestTokens().issue()

    result = asyncio.run(build_highlight(index, vp, "Oak", token))

    nodes = index.query_visible(vp)
    for node in nodes:
        if node.is_cluster:
            has_oak = any(f.common_name == "Oak" for f in index.leaves_of(node.cluster_id))
            assert (node.cluster_id in result.cluster_ids) == has_oak
        else:
            assert (node.feature.id in result.point_ids) == (node.feature.common_name == "Oak")


def test_stale_token_yields_no_highlight():
    index = build_cluster_index(oak_maple_trees())
    tokens = RequestTokens()
    token = tokens.issue()

    async def run():
        pending = asyncio.ensure_future(build_highlight(index, viewport(14), "Oak", token))
        await asyncio.sleep(0)
        tokens.invalidate()
        return await pending

    assert asyncio.run(run()) is None


def test_filter_expressions():
    f = HighlightFilter(group_key="Oak", point_ids=frozenset({"1"}), cluster_ids=frozenset({7, 3}))
    assert f.point_expression() == ["in", "common_name", "Oak"]
    assert f.cluster_expression() == ["in", "cluster_id", 3, 7]
    assert HighlightFilter.none().point_expression() == ["in", "common_name", ""]

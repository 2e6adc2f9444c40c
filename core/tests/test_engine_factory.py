from __future__ import annotations

import asyncio

import httpx
import pytest

from audit.singleton import get_store, reset_store
from clusters.types import ClusterParams
from engine.factory import create_engine
from fake_api import make_tree_api
from fakes import ManualTimer, RecordingSurface, ScriptedForm
from interaction.events import PointerAction, PointerEvent
from settings.registry import clear_registry_cache


ROWS = [
    {"location_id": 1, "tree_id": "QURU", "common_name": "Red Oak", "latin_name": "Quercus rubra",
     "latitude": 42.3824, "longitude": -71.0929, "source": "city", "is_native": "True"},
    {"location_id": 2, "tree_id": "ACPL", "common_name": "Norway Maple", "latin_name": "Acer platanoides",
     "latitude": 42.3830, "longitude": -71.0935, "source": "city", "is_native": "False"},
]


@pytest.fixture
def bundled_deployment(tmp_path, monkeypatch):
    monkeypatch.delenv("TREEMAP_DEPLOYMENTS_DIR", raising=False)
    monkeypatch.delenv("TREEMAP_DEPLOYMENT", raising=False)
    monkeypatch.setenv("TREEMAP_BACKEND_URL", "http://trees.test/")
    monkeypatch.setenv("TREEMAP_AUDIT", "1")
    monkeypatch.setenv("TREEMAP_AUDIT_PATH", str(tmp_path / "edits.duckdb"))
    clear_registry_cache()
    yield
    reset_store()
    clear_registry_cache()


def test_engine_is_built_from_the_bundled_deployment(bundled_deployment):
    app = make_tree_api(ROWS)
    surface = RecordingSurface()
    engine = create_engine(
        surface=surface,
        form=ScriptedForm("bob"),
        transport=httpx.ASGITransport(app=app),
        timer=ManualTimer(),
        popup_timer=ManualTimer(),
    )
    assert engine.config.id == "somerville"
    assert engine.params == ClusterParams()

    async def run():
        async with engine:
            loaded = await engine.load()
            await engine.handle_pointer(
                PointerEvent(action=PointerAction.enter, x=0.0, y=0.0, lon=-71.0929,
                             lat=42.3824, t_ms=0.0, feature_id="1")
            )
            removed = await engine.edits.remove("1", "bob")
        return loaded, removed

    loaded, removed = asyncio.run(run())

    assert loaded == 2
    assert removed.ok
    assert app.state.requests == [("PUT", "1", {"removed_by": "bob"})]
    # Species details come from the deployment's tree_information.csv.
    assert surface.popups[-1].status == "Least Concern"
    assert surface.popups[-1].subtitle == "(Fagaceae Quercus rubra)"

    audit = get_store()
    assert audit is not None
    assert audit.flush(timeout_s=2.0)
    assert [(r["operation"], r["outcome"], r["n"]) for r in audit.summary()] == [("remove", "ok", 1)]


def test_backend_url_and_audit_follow_the_environment(bundled_deployment, monkeypatch):
    monkeypatch.setenv("TREEMAP_AUDIT", "0")
    engine = create_engine(surface=RecordingSurface(), form=ScriptedForm(), timer=ManualTimer())

    assert engine.edits._audit is None
    assert engine._backend.base_url == "http://trees.test"
    asyncio.run(engine.aclose())
    assert engine._backend._client.is_closed

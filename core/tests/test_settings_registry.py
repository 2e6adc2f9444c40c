from __future__ import annotations

import pytest

from clusters.types import ClusterParams
from settings.registry import (
    backend_url,
    clear_registry_cache,
    default_deployment_id,
    get_deployment,
    list_deployments,
)


@pytest.fixture(autouse=True)
def _fresh_registry():
    clear_registry_cache()
    yield
    clear_registry_cache()


def _write(root, did, body):
    d = root / did
    d.mkdir(parents=True)
    (d / "deployment.yaml").write_text(body, encoding="utf-8")


_MINIMAL = """
id: {did}
title: {did}
defaultView:
  center: {{lat: 50.0, lon: 14.4}}
  zoom: 12
"""


def test_bundled_somerville_deployment_loads(monkeypatch):
    monkeypatch.delenv("TREEMAP_DEPLOYMENTS_DIR", raising=False)
    monkeypatch.delenv("TREEMAP_DEPLOYMENT", raising=False)

    entry = get_deployment()
    cfg = entry.config
    assert cfg.id == "somerville"
    assert cfg.defaultView.zoom == 18
    assert cfg.interaction.debounceMs == 300
    assert ClusterParams.from_config(cfg.clustering) == ClusterParams()


def test_defaults_fill_missing_sections(tmp_path, monkeypatch):
    _write(tmp_path, "cambridge", _MINIMAL.format(did="cambridge"))
    monkeypatch.setenv("TREEMAP_DEPLOYMENTS_DIR", str(tmp_path))

    cfg = get_deployment("cambridge").config
    assert cfg.clustering.maxZoom == 16
    assert cfg.interaction.doubleTapMs == 200
    assert cfg.edits.optimistic is True


def test_unknown_id_falls_back_to_default(tmp_path, monkeypatch):
    _write(tmp_path, "a", _MINIMAL.format(did="a"))
    _write(tmp_path, "b", _MINIMAL.format(did="b"))
    monkeypatch.setenv("TREEMAP_DEPLOYMENTS_DIR", str(tmp_path))
    monkeypatch.setenv("TREEMAP_DEPLOYMENT", "b")

    assert default_deployment_id() == "b"
    assert get_deployment("nope").config.id == "b"
    assert [c.id for c in list_deployments()] == ["a", "b"]


def test_disabled_deployments_are_hidden(tmp_path, monkeypatch):
    _write(tmp_path, "a", _MINIMAL.format(did="a") + "enabled: false\n")
    _write(tmp_path, "b", _MINIMAL.format(did="b"))
    monkeypatch.setenv("TREEMAP_DEPLOYMENTS_DIR", str(tmp_path))

    assert [c.id for c in list_deployments()] == ["b"]


def test_empty_registry_raises(tmp_path, monkeypatch):
    monkeypatch.setenv("TREEMAP_DEPLOYMENTS_DIR", str(tmp_path / "missing"))
    with pytest.raises(RuntimeError):
        get_deployment()


def test_invalid_clustering_range_is_rejected(tmp_path, monkeypatch):
    _write(
        tmp_path,
        "bad",
        _MINIMAL.format(did="bad") + "clustering:\n  minZoom: 12\n  maxZoom: 10\n",
    )
    monkeypatch.setenv("TREEMAP_DEPLOYMENTS_DIR", str(tmp_path))
    with pytest.raises(ValueError):
        list_deployments()


def test_backend_url_env_override(tmp_path, monkeypatch):
    _write(tmp_path, "a", _MINIMAL.format(did="a"))
    monkeypatch.setenv("TREEMAP_DEPLOYMENTS_DIR", str(tmp_path))
    cfg = get_deployment("a").config
    assert backend_url(cfg) == "http://localhost:8000"

    monkeypatch.setenv("TREEMAP_BACKEND_URL", "https://trees.example.org/api/")
    assert backend_url(cfg) == "https://trees.example.org/api"


def test_species_path_is_relative_to_the_deployment(tmp_path, monkeypatch):
    _write(tmp_path, "a", _MINIMAL.format(did="a") + "speciesTable: species.csv\n")
    _write(tmp_path, "b", _MINIMAL.format(did="b"))
    monkeypatch.setenv("TREEMAP_DEPLOYMENTS_DIR", str(tmp_path))

    assert get_deployment("a").species_path() == tmp_path / "a" / "species.csv"
    assert get_deployment("b").species_path() is None

from __future__ import annotations

import httpx
from loguru import logger

from audit.singleton import get_store
from engine.tree_map import TreeMapEngine
from engine.types import EditForm, MapSurface
from remote.client import TreeApiClient
from settings.registry import backend_url, get_deployment
from trees.species import load_species_table
from viewport.timer import Timer


def create_engine(
    deployment_id: str | None = None,
    *,
    surface: MapSurface,
    form: EditForm,
    transport: httpx.AsyncBaseTransport | None = None,
    timer: Timer | None = None,
    popup_timer: Timer | None = None,
) -> TreeMapEngine:
    """
    Build an engine for a configured deployment.

    Resolves the deployment (env `TREEMAP_DEPLOYMENT` when no id is given), the
    backend URL (`TREEMAP_BACKEND_URL` overrides the YAML), the audit log
    (`TREEMAP_AUDIT*`) and the species table. The engine owns the HTTP client and
    closes it in `aclose()`.
    """
    entry = get_deployment(deployment_id)
    cfg = entry.config

    species_path = entry.species_path()
    species = load_species_table(species_path) if species_path is not None else {}

    url = backend_url(cfg)
    client = TreeApiClient(url, timeout_s=cfg.backend.timeoutS, transport=transport)
    audit = get_store()
    logger.info(
        "Deployment {} -> backend {} (audit {})",
        cfg.id,
        url,
        "on" if audit is not None else "off",
    )
    return TreeMapEngine(
        backend=client,
        surface=surface,
        form=form,
        config=cfg,
        timer=timer,
        popup_timer=popup_timer,
        audit=audit,
        species_info=species,
        owns_backend=True,
    )

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml
from loguru import logger

from settings.types import DeploymentConfig


FALLBACK_DEPLOYMENT = "somerville"
DEPLOYMENT_FILE = "deployment.yaml"


def deployments_dir() -> Path:
    """
    Directory holding one sub-directory per deployment.

    `TREEMAP_DEPLOYMENTS_DIR` overrides the bundled `deployments/` next to `core/`.
    """
    override = os.getenv("TREEMAP_DEPLOYMENTS_DIR")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[2] / "deployments"


@dataclass(frozen=True)
class DeploymentEntry:
    config: DeploymentConfig
    path: Path

    @property
    def directory(self) -> Path:
        return self.path.parent

    def species_path(self) -> Path | None:
        # Relative paths are resolved against the deployment's own directory.
        name = self.config.speciesTable
        if not name:
            return None
        p = Path(name)
        return p if p.is_absolute() else self.directory / p


def _read_deployment(path: Path) -> DeploymentConfig:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    cfg = DeploymentConfig.model_validate(data)
    if cfg.clustering.minZoom > cfg.clustering.maxZoom:
        raise ValueError(f"{path}: clustering.minZoom is above clustering.maxZoom")
    return cfg


@lru_cache(maxsize=1)
def get_registry() -> dict[str, DeploymentEntry]:
    """
    Enabled deployments by id, read once per process (see `clear_registry_cache`).
    """
    root = deployments_dir()
    if not root.is_dir():
        logger.warning("Deployments directory not found: {}", root)
        return {}

    entries: dict[str, DeploymentEntry] = {}
    for path in sorted(root.glob(f"*/{DEPLOYMENT_FILE}")):
        cfg = _read_deployment(path)
        if not cfg.enabled:
            logger.debug("Skipping disabled deployment {}", cfg.id)
            continue
        entries[cfg.id] = DeploymentEntry(config=cfg, path=path)
    return entries


def default_deployment_id() -> str:
    """
    `TREEMAP_DEPLOYMENT` when it names an enabled deployment, then Somerville,
    then the first deployment by directory name.
    """
    registry = get_registry()
    for candidate in ((os.getenv("TREEMAP_DEPLOYMENT") or "").strip(), FALLBACK_DEPLOYMENT):
        if candidate and candidate in registry:
            return candidate
    return next(iter(registry), FALLBACK_DEPLOYMENT)


def list_deployments() -> list[DeploymentConfig]:
    return [entry.config for entry in get_registry().values()]


def get_deployment(deployment_id: str | None = None) -> DeploymentEntry:
    registry = get_registry()
    if not registry:
        raise RuntimeError(f"No enabled deployment found under {deployments_dir()}")
    wanted = (deployment_id or "").strip()
    if wanted not in registry:
        if wanted:
            logger.warning("Unknown deployment {!r}, using the default", wanted)
        wanted = default_deployment_id()
    return registry[wanted]


def backend_url(cfg: DeploymentConfig) -> str:
    return (os.getenv("TREEMAP_BACKEND_URL") or cfg.backend.url).rstrip("/")


def clear_registry_cache() -> None:
    get_registry.cache_clear()

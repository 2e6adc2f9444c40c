from __future__ import annotations

from pydantic import BaseModel, Field


class DeploymentCenter(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class DeploymentDefaultView(BaseModel):
    center: DeploymentCenter
    zoom: float = Field(ge=0.0, le=24.0)


class DeploymentClustering(BaseModel):
    """
    Clustering parameters of the map source.

    `maxZoom` is the last zoom that clusters; `radius` is in pixels.
    """

    maxZoom: int = Field(default=16, ge=0, le=30)
    radius: float = Field(default=50.0, gt=0.0)
    extent: int = Field(default=512, gt=0)
    minZoom: int = Field(default=0, ge=0, le=30)
    minPoints: int = Field(default=2, ge=2)


class DeploymentInteraction(BaseModel):
    debounceMs: float = Field(default=300.0, ge=0.0)
    doubleTapMs: float = Field(default=200.0, gt=0.0)
    tapTolerancePx: float = Field(default=10.0, ge=0.0)
    touchPopupTimeoutMs: float = Field(default=3000.0, gt=0.0)


class DeploymentBackend(BaseModel):
    url: str = "http://localhost:8000"
    timeoutS: float = Field(default=10.0, gt=0.0)


class DeploymentEdits(BaseModel):
    # Apply edits locally before the backend confirms them.
    optimistic: bool = True
    # Pre-filled "source" of the add form.
    defaultSource: str = ""


class DeploymentConfig(BaseModel):
    id: str
    title: str
    defaultView: DeploymentDefaultView
    enabled: bool = True

    clustering: DeploymentClustering = Field(default_factory=DeploymentClustering)
    interaction: DeploymentInteraction = Field(default_factory=DeploymentInteraction)
    backend: DeploymentBackend = Field(default_factory=DeploymentBackend)
    edits: DeploymentEdits = Field(default_factory=DeploymentEdits)

    # CSV of species details keyed by tree_id, relative to the deployment directory.
    speciesTable: str | None = None

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from trees.types import Feature, TreeCandidate


class TreeRecord(BaseModel):
    """
    A tree as the backend returns it from `GET /trees` and `POST /trees`.

    Latitude/longitude may arrive as strings (CSV-backed stores) and `is_native` as
    "True"/"False".
    """

    model_config = ConfigDict(extra="ignore")

    location_id: str
    tree_id: str = ""
    common_name: str = ""
    latin_name: str = ""
    family: str = ""
    latitude: float
    longitude: float
    source: str = ""
    is_native: bool = False
    date_removed: str | None = None

    @field_validator("location_id", "tree_id", mode="before")
    @classmethod
    def _ids_as_str(cls, v: Any) -> Any:
        if v is None:
            return v
        return str(v)

    @field_validator("common_name", "latin_name", "family", "source", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("is_native", mode="before")
    @classmethod
    def _parse_native(cls, v: Any) -> Any:
        if v is None or v == "":
            return False
        return v

    @field_validator("date_removed", mode="before")
    @classmethod
    def _blank_as_none(cls, v: Any) -> Any:
        if v is None or not str(v).strip():
            return None
        return str(v)

    def to_feature(self) -> Feature:
        return Feature(
            id=self.location_id,
            lon=self.longitude,
            lat=self.latitude,
            common_name=self.common_name,
            tree_id=self.tree_id,
            latin_name=self.latin_name,
            family=self.family,
            is_native=self.is_native,
            source=self.source,
            active=self.date_removed is None,
        )


class CreateTreeRequest(BaseModel):
    tree_id: str
    latin_name: str
    common_name: str
    latitude: float
    longitude: float
    source: str
    is_native: bool
    date_added: str

    @classmethod
    def from_candidate(cls, candidate: TreeCandidate, *, date_added: str) -> "CreateTreeRequest":
        return cls(
            tree_id=candidate.tree_id,
            latin_name=candidate.latin_name,
            common_name=candidate.common_name,
            latitude=float(candidate.lat),
            longitude=float(candidate.lon),
            source=candidate.source,
            is_native=bool(candidate.is_native),
            date_added=date_added,
        )


class RemoveTreeRequest(BaseModel):
    removed_by: str = Field(min_length=1)

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from trees.types import Feature


@dataclass(frozen=True)
class PopupContent:
    feature_id: str
    lon: float
    lat: float
    title: str
    subtitle: str
    native_label: str
    status: str
    source: str


def build_popup_content(
    feature: Feature, species_info: Mapping[str, Mapping[str, Any]] | None = None
) -> PopupContent:
    """
    Popup for one tree; family and conservation status come from the species table
    (keyed by `tree_id`) when one is available.
    """
    info = (species_info or {}).get(feature.tree_id) or {}
    family = str(info.get("family") or feature.family or "").strip()
    latin = (feature.latin_name or "").strip()
    subtitle = " ".join(p for p in (family, latin) if p)
    return PopupContent(
        feature_id=feature.id,
        lon=feature.lon,
        lat=feature.lat,
        title=feature.common_name,
        subtitle=f"({subtitle})" if subtitle else "",
        native_label="Native" if feature.is_native else "Non-Native",
        status=str(info.get("iucn_red_list_assessment") or ""),
        source=feature.source,
    )

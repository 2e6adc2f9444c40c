from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Literal

from loguru import logger

from trees.types import Feature


ChangeKind = Literal["load", "add", "replace", "discard", "deactivate", "reactivate"]


@dataclass(frozen=True)
class StoreChange:
    kind: ChangeKind
    feature_ids: tuple[str, ...]
    version: int


StoreListener = Callable[[StoreChange], None]


class FeatureStore:
    """
    Single source of truth for tree features.

    Listeners are notified synchronously after every change of the active set, in
    subscription order. The engine subscribes first and rebuilds the cluster index in
    its listener, so later listeners never observe a stale index.

    Features are never deleted; removal flips `active`. The one exception is a
    provisional feature (an optimistic add that never got a server id), which is
    discarded or replaced once the remote call settles.
    """

    def __init__(self, features: Iterable[Feature] = ()) -> None:
        self._features: dict[str, Feature] = {}
        self._provisional: set[str] = set()
        self._listeners: list[StoreListener] = []
        self._version = 0
        for f in features:
            self._features[f.id] = f

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._features)

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._features

    def get(self, feature_id: str) -> Feature | None:
        return self._features.get(str(feature_id))

    def all(self) -> list[Feature]:
        return list(self._features.values())

    def active(self) -> list[Feature]:
        return [f for f in self._features.values() if f.active]

    def active_ids(self) -> set[str]:
        return {f.id for f in self._features.values() if f.active}

    def is_provisional(self, feature_id: str) -> bool:
        return str(feature_id) in self._provisional

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return dispose

    def load(self, features: Iterable[Feature]) -> None:
        """
        Replace the whole feature set (initial load / full refresh).
        """
        self._features = {f.id: f for f in features}
        self._provisional.clear()
        logger.info("Loaded {} trees ({} active)", len(self._features), len(self.active()))
        self._notify("load", tuple(self._features.keys()))

    def add(self, feature: Feature, *, provisional: bool = False) -> None:
        if feature.id in self._features:
            raise ValueError(f"Feature already exists: {feature.id}")
        self._features[feature.id] = feature
        if provisional:
            self._provisional.add(feature.id)
        self._notify("add", (feature.id,))

    def replace_provisional(self, provisional_id: str, feature: Feature) -> None:
        """
        Swap an optimistic placeholder for the canonical server feature in one change.
        """
        if provisional_id not in self._provisional:
            raise ValueError(f"Not a provisional feature: {provisional_id}")
        if feature.id != provisional_id and feature.id in self._features:
            raise ValueError(f"Feature already exists: {feature.id}")
        self._features.pop(provisional_id, None)
        self._provisional.discard(provisional_id)
        self._features[feature.id] = feature
        self._notify("replace", (provisional_id, feature.id))

    def discard_provisional(self, provisional_id: str) -> None:
        if provisional_id not in self._provisional:
            raise ValueError(f"Not a provisional feature: {provisional_id}")
        self._features.pop(provisional_id, None)
        self._provisional.discard(provisional_id)
        self._notify("discard", (provisional_id,))

    def set_active(self, feature_id: str, active: bool) -> bool:
        """
        Flip the soft-delete flag. Returns False when nothing changed.
        """
        fid = str(feature_id)
        current = self._features.get(fid)
        if current is None:
            raise KeyError(fid)
        if current.active == bool(active):
            return False
        self._features[fid] = current.with_active(active)
        self._notify("reactivate" if active else "deactivate", (fid,))
        return True

    def _notify(self, kind: ChangeKind, feature_ids: tuple[str, ...]) -> None:
        self._version += 1
        change = StoreChange(kind=kind, feature_ids=feature_ids, version=self._version)
        for listener in list(self._listeners):
            listener(change)

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from edits.errors import EditError
from trees.types import Feature


EditOperation = Literal["add", "remove"]


@dataclass(frozen=True)
class PendingEdit:
    """
    An in-flight edit; kept only until its remote call settles.
    """

    key: str
    operation: EditOperation
    snapshot: Feature
    submitted_at: float


@dataclass(frozen=True)
class EditResult:
    operation: EditOperation
    feature: Feature | None = None
    error: EditError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Feature | None:
        if self.error is not None:
            raise self.error
        return self.feature


@dataclass
class PendingEdits:
    """
    At most one in-flight edit per key.
    """

    _by_key: dict[str, PendingEdit] = field(default_factory=dict)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __len__(self) -> int:
        return len(self._by_key)

    def get(self, key: str) -> PendingEdit | None:
        return self._by_key.get(key)

    def begin(self, edit: PendingEdit) -> bool:
        if edit.key in self._by_key:
            return False
        self._by_key[edit.key] = edit
        return True

    def settle(self, key: str) -> PendingEdit | None:
        return self._by_key.pop(key, None)

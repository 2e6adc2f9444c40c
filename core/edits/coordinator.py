from __future__ import annotations

import asyncio
import time
import uuid
from typing import Callable

from loguru import logger

from audit.store import AuditStore
from edits.errors import DuplicateEditError, EditError, RemoteFailure, ValidationError
from edits.pending import EditOperation, EditResult, PendingEdit, PendingEdits
from remote.client import TreeBackend
from trees.store import FeatureStore
from trees.types import Feature, TreeCandidate


PROVISIONAL_PREFIX = "pending-"


def validate_candidate(candidate: TreeCandidate) -> None:
    if not (candidate.common_name or "").strip():
        raise ValidationError(
            "Missing species (common_name)",
            user_message="Please select a tree species.",
        )
    if not (candidate.source or "").strip():
        raise ValidationError(
            "Missing source identity",
            user_message="Please fill out all required fields.",
        )
    if not candidate.has_valid_coordinates():
        raise ValidationError(
            f"Invalid coordinates: lon={candidate.lon!r} lat={candidate.lat!r}",
            user_message="Please pick a location on the map.",
        )


def _id_clash(feature_id: str) -> RemoteFailure:
    return RemoteFailure(
        f"Server returned an id that is already in use: {feature_id}",
        user_message="The server returned a conflicting tree. Please reload the map.",
    )


class EditCoordinator:
    """
    Adds and removes trees: optimistic local change first, then the backend call,
    rolled back if the backend fails.

    The coordinator is the only writer of the `FeatureStore`. Results are returned
    as `EditResult`; backend failures never raise out of `add`/`remove`.
    """

    def __init__(
        self,
        store: FeatureStore,
        backend: TreeBackend,
        *,
        optimistic: bool = True,
        audit: AuditStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._backend = backend
        self._optimistic = bool(optimistic)
        self._audit = audit
        self._clock = clock
        self._pending = PendingEdits()

    @property
    def pending(self) -> PendingEdits:
        return self._pending

    async def add(self, candidate: TreeCandidate) -> EditResult:
        t0 = time.perf_counter()
        try:
            validate_candidate(candidate)
        except ValidationError as e:
            return self._finish("add", None, candidate.common_name, candidate.source, e, t0)

        key = candidate.edit_key()
        provisional = candidate.to_feature(f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex}")
        if not self._pending.begin(
            PendingEdit(key=key, operation="add", snapshot=provisional, submitted_at=self._clock())
        ):
            err = DuplicateEditError(
                f"Add already in flight: {key}",
                user_message="This tree is already being saved.",
            )
            return self._finish("add", None, candidate.common_name, candidate.source, err, t0)

        try:
            if self._optimistic:
                self._store.add(provisional, provisional=True)
            try:
                created = await self._backend.create_tree(candidate)
            except RemoteFailure as e:
                self._rollback_add(provisional)
                return self._finish(
                    "add", None, candidate.common_name, candidate.source, e, t0
                )
            except asyncio.CancelledError:
                self._rollback_add(provisional)
                raise

            error = self._reconcile_add(provisional, created)
            if error is not None:
                return self._finish(
                    "add",
                    None,
                    candidate.common_name,
                    candidate.source,
                    error,
                    t0,
                    feature_id=created.id,
                )
            return self._finish("add", created, created.common_name, candidate.source, None, t0)
        finally:
            self._pending.settle(key)

    async def remove(self, feature_id: str, actor: str | None) -> EditResult:
        t0 = time.perf_counter()
        fid = str(feature_id)
        feature = self._store.get(fid)
        name = feature.common_name if feature is not None else None

        try:
            feature = self._validate_remove(fid, feature, actor)
        except ValidationError as e:
            return self._finish("remove", feature, name, actor, e, t0, feature_id=fid)
        actor = (actor or "").strip()

        if not self._pending.begin(
            PendingEdit(key=fid, operation="remove", snapshot=feature, submitted_at=self._clock())
        ):
            err = DuplicateEditError(
                f"Edit already in flight for {fid}",
                user_message="This tree is already being updated.",
            )
            return self._finish("remove", feature, name, actor, err, t0, feature_id=fid)

        try:
            if self._optimistic:
                self._store.set_active(fid, False)
            try:
                await self._backend.remove_tree(fid, actor)
            except RemoteFailure as e:
                self._store.set_active(fid, True)
                return self._finish("remove", feature, name, actor, e, t0, feature_id=fid)
            except asyncio.CancelledError:
                self._store.set_active(fid, True)
                raise

            if not self._optimistic:
                self._store.set_active(fid, False)
            return self._finish(
                "remove", self._store.get(fid), name, actor, None, t0, feature_id=fid
            )
        finally:
            self._pending.settle(fid)

    def _validate_remove(
        self, fid: str, feature: Feature | None, actor: str | None
    ) -> Feature:
        if not (actor or "").strip():
            raise ValidationError(
                "Missing actor identity for removal",
                user_message="Please enter your name to remove a tree.",
            )
        if feature is None:
            raise ValidationError(f"Unknown tree: {fid}", user_message="This tree no longer exists.")
        if self._store.is_provisional(fid):
            raise ValidationError(
                f"Tree {fid} is still being saved",
                user_message="This tree is still being saved.",
            )
        if not feature.active and fid not in self._pending:
            raise ValidationError(
                f"Tree {fid} is already removed",
                user_message="This tree was already removed.",
            )
        return feature

    def _reconcile_add(self, provisional: Feature, created: Feature) -> RemoteFailure | None:
        """
        Put the server's feature in the store. Returns an error when its id clashes
        with a tree already there; the placeholder never outlives this call.
        """
        store = self._store
        if self._optimistic and store.is_provisional(provisional.id):
            if created.id in store:
                store.discard_provisional(provisional.id)
                return _id_clash(created.id)
            store.replace_provisional(provisional.id, created)
            return None

        if created.id in store:
            if self._optimistic:
                # A reload replaced the placeholder and already has the server copy.
                return None
            return _id_clash(created.id)
        store.add(created)
        return None

    def _rollback_add(self, provisional: Feature) -> None:
        if self._optimistic and self._store.is_provisional(provisional.id):
            self._store.discard_provisional(provisional.id)

    def _finish(
        self,
        operation: EditOperation,
        feature: Feature | None,
        common_name: str | None,
        actor: str | None,
        error: EditError | None,
        t0: float,
        *,
        feature_id: str | None = None,
    ) -> EditResult:
        duration_ms = (time.perf_counter() - t0) * 1000.0
        fid = feature_id or (feature.id if feature is not None else None)

        if error is None:
            logger.info("{} tree {} ({}) by {!r}", operation, fid, common_name, actor)
        elif isinstance(error, RemoteFailure):
            logger.warning("{} tree {} failed remotely: {}", operation, fid, error)
        else:
            logger.info("{} tree {} rejected: {}", operation, fid, error)

        if self._audit is not None:
            self._audit.record(
                operation=operation,
                feature_id=fid,
                common_name=common_name,
                actor=actor,
                outcome="ok" if error is None else "failed",
                error_type=type(error).__name__ if error is not None else None,
                error_message=str(error) if error is not None else None,
                duration_ms=duration_ms,
            )

        return EditResult(
            operation=operation,
            feature=feature if error is None else None,
            error=error,
        )

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from edits.errors import RemoteFailure
from remote.models import CreateTreeRequest, RemoveTreeRequest, TreeRecord
from trees.types import Feature, TreeCandidate


class TreeBackend(Protocol):
    """
    What the core needs from the tree backend.
    """

    async def fetch_trees(self) -> list[Feature]: ...

    async def create_tree(self, candidate: TreeCandidate) -> Feature: ...

    async def remove_tree(self, location_id: str, removed_by: str) -> Any: ...


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TreeApiClient:
    """
    httpx client for the tree backend.

    - GET  /trees                          -> list of tree records
    - POST /trees                          -> canonical record incl. `location_id`
    - PUT  /trees/remove/{location_id}     -> soft delete, body `{"removed_by": ...}`

    Any non-2xx answer, transport error or malformed body raises `RemoteFailure`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout_s, transport=transport
        )

    async def __aenter__(self) -> "TreeApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_trees(self) -> list[Feature]:
        data = await self._request("GET", "/trees")
        if not isinstance(data, list):
            raise RemoteFailure("Expected a list of trees from GET /trees")
        out: list[Feature] = []
        for i, row in enumerate(data):
            try:
                out.append(TreeRecord.model_validate(row).to_feature())
            except PydanticValidationError as e:
                # One bad row should not hide the rest of the map.
                logger.warning("Skipping invalid tree row {}: {}", i, e.errors()[0]["msg"])
        return out

    async def create_tree(self, candidate: TreeCandidate) -> Feature:
        body = CreateTreeRequest.from_candidate(candidate, date_added=_utc_now_iso())
        data = await self._request("POST", "/trees", json=body.model_dump())
        try:
            return TreeRecord.model_validate(data).to_feature()
        except PydanticValidationError as e:
            raise RemoteFailure(f"Unexpected create response: {e}") from e

    async def remove_tree(self, location_id: str, removed_by: str) -> Any:
        body = RemoveTreeRequest(removed_by=removed_by)
        return await self._request(
            "PUT", f"/trees/remove/{location_id}", json=body.model_dump()
        )

    async def _request(self, method: str, path: str, *, json: Any = None) -> Any:
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise RemoteFailure(
                f"{method} {path} failed: {type(e).__name__}: {e}",
                user_message="Could not reach the server. Please try again.",
            ) from e

        if not resp.is_success:
            raise RemoteFailure(
                f"HTTP error! status: {resp.status_code}", status_code=resp.status_code
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteFailure(f"{method} {path} returned invalid JSON") from e

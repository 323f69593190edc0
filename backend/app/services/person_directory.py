"""Read-only access to person profiles owned by the upstream people service.

Classes:
    PersonDirectory: Protocol the retrieval layer depends on.
    HttpPersonDirectory: Implementation backed by the people REST API.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol
from uuid import UUID

import httpx
from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.core.errors import StoreError
from app.schemas import PersonProfile


class PersonDirectory(Protocol):
    async def fetch_person_with_relations(self, person_id: UUID) -> Optional[PersonProfile]: ...

    async def list_people(self) -> list[PersonProfile]: ...


class HttpPersonDirectory:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, *, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(
            base_url=settings.person_api_url,
            timeout=settings.person_api_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_person_with_relations(self, person_id: UUID) -> Optional[PersonProfile]:
        try:
            response = await self._client.get(f"/persons/{person_id}", params={"includeRelations": "true"})
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return PersonProfile.model_validate(_unwrap(response.json()))
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            raise StoreError(
                f"Failed to fetch person: {exc}", entity_id=person_id, operation="fetch_person"
            ) from exc

    async def list_people(self) -> list[PersonProfile]:
        try:
            response = await self._client.get("/persons", params={"includeRelations": "true"})
            response.raise_for_status()
            items = _unwrap(response.json())
            return [PersonProfile.model_validate(item) for item in items or []]
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            raise StoreError(f"Failed to list people: {exc}", operation="list_people") from exc


def _unwrap(body: Any) -> Any:
    # The people API wraps payloads in {"status", "data", "meta"}.
    if isinstance(body, dict) and "data" in body and "id" not in body:
        return body["data"]
    return body

"""Client for the external paginated user source.

The source answers ``GET {base_url}/users?limit=N&skip=M`` with a JSON page
holding a ``users`` list and a declared ``total``.
"""
from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import SourceSettings, settings
from .errors import IngestionError

logger = logging.getLogger(__name__)


class SourceUser(BaseModel):
    """One user as published by the source. Unknown fields are ignored."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    ssn: str
    email: str
    age: int
    role: str
    phone: str | None = None
    username: str | None = None
    birth_date: str | None = Field(default=None, alias="birthDate")
    gender: str | None = None


class SourcePage(BaseModel):
    """One page of the source listing.

    Records stay raw here; the mapper validates them one by one so a
    malformed record is reported as a validation error, not a bad page.
    """
    model_config = ConfigDict(extra="ignore")

    users: list[dict]
    total: int = Field(ge=0)
    skip: int | None = None
    limit: int | None = None


class UserSource:
    """Fetches pages of users over HTTP.

    The underlying ``httpx.AsyncClient`` may be injected (tests pass one
    built on ``httpx.MockTransport``); otherwise one is created from
    ``SourceSettings`` and owned by this object.
    """

    def __init__(
        self,
        config: SourceSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or settings.source
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.timeout,
            )
        return self._client

    async def fetch_page(self, *, limit: int, skip: int) -> SourcePage:
        """Fetch one page.

        Raises:
            IngestionError: On transport errors, non-2xx status, a body that
                is not JSON, or a body without a ``users`` list.
        """
        logger.debug(f"Fetching users page: limit={limit} skip={skip}")
        try:
            response = await self.client.get("/users", params={"limit": limit, "skip": skip})
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise IngestionError(f"Request for users page skip={skip} failed: {e}") from e
        except ValueError as e:
            raise IngestionError(f"Users page skip={skip} is not valid JSON") from e

        if not isinstance(body, dict) or body.get("users") is None:
            raise IngestionError(f"Invalid response from user source (skip={skip}): missing users list")

        try:
            return SourcePage.model_validate(body)
        except ValidationError as e:
            raise IngestionError(f"Invalid response from user source (skip={skip})") from e

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> UserSource:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

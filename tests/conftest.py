"""Shared fixtures: in-memory catalog database and a fake user source."""
from __future__ import annotations

import os

# Keep imports of catalog.config away from a developer's .env and real database.
os.environ.setdefault("DB_URL", "sqlite+aiosqlite://")
os.environ.setdefault("INGESTION_LOAD_ON_STARTUP", "false")

from dataclasses import dataclass, field
from typing import Callable

import httpx
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from catalog.config import SourceSettings
from catalog.db import create_schema, register_sqlite_functions
from catalog.pipelines.mapping import to_users
from catalog.source import UserSource

SOURCE_BASE_URL = "https://users.example.test"


def source_user(
    user_id: int,
    first: str,
    last: str,
    ssn: str,
    email: str | None = None,
    **extra,
) -> dict:
    """A user record shaped like the external source publishes it."""
    record = {
        "id": user_id,
        "firstName": first,
        "lastName": last,
        "maidenName": "",
        "ssn": ssn,
        "email": email or f"{first}.{last}@example.com".lower(),
        "age": 30,
        "role": "user",
        "phone": "+1 555-0100",
        "username": f"{first}{last}".lower(),
        "birthDate": "1994-1-1",
        "gender": "female",
        "address": {"city": "Springfield"},
    }
    record.update(extra)
    return record


CATALOG_USERS = [
    source_user(1, "John", "Doe", "123-45-6789"),
    source_user(2, "Doe", "John", "987-65-4321"),
    source_user(3, "Jane", "Smith", "555-12-3456"),
    source_user(4, "Johnny", "Appleseed", "111-22-3333", email="johnny@example.com"),
    source_user(5, "Emily", "Johnson", "444-55-6666"),
    source_user(123, "Mark", "Twain", "222-33-4444"),
]


def many_source_users(count: int) -> list[dict]:
    return [
        source_user(i, f"First{i}", f"Last{i}", f"{i:03d}-00-{i:04d}")
        for i in range(1, count + 1)
    ]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    register_sqlite_functions(engine)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded(session_factory):
    """Catalog pre-loaded with ``CATALOG_USERS``."""
    async with session_factory() as session:
        session.add_all(to_users(CATALOG_USERS))
        await session.commit()
    return session_factory


@dataclass
class FakeSource:
    """Serves ``users`` page by page and records every requested offset.

    ``fail`` decides, per request, whether to answer with an error; it gets
    the zero-based request number and the requested skip.
    """
    users: list[dict]
    fail: Callable[[int, int], bool] = lambda n, skip: False
    total: int | None = None
    calls: list[int] = field(default_factory=list)
    on_request: Callable[[int], object] | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        limit = int(request.url.params["limit"])
        skip = int(request.url.params["skip"])
        number = len(self.calls)
        self.calls.append(skip)

        if self.on_request is not None:
            await self.on_request(skip)
        if self.fail(number, skip):
            return httpx.Response(503, json={"message": "Service Unavailable"})

        return httpx.Response(
            200,
            json={
                "users": self.users[skip:skip + limit],
                "total": len(self.users) if self.total is None else self.total,
                "skip": skip,
                "limit": limit,
            },
        )

    def source(self, page_size: int = 30) -> UserSource:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler),
            base_url=SOURCE_BASE_URL,
        )
        return UserSource(SourceSettings(base_url=SOURCE_BASE_URL, page_size=page_size), client=client)

"""HTTP API tests through httpx's ASGI transport."""
from __future__ import annotations

import logging

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from catalog import api
from catalog.api import app, get_pipeline
from catalog.db import get_session
from catalog.pipelines.ingest import IngestionPipeline, RetryPolicy, count_users
from conftest import CATALOG_USERS, FakeSource, many_source_users


def use_session_factory(session_factory):
    async def session_override():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = session_override


def use_source(session_factory, fake: FakeSource):
    async def pipeline_override():
        yield IngestionPipeline(
            session_factory,
            fake.source(),
            retry_policy=RetryPolicy(max_attempts=2, delay_seconds=0),
        )

    app.dependency_overrides[get_pipeline] = pipeline_override


@pytest_asyncio.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seeded_client(seeded, client):
    use_session_factory(seeded)
    return client


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_root_lists_endpoints(client):
    body = (await client.get("/")).json()
    assert body["endpoints"]["search_users"].startswith("/api/users/search")


@pytest.mark.asyncio
async def test_list_users_uses_camel_case(seeded_client):
    response = await seeded_client.get("/api/users")
    assert response.status_code == 200
    users = response.json()
    assert [u["id"] for u in users] == sorted(u["id"] for u in CATALOG_USERS)
    assert users[0]["firstName"] == "John"
    assert users[0]["birthDate"] == "1994-1-1"
    assert "first_name" not in users[0]


@pytest.mark.asyncio
async def test_get_user_by_id(seeded_client):
    response = await seeded_client.get("/api/users/3")
    assert response.status_code == 200
    assert response.json()["lastName"] == "Smith"


@pytest.mark.asyncio
async def test_get_user_by_id_not_found(seeded_client):
    response = await seeded_client.get("/api/users/999")
    assert response.status_code == 404
    assert response.json() == {"error": "not_found", "detail": "User not found with id: 999"}


@pytest.mark.asyncio
async def test_get_user_by_email(seeded_client):
    response = await seeded_client.get("/api/users/email/Jane.Smith@Example.com")
    assert response.status_code == 200
    assert response.json()["id"] == 3


@pytest.mark.asyncio
async def test_get_user_by_email_not_found(seeded_client):
    response = await seeded_client.get("/api/users/email/ghost@example.com")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("params", "expected"),
    [
        ({"q": "John Doe"}, [1, 2]),
        ({"q": "123"}, [123]),
        ({"q": "123-45-6789"}, [1]),
        ({"q": ""}, [1, 2, 3, 4, 5, 123]),
        ({}, [1, 2, 3, 4, 5, 123]),
        ({"q": "zzzz"}, []),
    ],
)
async def test_search(seeded_client, params, expected):
    response = await seeded_client.get("/api/users/search", params=params)
    assert response.status_code == 200
    assert [u["id"] for u in response.json()] == expected


@pytest.mark.asyncio
async def test_data_status(seeded_client):
    response = await seeded_client.get("/api/data/status")
    assert response.json() == {"totalUsers": len(CATALOG_USERS), "dataLoaded": True}


@pytest.mark.asyncio
async def test_load_data(session_factory, client):
    use_session_factory(session_factory)
    use_source(session_factory, FakeSource(many_source_users(65)))

    response = await client.post("/api/data/load")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert (body["previousCount"], body["currentCount"], body["loadedCount"]) == (0, 65, 65)
    status = (await client.get("/api/data/status")).json()
    assert status == {"totalUsers": 65, "dataLoaded": True}


@pytest.mark.asyncio
async def test_load_data_when_already_loaded(seeded, client):
    fake = FakeSource(many_source_users(10))
    use_session_factory(seeded)
    use_source(seeded, fake)

    body = (await client.post("/api/data/load")).json()

    assert body["loadedCount"] == 0
    assert body["currentCount"] == len(CATALOG_USERS)
    assert fake.calls == []


@pytest.mark.asyncio
async def test_load_data_failure(session_factory, client):
    use_session_factory(session_factory)
    use_source(session_factory, FakeSource(many_source_users(5), fail=lambda n, skip: True))

    response = await client.post("/api/data/load")

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "ingestion_failed"
    assert "503" in body["detail"]
    status = (await client.get("/api/data/status")).json()
    assert status == {"totalUsers": 0, "dataLoaded": False}


@pytest.mark.asyncio
async def test_startup_load_failure_is_not_fatal(session_factory, monkeypatch, caplog):
    fake = FakeSource(many_source_users(5), fail=lambda n, skip: True)
    monkeypatch.setattr(api, "AsyncSessionMaker", session_factory)
    monkeypatch.setattr(api, "UserSource", lambda config: fake.source())
    monkeypatch.setattr(api.settings.retry, "delay", 0)

    with caplog.at_level(logging.WARNING, logger="catalog.api"):
        await api.load_on_startup()

    assert "Failed to load initial data automatically" in caplog.text
    assert len(fake.calls) == api.settings.retry.max_attempts


@pytest.mark.asyncio
async def test_startup_load(session_factory, monkeypatch):
    fake = FakeSource(many_source_users(5))
    monkeypatch.setattr(api, "AsyncSessionMaker", session_factory)
    monkeypatch.setattr(api, "UserSource", lambda config: fake.source())

    await api.load_on_startup()

    assert fake.calls == [0]
    async with session_factory() as session:
        assert await count_users(session) == 5


@pytest.mark.asyncio
async def test_startup_survives_unavailable_store(session_factory, monkeypatch, caplog):
    def locked_store():
        raise OperationalError("SELECT count(*) FROM users", {}, Exception("database is locked"))

    fake = FakeSource(many_source_users(5))
    monkeypatch.setattr(api, "AsyncSessionMaker", locked_store)
    monkeypatch.setattr(api, "UserSource", lambda config: fake.source())
    monkeypatch.setattr(api.settings.retry, "delay", 0)

    with caplog.at_level(logging.WARNING, logger="catalog.api"):
        await api.load_on_startup()

    assert "database is locked" in caplog.text
    assert fake.calls == []


@pytest.mark.asyncio
async def test_search_accepts_long_terms(seeded_client):
    response = await seeded_client.get("/api/users/search", params={"q": "x" * 2000})
    assert response.status_code == 200
    assert response.json() == []

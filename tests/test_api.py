"""Integration tests for the track pool API."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.dependencies import get_retry_policy, get_source_factory
from app.api.middleware.auth import create_access_token
from app.config import settings
from app.database import get_session
from app.domain.errors import PoolStoreError, SourceError
from app.domain.models import PoolTrack
from app.main import create_app
from app.ports.source import SourcePort
from app.services.pool import PoolStore
from app.services.retry import RetryPolicy
from conftest import make_track

BASE = "http://test"
CRON_HEADERS = {"Authorization": f"Bearer {settings.cron_auth_key}"}


@pytest.fixture
def app(session_factory):
    application = create_app()

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_session] = override_session
    return application


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE) as c:
        yield c


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token('user-1')}"}


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        await PoolStore(session).upsert_many([make_track(n) for n in range(1, 4)])
        await session.commit()


# ── Health ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ── Sampling ───────────────────────────────────────


@pytest.mark.asyncio
async def test_random_on_empty_pool(client: AsyncClient):
    resp = await client.get("/tracks/random", params={"count": 5})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "No tracks available"
    assert resp.headers["cache-control"] == "no-store"


@pytest.mark.asyncio
async def test_random_tracks(client: AsyncClient, seeded):
    resp = await client.get("/tracks/random", params={"count": "2"})
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-store"
    data = resp.json()
    assert data["success"] is True
    assert len(data["tracks"]) == 2
    assert data["tracks"][0]["metadata"] == {"source": "test"}


@pytest.mark.asyncio
async def test_random_with_malformed_count_uses_default(client: AsyncClient, seeded):
    resp = await client.get("/tracks/random", params={"count": "lots"})
    assert resp.status_code == 200
    assert len(resp.json()["tracks"]) == 3


# ── Likes / dislikes ───────────────────────────────


@pytest.mark.asyncio
async def test_like_requires_auth(client: AsyncClient):
    resp = await client.post("/tracks/like", json={"track_id": 1})
    assert resp.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, detail",
    [
        ({}, "track_id is required"),
        ({"track_id": None}, "track_id is required"),
        ({"track_id": "abc"}, "track_id must be a valid positive integer"),
        ({"track_id": -5}, "track_id must be a valid positive integer"),
        ({"track_id": 1.5}, "track_id must be a valid positive integer"),
        ({"track_id": True}, "track_id must be a valid positive integer"),
        ({"track_id": "²"}, "track_id must be a valid positive integer"),
        ({"track_id": "١٢"}, "track_id must be a valid positive integer"),
    ],
)
async def test_like_rejects_bad_track_id(client: AsyncClient, auth_headers, body, detail):
    resp = await client.post("/tracks/like", json=body, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == detail


@pytest.mark.asyncio
async def test_liked_track_is_excluded_from_sampling(client: AsyncClient, auth_headers, seeded):
    resp = await client.post("/tracks/like", json={"track_id": "2"}, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["track_id"] == "2"
    assert body["kind"] == "like"

    resp = await client.get("/tracks/random", headers=auth_headers)
    assert sorted(t["track_id"] for t in resp.json()["tracks"]) == ["1", "3"]

    # anonymous callers see the whole pool
    resp = await client.get("/tracks/random")
    assert len(resp.json()["tracks"]) == 3


@pytest.mark.asyncio
async def test_dislike_replaces_like(client: AsyncClient, auth_headers, seeded):
    await client.post("/tracks/like", json={"track_id": 1}, headers=auth_headers)
    resp = await client.post("/tracks/dislike", json={"track_id": 1}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["kind"] == "dislike"


@pytest.mark.asyncio
async def test_dislike_rate_limited(client: AsyncClient, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "dislike_rate_limit", 2)
    for track_id in (1, 2):
        resp = await client.post("/tracks/dislike", json={"track_id": track_id}, headers=auth_headers)
        assert resp.status_code == 200

    resp = await client.post("/tracks/dislike", json={"track_id": 3}, headers=auth_headers)
    assert resp.status_code == 429
    assert resp.json()["detail"] == "Too many requests"

    # likes have their own bucket
    resp = await client.post("/tracks/like", json={"track_id": 3}, headers=auth_headers)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_invalid_body_does_not_consume_tokens(client: AsyncClient, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "like_rate_limit", 1)
    resp = await client.post("/tracks/like", json={"track_id": "x"}, headers=auth_headers)
    assert resp.status_code == 400
    resp = await client.post("/tracks/like", json={"track_id": 9}, headers=auth_headers)
    assert resp.status_code == 200


# ── Jobs ───────────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "test-cron-key"}])
async def test_jobs_require_cron_key(client: AsyncClient, headers):
    resp = await client.post("/jobs/refill-pool", headers=headers)
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_jobs_reject_get(client: AsyncClient):
    resp = await client.get("/jobs/refill-pool", headers=CRON_HEADERS)
    assert resp.status_code == 405


@pytest.mark.asyncio
async def test_jobs_deny_all_without_configured_key(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "cron_auth_key", None)
    resp = await client.post("/jobs/refill-pool", headers=CRON_HEADERS)
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refill_pool_then_artist_refill(client: AsyncClient):
    resp = await client.post("/jobs/refill-pool", headers=CRON_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["source"] == "chart"
    assert data["added"] == 18
    assert data["skipped_no_preview"] == 2
    assert data["pool_size"] == 18

    resp = await client.post("/jobs/refill-pool-artist", headers=CRON_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["source"] == "artist"
    assert data["pool_size"] == 36


@pytest.mark.asyncio
async def test_refill_evicts_beyond_max_size(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "pool_max_size", 10)
    resp = await client.post("/jobs/refill-pool", headers=CRON_HEADERS)
    data = resp.json()
    assert data["added"] == 18
    assert data["evicted"] == 8
    assert data["pool_size"] == 10


@pytest.mark.asyncio
async def test_artist_refill_on_empty_pool(client: AsyncClient):
    resp = await client.post("/jobs/refill-pool-artist", headers=CRON_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["added"] == 0


@pytest.mark.asyncio
async def test_cleanup_without_lastfm_key_keeps_everything(client: AsyncClient, seeded, monkeypatch):
    monkeypatch.setattr(settings, "lastfm_api_key", None)
    resp = await client.post("/jobs/cleanup-pool", headers=CRON_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["scanned"] == 3
    assert data["deleted"] == 0


@pytest.mark.asyncio
async def test_random_store_failure(client: AsyncClient, engine):
    async with engine.begin() as conn:
        await conn.run_sync(PoolTrack.__table__.drop)

    resp = await client.get("/tracks/random")
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Failed to fetch tracks"
    assert resp.headers["cache-control"] == "no-store"


@pytest.mark.asyncio
async def test_eviction_failure_keeps_upserted_tracks(client: AsyncClient, session_factory, monkeypatch):
    async def failing_evict(self, max_size):
        raise PoolStoreError("Failed to evict old tracks: disk full")

    monkeypatch.setattr(PoolStore, "evict_to_max", failing_evict)
    resp = await client.post("/jobs/refill-pool", headers=CRON_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["added"] == 18
    assert data["evicted"] == 0
    assert "disk full" in data["eviction_error"]
    assert data["pool_size"] == 18

    async with session_factory() as session:
        assert await PoolStore(session).size() == 18


class _UnavailableSource(SourcePort):
    name = "chart"

    def __init__(self) -> None:
        self.calls = 0

    async def fetch_tracks(self):
        self.calls += 1
        raise SourceError("apple_rss", "request failed with status 503: Service Unavailable")


class _UnavailableSourceFactory:
    def __init__(self) -> None:
        self.source = _UnavailableSource()

    def chart(self) -> SourcePort:
        return self.source


@pytest.mark.asyncio
async def test_refill_gives_up_with_bad_gateway(app, client: AsyncClient, session_factory):
    factory = _UnavailableSourceFactory()
    app.dependency_overrides[get_source_factory] = lambda: factory
    app.dependency_overrides[get_retry_policy] = lambda: RetryPolicy(
        max_attempts=2, base_delay=0, jitter_factor=0
    )

    resp = await client.post("/jobs/refill-pool", headers=CRON_HEADERS)
    assert resp.status_code == 502
    assert "Failed after 2 attempts" in resp.json()["detail"]
    assert factory.source.calls == 2

    async with session_factory() as session:
        assert await PoolStore(session).size() == 0

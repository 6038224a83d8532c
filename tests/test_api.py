"""HTTP-level tests for the feeds API.

The app is driven through httpx's ASGI transport, which skips the startup
hooks; each test installs its own FeedServer on ``app.state``.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from feedserver.core.config import settings
from feedserver.main import app
from feedserver.services.fetcher import FetchResult
from feedserver.services.ingest import FeedServer
from feedserver.services.normalize import MINUTE_MS, now_ms
from feedserver.services.parser import parse_rss

FEED_URL = "https://example.com/feed.xml"


@pytest.fixture
def fetcher(sample_rss_xml):
    data = parse_rss(sample_rss_xml)
    data["lastRead"] = now_ms()
    data["expires"] = data["lastRead"] + 60 * MINUTE_MS
    mock = AsyncMock()
    mock.fetch.return_value = FetchResult(status=200, data=data)
    return mock


@pytest_asyncio.fixture
async def server(store, fetcher):
    srv = FeedServer(store, fetcher=fetcher)
    app.state.feed_server = srv
    yield srv
    await srv.close()


@pytest_asyncio.fixture
async def client(server):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}


@pytest.mark.asyncio
class TestFeeds:
    async def test_register(self, client, server) -> None:
        resp = await client.post("/v1/feeds", json={"url": FEED_URL})
        await server.drain()

        assert resp.status_code == 200
        assert resp.json() == {"id": "1", "url": FEED_URL}

    async def test_register_rejects_bad_url(self, client) -> None:
        resp = await client.post("/v1/feeds", json={"url": "not a url"})
        assert resp.status_code == 422

    async def test_register_store_down(self, client, server) -> None:
        server.register = AsyncMock(side_effect=RedisConnectionError("refused"))
        resp = await client.post("/v1/feeds", json={"url": FEED_URL})
        assert resp.status_code == 503

    async def test_get_feed(self, client, server) -> None:
        await client.post("/v1/feeds", json={"url": FEED_URL})
        await server.drain()

        resp = await client.get("/v1/feeds/1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == "1"
        assert body["url"] == FEED_URL
        assert body["channel"]["title"] == "Test Feed"
        assert body["itemCount"] == 2

    async def test_get_unknown_feed(self, client) -> None:
        resp = await client.get("/v1/feeds/99")
        assert resp.status_code == 404

    async def test_list_items(self, client, server) -> None:
        await client.post("/v1/feeds", json={"url": FEED_URL})
        await server.drain()

        resp = await client.get("/v1/feeds/1/items", params={"limit": 1})
        assert resp.status_code == 200
        items = resp.json()["items"]
        assert [i["title"] for i in items] == ["First Article"]

        resp = await client.get("/v1/feeds/1/items", params={"limit": 5, "offset": 1})
        assert [i["title"] for i in resp.json()["items"]] == ["Second Article"]

    async def test_list_items_validates_limit(self, client) -> None:
        resp = await client.get("/v1/feeds/1/items", params={"limit": 0})
        assert resp.status_code == 422


@pytest.mark.asyncio
class TestRefresh:
    async def test_read_interval(self, client) -> None:
        resp = await client.post("/v1/refresh")
        assert resp.json() == {"interval": 60}

    async def test_set_interval(self, client, server) -> None:
        resp = await client.post("/v1/refresh", params={"seconds": 15})
        assert resp.json() == {"interval": 15}
        assert server.refresh_interval == 15


@pytest.mark.asyncio
class TestAdminToken:
    @pytest.fixture(autouse=True)
    def _token(self, monkeypatch):
        monkeypatch.setattr(settings, "admin_token", "s3cret")

    async def test_missing_token(self, client) -> None:
        resp = await client.post("/v1/feeds", json={"url": FEED_URL})
        assert resp.status_code == 401

    async def test_wrong_token(self, client) -> None:
        resp = await client.post("/v1/refresh", headers={"X-Admin-Token": "nope"})
        assert resp.status_code == 401

    async def test_valid_token(self, client, server) -> None:
        resp = await client.post(
            "/v1/feeds", json={"url": FEED_URL}, headers={"X-Admin-Token": "s3cret"}
        )
        await server.drain()
        assert resp.status_code == 200

    async def test_reads_need_no_token(self, client) -> None:
        resp = await client.get("/v1/feeds/1")
        assert resp.status_code == 404

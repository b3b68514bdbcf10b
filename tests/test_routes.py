from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import Decimal

import httpx
import pytest
from conftest import StubFetcher, make_market, mock_client
from fastapi.testclient import TestClient

from truthbounty.config import Settings
from truthbounty.context import AppContext
from truthbounty.dependencies import get_context, get_session
from truthbounty.errors import UpstreamError
from truthbounty.fetchers.base import FetchContext
from truthbounty.fetchers.metaculus import MetaculusFetcher
from truthbounty.fetchers.registry import FetcherRegistry
from truthbounty.main import app
from truthbounty.services.cache import MemoryCache
from truthbounty.services.orchestrator import BackgroundSync
from truthbounty.services.price_oracle import PriceOracle
from truthbounty.services.rate_limiter import RateLimiter
from truthbounty.traders.base import Amount, AggregatedUserStats, TraderStats, TraderStatsSource

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40


def trader(address, bets, wins, platform="stub"):
    return TraderStats(
        address=address,
        platform=platform,
        total_bets=bets,
        wins=wins,
        losses=bets - wins,
        volume=Amount.of(bets * 10, "USDC"),
        pnl=Amount.of(wins - (bets - wins), "USDC"),
    )


class StubTradersSource(TraderStatsSource):
    platform = "stub"
    name = "Stub"
    strategy = "wilson"

    def __init__(self, traders=None, error=None):
        super().__init__(http=None)
        self.traders = traders or []
        self.error = error

    async def fetch_traders(self, limit, deadline):
        if self.error:
            raise self.error
        return self.traders[:limit]


def build_test_context(fetchers, source=None, settings=None, session_factory=None) -> AppContext:
    cache = MemoryCache(default_ttl=60)
    limiter = RateLimiter()
    fetch_context = FetchContext(cache=cache, rate_limiter=limiter, page_delay=0)
    registry = FetcherRegistry()
    for kwargs in fetchers:
        registry.register(StubFetcher(fetch_context, **kwargs))
    return AppContext(
        settings=settings or Settings(background_sync_enabled=False),
        cache=cache,
        rate_limiter=limiter,
        fetch_context=fetch_context,
        registry=registry,
        oracle=PriceOracle(),
        background_sync=BackgroundSync(registry),
        trader_sources={"stub": source or StubTradersSource()},
        session_factory=session_factory,
    )


def use_context(ctx: AppContext) -> None:
    app.dependency_overrides[get_context] = lambda: ctx


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def markets_context():
    ctx = build_test_context([
        {
            "platform": "alpha",
            "pages": [[
                make_market("alpha", "1", "Will BTC hit 100k?", volume=50.0),
                make_market("alpha", "2", "Lakers win tonight?", category="Sports", volume=500.0),
            ]],
        },
        {"platform": "gamma", "pages": [[make_market("gamma", "1", "ETH flips BTC?", volume=200.0)]]},
    ])
    use_context(ctx)
    return ctx


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_platforms(client, markets_context):
    response = client.get("/v1/platforms")
    assert response.status_code == 200
    assert [p["slug"] for p in response.json()] == ["alpha", "gamma"]


def test_markets_sorted_by_volume(client, markets_context):
    response = client.get("/v1/markets")
    assert response.status_code == 200
    body = response.json()
    assert [m["id"] for m in body["data"]] == ["alpha-2", "gamma-1", "alpha-1"]
    assert body["total"] == 3
    assert body["platforms"] == [
        {"platform": "alpha", "count": 2, "error": None},
        {"platform": "gamma", "count": 1, "error": None},
    ]


def test_markets_filters_and_pagination(client, markets_context):
    body = client.get("/v1/markets", params={"category": "crypto", "search": "btc"}).json()
    assert [m["id"] for m in body["data"]] == ["gamma-1", "alpha-1"]

    body = client.get("/v1/markets", params={"limit": 1, "offset": 1}).json()
    assert [m["id"] for m in body["data"]] == ["gamma-1"]
    assert body["total"] == 3

    body = client.get("/v1/markets", params={"platform": "gamma"}).json()
    assert [p["platform"] for p in body["platforms"]] == ["gamma"]


def test_markets_filtered_to_nothing_is_not_an_error(client, markets_context):
    response = client.get("/v1/markets", params={"search": "no such market"})
    assert response.status_code == 200
    assert response.json()["data"] == []


def test_unknown_platform_is_bad_request(client, markets_context):
    response = client.get("/v1/markets", params={"platform": "nope"})
    assert response.status_code == 400
    assert response.json() == {"error": "Bad Request", "detail": "Unknown platform: nope"}


def test_invalid_query_is_bad_request(client, markets_context):
    response = client.get("/v1/markets", params={"limit": 0})
    assert response.status_code == 400
    assert response.json()["error"] == "Bad Request"
    assert "limit" in response.json()["detail"]


def test_all_platforms_failing_is_service_unavailable(client):
    use_context(build_test_context([
        {"platform": "alpha", "fail_on_page": 0},
        {"platform": "gamma", "fail_on_page": 0},
    ]))
    response = client.get("/v1/markets")
    assert response.status_code == 503
    assert response.json()["detail"].startswith("All platforms failed")


def test_one_failing_platform_still_serves_others(client):
    use_context(build_test_context([
        {"platform": "alpha", "pages": [[make_market("alpha", "1")]]},
        {"platform": "broken", "fail_on_page": 0},
    ]))
    body = client.get("/v1/markets").json()
    assert [m["id"] for m in body["data"]] == ["alpha-1"]
    assert "exploded" in body["platforms"][1]["error"]


def test_malformed_upstream_record_is_skipped(client):
    payload = {
        "count": 2,
        "results": [
            {"id": 1, "title": "Good?", "status": "open", "question": {}},
            {"id": 2, "status": "open", "question": {"id": 2}},
        ],
    }
    ctx = build_test_context([])
    http = mock_client(lambda request: httpx.Response(200, json=payload))
    ctx.registry.register(MetaculusFetcher(ctx.fetch_context, http=http))
    use_context(ctx)

    response = client.get("/v1/markets")

    assert response.status_code == 200
    assert [m["id"] for m in response.json()["data"]] == ["metaculus-1"]
    assert ctx.cache.get("metaculus:all")[0].title == "Good?"


def test_sync_forces_refresh(client, markets_context):
    client.get("/v1/markets")
    response = client.post("/v1/markets/sync")
    assert response.status_code == 200
    assert response.json()["total"] == 3
    assert markets_context.registry.get("alpha").calls == 2


def test_market_stats_without_database(client, markets_context):
    response = client.get("/v1/markets/stats")
    assert response.status_code == 503
    assert response.json() == {"error": "Service Unavailable", "detail": "Database not configured"}


def test_status_filter_reuses_cached_fetch(client, markets_context):
    client.get("/v1/markets")
    response = client.get("/v1/markets", params={"status": "closed"})

    assert response.status_code == 200
    assert response.json()["data"] == []
    assert markets_context.registry.get("alpha").calls == 1


def test_slow_platform_times_out_without_blocking_others(client):
    use_context(build_test_context(
        [
            {"platform": "alpha", "pages": [[make_market("alpha", "1")]]},
            {"platform": "slow", "hang": True},
        ],
        settings=Settings(background_sync_enabled=False, request_deadline_seconds=0.2),
    ))

    response = client.get("/v1/markets")

    assert response.status_code == 200
    body = response.json()
    assert [m["id"] for m in body["data"]] == ["alpha-1"]
    assert body["platforms"] == [
        {"platform": "alpha", "count": 1, "error": None},
        {"platform": "slow", "count": 0, "error": "Timed out"},
    ]


def fake_session_factory(db):
    @asynccontextmanager
    async def factory():
        yield db

    return factory


def test_markets_from_database(client, monkeypatch):
    db = object()
    calls = {}

    async def fake_markets(session, **kwargs):
        calls["markets"] = (session, kwargs)
        return [make_market("alpha", "9", "Stored market", volume=42.0)]

    async def fake_count(session, **kwargs):
        calls["count"] = (session, kwargs)
        return 7

    monkeypatch.setattr("truthbounty.routes.markets.get_markets_from_database", fake_markets)
    monkeypatch.setattr("truthbounty.routes.markets.count_markets_in_database", fake_count)
    ctx = build_test_context(
        [{"platform": "alpha", "pages": [[make_market("alpha", "1")]]}],
        session_factory=fake_session_factory(db),
    )
    use_context(ctx)

    response = client.get(
        "/v1/markets", params={"source": "db", "platform": "alpha", "search": "stored", "limit": 5, "offset": 10},
    )

    assert response.status_code == 200
    body = response.json()
    assert [m["id"] for m in body["data"]] == ["alpha-9"]
    assert body["total"] == 7
    assert (body["limit"], body["offset"]) == (5, 10)
    assert calls["markets"] == (
        db,
        {"platform": "alpha", "status": "open", "category": None, "search": "stored", "limit": 5, "offset": 10},
    )
    assert calls["count"] == (db, {"platform": "alpha", "status": "open", "category": None, "search": "stored"})
    assert ctx.registry.get("alpha").calls == 0


def test_markets_from_database_without_database(client, markets_context):
    response = client.get("/v1/markets", params={"source": "db"})
    assert response.status_code == 503
    assert response.json()["detail"] == "Database not configured"


def test_unknown_market_source_is_bad_request(client, markets_context):
    response = client.get("/v1/markets", params={"source": "archive"})
    assert response.status_code == 400
    assert response.json() == {"error": "Bad Request", "detail": "Unknown source: archive"}


def test_platform_leaderboard_ranks_by_score(client):
    source = StubTradersSource([trader(BOB, 10, 5), trader(ALICE, 60, 45)])
    use_context(build_test_context([], source))

    response = client.get("/v1/leaderboard/stub")

    assert response.status_code == 200
    body = response.json()
    assert body["platform"] == "stub" and body["strategy"] == "wilson"
    assert [e["address"] for e in body["data"]] == [ALICE, BOB]
    assert [e["rank"] for e in body["data"]] == [1, 2]
    assert body["data"][0]["volume"] == {"value": "600", "currency": "USDC"}
    assert body["data"][0]["win_rate"] == 75.0
    assert body["total"] == 2


def test_platform_leaderboard_unknown_platform(client):
    use_context(build_test_context([]))
    response = client.get("/v1/leaderboard/nope")
    assert response.status_code == 400


def test_platform_leaderboard_upstream_failure(client):
    use_context(build_test_context([], StubTradersSource(error=UpstreamError("subgraph down", "stub"))))
    response = client.get("/v1/leaderboard/stub")
    assert response.status_code == 503
    assert response.json()["detail"] == "subgraph down"


def test_cross_platform_leaderboard(client, monkeypatch):
    low = AggregatedUserStats(address=BOB, truth_score=300)
    high = AggregatedUserStats(address=ALICE, truth_score=900)

    async def fake_top(db, limit):
        return [low, high]

    monkeypatch.setattr("truthbounty.routes.leaderboard.get_top_user_stats", fake_top)
    app.dependency_overrides[get_session] = lambda: None

    body = client.get("/v1/leaderboard").json()
    assert [(e["rank"], e["address"]) for e in body] == [(1, ALICE), (2, BOB)]


def test_trader_invalid_address(client):
    app.dependency_overrides[get_session] = lambda: None
    response = client.get("/v1/traders/not-an-address")
    assert response.status_code == 400
    assert response.json()["error"] == "Bad Request"


def test_trader_not_found(client, monkeypatch):
    async def no_stats(db, address):
        return None

    monkeypatch.setattr("truthbounty.routes.traders.get_user_stats", no_stats)
    app.dependency_overrides[get_session] = lambda: None

    response = client.get(f"/v1/traders/{ALICE}")
    assert response.status_code == 404
    assert response.json()["error"] == "Not Found"


def test_trader_profile(client, monkeypatch):
    user = AggregatedUserStats(address=ALICE, truth_score=650)
    stats = trader(ALICE, 20, 12, platform="azuro")
    stats.extra["score"] = 650
    user.add(stats)

    async def fake_stats(db, address):
        return user

    monkeypatch.setattr("truthbounty.routes.traders.get_user_stats", fake_stats)
    app.dependency_overrides[get_session] = lambda: None

    body = client.get(f"/v1/traders/{ALICE}").json()
    assert body["truth_score"] == 650
    assert body["platforms"] == ["azuro"]
    assert body["volume"] == [{"value": str(Decimal(200)), "currency": "USDC"}]
    assert body["breakdown"][0]["score"] == 650
    assert body["win_rate"] == 60.0

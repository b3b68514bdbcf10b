from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from truthbounty.errors import RateLimitedError, UpstreamError
from truthbounty.fetchers.azuro import AzuroFetcher
from truthbounty.fetchers.base import MarketStatus
from truthbounty.fetchers.drift import DriftFetcher, threshold_probability
from truthbounty.fetchers.gnosis import CURATED_MARKETS, GnosisFetcher
from truthbounty.fetchers.kalshi import KalshiFetcher
from truthbounty.fetchers.limitless import LimitlessFetcher
from truthbounty.fetchers.manifold import ManifoldFetcher
from truthbounty.fetchers.metaculus import MetaculusFetcher
from truthbounty.fetchers.overtime import OvertimeFetcher
from truthbounty.fetchers.pancakeswap import CURRENT_EPOCH_SELECTOR, ROUNDS_SELECTOR, PancakeSwapFetcher, decode_round
from truthbounty.fetchers.polymarket import PolymarketFetcher
from truthbounty.fetchers.registry import FETCHER_CLASSES, build_default_registry
from truthbounty.fetchers.speedmarkets import SpeedMarketsFetcher
from truthbounty.fetchers.sxbet import SXBetFetcher
from truthbounty.services.price_oracle import PriceOracle


async def test_polymarket_normalizes_gamma_markets(fetch_context, make_client):
    payload = [
        {
            "id": "123",
            "conditionId": "0xabc",
            "question": "Will it rain in London tomorrow?",
            "outcomes": '["Yes", "No"]',
            "outcomePrices": '["0.7", "0.3"]',
            "active": True,
            "closed": False,
            "volumeNum": 1500,
            "volume24hr": 20,
            "liquidityNum": 300,
            "endDate": "2025-12-31T00:00:00Z",
            "events": [{"category": "Weather"}],
        },
        {"id": "124", "question": "Broken prices", "outcomePrices": "not-json", "active": True, "closed": False},
        {"id": "125", "question": "Already closed", "active": True, "closed": True},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets"
        assert request.url.params["offset"] == "0"
        return httpx.Response(200, json=payload)

    fetcher = PolymarketFetcher(fetch_context, http=make_client(handler))
    page = await fetcher.fetch_page()

    assert len(page.data) == 1
    market = page.data[0]
    assert market.id == "polymarket-123"
    assert market.category == "Weather"
    assert market.yes_price == 0.7 and market.no_price == 0.3
    assert market.outcomes[0].probability == pytest.approx(70)
    assert market.status == MarketStatus.OPEN
    assert market.currency == "USDC"
    assert not page.has_more and page.next_cursor is None


async def test_polymarket_offset_cursor(fetch_context, make_client):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params["offset"])
        return httpx.Response(200, json=[{"id": str(i), "question": f"Q{i}", "active": True} for i in range(2)])

    fetcher = PolymarketFetcher(fetch_context, http=make_client(handler))
    page = await fetcher.fetch_page(cursor="4", limit=2)

    assert seen == ["4"]
    assert page.has_more and page.next_cursor == "6"


async def test_limitless_page_numbers_and_percent_prices(fetch_context, make_client):
    body = {
        "data": [
            {"id": 7, "title": "ETH above $4k?", "status": "FUNDED", "prices": [65, 35], "volumeFormatted": "1000"},
            {"id": 8, "title": "Expired", "status": "FUNDED", "expired": True, "prices": [50, 50]},
        ],
        "totalMarketsCount": 5,
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets/active"
        assert request.url.params["page"] == "1"
        return httpx.Response(200, json=body)

    fetcher = LimitlessFetcher(fetch_context, http=make_client(handler))
    page = await fetcher.fetch_page(limit=2)

    assert [m.external_id for m in page.data] == ["7"]
    market = page.data[0]
    assert market.yes_price == pytest.approx(0.65)
    assert market.liquidity == pytest.approx(100)
    assert page.total_count == 5
    assert page.has_more and page.next_cursor == "2"


async def test_manifold_before_cursor_and_binary_filter(fetch_context, make_client):
    params = []
    raw = [
        {"id": "a", "question": "Binary?", "outcomeType": "BINARY", "probability": 0.3, "volume": 50},
        {"id": "b", "question": "Pick one", "outcomeType": "MULTIPLE_CHOICE"},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        params.append(dict(request.url.params))
        return httpx.Response(200, json=raw)

    fetcher = ManifoldFetcher(fetch_context, http=make_client(handler))
    page = await fetcher.fetch_page(cursor="z", limit=2)

    assert params[0]["before"] == "z"
    assert [m.external_id for m in page.data] == ["a"]
    assert page.data[0].no_price == pytest.approx(0.7)
    assert page.data[0].currency == "Mana"
    assert page.next_cursor == "b"


async def test_kalshi_mid_price_and_cursor(fetch_context, make_client):
    body = {
        "markets": [
            {"ticker": "KX-1", "title": "Fed cuts?", "yes_ask": 60, "yes_bid": 40, "status": "active", "volume": 10},
            {"ticker": "KX-2", "title": "Sure thing", "yes_ask": 100, "yes_bid": 99, "status": "open"},
        ],
        "cursor": "next-page",
    }
    fetcher = KalshiFetcher(fetch_context, http=make_client(lambda r: httpx.Response(200, json=body)))
    page = await fetcher.fetch_page()

    first, second = page.data
    assert first.yes_price == pytest.approx(0.5)
    assert second.yes_price == pytest.approx(0.99)
    assert page.has_more and page.next_cursor == "next-page"


async def test_azuro_merges_subgraphs_and_tolerates_one_failure(fetch_context, make_client):
    def game(game_id: str, starts_at: int) -> dict:
        return {
            "gameId": game_id,
            "startsAt": str(starts_at),
            "sport": {"name": "Football"},
            "league": {"name": "Premier League"},
            "participants": [{"name": "Arsenal"}, {"name": "Chelsea"}],
            "conditions": [{"turnover": "2500000"}],
        }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/polygon":
            return httpx.Response(200, json={"data": {"games": [game("2", 1_800_000_000)]}})
        if request.url.path == "/gnosis":
            return httpx.Response(200, json={"data": {"games": [game("1", 1_700_000_000)]}})
        return httpx.Response(500)

    subgraphs = {"live": "/live", "polygon": "/polygon", "gnosis": "/gnosis"}
    fetcher = AzuroFetcher(fetch_context, http=make_client(handler), subgraphs=subgraphs)
    page = await fetcher.fetch_page()

    assert [m.id for m in page.data] == ["azuro-gnosis-1", "azuro-polygon-2"]
    assert page.data[0].title == "Arsenal vs Chelsea"
    assert page.data[0].volume == pytest.approx(2.5)
    assert page.data[0].currency == "xDAI"


async def test_azuro_raises_when_every_subgraph_fails(fetch_context, make_client):
    fetcher = AzuroFetcher(
        fetch_context, http=make_client(lambda r: httpx.Response(503)), subgraphs={"polygon": "/polygon"},
    )
    with pytest.raises(UpstreamError):
        await fetcher.fetch_page()


async def test_gnosis_falls_back_to_curated_markets(fetch_context, make_client):
    fetcher = GnosisFetcher(fetch_context, http=make_client(lambda r: httpx.Response(500)))
    page = await fetcher.fetch_page()
    assert len(page.data) == len(CURATED_MARKETS)
    assert all(m.platform == "gnosis" for m in page.data)


async def test_overtime_without_api_key_returns_nothing(fetch_context, make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    fetcher = OvertimeFetcher(fetch_context, http=make_client(handler), api_key="")
    page = await fetcher.fetch_page()
    assert page.data == [] and not page.has_more


async def test_http_429_maps_to_rate_limited_error(fetch_context, make_client):
    fetcher = KalshiFetcher(
        fetch_context, http=make_client(lambda r: httpx.Response(429, headers={"Retry-After": "7"})),
    )
    with pytest.raises(RateLimitedError) as exc:
        await fetcher.fetch_page()
    assert exc.value.retry_after == 7.0


def test_drift_threshold_probability():
    assert threshold_probability(100000, 100000, 20000) == pytest.approx(0.5)
    assert threshold_probability(200000, 100000, 20000) == 0.95
    assert threshold_probability(1, 100000, 20000) == 0.05


def test_decode_round_reads_fixed_slots():
    slots = [0] * 14
    slots[0], slots[1], slots[2], slots[3] = 4242, 100, 400, 700
    slots[4], slots[5] = 60000000000, 61000000000
    slots[8], slots[9], slots[10] = 3 * 10**18, 2 * 10**18, 10**18
    raw = b"".join(v.to_bytes(32, "big") for v in slots)

    r = decode_round(raw)

    assert (r.epoch, r.start_timestamp, r.lock_timestamp, r.close_timestamp) == (4242, 100, 400, 700)
    assert (r.lock_price, r.close_price) == (60000000000, 61000000000)
    assert (r.total_amount, r.bull_amount, r.bear_amount) == (3 * 10**18, 2 * 10**18, 10**18)


def test_default_registry_covers_every_platform(fetch_context):
    registry = build_default_registry(fetch_context)
    slugs = {p["slug"] for p in registry.list_platforms()}
    assert len(FETCHER_CLASSES) == 12
    assert slugs == {
        "polymarket", "limitless", "manifold", "kalshi", "azuro", "sxbet",
        "metaculus", "overtime", "pancakeswap", "speedmarkets", "drift", "gnosis",
    }
    assert json.dumps(registry.list_platforms())


def test_default_registry_shares_price_oracle(fetch_context):
    oracle = PriceOracle()
    registry = build_default_registry(fetch_context, oracle=oracle)
    assert registry.get("speedmarkets").oracle is oracle


async def test_metaculus_skips_question_without_title(fetch_context, make_client):
    payload = {
        "count": 30,
        "results": [
            {
                "id": 1,
                "title": "Will AGI arrive by 2030?",
                "status": "open",
                "forecasts_count": 120,
                "question": {"aggregations": {"recency_weighted": {"latest": {"centers": [0.3]}}}},
                "projects": {"question_series": [{"name": "AI"}]},
            },
            {"id": 2, "status": "open", "question": {"id": 2}},
        ],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/questions/"
        assert request.url.params["offset"] == "20"
        assert request.url.params["limit"] == "2"
        return httpx.Response(200, json=payload)

    fetcher = MetaculusFetcher(fetch_context, http=make_client(handler))
    page = await fetcher.fetch_page(cursor="20", limit=2)

    assert [m.id for m in page.data] == ["metaculus-1"]
    market = page.data[0]
    assert market.yes_price == pytest.approx(0.3)
    assert market.category == "AI"
    assert market.volume == 120
    assert market.status == MarketStatus.OPEN
    assert page.has_more and page.next_cursor == "22"
    assert page.total_count == 30


async def test_sxbet_page_numbers_and_active_filter(fetch_context, make_client):
    payload = {
        "data": {
            "markets": [
                {
                    "marketHash": "0xm1",
                    "status": "ACTIVE",
                    "sportId": 3,
                    "type": 1,
                    "teamOneName": "Lakers",
                    "teamTwoName": "Celtics",
                    "gameTime": 1735689600,
                },
                {"status": "ACTIVE", "teamOneName": "No", "teamTwoName": "Hash"},
                {"marketHash": "0xm3", "status": "INACTIVE"},
            ]
        }
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets/active"
        assert request.url.params["pageNum"] == "2"
        assert request.url.params["pageSize"] == "3"
        return httpx.Response(200, json=payload)

    fetcher = SXBetFetcher(fetch_context, http=make_client(handler))
    page = await fetcher.fetch_page(cursor="2", limit=3)

    assert [m.id for m in page.data] == ["sxbet-0xm1"]
    market = page.data[0]
    assert market.title == "Lakers vs Celtics"
    assert market.question == "Lakers vs Celtics - Moneyline"
    assert market.category == "Basketball"
    assert market.expires_at.year == 2025
    assert page.has_more and page.next_cursor == "3"


async def test_overtime_skips_events_with_zero_odds(fetch_context, make_client):
    def event(event_id, home_price, away_price):
        return {
            "id": event_id,
            "home_team": "Lakers",
            "away_team": "Celtics",
            "sport_title": "NBA",
            "commence_time": "2025-06-01T00:00:00Z",
            "bookmakers": [{
                "markets": [{
                    "key": "h2h",
                    "outcomes": [{"name": "Lakers", "price": home_price}, {"name": "Celtics", "price": away_price}],
                }],
            }],
        }

    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        assert request.url.params["apiKey"] == "secret"
        if request.url.path == "/sports/basketball_nba/odds":
            return httpx.Response(200, json=[event("ev1", 1.5, 2.5), event("ev2", 0, 1.2)])
        return httpx.Response(200, json=[])

    fetcher = OvertimeFetcher(fetch_context, http=make_client(handler), api_key="secret")
    page = await fetcher.fetch_page()

    assert len(paths) == 8
    assert [m.id for m in page.data] == ["overtime-ev1"]
    market = page.data[0]
    assert market.category == "Basketball"
    assert market.yes_price == pytest.approx(1 / 1.5)
    assert market.no_price == pytest.approx(1 / 2.5)
    assert [o.id for o in market.outcomes] == ["home", "away"]
    assert market.outcomes[0].probability == pytest.approx(100 / 1.5)
    assert not page.has_more


async def test_drift_skips_failed_and_unparseable_oracles(fetch_context, make_client):
    responses = {
        "BTC-PERP": httpx.Response(200, json={"oracle": 100000}),
        "ETH-PERP": httpx.Response(500),
        "SOL-PERP": httpx.Response(200, json={"oracle": "n/a"}),
        "JUP-PERP": httpx.Response(200, json={"oracle": "2"}),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/l2"
        return responses[request.url.params["marketName"]]

    fetcher = DriftFetcher(fetch_context, http=make_client(handler))
    page = await fetcher.fetch_page()

    assert [m.external_id for m in page.data] == ["BTC-PERP", "JUP-PERP"]
    btc = page.data[0]
    assert btc.yes_price == pytest.approx(0.5)
    assert btc.outcomes[0].probability == pytest.approx(50)
    assert btc.metadata["oracle_price"] == 100000
    assert not page.has_more


def encode_round(epoch, lock_timestamp, bull, bear):
    slots = [0] * 14
    slots[0], slots[1], slots[2], slots[3] = epoch, 100, lock_timestamp, 0
    slots[4] = 60000000000
    slots[8], slots[9], slots[10] = bull + bear, bull, bear
    return b"".join(v.to_bytes(32, "big") for v in slots)


async def test_pancakeswap_reads_recent_rounds(fetch_context):
    lock = 4_000_000_000

    async def call(tx):
        data = tx["data"]
        if data == CURRENT_EPOCH_SELECTOR:
            return (100).to_bytes(32, "big")
        assert data.startswith(ROUNDS_SELECTOR)
        epoch = int(data[len(ROUNDS_SELECTOR):], 16)
        if epoch == 98:
            raise ValueError("execution reverted")
        if epoch == 97:
            return encode_round(97, 0, 0, 0)
        return encode_round(epoch, lock, 3 * 10**18, 10**18)

    fetcher = PancakeSwapFetcher(fetch_context, web3=SimpleNamespace(eth=SimpleNamespace(call=call)))
    page = await fetcher.fetch_page()

    assert [m.external_id for m in page.data] == [
        "BNB-100", "CAKE-100", "BNB-99", "CAKE-99", "BNB-96", "CAKE-96",
    ]
    market = page.data[0]
    assert market.yes_price == pytest.approx(0.75)
    assert market.no_price == pytest.approx(0.25)
    assert market.volume == pytest.approx(4.0)
    assert market.status == MarketStatus.OPEN
    assert market.metadata["lock_price"] == 600
    assert not page.has_more


class FixedOracle:
    async def get_prices(self, assets):
        return {"BTC": 65000.0, "ETH": 3200.0}


async def test_speedmarkets_stamps_oracle_prices(fetch_context):
    fetcher = SpeedMarketsFetcher(fetch_context, oracle=FixedOracle())
    page = await fetcher.fetch_page()

    assert len(page.data) == 8
    btc = [m for m in page.data if m.metadata["asset"] == "BTC"]
    assert {m.metadata["current_price"] for m in btc} == {65000.0}
    assert [m.metadata["timeframe_sec"] for m in btc] == [300, 600, 1800, 3600]
    assert all(m.yes_price == 0.5 and m.status == MarketStatus.OPEN for m in page.data)
    assert not page.has_more

from __future__ import annotations

import logging
from datetime import datetime, timezone

from conftest import InMemorySink, StubFetcher, make_market

from truthbounty.fetchers.base import (
    FetchOptions,
    binary_outcomes,
    implied_odds,
    normalize_market_id,
    parse_timestamp,
)


async def test_fetch_all_collects_pages_in_order_and_caches(fetch_context, sink):
    pages = [[make_market("stub", f"{p}-{i}") for i in range(2)] for p in range(3)]
    fetcher = StubFetcher(fetch_context, pages=pages)

    markets = await fetcher.fetch_all()
    await fetch_context.drain()

    assert [m.external_id for m in markets] == ["0-0", "0-1", "1-0", "1-1", "2-0", "2-1"]
    assert fetch_context.cache.get("stub:all") == markets
    assert len(sink.saved) == 6

    again = await fetcher.fetch_all_with_status()
    assert again.from_cache
    assert fetcher.calls == 3


async def test_force_refresh_skips_cache(fetch_context):
    fetcher = StubFetcher(fetch_context, pages=[[make_market("stub", "a")]])
    await fetcher.fetch_all()
    await fetcher.fetch_all(FetchOptions(force_refresh=True))
    assert fetcher.calls == 2


async def test_fetch_all_stops_at_page_ceiling(fetch_context, clock):
    fetcher = StubFetcher(fetch_context, endless=True)

    result = await fetcher.fetch_all_with_status()

    assert result.pages == 50
    assert len(result.markets) == 50
    assert fetcher.calls == 50
    assert clock.sleeps.count(0.1) == 49


async def test_page_error_returns_accumulated_markets_uncached(fetch_context):
    pages = [[make_market("stub", "a")], [make_market("stub", "b")], [make_market("stub", "c")]]
    fetcher = StubFetcher(fetch_context, pages=pages, fail_on_page=1)

    result = await fetcher.fetch_all_with_status()

    assert [m.external_id for m in result.markets] == ["a"]
    assert "exploded" in result.error
    assert fetch_context.cache.get("stub:all") is None


async def test_persistence_failure_is_only_logged(fetch_context, caplog):
    fetch_context.sink = InMemorySink(fail=True)
    fetcher = StubFetcher(fetch_context, pages=[[make_market("stub", "a")]])

    with caplog.at_level(logging.ERROR):
        markets = await fetcher.fetch_all()
        await fetch_context.drain()

    assert len(markets) == 1
    assert fetch_context.sink.calls == 1
    assert "Error saving to database" in caplog.text


async def test_no_sink_means_no_persistence(fetch_context):
    fetch_context.sink = None
    fetcher = StubFetcher(fetch_context, pages=[[make_market("stub", "a")]])
    assert len(await fetcher.fetch_all()) == 1


def test_parse_each_skips_malformed_records(fetch_context):
    fetcher = StubFetcher(fetch_context)

    def parse(record):
        if record == "skip":
            return None
        price = 1 / record["odds"]
        return make_market("stub", record["id"], yes_price=price)

    records = [{"id": "a", "odds": 2}, {"id": "b", "odds": 0}, {"odds": 4}, None, "skip", {"id": "c", "odds": 4}]
    markets = fetcher._parse_each(records, parse)

    assert [m.external_id for m in markets] == ["a", "c"]
    assert markets[1].yes_price == 0.25


def test_helpers():
    assert normalize_market_id("kalshi", "ABC-1") == "kalshi-ABC-1"
    assert implied_odds(0.5) == 2.0
    assert implied_odds(0.001) == 100.0

    yes, no = binary_outcomes(0.25)
    assert (yes.id, yes.probability, no.probability) == ("yes", 25.0, 75.0)
    assert no.odds == implied_odds(0.75)


def test_parse_timestamp_variants():
    expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-01T00:00:00Z") == expected
    assert parse_timestamp(1704067200) == expected
    assert parse_timestamp(1704067200000) == expected
    assert parse_timestamp("1704067200") == expected
    assert parse_timestamp("") is None
    assert parse_timestamp("not a date") is None

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
import pytest

from truthbounty.fetchers.base import (
    BasePlatformFetcher,
    FetchContext,
    MarketStatus,
    PageResult,
    UnifiedMarket,
    binary_outcomes,
    normalize_market_id,
)
from truthbounty.services.cache import MemoryCache
from truthbounty.services.rate_limiter import RateLimitConfig, RateLimiter


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class InMemorySink:
    def __init__(self, fail: bool = False):
        self.saved: list[UnifiedMarket] = []
        self.calls = 0
        self.fail = fail

    async def save_markets(self, markets: list[UnifiedMarket]) -> None:
        self.calls += 1
        if self.fail:
            raise RuntimeError("database down")
        self.saved.extend(markets)


def make_market(platform: str, external_id: str, title: Optional[str] = None, **overrides) -> UnifiedMarket:
    fields = dict(
        id=normalize_market_id(platform, external_id),
        platform=platform,
        external_id=external_id,
        title=title or f"Market {external_id}",
        question=title or f"Market {external_id}?",
        category="Crypto",
        outcomes=binary_outcomes(0.6),
        status=MarketStatus.OPEN,
        yes_price=0.6,
        no_price=0.4,
        volume=100.0,
        fetched_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return UnifiedMarket(**fields)


class StubFetcher(BasePlatformFetcher):
    """Serves scripted pages; ``endless`` keeps announcing another page, ``hang`` never answers."""

    name = "Stub"
    chain = "Off-chain"
    currency = "USD"

    def __init__(
        self,
        context: FetchContext,
        platform: str = "stub",
        pages: Optional[list[list[UnifiedMarket]]] = None,
        endless: bool = False,
        fail_on_page: Optional[int] = None,
        hang: bool = False,
    ):
        super().__init__(context, http=None)
        self.platform = platform
        self.name = platform.title()
        self.pages = pages or []
        self.endless = endless
        self.fail_on_page = fail_on_page
        self.hang = hang
        self.calls = 0

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        self.calls += 1
        if self.hang:
            await asyncio.Event().wait()
        index = int(cursor) if cursor else 0
        if self.fail_on_page is not None and index == self.fail_on_page:
            raise RuntimeError(f"upstream exploded on page {index}")
        if self.endless:
            market = make_market(self.platform, str(index))
            return PageResult(data=[market], has_more=True, next_cursor=str(index + 1))
        data = self.pages[index] if index < len(self.pages) else []
        has_more = index + 1 < len(self.pages)
        return PageResult(data=data, has_more=has_more, next_cursor=str(index + 1) if has_more else None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> InMemorySink:
    return InMemorySink()


@pytest.fixture
def fetch_context(clock, sink) -> FetchContext:
    limiter = RateLimiter(
        {"stub": RateLimitConfig(max_requests=1000)},
        clock=clock,
        sleep=clock.sleep,
    )
    return FetchContext(
        cache=MemoryCache(default_ttl=60, clock=clock),
        rate_limiter=limiter,
        sink=sink,
        max_pages=50,
        page_delay=0.1,
        full_fetch_ttl=300,
        sleep=clock.sleep,
    )


def mock_client(handler: Callable[[httpx.Request], httpx.Response], base_url: str = "https://api.test") -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))


@pytest.fixture
def make_client():
    return mock_client

"""
Market fetcher abstraction layer.
Every upstream market source implements ``fetch_page``; the shared base drives
full pagination through the cache and the rate limiter.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Protocol

import httpx
from dateutil import parser as date_parser

from truthbounty.services.cache import MemoryCache
from truthbounty.services.http import request_json
from truthbounty.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class PlatformSlug(str, Enum):
    POLYMARKET = "polymarket"
    LIMITLESS = "limitless"
    MANIFOLD = "manifold"
    KALSHI = "kalshi"
    AZURO = "azuro"
    SXBET = "sxbet"
    METACULUS = "metaculus"
    OVERTIME = "overtime"
    PANCAKESWAP = "pancakeswap"
    SPEEDMARKETS = "speedmarkets"
    DRIFT = "drift"
    GNOSIS = "gnosis"


class MarketStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


@dataclass
class MarketOutcome:
    id: str
    name: str
    probability: float
    odds: float


@dataclass
class UnifiedMarket:
    id: str
    platform: str
    external_id: str
    title: str
    category: str
    outcomes: list[MarketOutcome]
    status: MarketStatus
    fetched_at: datetime
    question: Optional[str] = None
    description: Optional[str] = None
    yes_price: Optional[float] = None
    no_price: Optional[float] = None
    volume: float = 0.0
    volume_24h: Optional[float] = None
    liquidity: Optional[float] = None
    expires_at: Optional[datetime] = None
    closes_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    winning_outcome: Optional[str] = None
    chain: Optional[str] = None
    currency: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PageResult:
    data: list[UnifiedMarket]
    has_more: bool
    next_cursor: Optional[str] = None
    total_count: Optional[int] = None


@dataclass
class FetchOptions:
    force_refresh: bool = False
    limit: Optional[int] = None


@dataclass
class FetchAllResult:
    platform: str
    markets: list[UnifiedMarket]
    pages: int = 0
    from_cache: bool = False
    error: Optional[str] = None


class MarketSink(Protocol):
    async def save_markets(self, markets: list[UnifiedMarket]) -> None: ...


@dataclass
class FetchContext:
    """Process-wide collaborators shared by every fetcher."""

    cache: MemoryCache
    rate_limiter: RateLimiter
    sink: Optional[MarketSink] = None
    max_pages: int = 50
    page_delay: float = 0.1
    full_fetch_ttl: float = 300.0
    sleep: Callable[[float], Any] = asyncio.sleep
    _pending: set[asyncio.Task] = field(default_factory=set)

    def spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def normalize_market_id(platform: str, external_id: str) -> str:
    return f"{platform}-{external_id}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def implied_odds(probability: float) -> float:
    """Decimal odds for a 0-1 probability, 100 for near-zero prices."""
    return 1 / probability if probability > 0.01 else 100.0


def binary_outcomes(yes_price: float, yes_name: str = "Yes", no_name: str = "No") -> list[MarketOutcome]:
    no_price = 1 - yes_price
    return [
        MarketOutcome(id=yes_name.lower(), name=yes_name, probability=yes_price * 100, odds=implied_odds(yes_price)),
        MarketOutcome(id=no_name.lower(), name=no_name, probability=no_price * 100, odds=implied_odds(no_price)),
    ]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO strings, epoch seconds or epoch milliseconds into aware datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        ts = float(value)
        if ts > 1e11:
            ts /= 1000
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, TypeError):
        try:
            parsed = date_parser.parse(value)
        except (ValueError, TypeError, OverflowError):
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def truncate(text: Optional[str], length: int = 500) -> Optional[str]:
    return text[:length] if text else text


class BasePlatformFetcher(ABC):
    platform: str
    name: str
    chain: str
    currency: str
    base_url: str = ""
    timeout: float = 30.0
    page_size: int = 100

    def __init__(self, context: FetchContext, http: Optional[httpx.AsyncClient] = None):
        self.context = context
        self._http = http

    async def initialize(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, headers={"Accept": "application/json"},
            )

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        if self._http is None:
            await self.initialize()
        return await request_json(self._http, self.platform, method, url, **kwargs)

    def _parse_each(self, items: Iterable[Any], parse: Callable[[Any], Optional[UnifiedMarket]]) -> list[UnifiedMarket]:
        markets = []
        for item in items:
            try:
                market = parse(item)
            except (KeyError, TypeError, ValueError, AttributeError, IndexError, ArithmeticError) as e:
                logger.debug(f"[{self.platform}] Skipping malformed record: {e}")
                continue
            if market is not None:
                markets.append(market)
        return markets

    @abstractmethod
    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        pass

    def cache_key(self) -> str:
        return f"{self.platform}:all"

    async def fetch_all(self, options: Optional[FetchOptions] = None) -> list[UnifiedMarket]:
        return (await self.fetch_all_with_status(options)).markets

    async def fetch_all_with_status(self, options: Optional[FetchOptions] = None) -> FetchAllResult:
        options = options or FetchOptions()
        ctx = self.context
        key = self.cache_key()

        if not options.force_refresh:
            cached = ctx.cache.get(key)
            if cached is not None:
                logger.info(f"[{self.platform}] Returning {len(cached)} markets from cache")
                return FetchAllResult(platform=self.platform, markets=cached, from_cache=True)

        markets: list[UnifiedMarket] = []
        cursor: Optional[str] = None
        pages = 0
        error: Optional[str] = None

        logger.info(f"[{self.platform}] Starting full fetch...")
        while pages < ctx.max_pages:
            if pages:
                await ctx.sleep(ctx.page_delay)
            try:
                result = await ctx.rate_limiter.execute_with_retry(
                    self.platform, lambda: self.fetch_page(cursor, options.limit)
                )
            except Exception as e:
                error = str(e) or e.__class__.__name__
                logger.error(f"[{self.platform}] Error fetching page {pages + 1}: {error}")
                break

            markets.extend(result.data)
            pages += 1
            logger.info(f"[{self.platform}] Page {pages}: fetched {len(result.data)} markets (total: {len(markets)})")

            if not result.has_more or not result.next_cursor:
                break
            cursor = result.next_cursor

        logger.info(f"[{self.platform}] Completed: {len(markets)} total markets in {pages} pages")

        if error is None:
            ctx.cache.set(key, markets, ctx.full_fetch_ttl)
        if ctx.sink is not None and markets:
            ctx.spawn(self._persist(markets))

        return FetchAllResult(platform=self.platform, markets=markets, pages=pages, error=error)

    async def _persist(self, markets: list[UnifiedMarket]) -> None:
        try:
            await self.context.sink.save_markets(markets)
        except Exception as e:
            logger.error(f"[{self.platform}] Error saving to database: {e}")

    def describe(self) -> dict:
        return {"slug": self.platform, "name": self.name, "chain": self.chain, "currency": self.currency}

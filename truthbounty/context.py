"""Application context: the per-process collaborators built once at startup."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from truthbounty.config import Settings, settings as default_settings
from truthbounty.fetchers.base import FetchContext, MarketSink
from truthbounty.fetchers.registry import FetcherRegistry, build_default_registry
from truthbounty.services.cache import MemoryCache
from truthbounty.services.orchestrator import BackgroundSync
from truthbounty.services.persistence import DatabaseMarketSink
from truthbounty.services.price_oracle import PriceOracle
from truthbounty.services.rate_limiter import DEFAULT_PLATFORM_LIMITS, RateLimiter
from truthbounty.traders.azuro import AzuroTradersSource
from truthbounty.traders.base import Deadline, TraderStatsSource
from truthbounty.traders.limitless import LimitlessTradersSource
from truthbounty.traders.polymarket import PolymarketTradersSource

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    cache: MemoryCache
    rate_limiter: RateLimiter
    fetch_context: FetchContext
    registry: FetcherRegistry
    oracle: PriceOracle
    background_sync: BackgroundSync
    trader_sources: dict[str, TraderStatsSource] = field(default_factory=dict)
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def deadline(self) -> Deadline:
        return Deadline(self.settings.request_deadline_seconds)

    async def startup(self) -> None:
        await self.oracle.initialize()
        await self.registry.initialize_all()
        for source in self.trader_sources.values():
            await source.initialize()
        if self.settings.background_sync_enabled:
            self.background_sync.start()

    async def shutdown(self) -> None:
        await self.background_sync.stop()
        await self.fetch_context.drain()
        await self.registry.close_all()
        for source in self.trader_sources.values():
            try:
                await source.close()
            except Exception as e:
                logger.warning(f"Failed to close {source.name}: {e}")
        await self.oracle.close()


def build_context(
    config: Settings = default_settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    sink: Optional[MarketSink] = None,
) -> AppContext:
    cache = MemoryCache(default_ttl=config.cache_default_ttl_seconds)
    rate_limiter = RateLimiter(DEFAULT_PLATFORM_LIMITS)
    if sink is None and session_factory is not None and config.persist_markets:
        sink = DatabaseMarketSink(session_factory)

    fetch_context = FetchContext(
        cache=cache,
        rate_limiter=rate_limiter,
        sink=sink,
        max_pages=config.fetch_max_pages,
        page_delay=config.fetch_page_delay_seconds,
        full_fetch_ttl=config.full_fetch_cache_ttl_seconds,
    )
    oracle = PriceOracle(coingecko_url=config.coingecko_api_url, binance_url=config.binance_api_url)
    registry = build_default_registry(fetch_context, oracle=oracle)

    return AppContext(
        settings=config,
        cache=cache,
        rate_limiter=rate_limiter,
        fetch_context=fetch_context,
        registry=registry,
        oracle=oracle,
        background_sync=BackgroundSync(registry, interval=config.background_sync_interval_seconds),
        trader_sources={
            s.platform: s
            for s in (
                AzuroTradersSource(),
                LimitlessTradersSource(
                    batch_size=config.enrichment_batch_size, max_enriched=config.enrichment_max_entities,
                ),
                PolymarketTradersSource(),
            )
        },
        session_factory=session_factory,
    )

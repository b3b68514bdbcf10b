"""Fetcher registry: maps platform slugs to their market fetchers."""

import logging
from typing import Optional

from truthbounty.fetchers.azuro import AzuroFetcher
from truthbounty.fetchers.base import BasePlatformFetcher, FetchContext
from truthbounty.fetchers.drift import DriftFetcher
from truthbounty.fetchers.gnosis import GnosisFetcher
from truthbounty.fetchers.kalshi import KalshiFetcher
from truthbounty.fetchers.limitless import LimitlessFetcher
from truthbounty.fetchers.manifold import ManifoldFetcher
from truthbounty.fetchers.metaculus import MetaculusFetcher
from truthbounty.fetchers.overtime import OvertimeFetcher
from truthbounty.fetchers.pancakeswap import PancakeSwapFetcher
from truthbounty.fetchers.polymarket import PolymarketFetcher
from truthbounty.fetchers.speedmarkets import SpeedMarketsFetcher
from truthbounty.fetchers.sxbet import SXBetFetcher
from truthbounty.services.price_oracle import PriceOracle

logger = logging.getLogger(__name__)

FETCHER_CLASSES: list[type[BasePlatformFetcher]] = [
    PolymarketFetcher,
    LimitlessFetcher,
    ManifoldFetcher,
    KalshiFetcher,
    AzuroFetcher,
    SXBetFetcher,
    MetaculusFetcher,
    OvertimeFetcher,
    PancakeSwapFetcher,
    SpeedMarketsFetcher,
    DriftFetcher,
    GnosisFetcher,
]


class FetcherRegistry:
    def __init__(self):
        self._fetchers: dict[str, BasePlatformFetcher] = {}

    def register(self, fetcher: BasePlatformFetcher) -> None:
        self._fetchers[fetcher.platform] = fetcher
        logger.debug(f"Registered fetcher: {fetcher.platform}")

    def get(self, slug: str) -> Optional[BasePlatformFetcher]:
        return self._fetchers.get(slug)

    def all(self) -> dict[str, BasePlatformFetcher]:
        return self._fetchers

    def list_platforms(self) -> list[dict]:
        return [f.describe() for f in self._fetchers.values()]

    async def initialize_all(self) -> None:
        for f in self._fetchers.values():
            try:
                await f.initialize()
                logger.info(f"Initialized fetcher: {f.name}")
            except Exception as e:
                logger.warning(f"Failed to initialize {f.name}: {e}")

    async def close_all(self) -> None:
        for f in self._fetchers.values():
            try:
                await f.close()
            except Exception as e:
                logger.warning(f"Failed to close {f.name}: {e}")


def build_default_registry(context: FetchContext, oracle: Optional[PriceOracle] = None) -> FetcherRegistry:
    registry = FetcherRegistry()
    for cls in FETCHER_CLASSES:
        if cls is SpeedMarketsFetcher:
            registry.register(cls(context, oracle=oracle))
        else:
            registry.register(cls(context))
    return registry

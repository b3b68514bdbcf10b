"""
Thales Speed Markets fetcher.
Markets are synthetic UP/DOWN rounds per asset and timeframe, stamped with the
current oracle price.
"""

import logging
from datetime import timedelta
from typing import Optional

from truthbounty.errors import PriceUnavailableError
from truthbounty.fetchers.base import (
    BasePlatformFetcher,
    MarketOutcome,
    MarketStatus,
    PageResult,
    PlatformSlug,
    UnifiedMarket,
    normalize_market_id,
    utcnow,
)
from truthbounty.services.price_oracle import PriceOracle

logger = logging.getLogger(__name__)

ASSETS = ["BTC", "ETH"]

TIME_FRAMES = [
    ("5 min", 300),
    ("10 min", 600),
    ("30 min", 1800),
    ("1 hour", 3600),
]

PAYOUT = 1.9


class SpeedMarketsFetcher(BasePlatformFetcher):
    platform = PlatformSlug.SPEEDMARKETS.value
    name = "Speed Markets"
    chain = "Optimism"
    currency = "sUSD"
    timeout = 10.0

    def __init__(self, context, http=None, oracle: Optional[PriceOracle] = None):
        super().__init__(context, http)
        self.oracle = oracle
        self._owns_oracle = oracle is None

    async def initialize(self) -> None:
        await super().initialize()
        if self.oracle is None:
            self.oracle = PriceOracle(http=self._http)

    async def close(self) -> None:
        await super().close()
        if self._owns_oracle:
            self.oracle = None

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        if self.oracle is None:
            await self.initialize()

        try:
            prices = await self.oracle.get_prices(ASSETS)
        except PriceUnavailableError as e:
            logger.warning(f"[speedmarkets] {e}")
            prices = {}

        now = utcnow()
        minute = int(now.timestamp() // 60)
        markets = []
        for asset in ASSETS:
            for label, seconds in TIME_FRAMES:
                external_id = f"{asset}-{seconds}-{minute}"
                markets.append(UnifiedMarket(
                    id=normalize_market_id(self.platform, external_id),
                    platform=self.platform,
                    external_id=external_id,
                    title=f"{asset}/USD {label} Prediction",
                    question=f"Will {asset} go UP or DOWN in {label}?",
                    category="Crypto",
                    outcomes=[
                        MarketOutcome(id="up", name="UP", probability=50, odds=PAYOUT),
                        MarketOutcome(id="down", name="DOWN", probability=50, odds=PAYOUT),
                    ],
                    status=MarketStatus.OPEN,
                    yes_price=0.5,
                    no_price=0.5,
                    volume=0.0,
                    expires_at=now + timedelta(seconds=seconds),
                    chain=self.chain,
                    currency=self.currency,
                    fetched_at=now,
                    metadata={
                        "asset": asset,
                        "current_price": prices.get(asset),
                        "timeframe": label,
                        "timeframe_sec": seconds,
                        "estimated_payout": PAYOUT,
                    },
                ))

        return PageResult(data=markets, has_more=False)

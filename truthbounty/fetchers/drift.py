"""
Drift fetcher.
Turns perpetual oracle prices from the DLOB server into threshold questions.
"""

import logging
from typing import Optional

import httpx

from truthbounty.config import settings
from truthbounty.errors import PlatformError
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

logger = logging.getLogger(__name__)

PREDICTION_CONFIGS = [
    {"symbol": "BTC-PERP", "title": "Bitcoin above $100,000", "target": 100000, "range": 20000},
    {"symbol": "ETH-PERP", "title": "Ethereum above $4,000", "target": 4000, "range": 1000},
    {"symbol": "SOL-PERP", "title": "Solana above $150", "target": 150, "range": 50},
    {"symbol": "JUP-PERP", "title": "Jupiter above $2", "target": 2, "range": 1},
]


def threshold_probability(oracle_price: float, target: float, spread: float) -> float:
    """Linear position of the price inside ``target +- spread``, clamped to [0.05, 0.95]."""
    return min(max((oracle_price - (target - spread)) / (spread * 2), 0.05), 0.95)


class DriftFetcher(BasePlatformFetcher):
    platform = PlatformSlug.DRIFT.value
    name = "Drift"
    chain = "Solana"
    currency = "USDC"
    base_url = settings.drift_dlob_url
    timeout = 5.0

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        markets = []
        for config in PREDICTION_CONFIGS:
            try:
                data = await self._request(
                    "GET", "/l2", params={"marketName": config["symbol"], "marketType": "perp", "depth": 1},
                )
            except (PlatformError, httpx.HTTPError) as e:
                logger.warning(f"[drift] Skipping {config['symbol']}: {e}")
                continue

            try:
                oracle_price = float(data["oracle"]) if data.get("oracle") else None
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"[drift] Bad oracle price for {config['symbol']}: {e}")
                continue
            if oracle_price:
                prob = threshold_probability(oracle_price, config["target"], config["range"])
                markets.append(self._build_market(config, oracle_price, prob))

        logger.info(f"[drift] Fetched {len(markets)} prediction markets")
        return PageResult(data=markets, has_more=False)

    def _build_market(self, config: dict, oracle_price: float, probability: float) -> UnifiedMarket:
        yes_prob = probability * 100
        no_prob = 100 - yes_prob
        return UnifiedMarket(
            id=normalize_market_id(self.platform, config["symbol"]),
            platform=self.platform,
            external_id=config["symbol"],
            title=config["title"],
            question=f"Will {config['title'].lower()}?",
            category="Crypto",
            outcomes=[
                MarketOutcome(id="yes", name="Yes", probability=yes_prob, odds=100 / yes_prob),
                MarketOutcome(id="no", name="No", probability=no_prob, odds=100 / no_prob),
            ],
            status=MarketStatus.OPEN,
            yes_price=probability,
            no_price=1 - probability,
            volume=0.0,
            liquidity=0.0,
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "symbol": config["symbol"],
                "oracle_price": oracle_price,
                "target": config["target"],
                "source": "drift-dlob",
            },
        )

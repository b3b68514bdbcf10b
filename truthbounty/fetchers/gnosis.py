"""
Gnosis Chain fetcher.
Seer.pm is queried first; a curated list is served when it is unavailable.
"""

import logging
from datetime import timedelta
from typing import Optional

import httpx

from truthbounty.config import settings
from truthbounty.errors import PlatformError
from truthbounty.fetchers.base import (
    BasePlatformFetcher,
    MarketStatus,
    PageResult,
    PlatformSlug,
    UnifiedMarket,
    binary_outcomes,
    normalize_market_id,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

CURATED_MARKETS = [
    {
        "id": "gnosis-ai-2027",
        "title": "Will GPT-5 be released before July 2026?",
        "category": "AI",
        "yes_prob": 0.60,
        "volume": 45000,
        "liquidity": 28000,
        "days_to_resolve": 180,
    },
    {
        "id": "gnosis-eth-pos",
        "title": "Will Ethereum staking yield exceed 5% APY in 2026?",
        "category": "Crypto",
        "yes_prob": 0.45,
        "volume": 89000,
        "liquidity": 42000,
        "days_to_resolve": 365,
    },
    {
        "id": "gnosis-eu-cbdc",
        "title": "Will EU launch digital Euro pilot by end of 2026?",
        "category": "Economics",
        "yes_prob": 0.65,
        "volume": 67000,
        "liquidity": 35000,
        "days_to_resolve": 365,
    },
    {
        "id": "gnosis-layer2",
        "title": "Will Gnosis Chain TVL exceed $500M in 2026?",
        "category": "Crypto",
        "yes_prob": 0.50,
        "volume": 34000,
        "liquidity": 18000,
        "days_to_resolve": 365,
    },
    {
        "id": "gnosis-climate",
        "title": "Will 2026 be the hottest year on record?",
        "category": "Climate",
        "yes_prob": 0.72,
        "volume": 52000,
        "liquidity": 25000,
        "days_to_resolve": 365,
    },
]


class GnosisFetcher(BasePlatformFetcher):
    platform = PlatformSlug.GNOSIS.value
    name = "Gnosis / Seer"
    chain = "Gnosis"
    currency = "xDAI"
    base_url = settings.seer_api_url
    timeout = 10.0

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        try:
            data = await self._request("GET", "/markets", params={"status": "open", "limit": 100})
        except (PlatformError, httpx.HTTPError) as e:
            logger.warning(f"[gnosis] Seer.pm API unavailable: {e}")
            data = {}

        raw_markets = data.get("markets") if isinstance(data, dict) else None
        if raw_markets:
            markets = self._parse_each(raw_markets, self._parse_seer_market)
            logger.info(f"[gnosis] Fetched {len(markets)} markets from Seer.pm")
            return PageResult(data=markets, has_more=False)

        markets = [self._curated_market(m) for m in CURATED_MARKETS]
        logger.info(f"[gnosis] Using {len(markets)} curated markets")
        return PageResult(data=markets, has_more=False)

    def _parse_seer_market(self, m: dict) -> UnifiedMarket:
        outcomes = m.get("outcomes") or [{}]
        yes_prob = float(outcomes[0].get("probability") or 0.5)
        title = m.get("title") or m["question"]

        return UnifiedMarket(
            id=normalize_market_id(self.platform, str(m["id"])),
            platform=self.platform,
            external_id=str(m["id"]),
            title=title,
            question=title,
            category=m.get("category") or "General",
            outcomes=binary_outcomes(yes_prob),
            status=MarketStatus.OPEN,
            yes_price=yes_prob,
            no_price=1 - yes_prob,
            volume=float(m.get("volume") or 0),
            liquidity=float(m.get("liquidity") or 0),
            expires_at=parse_timestamp(m.get("resolvesAt")),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "condition_id": m.get("conditionId"),
                "collateral_token": m.get("collateralToken") or "xDAI",
            },
        )

    def _curated_market(self, m: dict) -> UnifiedMarket:
        now = utcnow()
        return UnifiedMarket(
            id=normalize_market_id(self.platform, m["id"]),
            platform=self.platform,
            external_id=m["id"],
            title=m["title"],
            question=m["title"],
            category=m["category"],
            outcomes=binary_outcomes(m["yes_prob"]),
            status=MarketStatus.OPEN,
            yes_price=m["yes_prob"],
            no_price=1 - m["yes_prob"],
            volume=float(m["volume"]),
            liquidity=float(m["liquidity"]),
            expires_at=now + timedelta(days=m["days_to_resolve"]),
            chain=self.chain,
            currency=self.currency,
            fetched_at=now,
            metadata={"source": "curated", "collateral_token": "xDAI"},
        )

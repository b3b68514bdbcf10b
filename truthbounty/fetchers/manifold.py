"""
Manifold Markets fetcher.
Cursor pagination using the last record's id as ``before``.
"""

from typing import Optional

from truthbounty.config import settings
from truthbounty.fetchers.base import (
    BasePlatformFetcher,
    MarketStatus,
    PageResult,
    PlatformSlug,
    UnifiedMarket,
    binary_outcomes,
    normalize_market_id,
    parse_timestamp,
    truncate,
    utcnow,
)


class ManifoldFetcher(BasePlatformFetcher):
    platform = PlatformSlug.MANIFOLD.value
    name = "Manifold"
    chain = "Off-chain"
    currency = "Mana"
    base_url = settings.manifold_api_url
    timeout = 30.0
    page_size = 500
    max_page_size = 1000

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        page_size = min(limit or self.page_size, self.max_page_size)
        params = {"limit": page_size}
        if cursor:
            params["before"] = cursor

        raw_markets = await self._request("GET", "/markets", params=params)

        markets = self._parse_each(
            (m for m in raw_markets if not m.get("isResolved") and m.get("outcomeType") == "BINARY"),
            self._parse_market,
        )

        has_more = len(raw_markets) == page_size
        next_cursor = raw_markets[-1]["id"] if has_more and raw_markets else None
        return PageResult(data=markets, has_more=has_more, next_cursor=next_cursor)

    def _parse_market(self, m: dict) -> UnifiedMarket:
        prob = float(m.get("probability") or 0.5)
        groups = m.get("groupSlugs") or ["General"]

        return UnifiedMarket(
            id=normalize_market_id(self.platform, m["id"]),
            platform=self.platform,
            external_id=m["id"],
            title=m["question"],
            question=m["question"],
            description=truncate(m["description"]) if isinstance(m.get("description"), str) else None,
            category=groups[0],
            outcomes=binary_outcomes(prob),
            status=MarketStatus.RESOLVED if m.get("isResolved") else MarketStatus.OPEN,
            yes_price=prob,
            no_price=1 - prob,
            volume=float(m.get("volume") or 0),
            liquidity=float(m.get("totalLiquidity") or 0),
            closes_at=parse_timestamp(m.get("closeTime")),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "slug": m.get("slug"),
                "creator_username": m.get("creatorUsername"),
                "url": m.get("url") or f"https://manifold.markets/{m.get('creatorUsername')}/{m.get('slug')}",
                "outcome_type": m.get("outcomeType"),
            },
        )

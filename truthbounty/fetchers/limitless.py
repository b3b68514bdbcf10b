"""
Limitless Exchange fetcher.
Page-number pagination; completion is detected from ``totalMarketsCount``.
"""

from typing import Optional

from truthbounty.config import settings
from truthbounty.fetchers.base import (
    BasePlatformFetcher,
    MarketOutcome,
    MarketStatus,
    PageResult,
    PlatformSlug,
    UnifiedMarket,
    implied_odds,
    normalize_market_id,
    parse_timestamp,
    truncate,
    utcnow,
)


class LimitlessFetcher(BasePlatformFetcher):
    platform = PlatformSlug.LIMITLESS.value
    name = "Limitless"
    chain = "Base"
    currency = "USDC"
    base_url = settings.limitless_api_url
    timeout = 15.0
    page_size = 25

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        page_size = min(limit or self.page_size, self.page_size)
        page_num = int(cursor) if cursor else 1

        result = await self._request("GET", "/markets/active", params={"limit": page_size, "page": page_num})
        raw_markets = result.get("data") or []
        total_count = int(result.get("totalMarketsCount") or 0)

        markets = self._parse_each(
            (m for m in raw_markets if not m.get("expired") and m.get("status") == "FUNDED"),
            self._parse_market,
        )

        total_fetched = (page_num - 1) * page_size + len(raw_markets)
        has_more = total_fetched < total_count and len(raw_markets) == page_size
        return PageResult(
            data=markets,
            has_more=has_more,
            next_cursor=str(page_num + 1) if has_more else None,
            total_count=total_count,
        )

    def _parse_market(self, m: dict) -> UnifiedMarket:
        prices = m.get("prices") or []
        raw_yes = float(prices[0]) if len(prices) > 0 and prices[0] else 0.5
        raw_no = float(prices[1]) if len(prices) > 1 and prices[1] else 0.5
        # Values above 1 are already percentages
        yes_price = raw_yes / 100 if raw_yes > 1 else raw_yes
        no_price = raw_no / 100 if raw_no > 1 else raw_no
        volume = float(m.get("volumeFormatted") or 0)
        external_id = str(m["id"])

        categories = m.get("categories") or ["General"]

        return UnifiedMarket(
            id=normalize_market_id(self.platform, external_id),
            platform=self.platform,
            external_id=external_id,
            title=m["title"],
            question=m["title"],
            description=truncate(m.get("description")),
            category=categories[0],
            outcomes=[
                MarketOutcome(id="yes", name="Yes", probability=yes_price * 100, odds=implied_odds(yes_price)),
                MarketOutcome(id="no", name="No", probability=no_price * 100, odds=implied_odds(no_price)),
            ],
            status=MarketStatus.OPEN,
            yes_price=yes_price,
            no_price=no_price,
            volume=volume,
            # upstream reports no liquidity; rough estimate
            liquidity=volume * 0.1,
            expires_at=parse_timestamp(m.get("expirationTimestamp") or m.get("expirationDate")),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "condition_id": m.get("conditionId"),
                "slug": m.get("slug"),
                "tags": m.get("tags"),
                "expiration_date": m.get("expirationDate"),
            },
        )

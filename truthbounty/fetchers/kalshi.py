"""
Kalshi fetcher using the public trade API.
Opaque cursor pagination; prices are quoted in cents.
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
    normalize_market_id,
    parse_timestamp,
    truncate,
    utcnow,
)


class KalshiFetcher(BasePlatformFetcher):
    platform = PlatformSlug.KALSHI.value
    name = "Kalshi"
    chain = "Off-chain"
    currency = "USD"
    base_url = settings.kalshi_api_url
    timeout = 30.0
    page_size = 100
    max_page_size = 200

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        page_size = min(limit or self.page_size, self.max_page_size)
        params = {"status": "open", "limit": page_size}
        if cursor:
            params["cursor"] = cursor

        result = await self._request("GET", "/markets", params=params)
        next_cursor = result.get("cursor") or None
        markets = self._parse_each(result.get("markets") or [], self._parse_market)

        return PageResult(data=markets, has_more=bool(next_cursor), next_cursor=next_cursor)

    def _parse_market(self, m: dict) -> UnifiedMarket:
        yes_ask = m.get("yes_ask") or 50
        yes_bid = m.get("yes_bid") or 50
        yes_price = max(0.01, min(0.99, ((yes_ask + yes_bid) / 2) / 100))
        no_price = 1 - yes_price

        return UnifiedMarket(
            id=normalize_market_id(self.platform, m["ticker"]),
            platform=self.platform,
            external_id=m["ticker"],
            title=m.get("title") or m.get("subtitle") or m["ticker"],
            question=m.get("title"),
            description=truncate(m.get("rules_primary")),
            category=m.get("category") or "Events",
            outcomes=[
                MarketOutcome(id="yes", name="Yes", probability=yes_price * 100, odds=1 / yes_price),
                MarketOutcome(id="no", name="No", probability=no_price * 100, odds=1 / no_price),
            ],
            status=MarketStatus.OPEN if m.get("status") in ("open", "active") else MarketStatus.CLOSED,
            yes_price=yes_price,
            no_price=no_price,
            volume=float(m.get("volume") or 0),
            volume_24h=float(m.get("volume_24h") or 0),
            liquidity=float(m.get("open_interest") or 0),
            closes_at=parse_timestamp(m.get("close_time")),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "event_ticker": m.get("event_ticker"),
                "ticker": m["ticker"],
                "subtitle": m.get("subtitle"),
            },
        )

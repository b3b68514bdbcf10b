"""
Polymarket fetcher using the Gamma API.
Offset pagination; outcomes and prices arrive as JSON-encoded strings.
"""

import json
from typing import Any, Optional

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


def _decode_list(raw: Any, default: list) -> list:
    if raw is None or raw == "":
        return default
    return json.loads(raw) if isinstance(raw, str) else raw


class PolymarketFetcher(BasePlatformFetcher):
    platform = PlatformSlug.POLYMARKET.value
    name = "Polymarket"
    chain = "Polygon"
    currency = "USDC"
    base_url = settings.polymarket_gamma_url
    timeout = 30.0
    page_size = 100

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        page_size = min(limit or self.page_size, self.page_size)
        offset = int(cursor) if cursor else 0

        params = {
            "active": "true",
            "closed": "false",
            "limit": page_size,
            "offset": offset,
            "order": "volume",
            "ascending": "false",
        }
        raw_markets = await self._request("GET", "/markets", params=params)

        markets = self._parse_each(
            (m for m in raw_markets if m.get("active") and not m.get("closed") and m.get("question")),
            self._parse_market,
        )

        has_more = len(raw_markets) == page_size
        return PageResult(
            data=markets,
            has_more=has_more,
            next_cursor=str(offset + page_size) if has_more else None,
        )

    def _parse_market(self, m: dict) -> UnifiedMarket:
        prices = [float(p) for p in _decode_list(m.get("outcomePrices"), ["0.5", "0.5"])]
        names = _decode_list(m.get("outcomes"), ["Yes", "No"])
        external_id = str(m.get("id") or m["conditionId"])

        outcomes = []
        for i, name in enumerate(names):
            price = prices[i] if i < len(prices) else 0.5
            outcomes.append(MarketOutcome(id=name.lower(), name=name, probability=price * 100, odds=implied_odds(price)))

        events = m.get("events") or [{}]

        return UnifiedMarket(
            id=normalize_market_id(self.platform, external_id),
            platform=self.platform,
            external_id=external_id,
            title=m["question"],
            question=m["question"],
            description=truncate(m.get("description")),
            category=events[0].get("category") or "General",
            outcomes=outcomes,
            status=MarketStatus.CLOSED if m.get("closed") else MarketStatus.OPEN,
            yes_price=prices[0] if prices else 0.5,
            no_price=prices[1] if len(prices) > 1 else 0.5,
            volume=float(m.get("volumeNum") or 0),
            volume_24h=float(m.get("volume24hr") or 0),
            liquidity=float(m.get("liquidityNum") or 0),
            expires_at=parse_timestamp(m.get("endDate")),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "condition_id": m.get("conditionId"),
                "slug": m.get("slug"),
                "image": m.get("image"),
                "clob_token_ids": m.get("clobTokenIds"),
            },
        )

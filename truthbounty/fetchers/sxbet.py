"""
SX Bet fetcher.
Page-number pagination; the active-markets endpoint caps pages at 50.
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
    utcnow,
)

SPORT_NAMES = {
    1: "Soccer",
    2: "Football",
    3: "Basketball",
    4: "Hockey",
    5: "Baseball",
    6: "Tennis",
    7: "MMA",
    8: "Esports",
    9: "Cricket",
    10: "Rugby",
}

MARKET_TYPES = {
    1: "Moneyline",
    2: "Spread",
    3: "Total",
    52: "Props",
    63: "Game Props",
    126: "Moneyline",
}


class SXBetFetcher(BasePlatformFetcher):
    platform = PlatformSlug.SXBET.value
    name = "SX Bet"
    chain = "SX Network"
    currency = "USDC"
    base_url = settings.sxbet_api_url
    timeout = 30.0
    page_size = 50

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        page_size = min(limit or self.page_size, self.page_size)
        page_num = int(cursor) if cursor else 1

        result = await self._request("GET", "/markets/active", params={"pageSize": page_size, "pageNum": page_num})
        raw_markets = (result.get("data") or {}).get("markets") or []

        markets = self._parse_each((m for m in raw_markets if m.get("status") == "ACTIVE"), self._parse_market)

        has_more = len(raw_markets) == page_size
        return PageResult(data=markets, has_more=has_more, next_cursor=str(page_num + 1) if has_more else None)

    def _parse_market(self, m: dict) -> UnifiedMarket:
        sport_name = SPORT_NAMES.get(m.get("sportId"), "Sports")
        market_type = MARKET_TYPES.get(m.get("type"), "Moneyline")

        team_one = m.get("teamOneName") or m.get("outcomeOneName") or "Team 1"
        team_two = m.get("teamTwoName") or m.get("outcomeTwoName") or "Team 2"
        title = f"{team_one} vs {team_two}"

        outcomes = [
            MarketOutcome(id="one", name=m.get("outcomeOneName") or team_one, probability=50, odds=2),
            MarketOutcome(id="two", name=m.get("outcomeTwoName") or team_two, probability=50, odds=2),
        ]
        if m.get("outcomeVoidName"):
            outcomes.append(MarketOutcome(id="void", name=m["outcomeVoidName"], probability=10, odds=10))

        return UnifiedMarket(
            id=normalize_market_id(self.platform, m["marketHash"]),
            platform=self.platform,
            external_id=m["marketHash"],
            title=title,
            question=f"{title} - {market_type}",
            category=sport_name,
            outcomes=outcomes,
            status=MarketStatus.OPEN if m.get("status") == "ACTIVE" else MarketStatus.CLOSED,
            yes_price=0.5,
            no_price=0.5,
            # not reported by this endpoint
            volume=0.0,
            expires_at=parse_timestamp(m.get("gameTime")),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "market_hash": m["marketHash"],
                "sport_id": m.get("sportId"),
                "league_id": m.get("leagueId"),
                "type": m.get("type"),
                "market_type": market_type,
                "line": m.get("line"),
                "sport_label": m.get("sportLabel"),
                "league_label": m.get("leagueLabel"),
            },
        )

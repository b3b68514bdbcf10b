"""
Overtime fetcher backed by The Odds API.
No pagination: one request per sport, merged into a single page.
"""

import logging
from datetime import timedelta
from typing import Optional

import httpx

from truthbounty.config import settings
from truthbounty.errors import RateLimitedError, UpstreamError
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

logger = logging.getLogger(__name__)

SPORTS_TO_FETCH = [
    "basketball_nba",
    "americanfootball_nfl",
    "icehockey_nhl",
    "soccer_epl",
    "mma_mixed_martial_arts",
    "baseball_mlb",
    "soccer_spain_la_liga",
    "soccer_germany_bundesliga",
]

SPORT_CATEGORIES = {
    "basketball_nba": "Basketball",
    "basketball_ncaab": "Basketball",
    "americanfootball_nfl": "Football",
    "americanfootball_ncaaf": "Football",
    "icehockey_nhl": "Hockey",
    "baseball_mlb": "Baseball",
    "mma_mixed_martial_arts": "MMA",
    "soccer_epl": "Soccer",
    "soccer_spain_la_liga": "Soccer",
    "soccer_germany_bundesliga": "Soccer",
    "soccer_italy_serie_a": "Soccer",
    "soccer_france_ligue_one": "Soccer",
}


class OvertimeFetcher(BasePlatformFetcher):
    platform = PlatformSlug.OVERTIME.value
    name = "Overtime"
    chain = "Optimism"
    currency = "sUSD"
    base_url = settings.odds_api_url
    timeout = 10.0

    def __init__(self, context, http=None, api_key: Optional[str] = None):
        super().__init__(context, http)
        self.api_key = settings.odds_api_key if api_key is None else api_key

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        if not self.api_key:
            logger.warning("[overtime] ODDS_API_KEY not configured - skipping")
            return PageResult(data=[], has_more=False)

        markets: list[UnifiedMarket] = []
        for sport in SPORTS_TO_FETCH:
            try:
                events = await self._request(
                    "GET",
                    f"/sports/{sport}/odds",
                    params={"apiKey": self.api_key, "regions": "us", "markets": "h2h", "oddsFormat": "decimal"},
                )
            except RateLimitedError:
                logger.warning("[overtime] Rate limit hit, stopping")
                break
            except (UpstreamError, httpx.HTTPError) as e:
                logger.warning(f"[overtime] Failed to fetch {sport}: {e}")
                continue

            markets.extend(self._parse_each(events, lambda ev, sport=sport: self._parse_event(ev, sport)))

        logger.info(f"[overtime] Fetched {len(markets)} sports markets")
        return PageResult(data=markets, has_more=False)

    def _parse_event(self, event: dict, sport_key: str) -> Optional[UnifiedMarket]:
        home_team = event.get("home_team")
        away_team = event.get("away_team")
        if not home_team or not away_team:
            return None
        title = f"{home_team} vs {away_team}"

        home_odds, away_odds, draw_odds = 2.0, 2.0, None
        for bookmaker in event.get("bookmakers") or []:
            h2h = next((m for m in bookmaker.get("markets") or [] if m.get("key") == "h2h"), None)
            if h2h and len(h2h.get("outcomes") or []) >= 2:
                prices = {o["name"]: float(o["price"]) for o in h2h["outcomes"]}
                if any(p <= 0 for p in prices.values()):
                    raise ValueError(f"Non-positive odds for {title}: {prices}")
                home_odds = prices.get(home_team, home_odds)
                away_odds = prices.get(away_team, away_odds)
                draw_odds = prices.get("Draw")
                break

        outcomes = [
            MarketOutcome(id="home", name=home_team, probability=100 / home_odds, odds=home_odds),
            MarketOutcome(id="away", name=away_team, probability=100 / away_odds, odds=away_odds),
        ]
        if draw_odds:
            outcomes.append(MarketOutcome(id="draw", name="Draw", probability=100 / draw_odds, odds=draw_odds))

        return UnifiedMarket(
            id=normalize_market_id(self.platform, event["id"]),
            platform=self.platform,
            external_id=event["id"],
            title=title,
            question=title,
            category=SPORT_CATEGORIES.get(sport_key) or event.get("sport_title") or "Sports",
            outcomes=outcomes,
            status=MarketStatus.OPEN,
            yes_price=1 / home_odds,
            no_price=1 / away_odds,
            volume=0.0,
            expires_at=parse_timestamp(event.get("commence_time")) or utcnow() + timedelta(days=1),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "sport_key": sport_key,
                "sport_title": event.get("sport_title"),
                "home_team": home_team,
                "away_team": away_team,
                "bookmakers": len(event.get("bookmakers") or []),
            },
        )

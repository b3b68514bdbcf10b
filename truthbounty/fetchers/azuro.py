"""
Azuro Protocol fetcher.
Queries the live, Polygon and Gnosis subgraphs with the same ``skip`` offset.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from truthbounty.config import settings
from truthbounty.errors import PlatformError, UpstreamError
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

AZURO_SUBGRAPHS = {
    "live": f"{settings.azuro_subgraph_base}/azuro-api-live-data-feed",
    "polygon": f"{settings.azuro_subgraph_base}/azuro-api-polygon-v3",
    "gnosis": f"{settings.azuro_subgraph_base}/azuro-api-gnosis-v3",
}

GAMES_QUERY = """
query GetGames($first: Int!, $skip: Int!) {
  games(
    first: $first
    skip: $skip
    where: { status: Created }
    orderBy: startsAt
    orderDirection: asc
  ) {
    id
    gameId
    startsAt
    status
    sport { name slug }
    league { name slug country { name } }
    participants { name image }
    conditions(first: 5, where: { status: Created }) {
      conditionId
      status
      turnover
      outcomes { outcomeId }
    }
  }
}
"""

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class AzuroFetcher(BasePlatformFetcher):
    platform = PlatformSlug.AZURO.value
    name = "Azuro"
    chain = "Multi-chain"
    currency = "USDC"
    timeout = 30.0
    page_size = 100

    def __init__(self, context, http=None, subgraphs: Optional[dict[str, str]] = None):
        super().__init__(context, http)
        self.subgraphs = subgraphs or AZURO_SUBGRAPHS

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        page_size = min(limit or self.page_size, self.page_size)
        skip = int(cursor) if cursor else 0

        markets: list[UnifiedMarket] = []
        failures = 0
        for chain, url in self.subgraphs.items():
            try:
                result = await self._request(
                    "POST", url, json={"query": GAMES_QUERY, "variables": {"first": page_size, "skip": skip}},
                )
            except PlatformError as e:
                failures += 1
                logger.error(f"[azuro] {chain} fetch error: {e}")
                continue

            if result.get("errors"):
                failures += 1
                logger.error(f"[azuro] {chain} query error: {result['errors'][0].get('message')}")
                continue

            games = (result.get("data") or {}).get("games") or []
            markets.extend(self._parse_each(games, lambda g, chain=chain: self._parse_game(g, chain)))

        if failures == len(self.subgraphs):
            raise UpstreamError("All subgraphs failed", self.platform)

        markets.sort(key=lambda m: m.expires_at or _EPOCH)

        has_more = len(markets) >= page_size
        return PageResult(data=markets, has_more=has_more, next_cursor=str(skip + page_size) if has_more else None)

    def _parse_game(self, game: dict, chain: str) -> Optional[UnifiedMarket]:
        if not game:
            return None

        participants = [p["name"] for p in game.get("participants") or []]
        if len(participants) >= 2:
            title = f"{participants[0]} vs {participants[1]}"
        else:
            title = (game.get("league") or {}).get("name") or "Unknown Match"

        turnover = sum(float(c.get("turnover") or 0) for c in game.get("conditions") or [])
        # turnover is reported in 6-decimal token units
        volume = turnover / 1e6

        outcomes = [
            MarketOutcome(id="home", name=participants[0] if participants else "Home", probability=33, odds=3),
            MarketOutcome(id="away", name=participants[1] if len(participants) > 1 else "Away", probability=33, odds=3),
            MarketOutcome(id="draw", name="Draw", probability=34, odds=2.94),
        ]

        sport = game.get("sport") or {}
        league = game.get("league") or {}
        game_id = str(game["gameId"])

        return UnifiedMarket(
            id=normalize_market_id(self.platform, f"{chain}-{game_id}"),
            platform=self.platform,
            external_id=game_id,
            title=title,
            question=title,
            category=sport.get("name") or "Sports",
            outcomes=outcomes,
            status=MarketStatus.OPEN,
            yes_price=0.33,
            no_price=0.33,
            volume=volume,
            expires_at=parse_timestamp(int(game["startsAt"])) if game.get("startsAt") else None,
            chain="Multi-chain" if chain == "live" else chain.capitalize(),
            currency="xDAI" if chain == "gnosis" else "USDC",
            fetched_at=utcnow(),
            metadata={
                "game_id": game_id,
                "sport": sport.get("name"),
                "league": league.get("name"),
                "country": (league.get("country") or {}).get("name"),
                "participants": participants,
                "chain": chain,
                "conditions_count": len(game.get("conditions") or []),
            },
        )

"""
Metaculus fetcher for open binary forecasting questions.
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


class MetaculusFetcher(BasePlatformFetcher):
    platform = PlatformSlug.METACULUS.value
    name = "Metaculus"
    chain = "Off-chain"
    currency = "Points"
    base_url = settings.metaculus_api_url
    timeout = 30.0
    page_size = 100

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        page_size = min(limit or self.page_size, self.page_size)
        offset = int(cursor) if cursor else 0

        params = {
            "limit": page_size,
            "offset": offset,
            "status": "open",
            "type": "binary",
            "order_by": "-activity",
        }
        result = await self._request("GET", "/questions/", params=params)
        raw_questions = result.get("results") or []
        total_count = int(result.get("count") or 0)

        markets = self._parse_each(raw_questions, self._parse_question)

        has_more = offset + len(raw_questions) < total_count and bool(raw_questions)
        return PageResult(
            data=markets,
            has_more=has_more,
            next_cursor=str(offset + page_size) if has_more else None,
            total_count=total_count,
        )

    def _parse_question(self, q: dict) -> UnifiedMarket:
        inner = q.get("question") or {}
        latest = ((inner.get("aggregations") or {}).get("recency_weighted") or {}).get("latest") or {}
        centers = latest.get("centers") or [0.5]
        yes_price = float(centers[0])

        category = "General"
        projects = q.get("projects") or {}
        if projects.get("question_series"):
            category = projects["question_series"][0].get("name") or category
        elif projects.get("leaderboard_tag"):
            category = projects["leaderboard_tag"][0].get("name") or category

        question_id = str(q.get("id") or inner["id"])
        title = q.get("title") or inner["title"]
        is_open = q.get("status") == "open" or inner.get("status") == "open"

        return UnifiedMarket(
            id=normalize_market_id(self.platform, question_id),
            platform=self.platform,
            external_id=question_id,
            title=title,
            question=title,
            description=truncate(inner.get("description") or q.get("description")),
            category=category,
            outcomes=binary_outcomes(yes_price),
            status=MarketStatus.OPEN if is_open else MarketStatus.CLOSED,
            yes_price=yes_price,
            no_price=1 - yes_price,
            # forecast count stands in for traded volume
            volume=float(q.get("forecasts_count") or q.get("nr_forecasters") or 0),
            closes_at=parse_timestamp(q.get("scheduled_close_time") or inner.get("scheduled_close_time")),
            expires_at=parse_timestamp(q.get("scheduled_resolve_time") or inner.get("scheduled_resolve_time")),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "url": f"https://www.metaculus.com/questions/{question_id}",
                "author": q.get("author_username"),
                "forecasts_count": q.get("forecasts_count"),
                "comment_count": q.get("comment_count"),
                "slug": q.get("slug"),
            },
        )

"""
Limitless traders, discovered through recent market events.

Limitless exposes no win/loss record, so win rates are estimated from the
trader's leaderboard position and flagged as such.
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from truthbounty.config import settings
from truthbounty.errors import PlatformError, UpstreamError
from truthbounty.services.truthscore import estimate_win_rate_from_rank
from truthbounty.traders.base import Amount, Deadline, TraderStats, TraderStatsSource, run_batched

logger = logging.getLogger(__name__)

MARKETS_TO_SCAN = 25
EVENTS_PER_MARKET = 50
UNRANKED_POSITION = 999999
USDC_DECIMALS = 6


class LimitlessTradersSource(TraderStatsSource):
    platform = "limitless"
    name = "Limitless"
    strategy = "wilson-points"
    base_url = settings.limitless_api_url
    timeout = 8.0

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        batch_size: int = settings.enrichment_batch_size,
        max_enriched: int = settings.enrichment_max_entities,
    ):
        super().__init__(http)
        self.batch_size = batch_size
        self.max_enriched = max_enriched

    async def _market_slugs(self) -> list[str]:
        data = await self._request("GET", "/markets/active/slugs", params={"limit": MARKETS_TO_SCAN})
        return [m["slug"] for m in data if m.get("slug")]

    async def _market_profiles(self, slug: str) -> list[dict]:
        data = await self._request("GET", f"/markets/{slug}/events", params={"limit": EVENTS_PER_MARKET})
        return [e["profile"] for e in data.get("events") or [] if (e.get("profile") or {}).get("account")]

    async def _volume(self, address: str) -> Decimal:
        data = await self._request("GET", f"/portfolio/{address}/traded-volume")
        return Decimal(str(data.get("data") or "0"))

    async def _realized_pnl(self, address: str) -> Decimal:
        data = await self._request("GET", f"/portfolio/{address}/positions")
        total = Decimal(0)
        for pos in data.get("amm") or []:
            total += Decimal(str(pos.get("realizedPnl") or "0"))
        for pos in data.get("clob") or []:
            sides = pos.get("positions") or {}
            total += Decimal(str((sides.get("yes") or {}).get("realisedPnl") or "0"))
            total += Decimal(str((sides.get("no") or {}).get("realisedPnl") or "0"))
        return total.scaleb(-USDC_DECIMALS)

    async def _enrich(self, trader: TraderStats) -> TraderStats:
        try:
            volume = await self._volume(trader.address)
            pnl = await self._realized_pnl(trader.address)
        except (PlatformError, httpx.HTTPError) as e:
            logger.debug(f"[limitless] Enrichment failed for {trader.address}: {e}")
            return trader
        trader.volume = Amount(volume, "USDC")
        trader.pnl = Amount(pnl, "USDC")
        return trader

    def _build_trader(self, profile: dict, trades: int) -> TraderStats:
        position = int(profile.get("leaderboardPosition") or UNRANKED_POSITION)
        estimate = estimate_win_rate_from_rank(position)
        wins = int(trades * estimate.win_rate / 100)
        return TraderStats(
            address=profile["account"],
            platform=self.platform,
            total_bets=trades,
            wins=wins,
            losses=trades - wins,
            volume=Amount.zero("USDC"),
            pnl=Amount.zero("USDC"),
            is_estimated=estimate.is_estimated,
            estimated_win_rate=estimate.win_rate,
            username=profile.get("username"),
            points=float(profile.get("points") or 0),
            rank_position=position,
            extra={"rank_name": profile.get("rankName") or "Bronze", "display_name": profile.get("displayName")},
        )

    async def fetch_traders(self, limit: int, deadline: Deadline) -> list[TraderStats]:
        slugs = await self._market_slugs()
        if not slugs:
            raise UpstreamError("No active markets to scan", self.platform)

        profile_lists = await run_batched(slugs, self._market_profiles, self.batch_size, deadline)

        best: dict[str, dict] = {}
        trades: dict[str, int] = {}
        for profiles in profile_lists:
            for profile in profiles or []:
                key = profile["account"].lower()
                trades[key] = trades.get(key, 0) + 1
                current = best.get(key)
                position = int(profile.get("leaderboardPosition") or UNRANKED_POSITION)
                if current is None or position < int(current.get("leaderboardPosition") or UNRANKED_POSITION):
                    best[key] = profile

        if not best:
            raise UpstreamError("Could not fetch trader data from Limitless markets", self.platform)

        traders = [self._build_trader(best[key], trades[key]) for key in best]
        traders.sort(key=lambda t: t.rank_position)

        await run_batched(traders[:self.max_enriched], self._enrich, self.batch_size, deadline)
        return traders

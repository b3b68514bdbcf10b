"""Polymarket traders from the public data-API leaderboard."""

import asyncio
import logging

from truthbounty.config import settings
from truthbounty.errors import UpstreamError
from truthbounty.traders.base import Amount, Deadline, TraderStats, TraderStatsSource

logger = logging.getLogger(__name__)

# The leaderboard reports no trade count; one trade per $250 of volume
AVERAGE_TRADE_SIZE = 250


class PolymarketTradersSource(TraderStatsSource):
    platform = "polymarket"
    name = "Polymarket"
    strategy = "wilson"
    base_url = settings.polymarket_data_url
    timeout = 15.0

    def _parse_trader(self, t: dict) -> TraderStats:
        volume = float(t.get("vol") or 0)
        pnl = float(t.get("pnl") or 0)
        roi = pnl / volume if volume > 0 else 0.0
        # wins derived from ROI: positive ROI implies a winning record
        win_rate = min(95.0, 50 + roi * 100) if roi > 0 else max(5.0, 50 + roi * 100)
        trades = int(volume // AVERAGE_TRADE_SIZE)
        wins = int(trades * win_rate / 100)
        return TraderStats(
            address=t["proxyWallet"],
            platform=self.platform,
            total_bets=trades,
            wins=wins,
            losses=trades - wins,
            volume=Amount.of(volume, "USDC"),
            pnl=Amount.of(pnl, "USDC"),
            is_estimated=True,
            estimated_win_rate=win_rate,
            username=t.get("userName"),
            rank_position=int(t["rank"]) if str(t.get("rank") or "").isdigit() else None,
            extra={
                "profile_image": t.get("profileImage"),
                "x_username": t.get("xUsername"),
                "verified_badge": t.get("verifiedBadge"),
            },
        )

    async def fetch_traders(self, limit: int, deadline: Deadline) -> list[TraderStats]:
        params = {"category": "OVERALL", "timePeriod": "ALL", "orderBy": "PNL", "limit": limit}
        try:
            raw = await asyncio.wait_for(
                self._request("GET", "/v1/leaderboard", params=params), timeout=deadline.remaining(),
            )
        except asyncio.TimeoutError:
            raise UpstreamError("Leaderboard request timed out", self.platform) from None

        traders = []
        for t in raw or []:
            try:
                traders.append(self._parse_trader(t))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"[polymarket] Skipping malformed trader: {e}")
        return traders

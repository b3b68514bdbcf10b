"""Azuro bettors from the per-network subgraphs."""

import asyncio
import logging
from typing import Optional

import httpx

from truthbounty.config import settings
from truthbounty.errors import PlatformError, UpstreamError
from truthbounty.traders.base import Amount, Deadline, TraderStats, TraderStatsSource

logger = logging.getLogger(__name__)

BETTOR_SUBGRAPHS = {
    "polygon": f"{settings.azuro_subgraph_base}/azuro-api-polygon-v3",
    "gnosis": f"{settings.azuro_subgraph_base}/azuro-api-gnosis-v3",
    "arbitrum": f"{settings.azuro_subgraph_base}/azuro-api-arbitrum-one-v3",
}

# Bettor amounts are 18-decimal fixed point on every network
AMOUNT_DECIMALS = 18

NETWORK_CURRENCY = {"polygon": "USDT", "gnosis": "xDAI", "arbitrum": "USDT"}

TOP_BETTORS_QUERY = """
query GetTopBettors($first: Int!) {
  bettors(
    first: $first
    orderBy: rawTurnover
    orderDirection: desc
    where: { betsCount_gt: "0" }
  ) {
    id
    rawTurnover
    betsCount
    wonBetsCount
    lostBetsCount
    canceledBetsCount
    pnl
  }
}
"""


class AzuroTradersSource(TraderStatsSource):
    platform = "azuro"
    name = "Azuro"
    strategy = "wilson"
    timeout = 15.0

    def __init__(self, http: Optional[httpx.AsyncClient] = None, subgraphs: Optional[dict[str, str]] = None):
        super().__init__(http)
        self.subgraphs = subgraphs or BETTOR_SUBGRAPHS

    async def _query_network(self, network: str, url: str, first: int) -> list[TraderStats]:
        try:
            result = await self._request("POST", url, json={"query": TOP_BETTORS_QUERY, "variables": {"first": first}})
        except (PlatformError, httpx.HTTPError) as e:
            logger.error(f"[azuro] {network} subgraph query failed: {e}")
            return []
        if result.get("errors"):
            logger.error(f"[azuro] {network} subgraph errors: {result['errors']}")
            return []

        traders = []
        for b in (result.get("data") or {}).get("bettors") or []:
            try:
                traders.append(self._parse_bettor(b, network))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"[azuro] Skipping malformed bettor: {e}")
        return traders

    def _parse_bettor(self, b: dict, network: str) -> TraderStats:
        currency = NETWORK_CURRENCY.get(network, "USD")
        # Canceled bets are not settled either way
        return TraderStats(
            address=b["id"],
            platform=self.platform,
            total_bets=int(b.get("betsCount") or 0),
            wins=int(b.get("wonBetsCount") or 0),
            losses=int(b.get("lostBetsCount") or 0),
            volume=Amount.from_raw(b.get("rawTurnover") or 0, AMOUNT_DECIMALS, currency),
            pnl=Amount.from_raw(b.get("pnl") or 0, AMOUNT_DECIMALS, currency),
            extra={"network": network},
        )

    async def fetch_traders(self, limit: int, deadline: Deadline) -> list[TraderStats]:
        per_network = max(1, -(-limit // len(self.subgraphs)))
        try:
            results = await asyncio.wait_for(
                asyncio.gather(*(self._query_network(n, u, per_network) for n, u in self.subgraphs.items())),
                timeout=deadline.remaining(),
            )
        except asyncio.TimeoutError:
            raise UpstreamError("Subgraph queries timed out", self.platform) from None

        traders = [t for network_traders in results for t in network_traders]
        if not traders:
            raise UpstreamError("Azuro subgraph unavailable", self.platform)
        return traders

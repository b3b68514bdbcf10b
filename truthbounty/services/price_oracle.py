import json
import logging
from typing import Optional

import httpx

from truthbounty.config import settings
from truthbounty.errors import PriceUnavailableError

logger = logging.getLogger(__name__)

COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "CAKE": "pancakeswap-token",
    "SOL": "solana",
}


class PriceOracle:
    """Spot USD prices with CoinGecko as primary source and Binance as fallback."""

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        coingecko_url: str = settings.coingecko_api_url,
        binance_url: str = settings.binance_api_url,
        timeout: float = 5.0,
    ):
        self._http = http
        self._owns_http = http is None
        self.coingecko_url = coingecko_url.rstrip("/")
        self.binance_url = binance_url.rstrip("/")
        self.timeout = timeout

    async def initialize(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout, headers={"Accept": "application/json"})

    async def close(self) -> None:
        if self._http and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def get_prices(self, assets: list[str]) -> dict[str, float]:
        if self._http is None:
            await self.initialize()
        assets = [a.upper() for a in assets]

        for source, fetch in (("coingecko", self._from_coingecko), ("binance", self._from_binance)):
            try:
                prices = await fetch(assets)
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"[oracle] {source} price fetch failed: {e}")
                continue
            if all(prices.get(a, 0) > 0 for a in assets):
                return prices
            logger.warning(f"[oracle] {source} returned incomplete prices: {prices}")

        raise PriceUnavailableError(f"Unable to fetch prices for {', '.join(assets)} from any source")

    async def get_price(self, asset: str) -> float:
        prices = await self.get_prices([asset])
        return prices[asset.upper()]

    async def _from_coingecko(self, assets: list[str]) -> dict[str, float]:
        ids = {a: COINGECKO_IDS[a] for a in assets if a in COINGECKO_IDS}
        resp = await self._http.get(
            f"{self.coingecko_url}/simple/price",
            params={"ids": ",".join(ids.values()), "vs_currencies": "usd"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        return {a: float((data.get(cg_id) or {}).get("usd") or 0) for a, cg_id in ids.items()}

    async def _from_binance(self, assets: list[str]) -> dict[str, float]:
        symbols = [f"{a}USDT" for a in assets]
        resp = await self._http.get(
            f"{self.binance_url}/ticker/price",
            params={"symbols": json.dumps(symbols, separators=(",", ":"))},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        by_symbol = {t["symbol"]: float(t["price"]) for t in resp.json()}
        return {a: by_symbol.get(f"{a}USDT", 0.0) for a in assets}

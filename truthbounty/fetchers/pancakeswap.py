"""
PancakeSwap Prediction fetcher.
Reads the last few rounds straight from the BSC prediction contract.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from web3 import AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from truthbounty.config import settings
from truthbounty.fetchers.base import (
    BasePlatformFetcher,
    MarketOutcome,
    MarketStatus,
    PageResult,
    PlatformSlug,
    UnifiedMarket,
    normalize_market_id,
    utcnow,
)

logger = logging.getLogger(__name__)

PREDICTION_CONTRACT = "0x18B2A687610328590Bc8F2e5fEdde3b582A49cdA"
CURRENT_EPOCH_SELECTOR = "0x76671808"
ROUNDS_SELECTOR = "0x8c65c81f"
ROUNDS_TO_FETCH = 5
ROUND_DURATION = 300
ASSETS = ["BNB", "CAKE"]


@dataclass
class Round:
    epoch: int
    start_timestamp: int
    lock_timestamp: int
    close_timestamp: int
    lock_price: int
    close_price: int
    total_amount: int
    bull_amount: int
    bear_amount: int


def _slot(raw: bytes, index: int) -> int:
    return int.from_bytes(raw[index * 32:(index + 1) * 32], "big")


def decode_round(raw: bytes) -> Round:
    """Decode the ``rounds(uint256)`` return tuple from 32-byte words."""
    return Round(
        epoch=_slot(raw, 0),
        start_timestamp=_slot(raw, 1),
        lock_timestamp=_slot(raw, 2),
        close_timestamp=_slot(raw, 3),
        lock_price=_slot(raw, 4),
        close_price=_slot(raw, 5),
        total_amount=_slot(raw, 8),
        bull_amount=_slot(raw, 9),
        bear_amount=_slot(raw, 10),
    )


class PancakeSwapFetcher(BasePlatformFetcher):
    platform = PlatformSlug.PANCAKESWAP.value
    name = "PancakeSwap Prediction"
    chain = "BNB Chain"
    currency = "BNB"

    def __init__(self, context, http=None, web3: Optional[AsyncWeb3] = None):
        super().__init__(context, http)
        self._web3 = web3

    async def initialize(self) -> None:
        if self._web3 is None:
            self._web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.bsc_rpc_url))

    async def close(self) -> None:
        self._web3 = None

    async def _eth_call(self, data: str) -> bytes:
        if self._web3 is None:
            await self.initialize()
        result = await self._web3.eth.call({"to": Web3.to_checksum_address(PREDICTION_CONTRACT), "data": data})
        return bytes(result)

    async def get_round(self, epoch: int) -> Round:
        return decode_round(await self._eth_call(ROUNDS_SELECTOR + format(epoch, "064x")))

    async def fetch_page(self, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        current_epoch = int.from_bytes(await self._eth_call(CURRENT_EPOCH_SELECTOR), "big")

        markets: list[UnifiedMarket] = []
        for i in range(ROUNDS_TO_FETCH):
            epoch = current_epoch - i
            if epoch <= 0:
                continue
            try:
                round_data = await self.get_round(epoch)
            except (Web3Exception, ValueError) as e:
                logger.debug(f"[pancakeswap] Round {epoch} unavailable: {e}")
                continue
            if round_data.lock_timestamp > 0:
                markets.extend(self._parse_round(round_data, epoch, asset) for asset in ASSETS)

        return PageResult(data=markets, has_more=False)

    def _parse_round(self, round_data: Round, epoch: int, asset: str) -> UnifiedMarket:
        now = int(utcnow().timestamp())
        lock_time = round_data.lock_timestamp
        close_time = round_data.close_timestamp or lock_time + ROUND_DURATION

        bull = round_data.bull_amount / 1e18
        bear = round_data.bear_amount / 1e18
        total = bull + bear
        bull_prob = bull / total * 100 if total > 0 else 50.0
        bear_prob = bear / total * 100 if total > 0 else 50.0

        external_id = f"{asset}-{epoch}"
        return UnifiedMarket(
            id=normalize_market_id(self.platform, external_id),
            platform=self.platform,
            external_id=external_id,
            title=f"{asset}/USD - Round {epoch}",
            question=f"Will {asset} price go UP or DOWN?",
            category="Crypto",
            outcomes=[
                MarketOutcome(id="bull", name="UP (Bull)", probability=bull_prob, odds=100 / bull_prob if bull_prob > 0 else 2),
                MarketOutcome(id="bear", name="DOWN (Bear)", probability=bear_prob, odds=100 / bear_prob if bear_prob > 0 else 2),
            ],
            status=MarketStatus.OPEN if now < lock_time else MarketStatus.CLOSED,
            yes_price=bull_prob / 100,
            no_price=bear_prob / 100,
            volume=total,
            expires_at=datetime.fromtimestamp(close_time, tz=timezone.utc),
            closes_at=datetime.fromtimestamp(lock_time, tz=timezone.utc),
            chain=self.chain,
            currency=self.currency,
            fetched_at=utcnow(),
            metadata={
                "epoch": str(epoch),
                "asset": asset,
                # oracle answers carry 8 decimals
                "lock_price": round_data.lock_price / 1e8,
                "round_duration": ROUND_DURATION,
            },
        )

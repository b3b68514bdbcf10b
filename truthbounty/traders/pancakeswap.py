"""
PancakeSwap Prediction indexer adapter.

Walks BetBull / BetBear / Claim logs of the prediction contract in block
batches. A claim for an epoch the trader bet on counts as a win.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from web3 import AsyncWeb3, Web3

from truthbounty.config import settings
from truthbounty.fetchers.pancakeswap import PREDICTION_CONTRACT
from truthbounty.traders.base import Amount, TraderStats

logger = logging.getLogger(__name__)

BET_BULL_TOPIC = Web3.to_hex(Web3.keccak(text="BetBull(address,uint256,uint256)"))
BET_BEAR_TOPIC = Web3.to_hex(Web3.keccak(text="BetBear(address,uint256,uint256)"))
CLAIM_TOPIC = Web3.to_hex(Web3.keccak(text="Claim(address,uint256,uint256)"))

BNB_DECIMALS = 18


def _hex(value: Any) -> str:
    text = value.hex() if isinstance(value, (bytes, bytearray)) else str(value)
    return text if text.startswith("0x") else f"0x{text}"


@dataclass
class PredictionEvent:
    sender: str
    epoch: int
    amount: int
    block_number: int = 0
    tx_hash: str = ""


def decode_event(log: dict) -> PredictionEvent:
    """Decode ``(address indexed sender, uint256 indexed epoch, uint256 amount)``."""
    topics = log["topics"]
    sender = "0x" + _hex(topics[1])[-40:]
    epoch = int(_hex(topics[2]), 16)
    data = log["data"]
    amount = int.from_bytes(bytes(data), "big") if isinstance(data, (bytes, bytearray)) else int(_hex(data), 16)
    return PredictionEvent(
        sender=sender.lower(),
        epoch=epoch,
        amount=amount,
        block_number=int(log.get("blockNumber") or 0),
        tx_hash=_hex(log["transactionHash"]) if log.get("transactionHash") else "",
    )


@dataclass
class _UserTally:
    total_bets: int = 0
    volume_wei: int = 0
    epochs: set[int] = field(default_factory=set)
    won_epochs: set[int] = field(default_factory=set)


@dataclass
class IndexerResult:
    platform: str
    chain: str
    user_stats: dict[str, TraderStats]
    total_bets_indexed: int
    total_claims_indexed: int
    from_block: int
    to_block: int
    indexed_at: float
    errors: list[str] = field(default_factory=list)


class PancakeSwapIndexerAdapter:
    name = "PancakeSwap Prediction"
    platform = "pancakeswap"
    chain = "bsc"

    def __init__(
        self,
        web3: Optional[AsyncWeb3] = None,
        batch_size: int = 2000,
        delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._web3 = web3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.bsc_rpc_url))
        self.batch_size = batch_size
        self.delay = delay
        self._sleep = sleep

    async def is_available(self) -> bool:
        try:
            return await self.current_block() > 0
        except Exception as e:
            logger.warning(f"[pancakeswap] RPC unavailable: {e}")
            return False

    async def current_block(self) -> int:
        return int(await self._web3.eth.block_number)

    async def _logs(self, topic: str, start: int, end: int) -> list[PredictionEvent]:
        logs = await self._web3.eth.get_logs({
            "address": Web3.to_checksum_address(PREDICTION_CONTRACT),
            "fromBlock": start,
            "toBlock": end,
            "topics": [topic],
        })
        return [decode_event(log) for log in logs]

    async def index_users(self, from_block: int, to_block: int) -> IndexerResult:
        logger.info(f"[pancakeswap] Indexing from block {from_block} to {to_block}...")
        tallies: dict[str, _UserTally] = {}
        claims: list[PredictionEvent] = []
        total_bets = 0
        errors: list[str] = []

        for start in range(from_block, to_block + 1, self.batch_size):
            end = min(start + self.batch_size - 1, to_block)
            try:
                bulls = await self._logs(BET_BULL_TOPIC, start, end)
                bears = await self._logs(BET_BEAR_TOPIC, start, end)
                batch_claims = await self._logs(CLAIM_TOPIC, start, end)
            except Exception as e:
                msg = f"Error fetching batch {start}-{end}: {e}"
                logger.error(f"[pancakeswap] {msg}")
                errors.append(msg)
                continue

            for bet in bulls + bears:
                tally = tallies.setdefault(bet.sender, _UserTally())
                tally.total_bets += 1
                tally.volume_wei += bet.amount
                tally.epochs.add(bet.epoch)
            total_bets += len(bulls) + len(bears)
            claims.extend(batch_claims)

            logger.info(
                f"[pancakeswap] Batch {start}-{end}: bulls {len(bulls)}, bears {len(bears)}, claims {len(batch_claims)}"
            )
            await self._sleep(self.delay)

        # Claims can land in a later batch than the bet
        for claim in claims:
            tally = tallies.get(claim.sender)
            if tally is not None and claim.epoch in tally.epochs:
                tally.won_epochs.add(claim.epoch)

        user_stats = {
            address: TraderStats(
                address=address,
                platform=self.platform,
                total_bets=t.total_bets,
                wins=len(t.won_epochs),
                losses=t.total_bets - len(t.won_epochs),
                volume=Amount.from_raw(t.volume_wei, BNB_DECIMALS, "BNB"),
                pnl=Amount.zero("BNB"),
            )
            for address, t in tallies.items()
        }

        logger.info(f"[pancakeswap] Indexed {len(user_stats)} users, {total_bets} bets, {len(claims)} claims")
        return IndexerResult(
            platform=self.name,
            chain=self.chain,
            user_stats=user_stats,
            total_bets_indexed=total_bets,
            total_claims_indexed=len(claims),
            from_block=from_block,
            to_block=to_block,
            indexed_at=time.time(),
            errors=errors,
        )

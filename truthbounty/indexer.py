"""
On-chain user indexer.

Scans enabled on-chain adapters for recent betting activity, aggregates per
wallet, scores every user and writes a JSON snapshot.

    truthbounty-indexer --blocks 50000 --top 200
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from truthbounty.config import settings
from truthbounty.db.engine import async_session
from truthbounty.services.persistence import upsert_platform_user_stats
from truthbounty.services.truthscore import ScoreInput, get_strategy
from truthbounty.traders.base import AggregatedUserStats, TraderStats, aggregate_user_stats
from truthbounty.traders.pancakeswap import IndexerResult, PancakeSwapIndexerAdapter

logger = logging.getLogger(__name__)

PLATFORM_STRATEGY = "indexer-platform-free"
AGGREGATE_STRATEGY = "indexer"


class IndexerAdapter(Protocol):
    name: str
    platform: str

    async def is_available(self) -> bool: ...

    async def current_block(self) -> int: ...

    async def index_users(self, from_block: int, to_block: int) -> IndexerResult: ...


@dataclass
class IndexerConfig:
    top_n: int = 500
    min_bets: int = 5
    min_platforms: int = 1
    blocks_to_index: int = 100000
    output_path: str = settings.indexer_output_path
    persist: bool = False


def platform_score(stats: TraderStats) -> int:
    return get_strategy(PLATFORM_STRATEGY).score(stats.to_score_input()).score


def aggregate_score(user: AggregatedUserStats) -> int:
    # Volume enters the formula in whole units, so only one currency bucket can count
    volume = max((float(a) for a in user.volume_by_currency.values()), default=0.0)
    data = ScoreInput(
        trades=user.total_bets,
        wins=user.wins,
        volume=volume,
        platform_count=len(user.platforms),
    )
    return get_strategy(AGGREGATE_STRATEGY).score(data).score


def user_to_dict(user: AggregatedUserStats) -> dict:
    return {
        "address": user.address,
        "truth_score": user.truth_score,
        "total_bets": user.total_bets,
        "wins": user.wins,
        "losses": user.losses,
        "win_rate": round(user.win_rate, 2),
        "volume": [a.to_dict() for a in user.volume_by_currency.values()],
        "platforms": user.platforms,
        "platform_breakdown": [
            {
                "platform": s.platform,
                "total_bets": s.total_bets,
                "wins": s.wins,
                "losses": s.losses,
                "win_rate": round(s.win_rate, 2),
                "volume": s.volume.to_dict(),
                "score": platform_score(s),
            }
            for s in user.breakdown
        ],
    }


def build_snapshot(results: list[IndexerResult], config: IndexerConfig, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    users = aggregate_user_stats(s for r in results for s in r.user_stats.values())

    qualified = [
        u for u in users.values()
        if u.total_bets >= config.min_bets and len(u.platforms) >= config.min_platforms
    ]
    for u in qualified:
        u.truth_score = aggregate_score(u)
    qualified.sort(key=lambda u: u.truth_score, reverse=True)
    top = qualified[:config.top_n]

    return {
        "last_indexed": now.isoformat(),
        "total_users": len(top),
        "platforms": [r.platform for r in results],
        "indexing_summary": {
            r.platform: {
                "chain": r.chain,
                "users_found": len(r.user_stats),
                "total_bets_indexed": r.total_bets_indexed,
                "total_claims_indexed": r.total_claims_indexed,
                "block_range": {"from": r.from_block, "to": r.to_block},
                "errors": r.errors,
            }
            for r in results
        },
        "users": [user_to_dict(u) for u in top],
    }


async def persist_results(results: list[IndexerResult]) -> int:
    scored = [(s, platform_score(s)) for r in results for s in r.user_stats.values()]
    async with async_session() as db:
        return await upsert_platform_user_stats(db, scored)


async def run_indexer(config: IndexerConfig, adapters: list[IndexerAdapter]) -> int:
    logger.info("Starting on-chain indexer...")
    available = []
    for adapter in adapters:
        if await adapter.is_available():
            available.append(adapter)
        else:
            logger.warning(f"[{adapter.platform}] Adapter unavailable - skipping")

    if not available:
        logger.error("No indexer adapters available")
        return 1

    results = []
    for adapter in available:
        to_block = await adapter.current_block()
        from_block = max(0, to_block - config.blocks_to_index)
        results.append(await adapter.index_users(from_block, to_block))

    snapshot = build_snapshot(results, config)
    output = Path(config.output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(snapshot, indent=2))
    logger.info(f"Wrote {snapshot['total_users']} users to {output}")

    if config.persist:
        saved = await persist_results(results)
        logger.info(f"Saved {saved} platform user stats to database")
    return 0


def parse_args(argv: Optional[list[str]] = None) -> IndexerConfig:
    parser = argparse.ArgumentParser(description="Index on-chain prediction-market users")
    parser.add_argument("--top", type=int, default=500, help="Keep the top N users")
    parser.add_argument("--min-bets", type=int, default=5, help="Minimum bets to qualify")
    parser.add_argument("--min-platforms", type=int, default=1, help="Minimum platforms to qualify")
    parser.add_argument("--blocks", type=int, default=100000, help="Blocks to scan back from head")
    parser.add_argument("--output", default=settings.indexer_output_path, help="Snapshot JSON path")
    parser.add_argument("--persist", action="store_true", help="Also upsert platform stats to the database")
    args = parser.parse_args(argv)
    return IndexerConfig(
        top_n=args.top,
        min_bets=args.min_bets,
        min_platforms=args.min_platforms,
        blocks_to_index=args.blocks,
        output_path=args.output,
        persist=args.persist,
    )


def main(argv: Optional[list[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = parse_args(argv)
    sys.exit(asyncio.run(run_indexer(config, [PancakeSwapIndexerAdapter()])))


if __name__ == "__main__":
    main()

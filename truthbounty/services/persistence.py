"""Database persistence: batched market upserts and trader-stats storage."""

import logging
from dataclasses import asdict
from decimal import Decimal
from typing import Optional

from sqlalchemy import Select, func, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from truthbounty.db.models import PlatformUserStatsRow, UnifiedMarketRow
from truthbounty.fetchers.base import MarketOutcome, MarketStatus, UnifiedMarket
from truthbounty.services.truthscore import MAX_SCORE
from truthbounty.traders.base import AggregatedUserStats, Amount, TraderStats, aggregate_user_stats

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 100

MARKET_UPDATE_COLUMNS = (
    "title", "question", "description", "category", "outcomes", "yes_price", "no_price",
    "volume", "volume_24h", "liquidity", "expires_at", "closes_at", "resolved_at",
    "winning_outcome", "status", "chain", "currency", "fetched_at", "metadata",
)

STATS_UPDATE_COLUMNS = (
    "total_bets", "wins", "losses", "volume", "pnl", "currency", "score",
    "is_estimated", "username", "last_trade_at",
)


def market_to_row(m: UnifiedMarket) -> dict:
    return {
        "id": m.id,
        "platform": m.platform,
        "external_id": m.external_id,
        "title": m.title,
        "question": m.question,
        "description": m.description,
        "category": m.category,
        "outcomes": [asdict(o) for o in m.outcomes],
        "yes_price": m.yes_price,
        "no_price": m.no_price,
        "volume": m.volume,
        "volume_24h": m.volume_24h,
        "liquidity": m.liquidity,
        "expires_at": m.expires_at,
        "closes_at": m.closes_at,
        "resolved_at": m.resolved_at,
        "winning_outcome": m.winning_outcome,
        "status": m.status.value,
        "chain": m.chain,
        "currency": m.currency,
        "fetched_at": m.fetched_at,
        "metadata": m.metadata,
    }


def row_to_market(row: UnifiedMarketRow) -> UnifiedMarket:
    return UnifiedMarket(
        id=row.id,
        platform=row.platform,
        external_id=row.external_id,
        title=row.title,
        question=row.question,
        description=row.description,
        category=row.category,
        outcomes=[MarketOutcome(**o) for o in row.outcomes or []],
        yes_price=float(row.yes_price) if row.yes_price is not None else None,
        no_price=float(row.no_price) if row.no_price is not None else None,
        volume=row.volume or 0.0,
        volume_24h=row.volume_24h,
        liquidity=row.liquidity,
        expires_at=row.expires_at,
        closes_at=row.closes_at,
        resolved_at=row.resolved_at,
        winning_outcome=row.winning_outcome,
        status=MarketStatus(row.status),
        chain=row.chain,
        currency=row.currency,
        fetched_at=row.fetched_at,
        metadata=row.market_metadata or {},
    )


class DatabaseMarketSink:
    """Upserts normalized markets by id in batches."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], batch_size: int = UPSERT_BATCH_SIZE):
        self.session_factory = session_factory
        self.batch_size = batch_size

    async def save_markets(self, markets: list[UnifiedMarket]) -> None:
        if not markets:
            return
        # Postgres rejects an ON CONFLICT batch that touches one row twice
        rows = list({m.id: market_to_row(m) for m in markets}.values())

        async with self.session_factory() as db:
            for start in range(0, len(rows), self.batch_size):
                batch = rows[start:start + self.batch_size]
                stmt = insert(UnifiedMarketRow).values(batch)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[UnifiedMarketRow.id],
                    set_={col: stmt.excluded[col] for col in MARKET_UPDATE_COLUMNS} | {"updated_at": func.now()},
                )
                await db.execute(stmt)
            await db.commit()
        logger.info(f"[{markets[0].platform}] Saved {len(rows)} markets to database")


def _filter_markets(
    query: Select,
    platform: Optional[str],
    status: Optional[str],
    category: Optional[str],
    search: Optional[str],
) -> Select:
    if platform:
        query = query.where(UnifiedMarketRow.platform == platform)
    if status:
        query = query.where(UnifiedMarketRow.status == status)
    if category:
        query = query.where(func.lower(UnifiedMarketRow.category) == category.lower())
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(UnifiedMarketRow.title.ilike(pattern), UnifiedMarketRow.question.ilike(pattern)))
    return query


async def get_markets_from_database(
    db: AsyncSession,
    platform: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    search: Optional[str] = None,
) -> list[UnifiedMarket]:
    query = _filter_markets(select(UnifiedMarketRow), platform, status, category, search)
    query = query.order_by(UnifiedMarketRow.volume.desc(), UnifiedMarketRow.id).offset(offset).limit(limit)

    result = await db.execute(query)
    return [row_to_market(row) for row in result.scalars().all()]


async def count_markets_in_database(
    db: AsyncSession,
    platform: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> int:
    query = _filter_markets(select(func.count(UnifiedMarketRow.id)), platform, status, category, search)
    result = await db.execute(query)
    return result.scalar_one()


async def get_market_stats(db: AsyncSession) -> list[dict]:
    """Open-market count and summed volume per platform."""
    result = await db.execute(
        select(
            UnifiedMarketRow.platform,
            func.count(UnifiedMarketRow.id),
            func.coalesce(func.sum(UnifiedMarketRow.volume), 0),
        )
        .where(UnifiedMarketRow.status == MarketStatus.OPEN.value)
        .group_by(UnifiedMarketRow.platform)
        .order_by(UnifiedMarketRow.platform)
    )
    return [
        {"platform": platform, "open_markets": count or 0, "total_volume": float(volume or 0)}
        for platform, count, volume in result.all()
    ]


def stats_to_row(stats: TraderStats, score: int) -> dict:
    return {
        "address": stats.address,
        "platform": stats.platform,
        "total_bets": stats.total_bets,
        "wins": stats.wins,
        "losses": stats.losses,
        "volume": str(stats.volume.value),
        "pnl": str(stats.pnl.value),
        "currency": stats.volume.currency,
        "score": score,
        "is_estimated": stats.is_estimated,
        "username": stats.username,
        "last_trade_at": stats.last_trade_at,
    }


def row_to_stats(row: PlatformUserStatsRow) -> TraderStats:
    return TraderStats(
        address=row.address,
        platform=row.platform,
        total_bets=row.total_bets or 0,
        wins=row.wins or 0,
        losses=row.losses or 0,
        volume=Amount(Decimal(row.volume or "0"), row.currency),
        pnl=Amount(Decimal(row.pnl or "0"), row.currency),
        is_estimated=bool(row.is_estimated),
        username=row.username,
        last_trade_at=row.last_trade_at,
        extra={"score": row.score or 0},
    )


async def upsert_platform_user_stats(db: AsyncSession, scored: list[tuple[TraderStats, int]]) -> int:
    """Upsert ``(stats, score)`` pairs keyed by (address, platform).

    When one address shows up more than once for a platform (e.g. several
    networks), the entry with the most bets wins.
    """
    best: dict[tuple[str, str], tuple[TraderStats, int]] = {}
    for stats, score in scored:
        key = (stats.address, stats.platform)
        current = best.get(key)
        if current is None or stats.total_bets > current[0].total_bets:
            best[key] = (stats, score)

    rows = [stats_to_row(s, score) for s, score in best.values()]
    for start in range(0, len(rows), UPSERT_BATCH_SIZE):
        batch = rows[start:start + UPSERT_BATCH_SIZE]
        stmt = insert(PlatformUserStatsRow).values(batch)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PlatformUserStatsRow.address, PlatformUserStatsRow.platform],
            set_={col: stmt.excluded[col] for col in STATS_UPDATE_COLUMNS} | {"updated_at": func.now()},
        )
        await db.execute(stmt)
    await db.commit()
    return len(rows)


def aggregated_score(user: AggregatedUserStats) -> int:
    """Cross-platform score: the best platform score, capped."""
    scores = [s.extra.get("score", 0) for s in user.breakdown]
    return min(MAX_SCORE, max(scores, default=0))


async def get_user_stats(db: AsyncSession, address: str) -> Optional[AggregatedUserStats]:
    result = await db.execute(
        select(PlatformUserStatsRow)
        .where(PlatformUserStatsRow.address == address.lower())
        .order_by(PlatformUserStatsRow.platform)
    )
    rows = result.scalars().all()
    if not rows:
        return None
    user = aggregate_user_stats(row_to_stats(r) for r in rows)[address.lower()]
    user.truth_score = aggregated_score(user)
    return user


async def get_top_user_stats(db: AsyncSession, limit: int = 100) -> list[AggregatedUserStats]:
    """Addresses with the highest platform score, aggregated across platforms."""
    top = await db.execute(
        select(PlatformUserStatsRow.address)
        .group_by(PlatformUserStatsRow.address)
        .order_by(func.max(PlatformUserStatsRow.score).desc(), PlatformUserStatsRow.address)
        .limit(limit)
    )
    addresses = [row[0] for row in top.all()]
    if not addresses:
        return []

    result = await db.execute(
        select(PlatformUserStatsRow).where(PlatformUserStatsRow.address.in_(addresses))
    )
    users = aggregate_user_stats(row_to_stats(r) for r in result.scalars().all())
    for user in users.values():
        user.truth_score = aggregated_score(user)
    return [users[a] for a in addresses if a in users]

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from truthbounty.context import AppContext
from truthbounty.dependencies import get_context, get_session
from truthbounty.errors import PlatformError
from truthbounty.schemas.common import AmountResponse
from truthbounty.schemas.leaderboard import (
    AggregatedEntryResponse,
    LeaderboardEntryResponse,
    PlatformLeaderboardResponse,
)
from truthbounty.services.persistence import get_top_user_stats, upsert_platform_user_stats
from truthbounty.services.truthscore import get_score_tier
from truthbounty.traders.base import AggregatedUserStats, Amount, LeaderboardEntry, TraderStats, rank_entries

logger = logging.getLogger(__name__)

router = APIRouter()


def amount_response(amount: Amount) -> AmountResponse:
    return AmountResponse(**amount.to_dict())


def entry_response(entry: LeaderboardEntry) -> LeaderboardEntryResponse:
    s: TraderStats = entry.stats
    return LeaderboardEntryResponse(
        rank=entry.rank,
        address=s.address,
        truth_score=entry.truth_score,
        tier=get_score_tier(entry.truth_score),
        username=s.username,
        total_bets=s.total_bets,
        wins=s.wins,
        losses=s.losses,
        win_rate=round(s.win_rate, 2),
        volume=amount_response(s.volume),
        pnl=amount_response(s.pnl),
        is_estimated=s.is_estimated,
        rank_position=s.rank_position,
        last_trade_at=s.last_trade_at,
        extra=s.extra,
    )


def aggregated_response(rank: int, user: AggregatedUserStats) -> AggregatedEntryResponse:
    return AggregatedEntryResponse(
        rank=rank,
        address=user.address,
        truth_score=user.truth_score,
        tier=get_score_tier(user.truth_score),
        platforms=user.platforms,
        total_bets=user.total_bets,
        wins=user.wins,
        losses=user.losses,
        win_rate=round(user.win_rate, 2),
        volume=[amount_response(a) for a in user.volume_by_currency.values()],
        pnl=[amount_response(a) for a in user.pnl_by_currency.values()],
        is_estimated=user.is_estimated,
    )


async def save_scored_stats(ctx: AppContext, entries: list[LeaderboardEntry]) -> None:
    try:
        async with ctx.session_factory() as db:
            saved = await upsert_platform_user_stats(db, [(e.stats, e.truth_score) for e in entries])
        logger.info(f"Saved {saved} trader stats")
    except Exception as e:
        logger.error(f"Error saving trader stats: {e}")


@router.get("/leaderboard/{platform}", response_model=PlatformLeaderboardResponse)
async def platform_leaderboard(
    platform: str,
    limit: int = Query(default=50, ge=1, le=500),
    search: str | None = None,
    ctx: AppContext = Depends(get_context),
):
    source = ctx.trader_sources.get(platform)
    if source is None:
        raise HTTPException(status_code=400, detail=f"No leaderboard for platform: {platform}")

    try:
        entries = await source.leaderboard(limit, ctx.deadline(), search=search)
    except PlatformError as e:
        logger.error(f"[{platform}] Leaderboard failed: {e}")
        raise HTTPException(status_code=503, detail=e.message) from e

    if entries and ctx.session_factory is not None and not search:
        ctx.fetch_context.spawn(save_scored_stats(ctx, entries))

    return PlatformLeaderboardResponse(
        platform=platform,
        strategy=source.strategy,
        data=[entry_response(e) for e in entries],
        total=len(entries),
    )


@router.get("/leaderboard", response_model=list[AggregatedEntryResponse])
async def cross_platform_leaderboard(
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_session),
):
    users = await get_top_user_stats(db, limit)
    entries = rank_entries(users, lambda u: u.truth_score)
    return [aggregated_response(e.rank, e.stats) for e in entries]

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from truthbounty.context import AppContext
from truthbounty.dependencies import get_context, get_session
from truthbounty.routes.leaderboard import entry_response
from truthbounty.schemas.leaderboard import LeaderboardEntryResponse, ResolveResponse
from truthbounty.services.simulation import get_simulated_leaderboard, resolve_matured_trades

router = APIRouter()


@router.get("/simulated/leaderboard", response_model=list[LeaderboardEntryResponse])
async def simulated_leaderboard(
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
):
    entries = await get_simulated_leaderboard(db, limit)
    return [entry_response(e) for e in entries]


@router.post("/simulated/resolve", response_model=ResolveResponse)
async def resolve_simulated(
    ctx: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_session),
):
    """Resolve matured simulated speed-market trades with current oracle prices."""
    return await resolve_matured_trades(db, ctx.oracle, ctx.deadline())

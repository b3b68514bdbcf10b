from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from truthbounty.dependencies import get_session
from truthbounty.routes.leaderboard import amount_response
from truthbounty.schemas.leaderboard import PlatformStatsResponse, TraderProfileResponse
from truthbounty.services.persistence import get_user_stats
from truthbounty.services.truthscore import get_score_tier
from truthbounty.traders.base import is_valid_address

router = APIRouter()


@router.get("/traders/{address}", response_model=TraderProfileResponse)
async def get_trader(address: str, db: AsyncSession = Depends(get_session)):
    """Per-platform breakdown and aggregated TruthScore for one wallet."""
    if not is_valid_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid address: {address}")

    user = await get_user_stats(db, address)
    if user is None:
        raise HTTPException(status_code=404, detail=f"No stats for {address.lower()}")

    return TraderProfileResponse(
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
        breakdown=[
            PlatformStatsResponse(
                platform=s.platform,
                total_bets=s.total_bets,
                wins=s.wins,
                losses=s.losses,
                win_rate=round(s.win_rate, 2),
                volume=amount_response(s.volume),
                pnl=amount_response(s.pnl),
                score=s.extra.get("score", 0),
                is_estimated=s.is_estimated,
            )
            for s in user.breakdown
        ],
    )

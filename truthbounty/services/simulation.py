"""
Simulated speed-market trades: resolution against oracle prices and the
simulated trader leaderboard.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from truthbounty.db.models import SimulatedTrade, TradeDirection, TradeOutcome
from truthbounty.errors import PriceUnavailableError
from truthbounty.services.price_oracle import PriceOracle
from truthbounty.services.truthscore import get_strategy
from truthbounty.traders.base import Amount, Deadline, LeaderboardEntry, TraderStats, rank_entries

logger = logging.getLogger(__name__)

WIN_PAYOUT = Decimal("0.9")
SIMULATED_PLATFORM = "speedmarkets"
SIMULATED_STRATEGY = "edge-confidence"


def resolve_trade(direction: str, strike: Decimal, final_price: Decimal, amount: Decimal) -> tuple[TradeOutcome, Decimal]:
    """UP wins strictly above the strike, DOWN wins at or below it."""
    if TradeDirection(direction) == TradeDirection.UP:
        won = final_price > strike
    else:
        won = final_price <= strike
    if won:
        return TradeOutcome.WIN, amount * WIN_PAYOUT
    return TradeOutcome.LOSS, -amount


async def resolve_matured_trades(
    db: AsyncSession,
    oracle: PriceOracle,
    deadline: Deadline,
    now: Optional[datetime] = None,
) -> dict:
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(SimulatedTrade)
        .where(SimulatedTrade.outcome == TradeOutcome.PENDING, SimulatedTrade.maturity <= now)
        .order_by(SimulatedTrade.maturity)
    )
    trades = list(result.scalars().all())
    if not trades:
        return {"resolved": 0, "remaining": 0, "errors": []}

    assets = sorted({t.asset.upper() for t in trades})
    errors: list[str] = []
    try:
        prices = await asyncio.wait_for(oracle.get_prices(assets), timeout=deadline.remaining())
    except (PriceUnavailableError, asyncio.TimeoutError) as e:
        logger.error(f"[simulated] Price fetch failed: {e}")
        return {"resolved": 0, "remaining": len(trades), "errors": [str(e) or "Price fetch timed out"]}

    resolved = 0
    for trade in trades:
        if deadline.expired():
            logger.warning(f"[simulated] Deadline reached after {resolved}/{len(trades)} trades")
            break
        price = prices.get(trade.asset.upper())
        if not price:
            errors.append(f"No price for {trade.asset}")
            continue
        final_price = Decimal(str(price))
        outcome, pnl = resolve_trade(
            trade.direction.value if isinstance(trade.direction, TradeDirection) else trade.direction,
            Decimal(str(trade.strike_price)),
            final_price,
            Decimal(str(trade.amount_usd)),
        )
        trade.outcome = outcome
        trade.final_price = final_price
        trade.pnl_usd = pnl
        trade.resolved_at = now
        resolved += 1

    await db.commit()
    logger.info(f"[simulated] Resolved {resolved} of {len(trades)} matured trades")
    return {"resolved": resolved, "remaining": len(trades) - resolved, "errors": errors}


def build_simulated_stats(trades: list[SimulatedTrade]) -> list[TraderStats]:
    by_follower: dict[str, list[SimulatedTrade]] = {}
    for t in trades:
        by_follower.setdefault(t.follower.lower(), []).append(t)

    stats = []
    for follower, items in by_follower.items():
        settled = [t for t in items if t.outcome in (TradeOutcome.WIN, TradeOutcome.LOSS)]
        if not settled:
            continue
        wins = sum(1 for t in settled if t.outcome == TradeOutcome.WIN)
        volume = sum((Decimal(str(t.amount_usd)) for t in settled), Decimal(0))
        pnl = sum((Decimal(str(t.pnl_usd or 0)) for t in settled), Decimal(0))
        stats.append(TraderStats(
            address=follower,
            platform=SIMULATED_PLATFORM,
            total_bets=len(settled),
            wins=wins,
            losses=len(settled) - wins,
            volume=Amount(volume, "USD"),
            pnl=Amount(pnl, "USD"),
            last_trade_at=max((t.resolved_at for t in settled if t.resolved_at), default=None),
            extra={"pending": len(items) - len(settled)},
        ))
    return stats


async def get_simulated_leaderboard(db: AsyncSession, limit: int = 50) -> list[LeaderboardEntry]:
    result = await db.execute(select(SimulatedTrade))
    stats = build_simulated_stats(list(result.scalars().all()))
    strategy = get_strategy(SIMULATED_STRATEGY)
    return rank_entries(stats, lambda s: strategy.score(s.to_score_input()).score)[:limit]

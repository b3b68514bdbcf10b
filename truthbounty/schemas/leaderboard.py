from datetime import datetime

from pydantic import BaseModel

from truthbounty.schemas.common import AmountResponse


class PlatformStatsResponse(BaseModel):
    platform: str
    total_bets: int
    wins: int
    losses: int
    win_rate: float
    volume: AmountResponse
    pnl: AmountResponse
    score: int
    is_estimated: bool = False


class LeaderboardEntryResponse(BaseModel):
    rank: int
    address: str
    truth_score: int
    tier: str
    username: str | None = None
    total_bets: int
    wins: int
    losses: int
    win_rate: float
    volume: AmountResponse
    pnl: AmountResponse
    is_estimated: bool = False
    rank_position: int | None = None
    last_trade_at: datetime | None = None
    extra: dict = {}


class PlatformLeaderboardResponse(BaseModel):
    platform: str
    strategy: str
    data: list[LeaderboardEntryResponse]
    total: int


class AggregatedEntryResponse(BaseModel):
    rank: int
    address: str
    truth_score: int
    tier: str
    platforms: list[str]
    total_bets: int
    wins: int
    losses: int
    win_rate: float
    volume: list[AmountResponse]
    pnl: list[AmountResponse]
    is_estimated: bool = False


class TraderProfileResponse(BaseModel):
    address: str
    truth_score: int
    tier: str
    platforms: list[str]
    total_bets: int
    wins: int
    losses: int
    win_rate: float
    volume: list[AmountResponse]
    pnl: list[AmountResponse]
    is_estimated: bool = False
    breakdown: list[PlatformStatsResponse]


class ResolveResponse(BaseModel):
    resolved: int
    remaining: int
    errors: list[str]

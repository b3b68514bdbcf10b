from datetime import datetime

from pydantic import BaseModel


class OutcomeResponse(BaseModel):
    id: str
    name: str
    probability: float
    odds: float


class MarketResponse(BaseModel):
    id: str
    platform: str
    external_id: str
    title: str
    question: str | None = None
    description: str | None = None
    category: str
    outcomes: list[OutcomeResponse]
    yes_price: float | None = None
    no_price: float | None = None
    volume: float = 0.0
    volume_24h: float | None = None
    liquidity: float | None = None
    expires_at: datetime | None = None
    closes_at: datetime | None = None
    resolved_at: datetime | None = None
    winning_outcome: str | None = None
    status: str
    chain: str | None = None
    currency: str | None = None
    fetched_at: datetime
    metadata: dict = {}


class PlatformFetchStatus(BaseModel):
    platform: str
    count: int
    error: str | None = None


class MarketListResponse(BaseModel):
    data: list[MarketResponse]
    total: int
    limit: int
    offset: int
    platforms: list[PlatformFetchStatus]


class PlatformInfo(BaseModel):
    slug: str
    name: str
    chain: str
    currency: str


class PlatformMarketStats(BaseModel):
    platform: str
    open_markets: int
    total_volume: float


class SyncResponse(BaseModel):
    total: int
    platforms: list[PlatformFetchStatus]

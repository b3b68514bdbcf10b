from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from truthbounty.context import AppContext
from truthbounty.dependencies import get_context, get_session
from truthbounty.fetchers.base import FetchOptions, MarketStatus, UnifiedMarket
from truthbounty.schemas.markets import (
    MarketListResponse,
    MarketResponse,
    PlatformFetchStatus,
    PlatformInfo,
    PlatformMarketStats,
    SyncResponse,
)
from truthbounty.services.orchestrator import fetch_all_platform_markets
from truthbounty.services.persistence import count_markets_in_database, get_market_stats, get_markets_from_database

router = APIRouter()

MARKET_SOURCES = ("live", "db")


def to_market_response(m: UnifiedMarket) -> MarketResponse:
    data = asdict(m)
    data["status"] = m.status.value
    return MarketResponse(**data)


def matches(m: UnifiedMarket, category: str | None, status: str | None, search: str | None) -> bool:
    if category and m.category.lower() != category.lower():
        return False
    if status and m.status.value != status:
        return False
    if search:
        needle = search.lower()
        haystack = f"{m.title} {m.question or ''}".lower()
        if needle not in haystack:
            return False
    return True


@router.get("/platforms", response_model=list[PlatformInfo])
async def list_platforms(ctx: AppContext = Depends(get_context)):
    return ctx.registry.list_platforms()


@router.get("/markets", response_model=MarketListResponse)
async def list_markets(
    platform: str | None = None,
    category: str | None = None,
    status: str | None = None,
    search: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    refresh: bool = False,
    source: str = "live",
    ctx: AppContext = Depends(get_context),
):
    if platform and ctx.registry.get(platform) is None:
        raise HTTPException(status_code=400, detail=f"Unknown platform: {platform}")
    if status and status not in {s.value for s in MarketStatus}:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    if source not in MARKET_SOURCES:
        raise HTTPException(status_code=400, detail=f"Unknown source: {source}")

    if source == "db":
        return await list_stored_markets(ctx, platform, category, status, search, limit, offset)

    platforms = [platform] if platform else list(ctx.registry.all().keys())
    results = await fetch_all_platform_markets(
        ctx.registry,
        platforms,
        FetchOptions(force_refresh=refresh),
        timeout=ctx.deadline().remaining(),
        spawn=ctx.fetch_context.spawn,
    )

    if all(r.error and not r.markets for r in results):
        errors = "; ".join(f"{r.platform}: {r.error}" for r in results)
        raise HTTPException(status_code=503, detail=f"All platforms failed: {errors}")

    markets = [m for r in results for m in r.markets if matches(m, category, status, search)]
    markets.sort(key=lambda m: m.volume or 0, reverse=True)

    return MarketListResponse(
        data=[to_market_response(m) for m in markets[offset:offset + limit]],
        total=len(markets),
        limit=limit,
        offset=offset,
        platforms=[PlatformFetchStatus(platform=r.platform, count=len(r.markets), error=r.error) for r in results],
    )


async def list_stored_markets(
    ctx: AppContext,
    platform: str | None,
    category: str | None,
    status: str | None,
    search: str | None,
    limit: int,
    offset: int,
) -> MarketListResponse:
    """Markets persisted by earlier fetches, newest state per id."""
    if ctx.session_factory is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    filters = dict(platform=platform, status=status or MarketStatus.OPEN.value, category=category, search=search)
    async with ctx.session_factory() as db:
        markets = await get_markets_from_database(db, limit=limit, offset=offset, **filters)
        total = await count_markets_in_database(db, **filters)

    return MarketListResponse(
        data=[to_market_response(m) for m in markets],
        total=total,
        limit=limit,
        offset=offset,
        platforms=[],
    )


@router.get("/markets/stats", response_model=list[PlatformMarketStats])
async def market_stats(db: AsyncSession = Depends(get_session)):
    return await get_market_stats(db)


@router.post("/markets/sync", response_model=SyncResponse)
async def sync_markets(ctx: AppContext = Depends(get_context)):
    platforms = list(ctx.registry.all().keys())
    results = await fetch_all_platform_markets(ctx.registry, platforms, FetchOptions(force_refresh=True))
    return SyncResponse(
        total=sum(len(r.markets) for r in results),
        platforms=[PlatformFetchStatus(platform=r.platform, count=len(r.markets), error=r.error) for r in results],
    )

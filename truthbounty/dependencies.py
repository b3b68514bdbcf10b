from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from truthbounty.context import AppContext


def get_context(request: Request) -> AppContext:
    return request.app.state.context


async def get_session(ctx: AppContext = Depends(get_context)) -> AsyncIterator[AsyncSession]:
    if ctx.session_factory is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    async with ctx.session_factory() as session:
        yield session

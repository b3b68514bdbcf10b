import logging
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from truthbounty.context import build_context
from truthbounty.db.engine import async_session

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx = getattr(app.state, "context", None)
    if ctx is None:
        ctx = app.state.context = build_context(session_factory=async_session)
    await ctx.startup()
    yield
    await ctx.shutdown()


app = FastAPI(
    title="TruthBounty API",
    description="Prediction market aggregation and TruthScore reputation across Polymarket, PancakeSwap Prediction, SX Bet, Limitless, Speed Markets, Azuro, Overtime, Manifold, Kalshi, Metaculus, Drift and Gnosis.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": _phrase(exc.status_code), "detail": str(exc.detail) if exc.detail else None},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    return JSONResponse(
        status_code=400,
        content={"error": "Bad Request", "detail": f"{field}: {first.get('msg', 'invalid input')}".strip(": ")},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal Server Error", "detail": None})


from truthbounty.routes import leaderboard, markets, simulated, traders  # noqa: E402

app.include_router(markets.router, prefix="/v1", tags=["Markets"])
app.include_router(leaderboard.router, prefix="/v1", tags=["Leaderboard"])
app.include_router(traders.router, prefix="/v1", tags=["Traders"])
app.include_router(simulated.router, prefix="/v1", tags=["Simulated"])


@app.get("/health")
async def health():
    return {"status": "ok"}

"""
Trader statistics: money amounts, per-platform stats, cross-platform rollups
and leaderboard ranking.
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, Union

import httpx

from truthbounty.errors import CurrencyMismatchError
from truthbounty.services.http import request_json
from truthbounty.services.truthscore import ScoreInput, ScoreResult, get_strategy

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(address: str) -> bool:
    return bool(ADDRESS_RE.match(address or ""))


@dataclass(frozen=True)
class Amount:
    """A money figure tagged with its currency. Never summed across currencies."""

    value: Decimal
    currency: str

    @classmethod
    def zero(cls, currency: str) -> "Amount":
        return cls(Decimal(0), currency)

    @classmethod
    def of(cls, value: Union[int, float, str, Decimal], currency: str) -> "Amount":
        return cls(Decimal(str(value)), currency)

    @classmethod
    def from_raw(cls, raw: Union[int, str], decimals: int, currency: str) -> "Amount":
        """Convert an on-chain integer (e.g. wei) using the token's decimals."""
        return cls(Decimal(str(raw)).scaleb(-decimals), currency)

    def __add__(self, other: "Amount") -> "Amount":
        if not isinstance(other, Amount):
            return NotImplemented
        if other.currency != self.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return Amount(self.value + other.value, self.currency)

    def __float__(self) -> float:
        return float(self.value)

    def to_dict(self) -> dict:
        return {"value": str(self.value), "currency": self.currency}


@dataclass
class TraderStats:
    address: str
    platform: str
    total_bets: int
    wins: int
    losses: int
    volume: Amount
    pnl: Amount
    is_estimated: bool = False
    estimated_win_rate: Optional[float] = None
    username: Optional[str] = None
    points: float = 0.0
    rank_position: Optional[int] = None
    last_trade_at: Optional[datetime] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.address = self.address.lower()
        if self.wins + self.losses > self.total_bets:
            raise ValueError(
                f"wins ({self.wins}) + losses ({self.losses}) exceed total_bets ({self.total_bets}) for {self.address}"
            )

    @property
    def win_rate(self) -> float:
        if self.estimated_win_rate is not None:
            return self.estimated_win_rate
        settled = self.wins + self.losses
        return self.wins / settled * 100 if settled > 0 else 0.0

    def to_score_input(self, platform_count: int = 1) -> ScoreInput:
        return ScoreInput(
            trades=self.total_bets,
            wins=self.wins,
            volume=float(self.volume),
            pnl=float(self.pnl),
            points=self.points,
            platform=self.platform,
            platform_count=platform_count,
            last_trade_at=self.last_trade_at,
        )


@dataclass
class AggregatedUserStats:
    address: str
    platforms: list[str] = field(default_factory=list)
    total_bets: int = 0
    wins: int = 0
    losses: int = 0
    volume_by_currency: dict[str, Amount] = field(default_factory=dict)
    pnl_by_currency: dict[str, Amount] = field(default_factory=dict)
    breakdown: list[TraderStats] = field(default_factory=list)
    truth_score: int = 0
    is_estimated: bool = False

    @property
    def win_rate(self) -> float:
        settled = self.wins + self.losses
        return self.wins / settled * 100 if settled > 0 else 0.0

    def add(self, stats: TraderStats) -> None:
        if stats.platform not in self.platforms:
            self.platforms.append(stats.platform)
        self.total_bets += stats.total_bets
        self.wins += stats.wins
        self.losses += stats.losses
        _add_to_bucket(self.volume_by_currency, stats.volume)
        _add_to_bucket(self.pnl_by_currency, stats.pnl)
        self.breakdown.append(stats)
        self.is_estimated = self.is_estimated or stats.is_estimated


def _add_to_bucket(buckets: dict[str, Amount], amount: Amount) -> None:
    current = buckets.get(amount.currency)
    buckets[amount.currency] = amount if current is None else current + amount


def aggregate_user_stats(stats: Iterable[TraderStats]) -> dict[str, AggregatedUserStats]:
    users: dict[str, AggregatedUserStats] = {}
    for s in stats:
        user = users.get(s.address)
        if user is None:
            user = users[s.address] = AggregatedUserStats(address=s.address)
        user.add(s)
    return users


@dataclass
class LeaderboardEntry:
    rank: int
    truth_score: int
    stats: Any


def rank_entries(items: Iterable[T], score: Callable[[T], int]) -> list[LeaderboardEntry]:
    """Rank by descending score; ties keep their input order; ranks are 1..n."""
    scored = [(score(item), item) for item in items]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [LeaderboardEntry(rank=i + 1, truth_score=s, stats=item) for i, (s, item) in enumerate(scored)]


class Deadline:
    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0


async def run_batched(
    items: list[T],
    worker: Callable[[T], Awaitable[R]],
    batch_size: int,
    deadline: Deadline,
) -> list[Optional[R]]:
    """Run ``worker`` over ``items`` in concurrent batches until the deadline.

    The result list is aligned with the items that were attempted; failed or
    timed-out calls yield ``None``. Items after the deadline are not attempted.
    """
    results: list[Optional[R]] = []
    for start in range(0, len(items), batch_size):
        if deadline.expired():
            logger.warning(f"Deadline reached after {len(results)}/{len(items)} items")
            break
        batch = items[start:start + batch_size]
        try:
            outcomes = await asyncio.wait_for(
                asyncio.gather(*(worker(item) for item in batch), return_exceptions=True),
                timeout=deadline.remaining(),
            )
        except asyncio.TimeoutError:
            logger.warning(f"Batch timed out after {len(results)}/{len(items)} items")
            results.extend([None] * len(batch))
            break
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                logger.debug(f"Batch item failed: {outcome}")
                results.append(None)
            else:
                results.append(outcome)
    return results


class TraderStatsSource(ABC):
    """Per-platform trader statistics, scored with a declared strategy."""

    platform: str
    name: str
    strategy: str
    base_url: str = ""
    timeout: float = 15.0

    def __init__(self, http: Optional[httpx.AsyncClient] = None):
        self._http = http

    async def initialize(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, headers={"Accept": "application/json"},
            )

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        if self._http is None:
            await self.initialize()
        return await request_json(self._http, self.platform, method, url, **kwargs)

    @abstractmethod
    async def fetch_traders(self, limit: int, deadline: Deadline) -> list[TraderStats]:
        pass

    def score(self, stats: TraderStats) -> ScoreResult:
        return get_strategy(self.strategy).score(stats.to_score_input())

    async def leaderboard(self, limit: int, deadline: Deadline, search: Optional[str] = None) -> list[LeaderboardEntry]:
        traders = await self.fetch_traders(limit, deadline)
        entries = rank_entries(traders, lambda t: self.score(t).score)
        if search:
            needle = search.lower()
            entries = [e for e in entries if needle in e.stats.address]
        return entries[:limit]

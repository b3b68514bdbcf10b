import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from truthbounty.errors import PlatformError, RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RateLimitConfig:
    max_requests: int = 10
    window: float = 60.0
    retry_attempts: int = 3
    backoff_multiplier: float = 2.0


@dataclass
class RateLimitState:
    requests: list[float] = field(default_factory=list)
    blocked_until: float = 0.0


DEFAULT_PLATFORM_LIMITS: dict[str, RateLimitConfig] = {
    "polymarket": RateLimitConfig(max_requests=30),
    "limitless": RateLimitConfig(max_requests=20),
    "manifold": RateLimitConfig(max_requests=100),
    "kalshi": RateLimitConfig(max_requests=10),
    "azuro": RateLimitConfig(max_requests=30),
    "sxbet": RateLimitConfig(max_requests=30),
    # The Odds API budget is tiny
    "overtime": RateLimitConfig(max_requests=5, retry_attempts=2, backoff_multiplier=3),
    "gnosis": RateLimitConfig(max_requests=30),
    "drift": RateLimitConfig(max_requests=30),
    "metaculus": RateLimitConfig(max_requests=30),
    "pancakeswap": RateLimitConfig(max_requests=30),
    "speedmarkets": RateLimitConfig(max_requests=30),
}


def is_rate_limit_error(error: Exception) -> bool:
    if isinstance(error, RateLimitedError):
        return True
    if isinstance(error, PlatformError) and error.code == "429":
        return True
    return "rate limit" in str(error).lower()


class RateLimiter:
    """Per-platform sliding-window limiter with retry and backoff.

    All bookkeeping happens in synchronous methods, so a slot check and the
    request record that follows it never straddle an ``await``.
    """

    def __init__(
        self,
        configs: Optional[dict[str, RateLimitConfig]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        poll_interval: float = 1.0,
        max_wait: float = 5.0,
    ):
        self._configs: dict[str, RateLimitConfig] = dict(configs or {})
        self._states: dict[str, RateLimitState] = {}
        self._clock = clock
        self._sleep = sleep
        self._poll_interval = poll_interval
        self._max_wait = max_wait

    def set_config(self, platform: str, config: RateLimitConfig) -> None:
        self._configs[platform] = config

    def get_config(self, platform: str) -> RateLimitConfig:
        return self._configs.get(platform) or RateLimitConfig()

    def _state(self, platform: str) -> RateLimitState:
        if platform not in self._states:
            self._states[platform] = RateLimitState()
        return self._states[platform]

    def is_blocked(self, platform: str) -> bool:
        return self._clock() < self._state(platform).blocked_until

    def can_make_request(self, platform: str) -> bool:
        state = self._state(platform)
        config = self.get_config(platform)
        now = self._clock()

        if now < state.blocked_until:
            return False

        state.requests = [t for t in state.requests if now - t < config.window]
        return len(state.requests) < config.max_requests

    def record_request(self, platform: str) -> None:
        self._state(platform).requests.append(self._clock())

    def try_acquire(self, platform: str) -> bool:
        if not self.can_make_request(platform):
            return False
        self.record_request(platform)
        return True

    def record_rate_limit(self, platform: str, retry_after: Optional[float] = None) -> None:
        config = self.get_config(platform)
        self._state(platform).blocked_until = self._clock() + (retry_after or config.window)
        logger.warning(f"[{platform}] Rate limited, blocked for {retry_after or config.window:.1f}s")

    def _wait_time(self, platform: str) -> float:
        state = self._state(platform)
        now = self._clock()
        if now < state.blocked_until:
            wait = state.blocked_until - now
        else:
            wait = self._poll_interval
        return min(wait, self._max_wait)

    async def wait_for_slot(self, platform: str) -> None:
        while not self.can_make_request(platform):
            await self._sleep(self._wait_time(platform))

    async def acquire(self, platform: str) -> None:
        while not self.try_acquire(platform):
            await self._sleep(self._wait_time(platform))

    async def execute_with_retry(
        self,
        platform: str,
        operation: Callable[[], Awaitable[T]],
        attempt: int = 1,
    ) -> T:
        config = self.get_config(platform)

        await self.acquire(platform)
        try:
            return await operation()
        except Exception as e:
            if is_rate_limit_error(e):
                self.record_rate_limit(platform, getattr(e, "retry_after", None))

            if attempt < config.retry_attempts:
                backoff = config.backoff_multiplier ** attempt
                logger.info(f"[{platform}] Retry {attempt}/{config.retry_attempts} after {backoff:.1f}s: {e}")
                await self._sleep(backoff)
                return await self.execute_with_retry(platform, operation, attempt + 1)
            raise

    def remaining(self, platform: str) -> int:
        config = self.get_config(platform)
        now = self._clock()
        used = sum(1 for t in self._state(platform).requests if now - t < config.window)
        return max(0, config.max_requests - used)

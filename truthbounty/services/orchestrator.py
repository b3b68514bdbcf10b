"""Multi-platform fetch orchestration and periodic background sync."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Coroutine, Optional

from truthbounty.fetchers.base import FetchOptions, UnifiedMarket
from truthbounty.fetchers.registry import FetcherRegistry

logger = logging.getLogger(__name__)


@dataclass
class PlatformFetchResult:
    platform: str
    markets: list[UnifiedMarket]
    error: Optional[str] = None


async def _fetch_one(registry: FetcherRegistry, platform: str, options: FetchOptions) -> PlatformFetchResult:
    fetcher = registry.get(platform)
    if fetcher is None:
        return PlatformFetchResult(platform=platform, markets=[], error="Unknown platform")
    try:
        result = await fetcher.fetch_all_with_status(options)
    except Exception as e:
        logger.error(f"[{platform}] Fetch failed: {e}")
        return PlatformFetchResult(platform=platform, markets=[], error=str(e) or e.__class__.__name__)
    return PlatformFetchResult(platform=platform, markets=result.markets, error=result.error)


async def fetch_all_platform_markets(
    registry: FetcherRegistry,
    platforms: list[str],
    options: Optional[FetchOptions] = None,
    timeout: Optional[float] = None,
    spawn: Callable[[Coroutine], asyncio.Task] = asyncio.ensure_future,
) -> list[PlatformFetchResult]:
    """Fetch every requested platform concurrently.

    Results come back in request order, one per platform. A failure on one
    platform never affects the others; it surfaces as ``error`` on its slot.

    With a ``timeout``, platforms still fetching when it passes get
    ``error="Timed out"``. Their fetches are not cancelled, so they finish
    in the background and warm the cache; pass ``spawn`` to keep track of them.
    """
    options = options or FetchOptions()
    tasks = [spawn(_fetch_one(registry, p, options)) for p in platforms]
    if not tasks:
        return []
    if timeout is None:
        return list(await asyncio.gather(*tasks))

    done, pending = await asyncio.wait(tasks, timeout=max(timeout, 0))
    if pending:
        logger.warning(f"Deadline reached with {len(pending)}/{len(tasks)} platforms still fetching")

    results = []
    for platform, task in zip(platforms, tasks):
        if task in done:
            results.append(task.result())
        else:
            results.append(PlatformFetchResult(platform=platform, markets=[], error="Timed out"))
    return results


class BackgroundSync:
    """Force-refreshes every registered platform on a fixed interval."""

    def __init__(self, registry: FetcherRegistry, interval: float = 300.0, sleep=asyncio.sleep):
        self.registry = registry
        self.interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info("[sync] Starting background sync...")
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def sync_once(self) -> int:
        platforms = list(self.registry.all().keys())
        logger.info(f"[sync] Syncing {len(platforms)} platforms...")
        results = await fetch_all_platform_markets(self.registry, platforms, FetchOptions(force_refresh=True))

        total = 0
        for r in results:
            if r.error:
                logger.error(f"[sync] {r.platform} sync failed: {r.error}")
            total += len(r.markets)
        logger.info(f"[sync] Sync complete: {total} total markets")
        return total

    async def _loop(self) -> None:
        while True:
            await self._sleep(self.interval)
            try:
                await self.sync_once()
            except Exception as e:
                logger.error(f"[sync] Sync run failed: {e}")

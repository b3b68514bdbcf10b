from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from dateutil import parser as date_parser

from truthbounty.errors import RateLimitedError, UpstreamError


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        pass
    try:
        when = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


async def request_json(client: httpx.AsyncClient, platform: str, method: str, url: str, **kwargs) -> Any:
    resp = await client.request(method, url, **kwargs)
    if resp.status_code == 429:
        raise RateLimitedError(platform, parse_retry_after(resp.headers.get("retry-after")))
    if resp.status_code >= 400:
        raise UpstreamError(f"API error: {resp.status_code}", platform, str(resp.status_code))
    return resp.json()

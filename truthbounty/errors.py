from typing import Optional


class PlatformError(Exception):
    def __init__(self, message: str, platform: str, code: Optional[str] = None):
        self.message = message
        self.platform = platform
        self.code = code
        super().__init__(f"[{platform}] {message}")


class RateLimitedError(PlatformError):
    def __init__(self, platform: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__("Rate limit exceeded", platform, "429")


class UpstreamError(PlatformError):
    pass


class PriceUnavailableError(Exception):
    pass


class CurrencyMismatchError(ValueError):
    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"Cannot combine amounts in {left} and {right}")

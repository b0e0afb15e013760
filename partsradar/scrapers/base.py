# partsradar/scrapers/base.py
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx
from bs4 import BeautifulSoup

from partsradar.utils.proxy import ProxyRotator

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "cs-CZ,cs;q=0.9,en-US;q=0.5,en;q=0.3",
}


class FetchError(Exception):
    kind = "fetch"

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class TransientFetchError(FetchError):
    """429, 5xx, timeouts and network errors. Retried with backoff."""
    kind = "transient"


class PermanentFetchError(FetchError):
    """Any other 4xx and non-network client errors. Never retried."""
    kind = "permanent"


@dataclass(frozen=True)
class FetchPolicy:
    base_delay_ms: int = 2000
    max_delay_ms: int = 8000
    max_retries: int = 3
    timeout_ms: int = 15000

    def backoff_ms(self, retry: int) -> int:
        """Delay before retry number `retry` (1-based), before jitter."""
        return min(self.base_delay_ms * 2 ** (retry - 1), self.max_delay_ms)


def jittered(delay_ms: float, rng: Callable[[], float] = random.random) -> float:
    # up to +20% so parallel workers do not retry in lockstep
    return delay_ms + delay_ms * 0.2 * rng()


def classify_status(url: str, status: int) -> FetchError:
    if status == 429 or status >= 500:
        return TransientFetchError(url, f"HTTP {status} for {url}", status=status)
    return PermanentFetchError(url, f"HTTP {status} for {url}", status=status)


class FetchClient:
    def __init__(
        self,
        policy: FetchPolicy,
        proxy: Optional[ProxyRotator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.policy = policy
        self.proxy = proxy
        self.transport = transport
        self.sleep = sleep
        self.rng = rng
        self.attempts = 0

    async def fetch_text(
        self,
        url: str,
        headers: Optional[dict] = None,
        timeout_ms: Optional[int] = None,
        proxy: Optional[str] = None,
    ) -> str:
        last_error: Optional[FetchError] = None
        for attempt in range(self.policy.max_retries + 1):
            if attempt > 0:
                delay_ms = jittered(self.policy.backoff_ms(attempt), self.rng)
                delay_ms = min(delay_ms, self.policy.max_delay_ms)
                logger.info("Retry %d for %s in %.0fms", attempt, url, delay_ms)
                await self.sleep(delay_ms / 1000)
            try:
                return await self._get(url, headers, timeout_ms, proxy)
            except TransientFetchError as e:
                last_error = e
                logger.warning("Transient error on attempt %d for %s: %s", attempt + 1, url, e)
            except PermanentFetchError as e:
                logger.error("Client error %s for %s, not retrying", e.status, url)
                raise
        logger.error("Giving up on %s after %d attempts", url, self.policy.max_retries + 1)
        raise last_error

    async def _get(self, url, headers, timeout_ms, proxy) -> str:
        self.attempts += 1
        if proxy is None and self.proxy is not None:
            proxy = await self.proxy.next_proxy()
        timeout = (timeout_ms or self.policy.timeout_ms) / 1000
        kwargs = {}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        elif proxy:
            kwargs["proxy"] = proxy
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                headers={**DEFAULT_HEADERS, **(headers or {})},
                **kwargs,
            ) as client:
                r = await client.get(url)
        except httpx.TransportError as e:
            raise TransientFetchError(url, f"{type(e).__name__}: {e}") from e
        except httpx.HTTPError as e:
            # redirect loops, undecodable bodies
            raise PermanentFetchError(url, f"{type(e).__name__}: {e}") from e
        if r.status_code >= 400:
            raise classify_status(url, r.status_code)
        return r.text


class BaseScraper:
    source = "base"
    base_url = ""

    def __init__(self, client: FetchClient):
        self.client = client

    async def fetch_text(self, url: str) -> str:
        return await self.client.fetch_text(url)

    async def fetch_soup(self, url: str) -> BeautifulSoup:
        return BeautifulSoup(await self.fetch_text(url), "html.parser")

    async def delay(self, delay_ms: float):
        if delay_ms > 0:
            await self.client.sleep(jittered(delay_ms, self.client.rng) / 1000)

"""USD -> EUR conversion for LLM cost reporting.

Rates come from the free fawazahmed0 currency table on jsdelivr and are
cached for a day. When the fetch fails the fallback rate is cached for an
hour only, so a real rate is retried soon.
"""
import logging
import time
from typing import Callable, Optional

import aiohttp

logger = logging.getLogger(__name__)


class CurrencyConverter:

    def __init__(
        self,
        api_url: str,
        fallback_rate: float = 0.86,
        cache_seconds: float = 24 * 60 * 60,
        fallback_cache_seconds: float = 60 * 60,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_url = api_url
        self.fallback_rate = fallback_rate
        self.cache_seconds = cache_seconds
        self.fallback_cache_seconds = fallback_cache_seconds
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._clock = clock
        self._rate: Optional[float] = None
        self._expires_at = 0.0

    async def usd_to_eur_rate(self) -> float:
        now = self._clock()
        if self._rate is not None and now < self._expires_at:
            return self._rate
        try:
            rate = await self._fetch_rate()
            self._rate, self._expires_at = rate, now + self.cache_seconds
            logger.info(f"USD->EUR rate refreshed: {rate}")
        except (aiohttp.ClientError, TimeoutError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Currency rate fetch failed, using fallback {self.fallback_rate}: {e}")
            self._rate, self._expires_at = self.fallback_rate, now + self.fallback_cache_seconds
        return self._rate

    async def convert(self, amount_usd: float) -> float:
        """Convert a USD amount to EUR, rounded to 4 decimals."""
        rate = await self.usd_to_eur_rate()
        return round(amount_usd * rate, 4)

    async def _fetch_rate(self) -> float:
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            async with session.get(self.api_url) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        rate = float(data["usd"]["eur"])
        if rate <= 0:
            raise ValueError(f"Nonsensical EUR rate {rate}")
        return rate

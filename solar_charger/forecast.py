"""Solcast rooftop forecast client with an in-memory cache."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from datetime import date, datetime

import aiohttp

from .const import FORECAST_CACHE_TTL, HTTP_TIMEOUT, SOLCAST_API_URL
from .errors import ForecastNotAvailableError
from .models import ForecastPeriod

logger = logging.getLogger(__name__)


_FRACTION = re.compile(r"\.(\d{6})\d+")


def _parse_time(value: str) -> datetime:
    # Solcast sends 7 fractional digits and a Z suffix
    return datetime.fromisoformat(_FRACTION.sub(r".\1", value).replace("Z", "+00:00"))


def parse_forecasts(data: dict) -> list[ForecastPeriod]:
    """Convert a Solcast ``forecasts`` response into periods."""
    try:
        return [
            ForecastPeriod(
                pv_estimate=float(item["pv_estimate"]),
                period_end=_parse_time(item["period_end"]),
                pv_estimate10=float(item.get("pv_estimate10", 0.0)),
                pv_estimate90=float(item.get("pv_estimate90", 0.0)),
            )
            for item in data["forecasts"]
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise ForecastNotAvailableError(f"Unrecognized Solcast response: {e}") from e


class SolcastForecast:
    """Fetches the rooftop forecast at most once per cache TTL.

    The hobbyist API allows only a handful of calls per day; after a 429
    the client stops calling until the next day and serves the last good
    forecast.
    """

    def __init__(
        self,
        api_key: str,
        resource_id: str,
        ttl: float = FORECAST_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_key = api_key
        self._url = SOLCAST_API_URL.format(resource_id)
        self._ttl = ttl
        self._clock = clock
        self._cache: list[ForecastPeriod] | None = None
        self._fetched_at = 0.0
        self._rate_limited_on: date | None = None

    async def get_forecast(self) -> list[ForecastPeriod]:
        if self._cache is not None and self._clock() - self._fetched_at < self._ttl:
            return self._cache

        if self._rate_limited_on == date.today():
            return self._cached_or_fail("Rate limited for today")

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self._url,
                    params={"format": "json"},
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT),
                ) as resp:
                    if resp.status == 429:
                        self._rate_limited_on = date.today()
                        logger.warning("Solcast rate limit reached")
                        return self._cached_or_fail("Rate limited (429)")
                    if resp.status != 200:
                        body = await resp.text()
                        return self._cached_or_fail(f"API returned {resp.status}: {body}")
                    data = await resp.json()
        except (aiohttp.ClientError, TimeoutError) as e:
            return self._cached_or_fail(f"Request failed: {e}")

        self._cache = parse_forecasts(data)
        self._fetched_at = self._clock()
        logger.info("Fetched %d Solcast forecast periods", len(self._cache))
        return self._cache

    def _cached_or_fail(self, reason: str) -> list[ForecastPeriod]:
        if self._cache is not None:
            logger.warning("%s, serving cached forecast", reason)
            return self._cache
        raise ForecastNotAvailableError(f"{reason} and no cached forecast available")

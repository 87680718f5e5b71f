"""
GeoIP Providers
Address geolocation through ipinfo.io (token) or ip-api.com (free, rate limited)
"""

import asyncio
import logging
import math
import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp
from opentelemetry import trace

from ssh_honeypot.core.exceptions import MalformedResponseError, RateLimitedError, TransientError
from ssh_honeypot.models.attempt_models import GeoRecord
from ssh_honeypot.utils.helpers import utc_now
from ssh_honeypot.utils.tracing import record_failure

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

IPAPI_FIELDS = [
    "status",
    "message",
    "continent",
    "continentCode",
    "country",
    "countryCode",
    "region",
    "regionName",
    "city",
    "district",
    "zip",
    "lat",
    "lon",
    "timezone",
    "offset",
    "currency",
    "isp",
    "org",
    "as",
    "asname",
    "reverse",
    "mobile",
    "proxy",
    "hosting",
    "query"
]

def parse_location(loc: Optional[str]) -> Tuple[float, float]:
    """Parse ipinfo's combined ``"lat,long"`` string."""
    if not loc:
        return 0.0, 0.0

    lat, sep, lon = loc.partition(",")
    if not sep:
        raise ValueError(f"location '{loc}' is not 'lat,long'")
    return float(lat), float(lon)

def parse_reset_window(value: Optional[str], now: datetime) -> timedelta:
    """Parse a reset header given as relative seconds or as an HTTP date."""
    if value is None or not value.strip():
        raise ValueError("reset window header missing")

    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            reset_at = parsedate_to_datetime(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"unable to parse reset window '{value}'") from e
        if reset_at.tzinfo is None:
            reset_at = reset_at.replace(tzinfo=now.tzinfo)
        return max(reset_at - now, timedelta(0))

    if not math.isfinite(seconds):
        raise ValueError(f"unable to parse reset window '{value}'")
    return timedelta(seconds=max(seconds, 0.0))

class GeoProvider(ABC):
    name = "provider"
    rate_limited = False

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.clock = clock

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession()
        return self.session

    async def close(self):
        if self.session is not None:
            await self.session.close()
            self.session = None

    async def resolve(self, address: str) -> GeoRecord:
        with tracer.start_as_current_span(f"{self.name}.resolve") as span:
            span.set_attribute("net.peer.ip", address)
            logger.info(f"Getting IP info for '{address}' from {self.name}")
            try:
                return await self._resolve(address)
            except (TransientError, RateLimitedError) as e:
                record_failure(span, e)
                raise

    @abstractmethod
    async def _resolve(self, address: str) -> GeoRecord:
        pass

    def _transient(self, address: str, error: Any) -> TransientError:
        detail = error if isinstance(error, str) else repr(error)
        return TransientError(f"{self.name} lookup for {address} failed: {detail}", self.name)

    def _malformed(self, address: str, reason: str) -> MalformedResponseError:
        return MalformedResponseError(f"{self.name} response for {address} unusable: {reason}", self.name)

    async def _read_json(self, response, address: str) -> Dict[str, Any]:
        try:
            payload = await response.json(content_type=None)
        except ValueError as e:
            raise self._malformed(address, f"invalid JSON ({e})") from e

        if not isinstance(payload, dict):
            raise self._malformed(address, "JSON body is not an object")
        return payload

class IPInfoProvider(GeoProvider):
    """Token-authenticated ipinfo.io lookups; not rate limited on paid plans."""

    name = "ipinfo.io"

    def __init__(self, token: str, base_url: str = "https://ipinfo.io", **kwargs):
        super().__init__(base_url, **kwargs)
        self.token = token

    async def _resolve(self, address: str) -> GeoRecord:
        url = f"{self.base_url}/{address}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json"
        }

        try:
            async with self._get_session().get(url, headers=headers, timeout=self.timeout) as response:
                if response.status == 429:
                    raise RateLimitedError(self._retry_after(response), self.name)
                if response.status >= 400:
                    raise self._transient(address, f"HTTP {response.status}")
                payload = await self._read_json(response, address)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._transient(address, e) from e

        try:
            latitude, longitude = parse_location(payload.get("loc"))
        except ValueError as e:
            raise self._malformed(address, str(e)) from e

        return GeoRecord(
            ip=payload.get("ip") or address,
            city=payload.get("city"),
            region=payload.get("region"),
            country=payload.get("country"),
            org=payload.get("org"),
            timezone=payload.get("timezone"),
            latitude=latitude,
            longitude=longitude
        )

    def _retry_after(self, response) -> datetime:
        now = self.clock()
        try:
            return now + parse_reset_window(response.headers.get("Retry-After"), now)
        except ValueError:
            return now + timedelta(seconds=60)

class IPApiProvider(GeoProvider):
    """Free ip-api.com lookups, limited per source address.

    Every response carries ``X-Rl`` (requests left in the window) and
    ``X-Ttl`` (seconds until the window resets). Once the remaining quota
    drops to ``threshold`` the lookup is refused with :class:`RateLimitedError`
    so that the caller backs off before the provider starts answering 429.
    """

    name = "ip-api.com"
    rate_limited = True

    def __init__(
        self,
        base_url: str = "http://ip-api.com",
        threshold: int = 16,
        rng: Optional[random.Random] = None,
        **kwargs
    ):
        super().__init__(base_url, **kwargs)
        self.threshold = threshold
        self.rng = rng or random.Random()

    def build_url(self, address: str) -> str:
        return f"{self.base_url}/json/{address}?fields={','.join(IPAPI_FIELDS)}"

    async def _resolve(self, address: str) -> GeoRecord:
        try:
            async with self._get_session().get(self.build_url(address), timeout=self.timeout) as response:
                self._check_quota(response, address)
                if response.status >= 400:
                    raise self._transient(address, f"HTTP {response.status}")
                payload = await self._read_json(response, address)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._transient(address, e) from e

        status = payload.get("status")
        if status == "fail":
            # private, reserved and invalid queries; asking again gets the same answer
            logger.info(f"ip-api.com has no location for {address}: {payload.get('message', '')}")
            return GeoRecord(ip=address)
        if status != "success":
            raise self._malformed(address, f"status '{status}': {payload.get('message', '')}")

        try:
            latitude = float(payload.get("lat") or 0.0)
            longitude = float(payload.get("lon") or 0.0)
        except (TypeError, ValueError) as e:
            raise self._malformed(address, f"bad coordinates ({e})") from e

        return GeoRecord(
            ip=address,
            city=payload.get("city"),
            region=payload.get("region"),
            country=payload.get("country"),
            org=payload.get("org"),
            timezone=payload.get("timezone"),
            latitude=latitude,
            longitude=longitude
        )

    def _check_quota(self, response, address: str):
        too_many = response.status == 429
        raw_remaining = response.headers.get("X-Rl")

        try:
            remaining = int(raw_remaining)
        except (TypeError, ValueError):
            if not too_many:
                raise self._malformed(address, f"X-Rl header '{raw_remaining}' is not an integer")
            remaining = 0

        if not too_many and remaining > self.threshold:
            return

        now = self.clock()
        try:
            window = parse_reset_window(response.headers.get("X-Ttl"), now)
        except ValueError as e:
            raise self._malformed(address, str(e)) from e

        # spread concurrent callers so they do not all resume on the same second
        jitter = timedelta(seconds=1 + self.rng.randrange(max(remaining, 0) + 1))
        resume_at = now + window + jitter

        logger.warning(
            f"Rate limited by {self.name}, resuming after {(resume_at - now).total_seconds():.0f}s. "
            f"X-Rl: {remaining}"
        )
        raise RateLimitedError(resume_at, self.name)

def select_provider(
    token: Optional[str] = None,
    session: Optional[aiohttp.ClientSession] = None,
    ipinfo_url: str = "https://ipinfo.io",
    ipapi_url: str = "http://ip-api.com",
    timeout: float = 10.0,
    threshold: int = 16
) -> GeoProvider:
    if token:
        logger.info("IPINFOIO_TOKEN set, using ipinfo.io for geolocation")
        return IPInfoProvider(token, base_url=ipinfo_url, session=session, timeout=timeout)

    logger.info("IPINFOIO_TOKEN not set, using rate limited ip-api.com for geolocation")
    return IPApiProvider(base_url=ipapi_url, threshold=threshold, session=session, timeout=timeout)

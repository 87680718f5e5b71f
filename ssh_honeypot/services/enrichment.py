"""
Enrichment Service
Rate-limit aware geolocation of attacker addresses
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace

from ssh_honeypot.core.cache import RateLimitCache
from ssh_honeypot.core.exceptions import MalformedResponseError, RateLimitedError, TransientError
from ssh_honeypot.models.attempt_models import GeoRecord
from ssh_honeypot.services.geoip import GeoProvider
from ssh_honeypot.utils.helpers import utc_now
from ssh_honeypot.utils.tracing import record_failure

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

class EnrichmentService:
    """Looks addresses up with one provider chosen at startup.

    A provider still cooling down fails fast with :class:`RateLimitedError`;
    waiting is left to the caller's retry policy. For rate limited providers
    the cache check, the call and the cache update run under the provider's
    lock, so concurrent callers cannot all see "not limited" at once.
    """

    def __init__(
        self,
        provider: GeoProvider,
        cache: RateLimitCache,
        clock: Callable[[], datetime] = utc_now
    ):
        self.provider = provider
        self.cache = cache
        self.clock = clock
        self.stats = {
            "lookups": 0,
            "succeeded": 0,
            "rate_limited": 0,
            "transient": 0,
            "malformed": 0,
            "lock_timeouts": 0
        }

    async def enrich(
        self,
        address: str,
        timeout: Optional[float] = None,
        stop_event: Optional[asyncio.Event] = None
    ) -> GeoRecord:
        """Geolocate ``address``.

        ``timeout`` and ``stop_event`` only bound the wait for the provider
        lock; a lookup that has started runs to completion.
        """
        with tracer.start_as_current_span("enrich") as span:
            span.set_attribute("net.peer.ip", address)
            span.set_attribute("enrichment.provider", self.provider.name)
            try:
                if self.provider.rate_limited:
                    lock = self.cache.lock(self.provider.name)
                    await self._acquire(lock, timeout, stop_event)
                    try:
                        return await self._lookup(address)
                    finally:
                        lock.release()
                return await self._lookup(address)
            except (TransientError, RateLimitedError) as e:
                record_failure(span, e)
                raise

    async def _acquire(
        self,
        lock: asyncio.Lock,
        timeout: Optional[float],
        stop_event: Optional[asyncio.Event]
    ):
        acquire = asyncio.ensure_future(lock.acquire())
        waiters = {acquire}
        stopper = None
        if stop_event is not None:
            stopper = asyncio.ensure_future(stop_event.wait())
            waiters.add(stopper)

        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            self._abandon(lock, acquire)
            raise
        finally:
            if stopper is not None:
                stopper.cancel()

        if acquire.done() and not acquire.cancelled():
            return

        self._abandon(lock, acquire)
        self.stats["lock_timeouts"] += 1
        if stop_event is not None and stop_event.is_set():
            raise TransientError(f"connection closed while waiting for {self.provider.name}", self.provider.name)
        raise TransientError(f"timed out after {timeout}s waiting for {self.provider.name}", self.provider.name)

    @staticmethod
    def _abandon(lock: asyncio.Lock, acquire: asyncio.Future):
        if acquire.done() and not acquire.cancelled() and acquire.exception() is None:
            lock.release()
        else:
            # a cancelled acquire never takes the lock
            acquire.cancel()

    async def _lookup(self, address: str) -> GeoRecord:
        resume_at = self.cache.limited_until(self.provider.name)
        if resume_at is not None:
            self.stats["rate_limited"] += 1
            logger.debug(f"{self.provider.name} cooling down until {resume_at.isoformat()}, not querying {address}")
            raise RateLimitedError(resume_at, self.provider.name)

        self.stats["lookups"] += 1
        try:
            geo = await self.provider.resolve(address)
        except RateLimitedError as e:
            self.stats["rate_limited"] += 1
            remaining = (e.resume_at - self.clock()).total_seconds()
            self.cache.set(self.provider.name, e.resume_at, max(self.cache.ttl, remaining))
            raise
        except MalformedResponseError as e:
            self.stats["malformed"] += 1
            logger.warning(f"Malformed response from {self.provider.name}: {e}")
            raise
        except TransientError as e:
            self.stats["transient"] += 1
            logger.info(f"Failed to get IP info from {self.provider.name}: {e}")
            raise

        self.stats["succeeded"] += 1
        return geo

    def get_service_status(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.name,
            "rate_limited_until": self.cache.limited_until(self.provider.name),
            "stats": dict(self.stats),
            "cache": self.cache.get_stats()
        }

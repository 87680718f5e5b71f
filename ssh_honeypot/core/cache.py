"""
Rate Limit Cache
Process-wide record of when each enrichment provider may be called again
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ssh_honeypot.utils.helpers import utc_now

logger = logging.getLogger(__name__)

class RateLimitCache:
    """In-memory expiring map of provider id -> resume time.

    Entries expire ``ttl`` seconds after their last write regardless of the
    stored resume time. Callers that must check and act atomically take the
    per-provider lock from :meth:`lock`.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], datetime] = utc_now):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, Dict[str, datetime]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, provider_id: str) -> Optional[datetime]:
        item = self._entries.get(provider_id)
        if item is None:
            return None

        if self.clock() >= item["expire_at"]:
            del self._entries[provider_id]
            return None

        return item["resume_at"]

    def set(self, provider_id: str, resume_at: datetime, ttl: Optional[float] = None):
        if ttl is None:
            ttl = self.ttl

        self._entries[provider_id] = {
            "resume_at": resume_at,
            "expire_at": self.clock() + timedelta(seconds=ttl)
        }
        logger.debug(f"Rate limit for {provider_id} set until {resume_at.isoformat()} (ttl {ttl:.0f}s)")

    def delete(self, provider_id: str) -> bool:
        return self._entries.pop(provider_id, None) is not None

    def limited_until(self, provider_id: str) -> Optional[datetime]:
        resume_at = self.get(provider_id)
        if resume_at is not None and resume_at > self.clock():
            return resume_at
        return None

    def lock(self, provider_id: str) -> asyncio.Lock:
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = self._locks[provider_id] = asyncio.Lock()
        return lock

    def get_stats(self) -> Dict[str, Any]:
        now = self.clock()
        return {
            "type": "memory",
            "total_keys": len(self._entries),
            "expired_keys": len([
                k for k, v in self._entries.items()
                if now >= v["expire_at"]
            ])
        }

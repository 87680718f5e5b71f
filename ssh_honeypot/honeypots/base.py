"""
Base Honeypot Class and Common Functionality
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from ssh_honeypot.models.attempt_models import AttemptKind
from ssh_honeypot.utils.helpers import utc_now

logger = logging.getLogger(__name__)

class BaseHoneypot(ABC):
    def __init__(self, name: str, host: str, port: int, config: Dict[str, Any]):
        self.name = name
        self.host = host
        self.port = port
        self.config = config
        self.is_running = False
        self.stats = {
            "connections": 0,
            "attempts": {kind.value: 0 for kind in AttemptKind},
            "start_time": None,
            "last_activity": None
        }

    @abstractmethod
    async def start(self):
        pass

    @abstractmethod
    async def stop(self):
        pass

    def record_connection(self):
        self.stats["connections"] += 1
        self.stats["last_activity"] = utc_now()

    def record_attempt(self, kind: AttemptKind):
        self.stats["attempts"][kind.value] += 1
        self.stats["last_activity"] = utc_now()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "type": self.name,
            "port": self.port,
            "is_running": self.is_running,
            "stats": self.stats,
            "config": self.config
        }

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy" if self.is_running else "stopped",
            "uptime": self._calculate_uptime(),
            "connections": self.stats["connections"],
            "attempts": sum(self.stats["attempts"].values())
        }

    def _calculate_uptime(self) -> Optional[float]:
        start_time: Optional[datetime] = self.stats["start_time"]
        if not start_time:
            return None
        return (utc_now() - start_time).total_seconds()

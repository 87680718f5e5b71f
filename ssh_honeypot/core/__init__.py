"""
SSH Honeypot - Core Module
Configuration, shared rate-limit state and host key handling
"""

from ssh_honeypot.core.config import Settings, settings
from ssh_honeypot.core.cache import RateLimitCache
from ssh_honeypot.core.exceptions import (
    HoneypotError,
    EnrichError,
    TransientError,
    MalformedResponseError,
    RateLimitedError,
    WriteError,
    ConfigurationError,
    HostKeyError
)
from ssh_honeypot.core.security import ensure_host_key, generate_host_key, load_host_key

__all__ = [
    "Settings",
    "settings",
    "RateLimitCache",
    "HoneypotError",
    "EnrichError",
    "TransientError",
    "MalformedResponseError",
    "RateLimitedError",
    "WriteError",
    "ConfigurationError",
    "HostKeyError",
    "ensure_host_key",
    "generate_host_key",
    "load_host_key"
]

"""
SSH Honeypot - Utilities Module
Logging, tracing and small shared helpers
"""

from ssh_honeypot.utils.logger import setup_logging
from ssh_honeypot.utils.helpers import utc_now, split_host_port
from ssh_honeypot.utils.validators import is_private_or_loopback

__all__ = [
    "setup_logging",
    "utc_now",
    "split_host_port",
    "is_private_or_loopback"
]

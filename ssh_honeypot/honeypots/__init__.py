"""
SSH Honeypot - Honeypots Module
Protocol front end that turns login attempts into pipeline runs
"""

from ssh_honeypot.honeypots.base import BaseHoneypot
from ssh_honeypot.honeypots.ssh_honeypot import (
    HoneypotServer,
    SSHHoneypot,
    capture_attempt,
    create_ssh_honeypot
)

__all__ = [
    "BaseHoneypot",
    "HoneypotServer",
    "SSHHoneypot",
    "capture_attempt",
    "create_ssh_honeypot"
]

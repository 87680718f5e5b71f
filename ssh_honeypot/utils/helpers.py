"""
Helper Functions
Time and socket address helpers
"""

from datetime import datetime, timezone
from typing import Any, Optional, Tuple

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def split_host_port(address: Optional[Any]) -> Tuple[str, str]:
    """Split a socket address into host and port strings.

    Accepts the tuples returned by ``getpeername``/``getsockname`` for IPv4
    and IPv6 as well as ``"host:port"`` / ``"[v6]:port"`` strings.
    """
    if not address:
        return "", ""

    if isinstance(address, (tuple, list)):
        host = str(address[0]) if len(address) > 0 else ""
        port = str(address[1]) if len(address) > 1 else ""
        return host, port

    text = str(address)
    if text.startswith("["):
        host, _, rest = text[1:].partition("]")
        return host, rest.lstrip(":")

    host, sep, port = text.rpartition(":")
    if not sep or ":" in host:
        return text, ""
    return host, port

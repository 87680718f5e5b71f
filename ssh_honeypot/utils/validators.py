"""
Validation Utilities
Address classification for the private-address filter
"""

import ipaddress

def is_private_or_loopback(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip.split("%", 1)[0])
    except ValueError:
        return False

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped

    return address.is_private or address.is_loopback

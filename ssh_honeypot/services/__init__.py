"""
SSH Honeypot - Services Module
Geolocation providers and the enrichment service
"""

from ssh_honeypot.services.geoip import (
    GeoProvider,
    IPInfoProvider,
    IPApiProvider,
    select_provider,
    parse_location,
    parse_reset_window
)
from ssh_honeypot.services.enrichment import EnrichmentService

__all__ = [
    "GeoProvider",
    "IPInfoProvider",
    "IPApiProvider",
    "select_provider",
    "parse_location",
    "parse_reset_window",
    "EnrichmentService"
]

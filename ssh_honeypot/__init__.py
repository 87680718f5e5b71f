"""
SSH Honeypot
Credential-harvesting SSH honeypot with geolocated InfluxDB telemetry
"""

__version__ = "1.0.0"
__description__ = "SSH honeypot that records enriched login attempts"

"""
Honeypot Exceptions
Error taxonomy shared by enrichment, ingestion and startup
"""

from datetime import datetime
from typing import Optional

class HoneypotError(Exception):
    """Base class for every error raised by the honeypot itself"""

class EnrichError(HoneypotError):
    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider

class TransientError(EnrichError):
    """Network or parse failure; safe to retry right away"""

class MalformedResponseError(TransientError):
    """Provider answered with something that could not be interpreted"""

class RateLimitedError(EnrichError):
    def __init__(self, resume_at: datetime, provider: str = "", message: Optional[str] = None):
        super().__init__(
            message or f"{provider or 'provider'} rate limited until {resume_at.isoformat()}",
            provider
        )
        self.resume_at = resume_at

class WriteError(HoneypotError):
    """The telemetry sink rejected or could not accept a point"""

class ConfigurationError(HoneypotError):
    pass

class HostKeyError(HoneypotError):
    pass

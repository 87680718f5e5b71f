"""
SSH Honeypot - Models Module
Attempt, geolocation and telemetry data structures
"""

from ssh_honeypot.models.attempt_models import (
    AttemptKind,
    SessionCredential,
    PasswordCredential,
    PublicKeyCredential,
    Credential,
    AttemptRecord,
    GeoRecord,
    TelemetryPoint
)

__all__ = [
    "AttemptKind",
    "SessionCredential",
    "PasswordCredential",
    "PublicKeyCredential",
    "Credential",
    "AttemptRecord",
    "GeoRecord",
    "TelemetryPoint"
]

"""
Attempt data models
Login attempts, geolocation records and the telemetry points built from them
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union

from influxdb_client import Point, WritePrecision
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

class AttemptKind(str, Enum):
    SESSION = "session"
    PASSWORD = "password"
    PUBLIC_KEY = "public_key"

class SessionCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["session"] = "session"

class PasswordCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["password"] = "password"
    password: SecretStr

class PublicKeyCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["public_key"] = "public_key"
    key: str

Credential = Annotated[
    Union[SessionCredential, PasswordCredential, PublicKeyCredential],
    Field(discriminator="kind")
]

class AttemptRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    remote_host: str
    remote_port: str = ""
    local_host: str = ""
    local_port: str = ""
    user: str = ""
    client_version: str = ""
    timestamp: datetime
    credential: Credential = Field(default_factory=SessionCredential)

    @property
    def kind(self) -> AttemptKind:
        return AttemptKind(self.credential.kind)

    @property
    def password(self) -> Optional[str]:
        if isinstance(self.credential, PasswordCredential):
            return self.credential.password.get_secret_value()
        return None

    @property
    def key(self) -> Optional[str]:
        if isinstance(self.credential, PublicKeyCredential):
            return self.credential.key
        return None

class GeoRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    ip: str = ""
    city: str = ""
    region: str = ""
    country: str = ""
    org: str = ""
    timezone: str = ""
    latitude: float = 0.0
    longitude: float = 0.0

    @field_validator("ip", "city", "region", "country", "org", "timezone", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def none_as_zero(cls, v):
        return 0.0 if v is None else v

class TelemetryPoint(BaseModel):
    """One sink measurement for one attempt. Tags keep their insertion order."""

    model_config = ConfigDict(frozen=True)

    measurement: str = "request"
    tags: Dict[str, str]
    fields: Dict[str, float]
    time: datetime

    @classmethod
    def from_attempt(cls, attempt: AttemptRecord, geo: GeoRecord, measurement: str = "request") -> "TelemetryPoint":
        return cls(
            measurement=measurement,
            tags={
                "ip": geo.ip,
                "country": geo.country,
                "city": geo.city,
                "region": geo.region,
                "org": geo.org,
                "timezone": geo.timezone,
                "user": attempt.user,
                "remote_host": attempt.remote_host,
                "remote_port": attempt.remote_port,
                "local_host": attempt.local_host,
                "local_port": attempt.local_port,
                "client_version": attempt.client_version,
                "function": attempt.kind.value,
                "password": attempt.password or "",
                "key": attempt.key or ""
            },
            fields={
                "latitude": geo.latitude,
                "longitude": geo.longitude
            },
            time=attempt.timestamp
        )

    def to_point(self) -> Point:
        point = Point(self.measurement)
        for name, value in self.fields.items():
            point.field(name, value)
        for name, value in self.tags.items():
            point.tag(name, value)
        return point.time(self.time, WritePrecision.NS)

    def to_line_protocol(self) -> str:
        return self.to_point().to_line_protocol()

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ssh_honeypot.models.attempt_models import (
    AttemptRecord,
    PasswordCredential,
    PublicKeyCredential,
    SessionCredential
)

class FakeClock:
    """Wall clock and monotonic clock that only move when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.elapsed = 0.0
        self.sleeps = []

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.elapsed

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)
        self.elapsed += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)

class FakeResponse:
    def __init__(self, status: int = 200, payload=None, headers=None):
        self.status = status
        self._payload = payload
        self.headers = headers or {}

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

class FakeWriteApi:
    def __init__(self, failures: int = 0, error: Exception = None):
        self.failures = failures
        self.error = error or OSError("connection refused")
        self.records = []
        self.calls = 0

    async def write(self, bucket, org=None, record=None, **kwargs):
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        self.records.append(record)
        return True

class FakeConnection:
    def __init__(self, peername=("8.8.8.8", 51234), sockname=("10.0.0.5", 2222),
                 client_version="SSH-2.0-OpenSSH_9.6"):
        self.extra = {
            "peername": peername,
            "sockname": sockname,
            "client_version": client_version
        }
        self.closed = False

    def get_extra_info(self, name, default=None):
        return self.extra.get(name, default)

    def close(self):
        self.closed = True

def make_attempt(remote_host="8.8.8.8", credential=None, user="root", timestamp=None) -> AttemptRecord:
    return AttemptRecord(
        remote_host=remote_host,
        remote_port="51234",
        local_host="10.0.0.5",
        local_port="2222",
        user=user,
        client_version="SSH-2.0-OpenSSH_9.6",
        timestamp=timestamp or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc),
        credential=credential or SessionCredential()
    )

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def password_attempt():
    return make_attempt(credential=PasswordCredential(password="test123"))

@pytest.fixture
def key_attempt():
    return make_attempt(credential=PublicKeyCredential(key="ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIExample"))

import asyncio
import random
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeResponse, FakeSession, FakeWriteApi, make_attempt
from ssh_honeypot.core.cache import RateLimitCache
from ssh_honeypot.core.exceptions import RateLimitedError, TransientError
from ssh_honeypot.models.attempt_models import GeoRecord, PasswordCredential
from ssh_honeypot.pipeline.ingest import TelemetryWriter
from ssh_honeypot.pipeline.processor import AttemptPipeline, PipelineOutcome
from ssh_honeypot.pipeline.retry import BackoffPolicy, RetryController
from ssh_honeypot.services.enrichment import EnrichmentService
from ssh_honeypot.services.geoip import IPApiProvider

GOOGLE = GeoRecord(
    ip="8.8.8.8",
    city="Mountain View",
    region="California",
    country="US",
    org="AS15169 Google LLC",
    timezone="America/Los_Angeles",
    latitude=37.4056,
    longitude=-122.0775
)

def make_enrichment(*results):
    enrichment = MagicMock()
    enrichment.enrich = AsyncMock(side_effect=list(results) if results else None, return_value=GOOGLE)
    enrichment.get_service_status.return_value = {"provider": "fake"}
    return enrichment

@pytest.fixture
def retry(clock):
    return RetryController(
        BackoffPolicy(initial_interval=0.5, randomization=0.0, max_elapsed=30.0),
        clock=clock.monotonic,
        wall_clock=clock,
        sleep=clock.sleep,
        rng=random.Random(0)
    )

def test_public_password_attempt_is_written(retry, password_attempt):
    enrichment = make_enrichment()
    api = FakeWriteApi()
    pipeline = AttemptPipeline(enrichment, TelemetryWriter(api, bucket="honeypot"), retry)

    outcome = asyncio.run(pipeline.process(password_attempt))

    assert outcome is PipelineOutcome.DONE
    enrichment.enrich.assert_awaited_once_with("8.8.8.8", timeout=30.0, stop_event=None)
    line = api.records[0].to_line_protocol()
    assert line.startswith("request,")
    assert "country=US" in line
    assert "city=Mountain\\ View" in line
    assert "function=password" in line
    assert "password=test123" in line
    assert "latitude=37.4056" in line
    assert pipeline.stats["written"] == 1

def test_loopback_session_is_suppressed(retry):
    enrichment = make_enrichment()
    api = FakeWriteApi()
    pipeline = AttemptPipeline(enrichment, TelemetryWriter(api, bucket="honeypot"), retry)

    outcome = asyncio.run(pipeline.process(make_attempt(remote_host="127.0.0.1")))

    assert outcome is PipelineOutcome.SUPPRESSED
    enrichment.enrich.assert_not_awaited()
    assert api.calls == 0
    assert pipeline.stats["suppressed"] == 1

@pytest.mark.parametrize("address", ["10.1.2.3", "192.168.0.10", "::1", "fd00::1"])
def test_private_addresses_are_suppressed(retry, address):
    api = FakeWriteApi()
    pipeline = AttemptPipeline(make_enrichment(), TelemetryWriter(api, bucket="honeypot"), retry)

    assert asyncio.run(pipeline.process(make_attempt(remote_host=address))) is PipelineOutcome.SUPPRESSED
    assert api.calls == 0

def test_private_addresses_written_when_enabled(retry):
    enrichment = make_enrichment(GeoRecord(ip="10.1.2.3"))
    api = FakeWriteApi()
    pipeline = AttemptPipeline(
        enrichment, TelemetryWriter(api, bucket="honeypot"), retry, write_private_ips=True
    )

    outcome = asyncio.run(pipeline.process(make_attempt(remote_host="10.1.2.3")))

    assert outcome is PipelineOutcome.DONE
    assert api.calls == 1

def test_transient_enrichment_failure_is_retried(retry, clock, password_attempt):
    enrichment = make_enrichment(TransientError("timeout"), TransientError("timeout"), GOOGLE)
    api = FakeWriteApi()
    pipeline = AttemptPipeline(enrichment, TelemetryWriter(api, bucket="honeypot"), retry)

    assert asyncio.run(pipeline.process(password_attempt)) is PipelineOutcome.DONE
    assert enrichment.enrich.await_count == 3
    assert api.calls == 1
    assert len(clock.sleeps) == 2

def test_failed_enrichment_never_writes(retry, clock, password_attempt):
    enrichment = MagicMock()
    enrichment.enrich = AsyncMock(side_effect=TransientError("provider down"))
    api = FakeWriteApi()
    pipeline = AttemptPipeline(enrichment, TelemetryWriter(api, bucket="honeypot"), retry)

    outcome = asyncio.run(pipeline.process(password_attempt))

    assert outcome is PipelineOutcome.FAILED
    assert api.calls == 0
    assert clock.monotonic() <= 30.0
    assert pipeline.stats["failed"] == 1

def test_write_failure_retries_without_new_lookup(retry, password_attempt):
    enrichment = make_enrichment()
    api = FakeWriteApi(failures=2)
    pipeline = AttemptPipeline(enrichment, TelemetryWriter(api, bucket="honeypot"), retry)

    assert asyncio.run(pipeline.process(password_attempt)) is PipelineOutcome.DONE
    enrichment.enrich.assert_awaited_once()
    assert api.calls == 3
    assert len(api.records) == 1

def test_rate_limited_attempt_waits_for_resume(retry, clock, password_attempt):
    enrichment = make_enrichment(RateLimitedError(clock() + timedelta(seconds=20), "ip-api.com"), GOOGLE)
    api = FakeWriteApi()
    pipeline = AttemptPipeline(enrichment, TelemetryWriter(api, bucket="honeypot"), retry)

    assert asyncio.run(pipeline.process(password_attempt)) is PipelineOutcome.DONE
    assert clock.sleeps == [20.0]

def test_closed_connection_abandons_retries(retry, password_attempt):
    enrichment = MagicMock()
    enrichment.enrich = AsyncMock(side_effect=TransientError("timeout"))
    api = FakeWriteApi()
    pipeline = AttemptPipeline(enrichment, TelemetryWriter(api, bucket="honeypot"), retry)

    async def main():
        closed = asyncio.Event()
        closed.set()
        return await pipeline.process(password_attempt, closed)

    assert asyncio.run(main()) is PipelineOutcome.FAILED
    enrichment.enrich.assert_awaited_once()

def test_submit_runs_attempts_independently(retry):
    api = FakeWriteApi()
    pipeline = AttemptPipeline(make_enrichment(), TelemetryWriter(api, bucket="honeypot"), retry)
    attempts = [
        make_attempt(credential=PasswordCredential(password=f"pw{i}")) for i in range(3)
    ]

    async def main():
        tasks = [pipeline.submit(attempt) for attempt in attempts]
        await pipeline.drain(timeout=5)
        return [task.result() for task in tasks]

    assert asyncio.run(main()) == [PipelineOutcome.DONE] * 3
    assert api.calls == 3
    assert pipeline.get_stats()["in_flight"] == 0
    assert pipeline.stats["submitted"] == 3

def test_private_override_with_free_provider_writes_empty_geo(clock):
    fail = {"status": "fail", "message": "private range", "query": "10.1.2.3"}
    session = FakeSession(*(FakeResponse(payload=fail, headers={"X-Rl": "44", "X-Ttl": "60"}) for _ in range(5)))
    enrichment = EnrichmentService(
        IPApiProvider(session=session, clock=clock),
        RateLimitCache(clock=clock),
        clock=clock
    )
    api = FakeWriteApi()
    retry = RetryController(BackoffPolicy(), clock=clock.monotonic, wall_clock=clock, sleep=clock.sleep)
    pipeline = AttemptPipeline(
        enrichment, TelemetryWriter(api, bucket="honeypot"), retry, write_private_ips=True
    )
    attempt = make_attempt(remote_host="10.1.2.3", credential=PasswordCredential(password="test123"))

    outcome = asyncio.run(pipeline.process(attempt))

    assert outcome is PipelineOutcome.DONE
    assert len(session.calls) == 1
    line = api.records[0].to_line_protocol()
    assert "ip=10.1.2.3" in line
    assert "country=" not in line
    assert "password=test123" in line

def test_hung_provider_lock_does_not_outlive_closed_connection(clock):
    provider = IPApiProvider(clock=clock)
    release = asyncio.Event()

    async def resolve(address):
        await release.wait()
        return GOOGLE

    provider.resolve = resolve
    enrichment = EnrichmentService(provider, RateLimitCache(clock=clock), clock=clock)
    api = FakeWriteApi()
    pipeline = AttemptPipeline(
        enrichment,
        TelemetryWriter(api, bucket="honeypot"),
        RetryController(BackoffPolicy(max_elapsed=0.2))
    )

    async def main():
        holder = asyncio.create_task(enrichment.enrich("8.8.8.8"))
        await asyncio.sleep(0.01)

        closed = asyncio.Event()
        closed.set()
        when_closed = await asyncio.wait_for(pipeline.process(make_attempt(), closed), timeout=2)
        over_budget = await asyncio.wait_for(pipeline.process(make_attempt()), timeout=2)

        release.set()
        await holder
        return when_closed, over_budget

    assert asyncio.run(main()) == (PipelineOutcome.FAILED, PipelineOutcome.FAILED)
    assert api.calls == 0

"""
Telemetry Ingestion
Writes enriched attempt points to InfluxDB in blocking or queued mode
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync
from influxdb_client.rest import ApiException
from opentelemetry import trace

from ssh_honeypot.core.exceptions import WriteError
from ssh_honeypot.models.attempt_models import TelemetryPoint
from ssh_honeypot.utils.tracing import record_failure

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SINK_ERRORS = (ApiException, aiohttp.ClientError, asyncio.TimeoutError, OSError)

class TelemetryWriter:
    """Sends :class:`TelemetryPoint` objects to the sink.

    Blocking mode awaits the sink and raises :class:`WriteError` on failure.
    Non-blocking mode puts the point on a bounded queue and returns; a single
    consumer task drains the queue and logs sink failures. A full queue is
    rejected with :class:`WriteError` so the caller's backoff applies.
    """

    def __init__(
        self,
        write_api,
        bucket: str,
        org: Optional[str] = None,
        non_blocking: bool = False,
        queue_size: int = 1000
    ):
        self.write_api = write_api
        self.bucket = bucket
        self.org = org
        self.non_blocking = non_blocking
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.is_running = False
        self._consumer: Optional[asyncio.Task] = None
        self.stats = {
            "written": 0,
            "failed": 0,
            "rejected": 0
        }

    async def start(self):
        if self.is_running:
            return

        self.is_running = True
        if self.non_blocking:
            self._consumer = asyncio.create_task(self._drain_queue())
            logger.info(f"Writing to InfluxDB in non-blocking mode (queue size {self.queue.maxsize})")
        else:
            logger.info("Writing to InfluxDB in blocking mode")

    async def stop(self, timeout: float = 10.0):
        if not self.is_running:
            return

        self.is_running = False
        if self._consumer is not None:
            try:
                await asyncio.wait_for(self.queue.join(), timeout)
            except asyncio.TimeoutError:
                logger.error(f"Dropping {self.queue.qsize()} queued point(s) not written within {timeout}s")
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        logger.info("Telemetry writer stopped")

    async def write(self, point: TelemetryPoint):
        if not self.non_blocking:
            await self._send(point)
            return

        try:
            self.queue.put_nowait(point)
        except asyncio.QueueFull:
            self.stats["rejected"] += 1
            raise WriteError(f"write queue full ({self.queue.maxsize} points pending)")

    async def _send(self, point: TelemetryPoint):
        with tracer.start_as_current_span("write_point") as span:
            try:
                await self.write_api.write(bucket=self.bucket, org=self.org, record=point.to_point())
            except SINK_ERRORS as e:
                self.stats["failed"] += 1
                error = WriteError(f"failed to write to InfluxDB: {e}")
                record_failure(span, error)
                raise error from e

            self.stats["written"] += 1
            span.add_event("Successfully wrote to InfluxDB")
            logger.debug(f"Wrote {point.tags.get('function')} point for {point.tags.get('remote_host')}")

    async def _drain_queue(self):
        while True:
            point = await self.queue.get()
            try:
                await self._send(point)
            except WriteError as e:
                logger.error(f"write error: {e}")
            finally:
                self.queue.task_done()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "mode": "non-blocking" if self.non_blocking else "blocking",
            "is_running": self.is_running,
            "queue_size": self.queue.qsize(),
            **self.stats
        }

def create_sink_client(settings) -> InfluxDBClientAsync:
    return InfluxDBClientAsync(
        url=settings.influxdb_url,
        token=settings.influxdb_token,
        org=settings.influxdb_org
    )

def create_writer(client: InfluxDBClientAsync, settings) -> TelemetryWriter:
    return TelemetryWriter(
        client.write_api(),
        bucket=settings.influxdb_bucket,
        org=settings.influxdb_org,
        non_blocking=settings.influxdb_non_blocking_writes,
        queue_size=settings.write_queue_size
    )

"""
Attempt Processing Pipeline
Private-address filter, then retried enrichment and write, one task per attempt
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional, Set

from opentelemetry import trace

from ssh_honeypot.core.exceptions import HoneypotError
from ssh_honeypot.models.attempt_models import AttemptRecord, GeoRecord, TelemetryPoint
from ssh_honeypot.pipeline.ingest import TelemetryWriter
from ssh_honeypot.pipeline.retry import RetryController
from ssh_honeypot.services.enrichment import EnrichmentService
from ssh_honeypot.utils.tracing import record_failure
from ssh_honeypot.utils.validators import is_private_or_loopback

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

class PipelineOutcome(str, Enum):
    SUPPRESSED = "suppressed"
    DONE = "done"
    FAILED = "failed"

class AttemptPipeline:
    def __init__(
        self,
        enrichment: EnrichmentService,
        writer: TelemetryWriter,
        retry: RetryController,
        write_private_ips: bool = False,
        measurement: str = "request"
    ):
        self.enrichment = enrichment
        self.writer = writer
        self.retry = retry
        self.write_private_ips = write_private_ips
        self.measurement = measurement
        self._tasks: Set[asyncio.Task] = set()
        self.stats = {
            "submitted": 0,
            "suppressed": 0,
            "written": 0,
            "failed": 0
        }

    def submit(self, attempt: AttemptRecord, closed: Optional[asyncio.Event] = None) -> asyncio.Task:
        """Start an independent run for ``attempt`` and return its task."""
        self.stats["submitted"] += 1
        task = asyncio.create_task(self.process(attempt, closed))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Unexpected error processing attempt: {task.exception()!r}")

    async def process(self, attempt: AttemptRecord, closed: Optional[asyncio.Event] = None) -> PipelineOutcome:
        function = attempt.kind.value

        with tracer.start_as_current_span("process_attempt") as span:
            span.set_attribute("net.peer.ip", attempt.remote_host)
            span.set_attribute("honeypot.function", function)

            if is_private_or_loopback(attempt.remote_host) and not self.write_private_ips:
                logger.info(
                    f"Request to '{function}' from private or loopback IP '{attempt.remote_host}', "
                    f"skipping write to InfluxDB"
                )
                self.stats["suppressed"] += 1
                return PipelineOutcome.SUPPRESSED

            logger.info(f"Request to '{function}' from '{attempt.remote_host}'")
            resolved: Dict[str, GeoRecord] = {}
            budget_ends = self.retry.clock() + self.retry.policy.max_elapsed

            async def enrich_and_write():
                # a retry after a failed write reuses the lookup
                if "geo" not in resolved:
                    resolved["geo"] = await self.enrichment.enrich(
                        attempt.remote_host,
                        timeout=max(0.0, budget_ends - self.retry.clock()),
                        stop_event=closed
                    )
                point = TelemetryPoint.from_attempt(attempt, resolved["geo"], self.measurement)
                await self.writer.write(point)

            try:
                await self.retry.run(
                    enrich_and_write,
                    stop_event=closed,
                    description=f"{function} attempt from {attempt.remote_host}"
                )
            except HoneypotError as e:
                record_failure(span, e)
                logger.error(f"Failed to process {function} attempt from {attempt.remote_host}: {e}")
                self.stats["failed"] += 1
                return PipelineOutcome.FAILED

            logger.info(f"Successfully processed {function} attempt from {attempt.remote_host}")
            self.stats["written"] += 1
            return PipelineOutcome.DONE

    async def drain(self, timeout: Optional[float] = None):
        if not self._tasks:
            return

        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} attempt(s) still in flight at shutdown")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "in_flight": len(self._tasks),
            **self.stats,
            "writer": self.writer.get_stats(),
            "enrichment": self.enrichment.get_service_status()
        }

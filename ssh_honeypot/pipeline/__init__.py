"""
SSH Honeypot - Pipeline Module
Attempt processing: retry policy, telemetry ingestion and orchestration
"""

from ssh_honeypot.pipeline.retry import BackoffPolicy, RetryController
from ssh_honeypot.pipeline.ingest import TelemetryWriter, create_sink_client, create_writer
from ssh_honeypot.pipeline.processor import AttemptPipeline, PipelineOutcome

__all__ = [
    "BackoffPolicy",
    "RetryController",
    "TelemetryWriter",
    "create_sink_client",
    "create_writer",
    "AttemptPipeline",
    "PipelineOutcome"
]

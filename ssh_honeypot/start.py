"""
SSH Honeypot - Startup Script
Main entry point for launching the honeypot service
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import aiohttp

from ssh_honeypot.core.cache import RateLimitCache
from ssh_honeypot.core.config import Settings
from ssh_honeypot.core.exceptions import ConfigurationError, HostKeyError
from ssh_honeypot.core.security import DEFAULT_HOST_KEY_PATH, ensure_host_key, generate_host_key
from ssh_honeypot.honeypots.ssh_honeypot import create_ssh_honeypot
from ssh_honeypot.pipeline.ingest import create_sink_client, create_writer
from ssh_honeypot.pipeline.processor import AttemptPipeline
from ssh_honeypot.pipeline.retry import BackoffPolicy, RetryController
from ssh_honeypot.services.enrichment import EnrichmentService
from ssh_honeypot.services.geoip import select_provider
from ssh_honeypot.utils.logger import setup_logging
from ssh_honeypot.utils.tracing import init_tracer

logger = logging.getLogger("ssh_honeypot.start")

def setup_environment(settings: Settings) -> bool:
    """Validate the configuration needed before anything starts"""
    try:
        settings.validate_required()
        ensure_host_key(settings.host_key_path)
    except (ConfigurationError, HostKeyError) as e:
        logger.error(str(e))
        return False

    logger.info("Environment validation successful")
    return True

async def serve(settings: Settings):
    host_key = ensure_host_key(settings.host_key_path)

    async with create_sink_client(settings) as client, aiohttp.ClientSession() as session:
        writer = create_writer(client, settings)
        provider = select_provider(
            token=settings.ipinfoio_token,
            session=session,
            ipinfo_url=settings.ipinfo_url,
            ipapi_url=settings.ipapi_url,
            timeout=settings.http_timeout,
            threshold=settings.rate_limit_threshold
        )
        enrichment = EnrichmentService(provider, RateLimitCache(ttl=settings.rate_limit_ttl))
        pipeline = AttemptPipeline(
            enrichment,
            writer,
            RetryController(BackoffPolicy.from_settings(settings)),
            write_private_ips=settings.influxdb_write_private_ips,
            measurement=settings.influxdb_measurement
        )
        honeypot = create_ssh_honeypot(pipeline, host_key, settings)

        await writer.start()
        await honeypot.start()
        try:
            await honeypot.serve_forever()
        finally:
            await honeypot.stop()
            await pipeline.drain(timeout=settings.backoff_max_elapsed)
            await writer.stop()
            logger.info(f"Final stats: {pipeline.get_stats()}")

def run_server(settings: Settings):
    shutdown_tracing = init_tracer(settings.otel_service_name, settings.otel_exporter_otlp_endpoint)
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    finally:
        shutdown_tracing()

def run_keygen(path: Path):
    try:
        generate_host_key(path)
    except HostKeyError as e:
        logger.error(str(e))
        sys.exit(1)

def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(description="SSH honeypot with geolocated InfluxDB telemetry")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Start the SSH honeypot")
    subparsers.add_parser("check", help="Validate configuration and host key")
    keygen = subparsers.add_parser("keygen", help="Generate an RSA host key")
    keygen.add_argument("--path", type=Path, default=DEFAULT_HOST_KEY_PATH)

    args = parser.parse_args(argv)

    settings = Settings()
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)

    if args.command == "keygen":
        run_keygen(args.path)
        return

    if not setup_environment(settings):
        sys.exit(1)

    if args.command == "check":
        logger.info("System check completed")
        sys.exit(0)

    run_server(settings)

if __name__ == "__main__":
    main()

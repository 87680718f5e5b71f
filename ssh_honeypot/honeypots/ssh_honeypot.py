"""
SSH Honeypot Implementation
Real SSH handshakes that reject every login and record what was tried
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import asyncssh
from opentelemetry import trace

from ssh_honeypot.honeypots.base import BaseHoneypot
from ssh_honeypot.models.attempt_models import (
    AttemptRecord,
    Credential,
    PasswordCredential,
    PublicKeyCredential,
    SessionCredential
)
from ssh_honeypot.pipeline.processor import AttemptPipeline
from ssh_honeypot.utils.helpers import split_host_port, utc_now

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_CONFIG = {
    "server_version": "OpenSSH_7.4p1 Debian-10+deb9u7",
    "deadline_timeout": 30.0,
    "idle_timeout": 10.0
}

def capture_attempt(
    conn,
    username: str,
    credential: Credential,
    clock: Callable[[], datetime] = utc_now
) -> AttemptRecord:
    with tracer.start_as_current_span("capture_attempt"):
        remote_host, remote_port = split_host_port(conn.get_extra_info("peername"))
        local_host, local_port = split_host_port(conn.get_extra_info("sockname"))

        return AttemptRecord(
            remote_host=remote_host,
            remote_port=remote_port,
            local_host=local_host,
            local_port=local_port,
            user=username or "",
            client_version=conn.get_extra_info("client_version") or "",
            timestamp=clock(),
            credential=credential
        )

class HoneypotServer(asyncssh.SSHServer):
    """Per-connection asyncssh callbacks; authentication always fails."""

    def __init__(self, honeypot: "SSHHoneypot"):
        self.honeypot = honeypot
        self.conn: Optional[asyncssh.SSHServerConnection] = None
        self.username = ""
        self.session_recorded = False
        self.closed = asyncio.Event()
        self._idle_handle: Optional[asyncio.TimerHandle] = None

    def connection_made(self, conn: asyncssh.SSHServerConnection):
        self.conn = conn
        self.honeypot.record_connection()
        logger.info(f"Opened connection from '{self._peer()}'")
        self._touch()

    def connection_lost(self, exc: Optional[Exception]):
        self.closed.set()
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

        if exc:
            logger.info(f"Connection from '{self._peer()}' lost: {exc}")
        else:
            logger.info(f"Closed connection from '{self._peer()}'")

    def begin_auth(self, username: str) -> bool:
        # auth always fails, so asyncssh never opens a session channel;
        # the start of authentication is the session attempt
        self.username = username
        self._record_session()
        return True

    def password_auth_supported(self) -> bool:
        return True

    def public_key_auth_supported(self) -> bool:
        return True

    def kbdint_auth_supported(self) -> bool:
        return False

    def validate_password(self, username: str, password: str) -> bool:
        self._submit(username, PasswordCredential(password=password))
        return False

    def validate_public_key(self, username: str, key: asyncssh.SSHKey) -> bool:
        serialized = key.export_public_key("openssh").decode("utf-8", errors="replace").strip()
        self._submit(username, PublicKeyCredential(key=serialized))
        return False

    def session_requested(self) -> bool:
        self._record_session()
        return False

    def _record_session(self):
        if self.session_recorded:
            self._touch()
            return
        self.session_recorded = True
        self._submit(self.username, SessionCredential())

    def _submit(self, username: str, credential: Credential):
        self._touch()
        attempt = capture_attempt(self.conn, username, credential)
        self.honeypot.record_attempt(attempt.kind)
        self.honeypot.pipeline.submit(attempt, self.closed)

    def _touch(self):
        idle_timeout = self.honeypot.config["idle_timeout"]
        if not idle_timeout:
            return

        if self._idle_handle is not None:
            self._idle_handle.cancel()
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(idle_timeout, self._idle_expired)

    def _idle_expired(self):
        self._idle_handle = None
        if self.conn is not None and not self.closed.is_set():
            logger.info(f"Closing idle connection from '{self._peer()}'")
            self.conn.close()

    def _peer(self) -> str:
        if self.conn is None:
            return "unknown"
        host, port = split_host_port(self.conn.get_extra_info("peername"))
        return f"{host}:{port}"

class SSHHoneypot(BaseHoneypot):
    def __init__(
        self,
        pipeline: AttemptPipeline,
        host_key: asyncssh.SSHKey,
        host: str = "0.0.0.0",
        port: int = 2222,
        config: Dict[str, Any] = None
    ):
        super().__init__("ssh", host, port, {**DEFAULT_CONFIG, **(config or {})})
        self.pipeline = pipeline
        self.host_key = host_key
        self.server: Optional[asyncssh.SSHAcceptor] = None

    async def start(self):
        if self.is_running:
            logger.warning("SSH honeypot already running")
            return

        self.server = await asyncssh.create_server(
            lambda: HoneypotServer(self),
            self.host,
            self.port,
            server_host_keys=[self.host_key],
            server_version=self.config["server_version"],
            login_timeout=self.config["deadline_timeout"]
        )

        self.is_running = True
        self.stats["start_time"] = utc_now()
        logger.info(f"Starting ssh server on port '{self.port}'...")
        logger.info(f"Connections will only last {self.config['deadline_timeout']}s")
        logger.info(f"Timeout after {self.config['idle_timeout']}s of no activity")

    async def serve_forever(self):
        if self.server is None:
            raise RuntimeError("SSH honeypot not started")
        await self.server.wait_closed()

    async def stop(self):
        if not self.is_running:
            return

        self.is_running = False
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

        logger.info("SSH honeypot stopped")

    def get_detailed_stats(self) -> Dict[str, Any]:
        base_stats = self.get_stats()
        base_stats["pipeline"] = self.pipeline.get_stats()
        return base_stats

def create_ssh_honeypot(pipeline: AttemptPipeline, host_key: asyncssh.SSHKey, settings) -> SSHHoneypot:
    return SSHHoneypot(
        pipeline,
        host_key,
        host=settings.ssh_host,
        port=settings.ssh_port,
        config={
            "server_version": settings.ssh_server_version,
            "deadline_timeout": settings.deadline_timeout,
            "idle_timeout": settings.idle_timeout
        }
    )

from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from ssh_honeypot.core.exceptions import ConfigurationError

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # InfluxDB sink
    influxdb_url: str = ""
    influxdb_token: str = ""
    influxdb_org: str = ""
    influxdb_bucket: str = ""
    influxdb_measurement: str = "request"
    influxdb_write_private_ips: bool = False
    influxdb_non_blocking_writes: bool = False
    write_queue_size: int = 1000

    # Geolocation providers
    ipinfoio_token: Optional[str] = None
    ipinfo_url: str = "https://ipinfo.io"
    ipapi_url: str = "http://ip-api.com"
    http_timeout: float = 10.0
    rate_limit_threshold: int = 16
    rate_limit_ttl: float = 300.0

    # Retry backoff (seconds)
    backoff_initial_interval: float = 0.5
    backoff_multiplier: float = 1.5
    backoff_max_interval: float = 10.0
    backoff_randomization: float = 0.5
    backoff_max_elapsed: float = 30.0

    # SSH server
    ssh_host: str = "0.0.0.0"
    ssh_port: int = 2222
    ssh_server_version: str = "OpenSSH_7.4p1 Debian-10+deb9u7"
    deadline_timeout: float = 30.0
    idle_timeout: float = 10.0
    host_key_path: Optional[Path] = None

    # Logging and tracing
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    otel_exporter_otlp_endpoint: Optional[str] = None
    otel_service_name: str = "ssh-honeypot"

    def missing_required(self) -> List[str]:
        required = {
            "INFLUXDB_URL": self.influxdb_url,
            "INFLUXDB_TOKEN": self.influxdb_token,
            "INFLUXDB_ORG": self.influxdb_org,
            "INFLUXDB_BUCKET": self.influxdb_bucket,
        }
        return [name for name, value in required.items() if not value]

    def validate_required(self):
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(f"{', '.join(missing)} is not set")

settings = Settings()

"""
Logging Utilities
Centralized logging configuration and management
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER_NAME = "ssh_honeypot"

class CustomFormatter(logging.Formatter):
    def __init__(self):
        super().__init__()
        self.default_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        self.error_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        )

    def format(self, record):
        if record.levelno >= logging.ERROR:
            return self.error_formatter.format(record)
        else:
            return self.default_formatter.format(record)

def setup_logging(
    name: str = ROOT_LOGGER_NAME,
    log_level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10485760,
    backup_count: int = 5
) -> logging.Logger:
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)

    formatter = CustomFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    # asyncssh logs every connection and auth step at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING)

    return logger

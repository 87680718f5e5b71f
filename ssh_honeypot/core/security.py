"""
Host Key Management
Generation and loading of the SSH server host key
"""

import logging
from pathlib import Path
from typing import Optional, Union

import asyncssh

from ssh_honeypot.core.exceptions import HostKeyError

logger = logging.getLogger(__name__)

DEFAULT_HOST_KEY_PATH = Path("./host_key")
HOST_KEY_BITS = 2048

def generate_host_key(path: Union[str, Path]) -> asyncssh.SSHKey:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        key = asyncssh.generate_private_key("ssh-rsa", key_size=HOST_KEY_BITS)
        key.write_private_key(str(path))
        key.write_public_key(str(path) + ".pub")
    except OSError as e:
        raise HostKeyError(f"Failed to generate host key at {path}: {e}") from e

    path.chmod(0o600)
    logger.info(f"Generated {HOST_KEY_BITS}-bit RSA host key at {path}")
    return key

def load_host_key(path: Union[str, Path]) -> asyncssh.SSHKey:
    try:
        return asyncssh.read_private_key(str(path))
    except (OSError, asyncssh.KeyImportError) as e:
        raise HostKeyError(f"Failed to load host key {path}: {e}") from e

def ensure_host_key(path: Optional[Union[str, Path]] = None) -> asyncssh.SSHKey:
    """Load the configured host key, generating the default one when absent.

    An explicitly configured path is never generated: a missing file there is
    an operator error.
    """
    if path is None:
        path = DEFAULT_HOST_KEY_PATH
        if not path.exists():
            logger.info("Generating host key...")
            generate_host_key(path)

    return load_host_key(path)

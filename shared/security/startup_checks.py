"""
Fail-Closed Startup Security Checks

Blocks application startup when the encryption key is missing or weak.
A single key must decrypt every envelope ever written by a deployment,
so a bad key is a configuration error, never a per-request error.

Usage:
    from shared.security.startup_checks import load_encryption_config

    config = load_encryption_config(settings)
    encryption = FileEncryption(config)
"""

import logging
import os
from pathlib import Path

from shared.config import FileProxySettings
from shared.errors import ConfigurationError
from shared.storage.encryption import KEY_SIZE, EncryptionConfig

logger = logging.getLogger(__name__)

SECRETS_DIR = Path("/run/secrets")


def read_secret(name: str, env_value: str | None = None, secrets_dir: Path = SECRETS_DIR) -> tuple[str | None, str]:
    """
    Look up a secret value.

    Checks in order:
    1. Docker secret at {secrets_dir}/{name}
    2. The value loaded from the environment by the settings object

    Returns:
        Tuple of (value or None, source description)
    """
    secret_path = secrets_dir / name
    if secret_path.exists():
        validate_secret_permissions(secret_path)
        try:
            value = secret_path.read_text().strip()
        except OSError as e:
            raise ConfigurationError(f"Failed to read Docker secret {secret_path}: {e}") from e
        if value:
            return value, f"docker_secret:{secret_path}"

    if env_value:
        return env_value.strip(), f"env:{name.upper()}"
    return None, "unset"


def assert_encryption_key(value: str | None, source: str = "env:ENCRYPTION_KEY") -> bytes:
    """
    Decode and validate a hex encoded 32-byte encryption key.

    Raises:
        ConfigurationError: If the key is missing, not hex, the wrong
            length, or all zero bytes
    """
    if not value:
        raise ConfigurationError(
            "ENCRYPTION_KEY is required. Expected at /run/secrets/encryption_key "
            "or as ENCRYPTION_KEY env var (64 hex characters). "
            "Generate one with: kontecst-proxy genkey"
        )

    try:
        key = bytes.fromhex(value)
    except ValueError as e:
        raise ConfigurationError(f"ENCRYPTION_KEY from {source} is not valid hex") from e

    if len(key) != KEY_SIZE:
        raise ConfigurationError(
            f"ENCRYPTION_KEY must be {KEY_SIZE} bytes ({KEY_SIZE * 2} hex characters), "
            f"got {len(key)} bytes from {source}"
        )

    if key == bytes(KEY_SIZE):
        raise ConfigurationError(f"ENCRYPTION_KEY from {source} is all zero bytes")

    return key


def load_encryption_config(settings: FileProxySettings, secrets_dir: Path = SECRETS_DIR) -> EncryptionConfig:
    """
    Build the encryption configuration for this process.

    Returns:
        EncryptionConfig holding the validated key and algorithm

    Raises:
        ConfigurationError: On any missing or malformed value
    """
    value, source = read_secret("encryption_key", settings.encryption_key, secrets_dir=secrets_dir)
    key = assert_encryption_key(value, source)
    config = EncryptionConfig(key=key, algorithm=settings.encryption_algorithm)
    logger.info("✅ Loaded encryption key from %s (%s)", source, config.algorithm)
    return config


def validate_secret_permissions(path: Path) -> bool:
    """
    Validate that a secret file has appropriate permissions (600 or more restrictive).

    Args:
        path: Path to the secret file

    Returns:
        True if permissions are acceptable, False otherwise
    """
    if not path.exists():
        return False

    mode = os.stat(path).st_mode & 0o777
    if mode > 0o600:
        logger.warning("Secret file %s has overly permissive mode %o (should be 600)", path, mode)
        return False
    return True

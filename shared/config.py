"""
Centralized Configuration
Typed settings for the file proxy, loaded from environment and .env
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = "aes-256-gcm"


class FileProxySettings(BaseSettings):
    """File proxy configuration with Pydantic validation.

    Variable names match the deployment environment of the proxy
    (no prefix), e.g. ``STORAGE_PATH`` and ``ENCRYPTION_KEY``.

    Attributes:
        service_name: Identifier for this service in logs.
        environment: Deployment environment (development/staging/production).
        host: Interface to bind.
        port: Port to listen on.
        log_level: Root log level.
        structured_logging: Emit JSON log lines instead of plain text.
        storage_path: Root directory holding envelopes.
        encryption_key: 64-character hex key (32 bytes).
        encryption_algorithm: Cipher identifier.
        supabase_url: Base URL of the Supabase project.
        supabase_service_key: Service role key used for lookups.
        supabase_timeout_sec: Timeout for Supabase calls.
        cors_origin: Comma separated allowed origins, or "*".
        rate_limit_enabled: Enable rate limiting middleware.
        rate_limit_requests: Requests allowed per window per client.
        rate_limit_window_sec: Rate limit sliding window seconds.
        access_log_enabled: Record /api/files requests in access_logs.
    """

    # Service identity
    service_name: str = "file-proxy"
    environment: Literal["development", "staging", "production"] = "development"
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    structured_logging: bool = True

    # Storage
    storage_path: str = "/data/files"
    encryption_key: str | None = None
    encryption_algorithm: str = DEFAULT_ALGORITHM

    # Supabase
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_timeout_sec: float = 10.0

    # HTTP
    cors_origin: str = "*"
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100
    rate_limit_window_sec: int = 60
    access_log_enabled: bool = True

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def cors_origins(self) -> list[str]:
        """Allowed CORS origins as a list."""
        return [o.strip() for o in self.cors_origin.split(",") if o.strip()]


@lru_cache
def get_settings() -> FileProxySettings:
    """Factory for FileProxySettings singleton.

    Example:
        >>> settings = get_settings()
        >>> print(settings.storage_path)
    """
    return FileProxySettings()

"""
Kontecst File Proxy
===================
Serves encrypted Markdown files from local storage with per-package
visibility checks.

- Core: this file (config, logging, middleware, lifespan, router includes)
- Routes: src/services/*/routes.py
- Storage and encryption: shared/storage
"""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.auth.supabase import AccessBackend, SupabaseAccessClient
from shared.config import FileProxySettings, get_settings
from shared.errors import (
    ConfigurationError,
    FileProxyError,
    IntegrityError,
    NotFoundError,
    StorageIOError,
)
from shared.health import HealthChecker, free_space_check, storage_check
from shared.logging.structured import setup_logging
from shared.security.startup_checks import load_encryption_config
from shared.storage.encryption import EncryptionConfig, FileEncryption
from shared.storage.file_store import EncryptedFileStore
from src.middleware.rate_limiter import RateLimiter, RateLimitMiddleware, RateLimitRule
from src.middleware.request_logging import AccessLogRecorder, RequestLoggingMiddleware
from src.middleware.security_headers import SecurityHeadersMiddleware
from src.services.files import routes as file_routes
from src.services.files.service import FileAccessService
from src.services.health import routes as health_routes

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


def _build_access_backend(settings: FileProxySettings) -> SupabaseAccessClient:
    if not settings.supabase_url:
        raise ConfigurationError("SUPABASE_URL environment variable is required")
    if not settings.supabase_service_key:
        raise ConfigurationError("SUPABASE_SERVICE_KEY environment variable is required")
    return SupabaseAccessClient(
        settings.supabase_url,
        settings.supabase_service_key,
        timeout=settings.supabase_timeout_sec,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: FileProxySettings = app.state.settings
    logger.info("Starting Kontecst File Proxy (storage=%s)", settings.storage_path)

    try:
        app.state.store.root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError(f"Cannot create storage root {settings.storage_path}: {e}") from e

    yield

    logger.info("Shutting down gracefully...")
    if app.state.access_log is not None:
        await app.state.access_log.drain()
    await app.state.access.close()
    logger.info("File proxy shutdown complete")


def _register_exception_handlers(app: FastAPI, service_name: str) -> None:
    @app.exception_handler(FileProxyError)
    async def file_proxy_error_handler(request: Request, exc: FileProxyError) -> Response:
        if isinstance(exc, IntegrityError):
            logger.error("Integrity check failed for %s: %s", request.url.path, exc)
        elif isinstance(exc, StorageIOError):
            logger.error("Storage failure for %s: %s", request.url.path, exc, exc_info=exc)
        elif not isinstance(exc, NotFoundError):
            logger.info("%s for %s: %s", type(exc).__name__, request.url.path, exc)

        if request.method == "HEAD":
            return Response(status_code=exc.status_code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_api_error(service_name).model_dump())


def create_app(
    settings: FileProxySettings | None = None,
    access: AccessBackend | None = None,
    encryption_config: EncryptionConfig | None = None,
) -> FastAPI:
    """
    Build the file proxy application.

    Fails fast with ConfigurationError when the encryption key or the
    Supabase settings are missing, so a misconfigured process never serves.

    Args:
        settings: Settings, loaded from the environment when omitted
        access: Identity/grant backend, Supabase when omitted
        encryption_config: Key material, loaded via startup checks when omitted
    """
    settings = settings or get_settings()
    setup_logging(settings.service_name, settings.log_level, settings.structured_logging)

    encryption = FileEncryption(encryption_config or load_encryption_config(settings))
    store = EncryptedFileStore(settings.storage_path, encryption)
    access = access or _build_access_backend(settings)

    health = HealthChecker(settings.service_name, version=__version__)
    health.register_check("storage", storage_check(settings.storage_path))
    health.register_check("disk", free_space_check(settings.storage_path))

    app = FastAPI(title="Kontecst File Proxy", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.access = access
    app.state.file_service = FileAccessService(store, access)
    app.state.health = health
    app.state.access_log = AccessLogRecorder(access) if settings.access_log_enabled else None

    # Middleware: the last one added runs first
    if settings.rate_limit_enabled:
        limiter = RateLimiter(RateLimitRule(settings.rate_limit_requests, settings.rate_limit_window_sec))
        app.add_middleware(RateLimitMiddleware, limiter=limiter)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Package-Id", "X-Version", "X-Created-At"],
    )
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.environment == "production")
    app.add_middleware(RequestLoggingMiddleware, recorder=app.state.access_log)

    _register_exception_handlers(app, settings.service_name)

    api = APIRouter(prefix="/api")
    api.include_router(file_routes.router)
    app.include_router(api)
    app.include_router(health_routes.router)

    logger.info("🚀 Kontecst File Proxy configured (env=%s)", settings.environment)
    return app

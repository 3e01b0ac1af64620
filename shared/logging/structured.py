import json
import logging
from datetime import UTC, datetime

# Attributes passed via ``extra=`` that are copied into the JSON line
EXTRA_FIELDS = (
    "service",
    "request_id",
    "user_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "client_ip",
    "user_agent",
    "package_id",
    "version",
)


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings for structured logging systems (ELK, Datadog, etc.)
    """

    def __init__(self, service_name: str | None = None):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process_id": record.process,
        }
        if self.service_name:
            log_obj["service"] = self.service_name

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        return json.dumps(log_obj, default=str)


def setup_logging(service_name: str, level: str = "INFO", structured: bool = True) -> None:
    """
    Configure the root logger, JSON lines when structured, plain text otherwise
    """
    if not structured:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            force=True,
        )
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Replace existing handlers (e.g. from uvicorn default config) to avoid duplicates
    root_logger.handlers = [handler]

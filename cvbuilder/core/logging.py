"""
Structured, leveled logging with request ID support.

Features:
- Minimum level from LOG_LEVEL (debug < info < warn < error), default info.
- Every line carries a timestamp and the emitting component name.
- JSON logs in production, pretty logs in development.
- Context-bound request_id for correlation.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

ROOT_LOGGER = "cvbuilder"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def resolve_level(name: Optional[str]) -> int:
    """Map a LOG_LEVEL value to a logging level; unknown values fall back to info."""
    return LEVELS.get((name or "").strip().lower(), logging.INFO)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    """Fetch the current request_id from context (if any)."""
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def get_logger(component: str) -> logging.Logger:
    """Logger tagged with a component name, e.g. get_logger("PaymentAPI")."""
    return logging.getLogger(f"{ROOT_LOGGER}.{component}")


def _format_timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace('+00:00', 'Z')


def _component(record: logging.LogRecord) -> str:
    prefix = ROOT_LOGGER + "."
    if record.name.startswith(prefix):
        return record.name[len(prefix):]
    return record.name


def _level_name(record: logging.LogRecord) -> str:
    return "WARN" if record.levelno == logging.WARNING else record.levelname


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    if latency_ms < 10:
        return "<10ms"
    if latency_ms < 100:
        return "10-100ms"
    if latency_ms < 500:
        return "100-500ms"
    if latency_ms < 1000:
        return "500-1000ms"
    return ">=1000ms"

class RequestIdFilter(logging.Filter):
    """Inject request_id into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _format_timestamp(record),
            "level": _level_name(record),
            "component": _component(record),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        meta = getattr(record, "meta", None)
        if meta:
            payload["meta"] = meta
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        rid_part = f" [rid={rid}]" if rid else ""
        ts = _format_timestamp(record)
        meta = getattr(record, "meta", None)
        meta_part = f" | {json.dumps(meta, default=str)}" if meta else ""
        line = f"[{ts}] [{_level_name(record)}] [{_component(record)}]{rid_part} {record.getMessage()}{meta_part}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(env: str = "development", level: Optional[str] = None) -> None:
    """Configure structured logging based on environment and LOG_LEVEL."""
    if level is None:
        from cvbuilder.core.config import settings
        level = settings.LOG_LEVEL

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(resolve_level(level))

    formatter: logging.Formatter
    if env.lower() == "production":
        formatter = JsonFormatter()
    else:
        formatter = PrettyFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.propagate = True

    # Reduce noise from uvicorn loggers but keep error output
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False

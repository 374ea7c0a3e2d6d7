"""
Structured logging for Signal Relay.

Provides:
- JSON structured logging for production environments
- Human-readable colored logging for development
- Request and webhook-event context propagation
- Redaction of webhook secrets, API tokens and signed URLs
- Timing of relay calls
"""

import json
import logging
import os
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
event_id_var: ContextVar[Optional[str]] = ContextVar("event_id", default=None)

# Patterns for sensitive data that should be redacted
SENSITIVE_PATTERNS: list[re.Pattern] = [
    re.compile(r'api[_-]?(?:key|token)["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'password["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'authorization["\']?\s*[:=]\s*["\']?(?:basic|bearer)?\s*[^\s,}]+', re.IGNORECASE),
    re.compile(r'basic\s+[A-Za-z0-9+/=]{8,}', re.IGNORECASE),
    re.compile(r'sk[-_](?:test|live)[-_][\w]+', re.IGNORECASE),  # Stripe secret keys
    re.compile(r'rk[-_](?:test|live)[-_][\w]+', re.IGNORECASE),  # Stripe restricted keys
    re.compile(r'whsec_[\w]+', re.IGNORECASE),  # Stripe webhook secrets
    re.compile(r'sha256=[0-9a-f]{16,}', re.IGNORECASE),  # Ghost signature hashes
    re.compile(r'X-Amz-Signature=[0-9a-f]+', re.IGNORECASE),  # presigned S3 URLs
    re.compile(r'AKIA[0-9A-Z]{16}'),  # AWS access key ids
]

REDACTED = "[REDACTED]"

# Fields to exclude from extra data in JSON logs
EXCLUDED_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "request_id", "event_id", "message", "taskName",
})


def redact_sensitive_data(message: str) -> str:
    """
    Redact sensitive data from log messages.

    Args:
        message: The log message to sanitize

    Returns:
        Message with sensitive data replaced with [REDACTED]
    """
    if not message:
        return message

    result = message
    for pattern in SENSITIVE_PATTERNS:
        result = pattern.sub(REDACTED, result)
    return result


class RequestContextFilter(logging.Filter):
    """Add request context to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.event_id = event_id_var.get() or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Filter sensitive data from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_sensitive_data(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: v for k, v in record.__dict__.items()
        if k not in EXCLUDED_RECORD_ATTRS and not k.startswith("_")
    }


def _context(record: logging.LogRecord) -> Dict[str, str]:
    return {
        "request_id": getattr(record, "request_id", "-"),
        "event_id": getattr(record, "event_id", "-"),
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line, for log shippers.

    Example:
        {"timestamp": "2024-01-15T10:30:00.123456+00:00", "level": "INFO",
         "logger": "src.relay.ghost_relay", "message": "Newsletter created",
         "service": "signal-relay", "request_id": "abc-123",
         "event_id": "ghost:63f...:2024-01-15T10:29:58.000Z",
         "extra": {"backend": "mautic", "created_id": 90}}

    Errors also carry a ``source`` block pointing at the logging call.
    """

    def __init__(self, service_name: str = "signal-relay"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            **_context(record),
        }

        if record.levelno >= logging.ERROR:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = _extra_fields(record)
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """
    Colored single-line output for a terminal.

        10:30:00.123 INFO     3f2a9c1e src.relay.ghost_relay  Newsletter created  event=ghost:p1
    """

    LEVEL_COLORS: Dict[str, str] = {
        "DEBUG": "36",
        "INFO": "32",
        "WARNING": "33",
        "ERROR": "31",
        "CRITICAL": "35",
    }

    @staticmethod
    def _paint(text: str, code: str) -> str:
        return f"\033[{code}m{text}\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = _context(record)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        level = self._paint(f"{record.levelname:8}", self.LEVEL_COLORS.get(record.levelname, "0"))

        parts = [
            self._paint(clock, "2"),
            level,
            self._paint(context["request_id"][:8].rjust(8), "2"),
            f"{record.name}  {record.getMessage()}",
        ]
        if context["event_id"] != "-":
            parts.append(self._paint(f"event={context['event_id']}", "2"))

        extra = _extra_fields(record)
        if extra:
            parts.append(self._paint(" ".join(f"{k}={v}" for k, v in extra.items()), "2"))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "botocore",
    "boto3",
    "urllib3",
    "stripe",
)


def get_log_level() -> int:
    """LOG_LEVEL as a logging constant, INFO when unset or unknown."""
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def should_use_json_format() -> bool:
    """JSON in production, or anywhere LOG_FORMAT_JSON is truthy."""
    if os.environ.get("LOG_FORMAT_JSON", "").lower() in ("true", "1", "yes"):
        return True
    return os.environ.get("ENVIRONMENT", "development").lower() in ("production", "prod")


def setup_logging(
    service_name: str = "signal-relay",
    log_level: Optional[int] = None,
    force_json: bool = False,
) -> logging.Logger:
    """
    Install the relay's stdout handler on the root logger.

    Call once, before the modules that log are imported. Any handlers
    already on the root logger are replaced so uvicorn reloads do not
    double every line.

    Args:
        service_name: Value of the ``service`` field in JSON output
        log_level: Overrides LOG_LEVEL
        force_json: JSON output regardless of environment
    """
    level = get_log_level() if log_level is None else log_level
    use_json = force_json or should_use_json_format()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JSONFormatter(service_name) if use_json else DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": logging.getLevelName(level),
            "format": "json" if use_json else "development",
        },
    )
    return root_logger


def set_request_context(
    request_id: Optional[str] = None,
    event_id: Optional[str] = None,
) -> None:
    """
    Bind identifiers to every log line emitted from the current task.

    The request ID is set by the logging middleware; the webhook handlers
    add the event ID once they have parsed the payload.
    """
    if request_id is not None:
        request_id_var.set(request_id)
    if event_id is not None:
        event_id_var.set(event_id)


def clear_request_context() -> None:
    request_id_var.set(None)
    event_id_var.set(None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


class Timer:
    """
    Time a block and log the duration.

        with Timer("mautic.create_email", logger):
            email_id = await mautic.create_email(...)

    A block that raises is logged at WARNING with ``success`` False; the
    exception still propagates.
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.DEBUG,
    ):
        self.name = name
        self.logger = logger
        self.log_level = log_level
        self.elapsed_ms: float = 0.0
        self._started: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        if self.logger is None:
            return

        succeeded = exc_type is None
        outcome = "completed" if succeeded else f"failed ({exc_type.__name__})"
        self.logger.log(
            self.log_level if succeeded else max(self.log_level, logging.WARNING),
            f"{self.name} {outcome} in {self.elapsed_ms:.2f}ms",
            extra={
                "operation": self.name,
                "duration_ms": round(self.elapsed_ms, 2),
                "success": succeeded,
            },
        )

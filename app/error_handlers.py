"""
Exception handlers for Signal Relay.

Every failure leaves the service in the same envelope:

    {
        "success": false,
        "error": "Human-readable message",
        "error_code": "MACHINE_READABLE_CODE",
        "details": {}  # optional, whitelisted keys only
    }

Webhook senders retry on anything but 2xx, so the status codes here decide
whether Ghost and Stripe redeliver. Messages are scrubbed before they leave
the process because relay errors are frequently built from upstream
response bodies or configuration values.
"""

import logging
import os
import re
import uuid
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.errors import ErrorCode, SignalRelayError
from src.utils.logging import redact_sensitive_data

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "An error occurred while processing your request"
MAX_MESSAGE_LENGTH = 500
MAX_LISTED_ERRORS = 10

# A hit on any of these replaces the whole message
UNSAFE_MESSAGE = re.compile(
    r"password|credential|bearer|private[_ ]key|\$\{?[A-Z_]{3,}\}?",
    re.IGNORECASE,
)

# Connection strings, with or without userinfo
CONNECTION_URL = re.compile(
    r"\b(?:rediss?|postgres(?:ql)?|amqp|mongodb)://\S+|\b[a-z][a-z0-9+.-]*://[^\s/@]+@\S+",
    re.IGNORECASE,
)
FILE_PATH = re.compile(r"[/\\][\w./\\-]+\.\w+")
IP_ADDRESS = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")

SAFE_DETAIL_KEYS = frozenset({
    "field",
    "service",
    "errors",
    "error_reference",
    "sentry_event_id",
})

HTTP_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.AUTHENTICATION_REQUIRED,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    405: ErrorCode.VALIDATION_ERROR,
    422: ErrorCode.VALIDATION_ERROR,
    500: ErrorCode.INTERNAL_ERROR,
    502: ErrorCode.RELAY_FAILURE,
    503: ErrorCode.RELAY_UNAVAILABLE,
}


def is_production() -> bool:
    return os.environ.get("ENVIRONMENT", "development").lower() == "production"


def sanitize_error_message(message: str) -> str:
    """
    Scrub a message before it is returned to a client.

    Secrets known to the log redactor are masked, connection strings, file
    paths and IP addresses are replaced with placeholders, and anything that
    looks like a credential or an unexpanded variable yields a generic
    message instead.
    """
    if not message:
        return message

    if UNSAFE_MESSAGE.search(message):
        return GENERIC_MESSAGE

    message = redact_sensitive_data(message)
    message = CONNECTION_URL.sub("[url]", message)
    message = FILE_PATH.sub("[path]", message)
    message = IP_ADDRESS.sub("[ip]", message)

    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH] + "..."
    return message


def sanitize_details(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep whitelisted keys with primitive values; cap lists."""
    if not details:
        return {}

    sanitized: Dict[str, Any] = {}
    for key, value in details.items():
        if key not in SAFE_DETAIL_KEYS:
            continue
        if isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        elif isinstance(value, (int, float, bool)):
            sanitized[key] = value
        elif isinstance(value, list):
            sanitized[key] = [
                item for item in value
                if isinstance(item, (str, int, float, bool, dict))
            ][:MAX_LISTED_ERRORS]
    return sanitized


def _describe_validation_error(field: str, error: Dict[str, Any]) -> str:
    error_type = error.get("type", "")
    if error_type == "missing":
        return f"Field '{field}' is required"
    if error_type == "string_type":
        return f"Field '{field}' must be a string"
    if error_type == "string_too_short":
        return f"Field '{field}' must not be empty"
    if error_type == "json_invalid":
        return "Invalid JSON"

    msg = error.get("msg", "Invalid value")
    if error_type == "value_error":
        # pydantic prefixes validator messages with "Value error, "
        msg = msg.split(", ", 1)[-1]
    return sanitize_error_message(msg)


def format_pydantic_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Flatten pydantic errors into ``{"field", "message"}`` pairs.

    The leading "body" location is dropped so field names read the way the
    client sent them; errors about the body as a whole are reported against
    "request".
    """
    formatted = []
    for error in errors[:MAX_LISTED_ERRORS]:
        parts = [str(p) for p in error.get("loc", ()) if p != "body"]
        field = ".".join(parts) or "request"
        formatted.append({"field": field, "message": _describe_validation_error(field, error)})
    return formatted


def create_error_response(
    status_code: int,
    error: str,
    error_code: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the error envelope, scrubbing the message and details."""
    content: Dict[str, Any] = {
        "success": False,
        "error": sanitize_error_message(error),
        "error_code": error_code,
    }
    safe_details = sanitize_details(details)
    if safe_details:
        content["details"] = safe_details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def report_to_sentry(
    exc: Exception,
    request: Optional[Request] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture ``exc`` with request and relay tags.

    Returns:
        Sentry event ID, or None when Sentry is not initialised.
    """
    if not sentry_sdk.get_client().is_active():
        return None

    with sentry_sdk.push_scope() as scope:
        if request is not None:
            scope.set_context("request", {"method": request.method, "path": request.url.path})
            request_id = getattr(request.state, "request_id", None)
            if request_id:
                scope.set_tag("request_id", request_id)

        if isinstance(exc, SignalRelayError):
            scope.set_tag("error_code", exc.error_code.value)
            if exc.details.get("service"):
                scope.set_tag("relay_service", exc.details["service"])

        if extra_context:
            scope.set_context("extra", extra_context)

        return sentry_sdk.capture_exception(exc)


async def signal_relay_exception_handler(
    request: Request,
    exc: SignalRelayError,
) -> JSONResponse:
    """Answer with the exception's status and public message; log the rest."""
    log_message = f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}"
    if exc.internal_message:
        log_message += f" | {exc.internal_message}"

    if exc.status_code >= 500:
        logger.error(log_message, extra={"error_code": exc.error_code.value})
        report_to_sentry(exc, request)
    else:
        logger.warning(log_message, extra={"error_code": exc.error_code.value})

    return create_error_response(
        status_code=exc.status_code,
        error=exc.message,
        error_code=exc.error_code.value,
        details=exc.details,
    )


def _validation_response(request: Request, raw_errors: List[Dict[str, Any]]) -> JSONResponse:
    errors = format_pydantic_errors(raw_errors)
    logger.warning(
        f"Rejected {request.method} {request.url.path}: {len(errors)} validation error(s)"
    )

    if len(errors) == 1:
        message = errors[0]["message"]
    else:
        message = f"Validation failed with {len(errors)} error(s)"

    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        error=message,
        error_code=ErrorCode.VALIDATION_ERROR.value,
        details={"errors": errors},
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Invalid request bodies are a 400, not FastAPI's default 422."""
    return _validation_response(request, exc.errors())


async def pydantic_validation_handler(
    request: Request,
    exc: PydanticValidationError,
) -> JSONResponse:
    return _validation_response(request, exc.errors())


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Routing errors and explicit HTTPExceptions share the envelope."""
    error_code = HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code} on {request.url.path}: {detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP {exc.status_code} on {request.url.path}: {detail}")

    return create_error_response(
        status_code=exc.status_code,
        error=detail,
        error_code=error_code.value,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Last resort for anything the relay did not anticipate.

    The response carries a short reference that also appears in the log
    line, and the Sentry event id when Sentry is active. Outside production
    the exception type is named to speed up local debugging.
    """
    error_reference = uuid.uuid4().hex[:8]

    logger.error(
        f"Unhandled {type(exc).__name__} [ref:{error_reference}] on "
        f"{request.method} {request.url.path}",
        exc_info=exc,
    )

    details: Dict[str, Any] = {"error_reference": error_reference}
    event_id = report_to_sentry(exc, request, extra_context={"error_reference": error_reference})
    if event_id:
        details["sentry_event_id"] = event_id

    if is_production():
        message = "An unexpected error occurred. Please try again later."
    else:
        message = f"Internal server error: {type(exc).__name__}"

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error=message,
        error_code=ErrorCode.INTERNAL_ERROR.value,
        details=details,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers, most specific first."""
    app.add_exception_handler(SignalRelayError, signal_relay_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

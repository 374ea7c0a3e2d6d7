"""
Request logging middleware for Signal Relay.

Every request gets an ID (reused from the proxy when one is forwarded) that
is bound to the logging context and echoed back in X-Request-ID. Webhook
requests are tagged with their provider and whether a signature header
arrived, which is usually the first thing to check when a delivery is
rejected.
"""

import logging
import time
import uuid
from typing import Callable, Dict, Optional, Set

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.utils.logging import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

# Inbound ID headers, most specific first
REQUEST_ID_HEADERS = ("X-Request-ID", "X-Amzn-Trace-Id")

WEBHOOK_SIGNATURE_HEADERS: Dict[str, str] = {
    "/webhooks/ghost": "X-Ghost-Signature",
    "/webhooks/stripe": "Stripe-Signature",
}


def client_address(request: Request) -> str:
    """Original client address, honouring the proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers["X-Real-IP"].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs one line per request with status and duration.

    Documentation routes are never logged and health checks only when they
    fail, so load balancer probes do not drown out webhook traffic.
    """

    SILENT_PATHS: Set[str] = frozenset({
        "/",
        "/docs",
        "/openapi.json",
        "/redoc",
        "/favicon.ico",
    })

    ERROR_ONLY_PATHS: Set[str] = frozenset({"/health"})

    def __init__(
        self,
        app,
        silent_paths: Optional[Set[str]] = None,
        error_only_paths: Optional[Set[str]] = None,
    ):
        super().__init__(app)
        self.silent_paths = silent_paths or self.SILENT_PATHS
        self.error_only_paths = error_only_paths or self.ERROR_ONLY_PATHS

    @staticmethod
    def _resolve_request_id(request: Request) -> str:
        for header in REQUEST_ID_HEADERS:
            value = request.headers.get(header)
            if value:
                return value
        return str(uuid.uuid4())

    @staticmethod
    def _webhook_fields(request: Request) -> Dict[str, object]:
        header = WEBHOOK_SIGNATURE_HEADERS.get(request.url.path)
        if header is None:
            return {}
        return {
            "webhook_provider": request.url.path.rsplit("/", 1)[-1],
            "signature_present": bool(request.headers.get(header)),
        }

    def _should_log(self, path: str, status_code: int) -> bool:
        if path in self.silent_paths:
            return False
        return status_code >= 400 or path not in self.error_only_paths

    @staticmethod
    def _get_log_level(status_code: int) -> int:
        if status_code >= 500:
            return logging.ERROR
        return logging.WARNING if status_code >= 400 else logging.INFO

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = self._resolve_request_id(request)
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        line = f"{request.method} {request.url.path}"
        fields = {
            "http_method": request.method,
            "http_path": request.url.path,
            "client_ip": client_address(request),
            **self._webhook_fields(request),
        }
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = (time.perf_counter() - started) * 1000
            logger.error(
                f"{line} FAILED ({elapsed:.2f}ms): {type(exc).__name__}",
                extra={
                    "event": "http_request_error",
                    "duration_ms": round(elapsed, 2),
                    "error_type": type(exc).__name__,
                    **fields,
                },
                exc_info=True,
            )
            raise
        else:
            elapsed = (time.perf_counter() - started) * 1000
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{elapsed:.2f}ms"

            status = response.status_code
            if self._should_log(request.url.path, status):
                logger.log(
                    self._get_log_level(status),
                    f"{line} {status} ({elapsed:.2f}ms)",
                    extra={
                        "event": "http_request",
                        "http_status": status,
                        "duration_ms": round(elapsed, 2),
                        **fields,
                    },
                )
            return response
        finally:
            clear_request_context()


def get_request_id_from_request(request: Request) -> Optional[str]:
    """Request ID assigned by RequestLoggingMiddleware, if any."""
    return getattr(request.state, "request_id", None)

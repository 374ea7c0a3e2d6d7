"""
Exception hierarchy for Signal Relay.

Every failure a webhook handler can surface maps to one class here, and
each class carries the HTTP status the handler answers with.

Exception Hierarchy:
    SignalRelayError (base, 500)
    ├── AuthenticationFailure (401)
    ├── MalformedPayload (400)
    │   └── ProviderSignatureRejected (400)
    ├── Misconfiguration (500)
    └── RelayError (500)
        ├── RelayFailure        downstream answered non-2xx
        └── RelayUnavailable    downstream could not be reached

"Ignored" events are results, not errors, and never appear here.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Machine-readable identifiers for error responses."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    # 400
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"

    # 401
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    SIGNATURE_MISMATCH = "SIGNATURE_MISMATCH"

    # 404
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    # 500
    MISCONFIGURATION = "MISCONFIGURATION"
    RELAY_FAILURE = "RELAY_FAILURE"
    RELAY_UNAVAILABLE = "RELAY_UNAVAILABLE"


class SignalRelayError(Exception):
    """
    Base exception for all Signal Relay errors.

    Attributes:
        message: Human-readable error message (safe for external display).
        error_code: Machine-readable error code.
        status_code: HTTP status code to return.
        details: Additional context about the error (optional).
        internal_message: Detailed message for logging (not exposed to clients).
    """

    status_code: int = 500
    default_error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.internal_message = internal_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for API response."""
        response = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
        }
        if self.details:
            response["details"] = self.details
        return response

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"status_code={self.status_code})"
        )


class AuthenticationFailure(SignalRelayError):
    """Inbound webhook signature is missing or does not match."""

    status_code = 401
    default_error_code = ErrorCode.SIGNATURE_MISMATCH
    default_message = "Unauthorized"


class MalformedPayload(SignalRelayError):
    """Inbound body is not valid JSON or does not match the event schema."""

    status_code = 400
    default_error_code = ErrorCode.MALFORMED_PAYLOAD
    default_message = "Invalid JSON"


class ProviderSignatureRejected(MalformedPayload):
    """
    Payment provider signature check failed.

    Stripe expects a 400 for signature failures, so this stays on the
    MalformedPayload branch rather than AuthenticationFailure.
    """

    default_error_code = ErrorCode.INVALID_SIGNATURE
    default_message = "Invalid signature"


class Misconfiguration(SignalRelayError):
    """A required secret, URL or id is missing from the environment."""

    status_code = 500
    default_error_code = ErrorCode.MISCONFIGURATION
    default_message = "Server misconfiguration"

    def __init__(
        self,
        message: Optional[str] = None,
        missing: Optional[List[str]] = None,
        internal_message: Optional[str] = None,
    ):
        self.missing = missing or []
        super().__init__(
            message=message,
            internal_message=internal_message
            or (f"Missing configuration: {', '.join(self.missing)}" if self.missing else None),
        )


class RelayError(SignalRelayError):
    """Base class for downstream service failures."""

    status_code = 500
    default_error_code = ErrorCode.RELAY_FAILURE
    default_message = "Downstream service error"

    def __init__(
        self,
        service: str,
        message: Optional[str] = None,
        internal_message: Optional[str] = None,
    ):
        self.service = service
        super().__init__(
            message=message,
            details={"service": service},
            internal_message=internal_message,
        )


class RelayFailure(RelayError):
    """The downstream service answered with a non-2xx status."""

    default_error_code = ErrorCode.RELAY_FAILURE

    def __init__(
        self,
        service: str,
        status_code: int,
        body: str = "",
        message: Optional[str] = None,
    ):
        self.upstream_status = status_code
        self.body = body
        super().__init__(
            service=service,
            message=message or f"{service} returned {status_code}",
            internal_message=f"{service} HTTP {status_code}: {body[:500]}",
        )


class RelayUnavailable(RelayError):
    """The downstream service could not be reached."""

    default_error_code = ErrorCode.RELAY_UNAVAILABLE

    def __init__(
        self,
        service: str,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
    ):
        self.cause = cause
        super().__init__(
            service=service,
            message=message or f"{service} is unavailable",
            internal_message=f"{service} request failed: {cause!r}" if cause else None,
        )

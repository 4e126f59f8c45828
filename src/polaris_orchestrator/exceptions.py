"""Failure taxonomy for the report orchestrator."""

from enum import Enum
from typing import Any, Dict, Optional


class FailureKind(str, Enum):
    """Classification of an upstream failure."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    CLIENT = "client"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"


class OrchestratorError(Exception):
    """Base exception for the report orchestrator."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.status_code = status_code
        self.details = details or {}


class ConfigurationError(OrchestratorError):
    """Unrecoverable misconfiguration, e.g. no providers configured at all."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", status_code=500, **kwargs)


class ValidationFailure(OrchestratorError):
    """Malformed or missing result fields. Only raised and handled inside report repair."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, error_code="VALIDATION_ERROR", status_code=422, **kwargs)
        if field:
            self.details["field"] = field


class ProviderFailure(OrchestratorError):
    """A failed call to an upstream provider or job endpoint."""

    kind: FailureKind = FailureKind.SERVER
    retryable: bool = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            error_code=self.kind.value.upper(),
            status_code=status_code or 503,
            **kwargs,
        )
        self.provider = provider
        self.http_status = status_code
        if provider:
            self.details["provider"] = provider


class AuthenticationFailure(ProviderFailure):
    """Bad or missing credentials (401/403). Surfaced immediately."""

    kind = FailureKind.AUTHENTICATION
    retryable = False


class RateLimitFailure(ProviderFailure):
    """HTTP 429 from the provider."""

    kind = FailureKind.RATE_LIMIT
    retryable = True

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None, **kwargs):
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerFailure(ProviderFailure):
    """5xx from the provider."""

    kind = FailureKind.SERVER
    retryable = True


class ClientFailure(ProviderFailure):
    """Any other 4xx. Escalate rather than retry."""

    kind = FailureKind.CLIENT
    retryable = False


class TruncatedOutputFailure(ClientFailure):
    """The provider stopped at its output-token limit."""


class TimeoutFailure(ProviderFailure):
    """The local deadline expired before the call settled."""

    kind = FailureKind.TIMEOUT
    retryable = False


class TransportFailure(ProviderFailure):
    """Connection-level failure (refused, reset, DNS)."""

    kind = FailureKind.TRANSPORT
    retryable = True


class PollTransportError(TransportFailure):
    """The job status endpoint could not be reached. The job's real state is unknown."""


def is_outright_failure(error: BaseException) -> bool:
    """True when the provider itself is unusable for this request, not merely degraded."""
    return isinstance(error, (AuthenticationFailure, ClientFailure)) and not isinstance(
        error, TruncatedOutputFailure
    )


__all__ = [
    "FailureKind",
    "OrchestratorError",
    "ConfigurationError",
    "ValidationFailure",
    "ProviderFailure",
    "AuthenticationFailure",
    "RateLimitFailure",
    "ServerFailure",
    "ClientFailure",
    "TruncatedOutputFailure",
    "TimeoutFailure",
    "TransportFailure",
    "PollTransportError",
    "is_outright_failure",
]

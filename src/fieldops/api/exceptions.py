#!/usr/bin/env python3
"""Exception Hierarchy for the field operations provisioning stack.

This module provides a structured exception hierarchy for errors raised
while talking to the provisioning backend and the session store, and the
base class that equipment rule violations build on.

Design Principles:
    - All exceptions inherit from FieldOpsError
    - Exceptions preserve context (original error, timestamp, details)
    - Exceptions are categorized by recoverability

Exception Hierarchy:
    FieldOpsError (base)
    ├── ConfigurationError (unrecoverable - fix environment)
    ├── APIError (may be recoverable - retry)
    │   ├── RateLimitError
    │   ├── NotFoundError
    │   ├── ValidationError
    │   └── ServerError
    ├── NetworkError (recoverable - retry)
    │   ├── ConnectionError
    │   └── TimeoutError
    ├── ProvisioningError (backend answered but refused the request)
    │   └── SignalDispatchError
    ├── SessionStoreError
    └── CircuitOpenError
"""
from datetime import datetime
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class FieldOpsError(Exception):
    """Base exception for all field operations errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SLOT_OCCUPIED")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether the operator can fix this and try again
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.utcnow()
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Unrecoverable)
# ============================================

class ConfigurationError(FieldOpsError):
    """Raised when a required setting is missing or malformed."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


# ============================================
# API Errors
# ============================================

class APIError(FieldOpsError):
    """Base class for HTTP-level provisioning errors.

    Attributes:
        status_code: HTTP status code
        endpoint: Endpoint that was called
        response_body: Raw response body (truncated to 500 chars in details)
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        method: str = "POST",
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        if method:
            details["method"] = method
        if response_body:
            details["response_body"] = response_body[:500]

        kwargs.setdefault("recoverable", status_code in (429, 500, 502, 503, 504))
        kwargs.setdefault("code", f"API_ERROR_{status_code}")

        super().__init__(message, details=details, **kwargs)
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.method = method


class RateLimitError(APIError):
    """Raised when the backend throttles us (HTTP 429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 429)
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            message,
            code="RATE_LIMIT_EXCEEDED",
            details=details,
            **kwargs,
        )
        self.retry_after = retry_after or 30


class NotFoundError(APIError):
    """Raised when the endpoint or work order is unknown (HTTP 404)."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        **kwargs,
    ):
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{resource_type} '{resource_id}' not found"

        kwargs.setdefault("status_code", 404)
        details = kwargs.pop("details", {})
        details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        super().__init__(
            message,
            code="NOT_FOUND",
            details=details,
            recoverable=False,
            **kwargs,
        )


class ValidationError(APIError):
    """Raised when the backend rejects the request body (HTTP 400/422)."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 400)
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field

        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


class ServerError(APIError):
    """Raised when the backend returns a 5xx error."""

    def __init__(self, message: str = "Server error", **kwargs):
        kwargs.setdefault("status_code", 500)
        super().__init__(
            message,
            code="SERVER_ERROR",
            recoverable=True,
            **kwargs,
        )


# ============================================
# Network Errors (Usually Recoverable)
# ============================================

class NetworkError(FieldOpsError):
    """Base class for transport failures. Retryable."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionError(NetworkError):
    """Raised when the provisioning host cannot be reached."""

    def __init__(
        self,
        message: str = "Failed to connect to provisioning backend",
        host: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if host:
            details["host"] = host
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details=details,
            **kwargs,
        )


class TimeoutError(NetworkError):
    """Raised when a provisioning request times out."""

    def __init__(
        self,
        message: str = "Request timed out",
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(
            message,
            code="TIMEOUT_ERROR",
            details=details,
            **kwargs,
        )


# ============================================
# Provisioning Errors
# ============================================

class ProvisioningError(FieldOpsError):
    """Raised when the backend answers 200 but reports a failed operation.

    Attributes:
        operation: Name of the backend operation (e.g. "composition_update")
        result_code: Result code returned by the backend, if any
    """

    def __init__(
        self,
        message: str,
        operation: str,
        result_code: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["operation"] = operation
        if result_code:
            details["result_code"] = result_code
        kwargs.setdefault("code", "PROVISIONING_FAILED")
        super().__init__(message, details=details, **kwargs)
        self.operation = operation
        self.result_code = result_code


class SignalDispatchError(ProvisioningError):
    """Raised when the set-top/modem signal check does not succeed.

    Work completion must treat this as blocking.
    """

    def __init__(
        self,
        message: str = "Signal dispatch failed",
        result_code: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            operation="signal_dispatch",
            result_code=result_code,
            code="SIGNAL_DISPATCH_FAILED",
            recoverable=True,
            **kwargs,
        )


# ============================================
# Persistence Errors
# ============================================

class SessionStoreError(FieldOpsError):
    """Raised when the equipment session cannot be read or written."""

    def __init__(self, message: str, work_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if work_id:
            details["work_id"] = work_id
        kwargs.setdefault("recoverable", True)
        super().__init__(
            message,
            code="SESSION_STORE_ERROR",
            details=details,
            **kwargs,
        )


# ============================================
# Resilience Errors
# ============================================

class CircuitOpenError(FieldOpsError):
    """Raised when the circuit breaker is rejecting requests.

    Attributes:
        reset_at: When the circuit breaker will attempt to close
    """

    def __init__(
        self,
        message: str = "Circuit breaker is open, requests rejected",
        reset_at: Optional[datetime] = None,
        failure_count: int = 0,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if reset_at:
            details["reset_at"] = reset_at.isoformat()
        details["failure_count"] = failure_count

        super().__init__(
            message,
            code="CIRCUIT_OPEN",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.reset_at = reset_at
        self.failure_count = failure_count


__all__ = [
    "FieldOpsError",
    "ConfigurationError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "ProvisioningError",
    "SignalDispatchError",
    "SessionStoreError",
    "CircuitOpenError",
]

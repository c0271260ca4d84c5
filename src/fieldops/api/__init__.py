"""Provisioning backend access.

Classes:
    ProvisioningClient: Async HTTP client with retry and circuit breaker

Exceptions:
    FieldOpsError: Base exception for all field operations errors
    ConfigurationError: Missing or invalid configuration
    APIError: HTTP-level failures
    NetworkError: Transport failures
    ProvisioningError: Backend-reported operation failure
    SignalDispatchError: Signal check failure (blocks completion)

Resilience:
    CircuitBreaker: Fail fast while the backend is down
    retry_async: Retry with exponential backoff
"""
from .client import ProvisioningClient
from .exceptions import (
    APIError,
    CircuitOpenError,
    ConfigurationError,
    ConnectionError,
    FieldOpsError,
    NetworkError,
    NotFoundError,
    ProvisioningError,
    RateLimitError,
    ServerError,
    SessionStoreError,
    SignalDispatchError,
    TimeoutError,
    ValidationError,
)
from .resilience import CircuitBreaker, CircuitState, retry_async

__all__ = [
    "ProvisioningClient",
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
    "CircuitBreaker",
    "CircuitState",
    "retry_async",
]

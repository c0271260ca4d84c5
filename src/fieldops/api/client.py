#!/usr/bin/env python3
"""Async HTTP client for the provisioning backend.

The backend exposes POST-only JSON endpoints (inventory fetch, composition
update, signal check). This client knows HOW to talk to it: session
lifecycle, typed errors, retry with backoff, and a circuit breaker. It has
no knowledge of equipment; that belongs in the adapters.

Usage:
    async with ProvisioningClient(base_url="https://ops.example.net") as client:
        rows = await client.post("/customer/work/getCustProdInfo", {"WRK_ID": "W1"})
"""
import asyncio
import logging
import os
from typing import Any, Optional

import aiohttp

from .exceptions import (
    APIError,
    ConfigurationError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
    ValidationError,
)
from .resilience import CircuitBreaker, retry_async

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30


class ProvisioningClient:
    """Async client for the provisioning backend.

    Use as an async context manager so the aiohttp session is closed:

        async with ProvisioningClient() as client:
            data = await client.post("/customer/work/eqtCmpsInfoChg", body, retry=False)

    Attributes:
        base_url: Backend base URL
        api_token: Optional bearer token
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        max_attempts: int = 3,
        enable_circuit_breaker: bool = True,
        circuit_failure_threshold: int = 5,
        circuit_timeout: float = 30.0,
    ):
        """Initialize the client.

        Args:
            base_url: Backend URL. Falls back to PROVISIONING_BASE_URL.
            api_token: Bearer token. Falls back to PROVISIONING_API_TOKEN.
            max_attempts: Attempts per request for transient failures
            enable_circuit_breaker: Wrap requests in a CircuitBreaker
            circuit_failure_threshold: Failures before the circuit opens
            circuit_timeout: Seconds before an open circuit is probed

        Raises:
            ConfigurationError: If no base URL is available.
        """
        self.base_url = (base_url or os.getenv("PROVISIONING_BASE_URL", "")).rstrip("/")
        if not self.base_url:
            raise ConfigurationError(
                "Base URL is required. Provide base_url or set PROVISIONING_BASE_URL.",
                missing_keys=["PROVISIONING_BASE_URL"],
            )

        self.api_token = api_token or os.getenv("PROVISIONING_API_TOKEN") or None
        self.max_attempts = max_attempts
        self._session: Optional[aiohttp.ClientSession] = None

        self._circuit_breaker: Optional[CircuitBreaker] = None
        if enable_circuit_breaker:
            self._circuit_breaker = CircuitBreaker(
                failure_threshold=circuit_failure_threshold,
                timeout=circuit_timeout,
                name="provisioning_api",
            )

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "ProvisioningClient":
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10, limit_per_host=10),
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS, connect=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[dict] = None,
    ) -> Any:
        """Make a single request without retry.

        Returns:
            Parsed JSON body (dict or list)

        Raises:
            APIError: If response status is not 2xx
            ConnectionError: If the host is unreachable
            TimeoutError: If the request times out
            RuntimeError: If used outside the context manager
        """
        if not self._session:
            raise RuntimeError(
                "ProvisioningClient must be used as async context manager: "
                "async with ProvisioningClient(...) as client:"
            )

        url = f"{self.base_url}{endpoint}"

        try:
            async with self._session.request(
                method=method,
                url=url,
                headers=self._headers(),
                json=json_body,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=error_text,
                        retry_after=response.headers.get("Retry-After"),
                    )
                return await response.json(content_type=None)

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=REQUEST_TIMEOUT_SECONDS,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {endpoint}: {e}",
                cause=e,
            )

    def _create_api_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> APIError:
        """Map an HTTP status to the matching APIError subclass."""
        if status == 404:
            return NotFoundError(
                resource_type="Endpoint",
                resource_id=endpoint,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status == 429:
            seconds = int(retry_after) if retry_after and retry_after.isdigit() else None
            return RateLimitError(
                f"Rate limit exceeded for {endpoint}",
                retry_after=seconds,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status in (400, 422):
            return ValidationError(
                f"Validation failed for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        return APIError(
            f"{method} {endpoint} failed",
            status_code=status,
            endpoint=endpoint,
            method=method,
            response_body=response_body,
        )

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[dict] = None,
        max_attempts: Optional[int] = None,
    ) -> Any:
        """Request with backoff on transient errors, behind the circuit breaker."""
        attempts = max_attempts or self.max_attempts
        if self._circuit_breaker:
            return await self._circuit_breaker.call(
                retry_async,
                self._request,
                method,
                endpoint,
                json_body,
                max_attempts=attempts,
            )
        return await retry_async(
            self._request, method, endpoint, json_body, max_attempts=attempts
        )

    @property
    def circuit_status(self) -> Optional[dict[str, Any]]:
        """Circuit breaker status for monitoring."""
        if self._circuit_breaker:
            return self._circuit_breaker.get_status()
        return None

    # ----------------------------------------
    # High-Level Request Methods
    # ----------------------------------------

    async def post(self, endpoint: str, json_body: dict, retry: bool = True) -> Any:
        """POST a JSON body and return the parsed response.

        Args:
            endpoint: Endpoint path (e.g. "/customer/work/getCustProdInfo")
            json_body: Request body
            retry: Retry transient failures. Pass False for calls the
                backend acts on, where a lost response may hide a success.

        Returns:
            Parsed JSON response (dict or list)
        """
        logger.debug(f"POST {endpoint}")
        return await self._request_with_retry(
            "POST",
            endpoint,
            json_body=json_body,
            max_attempts=None if retry else 1,
        )

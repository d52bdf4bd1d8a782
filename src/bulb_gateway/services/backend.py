"""HTTP plumbing shared by the IPFS and OrbitDB relays.

This module provides the BackendClient base class used by both relays. It
includes:

- A lazily created httpx client with an explicit per-call deadline
- URL construction that fails fast on a missing or malformed base URL
- Translation of transport failures into the relay error taxonomy
- Metrics collection for monitoring

Every call is a single attempt; nothing here retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import httpx

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_MULTIPLE_CHOICES = 300


class RelayError(RuntimeError):
    """Base exception raised for relay failures.

    Attributes:
        backend: Name of the backend the failing call was addressed to
    """

    def __init__(self, backend: str, message: str) -> None:
        super().__init__(f"{backend}: {message}")
        self.backend = backend


class RelayConfigError(RelayError):
    """Raised when the backend URL cannot be constructed from configuration."""


class StagedFileError(RelayError):
    """Raised when the staged file cannot be opened or read."""


class BackendUnreachableError(RelayError):
    """Raised when the backend cannot be contacted."""


class BackendTimeoutError(RelayError):
    """Raised when the backend does not answer within the call deadline."""


class BackendProtocolError(RelayError):
    """Raised when the backend answers with a body we cannot decode."""


class UnexpectedStatusError(RelayError):
    """Raised when the backend answers with an unexpected HTTP status."""

    def __init__(self, backend: str, status_code: int, detail: str = "") -> None:
        message = f"unexpected status {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(backend, message)
        self.status_code = status_code


class MissingHashError(RelayError):
    """Raised when a successful backend response carries no hash."""


@dataclass
class RelayMetrics:
    """Metrics collection for backend calls."""

    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_response_time: float = 0.0
    min_response_time: float = float("inf")
    max_response_time: float = 0.0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record_request(
        self, response_time: float, success: bool, error_type: str | None = None
    ) -> None:
        """Record a request metric."""
        self.request_count += 1
        self.total_response_time += response_time
        self.min_response_time = min(self.min_response_time, response_time)
        self.max_response_time = max(self.max_response_time, response_time)

        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def get_average_response_time(self) -> float:
        """Get average response time."""
        return self.total_response_time / self.request_count if self.request_count > 0 else 0.0

    def get_success_rate(self) -> float:
        """Get success rate as a percentage."""
        return (self.success_count / self.request_count * 100) if self.request_count > 0 else 0.0


@dataclass(frozen=True)
class BackendConfig:
    """Immutable configuration for one backend."""

    name: str
    base_url: str
    timeout_seconds: float


class BackendClient:
    """HTTP client wrapper for one backend service."""

    def __init__(
        self,
        config: BackendConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._metrics = RelayMetrics()

    @property
    def name(self) -> str:
        return self.config.name

    def url_for(self, path: str) -> str:
        """Join the configured base URL and an API path.

        Raises:
            RelayConfigError: If the base URL is empty or not an http(s) URL
        """
        base = self.config.base_url.strip()
        if not base:
            raise RelayConfigError(self.name, "base URL is not configured")
        try:
            parsed = httpx.URL(base)
        except httpx.InvalidURL as exc:
            raise RelayConfigError(self.name, f"invalid base URL {base!r}: {exc}") from exc
        if parsed.scheme not in {"http", "https"} or not parsed.host:
            raise RelayConfigError(self.name, f"invalid base URL {base!r}")

        return f"{base.rstrip('/')}/{path.lstrip('/')}"

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        """POST to the backend once and return the raw response.

        Raises:
            RelayConfigError: If the URL cannot be built
            BackendTimeoutError: If the deadline expires
            BackendUnreachableError: On any other transport failure
            StagedFileError: If a local file being streamed cannot be read
        """
        url = self.url_for(path)
        client = await self._ensure_client()

        start_time = time.monotonic()
        success = False
        error_type: str | None = None

        try:
            response = await client.post(url, **kwargs)
            success = response.status_code < HTTP_MULTIPLE_CHOICES
            if not success:
                error_type = f"http_{response.status_code}"
        except httpx.TimeoutException as exc:
            error_type = "timeout"
            raise BackendTimeoutError(
                self.name,
                f"no response from {url} within {self.config.timeout_seconds}s",
            ) from exc
        except httpx.HTTPError as exc:
            error_type = "network_error"
            raise BackendUnreachableError(self.name, f"failed to contact {url}: {exc}") from exc
        except OSError as exc:
            error_type = "local_io_error"
            raise StagedFileError(self.name, f"failed to read upload: {exc}") from exc
        finally:
            self._metrics.record_request(time.monotonic() - start_time, success, error_type)

        return response

    def get_metrics(self) -> dict[str, Any]:
        """Get backend call metrics.

        Returns:
            Dictionary containing performance and usage metrics
        """
        return {
            "request_count": self._metrics.request_count,
            "success_count": self._metrics.success_count,
            "error_count": self._metrics.error_count,
            "success_rate": self._metrics.get_success_rate(),
            "average_response_time": self._metrics.get_average_response_time(),
            "min_response_time": (
                self._metrics.min_response_time
                if self._metrics.min_response_time != float("inf")
                else 0.0
            ),
            "max_response_time": self._metrics.max_response_time,
            "error_counts_by_type": dict(self._metrics.error_counts_by_type),
        }

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

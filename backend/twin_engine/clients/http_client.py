"""
Resilient HTTP client shared by all outbound integrations.

Provides a reusable client for the plugins, the template repository
and the registries.
"""

import asyncio
import logging
import random
from typing import Any

import httpx

from twin_engine.exceptions import (
    InternalDataError,
    InvalidInputError,
    NotFoundError,
    TwinEngineError,
    UnavailableError,
)

logger = logging.getLogger(__name__)


class ServiceClient:
    """
    Async HTTP client for one backend service.

    Features:
    - Lazily created, reusable connection pool
    - Retry with exponential backoff and jitter
    - Translation of transport and status errors into engine errors
    """

    RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

    def __init__(
        self,
        base_url: str,
        name: str | None = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.name = name or self.base_url
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Get default headers for requests."""
        return {
            "Accept": "application/json",
            "User-Agent": "AAS-Twin-Engine/1.0",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            **kwargs: Additional request arguments

        Returns:
            Successful response

        Raises:
            TwinEngineError: Translated failure after the last attempt
        """
        client = await self._get_client()
        last_error: TwinEngineError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.TimeoutException as e:
                last_error = UnavailableError(f"{self.name} timed out: {method} {path}")
                last_error.__cause__ = e
            except httpx.TransportError as e:
                last_error = UnavailableError(f"{self.name} unreachable: {e}")
                last_error.__cause__ = e
            else:
                if response.status_code < 400:
                    return response
                last_error = self._translate_status(response, method, path)
                if response.status_code not in self.RETRYABLE_STATUS_CODES:
                    raise last_error

            if attempt < self.max_attempts:
                delay = self.base_delay * 2 ** (attempt - 1) + random.uniform(0, self.base_delay)
                logger.warning(
                    f"{self.name}: attempt {attempt}/{self.max_attempts} failed "
                    f"({last_error.message}); retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        raise last_error or UnavailableError(f"{self.name} unreachable")

    async def get_json(self, path: str, **kwargs) -> Any:
        """Make a GET request and decode the JSON body."""
        response = await self.request("GET", path, **kwargs)
        return self._decode(response)

    async def post_json(self, path: str, payload: Any, **kwargs) -> Any:
        """Make a POST request with a JSON body and decode the JSON answer."""
        response = await self.request("POST", path, json=payload, **kwargs)
        return self._decode(response) if response.content else None

    async def put_json(self, path: str, payload: Any, **kwargs) -> None:
        """Make a PUT request with a JSON body."""
        await self.request("PUT", path, json=payload, **kwargs)

    async def delete(self, path: str, **kwargs) -> None:
        """Make a DELETE request."""
        await self.request("DELETE", path, **kwargs)

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise InternalDataError(f"{self.name} returned a malformed body") from e

    def _translate_status(
        self, response: httpx.Response, method: str, path: str
    ) -> TwinEngineError:
        status = response.status_code
        message = f"{self.name} answered {status} for {method} {path}"
        if status == 404:
            return NotFoundError(message)
        if status in (400, 422):
            return InvalidInputError(message)
        if status in (401, 403) or status in self.RETRYABLE_STATUS_CODES or status >= 500:
            return UnavailableError(message)
        return InternalDataError(message)

    async def __aenter__(self) -> "ServiceClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

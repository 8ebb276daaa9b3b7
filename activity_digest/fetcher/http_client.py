"""Async HTTP client wrapper with timeout configuration."""

import asyncio
from typing import Any, Dict, Optional

import httpx

from activity_digest.fetcher.error_classifier import classify
from activity_digest.fetcher.errors import (
    RemoteError,
    TerminalRemoteError,
    TransientRemoteError,
)
from activity_digest.models.data_models import ErrorClass

DEFAULT_REQUEST_TIMEOUT = 30.0


class AsyncHTTPClient:
    """
    Async HTTP client wrapper around httpx.AsyncClient.

    Provides:
    - A fixed per-request timeout
    - Bearer token and JSON accept headers
    - Translation of httpx failures into TerminalRemoteError / TransientRemoteError
    - Context manager for proper lifecycle management
    """

    def __init__(
        self,
        base_url: str = "",
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        service_name: str = "remote",
        logger=None,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL prepended to relative request paths
            access_token: Bearer token sent on every request
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (mock or ASGI transports in tests)
            service_name: Name used in error messages
            logger: Optional structured logger
        """
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self.transport = transport
        self.service_name = service_name
        self.logger = logger
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Enter async context manager."""
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Perform GET request.

        Args:
            url: URL (or path relative to base_url) to request
            params: Query parameters
            **kwargs: Additional arguments for httpx

        Returns:
            HTTP response
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        return await self._client.get(url, params=params, **kwargs)

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        operation_key: Optional[str] = None,
    ) -> Any:
        """
        GET a JSON document.

        Raises:
            TerminalRemoteError: Auth, permission, bad request, not found
            TransientRemoteError: Rate limit, 5xx, timeout, network failure
        """
        loop = asyncio.get_running_loop()
        start = loop.time()
        if self.logger:
            self.logger.request_start("GET", url)

        try:
            response = await self.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if self.logger:
                self.logger.request_complete("GET", url, status, (loop.time() - start) * 1000)
            raise self._remote_error(
                f"{self.service_name} API request failed: {status} {e.response.reason_phrase}",
                e, status, operation_key, url,
            ) from e
        except httpx.TimeoutException as e:
            raise TransientRemoteError(
                f"{self.service_name} request timed out after {self.timeout}s",
                operation_key=operation_key, url=url,
            ) from e
        except httpx.TransportError as e:
            raise TransientRemoteError(
                f"{self.service_name} network error: {e}",
                operation_key=operation_key, url=url,
            ) from e
        except ValueError as e:
            raise TransientRemoteError(
                f"{self.service_name} returned an invalid JSON body: {e}",
                operation_key=operation_key, url=url,
            ) from e

        if self.logger:
            self.logger.request_complete(
                "GET", url, response.status_code, (loop.time() - start) * 1000
            )
        return payload

    @staticmethod
    def _remote_error(
        message: str,
        cause: BaseException,
        status: int,
        operation_key: Optional[str],
        url: str,
    ) -> RemoteError:
        error_type = (
            TerminalRemoteError if classify(cause) is ErrorClass.TERMINAL
            else TransientRemoteError
        )
        return error_type(message, status_code=status, operation_key=operation_key, url=url)

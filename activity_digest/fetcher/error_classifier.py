"""Classify failed remote calls as retryable or terminal."""

import asyncio
from typing import Optional

import httpx

from activity_digest.fetcher.errors import (
    CircuitOpenError,
    TerminalRemoteError,
    TransientRemoteError,
)
from activity_digest.models.data_models import ErrorClass

AUTH_STATUS_CODES = frozenset({401, 403})
CLIENT_ERROR_STATUS_CODES = frozenset({400, 404, 422})
RATE_LIMIT_STATUS = 429

AUTH_MESSAGE_MARKERS = ("Unauthorized", "Forbidden")
NETWORK_MESSAGE_MARKERS = (
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ENOTFOUND",
    "connection reset",
    "connection refused",
    "timed out",
    "timeout",
    "name resolution",
    "name or service not known",
    "temporary failure in name resolution",
)


def status_code_of(error: BaseException) -> Optional[int]:
    """Extract an HTTP status code from an error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def classify(error: BaseException) -> ErrorClass:
    """
    Decide whether a failed call is worth retrying.

    Rules are evaluated in order:
    1. 401/403 or an Unauthorized/Forbidden message -> TERMINAL
    2. 400/404/422 -> TERMINAL
    3. 429, 5xx -> RETRYABLE
    4. TerminalRemoteError -> TERMINAL, TransientRemoteError -> RETRYABLE
    5. Timeouts and known network failures -> RETRYABLE
    6. Anything unrecognized -> RETRYABLE (bounded by max_attempts)
    """
    if isinstance(error, CircuitOpenError):
        return ErrorClass.TERMINAL

    status = status_code_of(error)
    message = str(error)

    if status in AUTH_STATUS_CODES or any(m in message for m in AUTH_MESSAGE_MARKERS):
        return ErrorClass.TERMINAL

    if status in CLIENT_ERROR_STATUS_CODES:
        return ErrorClass.TERMINAL

    if status is not None and (status == RATE_LIMIT_STATUS or status >= 500):
        return ErrorClass.RETRYABLE

    if isinstance(error, TerminalRemoteError):
        return ErrorClass.TERMINAL
    if isinstance(error, TransientRemoteError):
        return ErrorClass.RETRYABLE

    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorClass.RETRYABLE
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return ErrorClass.RETRYABLE

    lowered = message.lower()
    if any(m.lower() in lowered for m in NETWORK_MESSAGE_MARKERS):
        return ErrorClass.RETRYABLE

    return ErrorClass.RETRYABLE


def is_retryable(error: BaseException) -> bool:
    return classify(error) is ErrorClass.RETRYABLE

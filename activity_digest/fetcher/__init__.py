"""Resilient remote fetching: retries, circuit breakers and bounded concurrency."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from .concurrency import ConcurrencyLimiter
from .error_classifier import classify, is_retryable
from .errors import CircuitOpenError, TerminalRemoteError, TransientRemoteError
from .http_client import AsyncHTTPClient
from .retry_manager import RetryManager, calculate_backoff_delay

__all__ = [
    "AsyncHTTPClient",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "ConcurrencyLimiter",
    "RetryManager",
    "TerminalRemoteError",
    "TransientRemoteError",
    "calculate_backoff_delay",
    "classify",
    "is_retryable",
]

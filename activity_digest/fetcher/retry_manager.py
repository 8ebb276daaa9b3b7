"""Retry manager with exponential backoff, jitter and circuit breaking."""

import asyncio
import inspect
import random
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from activity_digest.fetcher.circuit_breaker import CircuitBreakerRegistry
from activity_digest.fetcher.error_classifier import classify
from activity_digest.fetcher.errors import CircuitOpenError
from activity_digest.models.data_models import (
    CircuitBreakerConfig,
    CircuitState,
    ErrorClass,
    RetryConfig,
    RetryStats,
)

DEFAULT_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay_ms=1000,
    max_delay_ms=10000,
    backoff_multiplier=2.0,
    jitter=True,
)

RETRY_PROFILES: Dict[str, RetryConfig] = {
    # Fast retries for simple operations
    "fast": RetryConfig(max_attempts=2, base_delay_ms=500, max_delay_ms=2000),
    "standard": DEFAULT_RETRY_CONFIG,
    # Heavily rate-limited endpoints
    "conservative": RetryConfig(max_attempts=5, base_delay_ms=2000, max_delay_ms=30000),
    "aggressive": RetryConfig(max_attempts=10, base_delay_ms=100, max_delay_ms=5000),
}

DEFAULT_CIRCUIT_BREAKER_CONFIG = CircuitBreakerConfig(
    failure_threshold=5,
    recovery_timeout_ms=60000,
    half_open_max_attempts=3,
)

CIRCUIT_BREAKER_PROFILES: Dict[str, CircuitBreakerConfig] = {
    "api": CircuitBreakerConfig(
        failure_threshold=3, recovery_timeout_ms=120000, half_open_max_attempts=3
    ),
    "local": CircuitBreakerConfig(
        failure_threshold=10, recovery_timeout_ms=30000, half_open_max_attempts=3
    ),
}

Operation = Callable[[], Union[Awaitable[Any], Any]]


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate the delay (ms) to wait after a failed attempt.

    Formula: min(base_delay * multiplier ** (attempt - 1), max_delay),
    plus up to 1x that value of random jitter when enabled.

    Args:
        attempt: The attempt that just failed (1-indexed)
        config: Retry configuration

    Returns:
        Delay in milliseconds
    """
    exponential_delay = config.base_delay_ms * (config.backoff_multiplier ** (attempt - 1))
    delay = min(exponential_delay, config.max_delay_ms)
    if config.jitter:
        delay += random.uniform(0, delay)
    return delay


class RetryManager:
    """
    Wraps a single fallible operation with bounded retries.

    - Terminal errors (auth, bad request, not found) fail immediately
    - Retryable errors back off exponentially up to max_attempts
    - With a circuit breaker config, every attempt is routed through the
      breaker for the operation key; an open breaker fails immediately
    """

    def __init__(
        self,
        registry: Optional[CircuitBreakerRegistry] = None,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger=None,
    ):
        """
        Initialize retry manager.

        Args:
            registry: Circuit breaker registry (a fresh one by default)
            sleeper: Async sleep function taking seconds (default: asyncio.sleep)
            logger: Optional structured logger for telemetry
        """
        self.registry = registry or CircuitBreakerRegistry(logger=logger)
        self._sleep = sleeper
        self.logger = logger
        self._stats: Dict[str, RetryStats] = {}

    async def with_retry(
        self,
        operation: Operation,
        operation_key: str,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
    ) -> Any:
        """
        Execute operation with retry logic and optional breaker protection.

        Args:
            operation: Zero-arg callable returning an awaitable (or a value)
            operation_key: Logical operation name, e.g. "gitlab.fetch_commits"
            retry_config: Retry policy (defaults to DEFAULT_RETRY_CONFIG)
            circuit_breaker_config: Enables the breaker for operation_key when set

        Returns:
            Result of the first successful attempt

        Raises:
            CircuitOpenError: If the breaker for operation_key is open
            Exception: The terminal error, or the last retryable error once
                all attempts have failed
        """
        config = retry_config or DEFAULT_RETRY_CONFIG
        stats = self._stats.setdefault(operation_key, RetryStats())
        breaker = (
            self.registry.get(operation_key, circuit_breaker_config)
            if circuit_breaker_config is not None
            else None
        )

        for attempt in range(1, config.max_attempts + 1):
            if self.logger:
                self.logger.attempt_start(operation_key, attempt, config.max_attempts)
            try:
                if breaker is not None:
                    result = await breaker.execute(operation)
                else:
                    result = operation()
                    if inspect.isawaitable(result):
                        result = await result
            except CircuitOpenError:
                stats.short_circuits += 1
                if self.logger:
                    self.logger.circuit_rejected(operation_key)
                raise
            except Exception as e:
                stats.attempts += 1
                stats.failures += 1
                retryable = classify(e) is ErrorClass.RETRYABLE
                if self.logger:
                    self.logger.attempt_failed(operation_key, attempt, str(e), retryable)

                if not retryable:
                    if self.logger:
                        self.logger.non_retryable(operation_key, attempt, str(e))
                    raise

                if attempt >= config.max_attempts:
                    if self.logger:
                        self.logger.retries_exhausted(operation_key, config.max_attempts, str(e))
                    raise

                delay_ms = calculate_backoff_delay(attempt, config)
                stats.retries += 1
                if self.logger:
                    self.logger.retry_scheduled(operation_key, attempt, delay_ms)
                await self._sleep(delay_ms / 1000.0)
            else:
                stats.attempts += 1
                stats.successes += 1
                return result

    def get_circuit_breaker_state(self, operation_key: str) -> Optional[CircuitState]:
        """Breaker state for monitoring; None if no breaker exists for the key."""
        return self.registry.state(operation_key)

    def reset_circuit_breaker(self, operation_key: str) -> None:
        """Remove the breaker for operation_key."""
        self.registry.reset(operation_key)

    def stats(self, operation_key: str) -> RetryStats:
        """Retry counters for operation_key (zeros if never called)."""
        return self._stats.get(operation_key, RetryStats())

"""Circuit breaker implementation with explicit state management."""

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from activity_digest.fetcher.errors import CircuitOpenError
from activity_digest.models.data_models import CircuitBreakerConfig, CircuitState


class Clock(Protocol):
    """Clock interface for testable time management."""

    def now(self) -> float:
        """Return current time in seconds."""
        ...


class MonotonicClock:
    """Default clock implementation using time.monotonic."""

    def now(self) -> float:
        """Return current monotonic time in seconds."""
        return time.monotonic()


@dataclass
class CircuitBreakerState:
    """Internal state for a single circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    last_failure_timestamp: Optional[float] = None
    half_open_attempts: int = 0


Operation = Callable[[], Union[Awaitable[Any], Any]]


class CircuitBreaker:
    """
    Circuit breaker with CLOSED/OPEN/HALF_OPEN states for one operation key.

    - Opens once consecutive failures reach the failure threshold
    - While open, calls fail fast with CircuitOpenError
    - After the recovery timeout the next execute() moves to HALF_OPEN
      and admits up to half_open_max_attempts trial calls
    - A successful trial closes the circuit, a failed one reopens it

    The OPEN -> HALF_OPEN transition only happens inside execute(); get_state()
    never changes state.
    """

    def __init__(
        self,
        operation_key: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Optional[Clock] = None,
        logger=None,
    ):
        """
        Initialize circuit breaker.

        Args:
            operation_key: Logical operation this breaker guards
            config: Thresholds (defaults to CircuitBreakerConfig())
            clock: Clock interface for time management (defaults to MonotonicClock)
            logger: Optional structured logger for state changes
        """
        self.operation_key = operation_key
        self.config = config or CircuitBreakerConfig()
        self.clock = clock or MonotonicClock()
        self.logger = logger
        self._state = CircuitBreakerState()
        self._lock = asyncio.Lock()

    async def execute(self, operation: Operation) -> Any:
        """
        Run operation under breaker protection.

        Raises:
            CircuitOpenError: If the circuit is open (operation not invoked)
            Exception: Whatever the operation raised
        """
        async with self._lock:
            self._admit()

        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            async with self._lock:
                self._on_failure()
            raise

        async with self._lock:
            self._on_success()
        return result

    def get_state(self) -> CircuitState:
        """Current state. Pure read: never triggers OPEN -> HALF_OPEN."""
        return self._state.state

    @property
    def consecutive_failures(self) -> int:
        return self._state.consecutive_failures

    @property
    def last_failure_timestamp(self) -> Optional[float]:
        return self._state.last_failure_timestamp

    def _admit(self) -> None:
        circuit = self._state

        if circuit.state == CircuitState.OPEN:
            elapsed_ms = (self.clock.now() - (circuit.last_failure_timestamp or 0.0)) * 1000
            if elapsed_ms < self.config.recovery_timeout_ms:
                raise CircuitOpenError(self.operation_key)
            self._transition(CircuitState.HALF_OPEN)
            circuit.half_open_attempts = 0

        if circuit.state == CircuitState.HALF_OPEN:
            if circuit.half_open_attempts >= self.config.half_open_max_attempts:
                raise CircuitOpenError(self.operation_key)
            circuit.half_open_attempts += 1

    def _on_success(self) -> None:
        circuit = self._state

        if circuit.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)
            circuit.consecutive_failures = 0
            circuit.half_open_attempts = 0
        elif circuit.state == CircuitState.CLOSED:
            circuit.consecutive_failures = 0

    def _on_failure(self) -> None:
        circuit = self._state
        circuit.consecutive_failures += 1
        circuit.last_failure_timestamp = self.clock.now()

        if circuit.state == CircuitState.HALF_OPEN:
            circuit.half_open_attempts = 0
            self._transition(CircuitState.OPEN)
        elif circuit.state == CircuitState.CLOSED:
            if circuit.consecutive_failures >= self.config.failure_threshold:
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if self._state.state == new_state:
            return
        self._state.state = new_state
        if self.logger:
            self.logger.circuit_breaker_state(
                operation=self.operation_key, state=new_state.value
            )


class CircuitBreakerRegistry:
    """
    Owns one CircuitBreaker per operation key, created lazily on first use.

    Injected into RetryManager so tests can start from a clean registry.
    """

    def __init__(self, clock: Optional[Clock] = None, logger=None):
        self.clock = clock or MonotonicClock()
        self.logger = logger
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(
        self,
        operation_key: str,
        config: Optional[CircuitBreakerConfig] = None,
    ) -> CircuitBreaker:
        """Get or create the breaker for operation_key."""
        breaker = self._breakers.get(operation_key)
        if breaker is None:
            breaker = CircuitBreaker(
                operation_key, config=config, clock=self.clock, logger=self.logger
            )
            self._breakers[operation_key] = breaker
        return breaker

    def state(self, operation_key: str) -> Optional[CircuitState]:
        """State for operation_key, or None if no breaker exists yet."""
        breaker = self._breakers.get(operation_key)
        return breaker.get_state() if breaker else None

    def reset(self, operation_key: str) -> None:
        """Drop the breaker for operation_key, returning it to the absent state."""
        self._breakers.pop(operation_key, None)

    def keys(self) -> List[str]:
        return list(self._breakers)

    def __contains__(self, operation_key: str) -> bool:
        return operation_key in self._breakers

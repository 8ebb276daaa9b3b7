"""Core data models for the activity digest."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ErrorClass(Enum):
    """Retry classification of a failed remote call."""
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class SourceType(Enum):
    """Remote services an activity can originate from."""
    GITLAB = "gitlab"
    SLACK = "slack"
    TEAMS = "teams"
    JIRA = "jira"


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for a single logical operation."""
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0
    jitter: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got: {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got: {self.base_delay_ms}")
        if self.max_delay_ms < 0:
            raise ValueError(f"max_delay_ms must be >= 0, got: {self.max_delay_ms}")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be >= 1, got: {self.backoff_multiplier}"
            )


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Thresholds for a per-operation circuit breaker."""
    failure_threshold: int = 5
    recovery_timeout_ms: int = 60000
    half_open_max_attempts: int = 3

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError(
                f"failure_threshold must be >= 1, got: {self.failure_threshold}"
            )
        if self.recovery_timeout_ms < 0:
            raise ValueError(
                f"recovery_timeout_ms must be >= 0, got: {self.recovery_timeout_ms}"
            )
        if self.half_open_max_attempts < 1:
            raise ValueError(
                f"half_open_max_attempts must be >= 1, got: {self.half_open_max_attempts}"
            )


@dataclass(frozen=True)
class NormalizedActivity:
    """Unified activity record shared by every source."""
    id: str  # Format: "source-kind-nativeId"
    source_type: SourceType
    timestamp: datetime  # timezone-aware, UTC
    title: str
    description: str = ""
    author: str = ""
    author_email: Optional[str] = None
    url: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class ProjectRef:
    """A remote project; `extra` is opaque to the fetch core."""
    id: Any
    name: str
    extra: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated user whose activity is being collected."""
    id: Optional[Any] = None
    username: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class DateWindow:
    """Inclusive time window, both ends timezone-aware UTC."""
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass
class FetchOutcome(Generic[T]):
    """Per-task result: either Ok(value) or Failed(error). Never raised."""
    label: str
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, label: str, value: T) -> "FetchOutcome[T]":
        return cls(label=label, value=value)

    @classmethod
    def failure(cls, label: str, error: BaseException) -> "FetchOutcome[T]":
        return cls(label=label, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FailureRecord:
    """A project (or parent item) whose contribution was dropped."""
    source: str
    project: str
    kind: str
    operation_key: str
    error: str
    error_type: str
    status_code: Optional[int]
    timestamp: str  # ISO-8601 UTC


@dataclass
class RetryStats:
    """Per-operation retry counters."""
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    retries: int = 0
    short_circuits: int = 0


@dataclass
class DaySummary:
    """Counts for a single day of activity."""
    date: str
    total_activities: int
    by_type: Dict[str, int]
    by_author: Dict[str, int]


@dataclass
class DigestResult:
    """Complete collection result."""
    days: Dict[str, List[NormalizedActivity]]
    failures: List[FailureRecord]
    source: str = ""

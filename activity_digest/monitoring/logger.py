"""Structured logging for fetch and collection monitoring."""

import json
import logging
from typing import Any, Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "activity_digest", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        """
        Log structured event.

        Standard keys: event, operation, project, kind, attempt, max_attempts,
                      delay_ms, elapsed_ms, status, error, cb_state, count
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def attempt_start(self, operation: str, attempt: int, max_attempts: int) -> None:
        self.log("attempt_start", logging.DEBUG, operation=operation,
                 attempt=attempt, max_attempts=max_attempts)

    def attempt_failed(self, operation: str, attempt: int, error: str, retryable: bool) -> None:
        self.log("attempt_failed", logging.DEBUG, operation=operation,
                 attempt=attempt, error=error, retryable=retryable)

    def retry_scheduled(self, operation: str, attempt: int, delay_ms: float) -> None:
        self.log("retry_scheduled", logging.DEBUG, operation=operation,
                 attempt=attempt, delay_ms=round(delay_ms, 1))

    def retries_exhausted(self, operation: str, attempts: int, error: str) -> None:
        self.log("retries_exhausted", logging.ERROR, operation=operation,
                 attempts=attempts, error=error)

    def non_retryable(self, operation: str, attempt: int, error: str) -> None:
        self.log("non_retryable", logging.WARNING, operation=operation,
                 attempt=attempt, error=error)

    def circuit_breaker_state(self, operation: str, state: str) -> None:
        self.log("circuit_breaker", logging.WARNING, operation=operation, cb_state=state)

    def circuit_rejected(self, operation: str) -> None:
        self.log("circuit_rejected", logging.WARNING, operation=operation, cb_state="open")

    def project_failed(self, project: str, kind: str, error: str) -> None:
        self.log("project_failed", logging.WARNING, project=project, kind=kind, error=error)

    def parent_skipped(self, project: str, operation: str, error: str) -> None:
        self.log("parent_skipped", logging.WARNING, project=project,
                 operation=operation, error=error)

    def fanout_complete(self, kind: str, projects: int, failed: int, count: int) -> None:
        self.log("fanout_complete", kind=kind, projects=projects, failed=failed, count=count)

    def request_start(self, method: str, url: str) -> None:
        self.log("request_start", logging.DEBUG, method=method, url=url)

    def request_complete(self, method: str, url: str, status: Optional[int], elapsed_ms: float) -> None:
        self.log("request_complete", logging.DEBUG, method=method, url=url,
                 status=status, elapsed_ms=round(elapsed_ms, 1))

    def collect_start(self, source: str, start: str, end: str) -> None:
        self.log("collect_start", source=source, start=start, end=end)

    def collect_complete(self, source: str, count: int, days: int, failed: int) -> None:
        self.log("collect_complete", source=source, count=count, days=days, failed=failed)

    def warning(self, event: str, **kwargs: Any) -> None:
        self.log(event, logging.WARNING, **kwargs)

"""Bounded-concurrency task runner."""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from activity_digest.models.data_models import FetchOutcome

DEFAULT_CONCURRENCY_LIMIT = 5

Task = Callable[[], Awaitable[Any]]


class ConcurrencyLimiter:
    """
    Runs zero-arg async tasks with at most `limit` in flight.

    Tasks beyond the bound wait for a free slot in submission order
    (asyncio.Semaphore wakes waiters FIFO). Each task settles into its own
    FetchOutcome slot, so one failure never cancels or blocks the others.
    """

    def __init__(self, default_limit: int = DEFAULT_CONCURRENCY_LIMIT):
        if default_limit < 1:
            raise ValueError(f"default_limit must be >= 1, got: {default_limit}")
        self.default_limit = default_limit
        self.peak_in_flight = 0
        self._in_flight = 0

    async def run(
        self,
        tasks: Sequence[Task],
        limit: Optional[int] = None,
        labels: Optional[Sequence[str]] = None,
    ) -> List[FetchOutcome]:
        """
        Run all tasks and collect their outcomes.

        Args:
            tasks: Zero-arg callables returning awaitables
            limit: Maximum concurrent tasks (defaults to default_limit)
            labels: Optional label per task, carried on its outcome

        Returns:
            One FetchOutcome per task, in submission order
        """
        if limit is None:
            limit = self.default_limit
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got: {limit}")
        if labels is None:
            labels = [str(i) for i in range(len(tasks))]
        if len(labels) != len(tasks):
            raise ValueError("labels must match tasks one to one")

        semaphore = asyncio.Semaphore(limit)

        async def _run_one(task: Task, label: str) -> FetchOutcome:
            async with semaphore:
                self._in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
                try:
                    return FetchOutcome.success(label, await task())
                except Exception as e:
                    return FetchOutcome.failure(label, e)
                finally:
                    self._in_flight -= 1

        return list(await asyncio.gather(
            *(_run_one(task, label) for task, label in zip(tasks, labels))
        ))

"""Aggregator collecting merged activities and dropped-project failures."""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from activity_digest.fetcher.error_classifier import status_code_of
from activity_digest.models.data_models import FailureRecord, NormalizedActivity


class ActivityAggregator:
    """
    Collects activities and failure records across fan-out batches.

    Activities are de-duplicated by id. Failures are the side channel through
    which callers learn which projects were skipped; the fan-out itself only
    ever returns the successful items.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._activities: List[NormalizedActivity] = []
        self._failures: List[FailureRecord] = []
        self._seen_ids: set = set()

    def add_activities(self, activities: List[NormalizedActivity]) -> int:
        """
        Add activities with deduplication.

        Returns:
            Number of activities actually added
        """
        added = 0
        with self._lock:
            for activity in activities:
                if activity.id not in self._seen_ids:
                    self._activities.append(activity)
                    self._seen_ids.add(activity.id)
                    added += 1
        return added

    def record_failure(
        self,
        source: str,
        project: str,
        kind: str,
        operation_key: str,
        error: BaseException,
    ) -> FailureRecord:
        """Record a dropped project (or parent item) contribution."""
        record = FailureRecord(
            source=source,
            project=project,
            kind=kind,
            operation_key=operation_key,
            error=str(error),
            error_type=type(error).__name__,
            status_code=status_code_of(error),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            self._failures.append(record)
        return record

    def get_activities(self) -> List[NormalizedActivity]:
        """All activities, sorted by timestamp."""
        with self._lock:
            return sorted(self._activities, key=lambda a: a.timestamp)

    def get_failures(self, kind: Optional[str] = None) -> List[FailureRecord]:
        with self._lock:
            if kind is None:
                return self._failures.copy()
            return [f for f in self._failures if f.kind == kind]

    def failed_projects(self) -> Dict[str, int]:
        """Failure count per project."""
        with self._lock:
            counts: Dict[str, int] = {}
            for failure in self._failures:
                counts[failure.project] = counts.get(failure.project, 0) + 1
            return counts

"""JSON output formatter for digest results.

Each day becomes one entry with its activities and a summary counting
activities by type (the metadata "action") and by author:

{
    "source": "GitLab",
    "days": [
        {
            "date": "2024-01-01",
            "activities": [...],
            "summary": {
                "total_activities": 3,
                "by_type": {"commit": 2, "comment": 1},
                "by_author": {"Jane Doe": 3}
            }
        }
    ],
    "failures": [...]
}
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from activity_digest.models.data_models import (
    DaySummary,
    DigestResult,
    FailureRecord,
    NormalizedActivity,
)
from activity_digest.pipeline.dates import isoformat_z


def summarize_day(date: str, activities: List[NormalizedActivity]) -> DaySummary:
    """Count a day's activities by type and by author."""
    by_type: Dict[str, int] = {}
    by_author: Dict[str, int] = {}
    for activity in activities:
        kind = activity.metadata.get("action") or activity.source_type.value
        by_type[kind] = by_type.get(kind, 0) + 1
        author = activity.author or "Unknown"
        by_author[author] = by_author.get(author, 0) + 1
    return DaySummary(
        date=date,
        total_activities=len(activities),
        by_type=by_type,
        by_author=by_author,
    )


class DigestFormatter:
    """Formats digest results as JSON."""

    def format(self, result: DigestResult) -> Dict[str, Any]:
        """
        Format digest result as JSON-serializable dictionary.

        Days are emitted in chronological order.
        """
        return {
            "source": result.source,
            "days": [
                self._format_day(date, result.days[date])
                for date in sorted(result.days)
            ],
            "failures": self._format_failures(result.failures),
        }

    def _format_day(self, date: str, activities: List[NormalizedActivity]) -> Dict[str, Any]:
        summary = summarize_day(date, activities)
        return {
            "date": date,
            "activities": [self._format_activity(a) for a in activities],
            "summary": {
                "total_activities": summary.total_activities,
                "by_type": summary.by_type,
                "by_author": summary.by_author,
            },
        }

    def _format_activity(self, activity: NormalizedActivity) -> Dict[str, Any]:
        return {
            "id": activity.id,
            "type": activity.source_type.value,
            "timestamp": isoformat_z(activity.timestamp),
            "title": activity.title,
            "description": activity.description,
            "author": activity.author,
            "author_email": activity.author_email,
            "url": activity.url,
            "metadata": activity.metadata,
        }

    def _format_failures(self, failures: List[FailureRecord]) -> list:
        """Format failure records for debugging."""
        return [
            {
                "source": failure.source,
                "project": failure.project,
                "kind": failure.kind,
                "operation": failure.operation_key,
                "error": failure.error,
                "error_type": failure.error_type,
                "status_code": failure.status_code,
                "timestamp": failure.timestamp,
            }
            for failure in failures
        ]

    def save(self, result: DigestResult, path: str = "out/digest.json") -> None:
        """
        Save formatted result to JSON file.

        Creates parent directories if they don't exist.
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.format(result), f, indent=2, ensure_ascii=False, default=str)

"""Unit tests for the JSON digest formatter."""

import json
from datetime import datetime, timezone

import pytest

from activity_digest.fetcher.errors import TerminalRemoteError
from activity_digest.models.data_models import DigestResult, NormalizedActivity, SourceType
from activity_digest.pipeline.output import DigestFormatter, summarize_day
from activity_digest.processor.aggregator import ActivityAggregator


def _activity(activity_id, action, author="Jane Doe", day=1, hour=10):
    return NormalizedActivity(
        id=activity_id,
        source_type=SourceType.GITLAB,
        timestamp=datetime(2024, 1, day, hour, 30, tzinfo=timezone.utc),
        title=f"{action} {activity_id}",
        author=author,
        metadata={"action": action},
    )


@pytest.fixture
def result():
    failure = ActivityAggregator().record_failure(
        "GitLab", "backend", "issue", "gitlab.fetch_issues",
        TerminalRemoteError("403 Forbidden", status_code=403),
    )
    return DigestResult(
        days={
            "2024-01-02": [_activity("c", "issue", day=2)],
            "2024-01-01": [
                _activity("a", "commit"),
                _activity("b", "commit", author="Bob Smith", hour=11),
                _activity("d", "comment", author="", hour=12),
            ],
        },
        failures=[failure],
        source="GitLab",
    )


class TestSummarizeDay:

    def test_counts_by_type_and_author(self, result):
        summary = summarize_day("2024-01-01", result.days["2024-01-01"])
        assert summary.total_activities == 3
        assert summary.by_type == {"commit": 2, "comment": 1}
        assert summary.by_author == {"Jane Doe": 1, "Bob Smith": 1, "Unknown": 1}

    def test_empty_day(self):
        summary = summarize_day("2024-01-01", [])
        assert summary.total_activities == 0
        assert summary.by_type == {}


class TestDigestFormatter:

    def test_days_in_chronological_order(self, result):
        output = DigestFormatter().format(result)
        assert [d["date"] for d in output["days"]] == ["2024-01-01", "2024-01-02"]
        assert output["source"] == "GitLab"

    def test_activity_shape(self, result):
        activity = DigestFormatter().format(result)["days"][1]["activities"][0]
        assert activity == {
            "id": "c",
            "type": "gitlab",
            "timestamp": "2024-01-02T10:30:00.000Z",
            "title": "issue c",
            "description": "",
            "author": "Jane Doe",
            "author_email": None,
            "url": "",
            "metadata": {"action": "issue"},
        }

    def test_day_summary(self, result):
        day = DigestFormatter().format(result)["days"][0]
        assert day["summary"]["total_activities"] == 3
        assert day["summary"]["by_type"] == {"commit": 2, "comment": 1}

    def test_failures(self, result):
        failures = DigestFormatter().format(result)["failures"]
        assert len(failures) == 1
        assert failures[0]["project"] == "backend"
        assert failures[0]["operation"] == "gitlab.fetch_issues"
        assert failures[0]["status_code"] == 403
        assert failures[0]["error_type"] == "TerminalRemoteError"

    def test_empty_result(self):
        output = DigestFormatter().format(DigestResult(days={}, failures=[]))
        assert output == {"source": "", "days": [], "failures": []}

    def test_save_creates_directories(self, result, tmp_path):
        path = tmp_path / "nested" / "dir" / "digest.json"
        DigestFormatter().save(result, str(path))

        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        assert data == DigestFormatter().format(result)

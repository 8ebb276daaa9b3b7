"""Unit tests for normalizer helpers and author matching."""

from datetime import datetime, timedelta, timezone

import pytest

from activity_digest.models.data_models import Identity, NormalizedActivity, SourceType
from activity_digest.processor.normalizer import (
    AUTHOR_ID_KEY,
    AUTHOR_USERNAME_KEY,
    compact,
    filter_by_identity,
    make_activity_id,
    matches_identity,
    parse_timestamp,
    truncate,
)


def _activity(author="", email=None, metadata=None, activity_id="gitlab-commit-1"):
    return NormalizedActivity(
        id=activity_id,
        source_type=SourceType.GITLAB,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        title="t",
        author=author,
        author_email=email,
        metadata=metadata or {},
    )


class TestHelpers:

    def test_make_activity_id(self):
        assert make_activity_id(SourceType.GITLAB, "commit", "abc123") == "gitlab-commit-abc123"
        assert make_activity_id(SourceType.GITLAB, "mr", 42) == "gitlab-mr-42"

    def test_parse_z_suffix(self):
        parsed = parse_timestamp("2024-01-01T10:30:00.123Z")
        assert parsed == datetime(2024, 1, 1, 10, 30, 0, 123000, tzinfo=timezone.utc)

    def test_parse_offset_converts_to_utc(self):
        parsed = parse_timestamp("2024-01-01T01:00:00+02:00")
        assert parsed == datetime(2023, 12, 31, 23, 0, tzinfo=timezone.utc)
        assert parsed.utcoffset() == timedelta(0)

    def test_parse_naive_is_utc(self):
        assert parse_timestamp("2024-01-01T10:00:00").tzinfo == timezone.utc

    def test_parse_epoch(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", None, "not a date", [1]])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            parse_timestamp(value)

    def test_truncate(self):
        assert truncate("a" * 80, 50) == "a" * 50
        assert truncate(None, 50) == ""

    def test_compact(self):
        assert compact({"a": 1, "b": None, "c": []}) == {"a": 1, "c": []}


class TestMatchesIdentity:

    def test_matches_by_id(self):
        identity = Identity(id=1)
        assert matches_identity(_activity(metadata={AUTHOR_ID_KEY: "1"}), identity)

    def test_matches_by_username(self):
        identity = Identity(username="jdoe")
        assert matches_identity(_activity(metadata={AUTHOR_USERNAME_KEY: "jdoe"}), identity)

    def test_email_is_case_insensitive(self):
        identity = Identity(email="Jane@Example.com")
        assert matches_identity(_activity(email="jane@example.COM"), identity)

    def test_matches_by_name(self):
        assert matches_identity(_activity(author="Jane Doe"), Identity(name="Jane Doe"))

    def test_name_is_case_sensitive(self):
        assert not matches_identity(_activity(author="jane doe"), Identity(name="Jane Doe"))

    def test_first_present_pair_is_not_final(self):
        # id differs, but the email still identifies the author
        activity = _activity(email="jane@example.com", metadata={AUTHOR_ID_KEY: 2})
        assert matches_identity(activity, Identity(id=1, email="jane@example.com"))

    def test_no_shared_identifier(self):
        activity = _activity(metadata={AUTHOR_USERNAME_KEY: "jdoe"})
        assert not matches_identity(activity, Identity(email="jane@example.com"))

    def test_empty_identity_matches_nothing(self):
        assert not matches_identity(_activity(author="Jane Doe"), Identity())

    def test_filter_by_identity(self, identity):
        mine = _activity(author="Jane Doe", activity_id="gitlab-commit-1")
        theirs = _activity(author="Bob Smith", email="bob@example.com", activity_id="gitlab-commit-2")
        assert filter_by_identity([mine, theirs], identity) == [mine]

"""Helpers shared by source normalizers.

Source integrations turn raw API items into NormalizedActivity records; this
module holds the pieces every normalizer needs (id construction, timestamp
parsing, text trimming) and the author identity match used to keep only the
requesting user's items.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from activity_digest.models.data_models import (
    Identity,
    NormalizedActivity,
    SourceType,
)

# metadata keys normalizers use to carry the author's remote identifiers
AUTHOR_ID_KEY = "author_id"
AUTHOR_USERNAME_KEY = "author_username"


def make_activity_id(source: SourceType, kind: str, native_id: Any) -> str:
    """Globally unique activity id: "<source>-<kind>-<native id>"."""
    return f"{source.value}-{kind}-{native_id}"


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an API timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with "Z" or an explicit offset), epoch seconds
    and datetimes. Naive values are taken to be UTC.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)):
        moment = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def truncate(text: Optional[str], length: int) -> str:
    """First `length` characters of text ("" for None)."""
    if not text:
        return ""
    return text[:length]


def author_fields(activity: NormalizedActivity) -> List[Tuple[str, Any]]:
    """The activity's author identifiers in matching priority order."""
    return [
        ("id", activity.metadata.get(AUTHOR_ID_KEY)),
        ("username", activity.metadata.get(AUTHOR_USERNAME_KEY)),
        ("email", activity.author_email),
        ("name", activity.author or None),
    ]


def matches_identity(activity: NormalizedActivity, identity: Identity) -> bool:
    """
    Check whether an activity was authored by identity.

    Compares numeric id, then username, then email, then display name; the
    first identifier present on both sides and equal wins. Emails compare
    case-insensitively.
    """
    for field_name, value in author_fields(activity):
        expected = getattr(identity, field_name)
        if value is None or expected is None:
            continue
        if field_name == "id":
            if str(value) == str(expected):
                return True
        elif field_name == "email":
            if str(value).lower() == str(expected).lower():
                return True
        elif value == expected:
            return True
    return False


def filter_by_identity(
    activities: Iterable[NormalizedActivity],
    identity: Identity,
) -> List[NormalizedActivity]:
    """Keep only the activities authored by identity."""
    return [activity for activity in activities if matches_identity(activity, identity)]


def compact(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None values from a metadata mapping."""
    return {key: value for key, value in metadata.items() if value is not None}

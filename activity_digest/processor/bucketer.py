"""Group activities by UTC calendar day."""

from datetime import timezone
from typing import Dict, Iterable, List

from activity_digest.models.data_models import NormalizedActivity


def day_key(activity: NormalizedActivity) -> str:
    """"YYYY-MM-DD" of the activity timestamp in UTC."""
    return activity.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%d")


def group_by_day(
    activities: Iterable[NormalizedActivity],
) -> Dict[str, List[NormalizedActivity]]:
    """
    Bucket activities by UTC day.

    Buckets appear in first-seen order and keep input order inside each
    bucket, so identical input always yields identical output.
    """
    buckets: Dict[str, List[NormalizedActivity]] = {}
    for activity in activities:
        buckets.setdefault(day_key(activity), []).append(activity)
    return buckets

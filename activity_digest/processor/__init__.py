"""Activity normalization, author filtering and day bucketing."""

from .aggregator import ActivityAggregator
from .bucketer import group_by_day
from .normalizer import filter_by_identity, matches_identity, parse_timestamp

__all__ = [
    "ActivityAggregator",
    "filter_by_identity",
    "group_by_day",
    "matches_identity",
    "parse_timestamp",
]

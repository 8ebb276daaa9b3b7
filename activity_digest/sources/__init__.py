"""Remote activity sources."""

from .base import ActivitySource
from .gitlab import GitLabSource

__all__ = ["ActivitySource", "GitLabSource"]

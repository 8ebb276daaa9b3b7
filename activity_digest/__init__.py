"""Collect a user's GitLab activity and group it by UTC day."""

__version__ = "1.0.0"

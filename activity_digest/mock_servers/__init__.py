"""Mock API servers for testing."""

from .app import MockGitLabData, build_sample_data, create_app, create_mock_gitlab

__all__ = ["MockGitLabData", "build_sample_data", "create_app", "create_mock_gitlab"]

"""Base class for remote activity sources."""

from abc import ABC, abstractmethod
from typing import List

from activity_digest.models.data_models import Identity, ProjectRef, SourceType
from activity_digest.pipeline.orchestrator import EntityAdapter


class ActivitySource(ABC):
    """
    A remote service integration.

    The collector asks a source who the user is, which projects to scan and
    which entity kinds to fetch; everything else (retries, fan-out, author
    filtering, bucketing) is handled generically.
    """

    name: str = ""
    source_type: SourceType

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials and endpoints are present."""

    @abstractmethod
    async def resolve_identity(self) -> Identity:
        """
        Resolve the authenticated user.

        Raises:
            IdentityResolutionError: If the user cannot be resolved
        """

    @abstractmethod
    async def discover_projects(self) -> List[ProjectRef]:
        """Projects to scan; never raises, an empty list means nothing to do."""

    @abstractmethod
    def adapters(self) -> List[EntityAdapter]:
        """Entity kinds to fetch from every project."""

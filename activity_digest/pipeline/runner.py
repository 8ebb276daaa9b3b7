"""Digest pipeline wiring configuration to the fetch core."""

from typing import Optional

import httpx

from activity_digest.fetcher.circuit_breaker import CircuitBreakerRegistry
from activity_digest.fetcher.concurrency import ConcurrencyLimiter
from activity_digest.fetcher.http_client import AsyncHTTPClient
from activity_digest.fetcher.retry_manager import RetryManager
from activity_digest.models.config import DigestConfig
from activity_digest.models.data_models import DigestResult
from activity_digest.monitoring.logger import StructuredLogger
from activity_digest.pipeline.collector import ActivityCollector
from activity_digest.pipeline.dates import DateLike
from activity_digest.pipeline.orchestrator import ProjectFanOutOrchestrator
from activity_digest.sources.gitlab import GitLabSource


class DigestPipeline:
    """Builds the resilience stack from configuration and runs a collection."""

    def __init__(
        self,
        config: DigestConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        retry_manager: Optional[RetryManager] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Initialize pipeline.

        Args:
            config: Digest configuration
            transport: Optional httpx transport (tests use mock/ASGI transports)
            registry: Circuit breaker registry shared across runs
            retry_manager: Prebuilt retry manager (overrides registry)
            logger: Structured logger (built from config.log_level by default)
        """
        self.config = config
        self.transport = transport
        self.logger = logger or StructuredLogger(level=config.log_level)
        self.registry = registry or CircuitBreakerRegistry(logger=self.logger)
        self.retry_manager = retry_manager or RetryManager(
            registry=self.registry, logger=self.logger
        )

    async def run(self, start: DateLike, end: Optional[DateLike] = None) -> DigestResult:
        """
        Collect GitLab activity for [start, end].

        Raises:
            IdentityResolutionError: If the GitLab user cannot be resolved
        """
        async with AsyncHTTPClient(
            base_url=self.config.gitlab_base_url,
            access_token=self.config.gitlab_access_token,
            timeout=self.config.request_timeout,
            transport=self.transport,
            service_name="GitLab",
            logger=self.logger,
        ) as http_client:
            source = GitLabSource(self.config, http_client, self.retry_manager, logger=self.logger)
            orchestrator = ProjectFanOutOrchestrator(
                self.retry_manager,
                limiter=ConcurrencyLimiter(self.config.project_concurrency),
                retry_config=self.config.retry_config,
                circuit_breaker_config=self.config.circuit_breaker_config,
                logger=self.logger,
            )
            collector = ActivityCollector(source, orchestrator, logger=self.logger)
            return await collector.collect(start, end)

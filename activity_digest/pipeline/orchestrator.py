"""Fan-out orchestrator fetching one entity kind across many projects."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from activity_digest.fetcher.concurrency import ConcurrencyLimiter
from activity_digest.fetcher.retry_manager import RetryManager
from activity_digest.models.data_models import (
    CircuitBreakerConfig,
    DateWindow,
    Identity,
    NormalizedActivity,
    ProjectRef,
    RetryConfig,
)
from activity_digest.processor.aggregator import ActivityAggregator
from activity_digest.processor.normalizer import matches_identity

RawItem = Dict[str, Any]
FetchFn = Callable[[ProjectRef, DateWindow, Optional[RawItem]], Awaitable[List[RawItem]]]
NormalizeFn = Callable[[RawItem, ProjectRef], NormalizedActivity]


@dataclass(frozen=True)
class ResourceNode:
    """
    One level of a project's resource tree.

    `fetch(project, window, parent)` lists the items at this level; `parent`
    is None at the root. A node with a child lists parents only: each parent
    item is expanded through the child and only the leaves are returned.
    """
    operation_key: str
    fetch: FetchFn
    child: Optional["ResourceNode"] = None


@dataclass(frozen=True)
class EntityAdapter:
    """How to fetch and normalize one entity kind of a source."""
    kind: str
    resource: ResourceNode
    normalize: NormalizeFn
    # False for kinds the remote API already scopes to the author
    filter_by_author: bool = True
    source: str = ""


class ProjectFanOutOrchestrator:
    """
    Drives "for every project: fetch, normalize, filter by author".

    Responsibilities:
    - One task per project, each call wrapped in RetryManager.with_retry
    - Bounded concurrency across projects via ConcurrencyLimiter
    - Per-project and per-parent failure isolation; failures are logged and
      recorded in the aggregator, never raised
    """

    def __init__(
        self,
        retry_manager: RetryManager,
        limiter: Optional[ConcurrencyLimiter] = None,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
        concurrency_limit: Optional[int] = None,
        aggregator: Optional[ActivityAggregator] = None,
        logger=None,
    ):
        """
        Initialize orchestrator.

        Args:
            retry_manager: Retries each remote call (owns the breaker registry)
            limiter: Caps concurrent project tasks
            retry_config: Retry policy applied to every call
            circuit_breaker_config: Breaker thresholds; None disables breaking
            concurrency_limit: Per-batch limit (defaults to the limiter's)
            aggregator: Side channel for failure records
            logger: Optional structured logger
        """
        self.retry_manager = retry_manager
        self.limiter = limiter or ConcurrencyLimiter()
        self.retry_config = retry_config
        self.circuit_breaker_config = circuit_breaker_config
        self.concurrency_limit = concurrency_limit
        self.aggregator = aggregator or ActivityAggregator()
        self.logger = logger

    async def fetch_across_projects(
        self,
        projects: Sequence[ProjectRef],
        window: DateWindow,
        adapter: EntityAdapter,
        identity: Identity,
    ) -> List[NormalizedActivity]:
        """
        Fetch one entity kind across all projects.

        Args:
            projects: Projects to query
            window: Inclusive UTC time window
            adapter: Fetch and normalize functions for the entity kind
            identity: Requesting user, for author filtering

        Returns:
            Normalized, author-filtered items from every project that
            succeeded. Order follows project submission order but callers
            that need a stable order should sort by timestamp.
        """
        tasks = [
            self._project_task(project, window, adapter)
            for project in projects
        ]
        outcomes = await self.limiter.run(
            tasks,
            limit=self.concurrency_limit,
            labels=[project.name for project in projects],
        )

        activities: List[NormalizedActivity] = []
        failed = 0
        for project, outcome in zip(projects, outcomes):
            if not outcome.ok:
                failed += 1
                self._record_failure(project, adapter, adapter.resource.operation_key, outcome.error)
                if self.logger:
                    self.logger.project_failed(project.name, adapter.kind, str(outcome.error))
                continue

            for raw in outcome.value:
                try:
                    activity = adapter.normalize(raw, project)
                except Exception as e:
                    if self.logger:
                        self.logger.warning(
                            "normalize_failed", project=project.name,
                            kind=adapter.kind, error=str(e),
                        )
                    continue
                if adapter.filter_by_author and not matches_identity(activity, identity):
                    continue
                activities.append(activity)

        if self.logger:
            self.logger.fanout_complete(adapter.kind, len(projects), failed, len(activities))
        return activities

    def _project_task(
        self,
        project: ProjectRef,
        window: DateWindow,
        adapter: EntityAdapter,
    ) -> Callable[[], Awaitable[List[RawItem]]]:
        async def task() -> List[RawItem]:
            return await self.collect_resource(adapter.resource, project, window, adapter)
        return task

    async def collect_resource(
        self,
        node: ResourceNode,
        project: ProjectRef,
        window: DateWindow,
        adapter: EntityAdapter,
        parent: Optional[RawItem] = None,
    ) -> List[RawItem]:
        """
        Fetch a resource node and, recursively, its children.

        A failure listing `node` itself propagates; a failure expanding one
        parent item through the child is logged and that parent skipped.
        """
        items = await self.retry_manager.with_retry(
            lambda: node.fetch(project, window, parent),
            node.operation_key,
            self.retry_config,
            self.circuit_breaker_config,
        )
        if node.child is None:
            return list(items or [])

        leaves: List[RawItem] = []
        for item in items or []:
            try:
                leaves.extend(
                    await self.collect_resource(node.child, project, window, adapter, parent=item)
                )
            except Exception as e:
                self._record_failure(project, adapter, node.child.operation_key, e)
                if self.logger:
                    self.logger.parent_skipped(project.name, node.child.operation_key, str(e))
        return leaves

    def _record_failure(
        self,
        project: ProjectRef,
        adapter: EntityAdapter,
        operation_key: str,
        error: BaseException,
    ) -> None:
        self.aggregator.record_failure(
            source=adapter.source,
            project=project.name,
            kind=adapter.kind,
            operation_key=operation_key,
            error=error,
        )

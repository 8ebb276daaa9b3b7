"""Collect one source's activities for a day or a date range."""

from typing import Dict, List, Optional

from activity_digest.models.data_models import DigestResult, NormalizedActivity
from activity_digest.pipeline.dates import DateLike, format_date_range, range_window
from activity_digest.pipeline.orchestrator import ProjectFanOutOrchestrator
from activity_digest.processor.aggregator import ActivityAggregator
from activity_digest.processor.bucketer import group_by_day
from activity_digest.sources.base import ActivitySource


class ActivityCollector:
    """Runs every entity adapter of a source through the fan-out orchestrator."""

    def __init__(
        self,
        source: ActivitySource,
        orchestrator: ProjectFanOutOrchestrator,
        logger=None,
    ):
        self.source = source
        self.orchestrator = orchestrator
        self.logger = logger

    @property
    def aggregator(self):
        return self.orchestrator.aggregator

    async def collect(self, start: DateLike, end: Optional[DateLike] = None) -> DigestResult:
        """
        Collect activities for [start, end] (a single day when end is None).

        One window covers the whole range; results are merged, de-duplicated,
        sorted by timestamp and grouped by UTC day.

        Raises:
            IdentityResolutionError: If the user cannot be resolved
        """
        end = start if end is None else end
        window = range_window(start, end)

        if not self.source.is_configured():
            if self.logger:
                self.logger.warning("source_not_configured", source=self.source.name)
            return DigestResult(days={}, failures=[], source=self.source.name)

        if self.logger:
            self.logger.collect_start(
                self.source.name, window.start.isoformat(), window.end.isoformat()
            )

        # Without an identity there is nothing to filter by, so this is fatal
        identity = await self.source.resolve_identity()
        projects = await self.source.discover_projects()
        if not projects and self.logger:
            self.logger.warning(
                "no_projects", source=self.source.name,
                range=format_date_range(start, end),
            )

        merged = ActivityAggregator()
        failures_before = len(self.aggregator.get_failures())
        for adapter in self.source.adapters():
            activities = await self.orchestrator.fetch_across_projects(
                projects, window, adapter, identity
            )
            merged.add_activities(activities)

        activities = self._in_window(merged.get_activities(), window)
        days = group_by_day(activities)
        failures = self.aggregator.get_failures()[failures_before:]

        if self.logger:
            self.logger.collect_complete(self.source.name, len(activities), len(days), len(failures))
        return DigestResult(days=days, failures=failures, source=self.source.name)

    @staticmethod
    def _in_window(activities: List[NormalizedActivity], window) -> List[NormalizedActivity]:
        return [activity for activity in activities if window.contains(activity.timestamp)]

    async def collect_by_day(
        self, start: DateLike, end: Optional[DateLike] = None
    ) -> Dict[str, List[NormalizedActivity]]:
        return (await self.collect(start, end)).days

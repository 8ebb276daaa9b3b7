"""Unit tests for the project fan-out orchestrator."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from activity_digest.fetcher.concurrency import ConcurrencyLimiter
from activity_digest.fetcher.errors import TerminalRemoteError, TransientRemoteError
from activity_digest.fetcher.retry_manager import RetryManager
from activity_digest.models.data_models import (
    CircuitBreakerConfig,
    CircuitState,
    NormalizedActivity,
    ProjectRef,
    RetryConfig,
    SourceType,
)
from activity_digest.pipeline.dates import day_window
from activity_digest.pipeline.orchestrator import (
    EntityAdapter,
    ProjectFanOutOrchestrator,
    ResourceNode,
)

FAST = RetryConfig(max_attempts=2, base_delay_ms=1, max_delay_ms=1, jitter=False)


def _normalize(raw, project: ProjectRef) -> NormalizedActivity:
    return NormalizedActivity(
        id=f"test-item-{raw['id']}",
        source_type=SourceType.GITLAB,
        timestamp=datetime(2024, 1, 1, 10, tzinfo=timezone.utc),
        title=raw.get("title", ""),
        author=raw.get("author", ""),
        metadata={"project_name": project.name},
    )


def _adapter(fetch, child=None, filter_by_author=True, kind="item"):
    return EntityAdapter(
        kind=kind,
        resource=ResourceNode("test.fetch", fetch, child=child),
        normalize=_normalize,
        filter_by_author=filter_by_author,
        source="Test",
    )


@pytest.fixture
def window(digest_day):
    return day_window(digest_day)


@pytest.fixture
def orchestrator(retry_manager):
    return ProjectFanOutOrchestrator(retry_manager, ConcurrencyLimiter(2), retry_config=FAST)


class TestFetchAcrossProjects:

    @pytest.mark.asyncio
    async def test_collects_from_every_project(self, orchestrator, projects, window, identity):
        async def fetch(project, window, parent):
            return [{"id": project.id, "author": "Jane Doe"}]

        activities = await orchestrator.fetch_across_projects(
            projects, window, _adapter(fetch), identity
        )
        assert [a.metadata["project_name"] for a in activities] == [
            "project-1", "project-2", "project-3"
        ]

    @pytest.mark.asyncio
    async def test_filters_by_author(self, orchestrator, projects, window, identity):
        async def fetch(project, window, parent):
            return [{"id": 1, "author": "Jane Doe"}, {"id": 2, "author": "Bob Smith"}]

        activities = await orchestrator.fetch_across_projects(
            projects[:1], window, _adapter(fetch), identity
        )
        assert [a.id for a in activities] == ["test-item-1"]

    @pytest.mark.asyncio
    async def test_author_filter_can_be_disabled(self, orchestrator, projects, window, identity):
        async def fetch(project, window, parent):
            return [{"id": 1, "author": "Jane Doe"}, {"id": 2, "author": "Bob Smith"}]

        activities = await orchestrator.fetch_across_projects(
            projects[:1], window, _adapter(fetch, filter_by_author=False), identity
        )
        assert len(activities) == 2

    @pytest.mark.asyncio
    async def test_failed_project_is_isolated(self, orchestrator, projects, window, identity):
        async def fetch(project, window, parent):
            if project.name == "project-2":
                raise TerminalRemoteError("404 Project Not Found", status_code=404)
            return [{"id": project.id, "author": "Jane Doe"}]

        activities = await orchestrator.fetch_across_projects(
            projects, window, _adapter(fetch), identity
        )
        assert len(activities) == 2

        failures = orchestrator.aggregator.get_failures()
        assert len(failures) == 1
        assert failures[0].project == "project-2"
        assert failures[0].kind == "item"
        assert failures[0].operation_key == "test.fetch"
        assert failures[0].status_code == 404
        assert failures[0].source == "Test"

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, orchestrator, projects, window, identity, sleeper):
        calls = {"n": 0}

        async def fetch(project, window, parent):
            calls["n"] += 1
            if calls["n"] == 1:
                raise TransientRemoteError("503", status_code=503)
            return [{"id": 1, "author": "Jane Doe"}]

        activities = await orchestrator.fetch_across_projects(
            projects[:1], window, _adapter(fetch), identity
        )
        assert len(activities) == 1
        assert calls["n"] == 2
        assert len(sleeper.delays) == 1

    @pytest.mark.asyncio
    async def test_all_projects_failing_returns_empty(self, orchestrator, projects, window, identity):
        async def fetch(project, window, parent):
            raise TerminalRemoteError("401 Unauthorized", status_code=401)

        activities = await orchestrator.fetch_across_projects(
            projects, window, _adapter(fetch), identity
        )
        assert activities == []
        assert orchestrator.aggregator.failed_projects() == {
            "project-1": 1, "project-2": 1, "project-3": 1
        }

    @pytest.mark.asyncio
    async def test_unnormalizable_items_are_skipped(self, orchestrator, projects, window, identity):
        async def fetch(project, window, parent):
            return [{"author": "Jane Doe"}, {"id": 2, "author": "Jane Doe"}]

        logger = MagicMock()
        orchestrator.logger = logger
        activities = await orchestrator.fetch_across_projects(
            projects[:1], window, _adapter(fetch), identity
        )
        assert [a.id for a in activities] == ["test-item-2"]
        logger.warning.assert_called_once()
        assert logger.warning.call_args.args[0] == "normalize_failed"

    @pytest.mark.asyncio
    async def test_no_projects(self, orchestrator, window, identity):
        async def fetch(project, window, parent):
            raise AssertionError("not called")

        assert await orchestrator.fetch_across_projects([], window, _adapter(fetch), identity) == []

    @pytest.mark.asyncio
    async def test_breaker_config_applies_to_operation_key(self, retry_manager, projects, window, identity):
        orchestrator = ProjectFanOutOrchestrator(
            retry_manager, ConcurrencyLimiter(1), retry_config=FAST,
            circuit_breaker_config=CircuitBreakerConfig(failure_threshold=2),
        )

        async def fetch(project, window, parent):
            raise TerminalRemoteError("403 Forbidden", status_code=403)

        await orchestrator.fetch_across_projects(projects, window, _adapter(fetch), identity)
        assert retry_manager.get_circuit_breaker_state("test.fetch") == CircuitState.OPEN
        # the third project was short-circuited
        errors = [f.error_type for f in orchestrator.aggregator.get_failures()]
        assert errors == ["TerminalRemoteError", "TerminalRemoteError", "CircuitOpenError"]


class TestNestedResources:

    @pytest.mark.asyncio
    async def test_expands_parents_into_leaves(self, orchestrator, projects, window, identity):
        async def list_parents(project, window, parent):
            assert parent is None
            return [{"iid": 1}, {"iid": 2}]

        async def list_notes(project, window, parent):
            return [{"id": parent["iid"] * 10, "author": "Jane Doe"}]

        adapter = _adapter(list_parents, child=ResourceNode("test.notes", list_notes))
        activities = await orchestrator.fetch_across_projects(
            projects[:1], window, adapter, identity
        )
        assert [a.id for a in activities] == ["test-item-10", "test-item-20"]

    @pytest.mark.asyncio
    async def test_failed_parent_is_skipped(self, orchestrator, projects, window, identity):
        async def list_parents(project, window, parent):
            return [{"iid": 1}, {"iid": 2}, {"iid": 3}]

        async def list_notes(project, window, parent):
            if parent["iid"] == 2:
                raise TerminalRemoteError("404 Not Found", status_code=404)
            return [{"id": parent["iid"], "author": "Jane Doe"}]

        adapter = _adapter(list_parents, child=ResourceNode("test.notes", list_notes))
        activities = await orchestrator.fetch_across_projects(
            projects[:1], window, adapter, identity
        )
        assert [a.id for a in activities] == ["test-item-1", "test-item-3"]

        failures = orchestrator.aggregator.get_failures()
        assert len(failures) == 1
        assert failures[0].operation_key == "test.notes"
        assert failures[0].project == "project-1"

    @pytest.mark.asyncio
    async def test_root_failure_fails_project(self, orchestrator, projects, window, identity):
        async def list_parents(project, window, parent):
            raise TerminalRemoteError("403 Forbidden", status_code=403)

        async def list_notes(project, window, parent):
            raise AssertionError("not called")

        adapter = _adapter(list_parents, child=ResourceNode("test.notes", list_notes))
        activities = await orchestrator.fetch_across_projects(
            projects[:1], window, adapter, identity
        )
        assert activities == []
        assert orchestrator.aggregator.get_failures()[0].operation_key == "test.fetch"

    @pytest.mark.asyncio
    async def test_three_levels(self, orchestrator, projects, window, identity):
        async def level_one(project, window, parent):
            return [{"n": 1}]

        async def level_two(project, window, parent):
            return [{"n": parent["n"] * 10}, {"n": parent["n"] * 10 + 1}]

        async def level_three(project, window, parent):
            return [{"id": parent["n"], "author": "Jane Doe"}]

        adapter = _adapter(
            level_one,
            child=ResourceNode("test.two", level_two, child=ResourceNode("test.three", level_three)),
        )
        activities = await orchestrator.fetch_across_projects(
            projects[:1], window, adapter, identity
        )
        assert [a.id for a in activities] == ["test-item-10", "test-item-11"]


class TestNormalizeFailures:

    @pytest.mark.asyncio
    async def test_unexpected_normalize_error_stays_in_project(self, orchestrator, projects, window, identity):
        def normalize(raw, project):
            # raises AttributeError when the author object is missing
            return _normalize({**raw, "author": raw["author"].get("name")}, project)

        async def fetch(project, window, parent):
            if project.name == "project-2":
                return [{"id": 2, "author": None}]
            return [{"id": project.id, "author": {"name": "Jane Doe"}}]

        adapter = EntityAdapter(
            kind="item",
            resource=ResourceNode("test.fetch", fetch),
            normalize=normalize,
            source="Test",
        )
        logger = MagicMock()
        orchestrator.logger = logger
        activities = await orchestrator.fetch_across_projects(projects, window, adapter, identity)

        assert [a.id for a in activities] == ["test-item-101", "test-item-103"]
        logger.warning.assert_called_once()
        assert logger.warning.call_args.args[0] == "normalize_failed"
        assert logger.warning.call_args.kwargs["project"] == "project-2"


class TestResultInvariance:

    @staticmethod
    async def _collect_ids(projects, window, identity, limit, retry_config):
        calls = {}

        async def fetch(project, window, parent):
            calls[project.name] = calls.get(project.name, 0) + 1
            if project.name == "project-2" and calls[project.name] == 1:
                raise TransientRemoteError("503 Service Unavailable", status_code=503)
            return [
                {"id": f"{project.id}-{n}", "author": "Jane Doe"} for n in range(3)
            ]

        orchestrator = ProjectFanOutOrchestrator(
            RetryManager(sleeper=AsyncMock()),
            ConcurrencyLimiter(limit),
            retry_config=retry_config,
        )
        activities = await orchestrator.fetch_across_projects(
            projects, window, _adapter(fetch), identity
        )
        return {a.id for a in activities}

    @pytest.mark.asyncio
    async def test_same_items_for_any_limit_and_retry_policy(self, projects, window, identity):
        patient = RetryConfig(max_attempts=5, base_delay_ms=10, max_delay_ms=100)
        results = [
            await self._collect_ids(projects, window, identity, limit, config)
            for limit in (1, len(projects))
            for config in (FAST, patient)
        ]

        assert len(results[0]) == 9
        assert all(ids == results[0] for ids in results)

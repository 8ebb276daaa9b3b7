"""GitLab activity source: commits, merge requests, issues and comments."""

from typing import Any, Dict, List, Optional

from activity_digest.fetcher.errors import IdentityResolutionError
from activity_digest.fetcher.http_client import AsyncHTTPClient
from activity_digest.fetcher.retry_manager import RetryManager
from activity_digest.models.config import DigestConfig
from activity_digest.models.data_models import (
    DateWindow,
    Identity,
    NormalizedActivity,
    ProjectRef,
    SourceType,
)
from activity_digest.pipeline.dates import isoformat_z
from activity_digest.pipeline.orchestrator import EntityAdapter, ResourceNode
from activity_digest.processor.normalizer import (
    AUTHOR_ID_KEY,
    AUTHOR_USERNAME_KEY,
    compact,
    make_activity_id,
    parse_timestamp,
    truncate,
)
from activity_digest.sources.base import ActivitySource

API_PREFIX = "/api/v4"
PER_PAGE = 100

OP_CURRENT_USER = "gitlab.get_current_user"
OP_LIST_PROJECTS = "gitlab.list_projects"
OP_GET_PROJECT = "gitlab.get_project"
OP_FETCH_COMMITS = "gitlab.fetch_commits"
OP_FETCH_MERGE_REQUESTS = "gitlab.fetch_merge_requests"
OP_FETCH_ISSUES = "gitlab.fetch_issues"
OP_LIST_MR_PARENTS = "gitlab.list_merge_requests_for_notes"
OP_FETCH_MR_NOTES = "gitlab.fetch_merge_request_notes"
OP_LIST_ISSUE_PARENTS = "gitlab.list_issues_for_notes"
OP_FETCH_ISSUE_NOTES = "gitlab.fetch_issue_notes"
OP_LIST_COMMIT_PARENTS = "gitlab.list_commits_for_comments"
OP_FETCH_COMMIT_COMMENTS = "gitlab.fetch_commit_comments"


def _author(raw: Dict[str, Any]) -> Dict[str, Any]:
    return raw.get("author") or {}


def normalize_commit(commit: Dict[str, Any], project: ProjectRef) -> NormalizedActivity:
    return NormalizedActivity(
        id=make_activity_id(SourceType.GITLAB, "commit", commit["id"]),
        source_type=SourceType.GITLAB,
        timestamp=parse_timestamp(
            commit.get("created_at") or commit.get("authored_date") or commit["committed_date"]
        ),
        title=f"Commit: {commit.get('title', '')}",
        description=commit.get("message") or "",
        author=commit.get("author_name") or "",
        author_email=commit.get("author_email"),
        url=commit.get("web_url") or "",
        metadata=compact({
            "action": "commit",
            "short_id": commit.get("short_id"),
            "project_id": project.id,
            "project_name": project.name,
        }),
    )


def normalize_merge_request(mr: Dict[str, Any], project: ProjectRef) -> NormalizedActivity:
    state = mr.get("state")
    action = "merged" if state == "merged" else "closed" if state == "closed" else "created"
    author = _author(mr)
    return NormalizedActivity(
        id=make_activity_id(SourceType.GITLAB, "mr", mr["id"]),
        source_type=SourceType.GITLAB,
        timestamp=parse_timestamp(mr["created_at"]),
        title=f"Merge Request {action}: {mr.get('title', '')}",
        description=mr.get("description") or "",
        author=author.get("name") or "",
        author_email=author.get("email"),
        url=mr.get("web_url") or "",
        metadata=compact({
            "action": "merge_request",
            "state": state,
            "merge_status": mr.get("merge_status"),
            "iid": mr.get("iid"),
            "source_branch": mr.get("source_branch"),
            "target_branch": mr.get("target_branch"),
            "project_id": project.id,
            "project_name": project.name,
            AUTHOR_ID_KEY: author.get("id"),
            AUTHOR_USERNAME_KEY: author.get("username"),
            "assignee_email": (mr.get("assignee") or {}).get("email"),
        }),
    )


def normalize_issue(issue: Dict[str, Any], project: ProjectRef) -> NormalizedActivity:
    action = "closed" if issue.get("state") == "closed" else "created"
    author = _author(issue)
    return NormalizedActivity(
        id=make_activity_id(SourceType.GITLAB, "issue", issue["id"]),
        source_type=SourceType.GITLAB,
        timestamp=parse_timestamp(issue["created_at"]),
        title=f"Issue {action}: {issue.get('title', '')}",
        description=issue.get("description") or "",
        author=author.get("name") or "",
        author_email=author.get("email"),
        url=issue.get("web_url") or "",
        metadata=compact({
            "action": "issue",
            "state": issue.get("state"),
            "iid": issue.get("iid"),
            "labels": issue.get("labels") or [],
            "milestone": (issue.get("milestone") or {}).get("title"),
            "project_id": project.id,
            "project_name": project.name,
            AUTHOR_ID_KEY: author.get("id"),
            AUTHOR_USERNAME_KEY: author.get("username"),
            "assignee_email": (issue.get("assignee") or {}).get("email"),
        }),
    )


def normalize_comment(comment: Dict[str, Any], project: ProjectRef) -> NormalizedActivity:
    body = comment.get("body") or comment.get("note") or ""
    noteable_type = comment.get("noteable_type") or "unknown"
    author = _author(comment)
    return NormalizedActivity(
        id=make_activity_id(SourceType.GITLAB, "comment", comment["id"]),
        source_type=SourceType.GITLAB,
        timestamp=parse_timestamp(comment["created_at"]),
        title=f"Comment on {noteable_type.lower()}: {truncate(body, 50)}",
        description=body,
        author=author.get("name") or "",
        author_email=author.get("email"),
        url=comment.get("web_url") or "#",
        metadata=compact({
            "action": "comment",
            "noteable_type": noteable_type,
            "noteable_id": comment.get("noteable_id"),
            "project_id": project.id,
            "project_name": project.name,
            AUTHOR_ID_KEY: author.get("id"),
            AUTHOR_USERNAME_KEY: author.get("username"),
        }),
    )


class GitLabSource(ActivitySource):
    """
    GitLab integration built on the v4 REST API.

    Merge requests and issues are requested with author_id, so GitLab already
    scopes them to the user; commits and comments are filtered client-side.
    Comments need a listing of parents (merge requests, issues, commits) and
    then one notes request per parent.
    """

    name = "GitLab"
    source_type = SourceType.GITLAB

    def __init__(
        self,
        config: DigestConfig,
        http_client: AsyncHTTPClient,
        retry_manager: RetryManager,
        logger=None,
    ):
        self.config = config
        self.http_client = http_client
        self.retry_manager = retry_manager
        self.logger = logger
        self.current_user: Optional[Dict[str, Any]] = None

    def is_configured(self) -> bool:
        return self.config.gitlab_configured

    async def _get(self, path: str, operation_key: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.http_client.get_json(
            f"{API_PREFIX}{path}", params=params, operation_key=operation_key
        )

    async def _get_with_retry(
        self, path: str, operation_key: str, params: Optional[Dict[str, Any]] = None
    ) -> Any:
        return await self.retry_manager.with_retry(
            lambda: self._get(path, operation_key, params),
            operation_key,
            self.config.retry_config,
            self.config.circuit_breaker_config,
        )

    async def resolve_identity(self) -> Identity:
        try:
            user = await self._get_with_retry("/user", OP_CURRENT_USER)
        except Exception as e:
            raise IdentityResolutionError(
                f"Failed to get current {self.name} user: {e}"
            ) from e

        self.current_user = user
        return Identity(
            id=user.get("id"),
            username=user.get("username"),
            email=user.get("email") or user.get("commit_email") or user.get("public_email"),
            name=user.get("name"),
        )

    async def discover_projects(self) -> List[ProjectRef]:
        if not self.config.gitlab_project_ids:
            try:
                projects = await self._get_with_retry(
                    "/projects", OP_LIST_PROJECTS,
                    {"membership": "true", "per_page": PER_PAGE},
                )
            except Exception as e:
                if self.logger:
                    self.logger.warning("project_discovery_failed", error=str(e))
                return []
            return [self._project_ref(p) for p in projects or []]

        refs = []
        for project_id in self.config.gitlab_project_ids:
            try:
                project = await self._get_with_retry(f"/projects/{project_id}", OP_GET_PROJECT)
            except Exception as e:
                if self.logger:
                    self.logger.warning("project_lookup_failed", project=project_id, error=str(e))
                continue
            refs.append(self._project_ref(project))
        return refs

    @staticmethod
    def _project_ref(project: Dict[str, Any]) -> ProjectRef:
        return ProjectRef(
            id=project["id"],
            name=project.get("name") or str(project["id"]),
            extra=compact({
                "path": project.get("path_with_namespace") or project.get("path"),
                "web_url": project.get("web_url"),
            }),
        )

    def _author_params(self) -> Dict[str, Any]:
        user = self.current_user or {}
        if user.get("id") is not None:
            return {"author_id": user["id"]}
        if user.get("username"):
            return {"author_username": user["username"]}
        return {}

    async def fetch_commits(self, project: ProjectRef, window: DateWindow, parent=None) -> List[Dict]:
        return await self._get(
            f"/projects/{project.id}/repository/commits", OP_FETCH_COMMITS,
            {"since": isoformat_z(window.start), "until": isoformat_z(window.end), "per_page": PER_PAGE},
        )

    async def fetch_merge_requests(self, project: ProjectRef, window: DateWindow, parent=None) -> List[Dict]:
        return await self._get(
            f"/projects/{project.id}/merge_requests", OP_FETCH_MERGE_REQUESTS,
            {
                "created_after": isoformat_z(window.start),
                "created_before": isoformat_z(window.end),
                "state": "all",
                "per_page": PER_PAGE,
                **self._author_params(),
            },
        )

    async def fetch_issues(self, project: ProjectRef, window: DateWindow, parent=None) -> List[Dict]:
        return await self._get(
            f"/projects/{project.id}/issues", OP_FETCH_ISSUES,
            {
                "created_after": isoformat_z(window.start),
                "created_before": isoformat_z(window.end),
                "state": "all",
                "per_page": PER_PAGE,
                **self._author_params(),
            },
        )

    async def list_merge_requests_for_notes(self, project: ProjectRef, window: DateWindow, parent=None) -> List[Dict]:
        # a note created inside the window bumps its parent's updated_at
        return await self._get(
            f"/projects/{project.id}/merge_requests", OP_LIST_MR_PARENTS,
            {"state": "all", "updated_after": isoformat_z(window.start), "per_page": PER_PAGE},
        )

    async def list_issues_for_notes(self, project: ProjectRef, window: DateWindow, parent=None) -> List[Dict]:
        return await self._get(
            f"/projects/{project.id}/issues", OP_LIST_ISSUE_PARENTS,
            {"state": "all", "updated_after": isoformat_z(window.start), "per_page": PER_PAGE},
        )

    async def list_commits_for_comments(self, project: ProjectRef, window: DateWindow, parent=None) -> List[Dict]:
        return await self._get(
            f"/projects/{project.id}/repository/commits", OP_LIST_COMMIT_PARENTS,
            {"per_page": PER_PAGE},
        )

    async def fetch_merge_request_notes(self, project: ProjectRef, window: DateWindow, parent: Dict) -> List[Dict]:
        notes = await self._get(
            f"/projects/{project.id}/merge_requests/{parent['iid']}/notes", OP_FETCH_MR_NOTES,
            {"per_page": PER_PAGE},
        )
        return self._notes_in_window(notes, window, parent, "MergeRequest")

    async def fetch_issue_notes(self, project: ProjectRef, window: DateWindow, parent: Dict) -> List[Dict]:
        notes = await self._get(
            f"/projects/{project.id}/issues/{parent['iid']}/notes", OP_FETCH_ISSUE_NOTES,
            {"per_page": PER_PAGE},
        )
        return self._notes_in_window(notes, window, parent, "Issue")

    async def fetch_commit_comments(self, project: ProjectRef, window: DateWindow, parent: Dict) -> List[Dict]:
        comments = await self._get(
            f"/projects/{project.id}/repository/commits/{parent['id']}/comments",
            OP_FETCH_COMMIT_COMMENTS,
            {"per_page": PER_PAGE},
        )
        # commit comments carry no id of their own
        keyed = [
            {**comment, "id": comment.get("id") or f"{parent['id']}-{index}"}
            for index, comment in enumerate(comments or [])
        ]
        return self._notes_in_window(keyed, window, parent, "Commit")

    @staticmethod
    def _notes_in_window(
        notes: Optional[List[Dict]],
        window: DateWindow,
        parent: Dict,
        noteable_type: str,
    ) -> List[Dict]:
        kept = []
        for note in notes or []:
            if note.get("system"):
                continue
            if not window.contains(parse_timestamp(note["created_at"])):
                continue
            kept.append({
                **note,
                "noteable_type": note.get("noteable_type") or noteable_type,
                "noteable_id": note.get("noteable_id") or parent.get("id"),
                "web_url": f"{parent.get('web_url', '')}#note_{note['id']}",
            })
        return kept

    def adapters(self) -> List[EntityAdapter]:
        source = self.name
        adapters = [
            EntityAdapter(
                kind="commit",
                resource=ResourceNode(OP_FETCH_COMMITS, self.fetch_commits),
                normalize=normalize_commit,
                source=source,
            ),
            EntityAdapter(
                kind="merge_request",
                resource=ResourceNode(OP_FETCH_MERGE_REQUESTS, self.fetch_merge_requests),
                normalize=normalize_merge_request,
                filter_by_author=False,
                source=source,
            ),
            EntityAdapter(
                kind="issue",
                resource=ResourceNode(OP_FETCH_ISSUES, self.fetch_issues),
                normalize=normalize_issue,
                filter_by_author=False,
                source=source,
            ),
        ]

        if not self.config.fetch_notes:
            if self.logger:
                self.logger.log("notes_disabled", source=source)
            return adapters

        if self.config.fetch_mr_notes:
            adapters.append(EntityAdapter(
                kind="merge_request_comment",
                resource=ResourceNode(
                    OP_LIST_MR_PARENTS, self.list_merge_requests_for_notes,
                    child=ResourceNode(OP_FETCH_MR_NOTES, self.fetch_merge_request_notes),
                ),
                normalize=normalize_comment,
                source=source,
            ))
        adapters.append(EntityAdapter(
            kind="issue_comment",
            resource=ResourceNode(
                OP_LIST_ISSUE_PARENTS, self.list_issues_for_notes,
                child=ResourceNode(OP_FETCH_ISSUE_NOTES, self.fetch_issue_notes),
            ),
            normalize=normalize_comment,
            source=source,
        ))
        adapters.append(EntityAdapter(
            kind="commit_comment",
            resource=ResourceNode(
                OP_LIST_COMMIT_PARENTS, self.list_commits_for_comments,
                child=ResourceNode(OP_FETCH_COMMIT_COMMENTS, self.fetch_commit_comments),
            ),
            normalize=normalize_comment,
            source=source,
        ))
        return adapters

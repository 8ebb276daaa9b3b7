"""FastAPI mock GitLab server for testing the activity digest."""

import os
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from activity_digest.processor.normalizer import parse_timestamp


class MockGitLabData:
    """
    In-memory GitLab dataset.

    Notes and commit comments are keyed by (project_id, iid) and
    (project_id, sha) respectively.
    """

    def __init__(
        self,
        user: Optional[Dict[str, Any]] = None,
        projects: Optional[List[Dict[str, Any]]] = None,
        commits: Optional[Dict[int, List[Dict]]] = None,
        merge_requests: Optional[Dict[int, List[Dict]]] = None,
        issues: Optional[Dict[int, List[Dict]]] = None,
        mr_notes: Optional[Dict[Tuple[int, int], List[Dict]]] = None,
        issue_notes: Optional[Dict[Tuple[int, int], List[Dict]]] = None,
        commit_comments: Optional[Dict[Tuple[int, str], List[Dict]]] = None,
    ):
        self.user = user or {
            "id": 1, "username": "jdoe", "name": "Jane Doe", "email": "jane@example.com",
        }
        self.projects = projects or []
        self.commits = commits or {}
        self.merge_requests = merge_requests or {}
        self.issues = issues or {}
        self.mr_notes = mr_notes or {}
        self.issue_notes = issue_notes or {}
        self.commit_comments = commit_comments or {}


def _in_range(value: Optional[str], after: Optional[str], before: Optional[str]) -> bool:
    if value is None:
        return False
    moment = parse_timestamp(value)
    if after and moment < parse_timestamp(after):
        return False
    if before and moment > parse_timestamp(before):
        return False
    return True


def create_mock_gitlab(
    data: Optional[MockGitLabData] = None,
    failing_projects: Optional[Dict[int, int]] = None,
    failing_paths: Optional[Dict[str, int]] = None,
    flaky_paths: Optional[Dict[str, int]] = None,
    access_token: Optional[str] = None,
) -> FastAPI:
    """
    Create a FastAPI mock of the GitLab v4 API.

    Args:
        data: Dataset to serve
        failing_projects: project_id -> HTTP status returned for every
            request under /projects/{id}/
        failing_paths: exact request path -> HTTP status always returned
        flaky_paths: exact request path -> number of 503s before succeeding
        access_token: When set, requests without "Bearer <token>" get 401

    Returns:
        FastAPI application; `app.state.calls` counts requests per path
    """
    data = data or MockGitLabData()
    failing_projects = failing_projects or {}
    failing_paths = failing_paths or {}
    flaky_remaining = dict(flaky_paths or {})

    app = FastAPI(title="Mock GitLab API")
    app.state.calls = {}

    @app.middleware("http")
    async def inject_failures(request: Request, call_next):
        path = request.url.path
        app.state.calls[path] = app.state.calls.get(path, 0) + 1

        if access_token is not None:
            if request.headers.get("authorization") != f"Bearer {access_token}":
                return _error(401, "401 Unauthorized")

        if path in failing_paths:
            return _error(failing_paths[path], "Simulated error")

        if flaky_remaining.get(path, 0) > 0:
            flaky_remaining[path] -= 1
            return _error(503, "Simulated outage")

        for project_id, status in failing_projects.items():
            if path.startswith(f"/api/v4/projects/{project_id}/") or path == f"/api/v4/projects/{project_id}":
                return _error(status, "Simulated project failure")

        return await call_next(request)

    def _project(project_id: int) -> Dict[str, Any]:
        for project in data.projects:
            if project["id"] == project_id:
                return project
        raise HTTPException(status_code=404, detail="404 Project Not Found")

    def _by_author(items: List[Dict], request: Request) -> List[Dict]:
        author_id = request.query_params.get("author_id")
        if author_id is None:
            return items
        return [i for i in items if str((i.get("author") or {}).get("id")) == author_id]

    def _created_or_updated(items: List[Dict], request: Request) -> List[Dict]:
        params = request.query_params
        if "updated_after" in params:
            return [i for i in items if _in_range(i.get("updated_at"), params["updated_after"], None)]
        if "created_after" in params or "created_before" in params:
            return [
                i for i in items
                if _in_range(i.get("created_at"), params.get("created_after"), params.get("created_before"))
            ]
        return items

    @app.get("/api/v4/user")
    async def current_user():
        return data.user

    @app.get("/api/v4/projects")
    async def list_projects():
        return data.projects

    @app.get("/api/v4/projects/{project_id}")
    async def get_project(project_id: int):
        return _project(project_id)

    @app.get("/api/v4/projects/{project_id}/repository/commits")
    async def list_commits(project_id: int, request: Request):
        _project(project_id)
        commits = data.commits.get(project_id, [])
        since = request.query_params.get("since")
        until = request.query_params.get("until")
        if since or until:
            commits = [c for c in commits if _in_range(c.get("created_at"), since, until)]
        return commits

    @app.get("/api/v4/projects/{project_id}/repository/commits/{sha}/comments")
    async def list_commit_comments(project_id: int, sha: str):
        _project(project_id)
        return data.commit_comments.get((project_id, sha), [])

    @app.get("/api/v4/projects/{project_id}/merge_requests")
    async def list_merge_requests(project_id: int, request: Request):
        _project(project_id)
        items = data.merge_requests.get(project_id, [])
        return _by_author(_created_or_updated(items, request), request)

    @app.get("/api/v4/projects/{project_id}/merge_requests/{iid}/notes")
    async def list_merge_request_notes(project_id: int, iid: int):
        _project(project_id)
        return data.mr_notes.get((project_id, iid), [])

    @app.get("/api/v4/projects/{project_id}/issues")
    async def list_issues(project_id: int, request: Request):
        _project(project_id)
        items = data.issues.get(project_id, [])
        return _by_author(_created_or_updated(items, request), request)

    @app.get("/api/v4/projects/{project_id}/issues/{iid}/notes")
    async def list_issue_notes(project_id: int, iid: int):
        _project(project_id)
        return data.issue_notes.get((project_id, iid), [])

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "server": "mock-gitlab"}

    return app


def _error(status: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"message": detail})


def build_sample_data(day: date, projects: int = 3) -> MockGitLabData:
    """
    Deterministic dataset with activity for `day` by the default user plus
    one commit by somebody else per project.
    """
    base = datetime(day.year, day.month, day.day, 9, 0, tzinfo=timezone.utc)
    me = {"id": 1, "username": "jdoe", "name": "Jane Doe", "email": "jane@example.com"}
    other = {"id": 2, "username": "bob", "name": "Bob Smith", "email": "bob@example.com"}

    def stamp(offset_minutes: int) -> str:
        return (base + timedelta(minutes=offset_minutes)).isoformat().replace("+00:00", "Z")

    data = MockGitLabData(user=me)
    for index in range(1, projects + 1):
        project_id = 100 + index
        web_url = f"https://gitlab.example.com/group/project-{index}"
        data.projects.append({
            "id": project_id,
            "name": f"project-{index}",
            "path_with_namespace": f"group/project-{index}",
            "web_url": web_url,
        })
        sha = f"{index:02d}" + "a" * 38
        data.commits[project_id] = [
            {
                "id": sha, "short_id": sha[:8], "title": f"Fix bug {index}",
                "message": f"Fix bug {index}\n", "author_name": me["name"],
                "author_email": me["email"], "created_at": stamp(index),
                "web_url": f"{web_url}/-/commit/{sha}",
            },
            {
                "id": f"{index:02d}" + "b" * 38, "title": "Unrelated change",
                "author_name": other["name"], "author_email": other["email"],
                "created_at": stamp(30 + index), "web_url": f"{web_url}/-/commit/b",
            },
        ]
        mr = {
            "id": 1000 + index, "iid": index, "title": f"Feature {index}",
            "state": "opened", "author": me, "created_at": stamp(60 + index),
            "updated_at": stamp(120 + index), "web_url": f"{web_url}/-/merge_requests/{index}",
        }
        data.merge_requests[project_id] = [mr]
        data.mr_notes[(project_id, index)] = [
            {"id": 5000 + index, "body": "Looks good to me", "author": me,
             "created_at": stamp(90 + index), "system": False},
            {"id": 5100 + index, "body": "added 1 commit", "author": me,
             "created_at": stamp(91 + index), "system": True},
        ]
        issue = {
            "id": 2000 + index, "iid": index, "title": f"Bug report {index}",
            "state": "opened", "author": me, "labels": ["bug"],
            "created_at": stamp(150 + index), "updated_at": stamp(150 + index),
            "web_url": f"{web_url}/-/issues/{index}",
        }
        data.issues[project_id] = [issue]
    return data


def create_app() -> FastAPI:
    """
    Factory function for uvicorn --factory.

    Serves build_sample_data() for MOCK_DATE (default: today).
    """
    day = date.fromisoformat(os.getenv("MOCK_DATE", date.today().isoformat()))
    return create_mock_gitlab(
        build_sample_data(day, projects=int(os.getenv("MOCK_PROJECTS", 3))),
        access_token=os.getenv("MOCK_ACCESS_TOKEN"),
    )

"""Shared test fixtures."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import httpx
import pytest

from taskpilot.api import OrchestratorApi
from taskpilot.config import ClientConfig

TIMESTAMP = "2026-02-19T12:00:00"


class FakeOrchestrationApi:
    """In-memory stand-in for the remote orchestration service.

    Implements the approval transitions the real engine performs so that
    scenarios can be driven end to end through ``httpx.MockTransport``.
    """

    def __init__(self) -> None:
        self.tasks: dict[str, dict[str, Any]] = {}
        self.snapshots: dict[str, dict[str, Any]] = {}
        self.plans: dict[str, str] = {}
        self.reports: dict[str, dict[str, Any]] = {}
        self.projects: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.status_failures = 0
        # Statuses applied one per status request, after responding
        self.pending_statuses: dict[str, list[str]] = {}

    # -- setup helpers ---------------------------------------------------

    def add_project(self, project_id: str = "proj-1", **fields: Any) -> dict[str, Any]:
        project = {
            "id": project_id,
            "name": "shop-api",
            "repository_url": "git@github.com:acme/shop-api.git",
            "description": "Checkout service",
            "local_path": f"/srv/repos/{project_id}",
            "main_branch": "main",
            "context": {"tech_stack": ["fastapi", "postgres"]},
            "created_at": TIMESTAMP,
            "updated_at": TIMESTAMP,
        }
        project.update(fields)
        self.projects[project_id] = project
        return project

    def add_task(
        self, task_id: str = "task-1", status: str = "pending", project_id: str = "proj-1",
        **fields: Any,
    ) -> dict[str, Any]:
        task = {
            "id": task_id,
            "project_id": project_id,
            "description": "Add rate limiting to the login endpoint",
            "status": status,
            "priority": "medium",
            "created_at": TIMESTAMP,
            "updated_at": TIMESTAMP,
        }
        task.update(fields)
        self.tasks[task_id] = task
        self.set_status(task_id, status)
        return task

    def set_status(self, task_id: str, status: str, **fields: Any) -> None:
        self.tasks[task_id]["status"] = status
        snapshot = {
            "id": task_id,
            "status": status,
            "current_step": f"Step for {status}",
            "logs": [f"entered {status}"],
            "plan_available": task_id in self.plans,
            "report_available": task_id in self.reports,
            "error_message": None,
        }
        snapshot.update(fields)
        self.snapshots[task_id] = snapshot

    def status_requests(self, task_id: str) -> int:
        return sum(1 for r in self.requests if r.url.path == f"/api/status/{task_id}")

    # -- routing ---------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method

        if match := re.fullmatch(r"/api/status/([^/]+)", path):
            task_id = match.group(1)
            if self.status_failures:
                self.status_failures -= 1
                return httpx.Response(503, json={"detail": "Service unavailable"})
            if task_id not in self.snapshots:
                return httpx.Response(404, json={"detail": "Task not found"})
            response = httpx.Response(200, json=self.snapshots[task_id])
            queue = self.pending_statuses.get(task_id)
            if queue:
                self.set_status(task_id, queue.pop(0))
            return response

        if match := re.fullmatch(r"/api/tasks/([^/]+)/plan", path):
            task_id = match.group(1)
            if task_id not in self.plans:
                return httpx.Response(404, json={"detail": "Plan not found"})
            return httpx.Response(200, json={
                "task_id": task_id,
                "plan_content": self.plans[task_id],
                "status": self.tasks[task_id]["status"],
            })

        if match := re.fullmatch(r"/api/tasks/([^/]+)/report", path):
            task_id = match.group(1)
            if task_id not in self.reports:
                return httpx.Response(404, json={"detail": "Report not found"})
            return httpx.Response(200, json=self.reports[task_id])

        if match := re.fullmatch(r"/api/tasks/([^/]+)/approve", path):
            return self._approve(match.group(1), json.loads(request.content))

        if path == "/api/tasks" and method == "POST":
            body = json.loads(request.content)
            task_id = f"task-{len(self.tasks) + 1}"
            task = self.add_task(
                task_id, project_id=body["project_id"],
                description=body["description"], priority=body["priority"],
            )
            return httpx.Response(201, json=task)

        if path == "/api/tasks":
            return httpx.Response(200, json=list(self.tasks.values()))

        if match := re.fullmatch(r"/api/tasks/([^/]+)", path):
            task = self.tasks.get(match.group(1))
            if task is None:
                return httpx.Response(404, json={"detail": "Task not found"})
            return httpx.Response(200, json=task)

        if path == "/api/projects" and method == "POST":
            body = json.loads(request.content)
            project = self.add_project(f"proj-{len(self.projects) + 1}", **body)
            return httpx.Response(201, json=project)

        if path == "/api/projects":
            return httpx.Response(200, json=list(self.projects.values()))

        if match := re.fullmatch(r"/api/projects/([^/]+)", path):
            project_id = match.group(1)
            if project_id not in self.projects:
                return httpx.Response(404, json={"detail": "Project not found"})
            if method == "DELETE":
                del self.projects[project_id]
                return httpx.Response(204)
            return httpx.Response(200, json=self.projects[project_id])

        if path == "/api/user/repositories":
            return httpx.Response(200, json=[{
                "id": 7,
                "name": "shop-api",
                "full_name": "acme/shop-api",
                "description": None,
                "html_url": "https://github.com/acme/shop-api",
                "clone_url": "https://github.com/acme/shop-api.git",
                "ssh_url": "git@github.com:acme/shop-api.git",
                "default_branch": "main",
                "updated_at": TIMESTAMP,
            }])

        return httpx.Response(404, json={"detail": f"No route for {method} {path}"})

    def _approve(self, task_id: str, body: dict[str, Any]) -> httpx.Response:
        if task_id not in self.tasks:
            return httpx.Response(404, json={"detail": "Task not found"})
        if self.tasks[task_id]["status"] != "awaiting_approval":
            return httpx.Response(400, json={"detail": "Task is not awaiting approval"})
        if body["approved"]:
            self.set_status(task_id, "approved")
        elif body.get("feedback"):
            self.set_status(task_id, "planning")
        else:
            self.set_status(task_id, "rejected", error_message="Plan rejected by user")
            self.tasks[task_id]["error_message"] = "Plan rejected by user"
        return httpx.Response(200, json={"message": "ok"})


@pytest.fixture
def fake_server() -> FakeOrchestrationApi:
    return FakeOrchestrationApi()


@pytest.fixture
def api(fake_server: FakeOrchestrationApi) -> OrchestratorApi:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(fake_server.handle),
        base_url="http://orchestrator.test",
    )
    return OrchestratorApi(base_url="http://orchestrator.test", client=client)


@pytest.fixture
def client_config(tmp_path: Path) -> ClientConfig:
    return ClientConfig(
        project_dir=tmp_path,
        api_url="http://orchestrator.test",
        poll_interval_seconds=0.01,
        structured_log=False,
    )

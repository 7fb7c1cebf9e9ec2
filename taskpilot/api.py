"""Async client for the remote Task Orchestration API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
import pydantic
from pydantic import BaseModel

from .errors import NotFoundError, TransportError, ValidationError
from .models import (
    PlanDocument,
    Project,
    ReportDocument,
    Repository,
    Task,
    TaskPriority,
    TaskStatusSnapshot,
)

if TYPE_CHECKING:
    from .config import ClientConfig

logger = logging.getLogger("taskpilot")

ModelT = TypeVar("ModelT", bound=BaseModel)

MIN_DESCRIPTION_LENGTH = 10


def parse_tech_stack(raw: str | None) -> list[str]:
    """Split a comma-separated tech stack, dropping blanks."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _require(value: str | None, what: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{what} must not be empty")
    return value.strip()


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict) and body.get("detail") is not None:
        return str(body["detail"])
    return None


class OrchestratorApi:
    """Thin wrapper over one shared ``httpx.AsyncClient``.

    The underlying client (base URL, headers, timeout) is read-only after
    construction and safe to share between concurrent polling sessions.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        access_token: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        if client is None:
            headers = {"Content-Type": "application/json"}
            if access_token:
                headers["Authorization"] = f"Bearer {access_token}"
            client = httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=timeout)
        self._client = client

    @classmethod
    def from_config(cls, config: ClientConfig) -> OrchestratorApi:
        return cls(
            base_url=config.api_url,
            access_token=config.access_token,
            timeout=config.request_timeout_seconds,
        )

    async def __aenter__(self) -> OrchestratorApi:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        resource: tuple[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request and map failures onto the client error hierarchy.

        ``resource`` names what a 404 means, e.g. ``("Task", task_id)``.
        """
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404 and resource is not None:
                raise NotFoundError(*resource) from exc
            detail = _error_detail(exc.response)
            raise TransportError(
                f"{method} {path} failed with HTTP {status}" + (f": {detail}" if detail else ""),
                status_code=status,
                detail=detail,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc!r}") from exc
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate(response.json())
        except (ValueError, pydantic.ValidationError) as exc:
            raise TransportError(
                f"Malformed {model.__name__} response from {response.request.url.path}: {exc}"
            ) from exc

    @staticmethod
    def _parse_list(response: httpx.Response, model: type[ModelT]) -> list[ModelT]:
        try:
            items = response.json()
            if not isinstance(items, list):
                raise ValueError(f"expected a list, got {type(items).__name__}")
            return [model.model_validate(item) for item in items]
        except (ValueError, pydantic.ValidationError) as exc:
            raise TransportError(
                f"Malformed {model.__name__} list from {response.request.url.path}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Task status, plan, report, approval
    # ------------------------------------------------------------------

    async def get_status(self, task_id: str) -> TaskStatusSnapshot:
        """One status fetch. Never retries."""
        task_id = _require(task_id, "Task id")
        response = await self._request("GET", f"/api/status/{task_id}", resource=("Task", task_id))
        return self._parse(response, TaskStatusSnapshot)

    async def get_plan(self, task_id: str) -> PlanDocument | None:
        """Return the plan, or None while it is not ready yet."""
        task_id = _require(task_id, "Task id")
        try:
            response = await self._request(
                "GET", f"/api/tasks/{task_id}/plan", resource=("Plan", task_id),
            )
        except NotFoundError:
            return None
        return self._parse(response, PlanDocument)

    async def get_report(self, task_id: str) -> ReportDocument | None:
        """Return the completion report, or None while it is not ready yet."""
        task_id = _require(task_id, "Task id")
        try:
            response = await self._request(
                "GET", f"/api/tasks/{task_id}/report", resource=("Report", task_id),
            )
        except NotFoundError:
            return None
        return self._parse(response, ReportDocument)

    async def approve(self, task_id: str, approved: bool, feedback: str | None = None) -> None:
        """Answer a plan awaiting approval.

        approved=True proceeds to implementation; approved=False with feedback
        asks for a revised plan; approved=False without feedback rejects the task.
        """
        task_id = _require(task_id, "Task id")
        body: dict[str, Any] = {"approved": approved}
        if feedback is not None:
            body["feedback"] = _require(feedback, "Feedback")
        await self._request(
            "POST", f"/api/tasks/{task_id}/approve", resource=("Task", task_id), json=body,
        )
        logger.info(
            f"Task {task_id}: "
            + ("plan approved" if approved else "changes requested" if feedback else "plan rejected")
        )

    async def approve_plan(self, task_id: str) -> None:
        await self.approve(task_id, True)

    async def request_changes(self, task_id: str, feedback: str) -> None:
        await self.approve(task_id, False, _require(feedback, "Feedback"))

    async def reject_plan(self, task_id: str) -> None:
        await self.approve(task_id, False)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(
        self,
        project_id: str,
        description: str,
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        additional_context: str | None = None,
    ) -> Task:
        project_id = _require(project_id, "Project id")
        description = (description or "").strip()
        if len(description) < MIN_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Task description must be at least {MIN_DESCRIPTION_LENGTH} characters"
            )
        try:
            priority = TaskPriority(priority)
        except ValueError as exc:
            choices = ", ".join(p.value for p in TaskPriority)
            raise ValidationError(f"Priority must be one of: {choices}") from exc

        body: dict[str, Any] = {
            "project_id": project_id,
            "description": description,
            "priority": priority.value,
        }
        if additional_context and additional_context.strip():
            body["additional_context"] = additional_context.strip()

        response = await self._request("POST", "/api/tasks", json=body)
        task = self._parse(response, Task)
        logger.info(f"Created task {task.id} in project {project_id}")
        return task

    async def get_task(self, task_id: str) -> Task:
        task_id = _require(task_id, "Task id")
        response = await self._request("GET", f"/api/tasks/{task_id}", resource=("Task", task_id))
        return self._parse(response, Task)

    async def list_tasks(self, project_id: str | None = None) -> list[Task]:
        """List tasks, optionally only those of one project.

        The API returns every task; the project filter is applied here.
        """
        response = await self._request("GET", "/api/tasks")
        tasks = self._parse_list(response, Task)
        if project_id is not None:
            tasks = [t for t in tasks if t.project_id == project_id]
        return tasks

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(
        self,
        name: str,
        repository_url: str,
        description: str | None = None,
        tech_stack: list[str] | None = None,
        coding_style: str | None = None,
        test_framework: str | None = None,
    ) -> Project:
        body: dict[str, Any] = {
            "name": _require(name, "Project name"),
            "repository_url": _require(repository_url, "Repository URL"),
        }
        if description and description.strip():
            body["description"] = description.strip()

        context: dict[str, Any] = {}
        if tech_stack:
            context["tech_stack"] = tech_stack
        if coding_style:
            context["coding_style"] = coding_style
        if test_framework:
            context["test_framework"] = test_framework
        if context:
            body["context"] = context

        response = await self._request("POST", "/api/projects", json=body)
        project = self._parse(response, Project)
        logger.info(f"Created project {project.id} ({project.name})")
        return project

    async def list_projects(self) -> list[Project]:
        response = await self._request("GET", "/api/projects")
        return self._parse_list(response, Project)

    async def get_project(self, project_id: str) -> Project:
        project_id = _require(project_id, "Project id")
        response = await self._request(
            "GET", f"/api/projects/{project_id}", resource=("Project", project_id),
        )
        return self._parse(response, Project)

    async def delete_project(self, project_id: str) -> None:
        project_id = _require(project_id, "Project id")
        await self._request(
            "DELETE", f"/api/projects/{project_id}", resource=("Project", project_id),
        )
        logger.info(f"Deleted project {project_id}")

    # ------------------------------------------------------------------
    # GitHub
    # ------------------------------------------------------------------

    async def list_repositories(self, access_token: str) -> list[Repository]:
        """Repositories visible to an already-issued GitHub access token."""
        access_token = _require(access_token, "Access token")
        response = await self._request(
            "GET", "/api/user/repositories", params={"access_token": access_token},
        )
        return self._parse_list(response, Repository)

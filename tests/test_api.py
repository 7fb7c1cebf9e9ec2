"""Tests for the HTTP API wrapper (against an in-memory fake server)."""

from __future__ import annotations

import json

import httpx
import pytest

from taskpilot.api import OrchestratorApi, parse_tech_stack
from taskpilot.errors import NotFoundError, TransportError, ValidationError
from taskpilot.models import TaskPriority, TaskStatus


def _api_for(handler) -> OrchestratorApi:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://t")
    return OrchestratorApi(base_url="http://t", client=client)


class TestGetStatus:
    @pytest.mark.asyncio
    async def test_returns_snapshot(self, api, fake_server):
        fake_server.add_task("task-1", "planning")
        snap = await api.get_status("task-1")
        assert snap.status is TaskStatus.PLANNING
        assert snap.logs == ["entered planning"]
        assert snap.progress == 30

    @pytest.mark.asyncio
    async def test_unknown_task_raises_not_found(self, api):
        with pytest.raises(NotFoundError):
            await api.get_status("nope")

    @pytest.mark.asyncio
    async def test_empty_id_rejected_before_request(self, api, fake_server):
        with pytest.raises(ValidationError):
            await api.get_status("  ")
        assert fake_server.requests == []

    @pytest.mark.asyncio
    async def test_server_error_is_transport_error_with_detail(self, api, fake_server):
        fake_server.add_task("task-1")
        fake_server.status_failures = 1
        with pytest.raises(TransportError) as excinfo:
            await api.get_status("task-1")
        assert excinfo.value.status_code == 503
        assert excinfo.value.detail == "Service unavailable"

    @pytest.mark.asyncio
    async def test_network_failure_is_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError):
            await _api_for(handler).get_status("task-1")

    @pytest.mark.asyncio
    async def test_malformed_body_is_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(TransportError, match="Malformed"):
            await _api_for(handler).get_status("task-1")

    @pytest.mark.asyncio
    async def test_does_not_retry(self, api, fake_server):
        fake_server.add_task("task-1")
        fake_server.status_failures = 1
        with pytest.raises(TransportError):
            await api.get_status("task-1")
        assert fake_server.status_requests("task-1") == 1


class TestDocuments:
    @pytest.mark.asyncio
    async def test_plan_absent_means_not_ready(self, api, fake_server):
        fake_server.add_task("task-1", "planning")
        assert await api.get_plan("task-1") is None

    @pytest.mark.asyncio
    async def test_plan_present(self, api, fake_server):
        fake_server.add_task("task-1", "awaiting_approval")
        fake_server.plans["task-1"] = "# Plan\n\n1. Add middleware"
        plan = await api.get_plan("task-1")
        assert plan is not None
        assert plan.plan_content.startswith("# Plan")
        assert plan.status is TaskStatus.AWAITING_APPROVAL

    @pytest.mark.asyncio
    async def test_report(self, api, fake_server):
        fake_server.add_task("task-1", "completed")
        fake_server.reports["task-1"] = {
            "task_id": "task-1",
            "report_content": "# Report",
            "status": "completed",
            "branch_name": "task/rate-limit",
            "commit_hash": "abcdef0123456789",
        }
        report = await api.get_report("task-1")
        assert report is not None
        assert report.short_commit == "abcdef01"
        assert await api.get_report("task-2") is None


class TestApproval:
    @pytest.mark.asyncio
    async def test_approve_body(self, api, fake_server):
        fake_server.add_task("task-1", "awaiting_approval")
        await api.approve_plan("task-1")
        body = json.loads(fake_server.requests[-1].content)
        assert body == {"approved": True}
        assert fake_server.tasks["task-1"]["status"] == "approved"

    @pytest.mark.asyncio
    async def test_request_changes_sends_feedback(self, api, fake_server):
        fake_server.add_task("task-1", "awaiting_approval")
        await api.request_changes("task-1", "add tests")
        body = json.loads(fake_server.requests[-1].content)
        assert body == {"approved": False, "feedback": "add tests"}
        assert fake_server.tasks["task-1"]["status"] == "planning"

    @pytest.mark.asyncio
    async def test_reject_omits_feedback(self, api, fake_server):
        fake_server.add_task("task-1", "awaiting_approval")
        await api.reject_plan("task-1")
        body = json.loads(fake_server.requests[-1].content)
        assert body == {"approved": False}
        assert fake_server.tasks["task-1"]["status"] == "rejected"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("feedback", ["", "   "])
    async def test_blank_feedback_rejected_locally(self, api, fake_server, feedback):
        fake_server.add_task("task-1", "awaiting_approval")
        with pytest.raises(ValidationError):
            await api.request_changes("task-1", feedback)
        with pytest.raises(ValidationError):
            await api.approve("task-1", False, feedback)
        assert fake_server.requests == []

    @pytest.mark.asyncio
    async def test_server_refusal_propagates(self, api, fake_server):
        fake_server.add_task("task-1", "in_progress")
        with pytest.raises(TransportError) as excinfo:
            await api.approve_plan("task-1")
        assert excinfo.value.status_code == 400


class TestTasks:
    @pytest.mark.asyncio
    async def test_create_task(self, api, fake_server):
        task = await api.create_task(
            "proj-1", "  Add pagination to /api/orders  ", priority="high",
            additional_context="use cursor pagination",
        )
        body = json.loads(fake_server.requests[-1].content)
        assert body == {
            "project_id": "proj-1",
            "description": "Add pagination to /api/orders",
            "priority": "high",
            "additional_context": "use cursor pagination",
        }
        assert task.priority is TaskPriority.HIGH
        assert task.status is TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_short_description_rejected(self, api, fake_server):
        with pytest.raises(ValidationError, match="10 characters"):
            await api.create_task("proj-1", "fix it")
        assert fake_server.requests == []

    @pytest.mark.asyncio
    async def test_bad_priority_rejected(self, api):
        with pytest.raises(ValidationError, match="Priority"):
            await api.create_task("proj-1", "Add pagination to orders", priority="asap")

    @pytest.mark.asyncio
    async def test_list_tasks_filters_by_project(self, api, fake_server):
        fake_server.add_task("task-1", project_id="proj-1")
        fake_server.add_task("task-2", project_id="proj-2")
        assert [t.id for t in await api.list_tasks()] == ["task-1", "task-2"]
        assert [t.id for t in await api.list_tasks("proj-2")] == ["task-2"]

    @pytest.mark.asyncio
    async def test_get_task_not_found(self, api):
        with pytest.raises(NotFoundError, match="Task 'ghost' not found"):
            await api.get_task("ghost")


class TestProjects:
    @pytest.mark.asyncio
    async def test_create_project_with_context(self, api, fake_server):
        project = await api.create_project(
            "billing", "git@github.com:acme/billing.git",
            tech_stack=["django", "celery"], test_framework="pytest",
        )
        body = json.loads(fake_server.requests[-1].content)
        assert body["context"] == {"tech_stack": ["django", "celery"], "test_framework": "pytest"}
        assert "description" not in body
        assert project.context.tech_stack == ["django", "celery"]

    @pytest.mark.asyncio
    async def test_create_project_requires_name(self, api):
        with pytest.raises(ValidationError):
            await api.create_project(" ", "git@github.com:acme/billing.git")

    @pytest.mark.asyncio
    async def test_list_get_delete(self, api, fake_server):
        fake_server.add_project("proj-1")
        assert [p.id for p in await api.list_projects()] == ["proj-1"]
        assert (await api.get_project("proj-1")).name == "shop-api"
        await api.delete_project("proj-1")
        with pytest.raises(NotFoundError):
            await api.get_project("proj-1")

    @pytest.mark.asyncio
    async def test_list_repositories_passes_token(self, api, fake_server):
        repos = await api.list_repositories("gho_abc")
        assert repos[0].full_name == "acme/shop-api"
        assert fake_server.requests[-1].url.params["access_token"] == "gho_abc"


def test_bearer_token_header():
    api = OrchestratorApi(base_url="http://t", access_token="tok-123")
    assert api._client.headers["Authorization"] == "Bearer tok-123"
    assert str(api._client.base_url) == "http://t"


def test_parse_tech_stack():
    assert parse_tech_stack("react, fastapi ,, postgres ") == ["react", "fastapi", "postgres"]
    assert parse_tech_stack(None) == []

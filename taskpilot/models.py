"""Data models for the task orchestration API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class TaskStatus(str, Enum):
    PENDING = "pending"
    GIT_SYNC = "git_sync"
    PLANNING = "planning"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    TESTING = "testing"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def needs_approval(self) -> bool:
        """Only state that waits on a human decision before the engine continues."""
        return self is TaskStatus.AWAITING_APPROVAL


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.REJECTED})

# Statuses before implementation starts; no branch exists yet.
PRE_BRANCH_STATUSES = frozenset({
    TaskStatus.PENDING,
    TaskStatus.GIT_SYNC,
    TaskStatus.PLANNING,
    TaskStatus.AWAITING_APPROVAL,
    TaskStatus.APPROVED,
})


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ProjectContext(BaseModel):
    tech_stack: list[str] = Field(default_factory=list)
    coding_style: str | None = None
    test_framework: str | None = None


class Project(BaseModel):
    """A registered source repository that tasks apply to."""

    id: str
    name: str
    repository_url: str
    description: str | None = None
    local_path: str = ""
    main_branch: str = "main"
    context: ProjectContext = Field(default_factory=ProjectContext)
    created_at: datetime
    updated_at: datetime


class Task(BaseModel):
    """One unit of requested work. Mutated only by the remote engine."""

    id: str
    project_id: str
    description: str
    status: TaskStatus
    priority: TaskPriority = TaskPriority.MEDIUM
    plan_path: str | None = None
    report_path: str | None = None
    branch_name: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @model_validator(mode="after")
    def _check_lifecycle_fields(self) -> Task:
        if self.branch_name and self.status in PRE_BRANCH_STATUSES:
            raise ValueError(
                f"branch_name set while task is still {self.status.value}"
            )
        if self.error_message and self.status not in (TaskStatus.FAILED, TaskStatus.REJECTED):
            raise ValueError(
                f"error_message set on a {self.status.value} task"
            )
        return self


class TaskStatusSnapshot(BaseModel):
    """Point-in-time view of a task's progress. Each fetch replaces the last one.

    ``status`` stays a plain string when the server reports a status this
    client does not know; such a snapshot is non-terminal with progress 0.
    """

    id: str
    status: TaskStatus | str = Field(union_mode="left_to_right")
    current_step: str = ""
    progress_percentage: int | None = Field(default=None, ge=0, le=100)
    logs: list[str] = Field(default_factory=list)
    plan_available: bool = False
    report_available: bool = False
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.status, TaskStatus) and self.status.is_terminal

    @property
    def status_value(self) -> str:
        return self.status.value if isinstance(self.status, TaskStatus) else self.status

    @property
    def progress(self) -> int:
        """Server-reported percentage if present, otherwise the canonical phase value."""
        if self.progress_percentage is not None:
            return self.progress_percentage
        from .phases import derive_phase_progress

        return derive_phase_progress(self.status).percentage


class PlanDocument(BaseModel):
    task_id: str
    plan_content: str
    status: TaskStatus


class ReportDocument(BaseModel):
    task_id: str
    report_content: str
    status: TaskStatus
    branch_name: str = ""
    commit_hash: str = ""

    @property
    def short_commit(self) -> str:
        return self.commit_hash[:8]


class Repository(BaseModel):
    """A GitHub repository the signed-in user can register as a project."""

    id: int
    name: str
    full_name: str
    description: str | None = None
    html_url: str
    clone_url: str
    ssh_url: str
    default_branch: str = "main"
    updated_at: datetime | None = None

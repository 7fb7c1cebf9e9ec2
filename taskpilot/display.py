"""Plain-text rendering of tasks, projects, snapshots and documents."""

from __future__ import annotations

from pathlib import Path

from .models import Project, ReportDocument, Task, TaskStatus, TaskStatusSnapshot
from .phases import derive_phase_progress, status_label, timeline

RULE = "=" * 60

_TIMELINE_MARKS = {"done": "[x]", "current": "[>]", "pending": "[ ]"}


def _status_mark(status: TaskStatus | str) -> str:
    if status is TaskStatus.COMPLETED:
        return "DONE"
    if status in (TaskStatus.FAILED, TaskStatus.REJECTED):
        return "FAIL"
    return "...."


def format_progress_bar(percentage: int, width: int = 20) -> str:
    percentage = max(0, min(100, percentage))
    filled = round(width * percentage / 100)
    return f"[{'#' * filled}{'-' * (width - filled)}] {percentage:3d}%"


def format_timeline(status: TaskStatus | str) -> str:
    lines = []
    for index, entry in enumerate(timeline(status), start=1):
        lines.append(f"  {_TIMELINE_MARKS[entry.state]} {index}. {entry.label}")
    return "\n".join(lines)


def format_logs(logs: list[str]) -> str:
    if not logs:
        return "  No logs available yet"
    return "\n".join(f"  {line}" for line in logs)


def format_snapshot(snapshot: TaskStatusSnapshot, with_timeline: bool = True) -> str:
    """Full status view: header, progress, timeline, error, activity log."""
    lines = [
        RULE,
        f"Task {snapshot.id}: [{_status_mark(snapshot.status)}] {status_label(snapshot.status)}",
        RULE,
    ]
    if snapshot.current_step:
        lines.append(snapshot.current_step)
    lines.append(format_progress_bar(snapshot.progress))

    if with_timeline:
        lines.append("")
        lines.append("Progress timeline:")
        lines.append(format_timeline(snapshot.status))

    if snapshot.status in (TaskStatus.FAILED, TaskStatus.REJECTED):
        lines.append("")
        lines.append(f"Error: {snapshot.error_message or status_label(snapshot.status)}")

    available = [name for name, flag in (
        ("plan", snapshot.plan_available),
        ("report", snapshot.report_available),
    ) if flag]
    if available:
        lines.append("")
        lines.append(f"Available: {', '.join(available)}")

    lines.append("")
    lines.append("Activity log:")
    lines.append(format_logs(snapshot.logs))
    return "\n".join(lines)


def format_task_line(task: Task) -> str:
    progress = derive_phase_progress(task.status)
    line = (
        f"  [{_status_mark(task.status)}] {task.id}  {task.priority.value.upper():<6}  "
        f"{progress.label:<18} {progress.percentage:3d}%  {task.description}"
    )
    if task.branch_name:
        line += f"  ({task.branch_name})"
    if task.error_message:
        line += f"\n      Error: {task.error_message}"
    return line


def format_task(task: Task) -> str:
    lines = [
        RULE,
        task.description,
        RULE,
        f"Id:        {task.id}",
        f"Project:   {task.project_id}",
        f"Priority:  {task.priority.value.upper()}",
        f"Status:    {status_label(task.status)}",
        f"Created:   {task.created_at:%Y-%m-%d %H:%M}",
    ]
    if task.branch_name:
        lines.append(f"Branch:    {task.branch_name}")
    if task.completed_at:
        lines.append(f"Completed: {task.completed_at:%Y-%m-%d %H:%M}")
    if task.error_message:
        lines.append(f"Error:     {task.error_message}")
    return "\n".join(lines)


def format_project_line(project: Project) -> str:
    line = f"  {project.id}  {project.name}  ({project.main_branch})"
    stack = project.context.tech_stack
    if stack:
        extra = f" +{len(stack) - 3}" if len(stack) > 3 else ""
        line += f"  [{', '.join(stack[:3])}{extra}]"
    if project.description:
        line += f"\n      {project.description}"
    return line


def format_report_summary(report: ReportDocument) -> str:
    return "\n".join([
        RULE,
        f"Task {report.task_id}: {status_label(report.status)}",
        RULE,
        f"Branch: {report.branch_name or '-'}",
        f"Commit: {report.short_commit or '-'}",
    ])


def save_document(content: str, kind: str, task_id: str, directory: Path) -> Path:
    """Write a plan or report as ``<kind>-<task_id>.md`` and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{kind}-{task_id}.md"
    path.write_text(content)
    return path

"""CLI entry point: taskpilot projects|tasks|watch|plan|approve|..."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from .errors import TaskpilotError

if TYPE_CHECKING:
    from .api import OrchestratorApi
    from .config import ClientConfig

Handler = Callable[["OrchestratorApi", "ClientConfig", argparse.Namespace], Awaitable[int]]


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project-dir", "-p", dest="project", type=str, default=".",
        help="Directory holding taskpilot.toml (default: current dir)",
    )
    parser.add_argument("--api-url", dest="api_url", type=str, help="Orchestration API base URL")
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Verbose logging",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskpilot",
        description="Task orchestration client -- submit, review and follow AI coding tasks",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- projects ---
    cmd = subparsers.add_parser("projects", help="List projects")
    _add_common(cmd)

    cmd = subparsers.add_parser("project-create", help="Register a repository as a project")
    cmd.add_argument("--name", required=True, help="Project name")
    cmd.add_argument("--repo-url", dest="repository_url", required=True, help="Repository (SSH) URL")
    cmd.add_argument("--description", type=str, help="Project description")
    cmd.add_argument("--tech-stack", type=str, help="Comma-separated, e.g. 'fastapi, postgres'")
    cmd.add_argument("--coding-style", type=str, help="Coding style notes")
    cmd.add_argument("--test-framework", type=str, help="Test framework, e.g. pytest")
    _add_common(cmd)

    cmd = subparsers.add_parser("project-delete", help="Delete a project")
    cmd.add_argument("project_id", type=str)
    cmd.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    _add_common(cmd)

    cmd = subparsers.add_parser("repos", help="List GitHub repositories for an access token")
    cmd.add_argument("--token", type=str, help="GitHub access token (default: configured token)")
    _add_common(cmd)

    # --- tasks ---
    cmd = subparsers.add_parser("tasks", help="List tasks")
    cmd.add_argument("--project-id", dest="project_id", type=str, help="Only tasks of this project")
    _add_common(cmd)

    cmd = subparsers.add_parser("task-create", help="Submit a new task")
    cmd.add_argument("project_id", type=str)
    cmd.add_argument("description", type=str, help="What should be built (10+ characters)")
    cmd.add_argument(
        "--priority", choices=["low", "medium", "high", "urgent"], default="medium",
        help="Task priority (default: medium)",
    )
    cmd.add_argument("--context", dest="additional_context", type=str, help="Additional context")
    cmd.add_argument("--watch", action="store_true", help="Follow the task after creating it")
    _add_common(cmd)

    cmd = subparsers.add_parser("show", help="Show a task and its current status")
    cmd.add_argument("task_id", type=str)
    _add_common(cmd)

    cmd = subparsers.add_parser("status", help="Fetch a task's status once")
    cmd.add_argument("task_id", type=str)
    _add_common(cmd)

    cmd = subparsers.add_parser("watch", help="Poll a task until it finishes")
    cmd.add_argument("task_id", type=str)
    cmd.add_argument(
        "--interval", dest="poll_interval_seconds", type=float,
        help="Seconds between polls (default: 3)",
    )
    cmd.add_argument(
        "--interactive", "-i", action="store_true",
        help="Prompt for approval when the plan is ready",
    )
    cmd.add_argument(
        "--approval-timeout", dest="approval_timeout_seconds", type=float,
        help="Seconds to wait for an answer at the approval prompt (default: 300)",
    )
    _add_common(cmd)

    # --- plan / report ---
    for name, what in (("plan", "implementation plan"), ("report", "completion report")):
        cmd = subparsers.add_parser(name, help=f"Print the {what}")
        cmd.add_argument("task_id", type=str)
        cmd.add_argument("--save", action="store_true", help=f"Also write {name}-<id>.md")
        _add_common(cmd)

    # --- approval ---
    cmd = subparsers.add_parser("approve", help="Approve the plan and start implementation")
    cmd.add_argument("task_id", type=str)
    _add_common(cmd)

    cmd = subparsers.add_parser("request-changes", help="Ask for a revised plan")
    cmd.add_argument("task_id", type=str)
    cmd.add_argument("feedback", type=str)
    _add_common(cmd)

    cmd = subparsers.add_parser("reject", help="Reject the plan and cancel the task")
    cmd.add_argument("task_id", type=str)
    cmd.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    _add_common(cmd)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return _dispatch(COMMANDS[args.command], args)


def _dispatch(handler: Handler, args: argparse.Namespace) -> int:
    from .config import load_config
    from .logging_config import setup_logger

    try:
        config = load_config({
            "project": args.project,
            "api_url": args.api_url,
            "poll_interval_seconds": getattr(args, "poll_interval_seconds", None),
        })
        if args.verbose:
            config.log_level = "DEBUG"
        setup_logger(config)
        return asyncio.run(_with_api(handler, config, args))
    except TaskpilotError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


async def _with_api(handler: Handler, config: ClientConfig, args: argparse.Namespace) -> int:
    from .api import OrchestratorApi

    async with OrchestratorApi.from_config(config) as api:
        return await handler(api, config, args)


def _confirm(prompt: str) -> bool:
    return input(f"{prompt} (y/n): ").strip().lower() in ("y", "yes")


def _download_dir(config: ClientConfig) -> Path:
    return config.project_dir / config.download_dir


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

async def _projects(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    from .display import format_project_line

    projects = await api.list_projects()
    if not projects:
        print("No projects yet. Create one with `taskpilot project-create`.")
        return 0
    print(f"{len(projects)} project{'s' if len(projects) != 1 else ''}")
    for project in projects:
        print(format_project_line(project))
    return 0


async def _project_create(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    from .api import parse_tech_stack

    project = await api.create_project(
        name=args.name,
        repository_url=args.repository_url,
        description=args.description,
        tech_stack=parse_tech_stack(args.tech_stack),
        coding_style=args.coding_style,
        test_framework=args.test_framework,
    )
    print(f"Created project {project.id}: {project.name}")
    return 0


async def _project_delete(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    if not args.yes and not _confirm(f"Delete project {args.project_id}? This cannot be undone."):
        print("Aborted.")
        return 1
    await api.delete_project(args.project_id)
    print(f"Deleted project {args.project_id}")
    return 0


async def _repos(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    token = args.token or config.access_token
    if not token:
        print("Error: no access token (use --token or TASKPILOT_ACCESS_TOKEN)", file=sys.stderr)
        return 1
    for repo in await api.list_repositories(token):
        print(f"  {repo.full_name}  ({repo.default_branch})  {repo.ssh_url}")
    return 0


async def _tasks(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    from .display import format_task_line

    tasks = await api.list_tasks(args.project_id)
    print(f"{len(tasks)} task{'s' if len(tasks) != 1 else ''} total")
    for task in tasks:
        print(format_task_line(task))
    return 0


async def _task_create(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    task = await api.create_task(
        project_id=args.project_id,
        description=args.description,
        priority=args.priority,
        additional_context=args.additional_context,
    )
    print(f"Created task {task.id} ({task.status.value})")
    if args.watch:
        args.task_id = task.id
        args.interactive = False
        return await _watch(api, config, args)
    return 0


async def _show(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    from .display import format_snapshot, format_task

    task = await api.get_task(args.task_id)
    print(format_task(task))
    print()
    print(format_snapshot(await api.get_status(args.task_id)))
    return 0


async def _status(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    from .display import format_snapshot
    from .status import TaskStatusClient

    snapshot = await TaskStatusClient(api).fetch_once(args.task_id)
    print(format_snapshot(snapshot, with_timeline=False))
    return 0


async def _watch(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    from .models import TaskStatus
    from .watch import TaskWatcher

    final = await TaskWatcher(config, api).run(args.task_id, interactive=args.interactive)
    if final is None or not final.is_terminal:
        return 0
    if final.status is TaskStatus.COMPLETED and final.report_available:
        print(f"Report ready: taskpilot report {final.id}")
    return 0 if final.status is TaskStatus.COMPLETED else 1


async def _plan(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    from .display import save_document

    plan = await api.get_plan(args.task_id)
    if plan is None:
        print("Plan not available yet.")
        return 1
    print(plan.plan_content)
    if args.save:
        path = save_document(plan.plan_content, "plan", args.task_id, _download_dir(config))
        print(f"\nSaved {path}")
    return 0


async def _report(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    from .display import format_report_summary, save_document

    report = await api.get_report(args.task_id)
    if report is None:
        print("Report not available yet.")
        return 1
    print(format_report_summary(report))
    print()
    print(report.report_content)
    if args.save:
        path = save_document(report.report_content, "report", args.task_id, _download_dir(config))
        print(f"\nSaved {path}")
    return 0


async def _approve(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    await api.approve_plan(args.task_id)
    print("Plan approved. Implementation will start shortly.")
    return 0


async def _request_changes(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    await api.request_changes(args.task_id, args.feedback)
    print("Changes requested. The plan will be revised based on your feedback.")
    return 0


async def _reject(api: OrchestratorApi, config: ClientConfig, args: argparse.Namespace) -> int:
    if not args.yes and not _confirm("Reject this plan? The task will be cancelled."):
        print("Aborted.")
        return 1
    await api.reject_plan(args.task_id)
    print("Plan rejected. The task has been cancelled.")
    return 0


COMMANDS: dict[str, Handler] = {
    "projects": _projects,
    "project-create": _project_create,
    "project-delete": _project_delete,
    "repos": _repos,
    "tasks": _tasks,
    "task-create": _task_create,
    "show": _show,
    "status": _status,
    "watch": _watch,
    "plan": _plan,
    "report": _report,
    "approve": _approve,
    "request-changes": _request_changes,
    "reject": _reject,
}


def cli_entry() -> None:
    """Entry point for pyproject.toml console_scripts."""
    sys.exit(main())

"""Interactive watch loop: poll a task, render changes, answer plan approvals."""

from __future__ import annotations

import asyncio
import signal
import threading
from typing import TYPE_CHECKING

from .display import format_snapshot, save_document
from .errors import TaskpilotError, TransportError, ValidationError
from .logging_config import setup_logger
from .models import TaskStatus, TaskStatusSnapshot
from .status import PollingSession, TaskStatusClient

if TYPE_CHECKING:
    from .api import OrchestratorApi
    from .config import ClientConfig


class TaskWatcher:
    """Follow one task until it finishes, with graceful shutdown on Ctrl-C."""

    def __init__(self, config: ClientConfig, api: OrchestratorApi):
        self.config = config
        self.api = api
        self.logger = setup_logger(config)
        self.status_client = TaskStatusClient(api, config.poll_interval_seconds)
        self.interactive = False
        self._session: PollingSession | None = None
        self._last_rendered: tuple | None = None
        self._approval_handled = False

    async def run(self, task_id: str, interactive: bool = False) -> TaskStatusSnapshot | None:
        """Poll until terminal status or interruption; return the last snapshot."""
        self.interactive = interactive
        self._session = self.status_client.start_polling(
            task_id, self._on_update, on_error=self._on_error,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_shutdown_signal, sig)

        try:
            final = await self._session.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            self._session.cancel()

        if self._session.error is not None:
            raise self._session.error
        return final

    def _handle_shutdown_signal(self, sig: signal.Signals) -> None:
        self.logger.info(f"{sig.name} received, stopped watching")
        if self._session is not None:
            self._session.cancel()

    async def _on_update(self, snapshot: TaskStatusSnapshot) -> None:
        key = (snapshot.status, snapshot.current_step, len(snapshot.logs), snapshot.progress)
        if key != self._last_rendered:
            self._last_rendered = key
            print(format_snapshot(snapshot))
            print()

        if snapshot.status is not TaskStatus.AWAITING_APPROVAL:
            self._approval_handled = False
            return

        if not self._approval_handled:
            self._approval_handled = True
            if self.interactive:
                await self._ask_approval(snapshot)
            else:
                print(
                    f"Plan is awaiting approval. Review it with `taskpilot plan {snapshot.id}`, "
                    f"then run approve, request-changes or reject."
                )

    def _on_error(self, exc: Exception) -> None:
        # Not-found ends the session and is raised from run()
        if isinstance(exc, TransportError):
            print(f"  (status unavailable: {exc}; retrying)")

    async def _prompt(self, prompt: str) -> str | None:
        """One answer from the terminal, or None when none arrives in time."""
        timeout = self.config.approval_timeout_seconds
        try:
            return await asyncio.wait_for(_async_input(prompt), timeout=timeout)
        except asyncio.TimeoutError:
            print(f"\n[TIMEOUT] No response after {timeout:.0f}s.")
        except EOFError:
            print("\n(no input available)")
        return None

    async def _ask_approval(self, snapshot: TaskStatusSnapshot) -> None:
        """Show the plan and send the user's decision back to the server."""
        try:
            plan = await self.api.get_plan(snapshot.id)
            if plan is not None:
                path = save_document(
                    plan.plan_content, "plan", snapshot.id,
                    self.config.project_dir / self.config.download_dir,
                )
                print(plan.plan_content)
                print(f"\n(plan saved to {path})")

            print("\nOptions: [a]pprove  [c]hange  [r]eject  [s]kip")
            choice = ((await self._prompt("Choice: ")) or "").strip().lower()
            if choice.startswith("a"):
                await self.api.approve_plan(snapshot.id)
                print("Plan approved; implementation will start.")
                return
            if choice.startswith("c"):
                feedback = await self._prompt("Feedback: ")
                if feedback is not None:
                    await self.api.request_changes(snapshot.id, feedback)
                    print("Changes requested; the plan will be revised.")
                    return
            elif choice.startswith("r"):
                confirm = await self._prompt("Reject the plan and cancel the task? (y/n): ")
                if (confirm or "").strip().lower() in ("y", "yes"):
                    await self.api.reject_plan(snapshot.id)
                    print("Plan rejected.")
                    return
            print("Skipped; the task stays awaiting approval.")
        except ValidationError as e:
            print(f"Not sent: {e}")
            self._approval_handled = False
        except TaskpilotError as e:
            self.logger.error(f"Approval for task {snapshot.id} failed: {e}")
            self._approval_handled = False


async def _async_input(prompt: str) -> str:
    """Non-blocking input that works with asyncio.

    The line is read on a daemon thread, so an abandoned prompt never holds
    up interpreter exit or the event loop's executor shutdown.
    """
    loop = asyncio.get_running_loop()
    answer = loop.create_future()

    def _deliver(line: str | None, error: Exception | None) -> None:
        if answer.done():
            return
        if error is not None:
            answer.set_exception(error)
        else:
            answer.set_result(line)

    def _read() -> None:
        try:
            line, error = input(prompt), None
        except Exception as e:
            line, error = None, e
        try:
            loop.call_soon_threadsafe(_deliver, line, error)
        except RuntimeError:
            # Loop already closed; nobody is waiting for this answer
            pass

    threading.Thread(target=_read, name="taskpilot-input", daemon=True).start()
    return await answer

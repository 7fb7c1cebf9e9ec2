"""Task status client: one-shot fetches and per-task polling sessions."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from .errors import NotFoundError, TransportError, ValidationError
from .models import TaskStatus, TaskStatusSnapshot
from .phases import PhaseProgress, derive_phase_progress

if TYPE_CHECKING:
    from .api import OrchestratorApi

logger = logging.getLogger("taskpilot")

DEFAULT_POLL_INTERVAL = 3.0

UpdateCallback = Callable[[TaskStatusSnapshot], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], Union[None, Awaitable[None]]]


class PollingSession:
    """Tracks one task's status until it is terminal or the consumer cancels.

    At most one fetch is in flight. Ticks that fall due while a fetch or
    callback is still running are skipped, not queued. Once ``cancel()``
    returns, neither callback is invoked again.
    """

    def __init__(
        self,
        api: OrchestratorApi,
        task_id: str,
        interval: float,
        on_update: UpdateCallback,
        on_error: ErrorCallback | None = None,
    ):
        if not task_id or not task_id.strip():
            raise ValidationError("Task id must not be empty")
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        self.api = api
        self.task_id = task_id
        self.interval = interval
        self._on_update = on_update
        self._on_error = on_error
        self._log = logging.LoggerAdapter(logger, {"task_id": task_id})

        self.latest: TaskStatusSnapshot | None = None
        self.fetch_count = 0
        self.skipped_ticks = 0
        self.degraded = False
        self.last_error: TransportError | None = None
        self.error: NotFoundError | None = None

        self._cancelled = False
        self._task: asyncio.Task[None] | None = None

    # -- lifecycle -------------------------------------------------------

    def start(self) -> PollingSession:
        if self._task is not None:
            raise RuntimeError(f"Polling session for {self.task_id} already started")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"poll-{self.task_id}",
        )
        return self

    def cancel(self) -> None:
        """Stop polling. No fetch starts and no callback fires after this returns."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            self._log.debug(f"Polling for task {self.task_id} cancelled")

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> TaskStatusSnapshot | None:
        """Wait for the session to end and return the last delivered snapshot."""
        if self._task is None:
            raise RuntimeError("Polling session was never started")
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            # Only our own cancellation is swallowed; an outer cancel propagates.
            if not self._task.cancelled():
                raise
        return self.latest

    async def __aenter__(self) -> PollingSession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.cancel()
        await self.wait()

    # -- loop ------------------------------------------------------------

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._cancelled:
            tick_started = loop.time()
            if not await self._tick():
                return

            elapsed = loop.time() - tick_started
            missed = int(elapsed // self.interval)
            if missed:
                self.skipped_ticks += missed
                self._log.debug(
                    f"Task {self.task_id}: fetch took {elapsed:.2f}s, skipped {missed} tick(s)"
                )
            await asyncio.sleep(self.interval - (elapsed % self.interval))

    async def _tick(self) -> bool:
        """One fetch + delivery. Returns False when polling should stop."""
        self.fetch_count += 1
        self._log.debug(f"Fetching status for task {self.task_id} (#{self.fetch_count})")
        try:
            snapshot = await self.api.get_status(self.task_id)
        except NotFoundError as exc:
            if self._cancelled:
                return False
            self.error = exc
            self._log.error(f"Task {self.task_id} not found; polling stopped")
            await self._deliver_error(exc)
            return False
        except TransportError as exc:
            if self._cancelled:
                return False
            self.degraded = True
            self.last_error = exc
            if self._on_error is None:
                self._log.warning(f"Status fetch for task {self.task_id} failed: {exc}")
            await self._deliver_error(exc)
            return not self._cancelled

        if self._cancelled:
            return False

        previous = self.latest.status if self.latest is not None else None
        self.latest = snapshot
        self.degraded = False
        self.last_error = None
        if snapshot.status != previous:
            self._log.info(f"Task {self.task_id}: {snapshot.status_value}")

        await _call(self._on_update, snapshot)

        if snapshot.is_terminal:
            self._log.info(
                f"Task {self.task_id} reached terminal status {snapshot.status_value}; polling stopped"
            )
            return False
        return not self._cancelled

    async def _deliver_error(self, exc: Exception) -> None:
        if self._on_error is not None:
            await _call(self._on_error, exc)


async def _call(callback: Callable[[Any], Any], arg: Any) -> None:
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


class TaskStatusClient:
    """Live view of task status on top of :class:`OrchestratorApi`."""

    def __init__(self, api: OrchestratorApi, poll_interval: float = DEFAULT_POLL_INTERVAL):
        if poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {poll_interval}")
        self.api = api
        self.poll_interval = poll_interval

    async def fetch_once(self, task_id: str) -> TaskStatusSnapshot:
        """Latest snapshot. Raises NotFoundError / TransportError; no retries."""
        return await self.api.get_status(task_id)

    def start_polling(
        self,
        task_id: str,
        on_update: UpdateCallback,
        interval: float | None = None,
        on_error: ErrorCallback | None = None,
    ) -> PollingSession:
        """Start a polling session in the running event loop and return its handle."""
        session = PollingSession(
            self.api,
            task_id,
            interval if interval is not None else self.poll_interval,
            on_update,
            on_error,
        )
        return session.start()

    @staticmethod
    def derive_phase_progress(status: TaskStatus | str) -> PhaseProgress:
        return derive_phase_progress(status)

"""Life-cycle phase table: status -> display label and canonical progress."""

from __future__ import annotations

from typing import NamedTuple

from .models import TaskStatus


class PhaseProgress(NamedTuple):
    label: str
    percentage: int


class TimelineEntry(NamedTuple):
    status: TaskStatus
    label: str
    state: str  # "done" | "current" | "pending"


# Ordered happy path. failed/rejected are off the path and derive 0.
PHASES: list[tuple[TaskStatus, str, int]] = [
    (TaskStatus.PENDING, "Task Created", 0),
    (TaskStatus.GIT_SYNC, "Git Sync", 10),
    (TaskStatus.PLANNING, "Generating Plan", 30),
    (TaskStatus.AWAITING_APPROVAL, "Awaiting Approval", 40),
    (TaskStatus.APPROVED, "Plan Approved", 45),
    (TaskStatus.IN_PROGRESS, "Implementing Code", 60),
    (TaskStatus.TESTING, "Running Tests", 80),
    (TaskStatus.COMPLETED, "Completed", 100),
]

_OFF_PATH: dict[TaskStatus, PhaseProgress] = {
    TaskStatus.FAILED: PhaseProgress("Failed", 0),
    TaskStatus.REJECTED: PhaseProgress("Rejected", 0),
}

_BY_STATUS: dict[str, PhaseProgress] = {
    status.value: PhaseProgress(label, pct) for status, label, pct in PHASES
}
_BY_STATUS.update({status.value: phase for status, phase in _OFF_PATH.items()})


def _key(status: TaskStatus | str) -> str:
    return status.value if isinstance(status, TaskStatus) else str(status)


def derive_phase_progress(status: TaskStatus | str) -> PhaseProgress:
    """Map a status to its phase label and percentage.

    Unknown statuses map to 0 with a humanised label instead of raising.
    """
    key = _key(status)
    phase = _BY_STATUS.get(key)
    if phase is None:
        return PhaseProgress(key.replace("_", " ").title() or "Unknown", 0)
    return phase


def status_label(status: TaskStatus | str) -> str:
    return derive_phase_progress(status).label


def timeline(status: TaskStatus | str) -> list[TimelineEntry]:
    """Mark every happy-path phase as done, current or pending."""
    key = _key(status)
    order = [s.value for s, _, _ in PHASES]
    current = order.index(key) if key in order else -1

    entries = []
    for index, (phase_status, label, _) in enumerate(PHASES):
        if current < 0 or index > current:
            state = "pending"
        elif index < current:
            state = "done"
        else:
            state = "current"
        entries.append(TimelineEntry(phase_status, label, state))
    return entries

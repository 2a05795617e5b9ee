"""Data models for tasks, task results and run lifecycle state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from auditomatic.cost import CostBreakdown
from auditomatic.types import AuditomaticError, Usage

# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class Task(BaseModel):
    """One prompt to be sent to one model.

    Args:
        id: Unique identifier within a run.
        model: Model id, looked up in ``RunConfig.model_configs``.
        prompt: User message content.
        temperature: Sampling temperature.
        max_tokens: Maximum output tokens (provider default when ``None``).
        metadata: Extra fields carried through to the result untouched.
    """

    model_config = {"frozen": True}

    id: str
    model: str
    prompt: str
    temperature: float = 1.0
    max_tokens: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TaskStatus(StrEnum):
    """Outcome of a single task."""

    COMPLETED = "completed"
    FAILED = "failed"


class TaskResult(BaseModel):
    """Outcome of one task: the task's fields plus what happened.

    ``response``, ``usage`` and ``cost`` are set on success; ``error`` is set
    on failure. ``cost`` stays ``None`` when usage or pricing was unavailable.
    """

    model_config = {"frozen": True}

    id: str
    model: str
    prompt: str
    temperature: float = 1.0
    max_tokens: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    status: TaskStatus
    response: str | None = None
    usage: Usage | None = None
    cost: CostBreakdown | None = None
    error: str | None = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    elapsed: float = 0.0

    @classmethod
    def completed(
        cls,
        task: Task,
        *,
        response: str,
        usage: Usage | None,
        cost: CostBreakdown | None,
        elapsed: float = 0.0,
    ) -> TaskResult:
        """Build a successful result for *task*."""
        return cls(
            **task.model_dump(),
            status=TaskStatus.COMPLETED,
            response=response,
            usage=usage,
            cost=cost,
            elapsed=elapsed,
        )

    @classmethod
    def failed(cls, task: Task, *, error: str, elapsed: float = 0.0) -> TaskResult:
        """Build a failed result for *task*."""
        return cls(**task.model_dump(), status=TaskStatus.FAILED, error=error, elapsed=elapsed)

    @property
    def ok(self) -> bool:
        return self.status is TaskStatus.COMPLETED


# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------


class InvalidTransitionError(AuditomaticError):
    """Raised when a run status change is not allowed by the lifecycle."""


class RunStatus(StrEnum):
    """Lifecycle status of a run."""

    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({RunStatus.STOPPED, RunStatus.COMPLETED, RunStatus.FAILED})

_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.RUNNING: frozenset(
        {RunStatus.PAUSED, RunStatus.STOPPED, RunStatus.COMPLETED, RunStatus.FAILED}
    ),
    RunStatus.PAUSED: frozenset(
        {RunStatus.RUNNING, RunStatus.STOPPED, RunStatus.COMPLETED, RunStatus.FAILED}
    ),
    RunStatus.STOPPED: frozenset(),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}


def can_transition(current: RunStatus, target: RunStatus) -> bool:
    """Return whether *current* may move to *target*."""
    return target in _TRANSITIONS[current]


class ProgressSnapshot(BaseModel):
    """Point-in-time view of a run, safe to hand to callers."""

    model_config = {"frozen": True}

    status: RunStatus
    completed_tasks: int
    total_tasks: int
    progress: float
    pending_tasks: int = 0
    in_flight_tasks: int = 0
    start_time: float
    end_time: float | None = None
    paused_at: float | None = None
    error: str | None = None


@dataclass(slots=True)
class RunState:
    """Mutable record of one run, owned by the scheduler.

    Timestamps are Unix epoch seconds.
    """

    total_tasks: int
    status: RunStatus = RunStatus.RUNNING
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    completed_tasks: int = 0
    pending_tasks: int = 0
    in_flight_tasks: int = 0
    paused_at: float | None = None
    error: str | None = None

    @property
    def progress(self) -> float:
        """Percent of tasks settled; 0.0 for an empty run."""
        if self.total_tasks <= 0:
            return 0.0
        return self.completed_tasks / self.total_tasks * 100

    def transition(self, target: RunStatus) -> None:
        """Move to *target*, keeping ``paused_at`` / ``end_time`` in step.

        Raises:
            InvalidTransitionError: If the lifecycle forbids the change.
        """
        if not can_transition(self.status, target):
            raise InvalidTransitionError(f"Cannot move run from {self.status} to {target}")
        now = time.time()
        self.status = target
        if target is RunStatus.PAUSED:
            self.paused_at = now
        else:
            self.paused_at = None
        if target.terminal:
            self.end_time = now

    def record_settlement(self) -> None:
        """Count one settled task."""
        if self.completed_tasks >= self.total_tasks:
            raise AuditomaticError("Settled more tasks than were submitted")
        self.completed_tasks += 1

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            status=self.status,
            completed_tasks=self.completed_tasks,
            total_tasks=self.total_tasks,
            progress=self.progress,
            pending_tasks=self.pending_tasks,
            in_flight_tasks=self.in_flight_tasks,
            start_time=self.start_time,
            end_time=self.end_time,
            paused_at=self.paused_at,
            error=self.error,
        )


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


class RunResult(BaseModel):
    """Final outcome of a run.

    ``results`` is in settlement order, not submission order.
    """

    run_id: str
    status: RunStatus
    results: list[TaskResult] = Field(default_factory=list)
    total_tasks: int = 0
    start_time: float
    end_time: float | None = None
    error: str | None = None
    total_cost: float = 0.0
    cost_by_model: dict[str, float] = Field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    def summary(self) -> str:
        """Human-readable summary."""
        return (
            f"run {self.run_id} {self.status}: {len(self.results)}/{self.total_tasks} tasks, "
            f"{self.succeeded} succeeded, {self.failed} failed, cost ${self.total_cost:.6f}"
        )

"""Registry of runs owned by one scheduler."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from auditomatic.cancel import CancellationToken
from auditomatic.config import RunConfig
from auditomatic.cost import CostTracker
from auditomatic.models import RunState, RunStatus, TaskResult
from auditomatic.types import AuditomaticError


class RegistryError(AuditomaticError):
    """Raised on registry operations that fail (duplicate or missing runs)."""


class RunExistsError(RegistryError):
    """Raised when a run id is already registered."""


class RunNotFoundError(RegistryError):
    """Raised when a run id is not registered."""


@dataclass
class RunHandle:
    """Everything the scheduler keeps for one run.

    ``wakeup`` is set by control calls (stop / pause / resume) so the
    admission loop re-evaluates without polling.
    """

    run_id: str
    config: RunConfig
    state: RunState
    token: CancellationToken = field(default_factory=CancellationToken)
    results: list[TaskResult] = field(default_factory=list)
    costs: CostTracker = field(default_factory=CostTracker)
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def terminal(self) -> bool:
        return self.state.status.terminal


class RunRegistry:
    """Run handles by id, with fail-fast duplicate detection.

    Terminal runs stay registered until :meth:`remove` is called, so their
    progress remains queryable after completion.

    Args:
        name: Human-readable name for error messages.
    """

    def __init__(self, name: str = "run_registry") -> None:
        self._name = name
        self._runs: dict[str, RunHandle] = {}

    def register(self, handle: RunHandle) -> RunHandle:
        """Store *handle* under its run id.

        Raises:
            RunExistsError: If the id is already registered, terminal or not.
        """
        if handle.run_id in self._runs:
            raise RunExistsError(f"Run '{handle.run_id}' is already registered in {self._name}")
        self._runs[handle.run_id] = handle
        return handle

    def get(self, run_id: str) -> RunHandle:
        """Retrieve a handle by id.

        Raises:
            RunNotFoundError: If ``run_id`` is not found.
        """
        if run_id not in self._runs:
            raise RunNotFoundError(f"Run '{run_id}' not found in {self._name}")
        return self._runs[run_id]

    def find(self, run_id: str) -> RunHandle | None:
        """Return the handle for *run_id*, or ``None``."""
        return self._runs.get(run_id)

    def remove(self, run_id: str) -> RunHandle:
        """Drop a run from the registry and return its handle.

        Raises:
            RunNotFoundError: If ``run_id`` is not found.
        """
        handle = self.get(run_id)
        del self._runs[run_id]
        return handle

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._runs

    def __len__(self) -> int:
        return len(self._runs)

    def list_all(self) -> list[str]:
        """Return all registered run ids in registration order."""
        return list(self._runs)

    def list_with_status(self, *statuses: RunStatus) -> list[str]:
        """Return ids of runs currently in one of *statuses*."""
        return [rid for rid, h in self._runs.items() if h.state.status in statuses]

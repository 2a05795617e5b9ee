"""Run scheduler: bounded-concurrency admission loop with run lifecycle control.

Each run gets its own FIFO pending queue, an in-flight set capped at
``RunConfig.parallel``, a :class:`CancellationToken` and a wake-up event.
The loop admits tasks, then suspends on a fan-in wait until either one
in-flight task settles or a control call (stop / pause / resume) wakes it.

Usage::

    scheduler = RunScheduler()
    result = await scheduler.start_run("audit-1", RunConfig(tasks=tasks, parallel=4, ...))
    print(result.summary())
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from auditomatic.config import RunConfig
from auditomatic.executor import TaskExecutor
from auditomatic.log import LogContext
from auditomatic.models import (
    ProgressSnapshot,
    RunResult,
    RunState,
    RunStatus,
    Task,
    TaskResult,
)
from auditomatic.provider import CallProvider, ProviderClient
from auditomatic.registry import RunHandle, RunRegistry
from auditomatic.types import ConfigError

_log = logging.getLogger(__name__)

_ACTIVE = (RunStatus.RUNNING, RunStatus.PAUSED)


class RunScheduler:
    """Starts, controls and reports on batch runs.

    Parameters:
        client: Provider client shared by all runs. A :class:`ProviderClient`
            is created (and closed by :meth:`aclose`) when omitted.
        registry: Run registry; a private one is created when omitted.
    """

    def __init__(
        self,
        client: CallProvider | None = None,
        *,
        registry: RunRegistry | None = None,
    ) -> None:
        self._owned_client: ProviderClient | None = None
        if client is None:
            self._owned_client = ProviderClient()
            client = self._owned_client
        self._executor = TaskExecutor(client)
        self._registry = registry if registry is not None else RunRegistry()

    @property
    def registry(self) -> RunRegistry:
        return self._registry

    # -- start ---------------------------------------------------------------

    async def start_run(self, run_id: str, config: RunConfig | dict[str, Any]) -> RunResult:
        """Execute every task in *config* and return once the run is terminal.

        The run is registered before the first await, so control calls made
        right after scheduling this coroutine find it.

        Raises:
            ConfigError: If a dict config does not validate, ``parallel`` < 1
                or task ids repeat.
            RunExistsError: If *run_id* is already registered.
        """
        if not isinstance(config, RunConfig):
            try:
                config = RunConfig.model_validate(config)
            except ValidationError as exc:
                raise ConfigError(f"Invalid run config: {exc}") from exc
        config.validate_for_start()

        state = RunState(total_tasks=len(config.tasks), pending_tasks=len(config.tasks))
        handle = self._registry.register(RunHandle(run_id=run_id, config=config, state=state))

        with LogContext(run_id=run_id):
            _log.info(
                "Starting run %s: %d tasks, parallel=%d", run_id, state.total_tasks, config.parallel
            )
            try:
                await self._drive(handle)
            except asyncio.CancelledError:
                handle.token.cancel("start_run cancelled")
                self._finish(handle, RunStatus.STOPPED)
                raise
            except Exception as exc:
                _log.exception("Run %s failed", run_id)
                state.error = str(exc)
                self._finish(handle, RunStatus.FAILED)
            else:
                final = RunStatus.STOPPED if handle.token.cancelled else RunStatus.COMPLETED
                self._finish(handle, final)
            _log.info(
                "Run %s finished %s (%d/%d tasks)",
                run_id,
                state.status,
                state.completed_tasks,
                state.total_tasks,
            )
        return self._build_result(handle)

    async def _drive(self, handle: RunHandle) -> None:
        config = handle.config
        state = handle.state
        token = handle.token
        pending: deque[Task] = deque(config.tasks)
        in_flight: set[asyncio.Task[TaskResult]] = set()

        try:
            while in_flight or (pending and not token.cancelled):
                if not token.cancelled and state.status is RunStatus.RUNNING:
                    while pending and len(in_flight) < config.parallel:
                        task = pending.popleft()
                        in_flight.add(
                            asyncio.create_task(
                                self._executor.execute(task, config),
                                name=f"{handle.run_id}:{task.id}",
                            )
                        )
                        _log.debug("Admitted task %s", task.id)
                state.pending_tasks = len(pending)
                state.in_flight_tasks = len(in_flight)

                waiter = asyncio.create_task(handle.wakeup.wait())
                try:
                    done, _ = await asyncio.wait(
                        {*in_flight, waiter}, return_when=asyncio.FIRST_COMPLETED
                    )
                finally:
                    waiter.cancel()
                handle.wakeup.clear()

                for fut in done:
                    if fut is waiter:
                        continue
                    in_flight.discard(fut)
                    state.in_flight_tasks = len(in_flight)
                    await self._settle(handle, fut.result())
        finally:
            for fut in in_flight:
                fut.cancel()
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
            state.pending_tasks = len(pending)
            state.in_flight_tasks = 0

    async def _settle(self, handle: RunHandle, result: TaskResult) -> None:
        state = handle.state
        handle.results.append(result)
        handle.costs.record(result.model, result.cost)
        state.record_settlement()
        config = handle.config
        if config.on_task_complete is not None:
            await _notify(config.on_task_complete, result, "on_task_complete")
        if config.on_progress is not None:
            await _notify(config.on_progress, state.snapshot(), "on_progress")

    def _finish(self, handle: RunHandle, status: RunStatus) -> None:
        state = handle.state
        if state.status.terminal:
            # stop_run already moved the status; end time marks the end of the drain.
            state.end_time = time.time()
            return
        state.transition(status)

    def _build_result(self, handle: RunHandle) -> RunResult:
        state = handle.state
        return RunResult(
            run_id=handle.run_id,
            status=state.status,
            results=list(handle.results),
            total_tasks=state.total_tasks,
            start_time=state.start_time,
            end_time=state.end_time,
            error=state.error,
            total_cost=handle.costs.get_total(),
            cost_by_model=handle.costs.get_breakdown(),
        )

    # -- control -------------------------------------------------------------

    def stop_run(self, run_id: str) -> bool:
        """Stop admitting tasks for *run_id*; in-flight tasks are drained.

        Returns:
            ``True`` if the run was active and is now stopped.
        """
        handle = self._registry.find(run_id)
        if handle is None or handle.terminal:
            return False
        _log.info("Stopping run %s", run_id)
        handle.token.cancel("stop requested")
        handle.state.transition(RunStatus.STOPPED)
        handle.wakeup.set()
        return True

    def pause_run(self, run_id: str) -> bool:
        """Stop admitting new tasks until :meth:`resume_run`.

        Returns:
            ``True`` if the run was running and is now paused.
        """
        handle = self._registry.find(run_id)
        if handle is None or handle.state.status is not RunStatus.RUNNING:
            return False
        _log.info("Pausing run %s", run_id)
        handle.state.transition(RunStatus.PAUSED)
        handle.wakeup.set()
        return True

    def resume_run(self, run_id: str) -> bool:
        """Resume admission for a paused run.

        Returns:
            ``True`` if the run was paused and is now running.
        """
        handle = self._registry.find(run_id)
        if handle is None or handle.state.status is not RunStatus.PAUSED:
            return False
        _log.info("Resuming run %s", run_id)
        handle.state.transition(RunStatus.RUNNING)
        handle.wakeup.set()
        return True

    # -- queries -------------------------------------------------------------

    def get_progress(self, run_id: str) -> ProgressSnapshot | None:
        """Return a snapshot of *run_id*, or ``None`` if it is not registered."""
        handle = self._registry.find(run_id)
        if handle is None:
            return None
        return handle.state.snapshot()

    def get_results(self, run_id: str) -> list[TaskResult] | None:
        """Return results settled so far, or ``None`` if *run_id* is unknown."""
        handle = self._registry.find(run_id)
        if handle is None:
            return None
        return list(handle.results)

    def list_active_runs(self) -> list[str]:
        """Return ids of runs that are running or paused."""
        return self._registry.list_with_status(*_ACTIVE)

    def list_runs(self) -> list[str]:
        """Return ids of all retained runs, terminal ones included."""
        return self._registry.list_all()

    def clear_run(self, run_id: str) -> bool:
        """Forget a terminal run so its id can be reused.

        Returns:
            ``True`` if the run was removed; ``False`` if it is unknown or
            still active.
        """
        handle = self._registry.find(run_id)
        if handle is None or not handle.terminal:
            return False
        self._registry.remove(run_id)
        return True

    async def aclose(self) -> None:
        """Stop every active run and close the provider client if owned."""
        for run_id in self.list_active_runs():
            self.stop_run(run_id)
        if self._owned_client is not None:
            await self._owned_client.aclose()


async def _notify(callback: Callable[[Any], Any], payload: Any, name: str) -> None:
    """Invoke a caller callback; its errors are logged and never propagate."""
    try:
        rv = callback(payload)
        if inspect.isawaitable(rv):
            await rv
    except Exception:
        _log.exception("%s callback raised; continuing", name)

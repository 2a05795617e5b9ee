"""Per-task execution: resolve config, call the provider, price the result.

Every failure is converted into a failed :class:`TaskResult`; nothing
raised here reaches the admission loop except ``asyncio.CancelledError``.
"""

from __future__ import annotations

import asyncio
import logging
import time

from auditomatic.config import RunConfig
from auditomatic.cost import calculate_cost
from auditomatic.log import LogContext
from auditomatic.models import Task, TaskResult
from auditomatic.provider import CallProvider, ProviderRequest
from auditomatic.types import AuditomaticError

_log = logging.getLogger(__name__)


class ModelConfigNotFoundError(AuditomaticError):
    """Raised when a task names a model with no entry in ``model_configs``."""


class TaskTimeoutError(AuditomaticError):
    """Raised when a provider call exceeds the run's task timeout."""


class TaskExecutor:
    """Runs single tasks against a :class:`CallProvider`.

    Parameters:
        client: Provider client used for the outbound call.
    """

    __slots__ = ("_client",)

    def __init__(self, client: CallProvider) -> None:
        self._client = client

    @property
    def client(self) -> CallProvider:
        return self._client

    def build_request(self, task: Task, config: RunConfig) -> ProviderRequest:
        """Resolve *task*'s model entry into a provider request.

        Raises:
            ModelConfigNotFoundError: If the model is not configured.
        """
        entry = config.model_configs.get(task.model)
        if entry is None:
            raise ModelConfigNotFoundError(f"Model config not found for {task.model}")
        return ProviderRequest(
            provider=entry.provider,
            api_key=entry.api_key,
            model=task.model,
            prompt=task.prompt,
            temperature=task.temperature,
            max_tokens=task.max_tokens,
            cors_proxy=config.cors_proxy,
        )

    async def execute(self, task: Task, config: RunConfig) -> TaskResult:
        """Run *task* once and return its result, success or failure.

        Cancellation is checked at admission only; an admitted task always
        reaches the provider.
        """
        t0 = time.monotonic()
        with LogContext(task_id=task.id, model=task.model):
            try:
                request = self.build_request(task, config)
                coro = self._client.complete(request)
                if config.task_timeout > 0:
                    try:
                        response = await asyncio.wait_for(coro, timeout=config.task_timeout)
                    except TimeoutError as exc:
                        raise TaskTimeoutError(
                            f"Task timed out after {config.task_timeout:.1f}s"
                        ) from exc
                else:
                    response = await coro
            except Exception as exc:
                elapsed = time.monotonic() - t0
                _log.warning("Task %s failed: %s", task.id, exc)
                return TaskResult.failed(task, error=str(exc), elapsed=elapsed)

            elapsed = time.monotonic() - t0
            pricing = config.model_configs[task.model].pricing
            cost = calculate_cost(response.usage, pricing)
            _log.debug("Task %s completed in %.2fs", task.id, elapsed)
            return TaskResult.completed(
                task,
                response=response.text,
                usage=response.usage,
                cost=cost,
                elapsed=elapsed,
            )

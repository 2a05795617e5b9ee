"""Auditomatic: bounded-concurrency LLM batch runner."""

from auditomatic.cancel import CancellationToken, RunCancelledError
from auditomatic.config import (
    PROVIDER_PRESETS,
    ModelConfig,
    ProviderDescriptor,
    RunConfig,
    get_preset,
)
from auditomatic.cost import CostBreakdown, CostTracker, ModelPricing, calculate_cost
from auditomatic.executor import ModelConfigNotFoundError, TaskExecutor, TaskTimeoutError
from auditomatic.models import (
    InvalidTransitionError,
    ProgressSnapshot,
    RunResult,
    RunStatus,
    Task,
    TaskResult,
    TaskStatus,
)
from auditomatic.provider import (
    CallProvider,
    ProviderClient,
    ProviderError,
    ProviderRequest,
    ProviderResponse,
)
from auditomatic.registry import RegistryError, RunExistsError, RunNotFoundError
from auditomatic.scheduler import RunScheduler
from auditomatic.types import AuditomaticError, ConfigError, Usage

__version__ = "0.1.0"

__all__ = [
    "PROVIDER_PRESETS",
    "AuditomaticError",
    "CallProvider",
    "CancellationToken",
    "ConfigError",
    "CostBreakdown",
    "CostTracker",
    "InvalidTransitionError",
    "ModelConfig",
    "ModelConfigNotFoundError",
    "ModelPricing",
    "ProgressSnapshot",
    "ProviderClient",
    "ProviderDescriptor",
    "ProviderError",
    "ProviderRequest",
    "ProviderResponse",
    "RegistryError",
    "RunCancelledError",
    "RunConfig",
    "RunExistsError",
    "RunNotFoundError",
    "RunResult",
    "RunScheduler",
    "RunStatus",
    "Task",
    "TaskExecutor",
    "TaskResult",
    "TaskStatus",
    "TaskTimeoutError",
    "Usage",
    "calculate_cost",
    "get_preset",
]

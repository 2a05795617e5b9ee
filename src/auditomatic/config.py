"""Configuration types for Auditomatic runs and providers."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from auditomatic.cost import ModelPricing
from auditomatic.models import ProgressSnapshot, Task, TaskResult
from auditomatic.types import ConfigError

AuthType = Literal["bearer", "header", "none"]


class ProviderDescriptor(BaseModel):
    """How to reach an OpenAI-compatible chat-completions endpoint.

    Args:
        base_url: API root, e.g. ``"https://api.openai.com/v1"``.
        endpoint: Path appended to ``base_url`` for chat completions.
        auth_type: ``"bearer"`` sends ``"<auth_prefix> <key>"``, ``"header"``
            sends the raw key, ``"none"`` sends no credentials.
        auth_header: Header name that carries the credentials.
        auth_prefix: Scheme prefix used with ``"bearer"`` auth.
    """

    model_config = {"frozen": True}

    base_url: str
    endpoint: str = "/chat/completions"
    auth_type: AuthType = "bearer"
    auth_header: str = "Authorization"
    auth_prefix: str = "Bearer"

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("base_url cannot be empty")
        return v.rstrip("/")


class ModelConfig(BaseModel):
    """Everything needed to call one model id.

    Args:
        provider: Endpoint description.
        api_key: Credentials sent according to ``provider.auth_type``.
        pricing: Per-token pricing used for cost accounting.
    """

    model_config = {"frozen": True}

    provider: ProviderDescriptor
    api_key: str | None = None
    pricing: ModelPricing | None = None


ProgressCallback = Callable[[ProgressSnapshot], Any]
TaskCompleteCallback = Callable[[TaskResult], Any]


class RunConfig(BaseModel):
    """Configuration for a single batch run.

    Args:
        tasks: Tasks in submission order; admission follows this order.
        parallel: Maximum number of provider calls in flight at once.
        model_configs: Model id to provider / credentials / pricing.
        cors_proxy: Optional URL prefix every request is routed through.
        on_progress: Called with a ``ProgressSnapshot`` after each settlement.
        on_task_complete: Called with each ``TaskResult`` as it settles.
        task_timeout: Per-task timeout in seconds (0 = no timeout).
    """

    model_config = {"arbitrary_types_allowed": True}

    tasks: list[Task] = Field(default_factory=list)
    parallel: int = 1
    model_configs: dict[str, ModelConfig] = Field(default_factory=dict)
    cors_proxy: str | None = None
    on_progress: ProgressCallback | None = None
    on_task_complete: TaskCompleteCallback | None = None
    task_timeout: float = Field(default=0.0, ge=0)

    def validate_for_start(self) -> None:
        """Reject settings the scheduler cannot run with.

        Raises:
            ConfigError: If ``parallel`` is below 1 or task ids repeat.
        """
        if self.parallel < 1:
            raise ConfigError(f"parallel must be >= 1, got {self.parallel}")
        seen: set[str] = set()
        for task in self.tasks:
            if task.id in seen:
                raise ConfigError(f"Duplicate task id: {task.id!r}")
            seen.add(task.id)


# ---------------------------------------------------------------------------
# Provider presets
# ---------------------------------------------------------------------------

PROVIDER_PRESETS: dict[str, ProviderDescriptor] = {
    "openai": ProviderDescriptor(base_url="https://api.openai.com/v1"),
    "openrouter": ProviderDescriptor(base_url="https://openrouter.ai/api/v1"),
    "ollama": ProviderDescriptor(base_url="http://localhost:11434/v1", auth_type="none"),
}


def get_preset(name: str) -> ProviderDescriptor:
    """Return a built-in provider descriptor by name.

    Raises:
        ConfigError: If *name* is not a known preset.
    """
    try:
        return PROVIDER_PRESETS[name]
    except KeyError:
        available = sorted(PROVIDER_PRESETS)
        raise ConfigError(f"Unknown provider preset '{name}'. Available: {available}") from None


# ---------------------------------------------------------------------------
# Environment settings
# ---------------------------------------------------------------------------


@dataclass
class Settings:
    """Runtime defaults, loaded from environment variables."""

    parallel: int = int(os.getenv("AUDITOMATIC_PARALLEL", "4"))
    request_timeout: float = float(os.getenv("AUDITOMATIC_REQUEST_TIMEOUT", "60"))
    task_timeout: float = float(os.getenv("AUDITOMATIC_TASK_TIMEOUT", "0"))
    cors_proxy: str | None = os.getenv("AUDITOMATIC_CORS_PROXY") or None


settings = Settings()
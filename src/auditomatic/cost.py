"""Cost calculation and per-run cost tracking for LLM calls.

``calculate_cost`` is a pure function from token usage and per-token
pricing to a :class:`CostBreakdown`. ``CostTracker`` folds breakdowns of
one run into a total and a per-model view.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from auditomatic.types import Usage

logger = logging.getLogger(__name__)


class ModelPricing(BaseModel):
    """Per-token prices for one model. A missing rate counts as 0."""

    model_config = {"frozen": True}

    input_cost_per_token: float | None = Field(default=None, ge=0)
    output_cost_per_token: float | None = Field(default=None, ge=0)


class CostBreakdown(BaseModel):
    """Cost of a single call, alongside the token counts it was computed from."""

    model_config = {"frozen": True}

    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


def calculate_cost(usage: Usage | None, pricing: ModelPricing | None) -> CostBreakdown | None:
    """Compute the cost of one call.

    Args:
        usage: Token counts reported by the provider.
        pricing: Per-token rates for the model that served the call.

    Returns:
        The breakdown, or ``None`` when either input is missing.
    """
    if usage is None or pricing is None:
        return None

    input_cost = usage.input_tokens * (pricing.input_cost_per_token or 0.0)
    output_cost = usage.output_tokens * (pricing.output_cost_per_token or 0.0)
    return CostBreakdown(
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=input_cost + output_cost,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        total_tokens=usage.total_tokens,
    )


class CostTracker:
    """Accumulates call costs for one run.

    Owned by a single run's admission loop, so no locking is done.
    """

    def __init__(self) -> None:
        self._by_model: dict[str, float] = {}
        self._total = 0.0
        self._calls = 0

    def record(self, model: str, cost: CostBreakdown | None) -> None:
        """Add one call's cost. Calls without a breakdown are counted as free."""
        if cost is None:
            logger.debug("No cost available for model %r; recorded as 0", model)
            cost_value = 0.0
        else:
            cost_value = cost.total_cost
        self._by_model[model] = self._by_model.get(model, 0.0) + cost_value
        self._total += cost_value
        self._calls += 1

    @property
    def calls(self) -> int:
        """Number of calls recorded."""
        return self._calls

    def get_total(self) -> float:
        """Return total cost across all recorded calls."""
        return self._total

    def get_breakdown(self) -> dict[str, float]:
        """Return per-model cost totals."""
        return dict(self._by_model)

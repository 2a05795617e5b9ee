"""Core shared types for Auditomatic."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel


class AuditomaticError(Exception):
    """Base exception for all Auditomatic errors."""


class ConfigError(AuditomaticError):
    """Raised when run or model configuration is invalid."""


class Usage(BaseModel):
    """Token usage statistics from an LLM call.

    Args:
        input_tokens: Number of tokens in the prompt.
        output_tokens: Number of tokens in the completion.
        total_tokens: Total tokens consumed, as reported by the provider.
    """

    model_config = {"frozen": True}

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any] | None) -> Usage | None:
        """Build a ``Usage`` from an OpenAI-style ``usage`` object.

        Reads ``prompt_tokens`` / ``completion_tokens`` / ``total_tokens``.
        Missing or null counts become 0. Returns ``None`` when *raw* is
        ``None`` or not a mapping.
        """
        if not isinstance(raw, Mapping):
            return None
        return cls(
            input_tokens=int(raw.get("prompt_tokens") or 0),
            output_tokens=int(raw.get("completion_tokens") or 0),
            total_tokens=int(raw.get("total_tokens") or 0),
        )

"""YAML model-config loader with variable substitution.

Loads model definitions from YAML, supporting ``${ENV_VAR}`` (environment)
and ``${vars.KEY}`` (internal) substitution so API keys never have to be
written into the file.

Example file::

    vars:
      price_in: 0.00000015
    providers:
      local:
        base_url: http://localhost:11434/v1
        auth_type: none
    models:
      gpt-4o-mini:
        provider: openai            # preset name, providers: entry, or mapping
        api_key: ${OPENAI_API_KEY}
        pricing:
          input_cost_per_token: ${vars.price_in}
          output_cost_per_token: 0.0000006
      llama3.2:
        provider: local
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from auditomatic.config import PROVIDER_PRESETS, ModelConfig, ProviderDescriptor
from auditomatic.types import AuditomaticError

_VAR_RE = re.compile(r"\$\{([^}]+)\}")


class LoaderError(AuditomaticError):
    """Raised for YAML loading or validation errors."""


# ---------------------------------------------------------------------------
# Variable substitution
# ---------------------------------------------------------------------------


def _substitute(value: Any, env: dict[str, Any], vars_: dict[str, Any]) -> Any:
    """Recursively substitute ``${ENV_VAR}`` and ``${vars.KEY}`` in *value*."""
    if isinstance(value, str):
        # Full-string match keeps the referenced value's type.
        m = _VAR_RE.fullmatch(value)
        if m:
            return _resolve_ref(m.group(1), env, vars_)
        return _VAR_RE.sub(lambda m: str(_resolve_ref(m.group(1), env, vars_)), value)
    if isinstance(value, dict):
        return {k: _substitute(v, env, vars_) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute(v, env, vars_) for v in value]
    return value


def _resolve_ref(ref: str, env: dict[str, Any], vars_: dict[str, Any]) -> Any:
    """Resolve a single ``${ref}``; unknown references are left as written."""
    if ref.startswith("vars."):
        key = ref[5:]
        if key in vars_:
            return vars_[key]
        return f"${{{ref}}}"
    val = env.get(ref)
    if val is not None:
        return val
    return f"${{{ref}}}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load and substitute a YAML file, returning the raw dict."""
    p = Path(path)
    if not p.exists():
        raise LoaderError(f"YAML file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise LoaderError(f"Invalid YAML in {p}: {exc}") from exc
    if not isinstance(data, dict):
        raise LoaderError(f"Expected YAML dict, got {type(data).__name__}")
    vars_ = data.pop("vars", {}) or {}
    return _substitute(data, dict(os.environ), vars_)  # type: ignore[return-value]


def _resolve_provider(
    model_id: str, ref: Any, custom: dict[str, ProviderDescriptor]
) -> ProviderDescriptor:
    if isinstance(ref, dict):
        try:
            return ProviderDescriptor(**ref)
        except ValidationError as exc:
            raise LoaderError(f"Model '{model_id}': invalid provider: {exc}") from exc
    if isinstance(ref, str):
        if ref in custom:
            return custom[ref]
        if ref in PROVIDER_PRESETS:
            return PROVIDER_PRESETS[ref]
        known = sorted({*custom, *PROVIDER_PRESETS})
        raise LoaderError(f"Model '{model_id}': unknown provider '{ref}'. Known: {known}")
    raise LoaderError(f"Model '{model_id}': 'provider' must be a name or a mapping")


def parse_model_configs(data: dict[str, Any]) -> dict[str, ModelConfig]:
    """Build ``model_configs`` from an already-loaded ``{providers, models}`` dict."""
    custom: dict[str, ProviderDescriptor] = {}
    for name, entry in (data.get("providers") or {}).items():
        if not isinstance(entry, dict):
            raise LoaderError(f"Provider '{name}' must be a mapping")
        try:
            custom[name] = ProviderDescriptor(**entry)
        except ValidationError as exc:
            raise LoaderError(f"Provider '{name}' is invalid: {exc}") from exc

    models = data.get("models")
    if not isinstance(models, dict) or not models:
        raise LoaderError("Config must define a non-empty 'models' mapping")

    configs: dict[str, ModelConfig] = {}
    for model_id, entry in models.items():
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            raise LoaderError(f"Model '{model_id}' must be a mapping")
        entry = dict(entry)
        provider = _resolve_provider(model_id, entry.pop("provider", "openai"), custom)
        api_key = entry.get("api_key")
        if isinstance(api_key, str) and _VAR_RE.fullmatch(api_key):
            # Unset environment variable; send no credentials rather than the placeholder.
            entry["api_key"] = None
        try:
            configs[str(model_id)] = ModelConfig(provider=provider, **entry)
        except ValidationError as exc:
            raise LoaderError(f"Model '{model_id}' is invalid: {exc}") from exc
    return configs


def load_model_configs(path: str | Path) -> dict[str, ModelConfig]:
    """Load ``model_configs`` for a run from a YAML file.

    Raises:
        LoaderError: On a missing file, bad YAML, or invalid entries.
    """
    return parse_model_configs(load_yaml(path))

"""Batch task files: load tasks from JSON, JSONL or CSV, write results back out.

Usage::

    tasks = load_tasks("prompts.jsonl")
    result = await scheduler.start_run("audit-1", RunConfig(tasks=tasks, ...))
    Path("results.jsonl").write_text(results_to_jsonl(result.results))
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Sequence
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from auditomatic.models import Task, TaskResult
from auditomatic.types import AuditomaticError

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class BatchError(AuditomaticError):
    """Raised for unreadable or invalid batch files."""


# ---------------------------------------------------------------------------
# Input format
# ---------------------------------------------------------------------------


class InputFormat(StrEnum):
    """Supported batch input formats."""

    JSON = "json"
    CSV = "csv"
    JSONL = "jsonl"


_TASK_FIELDS = ("id", "model", "prompt", "temperature", "max_tokens")


def _detect_format(path: Path) -> InputFormat:
    """Detect input format from file extension."""
    suffix = path.suffix.lower()
    if suffix == ".jsonl":
        return InputFormat.JSONL
    if suffix == ".csv":
        return InputFormat.CSV
    if suffix == ".json":
        return InputFormat.JSON
    raise BatchError(f"Unsupported file extension: {suffix}")


def _load_json(text: str) -> list[dict[str, Any]]:
    data = json.loads(text)
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("tasks"), list):
        return data["tasks"]
    raise BatchError("JSON input must be a list of objects or an object with a 'tasks' list")


def _load_jsonl(text: str) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for i, line in enumerate(text.strip().splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as exc:
            raise BatchError(f"Invalid JSON on line {i}: {exc}") from exc
        if not isinstance(obj, dict):
            raise BatchError(f"Line {i} is not a JSON object")
        rows.append(obj)
    return rows


def _load_csv(text: str) -> list[dict[str, Any]]:
    reader = csv.DictReader(io.StringIO(text))
    # Empty CSV cells mean "not given", not the empty string.
    return [{k: v for k, v in row.items() if v != ""} for row in reader]


def _row_to_task(row: dict[str, Any], idx: int, default_model: str | None) -> Task:
    if not isinstance(row, dict):
        raise BatchError(f"Row {idx} is not an object")
    if "prompt" not in row:
        raise BatchError(f"Row {idx} missing required key 'prompt'")
    model = row.get("model") or default_model
    if not model:
        raise BatchError(f"Row {idx} missing required key 'model'")
    fields: dict[str, Any] = {
        "id": str(row.get("id", idx)),
        "model": str(model),
        "prompt": str(row["prompt"]),
    }
    if row.get("temperature") is not None:
        fields["temperature"] = row["temperature"]
    if row.get("max_tokens") is not None:
        fields["max_tokens"] = row["max_tokens"]
    meta = {k: v for k, v in row.items() if k not in _TASK_FIELDS and k != "metadata"}
    if isinstance(row.get("metadata"), dict):
        meta.update(row["metadata"])
    try:
        return Task(**fields, metadata=meta)
    except ValidationError as exc:
        raise BatchError(f"Row {idx} is not a valid task: {exc}") from exc


def load_tasks(
    path: str | Path,
    *,
    fmt: InputFormat | None = None,
    default_model: str | None = None,
) -> list[Task]:
    """Load tasks from a file.

    Parameters:
        path: Path to the input file.
        fmt: Force a specific format (auto-detected from extension if ``None``).
        default_model: Model used for rows that do not name one.

    Returns:
        Tasks in file order. Row ids fall back to the 1-based row number;
        columns other than the task fields are kept in ``metadata``.

    Raises:
        BatchError: On missing file, invalid format, or missing keys.
    """
    p = Path(path)
    if not p.exists():
        raise BatchError(f"File not found: {p}")

    detected = fmt or _detect_format(p)
    text = p.read_text(encoding="utf-8")

    loaders = {
        InputFormat.JSON: _load_json,
        InputFormat.JSONL: _load_jsonl,
        InputFormat.CSV: _load_csv,
    }
    try:
        rows = loaders[detected](text)
    except json.JSONDecodeError as exc:
        raise BatchError(f"Invalid JSON in {p}: {exc}") from exc
    return [_row_to_task(row, idx, default_model) for idx, row in enumerate(rows, 1)]


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

_CSV_FIELDS = [
    "id",
    "model",
    "status",
    "response",
    "error",
    "input_tokens",
    "output_tokens",
    "total_tokens",
    "total_cost",
    "elapsed",
    "completed_at",
]


def results_to_jsonl(results: Sequence[TaskResult]) -> str:
    """Serialize task results to a JSONL string."""
    lines = [r.model_dump_json(exclude_none=True) for r in results]
    return "\n".join(lines) + "\n" if lines else ""


def results_to_csv(results: Sequence[TaskResult]) -> str:
    """Serialize task results to a CSV string (one flat row per result)."""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_CSV_FIELDS)
    writer.writeheader()
    for r in results:
        usage = r.usage
        writer.writerow(
            {
                "id": r.id,
                "model": r.model,
                "status": str(r.status),
                "response": r.response or "",
                "error": r.error or "",
                "input_tokens": usage.input_tokens if usage else "",
                "output_tokens": usage.output_tokens if usage else "",
                "total_tokens": usage.total_tokens if usage else "",
                "total_cost": r.cost.total_cost if r.cost else "",
                "elapsed": f"{r.elapsed:.3f}",
                "completed_at": r.completed_at.isoformat(),
            }
        )
    return buf.getvalue()

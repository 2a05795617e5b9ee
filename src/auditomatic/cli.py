"""Auditomatic CLI: run batches of prompts against LLM providers.

Entry point for the ``auditomatic`` command.

Usage::

    auditomatic run prompts.jsonl --models models.yaml --parallel 8
    auditomatic run prompts.csv -M models.yaml -o results.csv --timeout 30
    auditomatic --log-level INFO --json-logs run prompts.json -M models.yaml
    auditomatic models models.yaml
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from auditomatic.batch import load_tasks, results_to_csv, results_to_jsonl
from auditomatic.config import ModelConfig, RunConfig, settings
from auditomatic.loader import LoaderError, load_model_configs
from auditomatic.log import configure_logging
from auditomatic.models import ProgressSnapshot, RunResult, RunStatus
from auditomatic.provider import ProviderClient
from auditomatic.scheduler import RunScheduler
from auditomatic.types import AuditomaticError

app = typer.Typer(
    name="auditomatic",
    help="Auditomatic: bounded-concurrency LLM batch runner.",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)."),
    ] = "WARNING",
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit structured JSON log lines."),
    ] = False,
) -> None:
    """Auditomatic CLI."""
    configure_logging(log_level, "json" if json_logs else "text", force=True)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _status_color(status: str) -> str:
    """Return a Rich color name for a run status."""
    colors: dict[str, str] = {
        "running": "blue",
        "paused": "yellow",
        "stopped": "dim",
        "completed": "green",
        "failed": "red",
    }
    return colors.get(status, "white")


def _format_duration(started: float, ended: float | None) -> str:
    if ended is None:
        return "-"
    secs = ended - started
    if secs < 1:
        return f"{secs * 1000:.0f}ms"
    if secs < 60:
        return f"{secs:.1f}s"
    return f"{secs / 60:.1f}m"


def _summary_table(result: RunResult) -> Table:
    color = _status_color(result.status)
    table = Table(title=f"Run {result.run_id}")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Status", f"[{color}]{result.status}[/{color}]")
    table.add_row("Tasks", f"{len(result.results)}/{result.total_tasks}")
    table.add_row("Succeeded", str(result.succeeded))
    table.add_row("Failed", str(result.failed))
    table.add_row("Duration", _format_duration(result.start_time, result.end_time))
    table.add_row("Total cost", f"${result.total_cost:.6f}")
    for model, cost in sorted(result.cost_by_model.items()):
        table.add_row(f"  {model}", f"${cost:.6f}")
    if result.error:
        table.add_row("Error", f"[red]{escape(result.error)}[/red]")
    return table


def _write_output(path: Path, result: RunResult) -> None:
    if path.suffix.lower() == ".csv":
        text = results_to_csv(result.results)
    else:
        text = results_to_jsonl(result.results)
    path.write_text(text, encoding="utf-8")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _execute(run_id: str, config: RunConfig) -> RunResult:
    client = ProviderClient(timeout=settings.request_timeout)
    scheduler = RunScheduler(client)
    columns = (
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
    )
    try:
        with Progress(*columns, console=console, transient=True) as progress:
            bar = progress.add_task(run_id, total=len(config.tasks))

            def on_progress(snap: ProgressSnapshot) -> None:
                progress.update(bar, completed=snap.completed_tasks)

            config.on_progress = on_progress
            return await scheduler.start_run(run_id, config)
    finally:
        await client.aclose()


@app.command()
def run(
    tasks_file: Annotated[
        Path,
        typer.Argument(help="Task file (.json, .jsonl or .csv)."),
    ],
    models: Annotated[
        Path,
        typer.Option("--models", "-M", help="YAML file with model configurations."),
    ],
    parallel: Annotated[
        int,
        typer.Option("--parallel", "-p", help="Maximum concurrent provider calls."),
    ] = settings.parallel,
    timeout: Annotated[
        float,
        typer.Option("--timeout", "-t", help="Per-task timeout in seconds (0 = none)."),
    ] = settings.task_timeout,
    cors_proxy: Annotated[
        str | None,
        typer.Option("--cors-proxy", help="URL prefix to route every request through."),
    ] = settings.cors_proxy,
    default_model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Model for rows that do not name one."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write results to FILE (.csv or .jsonl)."),
    ] = None,
    run_id: Annotated[
        str | None,
        typer.Option("--run-id", help="Run identifier (default: run-<timestamp>)."),
    ] = None,
) -> None:
    """Run every task in TASKS_FILE and print a summary."""
    try:
        tasks = load_tasks(tasks_file, default_model=default_model)
        model_configs = load_model_configs(models)
        config = RunConfig(
            tasks=tasks,
            parallel=parallel,
            model_configs=model_configs,
            cors_proxy=cors_proxy,
            task_timeout=timeout,
        )
        config.validate_for_start()
    except (AuditomaticError, ValidationError) as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc

    missing = sorted({t.model for t in tasks} - set(model_configs))
    if missing:
        console.print(f"[yellow]No config for models: {', '.join(missing)}; those tasks will fail.[/yellow]")

    rid = run_id or f"run-{int(time.time())}"
    try:
        result = asyncio.run(_execute(rid, config))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130) from None

    console.print(_summary_table(result))
    if output is not None:
        _write_output(output, result)
        console.print(f"[dim]Wrote {len(result.results)} results to {output}[/dim]")

    if result.status is RunStatus.FAILED:
        raise typer.Exit(code=1)


@app.command("models")
def list_models(
    models: Annotated[
        Path,
        typer.Argument(help="YAML file with model configurations."),
    ],
) -> None:
    """List the models configured in a YAML file."""
    try:
        configs = load_model_configs(models)
    except LoaderError as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc

    table = Table(title="Configured Models")
    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Endpoint")
    table.add_column("Auth", no_wrap=True)
    table.add_column("Key", no_wrap=True)
    table.add_column("Input $/tok", justify="right")
    table.add_column("Output $/tok", justify="right")
    for model_id, cfg in configs.items():
        table.add_row(model_id, *_model_row(cfg))
    console.print(table)


def _model_row(cfg: ModelConfig) -> tuple[str, str, str, str, str]:
    provider = cfg.provider
    pricing = cfg.pricing
    rate_in = pricing.input_cost_per_token if pricing else None
    rate_out = pricing.output_cost_per_token if pricing else None
    return (
        f"{provider.base_url}{provider.endpoint}",
        provider.auth_type,
        "set" if cfg.api_key else "-",
        "-" if rate_in is None else f"{rate_in:g}",
        "-" if rate_out is None else f"{rate_out:g}",
    )

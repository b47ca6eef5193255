"""
CLI utility helpers: output formatting, error rendering and service wiring.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from cronspine.core.errors import CronspineError
from cronspine.core.logging import get_logger
from cronspine.core.models.scheduler import WorkflowType
from cronspine.core.scheduling.service import SchedulerService, create_scheduler
from cronspine.core.scheduling.submitter import WorkflowRegistry
from cronspine.core.settings import SchedulerSettings, load_settings

console = Console()
err_console = Console(stderr=True)

logger = get_logger(__name__)


# ── Service helpers ──────────────────────────────────────────────────────


def get_settings(database: str | None = None) -> SchedulerSettings:
    """Settings from the environment, with ``--database`` taking precedence."""
    overrides: dict[str, Any] = {}
    if database:
        overrides["database_url"] = database
    return load_settings(**overrides)


def default_registry() -> WorkflowRegistry:
    """Registry whose executors only log the submission.

    Workflow execution lives outside this process; ``serve`` records each
    fire so an external runner can pick it up from the logs.
    """
    registry = WorkflowRegistry()
    for workflow_type in WorkflowType:

        def _executor(job_id: str, _wf: WorkflowType = workflow_type) -> None:
            logger.info("workflow_execution_requested", workflow_type=_wf.value, job_id=job_id)

        registry.register(workflow_type, _executor)
    return registry


def build_service(settings: SchedulerSettings) -> SchedulerService:
    return create_scheduler(settings, default_registry())


@contextmanager
def open_service(database: str | None = None) -> Iterator[SchedulerService]:
    """A service with persisted schedules recovered but the engine not firing.

    One-shot commands need the live map (``show``, ``update``, ``delete``
    go through it) without running any triggers.
    """
    service = build_service(get_settings(database))
    service.recover()
    try:
        yield service
    finally:
        service.stop()
        service.store.engine.dispose()


@contextmanager
def cli_errors() -> Iterator[None]:
    """Render ``CronspineError`` as ``Error (<Type>): message`` and exit 1."""
    try:
        yield
    except CronspineError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({type(exc).__name__}): {exc.message}")
        raise typer.Exit(code=1) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert a model / dataclass / dict to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render one item or a list of items."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) if v is not None else "" for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")

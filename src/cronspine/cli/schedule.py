"""
CLI: ``cronspine schedule``: schedule CRUD commands.
"""

from __future__ import annotations

import typer

from cronspine.cli.utils import cli_errors, console, open_service, output
from cronspine.core.models.scheduler import (
    WorkflowScheduleProps,
    parse_schedule_id,
    parse_workflow_type,
)

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_schedules(
    limit: int | None = typer.Option(None, "--limit", "-n", min=0),
    offset: int | None = typer.Option(None, "--offset", min=0),
    workflow_type: str | None = typer.Option(None, "--type", "-t", help="Filter by workflow type"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List workflow schedules, newest first."""
    with cli_errors():
        wf = parse_workflow_type(workflow_type) if workflow_type else None
        with open_service(database) as service:
            items = service.list(limit=limit, offset=offset, workflow_type=wf)
    output(items, as_json=json_out, title="Schedules")


@app.command("show")
def show_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show schedule details."""
    with cli_errors():
        sid = parse_schedule_id(schedule_id)
        with open_service(database) as service:
            schedule = service.get(sid)
    output(schedule, as_json=json_out, title=f"Schedule: {sid}")


@app.command("create")
def create_schedule(
    workflow_type: str = typer.Argument(..., help="Workflow type (screenshot, report)"),
    cron: str = typer.Option(..., "--cron", help="Cron expression"),
    about: str | None = typer.Option(None, "--about", help="Free-text description"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a new schedule.

    Writes the database only: a running ``cronspine serve`` picks the new
    schedule up on its next restart.
    """
    with cli_errors():
        props = WorkflowScheduleProps(
            workflow_type=parse_workflow_type(workflow_type), spec=cron, about=about
        )
        with open_service(database) as service:
            sid = service.schedule(props)
            schedule = service.get(sid)
    output(schedule, as_json=json_out, title="Schedule Created")


@app.command("update")
def update_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    cron: str | None = typer.Option(None, "--cron"),
    workflow_type: str | None = typer.Option(None, "--type", "-t"),
    about: str | None = typer.Option(None, "--about"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Update an existing schedule; omitted fields keep their value.

    Writes the database only: a running ``cronspine serve`` keeps firing the
    old definition until it restarts.
    """
    with cli_errors():
        sid = parse_schedule_id(schedule_id)
        props = WorkflowScheduleProps(
            workflow_type=parse_workflow_type(workflow_type) if workflow_type else None,
            spec=cron,
            about=about,
        )
        with open_service(database) as service:
            service.reschedule(sid, props)
            schedule = service.get(sid)
    output(schedule, as_json=json_out, title="Schedule Updated")


@app.command("delete")
def delete_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete (unschedule) a schedule.

    Writes the database only: a running ``cronspine serve`` keeps firing the
    schedule until it restarts.
    """
    with cli_errors():
        sid = parse_schedule_id(schedule_id)
        with open_service(database) as service:
            service.unschedule(sid)
    if json_out:
        output({"id": str(sid), "deleted": True}, as_json=True)
    else:
        console.print(f"Deleted schedule [bold]{sid}[/bold]")

"""
Root Typer application for the cronspine CLI.
"""

from __future__ import annotations

import signal
import sys
import threading

import typer
from typer import Typer

from cronspine.cli.utils import build_service, cli_errors, console, get_settings
from cronspine.core.logging import configure_logging, get_logger

app = Typer(
    name="cronspine",
    help="cronspine: durable cron schedules for workflows.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

logger = get_logger(__name__)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from cronspine import __version__

        try:
            v = pkg_version("cronspine")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"cronspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log INFO events to stderr."),
) -> None:
    """cronspine CLI: manage workflow schedules and run the scheduler."""
    # stdout stays clean for --json output
    configure_logging(
        level="INFO" if verbose else "WARNING",
        json_format=False,
        stream=sys.stderr,
        cache_logger_on_first_use=False,
    )


# ── serve ────────────────────────────────────────────────────────────────


@app.command("serve")
def serve(
    database: str | None = typer.Option(None, "--database", "-d"),
    recover: bool | None = typer.Option(
        None, "--recover/--no-recover", help="Replay persisted schedules (default from settings)"
    ),
) -> None:
    """Run the scheduler until interrupted."""
    with cli_errors():
        settings = get_settings(database)
        configure_logging(level=settings.log_level, json_format=settings.log_json, stream=sys.stderr)
        service = build_service(settings)
        recovery = settings.recover_on_start if recover is None else recover
        recovered = service.start(recovery=recovery)

    console.print(
        f"[green]Scheduler running[/green] ({recovered} schedules recovered). Ctrl+C to stop."
    )

    stop = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("shutdown_signal_received", signal=signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        while not stop.wait(timeout=60):
            logger.debug("scheduler_heartbeat", **service.health())
    finally:
        service.stop()
        console.print("Scheduler stopped.")


# ── Sub-command registration ─────────────────────────────────────────────

from cronspine.cli.schedule import app as sched_app  # noqa: E402

app.add_typer(sched_app, name="schedule", help="Schedule management.")

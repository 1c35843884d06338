"""Command line entry points for running and checking the service."""

from __future__ import annotations

from typing import Optional

import click

from app import configure_logging
from extensions import DatabaseManager
from infra import health_service
from lifecycle import run_service


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level: Optional[str]):
    """Calendar backend management commands."""
    configure_logging(log_level)


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (default CALENDAR_HOST or 0.0.0.0)")
@click.option("--port", type=int, default=None, help="Bind port (default CALENDAR_PORT or 3000)")
def serve_command(host: Optional[str], port: Optional[int]):
    """Connect to the database and serve HTTP until SIGINT/SIGTERM."""
    raise SystemExit(run_service(host=host, port=port))


@cli.command("check-db")
def check_db_command():
    """Establish a connection once, report, and close it."""
    database = DatabaseManager()
    try:
        summary, healthy = health_service.build_health_summary(database)
    finally:
        database.teardown()

    status_label = "HEALTHY" if healthy else "UNHEALTHY"
    for key, value in summary.items():
        click.echo(f"{key}: {value}")
    click.echo(f"Status: {status_label}")
    if not healthy:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()

"""Command line interface for sheetsync."""

import asyncio
import sys
import logging
from typing import Optional

import click

from .config import setup_logging, load_environment, load_config
from ..exceptions import BatchSyncError, ConfigurationError, SheetSyncException
from ..services.cron import CronParseError, next_fire_time
from ..services.runtime import SyncRuntime


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              envvar='LOG_LEVEL', help='Set the logging level')
@click.option('--env-file', type=click.Path(exists=True), help='Path to .env file')
def cli(log_level: str, env_file: Optional[str]) -> None:
    """Ledger to Google Sheets sync service."""
    setup_logging(log_level)
    load_environment(env_file)


@cli.command()
@click.option('--host', default='0.0.0.0', help='Interface to bind')
@click.option('--port', type=int, help='Port to listen on (default: HTTP_PORT or 4020)')
def serve(host: str, port: Optional[int]) -> None:
    """Start schedules, the event stream and the status server."""
    import uvicorn

    from ..api.app import create_app

    try:
        config = load_config()
        runtime = SyncRuntime.from_config(config)
    except ConfigurationError as e:
        click.echo(f"❌ Configuration Error: {e}", err=True)
        sys.exit(1)

    port = port or config.settings.http_port
    if config.settings.public_url:
        click.echo(f"Status available at {config.settings.public_url}")
    uvicorn.run(create_app(runtime), host=host, port=port)


@cli.command()
@click.option('--unit', 'unit_id', help='Run only this sheet id')
def run(unit_id: Optional[str]) -> None:
    """Run sheets once and exit."""
    try:
        runtime = SyncRuntime.from_config(load_config(once=True))
    except ConfigurationError as e:
        click.echo(f"❌ Configuration Error: {e}", err=True)
        sys.exit(1)

    try:
        asyncio.run(runtime.run_once(unit_id))
    except BatchSyncError as e:
        for failed_id, error in e.failures:
            click.echo(f"❌ {failed_id}: {error}", err=True)
        sys.exit(1)
    except SheetSyncException as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logging.exception("Unexpected error occurred")
        click.echo(f"Unexpected error: {e}", err=True)
        sys.exit(1)

    for unit in runtime.orchestrator.get_status().units:
        if unit_id and unit.id != unit_id:
            continue
        click.echo(f"✅ {unit.id}: {unit.row_count} rows")


@cli.command()
def validate() -> None:
    """Load configuration and show the sheets and schedules."""
    try:
        config = load_config()
    except ConfigurationError as e:
        click.echo(f"❌ Configuration Error: {e}", err=True)
        sys.exit(1)

    settings = config.settings
    for warning in config.warnings:
        click.echo(f"⚠️  {warning}")

    click.echo(f"Ledger: {settings.ledger_server_url} ({len(settings.sync_targets)} sync targets)")
    click.echo(f"Sheets uploads: {'enabled' if settings.sheets_enabled else 'disabled'}")
    click.echo(f"Event stream: {'enabled' if settings.events_enabled and settings.events_url else 'disabled'}")

    crons = [("global", settings.global_cron)] + [(f"sheet:{unit.id}", unit.cron) for unit in config.units]
    failed = False
    for job_id, expr in crons:
        if not expr:
            continue
        try:
            fire_at = next_fire_time(expr, timezone=settings.schedule_timezone)
            click.echo(f"Schedule {job_id}: {expr!r} next at {fire_at.isoformat()}")
        except CronParseError as e:
            click.echo(f"❌ Schedule {job_id}: {e}", err=True)
            failed = True

    click.echo(f"\n{'ID':<24} {'Source':<14} {'Mode':<9} {'Target':<40}")
    click.echo("-" * 90)
    for unit in config.units:
        target = f"{unit.spreadsheet_id}/{unit.tab}"
        click.echo(f"{unit.id:<24} {unit.source.type:<14} {unit.mode.value:<9} {target:<40}")
    click.echo(f"\nTotal sheets: {len(config.units)}")

    if not config.units or failed:
        sys.exit(1)


if __name__ == '__main__':
    cli()

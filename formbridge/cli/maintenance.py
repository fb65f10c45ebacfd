"""
CLI for integration maintenance: schema setup, log pruning and logging toggles
"""

import asyncio
from typing import Optional

import click

from formbridge.container import build_container
from formbridge.core.logging import configure_logging
from formbridge.db.session import database
from formbridge.services.activity_logger import LoggingPreferences


@click.group()
@click.option("--database-url", envvar="FORMBRIDGE_DATABASE_URL", default=None, help="Async SQLAlchemy URL")
@click.option("--verbose", is_flag=True, help="Show debug log lines")
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str], verbose: bool):
    """FormBridge integrations admin tool"""
    configure_logging("DEBUG" if verbose else None, log_format="console")
    ctx.obj = {"database_url": database_url}


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context):
    """Create the settings and log tables"""

    async def run() -> None:
        async with database(ctx.obj["database_url"]):
            pass

    asyncio.run(run())
    click.echo("Database tables are ready")


@cli.command("list-integrations")
@click.pass_context
def list_integrations(ctx: click.Context):
    """Show registered integrations and whether they are configured"""

    async def run() -> list:
        async with database(ctx.obj["database_url"]) as session_factory:
            return await build_container(session_factory).service.list_integrations()

    for summary in asyncio.run(run()):
        state = "configured" if summary["configured"] else "not configured"
        click.echo(f"{summary['id']:<12} {summary['name']:<20} v{summary['version']:<8} {state}")


@cli.command("prune-logs")
@click.option("--days", type=click.IntRange(min=1), default=None, help="Keep this many days (defaults to the retention setting)")
@click.pass_context
def prune_logs(ctx: click.Context, days: Optional[int]):
    """Delete activity log entries older than the retention window"""

    async def run() -> int:
        async with database(ctx.obj["database_url"]) as session_factory:
            return await build_container(session_factory).activity_logger.clear_old_logs(days)

    deleted = asyncio.run(run())
    click.echo(f"Deleted {deleted} log entries")


@cli.command("purge-logs")
@click.argument("integration_id")
@click.confirmation_option(prompt="Delete every log entry of this integration?")
@click.pass_context
def purge_logs(ctx: click.Context, integration_id: str):
    """Delete all activity log entries of one integration"""

    async def run() -> int:
        async with database(ctx.obj["database_url"]) as session_factory:
            return await build_container(session_factory).activity_logger.delete_logs(integration_id)

    deleted = asyncio.run(run())
    click.echo(f"Deleted {deleted} log entries for {integration_id}")


@cli.command("configure-logging")
@click.option("--enable/--disable", "enabled", default=True, help="Turn the activity log on or off")
@click.option("--retention-days", type=click.IntRange(min=1), default=30, show_default=True)
@click.pass_context
def configure_activity_logging(ctx: click.Context, enabled: bool, retention_days: int):
    """Store the live activity log toggles"""

    async def run() -> None:
        async with database(ctx.obj["database_url"]) as session_factory:
            service = build_container(session_factory).service
            await service.save_logging_preferences(LoggingPreferences(enabled=enabled, retention_days=retention_days))

    asyncio.run(run())
    click.echo(f"Activity logging {'enabled' if enabled else 'disabled'}, retention {retention_days} days")


if __name__ == "__main__":
    cli()

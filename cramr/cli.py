"""Typer CLI for Cramr."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .cleanup import purge_old_entries
from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .scheduler import start_scheduler, stop_scheduler
from .seed import seed_fake_data
from .storage import (
    ensure_root_token,
    fetch_root_token,
    init_db,
    rotate_root_token,
    upgrade_database,
)

app = typer.Typer(help="Cramr command-line interface")


def _is_readonly_error(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return "readonly" in message or "read-only" in message


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("admin-token")
def admin_token() -> None:
    """Print the current root admin token."""
    init_db()
    token = fetch_root_token()
    typer.echo(token)


@app.command("rotate-admin-token")
def rotate_admin_token() -> None:
    """Rotate the root admin token."""
    try:
        init_db()
        token = rotate_root_token()
    except OperationalError as exc:
        if _is_readonly_error(exc):
            typer.secho(
                "Unable to rotate the root admin token because the database is "
                f"read-only. Ensure the process can write to {settings.database_url}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise
    typer.echo(token)


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of a SQLite database before upgrading",
    ),
) -> None:
    """Upgrade the database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        if _is_readonly_error(exc):
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_url}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    ensure_root_token()
    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("cleanup")
def cleanup() -> None:
    """Run the retention purge for old events and RSVPs manually."""
    init_db()
    stats = purge_old_entries()
    typer.echo(
        f"Cleanup complete: {stats['events']} events, "
        f"{stats['attendees']} attendee rows removed."
    )


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with APScheduler."""
    init_db()
    start_scheduler()
    config = uvicorn.Config(
        "cramr.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting Cramr on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("seed-data")
def seed_data(
    users: int = typer.Option(
        settings.seed_users, "--users", min=0, help="Number of users to create"
    ),
    max_events: int = typer.Option(
        settings.seed_events_per_user,
        "--max-events",
        min=0,
        help="Maximum study events each user creates",
    ),
    max_rsvps: int = typer.Option(
        5, "--max-rsvps", min=0, help="Maximum RSVPs to attach to each event"
    ),
    follow_percent: int = typer.Option(
        20,
        "--follow-percent",
        min=0,
        max=100,
        help="Chance (0-100) that any user follows any other user",
    ),
):
    """Populate the database with fake users and study events for testing."""
    stats = seed_fake_data(
        user_count=users,
        max_events_per_user=max_events,
        max_rsvps_per_event=max_rsvps,
        follow_percentage=follow_percent,
    )
    typer.echo(
        f"Seed complete: {stats['users']} users, {stats['events']} events, "
        f"{stats['follows']} follows, {stats['rsvps']} RSVPs created."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to cramr.toml (default: ./cramr.toml)"
    ),
    database_url: str | None = typer.Option(
        None, "--database-url", help="SQLAlchemy database URL"
    ),
    cors_origins: str | None = typer.Option(
        None, "--cors-origins", help="Comma separated list of allowed origins"
    ),
    public_base_url: str | None = typer.Option(
        None, "--public-base-url", help="Base URL used to build upload links"
    ),
    event_retention_days: int | None = typer.Option(
        None,
        "--event-retention-days",
        min=1,
        help="Days after an event's date before the purge deletes it",
    ),
    attendee_retention_days: int | None = typer.Option(
        None,
        "--attendee-retention-days",
        min=1,
        help="Days after an RSVP before the purge deletes it",
    ),
    cleanup_interval_hours: int | None = typer.Option(
        None, "--cleanup-interval-hours", min=1, help="Hours between purge runs"
    ),
    max_materials_per_event: int | None = typer.Option(
        None,
        "--max-materials-per-event",
        min=1,
        help="Study material uploads allowed per event",
    ),
    smtp_host: str | None = typer.Option(None, "--smtp-host", help="SMTP server"),
    smtp_port: int | None = typer.Option(None, "--smtp-port", help="SMTP port"),
    smtp_username: str | None = typer.Option(
        None, "--smtp-username", help="SMTP login"
    ),
    mail_from: str | None = typer.Option(
        None, "--mail-from", help="Sender address for outgoing mail"
    ),
    seed_users: int | None = typer.Option(
        None, "--seed-users", min=0, help="Default seed-data users"
    ),
    seed_events_per_user: int | None = typer.Option(
        None, "--seed-events-per-user", min=0, help="Default seed-data events/user"
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Toggle background scheduler (retention purge/OTP sweep)",
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "app_host": host,
        "app_port": port,
        "database_url": database_url,
        "cors_origins": cors_origins,
        "public_base_url": public_base_url,
        "event_retention_days": event_retention_days,
        "attendee_retention_days": attendee_retention_days,
        "cleanup_interval_hours": cleanup_interval_hours,
        "max_materials_per_event": max_materials_per_event,
        "smtp_host": smtp_host,
        "smtp_port": smtp_port,
        "smtp_username": smtp_username,
        "mail_from": mail_from,
        "seed_users": seed_users,
        "seed_events_per_user": seed_events_per_user,
        "enable_scheduler": enable_scheduler,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    settings_ref = settings
    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


@app.command("test")
def run_tests(pytest_args: list[str] = typer.Argument(None, help="Extra pytest args")):
    """Run the test suite with helpful defaults."""
    env = os.environ.copy()
    env.setdefault("PYTHONPATH", ".")
    env.setdefault("UV_CACHE_DIR", ".uv-cache")
    uv_path = shutil.which("uv")
    if uv_path:
        cmd = [uv_path, "run", "pytest"]
    else:
        typer.echo("uv not found, falling back to python -m pytest")
        cmd = [sys.executable, "-m", "pytest"]
    if pytest_args:
        cmd.extend(pytest_args)
    typer.echo(f"Running tests: {' '.join(cmd)}")
    result = subprocess.run(cmd, env=env)
    raise typer.Exit(code=result.returncode)


if __name__ == "__main__":
    app()

"""ReviewPulse CLI: operations and reporting.

Entry point for database setup, the API server, the periodic sync sweep
and success-metric reports.

Usage:
    reviewpulse init-db                      Create tables
    reviewpulse serve                        Run the API with uvicorn
    reviewpulse sweep                        List sources due for sync
    reviewpulse record-outcome ID --status FAILED --error "timeout"
    reviewpulse stuck-jobs --minutes 30 --fail
    reviewpulse metrics user USER_ID
    reviewpulse metrics global --start 2026-01-01T00:00:00+00:00 --end ...
"""

from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from src.config import load_config
from src.errors import DomainError, format_error_line

app = typer.Typer(
    name="reviewpulse",
    help="ReviewPulse review aggregation backend",
    no_args_is_help=True,
)
metrics_app = typer.Typer(help="Success metric reports")
user_app = typer.Typer(help="Manage accounts")
config_app = typer.Typer(help="Configuration management")

app.add_typer(metrics_app, name="metrics")
app.add_typer(user_app, name="user")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to reviewpulse.yaml config file"
    ),
):
    """ReviewPulse CLI."""
    global _config_path
    _config_path = config


def _fail(error: DomainError) -> None:
    console.print(f"[red]{format_error_line(error)}[/red]")
    raise typer.Exit(code=1)


def _parse_instant(value: str, option: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        console.print(f"[red]{option} must be an ISO 8601 timestamp, got '{value}'[/red]")
        raise typer.Exit(code=2)
    if parsed.tzinfo is None:
        console.print(f"[red]{option} must include a UTC offset, got '{value}'[/red]")
        raise typer.Exit(code=2)
    return parsed


# --- Version ---


@app.command()
def version():
    """Show ReviewPulse version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version

    try:
        v = pkg_version("reviewpulse")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]ReviewPulse[/bold] v{v}")


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display the resolved configuration."""
    cfg = load_config(config_path=_config_path)

    console.print("[bold]Scheduling:[/bold]")
    console.print(f"  sync: {cfg.scheduling.sync_hour:02d}:00 {cfg.scheduling.sync_timezone}")
    console.print(f"  manual refresh cooldown: {cfg.scheduling.manual_refresh_cooldown_hours}h")
    console.print(f"  max transaction attempts: {cfg.scheduling.max_transaction_attempts}")
    console.print(f"  stuck job threshold: {cfg.scheduling.stuck_job_threshold_minutes} min")
    console.print("\n[bold]Plans:[/bold]")
    console.print(f"  FREE: {cfg.plans.free_max_sources} source(s)")
    console.print(f"  PREMIUM: {cfg.plans.premium_max_sources} source(s)")
    console.print("\n[bold]Metrics:[/bold]")
    console.print(f"  activation window: {cfg.metrics.activation_window_days} days")
    console.print(
        f"  retention: {cfg.metrics.retention_login_threshold} logins "
        f"in {cfg.metrics.retention_window_days} days"
    )
    console.print(f"  time-to-value target: {cfg.metrics.time_to_value_target_minutes} min")


# --- Database / server ---


@app.command("init-db")
def init_db_cmd():
    """Create all database tables."""
    from src.db.connection import DATABASE_URL, init_db

    init_db()
    console.print(f"[green]Database ready:[/green] {DATABASE_URL}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn

    cfg = load_config(config_path=_config_path)
    final_host = host or cfg.server.host
    final_port = port or cfg.server.port
    console.print(f"[bold]Starting ReviewPulse API on {final_host}:{final_port}[/bold]")
    uvicorn.run("src.api.main:app", host=final_host, port=final_port, log_level=cfg.server.log_level)


# --- Accounts ---


@user_app.command("register")
def user_register(
    email: str = typer.Option(..., "--email", "-e", help="Login email"),
    plan: str = typer.Option("FREE", "--plan", "-p", help="FREE or PREMIUM"),
    max_sources: Optional[int] = typer.Option(None, "--max-sources", help="Override plan quota"),
):
    """Register a user account."""
    from src.db.connection import get_db_context
    from src.services.brand_service import BrandService

    cfg = load_config(config_path=_config_path)
    with get_db_context() as db:
        try:
            user = BrandService(db, plans=cfg.plans).register_user(
                email, plan_type=plan.upper(), max_sources_allowed=max_sources
            )
        except DomainError as e:
            _fail(e)
        console.print(
            f"[green]Registered {user.email}[/green] id={user.id} "
            f"plan={user.plan_type} quota={user.max_sources_allowed}"
        )


# --- Sync ---


@app.command()
def sweep(
    at: Optional[str] = typer.Option(None, "--at", help="Evaluate due sources at this instant"),
):
    """List review sources whose scheduled sync is due."""
    from src.db.connection import get_db_context
    from src.services.sync_scheduler import SyncScheduler

    cfg = load_config(config_path=_config_path)
    now = _parse_instant(at, "--at") if at else None
    with get_db_context() as db:
        due = SyncScheduler(db, config=cfg.scheduling).find_sources_ready_for_sync(now)
        if not due:
            console.print("[dim]No sources due for sync.[/dim]")
            return
        table = Table(title=f"Sources due for sync ({len(due)})")
        table.add_column("Source", style="cyan")
        table.add_column("Brand")
        table.add_column("Platform")
        table.add_column("Profile")
        table.add_column("Due at")
        table.add_column("Last status")
        for s in due:
            table.add_row(
                s.id,
                s.brand_id,
                s.source_type,
                s.external_profile_id,
                s.next_scheduled_sync_at.isoformat(),
                s.last_sync_status or "-",
            )
        console.print(table)


@app.command("record-outcome")
def record_outcome(
    source_id: str = typer.Argument(..., help="Review source id"),
    status: str = typer.Option(..., "--status", "-s", help="SUCCESS or FAILED"),
    error: Optional[str] = typer.Option(None, "--error", help="Failure message"),
):
    """Record the outcome of an externally run sync."""
    from src.db.connection import get_db_context
    from src.services.sync_scheduler import SyncScheduler

    cfg = load_config(config_path=_config_path)
    with get_db_context() as db:
        try:
            source = SyncScheduler(db, config=cfg.scheduling).record_sync_outcome(
                source_id, status.upper(), error
            )
        except DomainError as e:
            _fail(e)
        console.print(
            f"[green]Recorded {source.last_sync_status}[/green] for {source_id}; "
            f"next sync at {source.next_scheduled_sync_at.isoformat()}"
        )


@app.command("stuck-jobs")
def stuck_jobs(
    minutes: Optional[int] = typer.Option(
        None, "--minutes", "-m", help="In progress for longer than this (default from config)"
    ),
    fail: bool = typer.Option(False, "--fail", help="Mark the listed jobs FAILED"),
):
    """List sync jobs stuck in progress, optionally failing them."""
    from src.db.connection import get_db_context
    from src.services.sync_job_service import SyncJobService

    cfg = load_config(config_path=_config_path)
    with get_db_context() as db:
        jobs = SyncJobService(db, config=cfg)
        try:
            stuck = jobs.fail_stuck_jobs(minutes) if fail else jobs.find_stuck_jobs(minutes)
        except DomainError as e:
            _fail(e)
        if not stuck:
            console.print("[dim]No stuck sync jobs.[/dim]")
            return
        title = "Failed stuck sync jobs" if fail else "Stuck sync jobs"
        table = Table(title=f"{title} ({len(stuck)})")
        table.add_column("Job", style="cyan")
        table.add_column("Source")
        table.add_column("Type")
        table.add_column("Started at")
        table.add_column("Status")
        for job in stuck:
            table.add_row(
                str(job.id),
                job.source_id,
                job.job_type,
                job.started_at.isoformat() if job.started_at else "-",
                job.status,
            )
        console.print(table)


# --- Metrics ---


@metrics_app.command("user")
def metrics_user(user_id: str = typer.Argument(..., help="User id")):
    """Show success metrics for one user."""
    from src.db.connection import get_db_context
    from src.services.success_metrics import SuccessMetricsService

    cfg = load_config(config_path=_config_path)
    with get_db_context() as db:
        try:
            m = SuccessMetricsService(db, config=cfg.metrics).user_success_metrics(user_id)
        except DomainError as e:
            _fail(e)

    def _flag(value: bool) -> str:
        return "[green]yes[/green]" if value else "[yellow]no[/yellow]"

    table = Table(title=f"Success metrics for {user_id}")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Registered", m.registered_at.isoformat() if m.registered_at else "-")
    table.add_row(
        "Time to value",
        f"{m.time_to_value_minutes} min" if m.time_to_value_minutes is not None else "-",
    )
    table.add_row("Time-to-value target", _flag(m.time_to_value_achieved))
    table.add_row("Activated", _flag(m.activation_achieved))
    table.add_row("Retained", _flag(m.retention_achieved))
    table.add_row("Logins", str(m.total_logins))
    table.add_row("Sentiment corrections", str(m.sentiment_corrections))
    console.print(table)


@metrics_app.command("global")
def metrics_global(
    start: str = typer.Option(..., "--start", help="Cohort start (ISO 8601 with offset)"),
    end: str = typer.Option(..., "--end", help="Cohort end (ISO 8601 with offset)"),
):
    """Show cohort metrics for users registered between start and end."""
    from src.db.connection import get_db_context
    from src.services.success_metrics import SuccessMetricsService

    cfg = load_config(config_path=_config_path)
    period_start = _parse_instant(start, "--start")
    period_end = _parse_instant(end, "--end")
    with get_db_context() as db:
        try:
            m = SuccessMetricsService(db, config=cfg.metrics).global_success_metrics(
                period_start, period_end
            )
        except DomainError as e:
            _fail(e)

    table = Table(title=f"Cohort {m.period_start.isoformat()} .. {m.period_end.isoformat()}")
    table.add_column("Metric")
    table.add_column("Users", justify="right")
    table.add_column("Share", justify="right")
    table.add_row("Registered", str(m.total_users), "")
    table.add_row(
        "Time-to-value target",
        str(m.time_to_value_achieved_count),
        f"{m.time_to_value_achieved_percentage:.1f}%",
    )
    table.add_row(
        "Activated", str(m.activation_achieved_count), f"{m.activation_achieved_percentage:.1f}%"
    )
    table.add_row(
        "Retained", str(m.retention_achieved_count), f"{m.retention_achieved_percentage:.1f}%"
    )
    console.print(table)
    console.print(f"Average time to value: {m.average_time_to_value_minutes:.1f} min")


if __name__ == "__main__":
    app()

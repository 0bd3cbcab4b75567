"""
Command-line interface for ingestflow.

Triggers are meant to be invoked by an external timer (cron, systemd
timers, Kubernetes CronJobs) with the project or unit id to run.

Usage:
    ingestflow init-db              # Create tables
    ingestflow run-project proj-1   # Project-level trigger
    ingestflow run-unit unit-7      # Unit-level trigger
    ingestflow worker               # Run the job worker
    ingestflow cleanup-jobs         # Fail stuck jobs, prune old ones
    ingestflow auth-url             # Start Reddit authorization
    ingestflow serve                # Start the admin API
"""

import asyncio
import json
import signal
import sys
from pathlib import Path

import click

from ingestflow.config.settings import get_settings
from ingestflow.observability.logging import setup_logging
from ingestflow.observability.metrics import get_metrics


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """ingestflow - scheduled content ingestion into single-item jobs."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command("init-db")
def init_db() -> None:
    """Create the ledger, jobs, projects and flow_units tables."""
    from ingestflow.storage.database import Database
    from ingestflow.jobs.repository import PostgresJobRepository
    from ingestflow.ledger.repository import ProcessedItemsRepository
    from ingestflow.scheduling.repository import PostgresUnitRepository

    async def run():
        async with Database() as db:
            await ProcessedItemsRepository(db).create_table()
            await PostgresJobRepository(db).create_table()
            await PostgresUnitRepository(db).create_tables()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command("import-projects")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def import_projects(path: Path) -> None:
    """
    Load projects and their units from a JSON file.

    The file holds {"projects": [{..., "units": [{...}]}]}; existing ids are updated.
    """
    from ingestflow.scheduling.schemas import FlowUnit, Project, ScheduleStatus
    from ingestflow.scheduling.repository import PostgresUnitRepository
    from ingestflow.storage.database import Database

    data = json.loads(path.read_text(encoding="utf-8"))

    async def run():
        projects = units = 0
        async with Database() as db:
            repo = PostgresUnitRepository(db)
            for raw in data.get("projects", []):
                raw = dict(raw)
                raw_units = raw.pop("units", [])
                if "schedule_status" in raw:
                    raw["schedule_status"] = ScheduleStatus(raw["schedule_status"])
                project = Project(**raw)
                await repo.save_project(project)
                projects += 1
                for raw_unit in raw_units:
                    raw_unit = {**raw_unit, "project_id": project.project_id}
                    if "schedule_status" in raw_unit:
                        raw_unit["schedule_status"] = ScheduleStatus(raw_unit["schedule_status"])
                    await repo.save_unit(FlowUnit(**raw_unit))
                    units += 1
        click.echo(f"Imported {projects} projects and {units} units")

    asyncio.run(run())


def _run_trigger(target_id: str, scope: str) -> None:
    from ingestflow.services import Services

    async def run():
        async with Services() as services:
            return await services.scheduler.trigger(target_id, scope)

    summary = asyncio.run(run())
    _echo_json(summary.to_dict())
    failed = [u for u in summary.units if not u.ok]
    sys.exit(1 if failed and summary.jobs_created == 0 else 0)


@main.command("run-project")
@click.argument("project_id")
def run_project(project_id: str) -> None:
    """Run every unit that follows the project schedule."""
    _run_trigger(project_id, "project")


@main.command("run-unit")
@click.argument("unit_id")
def run_unit(unit_id: str) -> None:
    """Run one unit on its own schedule."""
    _run_trigger(unit_id, "unit")


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(metrics: bool, metrics_port: int | None) -> None:
    """Run the job worker until interrupted."""
    from ingestflow.jobs.config import JobsConfig
    from ingestflow.jobs.queue import JobQueue
    from ingestflow.jobs.repository import PostgresJobRepository
    from ingestflow.jobs.worker import JobWorker
    from ingestflow.storage.database import Database

    async def run():
        settings = get_settings()
        database = Database()
        job_worker = JobWorker(
            queue=JobQueue(str(settings.redis_url), JobsConfig()),
            repository=PostgresJobRepository(database),
            database=database,
        )

        if metrics:
            get_metrics().start_server(port=metrics_port)

        loop = asyncio.get_event_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(job_worker.stop()))

        await job_worker.start()

    asyncio.run(run())


@main.command()
@click.option("--status", "job_status", default=None,
              type=click.Choice(["pending", "running", "completed", "failed"]),
              help="Only jobs with this status")
@click.option("--limit", default=20, help="Maximum jobs to show")
def jobs(job_status: str | None, limit: int) -> None:
    """Show recent jobs and counts per status."""
    from ingestflow.jobs.repository import PostgresJobRepository
    from ingestflow.jobs.schemas import JobStatus
    from ingestflow.storage.database import Database

    async def run():
        async with Database() as db:
            repo = PostgresJobRepository(db)
            status = JobStatus(job_status) if job_status else None
            recent = await repo.list_recent(limit=limit, status=status)
            summary = await repo.status_summary()

        click.echo("Jobs by status: " + ", ".join(f"{k}={v}" for k, v in summary.items()))
        click.echo("-" * 60)
        for job in recent:
            line = f"{job.job_id}  {job.status.value:<9}  unit={job.unit_id}  created={job.created_at}"
            if job.error:
                line += f"  error={job.error}"
            click.echo(line)

    asyncio.run(run())


@main.command("cleanup-jobs")
@click.option("--stuck-hours", default=None, type=int, help="Fail pending/running jobs older than this")
@click.option("--days", default=None, type=int, help="Days to keep completed and failed jobs")
def cleanup_jobs(stuck_hours: int | None, days: int | None) -> None:
    """Fail stuck jobs and delete finished jobs past retention.

    Example:
        ingestflow cleanup-jobs                 # Use JOBS_ settings
        ingestflow cleanup-jobs --days 7        # Keep one week of finished jobs
    """
    from datetime import timedelta

    from ingestflow.jobs.config import JobsConfig
    from ingestflow.jobs.repository import PostgresJobRepository
    from ingestflow.storage.database import Database

    config = JobsConfig()
    stuck_hours = stuck_hours or config.stuck_timeout_hours
    days = days or config.retention_days

    async def run():
        async with Database() as db:
            repo = PostgresJobRepository(db)
            stuck = await repo.fail_stuck(timedelta(hours=stuck_hours))
            old = await repo.delete_old(days)
        return stuck, old

    stuck, old = asyncio.run(run())
    click.echo(f"Failed {stuck} jobs stuck for more than {stuck_hours} hours")
    click.echo(f"Deleted {old} jobs finished more than {days} days ago")


def _with_credentials(integration: str, action):
    from ingestflow.errors import IngestFlowError
    from ingestflow.services import Services

    async def run():
        async with Services() as services:
            return await action(services.credentials(integration))

    try:
        return asyncio.run(run())
    except IngestFlowError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


integration_option = click.option(
    "--integration", default="reddit", show_default=True, help="OAuth integration name"
)


@main.command("auth-url")
@integration_option
def auth_url(integration: str) -> None:
    """Print the authorization URL the user must visit."""
    url = _with_credentials(integration, lambda manager: manager.begin_authorization())
    click.echo(url)


@main.command("auth-complete")
@integration_option
@click.option("--state", required=True, help="state parameter from the redirect")
@click.option("--code", required=True, help="code parameter from the redirect")
def auth_complete(integration: str, state: str, code: str) -> None:
    """Exchange an authorization code for tokens."""
    record = _with_credentials(
        integration, lambda manager: manager.complete_authorization(state, code)
    )
    click.echo(f"Authorized {integration} as {record.identity or 'unknown user'}")


@main.command("auth-status")
@integration_option
def auth_status(integration: str) -> None:
    """Show credential presence and expiry."""
    details = _with_credentials(integration, lambda manager: manager.account_details())
    if details is None:
        click.echo(f"{integration}: not authorized")
    else:
        _echo_json(details)


@main.command("auth-revoke")
@integration_option
def auth_revoke(integration: str) -> None:
    """Forget the stored credential."""
    removed = _with_credentials(integration, lambda manager: manager.revoke())
    click.echo(f"{integration}: credential {'removed' if removed else 'was not stored'}")


@main.command("refresh-token")
@integration_option
def refresh_token(integration: str) -> None:
    """Refresh the access token now."""
    refreshed = _with_credentials(integration, lambda manager: manager.refresh())
    if refreshed:
        click.echo(click.style(f"{integration}: token refreshed", fg="green"))
    else:
        click.echo(click.style(f"{integration}: refresh failed, re-authorize", fg="red"))
        sys.exit(1)


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the admin API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "ingestflow.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()

"""
Scheduler: resolves one timer trigger into job creation for eligible units.

The scheduler registers no timers. An external periodic trigger calls
trigger(target_id, scope) once per due schedule; each call is independent.
Overlapping triggers are not mutually excluded, the ledger's per-item
uniqueness is what prevents duplicate jobs.
"""

from datetime import timedelta

import structlog

from ingestflow.clock import Clock, utc_now
from ingestflow.ingestion.base_handler import FetchContext
from ingestflow.ingestion.registry import HandlerRegistry
from ingestflow.jobs.config import JobsConfig
from ingestflow.jobs.repository import JobRepository
from ingestflow.observability.metrics import get_metrics
from ingestflow.scheduling.eligibility import own_run_skip_reason, parent_run_skip_reason
from ingestflow.scheduling.intervals import MANUAL
from ingestflow.scheduling.job_creator import JobCreator
from ingestflow.scheduling.repository import UnitRepository
from ingestflow.scheduling.schemas import RunSummary, ScheduleStatus

logger = structlog.get_logger(__name__)

PROJECT_SCOPE = "project"
UNIT_SCOPE = "unit"
SCOPES = (PROJECT_SCOPE, UNIT_SCOPE)


class Scheduler:
    """
    Entry point for project-level and unit-level triggers.

    When a job repository is given, each project run first fails stuck jobs
    and deletes finished jobs past retention.

    Usage:
        scheduler = Scheduler(units, registry, job_creator, jobs=job_repository)
        summary = await scheduler.trigger("proj-1", "project")
    """

    def __init__(
        self,
        units: UnitRepository,
        registry: HandlerRegistry,
        job_creator: JobCreator,
        clock: Clock = utc_now,
        jobs: JobRepository | None = None,
        jobs_config: JobsConfig | None = None,
    ) -> None:
        self._units = units
        self._registry = registry
        self._job_creator = job_creator
        self._clock = clock
        self._jobs = jobs
        self._jobs_config = jobs_config or JobsConfig()
        self._metrics = get_metrics()

    async def trigger(self, target_id: str, scope: str) -> RunSummary:
        """Run a project (scope "project") or a single unit (scope "unit")."""
        if scope == PROJECT_SCOPE:
            return await self.run_project(target_id)
        if scope == UNIT_SCOPE:
            return await self.run_unit(target_id)
        raise ValueError(f"Unknown trigger scope {scope!r}, expected one of {SCOPES}")

    async def run_project(self, project_id: str) -> RunSummary:
        """
        Run every unit that inherits the project schedule.

        The project's last_run_at moves only when at least one job was created;
        a run that found nothing eligible does not count as a run.
        """
        summary = RunSummary(scope=PROJECT_SCOPE, target_id=project_id)
        self._metrics.record_scheduler_run(PROJECT_SCOPE)
        log = logger.bind(project_id=project_id)

        project = await self._units.get_project(project_id)
        if project is None:
            return self._not_run(summary, "project_not_found", log)
        if project.schedule_status != ScheduleStatus.ACTIVE:
            return self._not_run(summary, "project_paused", log)
        if project.schedule_interval == MANUAL:
            return self._not_run(summary, "project_manual", log)
        if not project.owner:
            return self._not_run(summary, "project_without_owner", log)

        await self._clean_up_jobs(log)

        units = await self._units.list_units(project_id)
        summary.ran = True
        log.info("Project run started", units=len(units), started_at=self._clock().isoformat())

        for unit in units:
            reason = parent_run_skip_reason(unit, self._registry)
            if reason is not None:
                summary.skipped_units[unit.unit_id] = reason
                log.debug("Unit skipped", unit_id=unit.unit_id, reason=reason)
                continue
            result = await self._job_creator.create_jobs_for_unit(
                unit, project.owner, FetchContext(unit_id=unit.unit_id)
            )
            summary.units.append(result)

        if summary.jobs_created > 0:
            await self._units.touch_project_last_run(project_id)
            summary.last_run_updated = True

        log.info(
            "Project run completed",
            units_attempted=len(summary.units),
            units_skipped=len(summary.skipped_units),
            jobs_created=summary.jobs_created,
            last_run_updated=summary.last_run_updated,
        )
        return summary

    async def run_unit(self, unit_id: str) -> RunSummary:
        """Run one unit on its own interval; last_run_at moves only when jobs were created."""
        summary = RunSummary(scope=UNIT_SCOPE, target_id=unit_id)
        self._metrics.record_scheduler_run(UNIT_SCOPE)
        log = logger.bind(unit_id=unit_id)

        unit = await self._units.get_unit(unit_id)
        if unit is None:
            return self._not_run(summary, "unit_not_found", log)

        reason = own_run_skip_reason(unit, self._registry)
        if reason is not None:
            summary.skipped_units[unit_id] = reason
            return self._not_run(summary, reason, log)

        project = await self._units.get_project(unit.project_id)
        if project is None or not project.owner:
            return self._not_run(summary, "project_without_owner", log)

        summary.ran = True
        result = await self._job_creator.create_jobs_for_unit(
            unit, project.owner, FetchContext(unit_id=unit.unit_id)
        )
        summary.units.append(result)

        if result.jobs_created > 0:
            await self._units.touch_unit_last_run(unit_id)
            summary.last_run_updated = True

        log.info(
            "Unit run completed",
            jobs_created=result.jobs_created,
            error=result.error,
            last_run_updated=summary.last_run_updated,
        )
        return summary

    async def _clean_up_jobs(self, log) -> None:
        if self._jobs is None:
            return
        config = self._jobs_config
        try:
            stuck = await self._jobs.fail_stuck(timedelta(hours=config.stuck_timeout_hours))
            old = await self._jobs.delete_old(config.retention_days)
        except Exception as e:
            log.warning("Job cleanup failed", error=str(e))
            return
        if stuck or old:
            log.info("Jobs cleaned up", stuck_failed=stuck, old_deleted=old)

    def _not_run(self, summary: RunSummary, reason: str, log) -> RunSummary:
        summary.reason = reason
        log.info("Trigger ignored", reason=reason)
        return summary

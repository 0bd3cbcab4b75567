"""
Job creation: one fetch for a unit, one persisted job per packet.

The handler records each eligible item in the ledger before its packet is
returned, so a failure between the ledger write and job persistence loses
that item rather than risking a duplicate publish. Entries are written with
job_id=None and get the job id attached once the job is persisted.
"""

import json

import structlog

from ingestflow.errors import AuthError, ConfigError, SerializationError, UpstreamError
from ingestflow.ingestion.base_handler import FetchContext
from ingestflow.ingestion.registry import HandlerRegistry
from ingestflow.jobs.executor import JobExecutor
from ingestflow.jobs.repository import JobRepository
from ingestflow.jobs.schemas import JobStatus
from ingestflow.ledger.schemas import Ledger
from ingestflow.observability.metrics import get_metrics
from ingestflow.packets.schemas import DataPacket
from ingestflow.scheduling.schemas import FlowUnit, UnitRunResult

logger = structlog.get_logger(__name__)


def serialize_base_config(unit: FlowUnit) -> str:
    try:
        return json.dumps(unit.base_config(), sort_keys=True)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Unit {unit.unit_id} config cannot be encoded: {e}") from e


class JobCreator:
    """
    Turns one unit fetch into pending jobs handed to an executor.

    Failures never propagate: a fetch error is recorded on the result, and a
    per-item failure is recorded while sibling items continue.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        jobs: JobRepository,
        executor: JobExecutor,
        ledger: Ledger | None = None,
    ) -> None:
        self._registry = registry
        self._jobs = jobs
        self._executor = executor
        self._ledger = ledger
        self._metrics = get_metrics()

    async def create_jobs_for_unit(
        self,
        unit: FlowUnit,
        owner: str,
        context: FetchContext | None = None,
    ) -> UnitRunResult:
        result = UnitRunResult(unit_id=unit.unit_id)
        context = context or FetchContext(unit_id=unit.unit_id)
        log = logger.bind(unit_id=unit.unit_id, flow_id=unit.flow_id, handler=unit.handler)

        try:
            handler = self._registry.get(unit.handler)
            fetched = await handler.fetch(unit.flow_id, unit.handler_config, context)
        except (ConfigError, AuthError, UpstreamError) as e:
            result.error = f"{type(e).__name__}: {e}"
            log.warning("Fetch failed", error_type=type(e).__name__, error=str(e))
            return result
        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            log.exception("Unexpected fetch error", error=str(e))
            return result

        result.packets_found = len(fetched.packets)
        if fetched.is_empty:
            log.info("No eligible items")
            return result

        try:
            base_config = serialize_base_config(unit)
        except SerializationError as e:
            result.error = f"SerializationError: {e}"
            self._metrics.record_job_creation_error("SerializationError")
            log.error("Base config serialization failed", error=str(e))
            return result

        for index, packet in enumerate(fetched.packets):
            item_id = fetched.item_ids[index] if index < len(fetched.item_ids) else None
            job_id = await self._create_one(unit, owner, base_config, packet, item_id, result, log)
            if job_id is not None:
                result.job_ids.append(job_id)

        log.info(
            "Jobs created for unit",
            packets=result.packets_found,
            jobs_created=result.jobs_created,
            item_errors=len(result.item_errors),
        )
        return result

    async def _create_one(
        self,
        unit: FlowUnit,
        owner: str,
        base_config: str,
        packet: DataPacket,
        item_id: str | None,
        result: UnitRunResult,
        log,
    ) -> str | None:
        """Persist and schedule one packet; returns the job id or None on failure."""
        try:
            payload = packet.to_json()
            job = await self._jobs.create(unit.unit_id, owner, base_config, payload)
        except Exception as e:
            self._record_item_error(result, log, item_id, "create", e)
            return None

        if item_id is not None:
            await self._attach_job(unit, item_id, job.job_id, log)

        try:
            reference = await self._executor.schedule(job.job_id)
        except Exception as e:
            self._record_item_error(result, log, item_id, "schedule", e)
            await self._fail_unscheduled(job.job_id, e, log)
            return None

        self._metrics.record_job_created(unit.handler)
        log.info("Job scheduled", job_id=job.job_id, item_id=item_id, reference=reference)
        return job.job_id

    async def _attach_job(self, unit: FlowUnit, item_id: str, job_id: str, log) -> None:
        if self._ledger is None:
            return
        try:
            attached = await self._ledger.attach_job(unit.flow_id, unit.handler, item_id, job_id)
        except Exception as e:
            log.warning("Could not attach job to ledger entry", item_id=item_id, job_id=job_id, error=str(e))
            return
        if not attached:
            log.debug("Ledger entry already carries a job", item_id=item_id, job_id=job_id)

    def _record_item_error(self, result: UnitRunResult, log, item_id: str | None, stage: str, error: Exception) -> None:
        error_type = type(error).__name__
        result.item_errors.append(f"{item_id or '?'}: {error_type}: {error}")
        self._metrics.record_job_creation_error(error_type)
        log.error("Job creation failed", item_id=item_id, stage=stage, error_type=error_type, error=str(error))

    async def _fail_unscheduled(self, job_id: str, error: Exception, log) -> None:
        try:
            await self._jobs.complete(job_id, JobStatus.FAILED, error=f"schedule failed: {error}")
        except Exception as e:
            log.error("Could not mark unscheduled job failed", job_id=job_id, error=str(e))

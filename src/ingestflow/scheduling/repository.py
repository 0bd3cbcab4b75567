"""Project and flow unit repositories: PostgreSQL and in-memory."""

import logging
from dataclasses import replace
from typing import Any, Protocol

from ingestflow.clock import Clock, utc_now
from ingestflow.scheduling.schemas import FlowUnit, Project, ScheduleStatus
from ingestflow.storage.database import Database, affected_rows

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS projects (
    project_id        TEXT PRIMARY KEY,
    name              TEXT NOT NULL,
    owner             TEXT,
    schedule_interval TEXT NOT NULL DEFAULT 'manual',
    schedule_status   TEXT NOT NULL DEFAULT 'paused',
    last_run_at       TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS flow_units (
    unit_id           TEXT PRIMARY KEY,
    project_id        TEXT NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
    name              TEXT NOT NULL,
    handler           TEXT NOT NULL,
    handler_config    JSONB NOT NULL DEFAULT '{}'::jsonb,
    pipeline          JSONB NOT NULL DEFAULT '[]'::jsonb,
    flow_id           TEXT NOT NULL,
    schedule_interval TEXT NOT NULL DEFAULT 'project_schedule',
    schedule_status   TEXT NOT NULL DEFAULT 'active',
    last_run_at       TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_flow_units_project
    ON flow_units(project_id);
"""


class UnitRepository(Protocol):
    async def get_project(self, project_id: str) -> Project | None: ...

    async def get_unit(self, unit_id: str) -> FlowUnit | None: ...

    async def list_units(self, project_id: str) -> list[FlowUnit]: ...

    async def touch_project_last_run(self, project_id: str) -> None: ...

    async def touch_unit_last_run(self, unit_id: str) -> None: ...


class PostgresUnitRepository:
    """Repository for the ``projects`` and ``flow_units`` tables."""

    def __init__(self, database: Database, clock: Clock = utc_now) -> None:
        self._db = database
        self._clock = clock

    async def create_tables(self) -> None:
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("projects and flow_units tables ensured")

    async def save_project(self, project: Project) -> None:
        """Insert or update a project."""
        await self._db.execute(
            """
            INSERT INTO projects (project_id, name, owner, schedule_interval, schedule_status, last_run_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (project_id) DO UPDATE SET
                name = EXCLUDED.name,
                owner = EXCLUDED.owner,
                schedule_interval = EXCLUDED.schedule_interval,
                schedule_status = EXCLUDED.schedule_status
            """,
            project.project_id,
            project.name,
            project.owner,
            project.schedule_interval,
            project.schedule_status.value,
            project.last_run_at,
        )

    async def save_unit(self, unit: FlowUnit) -> None:
        """Insert or update a flow unit."""
        await self._db.execute(
            """
            INSERT INTO flow_units (
                unit_id, project_id, name, handler, handler_config, pipeline,
                flow_id, schedule_interval, schedule_status, last_run_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            ON CONFLICT (unit_id) DO UPDATE SET
                name = EXCLUDED.name,
                handler = EXCLUDED.handler,
                handler_config = EXCLUDED.handler_config,
                pipeline = EXCLUDED.pipeline,
                flow_id = EXCLUDED.flow_id,
                schedule_interval = EXCLUDED.schedule_interval,
                schedule_status = EXCLUDED.schedule_status
            """,
            unit.unit_id,
            unit.project_id,
            unit.name,
            unit.handler,
            unit.handler_config,
            unit.pipeline,
            unit.flow_id,
            unit.schedule_interval,
            unit.schedule_status.value,
            unit.last_run_at,
        )

    async def get_project(self, project_id: str) -> Project | None:
        row = await self._db.fetchrow("SELECT * FROM projects WHERE project_id = $1", project_id)
        return _row_to_project(row) if row else None

    async def get_unit(self, unit_id: str) -> FlowUnit | None:
        row = await self._db.fetchrow("SELECT * FROM flow_units WHERE unit_id = $1", unit_id)
        return _row_to_unit(row) if row else None

    async def list_units(self, project_id: str) -> list[FlowUnit]:
        rows = await self._db.fetch(
            "SELECT * FROM flow_units WHERE project_id = $1 ORDER BY unit_id", project_id
        )
        return [_row_to_unit(row) for row in rows]

    async def touch_project_last_run(self, project_id: str) -> None:
        status = await self._db.execute(
            "UPDATE projects SET last_run_at = $2 WHERE project_id = $1",
            project_id, self._clock(),
        )
        if affected_rows(status) == 0:
            logger.warning(f"Project {project_id} vanished before its last run could be recorded")

    async def touch_unit_last_run(self, unit_id: str) -> None:
        status = await self._db.execute(
            "UPDATE flow_units SET last_run_at = $2 WHERE unit_id = $1",
            unit_id, self._clock(),
        )
        if affected_rows(status) == 0:
            logger.warning(f"Unit {unit_id} vanished before its last run could be recorded")


class InMemoryUnitRepository:
    """Projects and units kept in dicts, for tests and dry runs."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._projects: dict[str, Project] = {}
        self._units: dict[str, FlowUnit] = {}

    async def save_project(self, project: Project) -> None:
        self._projects[project.project_id] = replace(project)

    async def save_unit(self, unit: FlowUnit) -> None:
        self._units[unit.unit_id] = replace(unit)

    async def get_project(self, project_id: str) -> Project | None:
        project = self._projects.get(project_id)
        return replace(project) if project else None

    async def get_unit(self, unit_id: str) -> FlowUnit | None:
        unit = self._units.get(unit_id)
        return replace(unit) if unit else None

    async def list_units(self, project_id: str) -> list[FlowUnit]:
        units = [u for u in self._units.values() if u.project_id == project_id]
        return [replace(u) for u in sorted(units, key=lambda u: u.unit_id)]

    async def touch_project_last_run(self, project_id: str) -> None:
        if project_id in self._projects:
            self._projects[project_id].last_run_at = self._clock()

    async def touch_unit_last_run(self, unit_id: str) -> None:
        if unit_id in self._units:
            self._units[unit_id].last_run_at = self._clock()


def _row_to_project(row: Any) -> Project:
    """Convert an asyncpg Record to a Project."""
    return Project(
        project_id=row["project_id"],
        name=row["name"],
        owner=row["owner"],
        schedule_interval=row["schedule_interval"],
        schedule_status=ScheduleStatus(row["schedule_status"]),
        last_run_at=row["last_run_at"],
    )


def _row_to_unit(row: Any) -> FlowUnit:
    """Convert an asyncpg Record to a FlowUnit."""
    return FlowUnit(
        unit_id=row["unit_id"],
        project_id=row["project_id"],
        name=row["name"],
        handler=row["handler"],
        handler_config=row["handler_config"] or {},
        pipeline=row["pipeline"] or [],
        flow_id=row["flow_id"],
        schedule_interval=row["schedule_interval"],
        schedule_status=ScheduleStatus(row["schedule_status"]),
        last_run_at=row["last_run_at"],
    )

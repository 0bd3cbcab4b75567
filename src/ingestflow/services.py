"""
Wiring of the production components shared by the CLI and the API.

Services opens one database pool, one Redis client and one HTTP client, and
builds every repository, handler and the scheduler on top of them.

Usage:
    async with Services() as services:
        summary = await services.scheduler.trigger("proj-1", "project")
"""

import logging
from types import TracebackType

import redis.asyncio as redis

from ingestflow.auth.oauth import CredentialManager
from ingestflow.auth.providers import PROVIDERS
from ingestflow.auth.store import CredentialRepository, RedisKeyValueStore
from ingestflow.config.settings import Settings, get_settings
from ingestflow.errors import ConfigError
from ingestflow.ingestion.config import FetchConfig
from ingestflow.ingestion.files_handler import FilesFetchHandler
from ingestflow.ingestion.http_client import HTTPClient
from ingestflow.ingestion.reddit_handler import RedditFetchHandler
from ingestflow.ingestion.registry import HandlerRegistry
from ingestflow.ingestion.rss_handler import RssFetchHandler
from ingestflow.jobs.config import JobsConfig
from ingestflow.jobs.queue import JobQueue
from ingestflow.jobs.repository import PostgresJobRepository
from ingestflow.ledger.repository import ProcessedItemsRepository
from ingestflow.scheduling.job_creator import JobCreator
from ingestflow.scheduling.repository import PostgresUnitRepository
from ingestflow.scheduling.scheduler import Scheduler
from ingestflow.storage.database import Database

logger = logging.getLogger(__name__)


class Services:
    """Connected components for one process."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.database = Database(
            str(self.settings.database_url),
            min_size=self.settings.db_pool_min_size,
            max_size=self.settings.db_pool_max_size,
        )
        self.redis: redis.Redis | None = None
        self.http = HTTPClient.from_settings(self.settings)

        self.ledger = ProcessedItemsRepository(self.database)
        self.jobs = PostgresJobRepository(self.database)
        self.units = PostgresUnitRepository(self.database)

        self._credentials: dict[str, CredentialManager] = {}
        self.queue: JobQueue | None = None
        self.registry: HandlerRegistry | None = None
        self.scheduler: Scheduler | None = None

    async def open(self) -> None:
        await self.database.connect()
        self.redis = redis.from_url(
            str(self.settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )
        await self.http.__aenter__()

        jobs_config = JobsConfig()
        self.queue = JobQueue(str(self.settings.redis_url), jobs_config, client=self.redis)
        await self.queue.connect()

        self.registry = HandlerRegistry(
            [
                RedditFetchHandler(self.credentials("reddit"), self.http, self.ledger, FetchConfig()),
                RssFetchHandler(self.http, self.ledger),
                FilesFetchHandler(self.ledger),
            ]
        )
        self.scheduler = Scheduler(
            self.units,
            self.registry,
            JobCreator(self.registry, self.jobs, self.queue, ledger=self.ledger),
            jobs=self.jobs,
            jobs_config=jobs_config,
        )
        logger.info(f"Services ready, handlers: {', '.join(self.registry.names())}")

    async def close(self) -> None:
        await self.http.__aexit__(None, None, None)
        if self.queue is not None:
            await self.queue.close()
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
        await self.database.close()

    async def __aenter__(self) -> "Services":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def init_schema(self) -> None:
        """Create every table (idempotent)."""
        await self.ledger.create_table()
        await self.jobs.create_table()
        await self.units.create_tables()

    def credentials(self, integration: str, scope: str = "default") -> CredentialManager:
        """Credential manager for an integration; ConfigError if it has no provider."""
        key = f"{integration}:{scope}"
        if key in self._credentials:
            return self._credentials[key]
        if integration not in PROVIDERS:
            raise ConfigError(f"Unknown integration: {integration}")
        if self.redis is None:
            raise RuntimeError("Services not opened. Call open() first.")

        store = RedisKeyValueStore(self.redis)
        manager = CredentialManager(
            PROVIDERS[integration](self.settings),
            CredentialRepository(store, integration, scope),
            store,
            self.http,
            refresh_margin_seconds=self.settings.token_refresh_margin_seconds,
            state_ttl_seconds=self.settings.oauth_state_ttl_seconds,
        )
        self._credentials[key] = manager
        return manager

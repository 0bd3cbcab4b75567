"""Upload-only files source. Never fetched by the scheduler."""

from ingestflow.errors import ConfigError
from ingestflow.ingestion.base_handler import FetchContext, FetchHandler, FetchResult
from ingestflow.ingestion.handler_config import FilesFetchConfig


class FilesFetchHandler(FetchHandler):
    """Files arrive through manual uploads, so there is nothing to pull."""

    name = "files"
    schedulable = False

    async def _fetch(
        self,
        scope_id: str,
        config: FilesFetchConfig,
        context: FetchContext,
    ) -> FetchResult:
        raise ConfigError("The files source only accepts manual uploads and cannot be fetched")

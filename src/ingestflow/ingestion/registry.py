"""Name to handler lookup used by the job creator and the scheduler."""

import logging

from ingestflow.errors import ConfigError
from ingestflow.ingestion.base_handler import FetchHandler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """
    Registered fetch handlers by name.

    Usage:
        registry = HandlerRegistry([reddit_handler, rss_handler, FilesFetchHandler(ledger)])
        handler = registry.get(unit.handler)
    """

    def __init__(self, handlers: list[FetchHandler] | None = None) -> None:
        self._handlers: dict[str, FetchHandler] = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: FetchHandler) -> None:
        if handler.name in self._handlers:
            logger.warning(f"Replacing registered handler {handler.name}")
        self._handlers[handler.name] = handler

    def get(self, name: str) -> FetchHandler:
        """Raises ConfigError for unknown handlers."""
        handler = self._handlers.get(name)
        if handler is None:
            raise ConfigError(f"Unknown handler: {name}")
        return handler

    def is_schedulable(self, name: str) -> bool:
        """
        False only for handlers registered as manual-input sources.

        Unknown names count as schedulable so the fetch attempt surfaces
        the ConfigError in the run summary.
        """
        handler = self._handlers.get(name)
        return handler is None or handler.schedulable

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

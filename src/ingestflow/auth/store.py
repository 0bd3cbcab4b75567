"""
Key/value storage for credentials and transient OAuth state.

Values are JSON-able dicts. RedisKeyValueStore is the production backend;
InMemoryKeyValueStore honours TTLs against an injected clock for tests.
"""

import json
import logging
from typing import Any, Protocol

import redis.asyncio as redis

from ingestflow.auth.schemas import CredentialRecord
from ingestflow.clock import Clock, epoch_seconds, utc_now

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> dict[str, Any] | None:
        ...

    async def put(self, key: str, value: dict[str, Any], ttl: int | None = None) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...


class RedisKeyValueStore:
    """
    Redis-backed key/value store.

    Usage:
        client = redis.from_url(str(settings.redis_url), decode_responses=True)
        store = RedisKeyValueStore(client)
        await store.put("oauth_state:reddit", {"state": token}, ttl=900)
    """

    def __init__(self, client: redis.Redis, prefix: str = "ingestflow:") -> None:
        self._redis = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> dict[str, Any] | None:
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"Discarding undecodable value at {key}")
            await self._redis.delete(self._key(key))
            return None

    async def put(self, key: str, value: dict[str, Any], ttl: int | None = None) -> None:
        await self._redis.set(self._key(key), json.dumps(value), ex=ttl)

    async def delete(self, key: str) -> bool:
        return bool(await self._redis.delete(self._key(key)))


class InMemoryKeyValueStore:
    """Dict-backed store whose TTLs expire against the given clock."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._data: dict[str, tuple[dict[str, Any], int | None]] = {}

    async def get(self, key: str) -> dict[str, Any] | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and epoch_seconds(self._clock) >= expires_at:
            del self._data[key]
            return None
        return json.loads(json.dumps(value))

    async def put(self, key: str, value: dict[str, Any], ttl: int | None = None) -> None:
        expires_at = epoch_seconds(self._clock) + ttl if ttl is not None else None
        self._data[key] = (json.loads(json.dumps(value)), expires_at)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class CredentialRepository:
    """Credential records for one integration, keyed by scope."""

    def __init__(self, store: KeyValueStore, integration: str, scope: str = "default") -> None:
        self._store = store
        self.integration = integration
        self.scope = scope

    @property
    def key(self) -> str:
        return f"credentials:{self.integration}:{self.scope}"

    async def get(self) -> CredentialRecord | None:
        data = await self._store.get(self.key)
        if data is None:
            return None
        return CredentialRecord.model_validate(data)

    async def put(self, record: CredentialRecord) -> None:
        await self._store.put(self.key, record.model_dump())

    async def delete(self) -> bool:
        return await self._store.delete(self.key)

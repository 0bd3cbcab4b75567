"""Tests for credential and state storage."""

import json
from unittest.mock import AsyncMock

import pytest

from ingestflow.auth.providers import PROVIDERS, reddit_provider
from ingestflow.auth.store import CredentialRepository, InMemoryKeyValueStore, RedisKeyValueStore


class TestInMemoryKeyValueStore:
    """Tests for InMemoryKeyValueStore."""

    @pytest.mark.asyncio
    async def test_put_get_delete(self, kv_store):
        """Should store copies and delete once."""
        value = {"a": [1, 2]}
        await kv_store.put("k", value)
        value["a"].append(3)

        assert await kv_store.get("k") == {"a": [1, 2]}
        assert await kv_store.delete("k")
        assert not await kv_store.delete("k")

    @pytest.mark.asyncio
    async def test_ttl_expires_with_clock(self, clock):
        """Should forget values once the clock passes the TTL."""
        store = InMemoryKeyValueStore(clock)
        await store.put("k", {"v": 1}, ttl=10)

        clock.advance(seconds=9)
        assert await store.get("k") == {"v": 1}
        clock.advance(seconds=1)
        assert await store.get("k") is None


class TestRedisKeyValueStore:
    """Tests for RedisKeyValueStore with a mocked client."""

    @pytest.mark.asyncio
    async def test_put_uses_prefix_and_ttl(self):
        """Should write JSON under the prefixed key with expiry."""
        client = AsyncMock()
        store = RedisKeyValueStore(client)

        await store.put("oauth_state:reddit", {"state": "s"}, ttl=900)

        client.set.assert_awaited_once_with("ingestflow:oauth_state:reddit", json.dumps({"state": "s"}), ex=900)

    @pytest.mark.asyncio
    async def test_get_decodes(self):
        """Should decode stored JSON."""
        client = AsyncMock()
        client.get.return_value = '{"state": "s"}'

        assert await RedisKeyValueStore(client).get("k") == {"state": "s"}

    @pytest.mark.asyncio
    async def test_get_discards_garbage(self):
        """Should drop undecodable values."""
        client = AsyncMock()
        client.get.return_value = "{not json"
        store = RedisKeyValueStore(client)

        assert await store.get("k") is None
        client.delete.assert_awaited_once_with("ingestflow:k")


class TestCredentialRepository:
    """Tests for CredentialRepository."""

    @pytest.mark.asyncio
    async def test_keyed_by_integration_and_scope(self, kv_store, make_record):
        """Should keep scopes apart."""
        default = CredentialRepository(kv_store, "reddit")
        other = CredentialRepository(kv_store, "reddit", scope="team-b")

        await default.put(make_record())

        assert default.key == "credentials:reddit:default"
        assert (await default.get()).identity == "tester"
        assert await other.get() is None


class TestProviders:
    """Tests for provider definitions."""

    def test_reddit_provider_from_settings(self, test_settings):
        """Should build the Reddit provider from settings."""
        provider = reddit_provider(test_settings)

        assert provider.configured
        assert provider.basic_auth == ("client-id", "client-secret")
        assert provider.extra_authorize_params == {"duration": "permanent"}
        assert provider.user_agent.startswith("python:ingestflow:v")
        assert PROVIDERS["reddit"] is reddit_provider

"""OAuth credential store and refresher."""

from ingestflow.auth.oauth import CredentialManager
from ingestflow.auth.providers import PROVIDERS, reddit_provider
from ingestflow.auth.schemas import CredentialRecord, CredentialState, OAuthProviderConfig
from ingestflow.auth.store import (
    CredentialRepository,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
)

__all__ = [
    "CredentialManager",
    "CredentialRecord",
    "CredentialRepository",
    "CredentialState",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "OAuthProviderConfig",
    "PROVIDERS",
    "RedisKeyValueStore",
    "reddit_provider",
]

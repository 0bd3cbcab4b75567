"""
OAuth2 credential lifecycle for one integration.

States: unauthorized -> usable -> expiring -> refreshed | unauthorized.

A failed refresh deletes the whole credential, so the integration shows up
as unauthorized and the user re-authorizes instead of fetches retrying a
token the provider has already revoked.
"""

import hmac
import logging
import secrets
from typing import Any

from ingestflow.auth.schemas import CredentialRecord, CredentialState, OAuthProviderConfig
from ingestflow.auth.store import CredentialRepository, KeyValueStore
from ingestflow.clock import Clock, epoch_seconds, from_epoch, utc_now
from ingestflow.errors import AuthError, StateMismatch
from ingestflow.ingestion.http_client import HTTPClient, HTTPResult
from ingestflow.observability.logging import mask_token
from ingestflow.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


class CredentialManager:
    """
    Authorize, store, refresh and revoke the credential of one integration.

    Usage:
        manager = CredentialManager(reddit_provider(settings), repository, store, http)
        url = await manager.begin_authorization()
        # ... user approves, provider redirects back with state and code ...
        await manager.complete_authorization(state, code)
        token = await manager.get_access_token()
    """

    def __init__(
        self,
        provider: OAuthProviderConfig,
        repository: CredentialRepository,
        store: KeyValueStore,
        http: HTTPClient,
        clock: Clock = utc_now,
        refresh_margin_seconds: int = 300,
        state_ttl_seconds: int = 900,
    ) -> None:
        self.provider = provider
        self._repository = repository
        self._store = store
        self._http = http
        self._clock = clock
        self._margin = refresh_margin_seconds
        self._state_ttl = state_ttl_seconds

    @property
    def integration(self) -> str:
        return self.provider.name

    @property
    def _state_key(self) -> str:
        return f"oauth_state:{self.provider.name}:{self._repository.scope}"

    def _now(self) -> int:
        return epoch_seconds(self._clock)

    # Authorization code flow

    async def begin_authorization(self) -> str:
        """
        Store a single-use state token and return the provider authorization URL.

        Raises:
            AuthError: If the provider client is not configured
        """
        if not self.provider.configured:
            raise AuthError(f"{self.integration} OAuth client is not configured")

        state = secrets.token_urlsafe(32)
        await self._store.put(self._state_key, {"state": state}, ttl=self._state_ttl)
        logger.info(f"Started {self.integration} authorization (state expires in {self._state_ttl}s)")
        return self.provider.authorization_url(state)

    async def complete_authorization(
        self,
        returned_state: str | None,
        code: str | None,
        error: str | None = None,
    ) -> CredentialRecord:
        """
        Verify the returned state and exchange the code for tokens.

        The stored state is consumed before anything else, so a callback can
        be completed at most once. Nothing is persisted unless the exchange
        succeeds.

        Raises:
            StateMismatch: Stored state missing, expired or different
            AuthError: Provider error, missing code or failed token exchange
        """
        stored = await self._store.get(self._state_key)
        await self._store.delete(self._state_key)

        expected = (stored or {}).get("state")
        if not returned_state or not expected or not hmac.compare_digest(
            str(expected), str(returned_state)
        ):
            logger.error(f"{self.integration} OAuth state mismatch or missing")
            raise StateMismatch(f"{self.integration} authorization state mismatch")

        if error:
            logger.error(f"{self.integration} OAuth error returned by provider: {error}")
            raise AuthError(f"{self.integration} authorization denied: {error}")

        if not code:
            raise AuthError(f"{self.integration} authorization code missing")

        if not self.provider.configured:
            raise AuthError(f"{self.integration} OAuth client is not configured")

        result = await self._http.request(
            "POST",
            self.provider.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.provider.redirect_uri,
            },
            auth=self.provider.basic_auth,
            headers={"User-Agent": self.provider.user_agent},
        )
        tokens = self._token_payload(result)
        if tokens is None:
            raise AuthError(
                f"{self.integration} token exchange failed: {result.error or result.status_code}"
            )

        access_token = tokens["access_token"]
        identity = await self._resolve_identity(access_token)
        now = self._now()
        record = CredentialRecord(
            access_token=access_token,
            refresh_token=tokens.get("refresh_token"),
            token_expires_at=now + tokens["expires_in"],
            scope=tokens.get("scope") or "",
            last_refreshed_at=now,
            identity=identity,
        )
        await self._repository.put(record)
        logger.info(
            f"Authorized {self.integration} as {identity or 'unknown user'} "
            f"(token {mask_token(access_token)})"
        )
        return record

    def _token_payload(self, result: HTTPResult) -> dict[str, Any] | None:
        """Decoded token response, or None if the provider did not issue a token."""
        if not result.success or result.status_code != 200:
            logger.error(
                f"{self.integration} token endpoint failed: "
                f"status={result.status_code} error={result.error}"
            )
            return None
        try:
            data = result.json()
        except ValueError:
            logger.error(f"{self.integration} token endpoint returned malformed JSON")
            return None
        if not isinstance(data, dict) or not data.get("access_token"):
            detail = data.get("error", "unknown reason") if isinstance(data, dict) else "unknown reason"
            logger.error(f"{self.integration} token response carried no access token: {detail}")
            return None
        if not isinstance(data["access_token"], str):
            logger.error(f"{self.integration} token response carried a non-string access token")
            return None

        raw_expiry = data.get("expires_in") or DEFAULT_EXPIRES_IN
        try:
            if isinstance(raw_expiry, bool) or not isinstance(raw_expiry, (int, float, str)):
                raise ValueError(raw_expiry)
            expires_in = int(raw_expiry)
        except ValueError:
            logger.error(f"{self.integration} token response had a malformed expires_in: {raw_expiry!r}")
            return None
        return {**data, "expires_in": expires_in}

    async def _resolve_identity(self, access_token: str) -> str | None:
        """Best-effort account lookup; failures only log a warning."""
        if not self.provider.identity_url:
            return None

        result = await self._http.request(
            "GET",
            self.provider.identity_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "User-Agent": self.provider.user_agent,
            },
        )
        if not result.success or result.status_code != 200:
            logger.warning(
                f"Could not resolve {self.integration} identity: "
                f"{result.error or f'HTTP {result.status_code}'}"
            )
            return None
        try:
            identity = result.json().get(self.provider.identity_field)
        except (ValueError, AttributeError):
            identity = None
        if not identity:
            logger.warning(f"{self.integration} identity response had no {self.provider.identity_field!r}")
            return None
        return str(identity)

    # Lifecycle

    async def is_usable(self) -> bool:
        record = await self._repository.get()
        return (
            record is not None
            and bool(record.access_token)
            and not record.is_expired(self._now(), self._margin)
        )

    async def state(self) -> CredentialState:
        record = await self._repository.get()
        if record is None:
            return CredentialState.UNAUTHORIZED
        if record.is_expired(self._now(), self._margin):
            return CredentialState.EXPIRING
        return CredentialState.USABLE

    async def refresh(self) -> bool:
        """
        Exchange the stored refresh token for a new access token.

        Returns False when there is nothing to refresh or the client is not
        configured (record untouched), and when the provider rejects the
        refresh (record deleted). A transport failure that never reached
        the provider leaves the record in place.
        """
        metrics = get_metrics()
        record = await self._repository.get()
        if record is None or not record.refresh_token:
            logger.warning(f"No {self.integration} refresh token available")
            return False

        if not self.provider.configured:
            logger.error(f"{self.integration} OAuth client is not configured, cannot refresh")
            return False

        result = await self._http.request(
            "POST",
            self.provider.token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": record.refresh_token,
            },
            auth=self.provider.basic_auth,
            headers={"User-Agent": self.provider.user_agent},
        )

        if not result.success and result.status_code is None:
            logger.error(f"{self.integration} token refresh request failed: {result.error}")
            metrics.record_token_refresh(self.integration, success=False)
            return False

        tokens = self._token_payload(result)
        if tokens is None:
            await self._repository.delete()
            logger.error(f"{self.integration} refresh rejected, credential cleared")
            metrics.record_token_refresh(self.integration, success=False)
            return False

        now = self._now()
        refreshed = CredentialRecord(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or record.refresh_token,
            token_expires_at=now + tokens["expires_in"],
            scope=tokens.get("scope") or record.scope,
            last_refreshed_at=now,
            identity=record.identity,
        )
        await self._repository.put(refreshed)
        metrics.record_token_refresh(self.integration, success=True)
        logger.info(
            f"Refreshed {self.integration} token {mask_token(refreshed.access_token)}, "
            f"expires {from_epoch(refreshed.token_expires_at).isoformat()}"
        )
        return True

    async def get_access_token(self) -> str:
        """
        Return a usable access token, refreshing it when missing or expiring.

        Raises:
            AuthError: If no usable credential can be obtained
        """
        record = await self._repository.get()
        if record is None:
            raise AuthError(f"{self.integration} is not authorized, please authenticate")

        if not record.is_expired(self._now(), self._margin):
            return record.access_token

        logger.info(f"{self.integration} token expired or expiring, refreshing")
        if not await self.refresh():
            raise AuthError(
                f"Failed to refresh {self.integration} access token, please re-authenticate"
            )

        record = await self._repository.get()
        if record is None:
            raise AuthError(f"{self.integration} credential vanished after refresh")
        return record.access_token

    async def revoke(self) -> bool:
        """Forget the credential. Returns True if one was stored."""
        removed = await self._repository.delete()
        if removed:
            logger.info(f"Revoked {self.integration} credential")
        return removed

    async def account_details(self) -> dict[str, Any] | None:
        """Credential summary for status displays, without any token material."""
        record = await self._repository.get()
        if record is None:
            return None
        return {
            "integration": self.integration,
            "identity": record.identity,
            "scope": record.scope,
            "last_refreshed_at": from_epoch(record.last_refreshed_at).isoformat(),
            "expires_at": from_epoch(record.token_expires_at).isoformat(),
            "refreshable": record.refreshable,
            "state": (await self.state()).value,
        }

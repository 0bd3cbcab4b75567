"""Tests for the OAuth credential lifecycle."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio
import respx

from ingestflow.auth.oauth import CredentialManager
from ingestflow.auth.schemas import CredentialState
from ingestflow.errors import AuthError, StateMismatch
from ingestflow.ingestion.http_client import HTTPClient, RetryConfig

TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
IDENTITY_URL = "https://oauth.reddit.com/api/v1/me"


@pytest_asyncio.fixture
async def manager(provider, credential_repo, kv_store, clock):
    async with HTTPClient(retry_config=RetryConfig(max_retries=0)) as http:
        yield CredentialManager(provider, credential_repo, kv_store, http, clock=clock)


def _state_of(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


class TestAuthorization:
    """Tests for the authorization code flow."""

    @pytest.mark.asyncio
    async def test_begin_builds_provider_url(self, manager):
        """Should embed client id, redirect, scope and a fresh state."""
        url = await manager.begin_authorization()
        params = parse_qs(urlparse(url).query)

        assert url.startswith("https://www.reddit.com/api/v1/authorize?")
        assert params["client_id"] == ["client-id"]
        assert params["response_type"] == ["code"]
        assert params["duration"] == ["permanent"]
        assert params["scope"] == ["identity read"]
        assert len(params["state"][0]) >= 32

    @pytest.mark.asyncio
    async def test_begin_requires_configured_client(self, credential_repo, kv_store, clock):
        """Should raise AuthError without client credentials."""
        from ingestflow.auth.schemas import OAuthProviderConfig

        unconfigured = OAuthProviderConfig(
            name="reddit",
            client_id=None,
            client_secret=None,
            authorize_url="https://www.reddit.com/api/v1/authorize",
            token_url=TOKEN_URL,
            redirect_uri="http://localhost/cb",
            scope="read",
            user_agent="test",
        )
        async with HTTPClient() as http:
            manager = CredentialManager(unconfigured, credential_repo, kv_store, http, clock=clock)
            with pytest.raises(AuthError):
                await manager.begin_authorization()

    @pytest.mark.asyncio
    @respx.mock
    async def test_complete_stores_credential(self, manager, credential_repo, clock):
        """Should exchange the code and persist tokens with identity."""
        token_route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(
                200,
                json={"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600, "scope": "identity read"},
            )
        )
        respx.get(IDENTITY_URL).mock(return_value=httpx.Response(200, json={"name": "tester"}))
        state = _state_of(await manager.begin_authorization())

        record = await manager.complete_authorization(state, "the-code")

        assert record.identity == "tester"
        assert record.token_expires_at == int(clock().timestamp()) + 3600
        assert (await credential_repo.get()).access_token == "new-access"
        body = parse_qs(token_route.calls[0].request.content.decode())
        assert body["grant_type"] == ["authorization_code"]
        assert body["code"] == ["the-code"]
        assert token_route.calls[0].request.headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_state_mismatch(self, manager, credential_repo):
        """Should reject a foreign state and store nothing."""
        await manager.begin_authorization()

        with pytest.raises(StateMismatch):
            await manager.complete_authorization("forged", "the-code")
        assert await credential_repo.get() is None

    @pytest.mark.asyncio
    async def test_state_is_single_use(self, manager):
        """Should consume the state even when the callback fails."""
        state = _state_of(await manager.begin_authorization())

        with pytest.raises(AuthError):
            await manager.complete_authorization(state, None, error="access_denied")
        with pytest.raises(StateMismatch):
            await manager.complete_authorization(state, "the-code")

    @pytest.mark.asyncio
    async def test_state_expires(self, manager, clock):
        """Should reject a state older than its TTL."""
        state = _state_of(await manager.begin_authorization())
        clock.advance(seconds=901)

        with pytest.raises(StateMismatch):
            await manager.complete_authorization(state, "the-code")

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_exchange_stores_nothing(self, manager, credential_repo):
        """Should raise AuthError when the provider issues no token."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json={"error": "invalid_grant"}))
        state = _state_of(await manager.begin_authorization())

        with pytest.raises(AuthError):
            await manager.complete_authorization(state, "bad-code")
        assert await credential_repo.get() is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_identity_failure_is_not_fatal(self, manager):
        """Should authorize without an identity when the lookup fails."""
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json={"access_token": "tok-123456789"}))
        respx.get(IDENTITY_URL).mock(return_value=httpx.Response(403))
        state = _state_of(await manager.begin_authorization())

        record = await manager.complete_authorization(state, "code")

        assert record.identity is None
        assert record.refresh_token is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_expiry_fails_exchange(self, manager, credential_repo):
        """Should raise AuthError when the token response has an unreadable expires_in."""
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "tok-123456789", "expires_in": "soon"})
        )
        state = _state_of(await manager.begin_authorization())

        with pytest.raises(AuthError):
            await manager.complete_authorization(state, "code")
        assert await credential_repo.get() is None


class TestLifecycle:
    """Tests for usability, refresh and revocation."""

    @pytest.mark.asyncio
    async def test_state_transitions(self, manager, credential_repo, clock, make_record):
        """Should move from unauthorized to usable to expiring."""
        assert await manager.state() == CredentialState.UNAUTHORIZED

        await credential_repo.put(make_record(expires_in=3600))
        assert await manager.state() == CredentialState.USABLE
        assert await manager.is_usable()

        clock.advance(seconds=3600 - 299)
        assert await manager.state() == CredentialState.EXPIRING
        assert not await manager.is_usable()

    @pytest.mark.asyncio
    async def test_get_access_token_fresh(self, manager, credential_repo, make_record):
        """Should return the stored token without refreshing."""
        await credential_repo.put(make_record())

        assert await manager.get_access_token() == "access-token-0001"

    @pytest.mark.asyncio
    async def test_get_access_token_unauthorized(self, manager):
        """Should raise AuthError without a credential."""
        with pytest.raises(AuthError):
            await manager.get_access_token()

    @pytest.mark.asyncio
    @respx.mock
    async def test_expiring_token_refreshed(self, manager, credential_repo, clock, make_record):
        """Should refresh an expiring token and keep the old refresh token when none is returned."""
        await credential_repo.put(make_record(expires_in=60))
        route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "refreshed-token", "expires_in": 7200})
        )

        token = await manager.get_access_token()

        assert token == "refreshed-token"
        stored = await credential_repo.get()
        assert stored.refresh_token == "refresh-abc"
        assert stored.identity == "tester"
        assert stored.token_expires_at == int(clock().timestamp()) + 7200
        body = parse_qs(route.calls[0].request.content.decode())
        assert body == {"grant_type": ["refresh_token"], "refresh_token": ["refresh-abc"]}

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected_refresh_clears_credential(self, manager, credential_repo, make_record):
        """Should delete the record when the provider rejects the refresh token."""
        await credential_repo.put(make_record(expires_in=60))
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(400, json={"error": "invalid_grant"}))

        assert not await manager.refresh()
        assert await credential_repo.get() is None
        assert not await manager.is_usable()
        assert await manager.state() == CredentialState.UNAUTHORIZED

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected_refresh_fails_token_request(self, manager, credential_repo, make_record):
        """Should raise AuthError from get_access_token after a rejected refresh."""
        await credential_repo.put(make_record(expires_in=0))
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(401))

        with pytest.raises(AuthError):
            await manager.get_access_token()
        assert await credential_repo.get() is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_refresh_expiry_raises_auth_error(self, manager, credential_repo, make_record):
        """Should surface an unreadable refresh expiry as AuthError."""
        await credential_repo.put(make_record(expires_in=0))
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "refreshed-token", "expires_in": {"s": 1}})
        )

        with pytest.raises(AuthError):
            await manager.get_access_token()

    @pytest.mark.asyncio
    @respx.mock
    async def test_numeric_string_expiry_accepted(self, manager, credential_repo, clock, make_record):
        """Should accept expires_in sent as a numeric string."""
        await credential_repo.put(make_record(expires_in=0))
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "refreshed-token", "expires_in": "7200"})
        )

        assert await manager.refresh()
        assert (await credential_repo.get()).token_expires_at == int(clock().timestamp()) + 7200

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_failure_keeps_credential(self, manager, credential_repo, make_record):
        """Should keep the record when the provider was never reached."""
        await credential_repo.put(make_record(expires_in=60))
        respx.post(TOKEN_URL).mock(side_effect=httpx.ConnectError("unreachable"))

        assert not await manager.refresh()
        assert await credential_repo.get() is not None

    @pytest.mark.asyncio
    async def test_refresh_without_refresh_token(self, manager, credential_repo, make_record):
        """Should not refresh a record without a refresh token."""
        await credential_repo.put(make_record(refresh_token=None))

        assert not await manager.refresh()
        assert await credential_repo.get() is not None

    @pytest.mark.asyncio
    async def test_revoke(self, manager, credential_repo, make_record):
        """Should remove the stored credential once."""
        await credential_repo.put(make_record())

        assert await manager.revoke()
        assert not await manager.revoke()

    @pytest.mark.asyncio
    async def test_account_details_has_no_tokens(self, manager, credential_repo, make_record):
        """Should summarize without token material."""
        await credential_repo.put(make_record())

        details = await manager.account_details()

        assert details["identity"] == "tester"
        assert details["state"] == "usable"
        assert details["refreshable"] is True
        assert "access-token-0001" not in str(details)
        assert "refresh-abc" not in str(details)

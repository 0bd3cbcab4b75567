"""Data models for OAuth credentials and provider configuration."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel, Field


class CredentialState(str, Enum):
    """Display state of an integration's credential."""

    UNAUTHORIZED = "unauthorized"
    USABLE = "usable"
    EXPIRING = "expiring"


class CredentialRecord(BaseModel):
    """
    Persisted OAuth token set for one integration and scope.

    Timestamps are epoch seconds, the unit OAuth providers report
    expires_in against.
    """

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    token_expires_at: int
    scope: str = ""
    last_refreshed_at: int
    identity: str | None = None

    def is_expired(self, now: int, margin: int = 0) -> bool:
        """True once now is within margin seconds of the expiry."""
        return now >= self.token_expires_at - margin

    @property
    def refreshable(self) -> bool:
        return bool(self.refresh_token)


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Endpoints and client credentials of one OAuth2 provider."""

    name: str
    client_id: str | None
    client_secret: str | None
    authorize_url: str
    token_url: str
    redirect_uri: str
    scope: str
    user_agent: str
    identity_url: str | None = None
    identity_field: str = "name"
    extra_authorize_params: dict[str, str] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def basic_auth(self) -> tuple[str, str]:
        return (self.client_id or "", self.client_secret or "")

    def authorization_url(self, state: str) -> str:
        """Provider URL the user is sent to, embedding the anti-forgery state."""
        params: dict[str, Any] = {
            "client_id": self.client_id,
            "response_type": "code",
            "state": state,
            "redirect_uri": self.redirect_uri,
            **self.extra_authorize_params,
            "scope": self.scope,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

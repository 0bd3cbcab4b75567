"""OAuth provider definitions."""

from ingestflow.auth.schemas import OAuthProviderConfig
from ingestflow.config.settings import Settings

REDDIT_AUTHORIZE_URL = "https://www.reddit.com/api/v1/authorize"
REDDIT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
REDDIT_IDENTITY_URL = "https://oauth.reddit.com/api/v1/me"
REDDIT_SCOPE = "identity read"


def reddit_provider(settings: Settings) -> OAuthProviderConfig:
    """Reddit installed-app provider requesting a permanent (refreshable) grant."""
    return OAuthProviderConfig(
        name="reddit",
        client_id=settings.reddit_client_id,
        client_secret=settings.reddit_client_secret,
        authorize_url=REDDIT_AUTHORIZE_URL,
        token_url=REDDIT_TOKEN_URL,
        redirect_uri=settings.reddit_redirect_uri,
        scope=REDDIT_SCOPE,
        user_agent=settings.effective_reddit_user_agent,
        identity_url=REDDIT_IDENTITY_URL,
        identity_field="name",
        extra_authorize_params={"duration": "permanent"},
    )


PROVIDERS = {
    "reddit": reddit_provider,
}

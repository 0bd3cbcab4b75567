"""
OAuth endpoints: authorization redirect, callback and credential status.

The callback is the redirect target registered with the provider, so it
does not require an API key; the state token is its protection.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ingestflow.api.auth import verify_api_key
from ingestflow.api.dependencies import get_credential_resolver
from ingestflow.api.models import AuthorizeResponse, CredentialSummary, ErrorResponse, RevokeResponse
from ingestflow.auth.oauth import CredentialManager
from ingestflow.errors import AuthError, ConfigError, StateMismatch

logger = structlog.get_logger(__name__)
router = APIRouter()


def _manager(resolve, integration: str) -> CredentialManager:
    try:
        return resolve(integration)
    except ConfigError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


async def _summary(manager: CredentialManager) -> CredentialSummary:
    details = await manager.account_details()
    if details is None:
        return CredentialSummary(
            integration=manager.integration,
            authorized=False,
            state=(await manager.state()).value,
        )
    return CredentialSummary(authorized=True, **details)


@router.get(
    "/auth/{integration}/authorize",
    response_model=AuthorizeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "OAuth client not configured"},
        404: {"model": ErrorResponse, "description": "Unknown integration"},
    },
    summary="Start authorization",
    description="Returns the provider URL the user must visit to grant access.",
)
async def authorize(
    integration: str,
    api_key: str = Depends(verify_api_key),
    resolve=Depends(get_credential_resolver),
) -> AuthorizeResponse:
    manager = _manager(resolve, integration)
    try:
        url = await manager.begin_authorization()
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return AuthorizeResponse(integration=integration, authorization_url=url)


@router.get(
    "/auth/{integration}/callback",
    response_model=CredentialSummary,
    responses={
        400: {"model": ErrorResponse, "description": "State mismatch or rejected code"},
        404: {"model": ErrorResponse, "description": "Unknown integration"},
    },
    summary="OAuth redirect target",
)
async def callback(
    integration: str,
    state: str = Query(default=""),
    code: str | None = Query(default=None),
    error: str | None = Query(default=None),
    resolve=Depends(get_credential_resolver),
) -> CredentialSummary:
    manager = _manager(resolve, integration)
    try:
        await manager.complete_authorization(state, code, error=error)
    except StateMismatch as e:
        logger.warning("OAuth state mismatch", integration=integration)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except AuthError as e:
        logger.warning("OAuth authorization failed", integration=integration, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return await _summary(manager)


@router.get(
    "/auth/{integration}",
    response_model=CredentialSummary,
    responses={404: {"model": ErrorResponse, "description": "Unknown integration"}},
    summary="Credential status",
)
async def credential_status(
    integration: str,
    api_key: str = Depends(verify_api_key),
    resolve=Depends(get_credential_resolver),
) -> CredentialSummary:
    return await _summary(_manager(resolve, integration))


@router.delete(
    "/auth/{integration}",
    response_model=RevokeResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown integration"}},
    summary="Revoke credential",
)
async def revoke(
    integration: str,
    api_key: str = Depends(verify_api_key),
    resolve=Depends(get_credential_resolver),
) -> RevokeResponse:
    manager = _manager(resolve, integration)
    return RevokeResponse(integration=integration, revoked=await manager.revoke())

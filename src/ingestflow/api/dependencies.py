"""
Dependency injection for FastAPI endpoints.

Routes depend on the narrow getters below so tests can replace them with
app.dependency_overrides.
"""

from ingestflow.auth.oauth import CredentialManager
from ingestflow.jobs.repository import JobRepository
from ingestflow.services import Services

# Opened on first request
_services: Services | None = None


async def get_services() -> Services:
    global _services

    if _services is None:
        services = Services()
        await services.open()
        _services = services

    return _services


async def get_job_repository() -> JobRepository:
    return (await get_services()).jobs


async def get_credential_resolver():
    """Callable mapping an integration name to its CredentialManager."""
    services = await get_services()

    def resolve(integration: str) -> CredentialManager:
        return services.credentials(integration)

    return resolve


async def cleanup_dependencies() -> None:
    """Close global dependencies on shutdown."""
    global _services

    if _services is not None:
        await _services.close()
        _services = None

"""FastAPI admin API for job status, credentials and handler schemas."""

from ingestflow.api.app import create_app

__all__ = ["create_app"]

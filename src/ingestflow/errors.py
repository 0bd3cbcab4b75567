"""
Exception taxonomy shared by fetch handlers, credential management and the scheduler.

- ConfigError: invalid handler settings, never retried automatically
- AuthError: no usable or refreshable credential, user must re-authorize
- StateMismatch: anti-forgery check failed during authorization
- UpstreamError: upstream API failed or returned malformed data
- SerializationError: a packet or config could not be encoded/decoded
"""


class IngestFlowError(Exception):
    """Base exception for ingestflow errors."""


class ConfigError(IngestFlowError):
    """Raised when handler or unit configuration is invalid."""


class AuthError(IngestFlowError):
    """Raised when no usable credential can be obtained."""


class StateMismatch(AuthError):
    """Raised when the returned OAuth state does not match the stored token."""


class UpstreamError(IngestFlowError):
    """Raised when an upstream API call fails or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SerializationError(IngestFlowError):
    """Raised when a job payload or configuration cannot be serialized."""

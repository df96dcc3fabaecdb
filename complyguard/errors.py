"""Exception taxonomy for the compliance check engine."""

from __future__ import annotations


class ComplyGuardError(Exception):
    """Base class for all engine errors."""


class CredentialError(ComplyGuardError):
    """Raised when credentials cannot be resolved into an audit scope."""


class MissingCredentials(CredentialError):
    """Raised when no access token is configured.

    Callers should send the user to credential setup instead of retrying.
    """

    def __init__(self, message: str = "No access token is configured"):
        super().__init__(message)


class CredentialSourceUnavailable(CredentialError):
    """Raised when stored credentials cannot be read.

    Unlike MissingCredentials this is transient; callers may retry.
    """


class InvalidScope(CredentialError):
    """Raised when a token class cannot serve the requested audit scope."""


class CredentialRejected(CredentialError):
    """Raised when the gateway refuses the supplied credentials."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(ComplyGuardError):
    """Raised when the request budget for a credential is exhausted."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class GatewayError(ComplyGuardError):
    """Raised when the compliance gateway cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DiscoveryError(ComplyGuardError):
    """Raised when the project list cannot be fetched."""

    def __init__(self, message: str, http_status: int | None = None):
        super().__init__(message)
        self.http_status = http_status
        self.message = message


class ProbeError(ComplyGuardError):
    """Raised when a compliance probe fails unexpectedly."""

    def __init__(self, check_type: str, project_id: str, cause: BaseException):
        super().__init__(f"{check_type} probe failed for project {project_id}: {cause}")
        self.check_type = check_type
        self.project_id = project_id
        self.cause = cause


class PersistenceUnavailable(ComplyGuardError):
    """Raised when durable evidence storage is missing or unreachable."""

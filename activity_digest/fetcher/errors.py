"""Exception hierarchy for remote activity fetching."""

from typing import Optional


class ActivityDigestError(Exception):
    """Base class for all activity digest errors."""


class ConfigurationError(ActivityDigestError):
    """Raised when the digest configuration is unusable."""


class RemoteError(ActivityDigestError):
    """A remote call failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        operation_key: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.operation_key = operation_key
        self.url = url


class TerminalRemoteError(RemoteError):
    """Auth, permission, bad-request or not-found failure. Never retried."""


class TransientRemoteError(RemoteError):
    """Rate limit, server or network failure. Retried per RetryConfig."""


class CircuitOpenError(ActivityDigestError):
    """Raised without calling the remote service while a breaker is open."""

    def __init__(self, operation_key: str):
        super().__init__(f"Circuit breaker is OPEN for {operation_key}")
        self.operation_key = operation_key


class IdentityResolutionError(ActivityDigestError):
    """The authenticated user could not be resolved; the batch cannot proceed."""

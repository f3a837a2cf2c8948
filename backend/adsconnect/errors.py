"""
Error taxonomy for the Facebook integration.

Graph errors are raised by the HTTP client and bubble unchanged to the
services; the services only add compensation, deactivation and audit
entries on top.
"""

from typing import Optional


class GraphError(Exception):
    """Base class for failures talking to the Graph API."""
    pass


class ExpiredCredential(GraphError):
    """The stored access token was rejected (code 190 / OAuthException). Never retried."""

    def __init__(self, message: str = "EXPIRED_TOKEN", code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class RemoteApiError(GraphError):
    """Well-formed error envelope returned by the Graph API."""

    def __init__(
        self,
        code: Optional[int],
        message: str,
        error_type: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(f"Facebook API Error: {message} (code: {code})")
        self.code = code
        self.remote_message = message
        self.error_type = error_type
        self.status_code = status_code


class TransportError(GraphError):
    """Network failure, timeout, or a response that could not be parsed."""
    pass


class ValidationError(Exception):
    """Malformed input caught before any remote call."""
    pass


class NoActiveConnection(Exception):
    """The owner has no usable (active, unexpired) Facebook connection."""

    def __init__(self, message: str = "No active Facebook connection"):
        super().__init__(message)


class OrchestrationStepError(Exception):
    """A step of the ad-creation saga failed; earlier steps have been compensated."""

    def __init__(self, step: str, cause: Exception):
        super().__init__(f"Failed to create ad ({step}): {cause}")
        self.step = step
        self.cause = cause

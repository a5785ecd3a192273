"""Error taxonomy for calls to the Indexing Service.

Every failure the gateway can surface is one of these, so routers and the
status poller can decide between retrying, failing and reporting verbatim.
"""

from typing import Any, Optional


class IndexingServiceError(Exception):
    """Base class for Indexing Service failures."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Body used when the error is returned to a caller."""
        body: dict[str, Any] = {"message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigurationError(IndexingServiceError):
    """Required settings (URLs, credentials) are missing or invalid."""

    status_code = 500


class AuthenticationError(IndexingServiceError):
    """The password grant was rejected or the token was refused twice."""

    status_code = 401


class TransientError(IndexingServiceError):
    """Timeout or network failure that outlived the retry budget."""

    status_code = 504


class UpstreamError(IndexingServiceError):
    """The Indexing Service answered with a non-success status."""


class NotFoundError(UpstreamError):
    """The Indexing Service answered 404."""

    status_code = 404

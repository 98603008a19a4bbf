"""Custom exceptions for the MIMIQ client."""

from typing import Optional


class MimiqAPIError(Exception):
    """Base exception for MIMIQ client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(self.message)


class ConfigurationError(MimiqAPIError):
    """A required connection parameter is missing."""


class AuthenticationError(MimiqAPIError):
    """Sign-in or token refresh was rejected, or the connection has dropped."""


class RemoteRequestError(MimiqAPIError):
    """The remote service answered a lifecycle call with a non-2xx status."""


class InvalidArgumentError(MimiqAPIError, ValueError):
    """An argument was rejected before any network call was made."""


class MalformedTokenFileError(InvalidArgumentError):
    """A saved token file lacks the `url` or `token` key."""

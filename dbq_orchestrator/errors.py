"""Exceptions raised by the orchestrator."""

from typing import Optional


class ConfigError(ValueError):
    """Raised when the run configuration is invalid."""


class RemoteRequestError(Exception):
    """Base class for failed requests against the document store.

    Keeps the raw status code and response body around so they can be
    logged when the request is retried.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            message = f"{message} (HTTP {self.status_code})"
        if self.body:
            message = f"{message}: {self.body}"
        return message


class SubmissionError(RemoteRequestError):
    """The store rejected or could not be reached for a delete-by-query submission."""


class CancelError(RemoteRequestError):
    """A task cancellation request failed."""

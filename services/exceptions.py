"""
services/exceptions.py – Structured custom exception hierarchy for RepackBrowser.

All service-level errors derive from RepackBrowserError so callers can catch
broadly or specifically depending on context.  Each class carries an
ErrorKind so the UI can decide how to present it without isinstance chains.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    BAD_STATUS = "bad_status"
    MALFORMED = "malformed"
    VALIDATION = "validation"
    LOOKUP_MISS = "lookup_miss"
    INVALID_TRANSITION = "invalid_transition"


class RepackBrowserError(Exception):
    """Base class for all RepackBrowser exceptions."""

    kind: ErrorKind = ErrorKind.NETWORK


class NetworkError(RepackBrowserError):
    """Raised when a request fails at the transport level."""

    kind = ErrorKind.NETWORK


class RequestTimeoutError(NetworkError):
    """Raised when a request does not complete within the configured timeout."""

    kind = ErrorKind.TIMEOUT


class BadStatusError(RepackBrowserError):
    """
    Raised when a service answers with a non-2xx HTTP status.

    Attributes
    ----------
    status_code : The HTTP status returned by the server.
    """

    kind = ErrorKind.BAD_STATUS

    def __init__(self, status_code: int, url: str = "") -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"Server returned HTTP {status_code}" + (f" for {url}" if url else "."))


class MalformedResponseError(RepackBrowserError):
    """
    Raised when a response body is missing required fields, has the wrong
    shape, or reports ``success=false``.

    Attributes
    ----------
    server_message : Message sent by the server alongside ``success=false``,
                     if any.  Already localized by the service.
    """

    kind = ErrorKind.MALFORMED

    def __init__(self, detail: str, server_message: Optional[str] = None) -> None:
        self.server_message = server_message
        super().__init__(detail)


class FormValidationError(RepackBrowserError):
    """Raised when user-entered form data fails a required-field check."""

    kind = ErrorKind.VALIDATION

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class LookupMissError(RepackBrowserError):
    """Raised when an agent result cannot be matched to the catalogue."""

    kind = ErrorKind.LOOKUP_MISS


class InvalidTransitionError(RepackBrowserError):
    """Raised when the agent session receives an event its phase does not accept."""

    kind = ErrorKind.INVALID_TRANSITION

"""Error taxonomy shared by the clients and the orchestrator"""

import enum
from typing import List, Optional

import gitlab
import httpx


class ErrorKind(str, enum.Enum):
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.NETWORK, ErrorKind.RATE_LIMIT)

    @property
    def fatal(self) -> bool:
        """Fatal kinds abort the whole run instead of a single record."""
        return self in (ErrorKind.AUTHENTICATION, ErrorKind.VALIDATION)


class SyncError(Exception):
    """Base class for errors raised by this service"""

    kind = ErrorKind.UNKNOWN


class TransientError(SyncError):
    kind = ErrorKind.NETWORK


class RateLimitError(SyncError):
    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class AuthenticationError(SyncError):
    kind = ErrorKind.AUTHENTICATION


class NotFoundError(SyncError):
    kind = ErrorKind.NOT_FOUND


class SchemaValidationError(SyncError):
    """Configuration or remote schema is unusable; nothing may be written."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        self.problems = list(problems or [])
        if self.problems:
            message = message + ":\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class TransitionNotFoundError(SyncError):
    """No legal workflow transition leads to the wanted status."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, key: str, target_status: str, available: Optional[List[str]] = None):
        self.key = key
        self.target_status = target_status
        self.available = list(available or [])
        super().__init__(
            f"No transition to '{target_status}' for {key}"
            + (f" (available: {', '.join(self.available)})" if self.available else "")
        )


def kind_for_status_code(status_code: Optional[int]) -> ErrorKind:
    if status_code in (401, 403):
        return ErrorKind.AUTHENTICATION
    if status_code in (404, 410):
        return ErrorKind.NOT_FOUND
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code is not None and 500 <= status_code < 600:
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def classify(exc: BaseException) -> ErrorKind:
    """Map any exception raised beneath the clients onto an ErrorKind."""
    if isinstance(exc, SyncError):
        return exc.kind
    if isinstance(exc, httpx.HTTPStatusError):
        return kind_for_status_code(exc.response.status_code)
    if isinstance(exc, httpx.TransportError):
        return ErrorKind.NETWORK
    if isinstance(exc, gitlab.exceptions.GitlabAuthenticationError):
        return ErrorKind.AUTHENTICATION
    if isinstance(exc, gitlab.exceptions.GitlabError):
        return kind_for_status_code(getattr(exc, "response_code", None))
    # requests (used by python-gitlab) raises OSError subclasses for connection problems
    if isinstance(exc, (OSError, TimeoutError)):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def is_retryable(exc: BaseException) -> bool:
    return classify(exc).retryable

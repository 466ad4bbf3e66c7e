"""
Exceptions raised by the import pipeline.

Row-level validation problems are never raised; they are tallied by the
transformer. Everything here is fatal to the operation that raised it.
"""
from typing import Any, Optional


class EntryImportError(Exception):
    """Base class for all entry import errors."""


class ParseError(EntryImportError):
    """File could not be parsed into a table."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ParseCancelled(EntryImportError):
    """Parse was terminated by a reset before it finished."""


class InvalidTransition(EntryImportError):
    """Wizard received an event that does not belong to its current step."""

    def __init__(self, step: str, event: Any):
        super().__init__(f"{type(event).__name__} is not allowed in step '{step}'")
        self.step = step
        self.event = event


class ApiError(EntryImportError):
    """Backend answered with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        status: int,
        code: Optional[str] = None,
        data: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.code = code
        self.data = data

    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    def is_server_error(self) -> bool:
        return self.status >= 500

    def is_not_found(self) -> bool:
        return self.status == 404

    def is_unauthorized(self) -> bool:
        return self.status == 401


class NetworkError(EntryImportError):
    """Request never produced a response (connection, DNS, timeout)."""

    def __init__(self, message: str = "Network request failed", original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original

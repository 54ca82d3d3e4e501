"""Exception types raised by snquery."""

from typing import List, Optional


class SnQueryError(Exception):
    """Base class for all snquery errors."""


class ValidationError(SnQueryError):
    """Raised when a condition or query fails validation with errors."""

    def __init__(self, message: str, issues: Optional[List] = None):
        self.issues = list(issues or [])
        super().__init__(message)


class NetworkError(SnQueryError):
    """Raised when a record source call fails (transport error or timeout)."""

    def __init__(self, table: str, error: Exception | str):
        self.table = table
        self.error = error
        super().__init__(f"{table}: {error}")


class NotFoundError(NetworkError):
    """The table does not exist or has no discoverable fields."""


class PermissionDeniedError(NetworkError):
    """The table exists but the caller may not read it."""


class ParseError(SnQueryError, ValueError):
    """A date or number literal does not match any accepted format."""

    def __init__(self, text: str, expected: str):
        self.text = text
        self.expected = expected
        super().__init__(f"Invalid {expected}: {text!r}")


class QuerySyntaxError(SnQueryError, ValueError):
    """An encoded query string is malformed."""

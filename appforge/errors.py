"""Exception types raised at the edges of the pipeline.

Inside the pipeline failures travel as structured results; these exceptions
are only raised by the public entry points and the persistence layer.
"""

from __future__ import annotations


class AppForgeError(Exception):
    """Base class for all AppForge errors."""


class InvalidRequestError(AppForgeError, ValueError):
    """Raised when a build request cannot proceed (e.g. blank prompt)."""


class PersistenceUnavailableError(AppForgeError):
    """Raised when the SQLite store cannot be opened or written."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)

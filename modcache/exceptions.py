"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from typing import Any


class ModcacheError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(ModcacheError):
    """Raised for issues related to configuration loading or validation."""


class ValidationError(ModcacheError):
    """
    Raised when the manifest is malformed. Fatal: nothing has been touched yet.

    `position` is the zero-based index of the offending record, or None when the
    manifest as a whole could not be read.
    """

    def __init__(self, message: str, position: int | None = None):
        super().__init__(message)
        self.position = position


class ArtifactSourceError(ModcacheError):
    """Base class for failures reported by an artifact source."""


class NotFoundError(ArtifactSourceError):
    """Raised when the requested artifact or version does not exist upstream."""


class NetworkError(ArtifactSourceError):
    """Raised when an artifact could not be fetched because of a transport failure."""


class FileIntegrityError(NetworkError):
    """Raised when a downloaded file fails a post-download integrity check."""


class FilesystemError(ModcacheError):
    """Raised when a file in the cache directory could not be written or deleted."""


class PersistenceError(ModcacheError):
    """
    Raised when the cache state record could not be written. The next run will
    re-diff from the previously persisted (stale) state.
    """


class ReconciliationError(ModcacheError):
    """A single artifact failed to reconcile. The original error is the cause."""

    def __init__(self, artifact_id: str, cause: BaseException):
        super().__init__(f"Artifact {artifact_id}: {type(cause).__name__}: {cause}")
        self.artifact_id = artifact_id
        self.cause = cause
        self.__cause__ = cause


class AggregateReconciliationError(ModcacheError):
    """
    Raised at the end of a run in which one or more artifacts failed. Carries the
    state reflecting everything that did succeed.
    """

    def __init__(self, failures: list[ReconciliationError], state: Any = None):
        ids = ", ".join(f.artifact_id for f in failures)
        super().__init__(f"{len(failures)} artifact(s) failed to reconcile: {ids}")
        self.failures = failures
        self.state = state

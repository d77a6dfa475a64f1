from __future__ import annotations

from pathlib import Path

from wpgh.models import ErrorKind


class WpghError(Exception):
    """Base class for all wpgh domain errors."""

    kind: ErrorKind


class NetworkError(ConnectionError, WpghError):
    """Raised on transport failures, timeouts and non-2xx responses."""

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(LookupError, WpghError):
    """Raised when a repository or release does not exist."""

    kind = ErrorKind.NOT_FOUND


class ArchiveValidationError(ValueError, WpghError):
    """Raised when a downloaded file is too small or not a zip archive."""

    kind = ErrorKind.VALIDATION


class ExtractionFailedError(RuntimeError, WpghError):
    """Raised when every extraction strategy failed.

    The archive is kept on disk for offline inspection.
    """

    kind = ErrorKind.EXTRACTION_FAILED

    def __init__(self, archive_path: Path, failures: list[str]) -> None:
        super().__init__(
            f"All extraction strategies failed for {archive_path}: "
            + "; ".join(failures)
        )
        self.archive_path = archive_path
        self.failures = list(failures)


class StorageError(OSError, WpghError):
    """Raised when a filesystem mutation fails or a post-condition is unmet."""

    kind = ErrorKind.STORAGE


class AmbiguousLayoutError(RuntimeError, WpghError):
    """Raised when an indeterminate layout could not be resolved to a marker file."""

    kind = ErrorKind.AMBIGUOUS_LAYOUT


class ActivationError(RuntimeError, WpghError):
    """Raised when the host refused to activate an installed package."""

    kind = ErrorKind.ACTIVATION

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class PackageKind(str, Enum):
    THEME = "theme"
    PLUGIN = "plugin"


class ErrorKind(str, Enum):
    NETWORK = "NetworkError"
    NOT_FOUND = "NotFound"
    VALIDATION = "ValidationError"
    EXTRACTION_FAILED = "ExtractionFailed"
    STORAGE = "StorageError"
    AMBIGUOUS_LAYOUT = "AmbiguousLayout"
    ACTIVATION = "ActivationError"


class LayoutKind(str, Enum):
    FLAT = "flat"
    NESTED_CORRECT = "nested-correct"
    NESTED_MISNAMED = "nested-misnamed"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class PackageRequest:
    """One installation request, created by the caller and consumed once."""

    kind: PackageKind
    owner: str
    name: str
    version: str | None = None
    desired_slug: str | None = None
    download_url: str | None = None
    activate: bool = False
    overwrite: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.kind, PackageKind):
            object.__setattr__(self, "kind", PackageKind(self.kind))
        if not self.owner.strip() or not self.name.strip():
            raise ValueError("Repository owner and name are required")


@dataclass(frozen=True)
class ResolvedSource:
    download_url: str
    version_label: str


@dataclass(frozen=True)
class DownloadedArchive:
    file_path: Path
    size_bytes: int
    # notes on failed fetch attempts and the fallback that recovered from them
    attempts: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExtractedTree:
    root_path: Path
    strategy: str = ""
    failures: tuple[str, ...] = ()


@dataclass(frozen=True)
class LayoutClassification:
    kind: LayoutKind
    existing_name: str = ""

    @classmethod
    def flat(cls) -> LayoutClassification:
        return cls(LayoutKind.FLAT)

    @classmethod
    def nested_correct(cls, name: str) -> LayoutClassification:
        return cls(LayoutKind.NESTED_CORRECT, name)

    @classmethod
    def nested_misnamed(cls, existing_name: str) -> LayoutClassification:
        return cls(LayoutKind.NESTED_MISNAMED, existing_name)

    @classmethod
    def indeterminate(cls) -> LayoutClassification:
        return cls(LayoutKind.INDETERMINATE)


@dataclass
class InstallationOutcome:
    """Terminal result of one installation request.

    Attributes:
        success: True if the package was installed (and activated, when requested).
        installed_slug_or_file: Theme slug, or ``<slug>/<main file>`` for plugins.
        diagnostics: Ordered, human readable trail of what happened.
        error_kind: Taxonomy entry of the failure (None on success).
        installed_path: Final directory of the package (None if never installed).
        retained_archive: Archive kept on disk for diagnosis, if any.
    """

    success: bool
    installed_slug_or_file: str
    diagnostics: list[str] = field(default_factory=list)
    error_kind: ErrorKind | None = None
    installed_path: Path | None = None
    retained_archive: Path | None = None

    def __post_init__(self) -> None:
        if self.success and self.error_kind is not None:
            raise ValueError("success=True but error_kind is set")
        if not self.success and self.error_kind is None:
            raise ValueError("success=False requires error_kind")


@dataclass(frozen=True)
class PackageHeader:
    """WordPress file header fields read from a plugin file or ``style.css``."""

    name: str = ""
    version: str = ""
    description: str = ""
    author: str = ""
    text_domain: str = ""
    requires_wp: str = ""
    requires_php: str = ""


@dataclass(frozen=True)
class RepositorySummary:
    name: str
    description: str
    version: str
    author: str
    stars: int
    updated_at: str
    release_notes: str
    download_url: str
    has_wiki: bool
    license: str

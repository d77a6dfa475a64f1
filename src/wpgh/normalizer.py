from __future__ import annotations

import logging
from pathlib import Path

from wpgh.exceptions import AmbiguousLayoutError, StorageError
from wpgh.filesystem import RealFileSystem
from wpgh.internal_config import (
    ALWAYS_INCLUDED_FILES,
    EXCLUDED_ENTRY_NAMES,
    REPOSITORY_METADATA_FILES,
    TEMP_PREFIX,
)
from wpgh.layout import (
    classify,
    derive_slug,
    fallback_slug,
    has_marker,
    looks_like_github_archive,
    sanitize_slug,
    strip_archive_suffixes,
)
from wpgh.models import (
    ExtractedTree,
    LayoutClassification,
    LayoutKind,
    PackageKind,
)
from wpgh.protocols import FileSystem

logger: logging.Logger = logging.getLogger(__name__)


def should_include(name: str) -> bool:
    """Decide whether a top-level entry of a flat repository is copied over."""
    if name.startswith(".") or name in EXCLUDED_ENTRY_NAMES:
        return False
    return name not in REPOSITORY_METADATA_FILES or name in ALWAYS_INCLUDED_FILES


class StructureNormalizer(object):
    """Rewrite an extracted tree so that ``<root>/<slug>`` holds the package."""

    def __init__(self, filesystem: FileSystem | None = None) -> None:
        self.filesystem = filesystem if filesystem is not None else RealFileSystem()

    def normalize(
        self,
        tree: ExtractedTree,
        classification: LayoutClassification,
        desired_slug: str,
        kind: PackageKind,
    ) -> ExtractedTree:
        if not desired_slug or sanitize_slug(desired_slug) != desired_slug:
            raise ValueError(f"Invalid package slug: {desired_slug!r}")

        if classification.kind is LayoutKind.NESTED_CORRECT:
            logger.info("Repository already has the correct structure")
        else:
            self._rebuild(tree.root_path, classification, desired_slug)

        self._verify(tree.root_path, classification, desired_slug, kind)
        return tree

    def choose_slug(
        self,
        tree: ExtractedTree,
        kind: PackageKind,
        desired_slug: str | None = None,
        default_name: str | None = None,
    ) -> str:
        """Pick the directory name the package should end up under.

        An explicit *desired_slug* wins. Otherwise a single wrapping directory
        is turned into a slug: its name with GitHub suffixes stripped when that
        matches *default_name* (usually the repository name), the slug heuristic
        for other GitHub-style names. *default_name* covers the rest.
        """
        if desired_slug:
            slug = sanitize_slug(desired_slug)
        else:
            layout = classify(tree, kind, "", self.filesystem)
            slug = ""
            if layout.kind is LayoutKind.NESTED_MISNAMED:
                slug = self._slug_from_directory(layout.existing_name, default_name)
            if not slug and default_name:
                slug = sanitize_slug(default_name)
            logger.info(f"Determined slug: {slug or '(none)'}")
        return slug or fallback_slug(kind)

    def _slug_from_directory(
        self, directory_name: str, default_name: str | None
    ) -> str:
        stripped = sanitize_slug(strip_archive_suffixes(directory_name))
        repository = sanitize_slug(default_name or "")
        # owner-repo-<sha> and repo-<version> both reduce to the repository name
        if repository and (
            stripped == repository or stripped.endswith(f"-{repository}")
        ):
            return repository
        if looks_like_github_archive(directory_name):
            return derive_slug(directory_name)
        return sanitize_slug(directory_name)

    def restructure(
        self,
        tree: ExtractedTree,
        kind: PackageKind,
        desired_slug: str | None = None,
        default_name: str | None = None,
    ) -> ExtractedTree:
        """Classify *tree* and normalize it in one go."""
        slug = self.choose_slug(tree, kind, desired_slug, default_name)
        classification = classify(tree, kind, slug, self.filesystem)
        return self.normalize(tree, classification, slug, kind)

    def _rebuild(
        self, root: Path, classification: LayoutClassification, slug: str
    ) -> None:
        fs = self.filesystem
        try:
            staging = fs.make_temp_dir(
                prefix=f"{TEMP_PREFIX}restructure-", parent=root.parent
            )
        except OSError as exc:
            raise StorageError(
                f"Could not create temporary directory for restructuring: {exc}"
            ) from exc

        try:
            proper_dir = staging.joinpath(slug)
            if classification.kind is LayoutKind.NESTED_MISNAMED:
                logger.info(
                    f"Renaming directory {classification.existing_name} to {slug}"
                )
                fs.copytree(root.joinpath(classification.existing_name), proper_dir)
            else:
                logger.info(
                    f"{'Flat' if classification.kind is LayoutKind.FLAT else 'Unrecognised'}"
                    f" repository structure, moving contents into {slug}"
                )
                fs.mkdir(proper_dir)
                self._copy_package_entries(root, proper_dir)
            self._replace_contents(root, staging)
        except OSError as exc:
            raise StorageError(f"Restructuring {root} failed: {exc}") from exc
        finally:
            if fs.exists(staging):
                fs.rmtree(staging)

    def _copy_package_entries(self, root: Path, proper_dir: Path) -> None:
        fs = self.filesystem
        for entry in fs.iterdir(root):
            if not should_include(entry.name):
                logger.debug(f"Skipping {entry.name}")
                continue
            logger.debug(f"Copying {entry.name} to new structure")
            if fs.is_dir(entry):
                fs.copytree(entry, proper_dir.joinpath(entry.name))
            else:
                fs.copy_file(entry, proper_dir.joinpath(entry.name))

    def _replace_contents(self, root: Path, staging: Path) -> None:
        fs = self.filesystem
        for entry in fs.iterdir(root):
            if fs.is_dir(entry):
                fs.rmtree(entry)
            else:
                fs.unlink(entry)
        for entry in fs.iterdir(staging):
            fs.move(entry, root.joinpath(entry.name))

    def _verify(
        self,
        root: Path,
        classification: LayoutClassification,
        slug: str,
        kind: PackageKind,
    ) -> None:
        package_dir = root.joinpath(slug)
        if not self.filesystem.is_dir(package_dir):
            raise StorageError(f"Restructuring failed, cannot find: {package_dir}")
        if has_marker(package_dir, kind, self.filesystem):
            logger.info(f"Verified restructured directory exists: {package_dir}")
            return
        if classification.kind is LayoutKind.INDETERMINATE:
            raise AmbiguousLayoutError(
                f"No {kind.value} marker file found in {package_dir};"
                " check the repository structure"
            )
        raise StorageError(f"Marker file missing from {package_dir} after restructuring")

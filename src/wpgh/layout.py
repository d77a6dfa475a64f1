"""Recognise what an extracted archive looks like.

A package root is a directory holding a *marker file*: ``style.css`` for
themes, or a top-level ``*.php`` file carrying a ``Plugin Name:`` header for
plugins. Archives downloaded from GitHub put that root in one of a few places:

- flat: the marker sits directly in the extraction directory
- nested: a single subdirectory (``owner-repo-abc1234``, ``repo-1.2.0``, ...)
  holds the marker, and may or may not already carry the wanted slug
- anything else is indeterminate
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from wpgh.filesystem import RealFileSystem
from wpgh.internal_config import HEADER_SCAN_BYTES
from wpgh.models import (
    ExtractedTree,
    LayoutClassification,
    PackageHeader,
    PackageKind,
)
from wpgh.protocols import FileSystem
from wpgh.resolver import VERSION_TAG_PATTERN

logger: logging.Logger = logging.getLogger(__name__)

THEME_MARKER = "style.css"

_HEADER_FIELDS = {
    "name": ("Plugin Name", "Theme Name"),
    "version": ("Version",),
    "description": ("Description",),
    "author": ("Author",),
    "text_domain": ("Text Domain",),
    "requires_wp": ("Requires at least",),
    "requires_php": ("Requires PHP",),
}

_COMMIT_HASH_SUFFIX = re.compile(r"-[0-9a-f]{7,}$")
_VERSION_SUFFIX = re.compile(r"-v?\d+(\.\d+)*$")
_BRANCH_SUFFIX = re.compile(r"(-master|-main)$")
_OWNER_DOT_REPO = re.compile(r"^[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+(-[a-zA-Z0-9_.-]+)?$")
_SPECIAL_CHARACTERS = re.compile(r"[?\[\]/\\=<>:;,'\"&$#*()|~`!{}%+\x00’«»”“]")
_WHITESPACE_OR_DASHES = re.compile(r"[\r\n\t -]+")


def _header_pattern(field_name: str) -> re.Pattern[str]:
    return re.compile(
        r"^(?:[ \t]*<\?php)?[ \t/*#@]*" + re.escape(field_name) + r":(.*)$",
        re.IGNORECASE | re.MULTILINE,
    )


_HEADER_PATTERNS = {
    attribute: [_header_pattern(label) for label in labels]
    for attribute, labels in _HEADER_FIELDS.items()
}
_PLUGIN_NAME_PATTERN = _header_pattern("Plugin Name")


def _cleanup_header_value(value: str) -> str:
    return re.sub(r"\s*(?:\*/|\?>).*", "", value).strip()


def parse_package_header(text: str) -> PackageHeader:
    """Read WordPress header fields (``Plugin Name:``, ``Version:``, ...) from *text*."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    values: dict[str, str] = {}
    for attribute, patterns in _HEADER_PATTERNS.items():
        for pattern in patterns:
            match = pattern.search(text)
            if match and _cleanup_header_value(match.group(1)):
                values[attribute] = _cleanup_header_value(match.group(1))
                break
    return PackageHeader(**values)


def read_package_header(path: Path, filesystem: FileSystem | None = None) -> PackageHeader:
    fs = filesystem if filesystem is not None else RealFileSystem()
    head = fs.read_head(path, HEADER_SCAN_BYTES)
    return parse_package_header(head.decode("utf-8", errors="replace"))


def has_plugin_header(path: Path, filesystem: FileSystem | None = None) -> bool:
    if path.suffix.lower() != ".php":
        return False
    fs = filesystem if filesystem is not None else RealFileSystem()
    text = fs.read_head(path, HEADER_SCAN_BYTES).decode("utf-8", errors="replace")
    return any(
        _cleanup_header_value(match.group(1))
        for match in _PLUGIN_NAME_PATTERN.finditer(text)
    )


def find_plugin_file(directory: Path, filesystem: FileSystem | None = None) -> Path | None:
    """Return the first top-level ``*.php`` file with a plugin header."""
    fs = filesystem if filesystem is not None else RealFileSystem()
    for entry in fs.iterdir(directory):
        if fs.is_file(entry) and has_plugin_header(entry, fs):
            return entry
    return None


def has_marker(directory: Path, kind: PackageKind, filesystem: FileSystem | None = None) -> bool:
    fs = filesystem if filesystem is not None else RealFileSystem()
    if kind is PackageKind.THEME:
        return fs.is_file(directory.joinpath(THEME_MARKER))
    return find_plugin_file(directory, fs) is not None


def classify(
    tree: ExtractedTree,
    kind: PackageKind,
    desired_slug: str,
    filesystem: FileSystem | None = None,
) -> LayoutClassification:
    fs = filesystem if filesystem is not None else RealFileSystem()
    root = tree.root_path

    entries = fs.iterdir(root)
    for entry in entries:
        logger.debug(f"- {entry.name} ({'directory' if fs.is_dir(entry) else 'file'})")

    if has_marker(root, kind, fs):
        logger.info(f"Found {kind.value} marker in {root} - flat repository")
        return LayoutClassification.flat()

    candidates = [
        entry
        for entry in entries
        if fs.is_dir(entry)
        and not entry.name.startswith(".")
        and has_marker(entry, kind, fs)
    ]
    if len(candidates) == 1:
        existing_name = candidates[0].name
        if existing_name == desired_slug:
            logger.info(f"Found correct {kind.value} structure with slug {desired_slug}")
            return LayoutClassification.nested_correct(existing_name)
        logger.info(f"Found {kind.value} structure in subdirectory {existing_name}")
        return LayoutClassification.nested_misnamed(existing_name)

    logger.info(
        f"No usable {kind.value} structure in {root}"
        f" ({len(candidates)} candidate directories)"
    )
    return LayoutClassification.indeterminate()


def sanitize_slug(value: str) -> str:
    """Make *value* safe to use as a single directory name."""
    value = _SPECIAL_CHARACTERS.sub("", value)
    value = _WHITESPACE_OR_DASHES.sub("-", value)
    return value.strip(".-_")


def fallback_slug(kind: PackageKind) -> str:
    return f"github-{kind.value}"


def strip_archive_suffixes(directory_name: str) -> str:
    """Drop the commit hash, version and branch suffixes GitHub appends."""
    slug = _COMMIT_HASH_SUFFIX.sub("", directory_name)
    slug = _VERSION_SUFFIX.sub("", slug)
    return _BRANCH_SUFFIX.sub("", slug)


def derive_slug(directory_name: str) -> str:
    """Guess the package slug from a GitHub archive directory name.

    ``acme-widgets-a1b2c3d``, ``widgets-v2.3.1`` and ``acme.widgets`` all
    become ``widgets``. This is a heuristic, not a parser.
    """
    slug = strip_archive_suffixes(directory_name)

    if "." in slug:
        slug = slug.split(".")[-1]

    if "-" in slug:
        parts = slug.split("-")
        potential_slug = parts[-1]
        if potential_slug not in ("master", "main") and not VERSION_TAG_PATTERN.match(
            potential_slug
        ):
            slug = potential_slug
        else:
            slug = "-".join(parts[1:])

    return sanitize_slug(slug)


def looks_like_github_archive(directory_name: str) -> bool:
    """True for directory names GitHub generates when zipping a repository."""
    return bool(
        _COMMIT_HASH_SUFFIX.search(directory_name)
        or "-master" in directory_name
        or "-main" in directory_name
        or "-v" in directory_name
        or _VERSION_SUFFIX.search(directory_name)
        or _OWNER_DOT_REPO.match(directory_name)
    )

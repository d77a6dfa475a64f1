from __future__ import annotations

import os
from pathlib import Path

from wpgh.models import PackageKind

_KIND_DIRECTORIES = {
    PackageKind.PLUGIN: "plugins",
    PackageKind.THEME: "themes",
}


def resolve_content_root() -> Path:
    """Resolve the WordPress ``wp-content`` directory from the environment."""
    for variable in ("WPGH_CONTENT_DIR", "WP_CONTENT_DIR"):
        explicit_root = os.environ.get(variable, "").strip()
        if explicit_root:
            return Path(explicit_root).expanduser().resolve()

    for variable in ("WPGH_WORDPRESS_ROOT", "WP_ROOT"):
        wordpress_root = os.environ.get(variable, "").strip()
        if wordpress_root:
            return Path(wordpress_root).expanduser().resolve().joinpath("wp-content")

    cwd = Path.cwd()
    candidates = [
        cwd.joinpath("wp-content"),
        cwd,
    ]
    for candidate in candidates:
        if candidate.joinpath("plugins").is_dir() or candidate.joinpath(
            "themes"
        ).is_dir():
            return candidate.resolve()

    return cwd.joinpath("wp-content").resolve()


class WordPressTargetResolver:
    """Map a package kind to the directory it is installed into."""

    def __init__(
        self,
        content_root: str | Path | None = None,
        plugins_dir: str | Path | None = None,
        themes_dir: str | Path | None = None,
    ) -> None:
        root = (
            Path(content_root).expanduser().resolve()
            if content_root
            else resolve_content_root()
        )
        self.directories: dict[PackageKind, Path] = {
            kind: root.joinpath(dirname) for kind, dirname in _KIND_DIRECTORIES.items()
        }
        if plugins_dir:
            self.directories[PackageKind.PLUGIN] = Path(plugins_dir).expanduser().resolve()
        if themes_dir:
            self.directories[PackageKind.THEME] = Path(themes_dir).expanduser().resolve()

    def resolve_destination_root(self, kind: PackageKind) -> Path:
        return self.directories[PackageKind(kind)]

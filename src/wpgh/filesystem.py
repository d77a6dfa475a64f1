"""Filesystem capability backed by the local disk.

Components receive a filesystem object explicitly. ``RealFileSystem`` is the
production implementation and satisfies :class:`wpgh.protocols.FileSystem`
structurally.
"""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path


class RealFileSystem:
    """Production filesystem implementation wrapping ``pathlib`` and ``shutil``."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def iterdir(self, path: Path) -> list[Path]:
        """Return the direct children of *path*, sorted by name."""
        return sorted(path.iterdir(), key=lambda item: item.name)

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        path.mkdir(parents=parents, exist_ok=exist_ok)

    def make_temp_dir(self, prefix: str, parent: Path | None = None) -> Path:
        """Create a uniquely named directory and return its path."""
        if parent is not None:
            parent.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=parent))

    def read_head(self, path: Path, size: int) -> bytes:
        with open(path, "rb") as handle:
            return handle.read(size)

    def file_size(self, path: Path) -> int:
        return path.stat().st_size

    def copy_file(self, src: Path, dst: Path) -> None:
        shutil.copy2(src, dst)

    def copytree(self, src: Path, dst: Path) -> None:
        shutil.copytree(src, dst, symlinks=True)

    def move(self, src: Path, dst: Path) -> None:
        shutil.move(str(src), str(dst))

    def rmtree(self, path: Path) -> None:
        shutil.rmtree(path)

    def unlink(self, path: Path) -> None:
        path.unlink(missing_ok=True)

"""Narrow interfaces to the collaborators the installer does not own."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import requests

from wpgh.models import PackageKind


class CredentialProvider(Protocol):
    def get_token(self) -> str | None: ...


class InstallTargetResolver(Protocol):
    def resolve_destination_root(self, kind: PackageKind) -> Path: ...


class Activator(Protocol):
    def activate(self, kind: PackageKind, installed_identifier: str) -> None: ...


class HttpSession(Protocol):
    max_redirects: int

    def get(self, url: str, **kwargs: Any) -> requests.Response: ...

    def head(self, url: str, **kwargs: Any) -> requests.Response: ...


class FileSystem(Protocol):
    """Filesystem capability handed to every component that touches disk."""

    def exists(self, path: Path) -> bool: ...

    def is_dir(self, path: Path) -> bool: ...

    def is_file(self, path: Path) -> bool: ...

    def iterdir(self, path: Path) -> list[Path]: ...

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None: ...

    def make_temp_dir(self, prefix: str, parent: Path | None = None) -> Path: ...

    def read_head(self, path: Path, size: int) -> bytes: ...

    def file_size(self, path: Path) -> int: ...

    def copy_file(self, src: Path, dst: Path) -> None: ...

    def copytree(self, src: Path, dst: Path) -> None: ...

    def move(self, src: Path, dst: Path) -> None: ...

    def rmtree(self, path: Path) -> None: ...

    def unlink(self, path: Path) -> None: ...

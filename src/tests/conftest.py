from __future__ import annotations

import http.server
import threading
import zipfile
from pathlib import Path
from typing import Callable, Iterator, cast

import pytest

PLUGIN_MAIN_FILE = """<?php
/**
 * Plugin Name: Acme Widgets
 * Description: Widgets for testing.
 * Version: 1.2.0
 * Author: Acme
 * Text Domain: acme-widgets
 */
"""

THEME_STYLESHEET = """/*
Theme Name: Acme Theme
Version: 2.0.1
Requires at least: 6.0
Requires PHP: 7.4
*/
"""

Entries = dict[str, str | bytes]


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="run slow tests that talk to GitHub",
    )
    parser.addoption(
        "--only-slow",
        action="store_true",
        default=False,
        help="run only tests marked as slow",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: marks tests as slow")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    only_slow = bool(config.getoption("--only-slow"))
    run_slow = bool(config.getoption("--slow")) or only_slow

    if only_slow:
        selected: list[pytest.Item] = []
        deselected: list[pytest.Item] = []
        for item in items:
            if "slow" in item.keywords:
                selected.append(item)
            else:
                deselected.append(item)

        if deselected:
            config.hook.pytest_deselected(items=deselected)
        items[:] = selected

    if run_slow:
        return

    skip_slow = pytest.mark.skip(reason="need --slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


def _as_bytes(content: str | bytes) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


@pytest.fixture
def plugin_main_file() -> str:
    return PLUGIN_MAIN_FILE


@pytest.fixture
def theme_stylesheet() -> str:
    return THEME_STYLESHEET


@pytest.fixture
def make_zip(tmp_path: Path) -> Callable[..., Path]:
    """Write a zip archive from ``{member name: content}``."""

    def _make_zip(
        entries: Entries,
        name: str = "package.zip",
        compression: int = zipfile.ZIP_DEFLATED,
    ) -> Path:
        archive_path = tmp_path / name
        with zipfile.ZipFile(archive_path, "w", compression=compression) as archive:
            for member, content in entries.items():
                archive.writestr(member, _as_bytes(content))
        return archive_path

    return _make_zip


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[..., Path]:
    """Write ``{relative path: content}`` below a fresh directory."""

    def _make_tree(entries: Entries, name: str = "extract") -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for relative, content in entries.items():
            target = root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(_as_bytes(content))
        return root

    return _make_tree


def snapshot(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def tree_snapshot() -> Callable[[Path], dict[str, bytes]]:
    return snapshot


class _UnavailableServer(http.server.ThreadingHTTPServer):
    daemon_threads = True
    block_on_close = False

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _UnavailableHandler)
        self.hits: list[str] = []


class _UnavailableHandler(http.server.BaseHTTPRequestHandler):
    def _unavailable(self) -> None:
        cast(_UnavailableServer, self.server).hits.append(f"{self.command} {self.path}")
        self.send_response(503)
        self.send_header("Content-Length", "0")
        self.end_headers()

    do_GET = _unavailable
    do_HEAD = _unavailable

    def log_message(self, format: str, *args) -> None:
        return None


@pytest.fixture
def unavailable_server(monkeypatch: pytest.MonkeyPatch) -> Iterator[_UnavailableServer]:
    """Local HTTP server answering 503 to everything and counting requests."""
    for variable in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY"):
        monkeypatch.delenv(variable, raising=False)
        monkeypatch.delenv(variable.lower(), raising=False)

    with _UnavailableServer() as server:
        server_thread = threading.Thread(
            target=server.serve_forever, name="unavailable-server", daemon=True
        )
        server_thread.start()
        try:
            yield server
        finally:
            server.shutdown()
            server_thread.join(timeout=3)

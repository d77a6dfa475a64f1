from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from wpgh.activation import WpCliActivator
from wpgh.credentials import StaticCredentialProvider
from wpgh.exceptions import ActivationError, NetworkError
from wpgh.extraction import ExtractionEngine, ExtractionStrategy, extract_with_zipfile
from wpgh.installer import PackageInstaller, configure_logging
from wpgh.models import (
    DownloadedArchive,
    ErrorKind,
    PackageKind,
    PackageRequest,
    ResolvedSource,
)
from wpgh.wordpress_paths import WordPressTargetResolver


class _Resolver:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str, str | None]] = []

    def resolve(self, owner: str, repo: str, version: str | None = None) -> ResolvedSource:
        self.calls.append((owner, repo, version))
        if self.error is not None:
            raise self.error
        return ResolvedSource(
            download_url=f"https://github.com/{owner}/{repo}/archive/refs/heads/main.zip",
            version_label="main",
        )


class _Downloader:
    def __init__(self, archive_path: Path) -> None:
        self.archive_path = archive_path
        self.calls: list[tuple[str, str | None]] = []

    def download(self, url: str, auth_token: str | None = None) -> DownloadedArchive:
        self.calls.append((url, auth_token))
        return DownloadedArchive(
            file_path=self.archive_path, size_bytes=self.archive_path.stat().st_size
        )


class _Activator:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[PackageKind, str]] = []

    def activate(self, kind: PackageKind, installed_identifier: str) -> None:
        self.calls.append((kind, installed_identifier))
        if self.error is not None:
            raise self.error


def _failing(message: str) -> Callable[[Path, Path], None]:
    def _run(archive_path: Path, dest_dir: Path) -> None:
        raise RuntimeError(message)

    return _run


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    return tmp_path / "wp-content"


def _installer(
    tmp_path: Path, content_root: Path, archive: Path, **kwargs: Any
) -> PackageInstaller:
    kwargs.setdefault("resolver", _Resolver())
    return PackageInstaller(
        credentials=StaticCredentialProvider("secret"),
        target_resolver=WordPressTargetResolver(content_root=content_root),
        downloader=_Downloader(archive),  # type: ignore[arg-type]
        work_dir=tmp_path / "work",
        **kwargs,
    )


def test_installs_plugin_from_github_archive(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    plugin_main_file: str,
) -> None:
    archive = make_zip(
        {
            "acme-widgets-a1b2c3d/widgets.php": plugin_main_file,
            "acme-widgets-a1b2c3d/includes/helpers.php": "<?php",
        }
    )
    resolver = _Resolver()
    installer = _installer(tmp_path, content_root, archive, resolver=resolver)

    outcome = installer.install(
        PackageRequest(kind=PackageKind.PLUGIN, owner="acme", name="widgets")
    )

    assert outcome.success is True
    assert outcome.error_kind is None
    assert outcome.installed_slug_or_file == "widgets/widgets.php"
    assert outcome.installed_path == content_root / "plugins" / "widgets"
    assert (content_root / "plugins/widgets/includes/helpers.php").is_file()
    assert resolver.calls == [("acme", "widgets", None)]
    assert installer.downloader.calls[0][1] == "secret"  # type: ignore[attr-defined]
    assert not archive.exists()
    assert list((tmp_path / "work").iterdir()) == []


def test_installs_flat_theme_under_desired_slug(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    theme_stylesheet: str,
) -> None:
    archive = make_zip(
        {"style.css": theme_stylesheet, "index.php": "<?php", ".github/ci.yml": ""}
    )
    installer = _installer(tmp_path, content_root, archive)

    outcome = installer.install(
        PackageRequest(
            kind="theme", owner="acme", name="acme-theme", desired_slug="storefront"
        )
    )

    assert outcome.success is True
    assert outcome.installed_slug_or_file == "storefront"
    assert sorted(p.name for p in (content_root / "themes/storefront").iterdir()) == [
        "index.php",
        "style.css",
    ]


def test_fourth_extraction_strategy_success_is_reported(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    plugin_main_file: str,
) -> None:
    archive = make_zip({"widgets/widgets.php": plugin_main_file})
    engine = ExtractionEngine(
        strategies=[
            ExtractionStrategy("shutil.unpack_archive", _failing("one")),
            ExtractionStrategy("zipfile", _failing("two")),
            ExtractionStrategy("local header reader", _failing("three")),
            ExtractionStrategy("unzip command", extract_with_zipfile),
        ]
    )
    installer = _installer(tmp_path, content_root, archive, extraction_engine=engine)

    outcome = installer.install(
        PackageRequest(kind=PackageKind.PLUGIN, owner="acme", name="widgets")
    )

    assert outcome.success is True
    failures = [line for line in outcome.diagnostics if " failed: " in line]
    assert failures == [
        "shutil.unpack_archive failed: one",
        "zipfile failed: two",
        "local header reader failed: three",
    ]
    assert "Extracted with unzip command" in outcome.diagnostics


def test_extraction_failure_retains_archive(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    plugin_main_file: str,
) -> None:
    archive = make_zip({"widgets/widgets.php": plugin_main_file})
    engine = ExtractionEngine(
        strategies=[ExtractionStrategy("zipfile", _failing("corrupt"))]
    )
    installer = _installer(tmp_path, content_root, archive, extraction_engine=engine)

    outcome = installer.install(
        PackageRequest(kind=PackageKind.PLUGIN, owner="acme", name="widgets")
    )

    assert outcome.success is False
    assert outcome.error_kind is ErrorKind.EXTRACTION_FAILED
    assert outcome.retained_archive == archive
    assert archive.exists()
    assert "zipfile failed: corrupt" in outcome.diagnostics
    assert list((tmp_path / "work").iterdir()) == []


def test_resolver_failure_short_circuits(
    tmp_path: Path, content_root: Path, make_zip: Callable[..., Path]
) -> None:
    archive = make_zip({"a.txt": "a"})
    installer = _installer(
        tmp_path, content_root, archive, resolver=_Resolver(NetworkError("timed out"))
    )

    outcome = installer.install(
        PackageRequest(kind=PackageKind.PLUGIN, owner="acme", name="widgets")
    )

    assert outcome.success is False
    assert outcome.error_kind is ErrorKind.NETWORK
    assert outcome.diagnostics[-1] == "NetworkError: timed out"
    assert installer.downloader.calls == []  # type: ignore[attr-defined]


def test_download_url_override_skips_resolver(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    theme_stylesheet: str,
) -> None:
    archive = make_zip({"acme-theme/style.css": theme_stylesheet})
    resolver = _Resolver(AssertionError("resolver must not run"))
    installer = _installer(tmp_path, content_root, archive, resolver=resolver)

    outcome = installer.install(
        PackageRequest(
            kind=PackageKind.THEME,
            owner="acme",
            name="acme-theme",
            download_url="https://example.com/acme-theme.zip",
        )
    )

    assert outcome.success is True
    assert resolver.calls == []
    assert installer.downloader.calls[0][0] == "https://example.com/acme-theme.zip"  # type: ignore[attr-defined]


def test_plugin_without_header_is_ambiguous(
    tmp_path: Path, content_root: Path, make_zip: Callable[..., Path]
) -> None:
    archive = make_zip({"widgets-main/widgets.php": "<?php echo 'no header';"})
    installer = _installer(tmp_path, content_root, archive)

    outcome = installer.install(
        PackageRequest(kind=PackageKind.PLUGIN, owner="acme", name="widgets")
    )

    assert outcome.success is False
    assert outcome.error_kind is ErrorKind.AMBIGUOUS_LAYOUT
    assert not (content_root / "plugins" / "widgets").exists()


def test_existing_destination_requires_overwrite(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    theme_stylesheet: str,
) -> None:
    existing = content_root / "themes" / "acme-theme"
    existing.mkdir(parents=True)
    (existing / "old.php").write_text("<?php")

    archive = make_zip({"acme-theme/style.css": theme_stylesheet})
    outcome = _installer(tmp_path, content_root, archive).install(
        PackageRequest(kind=PackageKind.THEME, owner="acme", name="acme-theme")
    )

    assert outcome.error_kind is ErrorKind.STORAGE
    assert (existing / "old.php").exists()

    archive = make_zip({"acme-theme/style.css": theme_stylesheet})
    outcome = _installer(tmp_path, content_root, archive).install(
        PackageRequest(
            kind=PackageKind.THEME, owner="acme", name="acme-theme", overwrite=True
        )
    )

    assert outcome.success is True
    assert not (existing / "old.php").exists()
    assert (existing / "style.css").is_file()


def test_activation_after_install(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    plugin_main_file: str,
) -> None:
    archive = make_zip({"widgets/widgets.php": plugin_main_file})
    activator = _Activator()
    installer = _installer(tmp_path, content_root, archive, activator=activator)

    outcome = installer.install(
        PackageRequest(
            kind=PackageKind.PLUGIN, owner="acme", name="widgets", activate=True
        )
    )

    assert outcome.success is True
    assert activator.calls == [(PackageKind.PLUGIN, "widgets/widgets.php")]


def test_activation_failure_keeps_installed_package(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    plugin_main_file: str,
) -> None:
    archive = make_zip({"widgets/widgets.php": plugin_main_file})
    installer = _installer(
        tmp_path,
        content_root,
        archive,
        activator=_Activator(ActivationError("wp-cli exploded")),
    )

    outcome = installer.install(
        PackageRequest(
            kind=PackageKind.PLUGIN, owner="acme", name="widgets", activate=True
        )
    )

    assert outcome.success is False
    assert outcome.error_kind is ErrorKind.ACTIVATION
    assert outcome.installed_path == content_root / "plugins" / "widgets"
    assert (content_root / "plugins/widgets/widgets.php").is_file()
    assert "Plugin installed but could not be activated" in outcome.diagnostics[-1]


def test_default_activator_uses_wp_cli(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    theme_stylesheet: str,
) -> None:
    archive = make_zip({"acme-theme/style.css": theme_stylesheet})
    installer = _installer(tmp_path, content_root, archive)
    assert isinstance(installer.activator, WpCliActivator)
    installer.activator.which = lambda _name: None

    outcome = installer.install(
        PackageRequest(
            kind=PackageKind.THEME, owner="acme", name="acme-theme", activate=True
        )
    )

    assert outcome.error_kind is ErrorKind.ACTIVATION
    assert outcome.installed_slug_or_file == "acme-theme"
    assert "wp command is not available" in outcome.diagnostics[-1]


def test_default_activator_activates_installed_theme(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    theme_stylesheet: str,
) -> None:
    calls: list[list[str]] = []

    def _run(cmd: list[str], **kwargs: Any) -> SimpleNamespace:
        calls.append(cmd)
        return SimpleNamespace(returncode=0, stdout="Success: Switched.", stderr="")

    archive = make_zip({"acme-theme/style.css": theme_stylesheet})
    installer = _installer(tmp_path, content_root, archive)
    installer.activator.which = lambda name: f"/usr/bin/{name}"  # type: ignore[attr-defined]
    installer.activator.run_command = _run  # type: ignore[attr-defined]

    outcome = installer.install(
        PackageRequest(
            kind=PackageKind.THEME, owner="acme", name="acme-theme", activate=True
        )
    )

    assert outcome.success is True
    assert calls == [["/usr/bin/wp", "theme", "activate", "acme-theme"]]


def test_install_async_runs_install(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    theme_stylesheet: str,
) -> None:
    archive = make_zip({"acme-theme/style.css": theme_stylesheet})
    installer = _installer(tmp_path, content_root, archive)

    outcome = asyncio.run(
        installer.install_async(
            PackageRequest(kind=PackageKind.THEME, owner="acme", name="acme-theme")
        )
    )

    assert outcome.success is True


def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging("chatty")


def test_configure_logging_accepts_known_level(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    configure_logging("debug")

    assert captured["level"] == logging.DEBUG
    assert captured["format"] == "%(relativeCreated)d [%(levelname)s] %(message)s"


def test_tag_archive_installs_under_repository_slug(
    tmp_path: Path,
    content_root: Path,
    make_zip: Callable[..., Path],
    plugin_main_file: str,
) -> None:
    archive = make_zip({"widgets-1.4.0/widgets.php": plugin_main_file})

    outcome = _installer(tmp_path, content_root, archive).install(
        PackageRequest(
            kind=PackageKind.PLUGIN, owner="acme", name="widgets", version="1.4.0"
        )
    )

    assert outcome.success is True
    assert outcome.installed_slug_or_file == "widgets/widgets.php"
    assert [p.name for p in (content_root / "plugins").iterdir()] == ["widgets"]

from __future__ import annotations

from pathlib import Path

import pytest

from wpgh import wordpress_paths
from wpgh.models import PackageKind

_VARIABLES = ("WPGH_CONTENT_DIR", "WP_CONTENT_DIR", "WPGH_WORDPRESS_ROOT", "WP_ROOT")


@pytest.fixture
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    for variable in _VARIABLES:
        monkeypatch.delenv(variable, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_explicit_content_dir_wins(
    monkeypatch: pytest.MonkeyPatch, _clean_env: Path
) -> None:
    monkeypatch.setenv("WP_CONTENT_DIR", str(_clean_env / "other"))
    monkeypatch.setenv("WPGH_CONTENT_DIR", str(_clean_env / "content"))
    monkeypatch.setenv("WP_ROOT", str(_clean_env / "site"))

    assert wordpress_paths.resolve_content_root() == _clean_env / "content"


def test_wordpress_root_adds_wp_content(
    monkeypatch: pytest.MonkeyPatch, _clean_env: Path
) -> None:
    monkeypatch.setenv("WP_ROOT", str(_clean_env / "site"))

    assert wordpress_paths.resolve_content_root() == _clean_env / "site" / "wp-content"


def test_detects_wordpress_root_as_working_directory(_clean_env: Path) -> None:
    _clean_env.joinpath("wp-content", "plugins").mkdir(parents=True)

    assert wordpress_paths.resolve_content_root() == _clean_env / "wp-content"


def test_detects_content_dir_as_working_directory(_clean_env: Path) -> None:
    _clean_env.joinpath("themes").mkdir()

    assert wordpress_paths.resolve_content_root() == _clean_env


def test_defaults_to_wp_content_below_working_directory(_clean_env: Path) -> None:
    assert wordpress_paths.resolve_content_root() == _clean_env / "wp-content"


def test_target_resolver_maps_kinds(tmp_path: Path) -> None:
    resolver = wordpress_paths.WordPressTargetResolver(content_root=tmp_path)

    assert resolver.resolve_destination_root(PackageKind.PLUGIN) == tmp_path / "plugins"
    assert resolver.resolve_destination_root("theme") == tmp_path / "themes"  # type: ignore[arg-type]


def test_target_resolver_accepts_directory_overrides(tmp_path: Path) -> None:
    resolver = wordpress_paths.WordPressTargetResolver(
        content_root=tmp_path, themes_dir=tmp_path / "custom-themes"
    )

    assert resolver.resolve_destination_root(PackageKind.THEME) == tmp_path / "custom-themes"
    assert resolver.resolve_destination_root(PackageKind.PLUGIN) == tmp_path / "plugins"

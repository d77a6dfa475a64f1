from __future__ import annotations

import logging
import re
from typing import Any, Protocol
from urllib.parse import quote

from wpgh.exceptions import NotFoundError
from wpgh.internal_config import GITHUB_WEB_URL
from wpgh.models import ResolvedSource

logger: logging.Logger = logging.getLogger(__name__)

VERSION_TAG_PATTERN = re.compile(r"^v?\d+(\.\d+)*$")


class ReleaseAPI(Protocol):
    def get_repository(self, owner: str, repo: str) -> dict[str, Any]: ...

    def get_latest_release(self, owner: str, repo: str) -> dict[str, Any]: ...


def is_version_tag(version: str) -> bool:
    """Return True for ``1.4.0``/``v2``-style refs, False for branch names."""
    return bool(VERSION_TAG_PATTERN.match(version))


def tag_archive_url(owner: str, repo: str, tag: str) -> str:
    return f"{GITHUB_WEB_URL}/{owner}/{repo}/archive/refs/tags/{quote(tag, safe='/')}.zip"


def branch_archive_url(owner: str, repo: str, branch: str) -> str:
    return (
        f"{GITHUB_WEB_URL}/{owner}/{repo}/archive/refs/heads/{quote(branch, safe='/')}.zip"
    )


def select_release_asset(release: dict[str, Any]) -> str:
    """Return the first zip asset download URL of *release*, or ``""``."""
    for asset in release.get("assets") or []:
        download_url = str(asset.get("browser_download_url") or "")
        if not download_url:
            continue
        if ".zip" in str(asset.get("name", "")) or (
            asset.get("content_type") == "application/zip"
        ):
            return download_url
    return ""


def normalize_zipball_url(zipball_url: str) -> str:
    """Turn an API ``zipball`` URL into a direct ``github.com`` archive URL."""
    if "api.github.com" not in zipball_url or ".zip" in zipball_url:
        return zipball_url

    converted = zipball_url.replace("api.github.com/repos/", "github.com/")
    if "/zipball/" in converted:
        converted = converted.replace("/zipball/", "/archive/refs/tags/") + ".zip"
    logger.debug(f"Converted API zipball URL {zipball_url} to {converted}")
    return converted


def source_from_release(owner: str, repo: str, release: dict[str, Any]) -> ResolvedSource:
    """Pick a download URL from a release payload.

    Priority: zip asset, source archive, tag archive.
    """
    tag_name = str(release.get("tag_name") or "")

    asset_url = select_release_asset(release)
    if asset_url:
        return ResolvedSource(download_url=asset_url, version_label=tag_name)

    zipball_url = str(release.get("zipball_url") or "")
    if zipball_url:
        return ResolvedSource(
            download_url=normalize_zipball_url(zipball_url), version_label=tag_name
        )

    if tag_name:
        return ResolvedSource(
            download_url=tag_archive_url(owner, repo, tag_name),
            version_label=tag_name,
        )

    raise NotFoundError(
        f"No download URL found in release information for {owner}/{repo}"
    )


class RemotePackageResolver(object):
    """Work out which archive to download for a repository and version."""

    def __init__(self, api: ReleaseAPI) -> None:
        self.api = api

    def resolve(self, owner: str, repo: str, version: str | None = None) -> ResolvedSource:
        if version:
            if is_version_tag(version):
                logger.info(f"Treating {version} as a tag of {owner}/{repo}")
                url = tag_archive_url(owner, repo, version)
            else:
                logger.info(f"Treating {version} as a branch of {owner}/{repo}")
                url = branch_archive_url(owner, repo, version)
            return ResolvedSource(download_url=url, version_label=version)

        try:
            release = self.api.get_latest_release(owner, repo)
        except NotFoundError:
            logger.info(f"No releases for {owner}/{repo}, using the default branch")
            return self._default_branch_source(owner, repo)

        return source_from_release(owner, repo, release)

    def _default_branch_source(self, owner: str, repo: str) -> ResolvedSource:
        repo_info = self.api.get_repository(owner, repo)
        default_branch = str(repo_info.get("default_branch") or "main")
        logger.info(f"Falling back to default branch: {default_branch}")
        return ResolvedSource(
            download_url=branch_archive_url(owner, repo, default_branch),
            version_label=default_branch,
        )

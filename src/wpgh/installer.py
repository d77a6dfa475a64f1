"""Install WordPress themes and plugins straight from GitHub repositories.

``PackageInstaller.install`` runs one request through the whole pipeline::

    resolve -> download -> extract -> classify -> normalize -> place -> activate

Every stage raises one of the :mod:`wpgh.exceptions` errors; only this module
turns them into an :class:`~wpgh.models.InstallationOutcome`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from wpgh.activation import WpCliActivator
from wpgh.api_client import GitHubAPIClient, redact_url
from wpgh.credentials import EnvironmentCredentialProvider
from wpgh.downloader import Downloader
from wpgh.exceptions import (
    ActivationError,
    AmbiguousLayoutError,
    ExtractionFailedError,
    StorageError,
    WpghError,
)
from wpgh.extraction import ExtractionEngine
from wpgh.filesystem import RealFileSystem
from wpgh.internal_config import TEMP_PREFIX
from wpgh.layout import classify, find_plugin_file, has_marker
from wpgh.models import (
    ErrorKind,
    InstallationOutcome,
    PackageKind,
    PackageRequest,
    ResolvedSource,
)
from wpgh.normalizer import StructureNormalizer
from wpgh.protocols import (
    Activator,
    CredentialProvider,
    FileSystem,
    InstallTargetResolver,
)
from wpgh.resolver import RemotePackageResolver
from wpgh.wordpress_paths import WordPressTargetResolver

logger: logging.Logger = logging.getLogger(__name__)


def configure_logging(log_level: str = "info") -> None:
    _log_level = getattr(logging, log_level.upper(), None)
    if not isinstance(_log_level, int):
        raise ValueError(f"Invalid log level: {log_level!r}")
    logging.basicConfig(
        level=_log_level,
        format="%(relativeCreated)d [%(levelname)s] %(message)s",
    )


class PackageInstaller(object):
    """Orchestrate a single theme or plugin installation.

    All collaborators are injectable; the defaults talk to GitHub and the
    local disk and read configuration from the environment.
    """

    def __init__(
        self,
        credentials: CredentialProvider | None = None,
        target_resolver: InstallTargetResolver | None = None,
        activator: Activator | None = None,
        filesystem: FileSystem | None = None,
        resolver: RemotePackageResolver | None = None,
        downloader: Downloader | None = None,
        extraction_engine: ExtractionEngine | None = None,
        normalizer: StructureNormalizer | None = None,
        work_dir: Path | None = None,
    ) -> None:
        self.credentials = (
            credentials if credentials is not None else EnvironmentCredentialProvider()
        )
        self.filesystem = filesystem if filesystem is not None else RealFileSystem()
        self.target_resolver = (
            target_resolver if target_resolver is not None else WordPressTargetResolver()
        )
        self.activator = activator if activator is not None else WpCliActivator()
        self.resolver = (
            resolver
            if resolver is not None
            else RemotePackageResolver(GitHubAPIClient(credentials=self.credentials))
        )
        self.downloader = (
            downloader if downloader is not None else Downloader(filesystem=self.filesystem)
        )
        self.extraction_engine = (
            extraction_engine
            if extraction_engine is not None
            else ExtractionEngine(filesystem=self.filesystem)
        )
        self.normalizer = (
            normalizer
            if normalizer is not None
            else StructureNormalizer(filesystem=self.filesystem)
        )
        self.work_dir = work_dir

    def install(self, request: PackageRequest) -> InstallationOutcome:
        diagnostics: list[str] = []
        archive_path: Path | None = None
        retained_archive: Path | None = None
        work_dir: Path | None = None
        slug = ""

        try:
            source = self._resolve(request, diagnostics)

            archive = self.downloader.download(
                source.download_url, auth_token=self.credentials.get_token()
            )
            archive_path = archive.file_path
            diagnostics.extend(archive.attempts)
            diagnostics.append(f"Downloaded {archive.size_bytes} bytes")

            work_dir = self._make_work_dir()
            try:
                tree = self.extraction_engine.extract(
                    archive_path, work_dir.joinpath("extract")
                )
            except ExtractionFailedError as exc:
                diagnostics.extend(exc.failures)
                retained_archive = archive_path
                raise
            diagnostics.extend(tree.failures)
            diagnostics.append(f"Extracted with {tree.strategy}")

            slug = self.normalizer.choose_slug(
                tree, request.kind, request.desired_slug, default_name=request.name
            )
            classification = classify(tree, request.kind, slug, self.filesystem)
            diagnostics.append(
                f"Layout {classification.kind.value}"
                + (
                    f" ({classification.existing_name})"
                    if classification.existing_name
                    else ""
                )
            )
            self.normalizer.normalize(tree, classification, slug, request.kind)

            identifier = self._locate_marker(tree.root_path.joinpath(slug), request.kind, slug)
            installed_path = self._place(
                tree.root_path.joinpath(slug), request.kind, slug, request.overwrite
            )
            diagnostics.append(f"Installed {request.kind.value} to {installed_path}")
        except (WpghError, OSError) as exc:
            error_kind = exc.kind if isinstance(exc, WpghError) else ErrorKind.STORAGE
            logger.error(f"Installing {request.owner}/{request.name} failed: {exc}")
            diagnostics.append(f"{error_kind.value}: {exc}")
            return InstallationOutcome(
                success=False,
                installed_slug_or_file=slug,
                diagnostics=diagnostics,
                error_kind=error_kind,
                retained_archive=retained_archive,
            )
        finally:
            if archive_path is not None and retained_archive is None:
                self.filesystem.unlink(archive_path)
            if work_dir is not None and self.filesystem.exists(work_dir):
                self.filesystem.rmtree(work_dir)

        if request.activate:
            try:
                self.activator.activate(request.kind, identifier)
            except ActivationError as exc:
                logger.error(f"{exc}")
                diagnostics.append(
                    f"{request.kind.value.capitalize()} installed but could not be activated: {exc}"
                )
                return InstallationOutcome(
                    success=False,
                    installed_slug_or_file=identifier,
                    diagnostics=diagnostics,
                    error_kind=ErrorKind.ACTIVATION,
                    installed_path=installed_path,
                )
            diagnostics.append(f"Activated {request.kind.value} {identifier}")

        logger.info(f"Installed {request.owner}/{request.name} as {identifier}")
        return InstallationOutcome(
            success=True,
            installed_slug_or_file=identifier,
            diagnostics=diagnostics,
            installed_path=installed_path,
        )

    async def install_async(self, request: PackageRequest) -> InstallationOutcome:
        """Run :meth:`install` in a worker thread."""
        return await asyncio.to_thread(self.install, request)

    def _resolve(
        self, request: PackageRequest, diagnostics: list[str]
    ) -> ResolvedSource:
        if request.download_url:
            source = ResolvedSource(
                download_url=request.download_url,
                version_label=request.version or "",
            )
        else:
            source = self.resolver.resolve(request.owner, request.name, request.version)
        diagnostics.append(
            f"Resolved {request.owner}/{request.name}"
            f" {source.version_label or '(unversioned)'} to {redact_url(source.download_url)}"
        )
        return source

    def _make_work_dir(self) -> Path:
        try:
            return self.filesystem.make_temp_dir(
                prefix=f"{TEMP_PREFIX}install-", parent=self.work_dir
            )
        except OSError as exc:
            raise StorageError(f"Could not create working directory: {exc}") from exc

    def _locate_marker(self, package_dir: Path, kind: PackageKind, slug: str) -> str:
        if kind is PackageKind.THEME:
            if not has_marker(package_dir, kind, self.filesystem):
                raise StorageError(f"Theme marker missing from {package_dir}")
            return slug

        plugin_file = find_plugin_file(package_dir, self.filesystem)
        if plugin_file is None:
            raise AmbiguousLayoutError(
                f"Could not find a plugin file with a plugin header in {package_dir}"
            )
        return f"{slug}/{plugin_file.name}"

    def _place(
        self, package_dir: Path, kind: PackageKind, slug: str, overwrite: bool
    ) -> Path:
        fs = self.filesystem
        destination = self.target_resolver.resolve_destination_root(kind).joinpath(slug)
        try:
            if fs.exists(destination):
                if not overwrite:
                    raise StorageError(
                        f"Destination folder already exists: {destination}"
                    )
                logger.info(f"Removing existing {kind.value} at {destination}")
                fs.rmtree(destination)
            fs.mkdir(destination.parent, parents=True, exist_ok=True)
            fs.move(package_dir, destination)
        except StorageError:
            raise
        except OSError as exc:
            raise StorageError(f"Could not move package to {destination}: {exc}") from exc
        return destination


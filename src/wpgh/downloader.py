from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable
from urllib.parse import urlsplit

import httpx
import requests

from wpgh.api_client import build_session, redact_url
from wpgh.archive_validator import is_valid_archive
from wpgh.exceptions import ArchiveValidationError, NetworkError, StorageError
from wpgh.filesystem import RealFileSystem
from wpgh.internal_config import (
    AUTHENTICATED_HOST_SUFFIXES,
    DEFAULT_USER_AGENT,
    HTTP_CHUNK_SIZE,
    HTTP_MAX_REDIRECTS,
    HTTP_REDIRECT_TIMEOUT_SECONDS,
    HTTP_STREAM_CONNECT_TIMEOUT_SECONDS,
    HTTP_STREAM_READ_TIMEOUT_SECONDS,
    MIN_ARCHIVE_SIZE_BYTES,
    TEMP_PREFIX,
)
from wpgh.models import DownloadedArchive
from wpgh.protocols import FileSystem, HttpSession

logger: logging.Logger = logging.getLogger(__name__)

AlternateFetch = Callable[[str, dict[str, str], Path], None]


def _hostname(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


def is_api_url(url: str) -> bool:
    return _hostname(url) == "api.github.com"


def requires_authentication(url: str) -> bool:
    host = _hostname(url)
    return any(
        host == suffix or host.endswith(f".{suffix}")
        for suffix in AUTHENTICATED_HOST_SUFFIXES
    )


def build_download_headers(url: str, auth_token: str | None) -> dict[str, str]:
    headers = {"User-Agent": DEFAULT_USER_AGENT}
    if auth_token and requires_authentication(url):
        headers["Authorization"] = f"Bearer {auth_token}"
    if is_api_url(url):
        headers["Accept"] = "application/octet-stream"
    return headers


def fetch_with_httpx(url: str, headers: dict[str, str], target_path: Path) -> None:
    """Alternate download path used when the ``requests`` transport fails."""
    timeout = httpx.Timeout(
        HTTP_STREAM_READ_TIMEOUT_SECONDS, connect=HTTP_STREAM_CONNECT_TIMEOUT_SECONDS
    )
    with httpx.Client(
        timeout=timeout, follow_redirects=True, max_redirects=HTTP_MAX_REDIRECTS
    ) as client:
        with client.stream("GET", url, headers=headers) as response:
            response.raise_for_status()
            with open(target_path, "wb") as output:
                for chunk in response.iter_bytes(chunk_size=HTTP_CHUNK_SIZE):
                    output.write(chunk)
                output.flush()
                os.fsync(output.fileno())


class Downloader(object):
    """Fetch an archive into a uniquely named temporary file and validate it."""

    def __init__(
        self,
        session: HttpSession | None = None,
        filesystem: FileSystem | None = None,
        temp_dir: Path | None = None,
        alternate_fetch: AlternateFetch = fetch_with_httpx,
    ) -> None:
        self.session = session if session is not None else build_session()
        self.session.max_redirects = HTTP_MAX_REDIRECTS
        self.filesystem = filesystem if filesystem is not None else RealFileSystem()
        self.temp_dir = temp_dir
        self.alternate_fetch = alternate_fetch

    def resolve_api_redirect(
        self, url: str, headers: dict[str, str]
    ) -> tuple[str, dict[str, str]]:
        """Send a HEAD request to an API URL and return the asset location it redirects to."""
        logger.info("GitHub API URL detected, resolving download URL first")
        try:
            response = self.session.head(
                url,
                headers=headers,
                timeout=HTTP_REDIRECT_TIMEOUT_SECONDS,
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Failed to resolve download URL: {exc}") from exc

        status = response.status_code
        if 300 <= status < 400:
            location = response.headers.get("location", "")
            if location:
                logger.info(f"Following redirect to: {redact_url(location)}")
                if not is_api_url(location):
                    headers = {
                        key: value for key, value in headers.items() if key != "Accept"
                    }
                    if not requires_authentication(location):
                        headers.pop("Authorization", None)
                return location, headers
        elif status != 200:
            raise NetworkError(
                f"GitHub API returned status code: {status}", status_code=status
            )
        return url, headers

    def _stream_with_requests(
        self, url: str, headers: dict[str, str], target_path: Path
    ) -> None:
        response = self.session.get(
            url,
            stream=True,
            headers=headers,
            timeout=(HTTP_STREAM_CONNECT_TIMEOUT_SECONDS, HTTP_STREAM_READ_TIMEOUT_SECONDS),
            allow_redirects=True,
        )
        response.raise_for_status()
        with open(target_path, "wb") as output:
            for chunk in response.iter_content(chunk_size=HTTP_CHUNK_SIZE):
                if chunk:
                    output.write(chunk)
            output.flush()
            os.fsync(output.fileno())

    def _new_temp_file(self) -> Path:
        try:
            if self.temp_dir is not None:
                self.filesystem.mkdir(self.temp_dir, parents=True, exist_ok=True)
            handle, name = tempfile.mkstemp(
                prefix=f"{TEMP_PREFIX}download-", suffix=".zip", dir=self.temp_dir
            )
            os.close(handle)
        except OSError as exc:
            raise StorageError(f"Could not create temporary download file: {exc}") from exc
        return Path(name)

    def _fetch(self, url: str, headers: dict[str, str], file_path: Path) -> list[str]:
        attempts: list[str] = []
        try:
            self._stream_with_requests(url, headers, file_path)
            return attempts
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise NetworkError(
                f"Failed to download file, server returned code {status}",
                status_code=status,
            ) from exc
        except requests.RequestException as exc:
            logger.warning(f"Download failed: {exc}")
            attempts.append(f"requests download failed: {exc}")
        except OSError as exc:
            raise StorageError(f"Failed to save downloaded content: {exc}") from exc

        logger.info("Retrying download with alternative method...")
        try:
            self.alternate_fetch(url, headers, file_path)
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"Alternative download method failed: {exc}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Alternative download method also failed")
            raise NetworkError(
                f"{attempts[0]}; alternative download method also failed: {exc}"
            ) from exc
        except OSError as exc:
            raise StorageError(f"Failed to save downloaded content: {exc}") from exc
        attempts.append("alternative download method succeeded")
        return attempts

    def download(self, url: str, auth_token: str | None = None) -> DownloadedArchive:
        """Download *url* to a temporary zip file.

        The partial file is removed on every failure path.
        """
        logger.info(f"Downloading file from: {redact_url(url)}")
        headers = build_download_headers(url, auth_token)
        if is_api_url(url):
            url, headers = self.resolve_api_redirect(url, headers)

        file_path = self._new_temp_file()
        try:
            attempts = self._fetch(url, headers, file_path)

            size = self.filesystem.file_size(file_path)
            if size < MIN_ARCHIVE_SIZE_BYTES:
                raise ArchiveValidationError(
                    f"Downloaded file is too small ({size} bytes) to be an archive"
                )
            if not is_valid_archive(file_path):
                raise ArchiveValidationError(
                    "Downloaded file is not a valid ZIP archive"
                )
        except BaseException:
            self.filesystem.unlink(file_path)
            raise

        logger.info(f"File downloaded successfully to: {file_path} ({size} bytes)")
        return DownloadedArchive(
            file_path=file_path, size_bytes=size, attempts=tuple(attempts)
        )

from __future__ import annotations

import platform
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version


def _get_package_version(name: str) -> str:
    """Return the installed version of *name*, or ``"0"`` if not found."""
    try:
        return _pkg_version(name)
    except PackageNotFoundError:
        return "0"


_wpgh_version = _get_package_version("wpgh-installer")

DEFAULT_USER_AGENT = (
    f"wpgh/{_wpgh_version}"
    f" ({platform.system()}; {platform.machine()};"
    f" compatible; WordPress GitHub installer)"
)

GITHUB_API_URL = "https://api.github.com"
GITHUB_WEB_URL = "https://github.com"
GITHUB_API_ACCEPT = "application/vnd.github.v3+json"
# hosts that receive the bearer token when one is configured
AUTHENTICATED_HOST_SUFFIXES = ("github.com",)

HTTP_REQUEST_TIMEOUT_SECONDS = 10
HTTP_REDIRECT_TIMEOUT_SECONDS = 30
HTTP_STREAM_CONNECT_TIMEOUT_SECONDS = 10
HTTP_STREAM_READ_TIMEOUT_SECONDS = 300
HTTP_MAX_REDIRECTS = 5
HTTP_CHUNK_SIZE = 1024 * 8

# failures surface to the caller; the downloader's httpx fallback is the only retry
HTTP_RETRY_TOTAL = 0
HTTP_RETRY_BACKOFF_FACTOR = 1
HTTP_RETRY_STATUS_FORCELIST = [429, 500, 502, 503, 504]
HTTP_RETRY_ALLOWED_METHODS = ["HEAD", "GET", "OPTIONS"]

MIN_ARCHIVE_SIZE_BYTES = 100
ZIP_LOCAL_FILE_HEADER_SIGNATURE = b"PK\x03\x04"

# how much of a PHP/CSS file WordPress reads when looking for header comments
HEADER_SCAN_BYTES = 8 * 1024

EXCLUDED_ENTRY_NAMES = frozenset(
    {".git", ".github", ".gitlab", ".svn", ".hg", "node_modules", "vendor"}
)
REPOSITORY_METADATA_FILES = frozenset(
    {"README.md", "LICENSE", "CHANGELOG.md", "composer.json", "package.json"}
)
ALWAYS_INCLUDED_FILES = frozenset(
    {"style.css", "functions.php", "index.php", "screenshot.png", "readme.txt"}
)

TEMP_PREFIX = "wpgh-"

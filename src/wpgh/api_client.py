from __future__ import annotations

import datetime
import logging
import re
from typing import Any

import requests
from requests.adapters import HTTPAdapter, Retry

from wpgh.credentials import EnvironmentCredentialProvider
from wpgh.exceptions import NetworkError, NotFoundError
from wpgh.internal_config import (
    DEFAULT_USER_AGENT,
    GITHUB_API_ACCEPT,
    GITHUB_API_URL,
    HTTP_REQUEST_TIMEOUT_SECONDS,
    HTTP_RETRY_ALLOWED_METHODS,
    HTTP_RETRY_BACKOFF_FACTOR,
    HTTP_RETRY_STATUS_FORCELIST,
    HTTP_RETRY_TOTAL,
)
from wpgh.models import RepositorySummary
from wpgh.protocols import CredentialProvider

logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_QUERY_PATTERN = re.compile(r"([?&]access_token)=[^&]+")


def redact_url(url: str) -> str:
    """Hide ``access_token`` query parameters before a URL reaches the log."""
    return _TOKEN_QUERY_PATTERN.sub(r"\1=REDACTED", url)


def build_session(retries: int = HTTP_RETRY_TOTAL) -> requests.Session:
    retry_strategy = Retry(
        total=retries,
        backoff_factor=HTTP_RETRY_BACKOFF_FACTOR,
        status_forcelist=HTTP_RETRY_STATUS_FORCELIST,
        allowed_methods=HTTP_RETRY_ALLOWED_METHODS,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class GitHubAPIClient(object):
    """Read-only access to the GitHub REST API."""

    session: requests.Session

    def __init__(
        self,
        credentials: CredentialProvider | None = None,
        api_url: str = GITHUB_API_URL,
        session: requests.Session | None = None,
    ) -> None:
        self.credentials = (
            credentials if credentials is not None else EnvironmentCredentialProvider()
        )
        self.api_url = api_url.rstrip("/")
        self.session = session if session is not None else build_session()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": GITHUB_API_ACCEPT,
            "User-Agent": DEFAULT_USER_AGENT,
        }
        token = self.credentials.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def api_request(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET *url* and return the decoded JSON body.

        Raises:
            NotFoundError: the API answered 404.
            NetworkError: transport failure, any other non-200 status or a body
                that is not JSON.
        """
        logger.debug(f"GitHub API request: {redact_url(url)}")
        try:
            response = self.session.get(
                url,
                params=params,
                headers=self._headers(),
                timeout=HTTP_REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            logger.error(f"GitHub API request failed: {exc}")
            raise NetworkError(f"GitHub API request failed: {exc}") from exc

        logger.debug(f"GitHub API response code: {response.status_code}")
        if response.status_code != 200:
            message = response.reason or ""
            try:
                message = str(response.json().get("message", message))
            except (ValueError, AttributeError):
                pass
            error_message = (
                f"GitHub API error (HTTP {response.status_code}): {message}"
            )
            logger.warning(error_message)
            if response.status_code == 404:
                raise NotFoundError(error_message)
            raise NetworkError(error_message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError("Invalid JSON response from GitHub API") from exc

    def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        return self.api_request(f"{self.api_url}/repos/{owner}/{repo}")

    def get_latest_release(self, owner: str, repo: str) -> dict[str, Any]:
        return self.api_request(f"{self.api_url}/repos/{owner}/{repo}/releases/latest")

    def get_releases(self, owner: str, repo: str) -> list[dict[str, Any]]:
        return self.api_request(f"{self.api_url}/repos/{owner}/{repo}/releases")

    def search_repositories(
        self, query: str, page: int = 1, per_page: int = 10
    ) -> dict[str, Any]:
        return self.api_request(
            f"{self.api_url}/search/repositories",
            params={"q": query, "page": page, "per_page": per_page},
        )

    def check_connection(self) -> dict[str, Any]:
        """Return the authenticated user, proving the token works."""
        return self.api_request(f"{self.api_url}/user")

    def get_repository_summary(self, owner: str, repo: str) -> RepositorySummary:
        """Collect the details shown before installing a repository."""
        repo_info = self.get_repository(owner, repo)
        release = self.get_latest_release(owner, repo)

        updated_at = str(repo_info.get("updated_at") or "")
        try:
            updated_date = (
                datetime.datetime.fromisoformat(updated_at.replace("Z", "+00:00"))
                .date()
                .isoformat()
            )
        except ValueError:
            updated_date = updated_at

        return RepositorySummary(
            name=str(repo_info.get("name", repo)),
            description=str(repo_info.get("description") or ""),
            version=re.sub(r"^v", "", str(release.get("tag_name", ""))),
            author=str(repo_info.get("owner", {}).get("login", owner)),
            stars=int(repo_info.get("stargazers_count") or 0),
            updated_at=updated_date,
            release_notes=str(release.get("body") or ""),
            download_url=str(release.get("zipball_url") or ""),
            has_wiki=bool(repo_info.get("has_wiki", False)),
            license=str((repo_info.get("license") or {}).get("name") or "Unknown"),
        )

"""GitHub App REST API calls made with an App assertion.

Only three endpoints are used:

- ``POST /app/installations/{id}/access_tokens`` exchanges an assertion for
  an installation token
- ``GET /repos/{owner}/{repo}/installation`` finds the installation that
  covers a repository (sources configured without an installation ID)
- ``GET /app/installations`` lists installations (setup time only)

Each call is a single attempt bounded by the client timeout. Errors carry
the HTTP status and GitHub's message, never the assertion or a token.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from pydantic import SecretStr

from git_app_auth.exceptions import ExchangeError

log = structlog.get_logger(__name__)

GITHUB_HOST = "github.com"
API_VERSION = "2022-11-28"
DEFAULT_TIMEOUT = 30.0


def api_base_url(host: str) -> str:
    """REST API root for a GitHub or GitHub Enterprise Server host."""
    host = host.lower()
    if host in (GITHUB_HOST, f"api.{GITHUB_HOST}"):
        return "https://api.github.com"
    return f"https://{host}/api/v3"


@dataclass(frozen=True)
class InstallationToken:
    """Installation token as issued by the API."""

    installation_id: int
    token: SecretStr = field(repr=False)
    expires_at: datetime


class GitHubAppClient:
    """Minimal GitHub App API client.

    Example:
        >>> with GitHubAppClient("github.com") as client:
        ...     issued = client.create_installation_token(assertion, 789012)
    """

    def __init__(
        self,
        host: str = GITHUB_HOST,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            host: Git host the App is installed on (github.com or a GHES host)
            timeout: Per-request timeout in seconds
            http_client: Preconfigured client, mainly for tests
        """
        self.host = host
        self.base_url = api_base_url(host)
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "GitHubAppClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, assertion: str) -> Any:
        if not assertion:
            raise ExchangeError("Cannot call the GitHub API without an App assertion")

        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {assertion}",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": "git-app-auth",
        }
        url = f"{self.base_url}{path}"
        try:
            response = self._client.request(method, url, headers=headers)
        except httpx.TimeoutException as e:
            raise ExchangeError(f"GitHub API request to {path} timed out") from e
        except httpx.HTTPError as e:
            raise ExchangeError(f"GitHub API request to {path} failed: {type(e).__name__}") from e

        if response.is_error:
            raise ExchangeError(
                f"GitHub API {method} {path} failed: {self._error_message(response)}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ExchangeError(
                f"GitHub API {method} {path} returned invalid JSON", status_code=response.status_code
            ) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            message = response.json().get("message")
        except (ValueError, AttributeError):
            message = None
        return str(message) if message else response.reason_phrase

    def create_installation_token(self, assertion: str, installation_id: int) -> InstallationToken:
        """Exchange an App assertion for an installation token.

        Raises:
            ExchangeError: On transport failure, non-2xx status or malformed body
        """
        if installation_id <= 0:
            raise ExchangeError(f"Invalid installation ID {installation_id}")

        path = f"/app/installations/{installation_id}/access_tokens"
        log.debug("installation_token_requested", host=self.host, installation_id=installation_id)
        data = self._request("POST", path, assertion)

        try:
            token = data["token"]
            expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ExchangeError(f"Unexpected token response from {path}") from e
        if expires_at.tzinfo is None:
            # GitHub reports UTC
            expires_at = expires_at.replace(tzinfo=UTC)

        log.info(
            "installation_token_issued",
            host=self.host,
            installation_id=installation_id,
            expires_at=str(expires_at),
        )
        return InstallationToken(installation_id=installation_id, token=SecretStr(token), expires_at=expires_at)

    def get_repository_installation(self, assertion: str, owner: str, repo: str) -> int:
        """Installation ID of the App on ``owner/repo``."""
        data = self._request("GET", f"/repos/{owner}/{repo}/installation", assertion)
        try:
            return int(data["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise ExchangeError(f"Unexpected installation response for {owner}/{repo}") from e

    def list_installations(self, assertion: str) -> list[dict[str, Any]]:
        data = self._request("GET", "/app/installations", assertion)
        if not isinstance(data, list):
            raise ExchangeError("Unexpected installations listing")
        return data

    def find_installation_for_org(self, assertion: str, org: str) -> int:
        """Installation ID whose account login equals ``org`` (case-insensitive).

        Raises:
            ExchangeError: If the App has no installation for ``org``
        """
        installations = self.list_installations(assertion)
        for installation in installations:
            login = installation.get("account", {}).get("login", "")
            if login.lower() == org.lower():
                return int(installation["id"])

        if not installations:
            raise ExchangeError("No installations found for this GitHub App")
        available = ", ".join(i.get("account", {}).get("login", "?") for i in installations)
        raise ExchangeError(f"No installation found for org '{org}'. Available: {available}")

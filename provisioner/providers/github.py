"""GitHub repository-host client.

Two credential kinds share one client: a personal access token, or a
GitHub App installation. The kind is resolved once into an ``httpx.Auth``
when the HTTP client is built, so callers never branch on it.
"""

import base64
import time
from collections.abc import Callable, Generator
from datetime import datetime
from urllib.parse import quote

import httpx
import jwt
from pydantic import BaseModel

from provisioner.core.exceptions import ProviderRequestError
from provisioner.models.config import GitHubAppCredentials, GitHubCredentials
from provisioner.providers.base import ProviderClient
from provisioner.providers.cache import fingerprint

GITHUB_API_URL = "https://api.github.com"

# Installation tokens live an hour; refresh a minute early
TOKEN_REFRESH_MARGIN = 60


class TokenAuth(httpx.Auth):
    """Bearer auth with a personal access token."""

    def __init__(self, token: str):
        self.token = token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self.token}"
        yield request


class GitHubAppAuth(httpx.Auth):
    """Installation-token auth for a GitHub App.

    Signs an RS256 app JWT, exchanges it for an installation access token,
    and caches that token until shortly before it expires.
    """

    requires_response_body = True

    def __init__(
        self,
        app_id: str,
        private_key: str,
        installation_id: str,
        api_url: str = GITHUB_API_URL,
        clock: Callable[[], float] = time.time,
    ):
        self.app_id = app_id
        self.private_key = private_key
        self.installation_id = installation_id
        self.api_url = api_url.rstrip("/")
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float = 0.0

    def app_jwt(self) -> str:
        """Build the short-lived JWT that authenticates as the app itself."""
        now = int(self._clock())
        claims = {"iat": now - 60, "exp": now + 540, "iss": self.app_id}
        return jwt.encode(claims, self.private_key, algorithm="RS256")

    def _token_valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at - TOKEN_REFRESH_MARGIN

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if not self._token_valid():
            token_response = yield httpx.Request(
                "POST",
                f"{self.api_url}/app/installations/{self.installation_id}/access_tokens",
                headers={
                    "Authorization": f"Bearer {self.app_jwt()}",
                    "Accept": "application/vnd.github+json",
                },
            )
            if token_response.is_error:
                raise ProviderRequestError(
                    "github",
                    token_response.status_code,
                    "could not obtain installation token",
                )
            data = token_response.json()
            self._token = data["token"]
            self._expires_at = _parse_timestamp(data.get("expires_at"), self._clock() + 3600)

        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


def _parse_timestamp(value: str | None, default: float) -> float:
    if not value:
        return default
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


def build_auth(credentials: GitHubCredentials) -> httpx.Auth:
    """Select the auth strategy for a credential bundle."""
    if isinstance(credentials, GitHubAppCredentials):
        return GitHubAppAuth(
            app_id=credentials.app_id,
            private_key=credentials.private_key,
            installation_id=credentials.installation_id,
        )
    return TokenAuth(credentials.token)


class RepositorySpec(BaseModel):
    """What to create."""

    name: str
    description: str = ""
    private: bool = True
    auto_init: bool = True
    license_template: str | None = "mit"


class Repository(BaseModel):
    """A repository as GitHub reports it."""

    id: int
    name: str
    full_name: str
    html_url: str
    clone_url: str
    ssh_url: str | None = None
    default_branch: str = "main"

    @property
    def state(self) -> str:
        # A readable repository is a usable one
        return "ready"


class GitHubClient(ProviderClient[RepositorySpec, str, Repository]):
    """Creates repositories and commits files.

    Resource references are repository full names (``owner/name``).
    """

    provider = "github"
    success_states = frozenset({"ready"})

    def __init__(self, http: httpx.AsyncClient, owner: str, owner_is_org: bool = False):
        super().__init__(http)
        self.owner = owner
        self.owner_is_org = owner_is_org

    @staticmethod
    def cache_key(credentials: GitHubCredentials) -> str:
        if isinstance(credentials, GitHubAppCredentials):
            return fingerprint("app", credentials.app_id, credentials.installation_id)
        return fingerprint("token", credentials.token)

    @staticmethod
    def http_client(credentials: GitHubCredentials, timeout: float = 30.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=GITHUB_API_URL,
            auth=build_auth(credentials),
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
        )

    @classmethod
    def from_credentials(
        cls, http: httpx.AsyncClient, credentials: GitHubCredentials
    ) -> "GitHubClient":
        return cls(http, owner=credentials.owner, owner_is_org=credentials.owner_is_org)

    async def create(self, spec: RepositorySpec) -> Repository:
        """Create a repository for the owner (user or organization)."""
        path = f"/orgs/{self.owner}/repos" if self.owner_is_org else "/user/repos"
        body = spec.model_dump(exclude_none=True)
        data = await self._request("POST", path, json=body)
        repo = Repository.model_validate(data)
        self.logger.info("github.repository.created", full_name=repo.full_name)
        return repo

    async def get(self, ref: str) -> Repository:
        data = await self._request("GET", f"/repos/{ref}")
        return Repository.model_validate(data)

    def state_of(self, resource: Repository) -> str:
        return resource.state

    async def write_file(
        self,
        ref: str,
        path: str,
        content: str,
        message: str,
        branch: str | None = None,
    ) -> None:
        """Create a file in the repository."""
        body: dict[str, str] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if branch:
            body["branch"] = branch
        await self._request("PUT", f"/repos/{ref}/contents/{quote(path)}", json=body)

    async def create_initial_files(
        self, ref: str, files: dict[str, str], branch: str | None = None
    ) -> list[str]:
        """Commit a set of starter files, one commit per file."""
        written = []
        for path, content in files.items():
            await self.write_file(ref, path, content, f"Add {path}", branch=branch)
            written.append(path)
        self.logger.info("github.files.committed", full_name=ref, count=len(written))
        return written

"""Google Cloud project client.

Talks to the Cloud Resource Manager, Cloud Billing and Service Usage REST
APIs with a service account. Project creation returns a long-running
operation which ``wait_until_ready`` follows until it is done.
"""

import time
from collections.abc import Callable, Generator
from typing import Any

import httpx
import jwt
from pydantic import BaseModel, ConfigDict, Field

from provisioner.core.exceptions import ProviderRequestError
from provisioner.models.config import GoogleCloudCredentials
from provisioner.providers.base import ProviderClient
from provisioner.providers.cache import fingerprint

RESOURCE_MANAGER_URL = "https://cloudresourcemanager.googleapis.com"
BILLING_URL = "https://cloudbilling.googleapis.com/v1"
SERVICE_USAGE_URL = "https://serviceusage.googleapis.com/v1"
TOKEN_URI = "https://oauth2.googleapis.com/token"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class ServiceAccountAuth(httpx.Auth):
    """OAuth2 JWT-bearer grant for a service account, with token caching."""

    requires_response_body = True

    def __init__(
        self,
        client_email: str,
        private_key: str,
        token_uri: str = TOKEN_URI,
        scope: str = CLOUD_PLATFORM_SCOPE,
        clock: Callable[[], float] = time.time,
    ):
        self.client_email = client_email
        self.private_key = private_key
        self.token_uri = token_uri
        self.scope = scope
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0

    def assertion(self) -> str:
        now = int(self._clock())
        claims = {
            "iss": self.client_email,
            "scope": self.scope,
            "aud": self.token_uri,
            "iat": now,
            "exp": now + 3600,
        }
        return jwt.encode(claims, self.private_key, algorithm="RS256")

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self._token is None or self._clock() >= self._expires_at - 60:
            token_response = yield httpx.Request(
                "POST",
                self.token_uri,
                data={
                    "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                    "assertion": self.assertion(),
                },
            )
            if token_response.is_error:
                raise ProviderRequestError(
                    "google_cloud",
                    token_response.status_code,
                    "service account token exchange failed",
                )
            data = token_response.json()
            self._token = data["access_token"]
            self._expires_at = self._clock() + float(data.get("expires_in", 3600))

        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


class CloudProjectSpec(BaseModel):
    project_id: str
    name: str
    organization_id: str | None = None


class Operation(BaseModel):
    """A Resource Manager long-running operation."""

    name: str
    done: bool = False
    error: dict[str, Any] | None = None
    response: dict[str, Any] | None = None

    @property
    def state(self) -> str:
        if self.error:
            return "failed"
        return "done" if self.done else "running"


class CloudProject(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId")
    project_number: str | None = Field(default=None, alias="projectNumber")
    name: str | None = None
    lifecycle_state: str | None = Field(default=None, alias="lifecycleState")


class GoogleCloudClient(ProviderClient[CloudProjectSpec, str, Operation]):
    """Creates projects, links billing and enables APIs.

    Resource references are operation names (``operations/cp.123``).
    """

    provider = "google_cloud"
    success_states = frozenset({"done"})
    failure_states = frozenset({"failed"})

    @staticmethod
    def cache_key(credentials: GoogleCloudCredentials) -> str:
        return fingerprint(credentials.client_email, credentials.private_key)

    @staticmethod
    def http_client(
        credentials: GoogleCloudCredentials, timeout: float = 30.0
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=RESOURCE_MANAGER_URL,
            auth=ServiceAccountAuth(credentials.client_email, credentials.private_key),
            timeout=timeout,
        )

    async def create(self, spec: CloudProjectSpec) -> Operation:
        body: dict[str, Any] = {"projectId": spec.project_id, "name": spec.name}
        if spec.organization_id:
            body["parent"] = {"type": "organization", "id": spec.organization_id}
        data = await self._request("POST", "/v1/projects", json=body)
        operation = Operation.model_validate(data)
        self.logger.info(
            "gcloud.project.requested",
            project_id=spec.project_id,
            operation=operation.name,
        )
        return operation

    async def get(self, ref: str) -> Operation:
        data = await self._request("GET", f"/v1/{ref}")
        return Operation.model_validate(data)

    def state_of(self, resource: Operation) -> str:
        return resource.state

    async def get_project(self, project_id: str) -> CloudProject:
        data = await self._request("GET", f"/v1/projects/{project_id}")
        return CloudProject.model_validate(data)

    async def link_billing(self, project_id: str, billing_account_id: str) -> None:
        await self._request(
            "PUT",
            f"{BILLING_URL}/projects/{project_id}/billingInfo",
            json={"billingAccountName": f"billingAccounts/{billing_account_id}"},
        )
        self.logger.info("gcloud.billing.linked", project_id=project_id)

    async def enable_apis(self, project_id: str, apis: list[str] | tuple[str, ...]) -> list[str]:
        """Enable each service; ones that are already enabled count as enabled."""
        enabled = []
        for api in apis:
            try:
                await self._request(
                    "POST",
                    f"{SERVICE_USAGE_URL}/projects/{project_id}/services/{api}:enable",
                )
            except ProviderRequestError as e:
                # FAILED_PRECONDITION: the service is already on
                if e.http_status != 400 or "already" not in e.message.lower():
                    raise
            enabled.append(api)
        if enabled:
            self.logger.info("gcloud.apis.enabled", project_id=project_id, apis=enabled)
        return enabled

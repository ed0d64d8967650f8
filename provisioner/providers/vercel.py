"""Vercel hosting-platform client."""

import httpx
from pydantic import BaseModel, ConfigDict, Field

from provisioner.models.config import VercelCredentials
from provisioner.providers.base import ProviderClient
from provisioner.providers.cache import fingerprint

VERCEL_API_URL = "https://api.vercel.com"

ENV_TARGETS = ["production", "preview", "development"]


class HostingProjectSpec(BaseModel):
    name: str
    repository: str  # owner/name
    framework: str = "nextjs"
    environment_variables: dict[str, str] = Field(default_factory=dict)


class HostingProject(BaseModel):
    id: str
    name: str
    framework: str | None = None


class HostingDeploymentSpec(BaseModel):
    project_name: str
    project_id: str
    org: str
    repo: str
    ref: str = "main"
    target: str = "production"


class HostingDeployment(BaseModel):
    """A deployment as Vercel reports it."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str = ""
    ready_state: str = Field(default="QUEUED", alias="readyState")

    @property
    def https_url(self) -> str:
        if not self.url or self.url.startswith("http"):
            return self.url
        return f"https://{self.url}"


def _env_entries(variables: dict[str, str]) -> list[dict[str, object]]:
    return [
        {"key": key, "value": value, "type": "encrypted", "target": ENV_TARGETS}
        for key, value in variables.items()
    ]


class VercelClient(ProviderClient[HostingDeploymentSpec, str, HostingDeployment]):
    """Creates projects linked to a Git repository and tracks their deployments.

    Deployments build asynchronously: ``create`` returns while the build is
    queued and ``wait_until_ready`` follows ``readyState`` to ``READY``.
    """

    provider = "vercel"
    success_states = frozenset({"READY"})
    failure_states = frozenset({"ERROR", "CANCELED"})

    @staticmethod
    def cache_key(credentials: VercelCredentials) -> str:
        return fingerprint(credentials.token, credentials.team_id)

    @staticmethod
    def http_client(credentials: VercelCredentials, timeout: float = 30.0) -> httpx.AsyncClient:
        params = {"teamId": credentials.team_id} if credentials.team_id else None
        return httpx.AsyncClient(
            base_url=VERCEL_API_URL,
            headers={"Authorization": f"Bearer {credentials.token}"},
            params=params,
            timeout=timeout,
        )

    async def create_project(self, spec: HostingProjectSpec) -> HostingProject:
        """Create a project wired to the repository."""
        body: dict[str, object] = {
            "name": spec.name,
            "framework": spec.framework,
            "gitRepository": {"type": "github", "repo": spec.repository},
        }
        if spec.environment_variables:
            body["environmentVariables"] = _env_entries(spec.environment_variables)
        data = await self._request("POST", "/v10/projects", json=body)
        project = HostingProject.model_validate(data)
        self.logger.info("vercel.project.created", project_id=project.id, name=project.name)
        return project

    async def create(self, spec: HostingDeploymentSpec) -> HostingDeployment:
        """Trigger a deployment from the repository's branch."""
        data = await self._request(
            "POST",
            "/v13/deployments",
            json={
                "name": spec.project_name,
                "project": spec.project_id,
                "target": spec.target,
                "gitSource": {
                    "type": "github",
                    "org": spec.org,
                    "repo": spec.repo,
                    "ref": spec.ref,
                },
            },
        )
        deployment = HostingDeployment.model_validate(data)
        self.logger.info(
            "vercel.deployment.created",
            deployment_id=deployment.id,
            state=deployment.ready_state,
        )
        return deployment

    async def get(self, ref: str) -> HostingDeployment:
        data = await self._request("GET", f"/v13/deployments/{ref}")
        return HostingDeployment.model_validate(data)

    def state_of(self, resource: HostingDeployment) -> str:
        return resource.ready_state

    async def add_domain(self, project_id: str, domain: str) -> None:
        """Attach a custom domain to the project."""
        await self._request("POST", f"/v10/projects/{project_id}/domains", json={"name": domain})
        self.logger.info("vercel.domain.added", project_id=project_id, domain=domain)

    async def set_environment_variables(self, project_id: str, variables: dict[str, str]) -> None:
        """Create or replace encrypted environment variables on every target."""
        if not variables:
            return
        await self._request(
            "POST",
            f"/v10/projects/{project_id}/env",
            json=_env_entries(variables),
            params={"upsert": "true"},
        )
        self.logger.info(
            "vercel.env.updated",
            project_id=project_id,
            keys=sorted(variables),
        )

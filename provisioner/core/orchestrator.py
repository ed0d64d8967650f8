"""Deployment Orchestrator.

Runs the provisioning steps of one deployment in a fixed order, writing
every transition to the store before publishing it on the progress
channel.

Steps:
1. repository - create the source repository and seed the starter template
2. hosting - create the hosting project, deploy it, attach a custom domain
3. database - create a database cluster and user (best-effort)
4. identity - create the auth tenant and its keys (best-effort)
5. cloud - create a cloud project, link billing, enable APIs (best-effort)

A failed required step ends the deployment and leaves later steps
pending. A failed best-effort step is recorded and the run moves on.
"""

import asyncio
import re
import secrets
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from provisioner.config import Settings, settings as default_settings
from provisioner.core.events import ProgressChannel, get_progress_channel
from provisioner.core.exceptions import ProviderError, ProvisionerError
from provisioner.core.store import DeploymentStore, get_deployment_store
from provisioner.core.templates import TemplateCatalogue, get_template_catalogue
from provisioner.models.config import DeploymentConfig
from provisioner.models.deployment import (
    DEPLOYMENT_EVENT_STEP,
    CloudResources,
    DatabaseResources,
    DeploymentRecord,
    DeploymentStatus,
    HostingResources,
    IdentityResources,
    ProgressEvent,
    RepositoryResources,
    Step,
    StepId,
    StepStatus,
    utcnow,
)
from provisioner.providers.atlas import AtlasClient, ClusterRef, ClusterSpec
from provisioner.providers.base import PollingPolicy
from provisioner.providers.clerk import IdentityAppSpec
from provisioner.providers.factory import ProviderFactory, get_provider_factory
from provisioner.providers.gcloud import CloudProjectSpec
from provisioner.providers.github import RepositorySpec
from provisioner.providers.vercel import HostingDeploymentSpec, HostingProjectSpec
from provisioner.utils.logging import get_logger

CANCELLED_MESSAGE = "Deployment cancelled"


@dataclass(frozen=True)
class StepDefinition:
    """Static description of a step: its place in the plan and what gates it."""

    id: StepId
    label: str
    required: bool
    # Feature toggle and credential bundle that must both be present
    feature: str | None = None
    credentials: str | None = None
    credentials_name: str = ""


STEP_PLAN: tuple[StepDefinition, ...] = (
    StepDefinition(StepId.REPOSITORY, "Create GitHub repository", required=True),
    StepDefinition(StepId.HOSTING, "Deploy to Vercel", required=True),
    StepDefinition(
        StepId.DATABASE,
        "Provision MongoDB Atlas cluster",
        required=False,
        feature="database",
        credentials="atlas",
        credentials_name="MongoDB Atlas",
    ),
    StepDefinition(
        StepId.IDENTITY,
        "Create Clerk application",
        required=False,
        feature="identity",
        credentials="clerk",
        credentials_name="Clerk",
    ),
    StepDefinition(
        StepId.CLOUD,
        "Create Google Cloud project",
        required=False,
        feature="cloud",
        credentials="google_cloud",
        credentials_name="Google Cloud",
    ),
)


def initial_steps() -> list[Step]:
    """Every step of the plan, pending."""
    return [Step(id=d.id, label=d.label, required=d.required) for d in STEP_PLAN]


def skip_reason(definition: StepDefinition, config: DeploymentConfig) -> str | None:
    """Why a step will not run for this configuration, or None if it will."""
    if definition.feature and not getattr(config.features, definition.feature):
        return f"{definition.feature.capitalize()} disabled for this deployment"
    if definition.credentials and getattr(config, definition.credentials) is None:
        return f"{definition.credentials_name} credentials not configured"
    return None


def cloud_project_id(project_name: str) -> str:
    """Google Cloud project ids: 6-30 chars, lowercase, starting with a letter."""
    base = re.sub(r"[^a-z0-9-]", "-", project_name.lower())[:23].strip("-")
    if not base or not base[0].isalpha():
        base = f"p-{base}"[:23].rstrip("-")
    return f"{base}-{secrets.token_hex(3)}"


@dataclass
class StepResult:
    """What a step handler hands back on success."""

    message: str
    resources: BaseModel | None = None
    data: dict[str, Any] = field(default_factory=dict)


StepHandler = Callable[[DeploymentRecord, DeploymentConfig], Awaitable[StepResult]]


class DeploymentOrchestrator:
    """Drives one deployment record from pending to a terminal status."""

    def __init__(
        self,
        store: DeploymentStore | None = None,
        channel: ProgressChannel | None = None,
        factory: ProviderFactory | None = None,
        catalogue: TemplateCatalogue | None = None,
        settings: Settings | None = None,
    ):
        self.store = store or get_deployment_store()
        self.channel = channel or get_progress_channel()
        self.factory = factory or get_provider_factory()
        self.catalogue = catalogue or get_template_catalogue()
        self.settings = settings or default_settings
        self.logger = get_logger("orchestrator")

        self._handlers: dict[StepId, StepHandler] = {
            StepId.REPOSITORY: self._provision_repository,
            StepId.HOSTING: self._provision_hosting,
            StepId.DATABASE: self._provision_database,
            StepId.IDENTITY: self._provision_identity,
            StepId.CLOUD: self._provision_cloud,
        }

    async def run(self, deployment_id: str, config: DeploymentConfig) -> DeploymentRecord:
        """Run every step of a stored deployment.

        Returns the final record. Step failures never escape; cancellation
        does, after the record has been marked failed.
        """
        self.logger.info(
            "orchestrator.deployment.started",
            deployment_id=deployment_id,
            project=config.project_name,
        )
        await self.store.update_fields(deployment_id, {"status": DeploymentStatus.IN_PROGRESS})
        await self._publish(
            deployment_id, DEPLOYMENT_EVENT_STEP, DeploymentStatus.IN_PROGRESS.value,
            message="Deployment started",
        )

        current: StepId | None = None
        try:
            for definition in STEP_PLAN:
                current = definition.id
                reason = skip_reason(definition, config)
                if reason:
                    await self._transition(deployment_id, definition.id, StepStatus.SKIPPED, reason)
                    continue

                error = await self._run_step(deployment_id, definition, config)
                if error is not None and definition.required:
                    return await self._finish_failed(deployment_id, definition.id, error)

            current = None
            return await self._finish_completed(deployment_id)

        except asyncio.CancelledError:
            self.logger.warning(
                "orchestrator.deployment.cancelled",
                deployment_id=deployment_id,
                step=current.value if current else None,
            )
            await self._abort(deployment_id, current, CANCELLED_MESSAGE, "CancelledError")
            raise

        except Exception as e:
            # Failures outside a step: a store or channel fault
            self.logger.error(
                "orchestrator.deployment.crashed",
                deployment_id=deployment_id,
                error=str(e),
                exc_info=True,
            )
            await self._abort(deployment_id, current, str(e) or type(e).__name__, type(e).__name__)
            raise

    async def _run_step(
        self, deployment_id: str, definition: StepDefinition, config: DeploymentConfig
    ) -> str | None:
        """Run one step. Returns the error message if it failed."""
        step_id = definition.id
        await self._transition(deployment_id, step_id, StepStatus.IN_PROGRESS, f"{definition.label}...")

        try:
            record = await self.store.get(deployment_id)
            result = await self._handlers[step_id](record, config)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = e.message if isinstance(e, ProvisionerError) else str(e) or type(e).__name__
            self.logger.warning(
                "orchestrator.step.error",
                deployment_id=deployment_id,
                step=step_id.value,
                required=definition.required,
                error_type=type(e).__name__,
                error=message,
            )
            await self._transition(
                deployment_id,
                step_id,
                StepStatus.ERROR,
                message,
                error=message,
                error_type=type(e).__name__,
            )
            return message

        if result.resources is not None:
            await self.store.add_resources(deployment_id, step_id, result.resources)
        await self._transition(
            deployment_id, step_id, StepStatus.COMPLETED, result.message, data=result.data
        )
        return None

    async def _transition(
        self,
        deployment_id: str,
        step_id: StepId,
        status: StepStatus,
        message: str | None = None,
        data: dict[str, Any] | None = None,
        **fields: Any,
    ) -> Step:
        """Persist a step transition, then publish it."""
        step = await self.store.update_step(
            deployment_id, step_id, {"status": status, "message": message, **fields}
        )
        self.logger.info(
            f"orchestrator.step.{status.value.replace('-', '_')}",
            deployment_id=deployment_id,
            step=step_id.value,
            duration_ms=step.duration_ms,
        )
        event_data = dict(data or {})
        if step.duration_ms is not None:
            event_data["duration_ms"] = step.duration_ms
        if step.error_type:
            event_data["error_type"] = step.error_type
        await self._publish(deployment_id, step_id.value, status.value, message, event_data or None)
        return step

    async def _publish(
        self,
        deployment_id: str,
        step_id: str,
        status: str,
        message: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        await self.channel.publish(
            ProgressEvent(
                deployment_id=deployment_id,
                step_id=step_id,
                status=status,
                message=message,
                data=data,
            )
        )

    async def _finish_completed(self, deployment_id: str) -> DeploymentRecord:
        record = await self.store.update_fields(
            deployment_id,
            {"status": DeploymentStatus.COMPLETED, "completed_at": utcnow()},
        )
        hosting = record.resources.hosting
        self.logger.info(
            "orchestrator.deployment.completed",
            deployment_id=deployment_id,
            url=hosting.url if hosting else None,
        )
        await self._publish(
            deployment_id,
            DEPLOYMENT_EVENT_STEP,
            DeploymentStatus.COMPLETED.value,
            "Deployment completed",
            {"url": hosting.url} if hosting else None,
        )
        return record

    async def _finish_failed(
        self, deployment_id: str, step: StepId | str | None, error: str
    ) -> DeploymentRecord:
        error_step = step.value if isinstance(step, StepId) else step
        record = await self.store.update_fields(
            deployment_id,
            {
                "status": DeploymentStatus.FAILED,
                "error": error,
                "error_step": error_step,
                "completed_at": utcnow(),
            },
        )
        self.logger.error(
            "orchestrator.deployment.failed",
            deployment_id=deployment_id,
            error_step=error_step,
            error=error,
        )
        await self._publish(
            deployment_id,
            DEPLOYMENT_EVENT_STEP,
            DeploymentStatus.FAILED.value,
            error,
            {"error_step": error_step},
        )
        return record

    async def _abort(
        self, deployment_id: str, step_id: StepId | None, message: str, error_type: str
    ) -> None:
        """End a run that stopped outside normal step handling.

        The step that was running goes to ``error`` and the deployment to
        ``failed``, unless either already reached a terminal status.
        """
        record = await self.store.get(deployment_id)
        if step_id is not None and record.step(step_id).status == StepStatus.IN_PROGRESS:
            await self._transition(
                deployment_id,
                step_id,
                StepStatus.ERROR,
                message,
                error=message,
                error_type=error_type,
            )
        if not record.status.is_terminal:
            await self._finish_failed(deployment_id, step_id, message)

    def _policy(self, step_id: StepId) -> PollingPolicy:
        name = step_id.value
        return PollingPolicy(
            interval=getattr(self.settings, f"{name}_poll_interval"),
            deadline=getattr(self.settings, f"{name}_poll_deadline"),
        )

    # Step handlers

    async def _provision_repository(
        self, record: DeploymentRecord, config: DeploymentConfig
    ) -> StepResult:
        files = self.catalogue.render(
            config.template,
            {"projectName": config.project_name, "description": config.description},
        )
        async with self.factory.repository(config.github) as client:
            repo = await client.create(
                RepositorySpec(
                    name=config.project_name,
                    description=config.description,
                    private=config.private,
                )
            )
            repo = await client.wait_until_ready(repo.full_name, self._policy(StepId.REPOSITORY))
            written = await client.create_initial_files(
                repo.full_name, files, branch=repo.default_branch
            )

        return StepResult(
            message=f"Repository {repo.full_name} created with {len(written)} template files",
            resources=RepositoryResources(
                url=repo.html_url,
                clone_url=repo.clone_url,
                full_name=repo.full_name,
                default_branch=repo.default_branch,
            ),
            data={"url": repo.html_url, "files": written},
        )

    async def _provision_hosting(
        self, record: DeploymentRecord, config: DeploymentConfig
    ) -> StepResult:
        repo = record.resources.repository
        if repo is None:
            raise ProvisionerError("Hosting needs a repository but none was recorded")

        org, repo_name = repo.full_name.split("/", 1)
        async with self.factory.hosting(config.vercel) as client:
            project = await client.create_project(
                HostingProjectSpec(name=config.project_name, repository=repo.full_name)
            )
            deployment = await client.create(
                HostingDeploymentSpec(
                    project_name=config.project_name,
                    project_id=project.id,
                    org=org,
                    repo=repo_name,
                    ref=repo.default_branch,
                )
            )
            deployment = await client.wait_until_ready(deployment.id, self._policy(StepId.HOSTING))
        url = deployment.https_url

        message = f"Deployed to {url}"
        data: dict[str, Any] = {"url": url}
        domain = config.custom_domain
        if domain:
            domain_note = await self._attach_domain(record.deployment_id, config, project.id, domain)
            message = f"{message}; {domain_note}"
            data["domain"] = domain

        return StepResult(
            message=message,
            resources=HostingResources(
                project_id=project.id,
                deployment_id=deployment.id,
                url=url,
                domain=domain,
            ),
            data=data,
        )

    async def _attach_domain(
        self, deployment_id: str, config: DeploymentConfig, project_id: str, domain: str
    ) -> str:
        """Add the custom domain and its DNS records. Failures here do not fail hosting."""
        try:
            async with self.factory.hosting(config.vercel) as client:
                await client.add_domain(project_id, domain)
        except ProviderError as e:
            self.logger.warning(
                "orchestrator.domain.failed", deployment_id=deployment_id, domain=domain, error=e.message
            )
            return f"custom domain {domain} not attached: {e.message}"

        if config.cloudflare is None:
            return f"custom domain {domain} attached; DNS must be pointed manually"

        try:
            async with self.factory.dns(config.cloudflare) as dns:
                await dns.point_to_hosting(domain)
        except ProviderError as e:
            self.logger.warning(
                "orchestrator.dns.failed", deployment_id=deployment_id, domain=domain, error=e.message
            )
            return f"custom domain {domain} attached; DNS records not created: {e.message}"
        return f"custom domain {domain} attached with DNS records"

    async def _push_env(
        self, record: DeploymentRecord, config: DeploymentConfig, variables: dict[str, str]
    ) -> None:
        hosting = record.resources.hosting
        if hosting is None:
            return
        async with self.factory.hosting(config.vercel) as client:
            await client.set_environment_variables(hosting.project_id, variables)

    async def _provision_database(
        self, record: DeploymentRecord, config: DeploymentConfig
    ) -> StepResult:
        atlas = config.atlas
        name = config.project_name
        cluster_name = f"{name}-cluster"
        database_name = name.replace("-", "_")
        username = f"{name}-app"
        password = secrets.token_urlsafe(24)

        async with self.factory.database(atlas) as client:
            project = await client.create_project(f"{name}-db", atlas.org_id)
            await client.create(
                ClusterSpec(
                    group_id=project.id,
                    name=cluster_name,
                    region=atlas.region,
                    tier=atlas.tier,
                    provider=atlas.provider,
                )
            )
            cluster = await client.wait_until_ready(
                ClusterRef(project.id, cluster_name), self._policy(StepId.DATABASE)
            )
            await client.create_database_user(project.id, username, password, database_name)
            await client.add_access_list_entry(project.id)
        connection_string = AtlasClient.connection_string(cluster, username, password, database_name)

        await self._push_env(record, config, {"MONGODB_URI": connection_string})

        return StepResult(
            message=f"Cluster {cluster_name} is ready",
            resources=DatabaseResources(
                group_id=project.id,
                cluster_id=cluster.id,
                cluster_name=cluster_name,
                database_name=database_name,
                username=username,
                connection_string=connection_string,
            ),
            data={"cluster": cluster_name, "database": database_name},
        )

    async def _provision_identity(
        self, record: DeploymentRecord, config: DeploymentConfig
    ) -> StepResult:
        hosting = record.resources.hosting
        domain = config.custom_domain
        home_url = f"https://{domain}" if domain else (hosting.url if hosting else "")

        async with self.factory.identity(config.clerk) as client:
            app = await client.create(
                IdentityAppSpec(name=config.project_name, home_url=home_url, allowed_origins=[home_url])
            )
            app = await client.wait_until_ready(app.id, self._policy(StepId.IDENTITY))
            keys = await client.create_api_keys(app.id)
            await client.setup_default_configuration(app.id)
            if domain:
                await client.add_domain(app.id, domain)

        await self._push_env(
            record,
            config,
            {
                "NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY": keys.publishable_key,
                "CLERK_SECRET_KEY": keys.secret_key,
            },
        )

        return StepResult(
            message=f"Clerk application {app.id} created",
            resources=IdentityResources(
                application_id=app.id,
                publishable_key=keys.publishable_key,
                secret_key=keys.secret_key,
                home_url=home_url,
            ),
            data={"application_id": app.id, "home_url": home_url},
        )

    async def _provision_cloud(
        self, record: DeploymentRecord, config: DeploymentConfig
    ) -> StepResult:
        gcp = config.google_cloud
        project_id = cloud_project_id(config.project_name)

        async with self.factory.cloud(gcp) as client:
            operation = await client.create(
                CloudProjectSpec(
                    project_id=project_id,
                    name=config.project_name[:30],
                    organization_id=gcp.organization_id,
                )
            )
            await client.wait_until_ready(operation.name, self._policy(StepId.CLOUD))
            project = await client.get_project(project_id)

            if gcp.billing_account_id:
                await client.link_billing(project_id, gcp.billing_account_id)
            enabled = await client.enable_apis(project_id, gcp.enable_apis) if gcp.enable_apis else []

        return StepResult(
            message=f"Google Cloud project {project_id} created",
            resources=CloudResources(
                project_id=project_id,
                project_number=project.project_number,
                enabled_apis=enabled,
            ),
            data={"project_id": project_id, "enabled_apis": enabled},
        )

"""Credential and configuration resolution.

Turns a raw ``DeploymentRequest`` into an immutable ``DeploymentConfig``
by merging request credentials over configured ones and validating the
result. Nothing here contacts a provider.
"""

import re
from typing import Any

from pydantic import BaseModel, Field

from provisioner.config import Settings
from provisioner.core.exceptions import MissingConfigurationError
from provisioner.core.templates import TemplateCatalogue, get_template_catalogue
from provisioner.models.config import (
    AtlasCredentials,
    ClerkCredentials,
    CloudflareCredentials,
    DeploymentConfig,
    DeploymentRequest,
    GitHubAppCredentials,
    GitHubCredentials,
    GitHubTokenCredentials,
    GoogleCloudCredentials,
    VercelCredentials,
)

PROJECT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")
PROJECT_NAME_MAX_LENGTH = 100
HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)(?!-)[a-z0-9-]{1,63}(?<!-)(\.(?!-)[a-z0-9-]{1,63}(?<!-))+$"
)


class ProviderRequirement(BaseModel):
    """Which environment keys a provider needs."""

    provider: str
    name: str
    required: bool
    env_vars: list[str]
    optional_env_vars: list[str] = Field(default_factory=list)
    setup_url: str
    instructions: list[str] = Field(default_factory=list)


class ProviderStatus(ProviderRequirement):
    configured: bool


PROVIDER_REQUIREMENTS: list[ProviderRequirement] = [
    ProviderRequirement(
        provider="github",
        name="GitHub",
        required=True,
        env_vars=["GITHUB_PAT", "GITHUB_USERNAME"],
        optional_env_vars=[
            "GITHUB_APP_ID",
            "GITHUB_PRIVATE_KEY",
            "GITHUB_INSTALLATION_ID",
            "GITHUB_OWNER_IS_ORG",
        ],
        setup_url="https://github.com/settings/tokens",
        instructions=[
            "Create a classic personal access token with the repo scope",
            "Or install a GitHub App and set its id, private key and installation id",
            "Set GITHUB_OWNER_IS_ORG=true when GITHUB_USERNAME names an organization",
        ],
    ),
    ProviderRequirement(
        provider="vercel",
        name="Vercel",
        required=True,
        env_vars=["VERCEL_TOKEN"],
        optional_env_vars=["VERCEL_TEAM_ID"],
        setup_url="https://vercel.com/account/tokens",
        instructions=["Create a token with full account scope"],
    ),
    ProviderRequirement(
        provider="mongodb_atlas",
        name="MongoDB Atlas",
        required=False,
        env_vars=["MONGODB_API_KEY", "MONGODB_PRIVATE_KEY", "MONGODB_ORG_ID"],
        optional_env_vars=["MONGODB_REGION", "MONGODB_TIER"],
        setup_url="https://cloud.mongodb.com/v2/organization/settings/api",
        instructions=[
            "Create an organization API key with the Project Creator role",
            "Copy the public and private keys and the organization id",
        ],
    ),
    ProviderRequirement(
        provider="clerk",
        name="Clerk",
        required=False,
        env_vars=["CLERK_SECRET_KEY"],
        setup_url="https://dashboard.clerk.com",
        instructions=["Copy the secret key from the API Keys page"],
    ),
    ProviderRequirement(
        provider="google_cloud",
        name="Google Cloud",
        required=False,
        env_vars=["GOOGLE_CLOUD_CLIENT_EMAIL", "GOOGLE_CLOUD_PRIVATE_KEY"],
        optional_env_vars=[
            "GOOGLE_CLOUD_ORGANIZATION_ID",
            "GOOGLE_CLOUD_BILLING_ACCOUNT_ID",
            "GOOGLE_CLOUD_ENABLE_APIS",
        ],
        setup_url="https://console.cloud.google.com/iam-admin/serviceaccounts",
        instructions=["Create a service account with the Project Creator role and a JSON key"],
    ),
    ProviderRequirement(
        provider="cloudflare",
        name="Cloudflare DNS",
        required=False,
        env_vars=["CLOUDFLARE_TOKEN"],
        setup_url="https://dash.cloudflare.com/profile/api-tokens",
        instructions=["Create a token with Zone:Read and DNS:Edit permissions"],
    ),
]


def _pem(value: str) -> str:
    # Keys pasted into .env files usually carry literal "\n" sequences
    return value.replace("\\n", "\n").strip()


def _first(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return None


def _github_configured(settings: Settings) -> bool:
    if not settings.github_username:
        return False
    app = settings.github_app_id and settings.github_private_key and settings.github_installation_id
    return bool(settings.github_pat or app)


def provider_statuses(settings: Settings) -> list[ProviderStatus]:
    """Report which providers have their environment keys set."""
    configured = {
        "github": _github_configured(settings),
        "vercel": bool(settings.vercel_token),
        "mongodb_atlas": bool(
            settings.mongodb_api_key and settings.mongodb_private_key and settings.mongodb_org_id
        ),
        "clerk": bool(settings.clerk_secret_key),
        "google_cloud": bool(
            settings.google_cloud_client_email and settings.google_cloud_private_key
        ),
        "cloudflare": bool(settings.cloudflare_token),
    }
    return [
        ProviderStatus(**requirement.model_dump(), configured=configured[requirement.provider])
        for requirement in PROVIDER_REQUIREMENTS
    ]


class _Problems:
    """Collects every validation problem before raising once."""

    def __init__(self):
        self.fields: list[dict[str, Any]] = []

    def add(self, field: str, problem: str, env_var: str | None = None) -> None:
        entry: dict[str, Any] = {"field": field, "problem": problem}
        if env_var:
            entry["env_var"] = env_var
        self.fields.append(entry)

    def raise_if_any(self) -> None:
        if self.fields:
            raise MissingConfigurationError(self.fields)


def _resolve_github(
    request: DeploymentRequest, settings: Settings, problems: _Problems
) -> GitHubCredentials | None:
    creds = request.credentials
    owner = _first(creds.github_owner, settings.github_username)
    app_id = _first(creds.github_app_id, settings.github_app_id)
    private_key = _first(creds.github_private_key, settings.github_private_key)
    installation_id = _first(creds.github_installation_id, settings.github_installation_id)
    token = _first(creds.github_token, settings.github_pat)
    owner_is_org = (
        creds.github_owner_is_org
        if creds.github_owner_is_org is not None
        else settings.github_owner_is_org
    )

    if not owner:
        problems.add("github_owner", "missing", "GITHUB_USERNAME")

    # An app configuration takes precedence over a token
    if app_id and private_key:
        if not installation_id:
            problems.add("github_installation_id", "missing", "GITHUB_INSTALLATION_ID")
            return None
        if not owner:
            return None
        return GitHubAppCredentials(
            app_id=str(app_id),
            private_key=_pem(private_key),
            installation_id=str(installation_id),
            owner=owner,
            owner_is_org=owner_is_org,
        )

    if not token:
        problems.add("github_token", "missing", "GITHUB_PAT")
        return None
    if not owner:
        return None
    return GitHubTokenCredentials(token=token, owner=owner, owner_is_org=owner_is_org)


def _resolve_optional(request: DeploymentRequest, settings: Settings) -> dict[str, Any]:
    """Optional bundles resolve only when complete; otherwise their step is skipped."""
    creds = request.credentials
    bundles: dict[str, Any] = {}

    api_key = _first(creds.mongodb_api_key, settings.mongodb_api_key)
    api_secret = _first(creds.mongodb_private_key, settings.mongodb_private_key)
    org_id = _first(creds.mongodb_org_id, settings.mongodb_org_id)
    if api_key and api_secret and org_id:
        bundles["atlas"] = AtlasCredentials(
            public_key=api_key,
            private_key=api_secret,
            org_id=org_id,
            region=_first(creds.mongodb_region, settings.mongodb_region),
            tier=_first(creds.mongodb_tier, settings.mongodb_tier),
            provider=settings.mongodb_provider,
        )

    clerk_key = _first(creds.clerk_secret_key, settings.clerk_secret_key)
    if clerk_key:
        bundles["clerk"] = ClerkCredentials(secret_key=clerk_key)

    client_email = _first(creds.google_cloud_client_email, settings.google_cloud_client_email)
    gcp_key = _first(creds.google_cloud_private_key, settings.google_cloud_private_key)
    if client_email and gcp_key:
        bundles["google_cloud"] = GoogleCloudCredentials(
            client_email=client_email,
            private_key=_pem(gcp_key),
            organization_id=settings.google_cloud_organization_id,
            billing_account_id=settings.google_cloud_billing_account_id,
            enable_apis=tuple(settings.google_cloud_enable_apis),
        )

    cloudflare_token = _first(creds.cloudflare_token, settings.cloudflare_token)
    if cloudflare_token:
        bundles["cloudflare"] = CloudflareCredentials(api_token=cloudflare_token)

    return bundles


def resolve(
    request: DeploymentRequest,
    settings: Settings,
    catalogue: TemplateCatalogue | None = None,
) -> DeploymentConfig:
    """Validate a request and build its deployment configuration.

    Raises:
        MissingConfigurationError: listing every missing or malformed field
    """
    catalogue = catalogue or get_template_catalogue()
    problems = _Problems()

    project_name = request.project_name.strip()
    if not project_name:
        problems.add("project_name", "missing")
    elif len(project_name) > PROJECT_NAME_MAX_LENGTH:
        problems.add("project_name", f"longer than {PROJECT_NAME_MAX_LENGTH} characters")
    elif not PROJECT_NAME_PATTERN.match(project_name):
        problems.add(
            "project_name",
            "must be lowercase letters, digits and hyphens, starting with a letter or digit",
        )

    description = request.description.strip()
    if not description:
        problems.add("description", "missing")

    if request.template not in catalogue:
        problems.add("template", f"unknown template, expected one of: {', '.join(catalogue.ids())}")

    domain = request.domain.strip().lower() if request.domain else None
    if domain and not HOSTNAME_PATTERN.match(domain):
        problems.add("domain", "not a valid hostname")
    if request.features.custom_domain and not domain:
        problems.add("domain", "required when custom_domain is enabled")

    github = _resolve_github(request, settings, problems)

    vercel_token = _first(request.credentials.vercel_token, settings.vercel_token)
    if not vercel_token:
        problems.add("vercel_token", "missing", "VERCEL_TOKEN")

    problems.raise_if_any()

    return DeploymentConfig(
        project_name=project_name,
        description=description,
        template=request.template,
        private=request.private if request.private is not None else settings.github_private_repos,
        domain=domain,
        features=request.features,
        github=github,
        vercel=VercelCredentials(
            token=vercel_token,
            team_id=_first(request.credentials.vercel_team_id, settings.vercel_team_id),
        ),
        **_resolve_optional(request, settings),
    )

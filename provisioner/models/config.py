"""Deployment request and resolved configuration models."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class GitHubTokenCredentials(BaseModel):
    """Personal access token credentials."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["token"] = "token"
    token: str
    owner: str
    # Create repositories under an organization instead of the token's user
    owner_is_org: bool = False


class GitHubAppCredentials(BaseModel):
    """GitHub App installation credentials."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["app"] = "app"
    app_id: str
    private_key: str
    installation_id: str
    owner: str
    # Create repositories under an organization instead of the installing user
    owner_is_org: bool = False


GitHubCredentials = Annotated[
    GitHubTokenCredentials | GitHubAppCredentials,
    Field(discriminator="kind"),
]


class VercelCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    team_id: str | None = None


class AtlasCredentials(BaseModel):
    """MongoDB Atlas programmatic API key plus cluster placement."""

    model_config = ConfigDict(frozen=True)

    public_key: str
    private_key: str
    org_id: str
    region: str = "US_EAST_1"
    tier: str = "M10"
    provider: Literal["AWS", "GCP", "AZURE"] = "AWS"


class ClerkCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    secret_key: str


class GoogleCloudCredentials(BaseModel):
    """Service account credentials and project placement."""

    model_config = ConfigDict(frozen=True)

    client_email: str
    private_key: str
    organization_id: str | None = None
    billing_account_id: str | None = None
    enable_apis: tuple[str, ...] = ()


class CloudflareCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_token: str


class FeatureToggles(BaseModel):
    """Which optional capabilities the caller wants.

    A step runs only when its toggle is on and its credentials resolve.
    """

    model_config = ConfigDict(frozen=True)

    database: bool = True
    identity: bool = True
    cloud: bool = True
    custom_domain: bool = False


class CredentialOverrides(BaseModel):
    """Per-request credentials. Any field left out falls back to configuration."""

    github_token: str | None = None
    github_owner: str | None = None
    github_app_id: str | None = None
    github_private_key: str | None = None
    github_installation_id: str | None = None
    github_owner_is_org: bool | None = None

    vercel_token: str | None = None
    vercel_team_id: str | None = None

    mongodb_api_key: str | None = None
    mongodb_private_key: str | None = None
    mongodb_org_id: str | None = None
    mongodb_region: str | None = None
    mongodb_tier: str | None = None

    clerk_secret_key: str | None = None

    google_cloud_client_email: str | None = None
    google_cloud_private_key: str | None = None

    cloudflare_token: str | None = None


class DeploymentRequest(BaseModel):
    """Raw payload submitted by the console."""

    project_name: str = ""
    description: str = ""
    template: str = "minimal"
    private: bool | None = None
    domain: str | None = None
    features: FeatureToggles = Field(default_factory=FeatureToggles)
    credentials: CredentialOverrides = Field(default_factory=CredentialOverrides)


class DeploymentConfig(BaseModel):
    """Validated, immutable input to one deployment."""

    model_config = ConfigDict(frozen=True)

    project_name: str
    description: str
    template: str
    private: bool = True
    domain: str | None = None
    features: FeatureToggles = Field(default_factory=FeatureToggles)

    github: GitHubCredentials
    vercel: VercelCredentials
    atlas: AtlasCredentials | None = None
    clerk: ClerkCredentials | None = None
    google_cloud: GoogleCloudCredentials | None = None
    cloudflare: CloudflareCredentials | None = None

    @property
    def custom_domain(self) -> str | None:
        """The domain to attach, if the caller asked for one."""
        if self.features.custom_domain and self.domain:
            return self.domain
        return None

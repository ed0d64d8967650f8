"""Data models for the provisioner."""

from provisioner.models.config import (
    AtlasCredentials,
    ClerkCredentials,
    CloudflareCredentials,
    CredentialOverrides,
    DeploymentConfig,
    DeploymentRequest,
    FeatureToggles,
    GitHubAppCredentials,
    GitHubCredentials,
    GitHubTokenCredentials,
    GoogleCloudCredentials,
    VercelCredentials,
)
from provisioner.models.deployment import (
    DEPLOYMENT_EVENT_STEP,
    CloudResources,
    DatabaseResources,
    DeploymentRecord,
    DeploymentResources,
    DeploymentStatus,
    HostingResources,
    IdentityResources,
    ProgressEvent,
    RepositoryResources,
    Step,
    StepId,
    StepStatus,
)

__all__ = [
    # Config
    "AtlasCredentials",
    "ClerkCredentials",
    "CloudflareCredentials",
    "CredentialOverrides",
    "DeploymentConfig",
    "DeploymentRequest",
    "FeatureToggles",
    "GitHubAppCredentials",
    "GitHubCredentials",
    "GitHubTokenCredentials",
    "GoogleCloudCredentials",
    "VercelCredentials",
    # Deployment
    "DEPLOYMENT_EVENT_STEP",
    "CloudResources",
    "DatabaseResources",
    "DeploymentRecord",
    "DeploymentResources",
    "DeploymentStatus",
    "HostingResources",
    "IdentityResources",
    "ProgressEvent",
    "RepositoryResources",
    "Step",
    "StepId",
    "StepStatus",
]

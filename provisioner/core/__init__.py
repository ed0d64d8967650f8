"""Core functionality for the provisioner."""

from provisioner.core.exceptions import (
    DeploymentConflictError,
    DeploymentNotFoundError,
    InvalidStepTransitionError,
    MissingConfigurationError,
    ProviderError,
    ProviderRequestError,
    ProvisionerError,
    ProvisioningFailedError,
    ProvisioningTimeoutError,
    ResourceAlreadySetError,
    TemplateNotFoundError,
    ValidationError,
)

__all__ = [
    "DeploymentConflictError",
    "DeploymentNotFoundError",
    "InvalidStepTransitionError",
    "MissingConfigurationError",
    "ProviderError",
    "ProviderRequestError",
    "ProvisionerError",
    "ProvisioningFailedError",
    "ProvisioningTimeoutError",
    "ResourceAlreadySetError",
    "TemplateNotFoundError",
    "ValidationError",
]

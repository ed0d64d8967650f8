"""Custom exceptions for the provisioner."""

from typing import Any


class ProvisionerError(Exception):
    """Base exception for the provisioner."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ProvisionerError):
    """A deployment request is malformed."""

    status_code = 422


class MissingConfigurationError(ValidationError):
    """Required configuration is absent or invalid.

    Carries every problem found, not just the first, so the caller can
    fix the whole request in one round trip.
    """

    def __init__(self, fields: list[dict[str, Any]]):
        names = ", ".join(f["field"] for f in fields)
        super().__init__(
            f"Missing or invalid configuration: {names}",
            {"fields": fields},
        )
        self.fields = fields


class DeploymentNotFoundError(ProvisionerError):
    """Deployment not found."""

    status_code = 404

    def __init__(self, deployment_id: str):
        super().__init__(
            f"Deployment not found: {deployment_id}",
            {"deployment_id": deployment_id},
        )


class DeploymentConflictError(ProvisionerError):
    """The requested action does not apply to the deployment's current state."""

    status_code = 409


class InvalidStepTransitionError(ProvisionerError):
    """A step status update would move the step backwards."""

    def __init__(self, step_id: str, current: str, requested: str):
        super().__init__(
            f"Step '{step_id}' cannot move from '{current}' to '{requested}'",
            {"step_id": step_id, "current": current, "requested": requested},
        )


class ResourceAlreadySetError(ProvisionerError):
    """A resource section was already written for this deployment."""

    def __init__(self, section: str):
        super().__init__(
            f"Resources for '{section}' are already recorded",
            {"section": section},
        )


class ProviderError(ProvisionerError):
    """Base class for failures talking to an external provider."""

    status_code = 502

    def __init__(self, provider: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, {"provider": provider, **(details or {})})
        self.provider = provider


class ProviderRequestError(ProviderError):
    """A provider call returned a non-success response or never got one."""

    def __init__(self, provider: str, http_status: int | None, message: str):
        status_text = http_status if http_status is not None else "no response"
        super().__init__(
            provider,
            f"{provider} API error ({status_text}): {message}",
            {"http_status": http_status},
        )
        self.http_status = http_status


class ProvisioningFailedError(ProviderError):
    """A polled resource reached a terminal failure state."""

    def __init__(self, provider: str, resource_state: str):
        super().__init__(
            provider,
            f"{provider} resource entered failure state '{resource_state}'",
            {"resource_state": resource_state},
        )
        self.resource_state = resource_state


class ProvisioningTimeoutError(ProviderError):
    """A polled resource did not become ready before the deadline."""

    def __init__(self, provider: str, elapsed: float):
        super().__init__(
            provider,
            f"{provider} resource not ready after {elapsed:.1f}s",
            {"elapsed": elapsed},
        )
        self.elapsed = elapsed


class TemplateNotFoundError(ProvisionerError):
    """No starter template with that id."""

    status_code = 404

    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}", {"template_id": template_id})

"""Deployment record, step and progress event models."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from provisioner.core.exceptions import InvalidStepTransitionError, ResourceAlreadySetError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_deployment_id() -> str:
    """Generate a globally unique deployment id."""
    return f"dep_{uuid4().hex}"


class DeploymentStatus(str, Enum):
    """Overall deployment status."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.COMPLETED, DeploymentStatus.FAILED)


class StepStatus(str, Enum):
    """Individual step status."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.ERROR, StepStatus.SKIPPED)


# Allowed forward moves; terminal statuses have none
STEP_TRANSITIONS: dict[StepStatus, set[StepStatus]] = {
    StepStatus.PENDING: {StepStatus.IN_PROGRESS, StepStatus.SKIPPED},
    StepStatus.IN_PROGRESS: {StepStatus.COMPLETED, StepStatus.ERROR},
    StepStatus.COMPLETED: set(),
    StepStatus.ERROR: set(),
    StepStatus.SKIPPED: set(),
}


class StepId(str, Enum):
    """The fixed set of provisioning steps, in execution order."""

    REPOSITORY = "repository"
    HOSTING = "hosting"
    DATABASE = "database"
    IDENTITY = "identity"
    CLOUD = "cloud"


# Step id used on events that describe the deployment as a whole
DEPLOYMENT_EVENT_STEP = "deployment"


class Step(BaseModel):
    """One unit of provisioning work against one provider."""

    id: StepId
    label: str
    required: bool = False
    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    message: str | None = None
    error: str | None = None
    error_type: str | None = None

    def apply(self, patch: dict[str, Any]) -> None:
        """Apply a field patch, refusing status regressions."""
        requested = patch.get("status")
        if requested is not None:
            requested = StepStatus(requested)
            if requested != self.status and requested not in STEP_TRANSITIONS[self.status]:
                raise InvalidStepTransitionError(
                    self.id.value, self.status.value, requested.value
                )
            now = utcnow()
            if requested == StepStatus.IN_PROGRESS and self.started_at is None:
                self.started_at = now
            elif requested.is_terminal and self.completed_at is None:
                self.completed_at = now
                if self.started_at:
                    self.duration_ms = int(
                        (now - self.started_at).total_seconds() * 1000
                    )
            self.status = requested

        for key, value in patch.items():
            if key in ("status", "id"):
                continue
            setattr(self, key, value)


class RepositoryResources(BaseModel):
    """What the repository step produced."""

    url: str
    clone_url: str
    full_name: str
    default_branch: str = "main"


class HostingResources(BaseModel):
    """What the hosting step produced."""

    project_id: str
    deployment_id: str
    url: str
    domain: str | None = None


class DatabaseResources(BaseModel):
    """What the database step produced."""

    group_id: str
    cluster_id: str
    cluster_name: str
    database_name: str
    username: str
    connection_string: str


class IdentityResources(BaseModel):
    """What the identity step produced."""

    application_id: str
    publishable_key: str
    secret_key: str
    home_url: str


class CloudResources(BaseModel):
    """What the cloud project step produced."""

    project_id: str
    project_number: str | None = None
    enabled_apis: list[str] = Field(default_factory=list)


class DeploymentResources(BaseModel):
    """Resources accumulated across steps. Each section is written once."""

    repository: RepositoryResources | None = None
    hosting: HostingResources | None = None
    database: DatabaseResources | None = None
    identity: IdentityResources | None = None
    cloud: CloudResources | None = None

    def contribute(self, section: StepId | str, value: BaseModel) -> None:
        """Record a step's output, refusing to overwrite an earlier one."""
        name = section.value if isinstance(section, StepId) else section
        if name not in type(self).model_fields:
            raise ValueError(f"Unknown resource section: {name}")
        if getattr(self, name) is not None:
            raise ResourceAlreadySetError(name)
        setattr(self, name, value)


class DeploymentRecord(BaseModel):
    """The authoritative record of one deployment attempt."""

    deployment_id: str = Field(default_factory=new_deployment_id)

    # Denormalized project identity
    project_name: str
    description: str
    template: str
    domain: str | None = None

    status: DeploymentStatus = DeploymentStatus.PENDING
    steps: list[Step] = Field(default_factory=list)
    resources: DeploymentResources = Field(default_factory=DeploymentResources)

    # Error tracking
    error: str | None = None
    error_step: str | None = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    def step(self, step_id: StepId | str) -> Step:
        """Get a step by id."""
        step_id = StepId(step_id)
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id.value)


class ProgressEvent(BaseModel):
    """A step-status transition. Observational only; the record is authoritative."""

    deployment_id: str
    step_id: str
    status: str
    message: str | None = None
    data: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        """Whether this event closes the deployment's stream."""
        return self.step_id == DEPLOYMENT_EVENT_STEP and self.status in (
            DeploymentStatus.COMPLETED.value,
            DeploymentStatus.FAILED.value,
        )

    def to_line(self) -> str:
        """Serialize as one line of JSON."""
        return json.dumps(self.model_dump(mode="json"), separators=(",", ":"))

"""In-memory deployment record store."""

from functools import lru_cache
from typing import Any

from pydantic import BaseModel

from provisioner.core.exceptions import DeploymentConflictError, DeploymentNotFoundError
from provisioner.models.deployment import (
    DeploymentRecord,
    DeploymentStatus,
    Step,
    StepId,
    utcnow,
)

# Fields owned by dedicated methods, never by update_fields
_PROTECTED_FIELDS = {"deployment_id", "steps", "resources", "created_at"}


class DeploymentStore:
    """Holds one record per deployment, keyed by deployment id.

    Readers get deep copies, so nothing outside the store can change a
    stored record and two reads with no write in between are identical.
    Records are never deleted here; retention is someone else's job.

    Note: For production, this should be backed by a database.
    """

    def __init__(self):
        self._records: dict[str, DeploymentRecord] = {}

    async def create(self, record: DeploymentRecord) -> DeploymentRecord:
        """Store a new record."""
        if record.deployment_id in self._records:
            raise DeploymentConflictError(
                f"Deployment already exists: {record.deployment_id}",
                {"deployment_id": record.deployment_id},
            )
        self._records[record.deployment_id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def get(self, deployment_id: str) -> DeploymentRecord:
        """Get a record by id."""
        return self._get(deployment_id).model_copy(deep=True)

    async def exists(self, deployment_id: str) -> bool:
        return deployment_id in self._records

    async def update_step(
        self, deployment_id: str, step_id: StepId | str, patch: dict[str, Any]
    ) -> Step:
        """Patch one step. Status changes must move forward."""
        record = self._get(deployment_id)
        step = record.step(step_id)
        step.apply(patch)
        record.updated_at = utcnow()
        return step.model_copy(deep=True)

    async def update_fields(self, deployment_id: str, patch: dict[str, Any]) -> DeploymentRecord:
        """Patch top-level fields. A terminal deployment status is final."""
        record = self._get(deployment_id)
        protected = _PROTECTED_FIELDS.intersection(patch)
        if protected:
            raise ValueError(f"Cannot patch {', '.join(sorted(protected))} directly")

        requested = patch.get("status")
        if requested is not None:
            requested = DeploymentStatus(requested)
            if record.status.is_terminal and requested != record.status:
                raise DeploymentConflictError(
                    f"Deployment {deployment_id} is already {record.status.value}",
                    {"deployment_id": deployment_id, "status": record.status.value},
                )
            patch = {**patch, "status": requested}

        for key, value in patch.items():
            setattr(record, key, value)
        record.updated_at = utcnow()
        return record.model_copy(deep=True)

    async def add_resources(
        self, deployment_id: str, section: StepId | str, value: BaseModel
    ) -> None:
        """Record a step's output. Each section is written once."""
        record = self._get(deployment_id)
        record.resources.contribute(section, value.model_copy(deep=True))
        record.updated_at = utcnow()

    async def list_deployments(
        self,
        status: DeploymentStatus | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[DeploymentRecord], int]:
        """List records, newest first, with optional status filtering."""
        records = list(self._records.values())

        if status:
            records = [r for r in records if r.status == status]

        records.sort(key=lambda r: r.created_at, reverse=True)

        total = len(records)
        records = records[offset : offset + limit]

        return [r.model_copy(deep=True) for r in records], total

    def _get(self, deployment_id: str) -> DeploymentRecord:
        record = self._records.get(deployment_id)
        if record is None:
            raise DeploymentNotFoundError(deployment_id)
        return record


@lru_cache
def get_deployment_store() -> DeploymentStore:
    """Get the deployment store singleton."""
    return DeploymentStore()

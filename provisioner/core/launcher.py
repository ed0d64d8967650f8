"""Starts deployments as background tasks and keeps track of them."""

import asyncio
from functools import lru_cache

from provisioner.core.exceptions import DeploymentConflictError
from provisioner.core.orchestrator import DeploymentOrchestrator, initial_steps
from provisioner.core.store import DeploymentStore, get_deployment_store
from provisioner.models.config import DeploymentConfig
from provisioner.models.deployment import DeploymentRecord
from provisioner.utils.logging import get_logger


class DeploymentLauncher:
    """Creates the record for a deployment and runs its orchestrator as a task.

    The submitting caller only gets the record back; how the run ends is
    visible through the store and the progress channel.
    """

    def __init__(
        self,
        store: DeploymentStore | None = None,
        orchestrator: DeploymentOrchestrator | None = None,
    ):
        self.store = store or get_deployment_store()
        self.orchestrator = orchestrator or DeploymentOrchestrator(store=self.store)
        self.logger = get_logger("launcher")
        self._tasks: dict[str, asyncio.Task[DeploymentRecord]] = {}

    async def submit(self, config: DeploymentConfig) -> DeploymentRecord:
        """Create a pending record and start provisioning it."""
        record = await self.store.create(
            DeploymentRecord(
                project_name=config.project_name,
                description=config.description,
                template=config.template,
                domain=config.domain,
                steps=initial_steps(),
            )
        )
        task = asyncio.create_task(
            self.orchestrator.run(record.deployment_id, config),
            name=f"deployment-{record.deployment_id}",
        )
        self._tasks[record.deployment_id] = task
        task.add_done_callback(lambda t, did=record.deployment_id: self._on_done(did, t))

        self.logger.info(
            "launcher.deployment.submitted",
            deployment_id=record.deployment_id,
            project=config.project_name,
            template=config.template,
        )
        return record

    async def cancel(self, deployment_id: str) -> bool:
        """Cancel a running deployment.

        Returns True once the task has stopped. Raises DeploymentConflictError
        if the deployment already reached a terminal status.
        """
        record = await self.store.get(deployment_id)
        task = self._tasks.get(deployment_id)
        if record.status.is_terminal or task is None or task.done():
            raise DeploymentConflictError(
                f"Deployment {deployment_id} is not running",
                {"deployment_id": deployment_id, "status": record.status.value},
            )

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self.logger.info("launcher.deployment.cancelled", deployment_id=deployment_id)
        return True

    def task(self, deployment_id: str) -> asyncio.Task[DeploymentRecord] | None:
        return self._tasks.get(deployment_id)

    @property
    def running(self) -> list[str]:
        return [did for did, task in self._tasks.items() if not task.done()]

    async def wait(self, deployment_id: str) -> DeploymentRecord:
        """Wait for a deployment's task to finish and return its final record."""
        task = self._tasks.get(deployment_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.store.get(deployment_id)

    async def shutdown(self) -> None:
        """Cancel every running deployment."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_done(self, deployment_id: str, task: asyncio.Task[DeploymentRecord]) -> None:
        self._tasks.pop(deployment_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(
                "launcher.deployment.crashed",
                deployment_id=deployment_id,
                error=str(exc),
            )


@lru_cache
def get_launcher() -> DeploymentLauncher:
    """Get the deployment launcher singleton."""
    return DeploymentLauncher()

"""Exceptions raised by the deployment orchestrator."""

from __future__ import annotations


class RunnerDeployerError(RuntimeError):
    """Base class for orchestrator errors."""

    pass


class DeploymentNotFoundError(RunnerDeployerError):
    """Raised when a deployment id is not registered in the store."""

    def __init__(self, deployment_id: str) -> None:
        super().__init__(f"Unknown deployment: {deployment_id}")
        self.deployment_id = deployment_id


class DeploymentStateError(RunnerDeployerError):
    """Raised when a deployment cannot be started from its current state."""

    pass

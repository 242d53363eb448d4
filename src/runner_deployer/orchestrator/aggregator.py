"""Deployment status aggregation."""

from __future__ import annotations

from typing import Iterable

from ..models import DeploymentStatus, DeploymentStep, StepStatus


def aggregate(steps: Iterable[DeploymentStep]) -> DeploymentStatus:
    """Derive the deployment status from a snapshot of step statuses.

    - FAILED if any step failed
    - APPLIED once every step is terminal and none failed
    - RUNNING otherwise

    The steps are only read, never modified.
    """
    statuses = [step.status for step in steps]
    if any(status == StepStatus.FAILED for status in statuses):
        return DeploymentStatus.FAILED
    if all(status.is_terminal for status in statuses):
        return DeploymentStatus.APPLIED
    return DeploymentStatus.RUNNING

"""Orchestrator module for order-based deployment execution.

This module provides:
- DeploymentOrchestrator: Runs the steps of a deployment strictly in order
- StepExecutor: Dispatches one step as a remote order and records its outcome
- OrderPoller/CancellationToken: Cooperative, cancellable completion polling
- aggregate: Derives the deployment status from its step statuses
"""

from .aggregator import aggregate
from .polling import CancellationToken, OrderPoller
from .step_executor import StepExecutor, build_order_request
from .orchestrator import FAILURE_MESSAGE, DeploymentOrchestrator, DeploymentRun

__all__ = [
    "aggregate",
    "CancellationToken",
    "OrderPoller",
    "StepExecutor",
    "build_order_request",
    "FAILURE_MESSAGE",
    "DeploymentOrchestrator",
    "DeploymentRun",
]

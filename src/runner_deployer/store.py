"""In-process store holding the authoritative deployment state."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .errors import DeploymentNotFoundError
from .models import Deployment, DeploymentStep

logger = logging.getLogger(__name__)


def load_deployment_file(path: Union[str, Path]) -> Tuple[Deployment, List[DeploymentStep]]:
    """Read a ``{"deployment": ..., "steps": [...]}`` document."""
    with Path(path).open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    deployment = Deployment.from_dict(data["deployment"])
    steps = [DeploymentStep.from_dict(item) for item in data.get("steps", [])]
    return deployment, steps


def save_deployment_file(
    path: Union[str, Path],
    deployment: Deployment,
    steps: List[DeploymentStep],
) -> None:
    """Write a deployment and its steps as JSON."""
    document = {
        "deployment": deployment.to_dict(),
        "steps": [step.to_dict() for step in steps],
    }
    with Path(path).open("w", encoding="utf-8") as handle:
        json.dump(document, handle, indent=2, ensure_ascii=False)


@dataclass
class _Record:
    deployment: Deployment
    steps: List[DeploymentStep]
    path: Optional[Path] = None


class DeploymentStore:
    """
    部署状态存储

    编排器是唯一的写入方，直接修改 live 对象；
    展示层只通过 get_deployment / get_steps 读取深拷贝快照。
    """

    def __init__(self, snapshot_dir: Optional[str] = None):
        self.snapshot_dir = Path(snapshot_dir) if snapshot_dir else None
        if self.snapshot_dir:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        self._records: Dict[str, _Record] = {}

    def add(
        self,
        deployment: Deployment,
        steps: List[DeploymentStep],
        path: Optional[Union[str, Path]] = None,
    ) -> None:
        """
        Register a deployment with its pre-populated steps.

        Args:
            deployment: The deployment, normally in ``ready`` state
            steps: Its steps; ``step_order`` must be unique
            path: Optional JSON file kept in sync with every change

        Raises:
            ValueError: If two steps share a ``step_order``
        """
        orders = [step.step_order for step in steps]
        if len(orders) != len(set(orders)):
            raise ValueError(f"Deployment {deployment.id} has duplicate step_order values")

        ordered = sorted(steps, key=lambda s: s.step_order)
        record_path = Path(path) if path else None
        if record_path is None and self.snapshot_dir:
            record_path = self.snapshot_dir / f"deployment_{deployment.id}.json"
        self._records[deployment.id] = _Record(deployment=deployment, steps=ordered, path=record_path)
        self.save(deployment.id)

    def _record(self, deployment_id: str) -> _Record:
        record = self._records.get(deployment_id)
        if record is None:
            raise DeploymentNotFoundError(deployment_id)
        return record

    def __contains__(self, deployment_id: object) -> bool:
        return deployment_id in self._records

    def get_deployment(self, deployment_id: str) -> Deployment:
        """Return a detached copy of the deployment."""
        return copy.deepcopy(self._record(deployment_id).deployment)

    def get_steps(self, deployment_id: str) -> List[DeploymentStep]:
        """Return detached copies of the steps, ordered by ``step_order``."""
        return copy.deepcopy(self._record(deployment_id).steps)

    def list_deployments(self) -> List[Deployment]:
        return [copy.deepcopy(record.deployment) for record in self._records.values()]

    def live(self, deployment_id: str) -> Tuple[Deployment, List[DeploymentStep]]:
        """Return the mutable objects; only the orchestrator writes through these."""
        record = self._record(deployment_id)
        return record.deployment, record.steps

    def save(self, deployment_id: str) -> None:
        """Persist the current state if a file is attached to the deployment."""
        record = self._record(deployment_id)
        if record.path is None:
            return
        try:
            save_deployment_file(record.path, record.deployment, record.steps)
        except OSError as exc:
            # 快照写失败不影响编排本身
            logger.warning("Failed to write deployment snapshot %s: %s", record.path, exc)

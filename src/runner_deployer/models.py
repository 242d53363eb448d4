"""Data models for deployments, deployment steps and remote orders."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # JSON 里可能带 "Z" 后缀
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class DeploymentStatus(str, Enum):
    """部署整体状态"""
    READY = "ready"
    RUNNING = "running"
    APPLIED = "applied"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.APPLIED, DeploymentStatus.FAILED)


class StepStatus(str, Enum):
    """步骤执行状态"""
    PENDING = "pending"
    RUNNING = "running"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.APPLIED, StepStatus.FAILED, StepStatus.SKIPPED)


class OrderStatus(str, Enum):
    """远程 order 状态（由远程执行服务维护，只读）"""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.SUCCEEDED, OrderStatus.FAILED)


@dataclass
class Deployment:
    """A single orchestration run targeting one runner."""

    id: str
    runner_id: str
    app_name: str
    infrastructure_id: Optional[str] = None
    status: DeploymentStatus = DeploymentStatus.READY
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    # 描述性字段，不参与编排
    repo_url: Optional[str] = None
    branch: Optional[str] = None
    domain: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "runner_id": self.runner_id,
            "infrastructure_id": self.infrastructure_id,
            "app_name": self.app_name,
            "status": self.status.value,
            "started_at": _format_ts(self.started_at),
            "completed_at": _format_ts(self.completed_at),
            "error_message": self.error_message,
            "repo_url": self.repo_url,
            "branch": self.branch,
            "domain": self.domain,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deployment":
        return cls(
            id=str(data["id"]),
            runner_id=str(data["runner_id"]),
            app_name=data.get("app_name", ""),
            infrastructure_id=data.get("infrastructure_id"),
            status=DeploymentStatus(data.get("status", DeploymentStatus.READY.value)),
            started_at=_parse_ts(data.get("started_at")),
            completed_at=_parse_ts(data.get("completed_at")),
            error_message=data.get("error_message"),
            repo_url=data.get("repo_url"),
            branch=data.get("branch"),
            domain=data.get("domain"),
        )


@dataclass
class DeploymentStep:
    """One ordered unit of remote work inside a deployment."""

    step_order: int
    step_name: str
    step_type: str
    command: str
    id: Optional[str] = None
    status: StepStatus = StepStatus.PENDING
    order_id: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    exit_code: Optional[int] = None
    stdout_tail: Optional[str] = None
    stderr_tail: Optional[str] = None
    error_message: Optional[str] = None

    def reset(self) -> None:
        """Return the step to ``pending`` and drop everything a previous run recorded."""
        self.status = StepStatus.PENDING
        self.order_id = None
        self.started_at = None
        self.finished_at = None
        self.exit_code = None
        self.stdout_tail = None
        self.stderr_tail = None
        self.error_message = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "step_order": self.step_order,
            "step_name": self.step_name,
            "step_type": self.step_type,
            "command": self.command,
            "status": self.status.value,
            "order_id": self.order_id,
            "started_at": _format_ts(self.started_at),
            "finished_at": _format_ts(self.finished_at),
            "exit_code": self.exit_code,
            "stdout_tail": self.stdout_tail,
            "stderr_tail": self.stderr_tail,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentStep":
        return cls(
            id=data.get("id"),
            step_order=int(data["step_order"]),
            step_name=data.get("step_name", ""),
            step_type=data.get("step_type", "custom"),
            command=data.get("command", ""),
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            order_id=data.get("order_id"),
            started_at=_parse_ts(data.get("started_at")),
            finished_at=_parse_ts(data.get("finished_at")),
            exit_code=data.get("exit_code"),
            stdout_tail=data.get("stdout_tail"),
            stderr_tail=data.get("stderr_tail"),
            error_message=data.get("error_message"),
        )


@dataclass
class OrderRequest:
    """Payload sent to the remote execution service to queue a command."""

    runner_id: str
    command: str
    name: str
    description: Optional[str] = None
    category: str = "installation"
    infrastructure_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "runner_id": self.runner_id,
            "category": self.category,
            "name": self.name,
            "description": self.description,
            "command": self.command,
        }
        if self.infrastructure_id:
            payload["infrastructure_id"] = self.infrastructure_id
        return payload


@dataclass
class Order:
    """Read-only view of a remote work item."""

    id: str
    status: OrderStatus
    exit_code: Optional[int] = None
    stdout_tail: Optional[str] = None
    stderr_tail: Optional[str] = None
    error_message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

"""Deployment planning: turns an application request into ordered steps."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .models import Deployment, DeploymentStatus, DeploymentStep

APPS_ROOT = "/opt/ikoma/apps"

DEPLOY_TYPES = ("nodejs", "docker_compose", "static_site", "custom")
HEALTHCHECK_TYPES = ("http", "tcp", "command")


@dataclass
class DeploymentRequest:
    """Application deployment request (what the operator fills in)."""

    app_name: str
    repo_url: str
    runner_id: str
    branch: str = "main"
    deploy_type: str = "nodejs"  # nodejs | docker_compose | static_site | custom
    infrastructure_id: Optional[str] = None
    port: int = 3000
    start_command: Optional[str] = None
    env_vars: Dict[str, str] = field(default_factory=dict)
    healthcheck_type: str = "http"  # http | tcp | command
    healthcheck_value: Optional[str] = None
    expose_via_caddy: bool = False
    domain: Optional[str] = None

    def validate(self) -> None:
        if not self.app_name:
            raise ValueError("app_name is required")
        if not self.repo_url:
            raise ValueError("repo_url is required")
        if not self.runner_id:
            raise ValueError("runner_id is required")
        if self.deploy_type not in DEPLOY_TYPES:
            raise ValueError(f"Unsupported deploy_type: {self.deploy_type}")
        if self.healthcheck_type not in HEALTHCHECK_TYPES:
            raise ValueError(f"Unsupported healthcheck_type: {self.healthcheck_type}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentRequest":
        if not isinstance(data, dict):
            raise ValueError("application request must be a JSON object")
        missing = [name for name in ("app_name", "repo_url", "runner_id") if name not in data]
        if missing:
            raise ValueError(f"missing required field(s): {', '.join(missing)}")
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})


def working_dir_for(app_name: str) -> str:
    return f"{APPS_ROOT}/{app_name}"


def _healthcheck_command(request: DeploymentRequest) -> str:
    port = request.port or 3000
    if request.healthcheck_type == "tcp":
        return f"sleep 5 && for i in 1 2 3 4 5; do nc -z localhost {port} && exit 0; sleep 3; done; exit 1"
    if request.healthcheck_type == "command":
        return request.healthcheck_value or "exit 0"
    path = request.healthcheck_value or "/"
    return (
        f"sleep 5 && for i in 1 2 3 4 5; do curl -sf http://localhost:{port}{path} && exit 0; "
        f"sleep 3; done; exit 1"
    )


def _type_specific_steps(request: DeploymentRequest, workdir: str) -> List[Tuple[str, str, str]]:
    app = request.app_name
    if request.deploy_type == "nodejs":
        start_cmd = request.start_command or "npm start"
        return [
            (
                "install_deps",
                "Install Dependencies",
                f"cd {workdir} && npm ci --production 2>/dev/null || npm install --production",
            ),
            (
                "build",
                "Build Application",
                f"cd {workdir} && if grep -q '\"build\"' package.json; then npm run build; "
                f"else echo \"No build script\"; fi",
            ),
            (
                "start",
                "Start Application",
                f"cd {workdir} && PORT={request.port or 3000} nohup {start_cmd} "
                f"> /var/log/{app}.log 2>&1 &",
            ),
        ]
    if request.deploy_type == "docker_compose":
        return [
            ("start", "Start Docker Compose", f"cd {workdir} && docker compose pull && docker compose up -d"),
        ]
    if request.deploy_type == "static_site":
        return [
            (
                "start",
                "Configure Static Server",
                f"mkdir -p /var/www/{app} && cp -r {workdir}/* /var/www/{app}/",
            ),
        ]
    # custom: 只保留通用步骤
    return []


def generate_deployment_steps(request: DeploymentRequest) -> List[DeploymentStep]:
    """
    根据部署类型生成步骤列表

    Args:
        request: 部署请求

    Returns:
        按 step_order 排列的 pending 步骤
    """
    request.validate()
    workdir = working_dir_for(request.app_name)
    port = request.port or 3000

    entries: List[Tuple[str, str, str]] = [
        (
            "clone_repo",
            "Clone Repository",
            f"rm -rf {workdir} && git clone --depth 1 --branch {request.branch} {request.repo_url} {workdir}",
        ),
        ("checkout", "Checkout Branch", f"cd {workdir} && git checkout {request.branch}"),
    ]

    if request.env_vars:
        env_content = "\n".join(f'{k}="{v}"' for k, v in request.env_vars.items())
        entries.append(
            (
                "env_write",
                "Write Environment Variables",
                f"cat > {workdir}/.env << 'ENVEOF'\n{env_content}\nENVEOF",
            )
        )

    entries.extend(_type_specific_steps(request, workdir))
    entries.append(("healthcheck", "Health Check", _healthcheck_command(request)))

    if request.expose_via_caddy and request.domain:
        entries.append(
            (
                "expose",
                "Configure Reverse Proxy",
                f"echo '{request.domain} {{\n  reverse_proxy localhost:{port}\n}}' >> /etc/caddy/Caddyfile "
                f"&& caddy reload --config /etc/caddy/Caddyfile",
            )
        )

    entries.append(
        (
            "finalize",
            "Finalize Deployment",
            f"echo '{{\"status\":\"deployed\",\"app\":\"{request.app_name}\",\"port\":{port},"
            f"\"working_dir\":\"{workdir}\"}}'",
        )
    )

    return [
        DeploymentStep(
            id=uuid.uuid4().hex,
            step_order=order,
            step_type=step_type,
            step_name=name,
            command=command,
        )
        for order, (step_type, name, command) in enumerate(entries, 1)
    ]


def create_deployment(request: DeploymentRequest) -> Tuple[Deployment, List[DeploymentStep]]:
    """Build a ``ready`` deployment and its generated steps."""
    steps = generate_deployment_steps(request)
    deployment = Deployment(
        id=uuid.uuid4().hex,
        runner_id=request.runner_id,
        infrastructure_id=request.infrastructure_id,
        app_name=request.app_name,
        status=DeploymentStatus.READY,
        repo_url=request.repo_url,
        branch=request.branch,
        domain=request.domain,
    )
    return deployment, steps

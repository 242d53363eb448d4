"""Tests for deployment step generation."""

import pytest

from runner_deployer.models import DeploymentStatus, StepStatus
from runner_deployer.planner import (
    DeploymentRequest,
    create_deployment,
    generate_deployment_steps,
    working_dir_for,
)


def _request(**overrides) -> DeploymentRequest:
    payload = {
        "app_name": "shop",
        "repo_url": "https://github.com/acme/shop.git",
        "runner_id": "runner-1",
        "branch": "release",
    }
    payload.update(overrides)
    return DeploymentRequest(**payload)


class TestGenerateDeploymentSteps:
    """Tests for generate_deployment_steps."""

    def test_nodejs_plan(self):
        steps = generate_deployment_steps(_request())

        assert [s.step_type for s in steps] == [
            "clone_repo",
            "checkout",
            "install_deps",
            "build",
            "start",
            "healthcheck",
            "finalize",
        ]
        assert [s.step_order for s in steps] == list(range(1, 8))
        assert all(s.status == StepStatus.PENDING for s in steps)
        assert len({s.id for s in steps}) == len(steps)

    def test_clone_uses_branch_and_working_dir(self):
        clone = generate_deployment_steps(_request())[0]

        assert working_dir_for("shop") == "/opt/ikoma/apps/shop"
        assert "--branch release" in clone.command
        assert clone.command.endswith("https://github.com/acme/shop.git /opt/ikoma/apps/shop")

    def test_env_vars_add_env_write_step(self):
        steps = generate_deployment_steps(_request(env_vars={"NODE_ENV": "production", "PORT": "4000"}))

        env_step = steps[2]
        assert env_step.step_type == "env_write"
        assert 'NODE_ENV="production"' in env_step.command
        assert 'PORT="4000"' in env_step.command

    def test_docker_compose_plan(self):
        steps = generate_deployment_steps(_request(deploy_type="docker_compose"))

        types = [s.step_type for s in steps]
        assert types == ["clone_repo", "checkout", "start", "healthcheck", "finalize"]
        assert "docker compose up -d" in steps[2].command

    def test_static_site_and_custom(self):
        static = generate_deployment_steps(_request(deploy_type="static_site"))
        custom = generate_deployment_steps(_request(deploy_type="custom"))

        assert "/var/www/shop" in static[2].command
        assert [s.step_type for s in custom] == ["clone_repo", "checkout", "healthcheck", "finalize"]

    def test_healthcheck_variants(self):
        http = generate_deployment_steps(_request(port=8080, healthcheck_value="/health"))
        tcp = generate_deployment_steps(_request(healthcheck_type="tcp", port=5432))
        command = generate_deployment_steps(_request(healthcheck_type="command", healthcheck_value="systemctl is-active shop"))

        assert "curl -sf http://localhost:8080/health" in http[-2].command
        assert "nc -z localhost 5432" in tcp[-2].command
        assert command[-2].command == "systemctl is-active shop"

    def test_reverse_proxy_requires_domain(self):
        without_domain = generate_deployment_steps(_request(expose_via_caddy=True))
        with_domain = generate_deployment_steps(_request(expose_via_caddy=True, domain="shop.example.com"))

        assert "expose" not in [s.step_type for s in without_domain]
        expose = next(s for s in with_domain if s.step_type == "expose")
        assert "shop.example.com {\n  reverse_proxy localhost:3000\n}" in expose.command
        assert with_domain[-1].step_type == "finalize"

    def test_invalid_request(self):
        with pytest.raises(ValueError):
            generate_deployment_steps(_request(deploy_type="kubernetes"))
        with pytest.raises(ValueError):
            generate_deployment_steps(_request(runner_id=""))


class TestCreateDeployment:
    """Tests for create_deployment."""

    def test_ready_deployment(self):
        deployment, steps = create_deployment(_request(infrastructure_id="infra-9", domain="shop.example.com"))

        assert deployment.status == DeploymentStatus.READY
        assert deployment.runner_id == "runner-1"
        assert deployment.infrastructure_id == "infra-9"
        assert deployment.app_name == "shop"
        assert deployment.started_at is None
        assert steps

    def test_from_dict_ignores_unknown_keys(self):
        request = DeploymentRequest.from_dict(
            {
                "app_name": "shop",
                "repo_url": "https://github.com/acme/shop.git",
                "runner_id": "runner-1",
                "created_by": "someone",
            }
        )
        assert request.branch == "main"
        assert request.deploy_type == "nodejs"

    def test_from_dict_missing_required_fields(self):
        with pytest.raises(ValueError, match="repo_url, runner_id"):
            DeploymentRequest.from_dict({"app_name": "shop"})

    def test_from_dict_rejects_non_object(self):
        with pytest.raises(ValueError):
            DeploymentRequest.from_dict(["shop"])

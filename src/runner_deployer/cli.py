"""Command-line interface for Runner-Deployer."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, load_config
from .errors import RunnerDeployerError
from .models import Deployment, DeploymentStatus, DeploymentStep, StepStatus
from .orchestrator import DeploymentOrchestrator
from .orders import OrdersAPIClient, RemoteExecutionClient
from .planner import DeploymentRequest, create_deployment
from .store import DeploymentStore, load_deployment_file, save_deployment_file
from .utils.logging import get_logger

logger = get_logger(__name__)

_STATUS_EMOJI = {
    "ready": "⏸️",
    "pending": "•",
    "running": "🔄",
    "applied": "✅",
    "failed": "❌",
    "skipped": "⏭️",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runner-deployer",
        description="Run multi-step application deployments on remote runners via the orders API.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser(
        "plan", help="Generate a deployment document from an application request"
    )
    plan_parser.add_argument(
        "--app-file", required=True, help="JSON file describing the application to deploy"
    )
    plan_parser.add_argument(
        "--output", "-o", default=None,
        help="Where to write the deployment document (default: deployment_<app>.json)",
    )

    run_parser = subparsers.add_parser(
        "run", help="Run (or relaunch) a deployment document"
    )
    run_parser.add_argument("--file", "-f", required=True, help="Deployment document")

    show_parser = subparsers.add_parser(
        "show", help="Show the status of a deployment document"
    )
    show_parser.add_argument("--file", "-f", required=True, help="Deployment document")
    show_parser.add_argument(
        "--summary", "-s", action="store_true",
        help="Show summary only (no stdout/stderr tails)"
    )

    return parser


def print_deployment(
    deployment: Deployment,
    steps: List[DeploymentStep],
    summary_only: bool = False,
) -> None:
    """Display a deployment and its steps."""
    status = deployment.status.value
    print(f"\n{'='*60}")
    print(f"📄 Deployment: {deployment.app_name} ({deployment.id})")
    print(f"{'='*60}")
    print(f"🖥️  Runner:     {deployment.runner_id}")
    if deployment.repo_url:
        print(f"🔗 Repository: {deployment.repo_url}")
    print(f"⏰ Started:    {deployment.started_at.isoformat() if deployment.started_at else 'N/A'}")
    print(f"⏱️  Completed:  {deployment.completed_at.isoformat() if deployment.completed_at else 'N/A'}")
    print(f"{_STATUS_EMOJI.get(status, '❓')} Status:     {status}")
    if deployment.error_message:
        print(f"⚠️  Error:      {deployment.error_message}")
    print(f"{'='*60}\n")

    for step in steps:
        icon = _STATUS_EMOJI.get(step.status.value, "❓")
        print(f"[{step.step_order}] {icon} {step.step_name} ({step.step_type}) - {step.status.value}")
        if step.exit_code is not None:
            print(f"    Exit: {step.exit_code}")
        if step.error_message:
            print(f"    📝 {step.error_message}")

        if summary_only:
            continue
        if step.stdout_tail:
            # 限制输出长度
            for line in step.stdout_tail.strip().split("\n")[-10:]:
                print(f"    │ {line[:100]}")
        if step.stderr_tail and step.status == StepStatus.FAILED:
            print("    ⚠️ stderr:")
            for line in step.stderr_tail.strip().split("\n")[-5:]:
                print(f"    │ {line[:100]}")
    print()


def handle_plan_command(args: argparse.Namespace) -> int:
    """Handle the plan subcommand."""
    app_file = Path(args.app_file)
    if not app_file.is_file():
        print(f"❌ Application file not found: {app_file}")
        return 1

    try:
        with app_file.open("r", encoding="utf-8") as handle:
            request = DeploymentRequest.from_dict(json.load(handle))
        deployment, steps = create_deployment(request)
    except ValueError as exc:
        print(f"❌ Invalid application request: {exc}")
        return 1

    output = Path(args.output) if args.output else Path(f"deployment_{request.app_name}.json")
    save_deployment_file(output, deployment, steps)

    print(f"📋 Planned {len(steps)} steps for {request.app_name}:")
    for step in steps:
        print(f"  {step.step_order}. [{step.step_type.upper()}] {step.step_name}")
    print(f"📄 Deployment written to: {output}")
    return 0


def handle_run_command(
    args: argparse.Namespace,
    config: AppConfig,
    client: Optional[RemoteExecutionClient] = None,
) -> int:
    """Handle the run subcommand."""
    target = Path(args.file)
    if not target.is_file():
        print(f"❌ Deployment file not found: {target}")
        return 1

    deployment, steps = load_deployment_file(target)
    store = DeploymentStore(snapshot_dir=config.orchestrator.snapshot_dir)
    try:
        # 进度直接写回原文件
        store.add(deployment, steps, path=target)
    except ValueError as exc:
        print(f"❌ Invalid deployment document: {exc}")
        return 1

    owns_client = client is None
    client = client or OrdersAPIClient(config.orders)
    orchestrator = DeploymentOrchestrator.from_config(client, store, config.orchestrator)

    try:
        try:
            run = orchestrator.start(deployment.id)
        except RunnerDeployerError as exc:
            print(f"❌ {exc}")
            return 1
        try:
            while not run.wait(0.5):
                pass
        except KeyboardInterrupt:
            print("\n⏹️ Interrupted, stopping polling...")
            run.cancel()
            run.wait()
    finally:
        if owns_client and isinstance(client, OrdersAPIClient):
            client.close()

    print_deployment(store.get_deployment(deployment.id), store.get_steps(deployment.id), summary_only=True)
    return 0 if run.result == DeploymentStatus.APPLIED else 1


def handle_show_command(args: argparse.Namespace) -> int:
    """Handle the show subcommand."""
    target = Path(args.file)
    if not target.is_file():
        print(f"❌ Deployment file not found: {target}")
        return 1
    deployment, steps = load_deployment_file(target)
    print_deployment(deployment, sorted(steps, key=lambda s: s.step_order), summary_only=args.summary)
    return 0


def dispatch_command(args: argparse.Namespace) -> int:
    if args.command == "plan":
        return handle_plan_command(args)

    if args.command == "show":
        return handle_show_command(args)

    if args.command == "run":
        config = load_config(args.config)
        return handle_run_command(args, config)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args)

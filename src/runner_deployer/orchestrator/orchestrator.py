"""Deployment orchestrator: runs the steps of a deployment in order."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, TYPE_CHECKING

from ..errors import DeploymentStateError
from ..models import DeploymentStatus, StepStatus, utcnow
from .aggregator import aggregate
from .polling import CancellationToken
from .step_executor import StepExecutor

if TYPE_CHECKING:
    from ..config import OrchestratorConfig
    from ..models import Deployment, DeploymentStep
    from ..orders import RemoteExecutionClient
    from ..store import DeploymentStore

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "One or more steps failed"

_STARTABLE = (DeploymentStatus.READY, DeploymentStatus.FAILED)


class DeploymentRun:
    """Handle for one in-flight deployment run."""

    def __init__(self, deployment_id: str, token: Optional[CancellationToken] = None):
        self.deployment_id = deployment_id
        self.token = token or CancellationToken()
        self.result: Optional[DeploymentStatus] = None
        self._thread: Optional[threading.Thread] = None
        self._finished = threading.Event()

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        self.token.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the run finishes; returns False if `timeout` elapsed first."""
        return self._finished.wait(timeout)


class DeploymentOrchestrator:
    """
    部署编排器

    按 step_order 依次执行部署步骤，任一步骤失败立即停止，
    后续步骤保持 pending。同一时刻每个部署最多只有一个步骤在执行。
    """

    def __init__(
        self,
        client: "RemoteExecutionClient",
        store: "DeploymentStore",
        poll_interval: float = 2.0,
        stall_warning_after: Optional[float] = None,
    ):
        self.client = client
        self.store = store
        self.poll_interval = poll_interval
        self.stall_warning_after = stall_warning_after

        self._runs: Dict[str, DeploymentRun] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        client: "RemoteExecutionClient",
        store: "DeploymentStore",
        config: "OrchestratorConfig",
    ) -> "DeploymentOrchestrator":
        return cls(
            client,
            store,
            poll_interval=config.poll_interval,
            stall_warning_after=config.stall_warning_after,
        )

    # ------------------------------------------------------------------
    # Read access for the presentation layer
    # ------------------------------------------------------------------

    def get_deployment(self, deployment_id: str) -> "Deployment":
        return self.store.get_deployment(deployment_id)

    def get_steps(self, deployment_id: str) -> List["DeploymentStep"]:
        return self.store.get_steps(deployment_id)

    def is_running(self, deployment_id: str) -> bool:
        run = self._runs.get(deployment_id)
        return run is not None and not run.done

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self, deployment_id: str) -> DeploymentRun:
        """
        启动部署（后台线程执行）

        失败的部署可以重新启动，会从第一个步骤重新执行。

        Raises:
            DeploymentNotFoundError: 部署不存在
            DeploymentStateError: 部署状态不允许启动，或已有运行中的实例
        """
        with self._lock:
            self._prepare(deployment_id)
            run = DeploymentRun(deployment_id)
            thread = threading.Thread(
                target=self._worker,
                args=(run,),
                name=f"deployment-{deployment_id}",
                daemon=True,
            )
            run._thread = thread
            self._runs[deployment_id] = run
        thread.start()
        return run

    def run(self, deployment_id: str) -> Optional[DeploymentStatus]:
        """Start the deployment and block until it settles or is cancelled.

        Returns the final deployment status, or None when cancelled.
        """
        handle = self.start(deployment_id)
        handle.wait()
        return handle.result

    def cancel(self, deployment_id: str) -> bool:
        """Cancel the live run of `deployment_id`; returns False if nothing was running."""
        run = self._runs.get(deployment_id)
        if run is None or run.done:
            return False
        logger.info("⏹️ Cancelling deployment %s", deployment_id)
        run.cancel()
        return True

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel every live run and wait for the workers to stop."""
        runs = list(self._runs.values())
        for run in runs:
            run.cancel()
        for run in runs:
            run.wait(timeout)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _prepare(self, deployment_id: str) -> None:
        deployment, steps = self.store.live(deployment_id)

        if self.is_running(deployment_id):
            raise DeploymentStateError(f"Deployment {deployment_id} is already running")

        # running 但没有存活的执行实例：上一次运行被取消或进程中断
        interrupted = deployment.status == DeploymentStatus.RUNNING
        if deployment.status not in _STARTABLE and not interrupted:
            raise DeploymentStateError(
                f"Deployment {deployment_id} cannot be started from status '{deployment.status.value}'"
            )

        # 重新启动总是从第一步开始
        for step in steps:
            step.reset()

        deployment.status = DeploymentStatus.RUNNING
        deployment.started_at = utcnow()
        deployment.completed_at = None
        deployment.error_message = None
        self.store.save(deployment_id)

    def _worker(self, run: DeploymentRun) -> None:
        try:
            run.result = self._drive(run)
        except Exception as exc:
            logger.exception("Deployment %s crashed: %s", run.deployment_id, exc)
            if not run.token.cancelled:
                deployment, steps = self.store.live(run.deployment_id)
                # 正在执行的步骤记录真实原因，部署只保留通用信息
                for step in steps:
                    if step.status == StepStatus.RUNNING:
                        step.status = StepStatus.FAILED
                        step.finished_at = utcnow()
                        step.error_message = str(exc) or type(exc).__name__
                deployment.status = DeploymentStatus.FAILED
                deployment.completed_at = utcnow()
                deployment.error_message = FAILURE_MESSAGE
                self.store.save(run.deployment_id)
                run.result = DeploymentStatus.FAILED
        finally:
            run._finished.set()

    def _drive(self, run: DeploymentRun) -> Optional[DeploymentStatus]:
        deployment_id = run.deployment_id
        token = run.token
        deployment, steps = self.store.live(deployment_id)

        executor = StepExecutor(
            self.client,
            poll_interval=self.poll_interval,
            stall_warning_after=self.stall_warning_after,
            on_change=lambda: self.store.save(deployment_id),
        )

        logger.info("")
        logger.info("=" * 60)
        logger.info("🚀 DEPLOYMENT: %s", deployment.app_name)
        logger.info("=" * 60)
        logger.info("Runner: %s", deployment.runner_id)
        logger.info("Total Steps: %d", len(steps))
        for step in steps:
            logger.info("  %d. [%s] %s", step.step_order, step.step_type.upper(), step.step_name)
        logger.info("")

        total = len(steps)
        for index, step in enumerate(steps, 1):
            if token.cancelled:
                return None

            logger.info("📍 Step %d/%d: %s", index, total, step.step_name)
            if executor.execute(deployment, step, token) is None:
                logger.info("   ⏹️ Cancelled while running '%s'", step.step_name)
                return None

            if step.status == StepStatus.FAILED:
                logger.error("   ❌ Step '%s' failed, aborting remaining steps", step.step_name)
                break
            logger.info("")

        if token.cancelled:
            return None

        final_status = aggregate(steps)
        deployment.status = final_status
        deployment.completed_at = utcnow()
        deployment.error_message = FAILURE_MESSAGE if final_status == DeploymentStatus.FAILED else None
        self.store.save(deployment_id)

        logger.info("=" * 60)
        if final_status == DeploymentStatus.APPLIED:
            logger.info("🎉 Deployment completed successfully!")
        else:
            logger.error("❌ Deployment failed: %s", deployment.error_message)
        logger.info("=" * 60)
        return final_status

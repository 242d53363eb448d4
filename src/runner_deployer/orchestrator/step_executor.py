"""Step executor: carries a single deployment step through dispatch and polling."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TYPE_CHECKING

from ..models import DeploymentStep, OrderRequest, OrderStatus, StepStatus, utcnow
from .polling import CancellationToken, OrderPoller

if TYPE_CHECKING:
    from ..models import Deployment
    from ..orders import RemoteExecutionClient

logger = logging.getLogger(__name__)

ORDER_CATEGORY = "installation"


def build_order_request(deployment: "Deployment", step: DeploymentStep) -> OrderRequest:
    """Build the order payload for `step`, labelled so operators can trace it back."""
    return OrderRequest(
        runner_id=deployment.runner_id,
        infrastructure_id=deployment.infrastructure_id,
        category=ORDER_CATEGORY,
        name=f"[deploy] {step.step_name}",
        description=f"[deploy.{step.step_type}] Deployment: {deployment.app_name}",
        command=step.command,
    )


class StepExecutor:
    """
    步骤执行器

    把一个 pending 步骤推进到终态：
    - 标记 running 并派发 order
    - 轮询 order 直到终态
    - 把 order 结果写回步骤

    取消之后不再修改步骤的任何字段。
    """

    def __init__(
        self,
        client: "RemoteExecutionClient",
        poll_interval: float = 2.0,
        stall_warning_after: Optional[float] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.client = client
        self.poller = OrderPoller(
            client,
            interval=poll_interval,
            stall_warning_after=stall_warning_after,
        )
        self.on_change = on_change

    def execute(
        self,
        deployment: "Deployment",
        step: DeploymentStep,
        token: CancellationToken,
    ) -> Optional[StepStatus]:
        """
        执行单个步骤

        Args:
            deployment: 步骤所属的部署（提供 runner / infrastructure 路由）
            step: 要执行的步骤，会被原地更新
            token: 取消令牌

        Returns:
            步骤的最终状态；被取消时返回 None
        """
        if not self._apply(token, step, status=StepStatus.RUNNING, started_at=utcnow()):
            return None

        request = build_order_request(deployment, step)
        logger.info("   🔧 Dispatching: %s", request.name)

        try:
            order_id = self.client.create_order(request)
        except Exception as exc:
            # 派发失败直接判定步骤失败，不进入轮询
            logger.error("   ❌ Dispatch failed: %s", exc)
            applied = self._apply(
                token,
                step,
                status=StepStatus.FAILED,
                finished_at=utcnow(),
                error_message=str(exc),
            )
            return StepStatus.FAILED if applied else None

        if not self._apply(token, step, order_id=order_id):
            return None
        logger.info("      Order queued: %s", order_id)

        order = self.poller.wait_for_terminal(order_id, token)
        if order is None:
            return None

        final_status = StepStatus.APPLIED if order.status == OrderStatus.SUCCEEDED else StepStatus.FAILED
        applied = self._apply(
            token,
            step,
            status=final_status,
            finished_at=utcnow(),
            exit_code=order.exit_code,
            stdout_tail=order.stdout_tail,
            stderr_tail=order.stderr_tail,
            error_message=order.error_message,
        )
        if not applied:
            return None

        if final_status == StepStatus.APPLIED:
            logger.info("   ✅ Step applied (exit code: %s)", order.exit_code)
        else:
            logger.error("   ❌ Step failed (exit code: %s)", order.exit_code)
            if order.error_message:
                logger.error("      %s", order.error_message)
            if order.stderr_tail:
                logger.warning("      stderr: %s", order.stderr_tail[:200])
        return final_status

    def _apply(self, token: CancellationToken, step: DeploymentStep, **changes: Any) -> bool:
        """Write `changes` onto the step unless the run has been cancelled."""
        if token.cancelled:
            return False
        for name, value in changes.items():
            setattr(step, name, value)
        if self.on_change:
            self.on_change()
        return True

"""Completion polling for remote orders."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..models import Order
    from ..orders import RemoteExecutionClient

logger = logging.getLogger(__name__)


class CancellationToken:
    """Level-triggered cancellation flag shared by one deployment run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True as soon as the token is cancelled."""
        return self._event.wait(seconds)


class OrderPoller:
    """
    订单轮询器

    远程服务不会推送完成事件，只能按固定间隔读取 order 状态，
    直到 order 进入终态或被外部取消。没有退避，也没有最大次数。
    """

    def __init__(
        self,
        client: "RemoteExecutionClient",
        interval: float = 2.0,
        stall_warning_after: Optional[float] = None,
    ):
        self.client = client
        self.interval = interval
        self.stall_warning_after = stall_warning_after

    def wait_for_terminal(self, order_id: str, token: CancellationToken) -> Optional["Order"]:
        """
        Poll `order_id` until it reaches a terminal status.

        Args:
            order_id: Remote order to observe
            token: Cancellation token checked before every read

        Returns:
            The terminal order, or None if the token was cancelled first
        """
        started = time.monotonic()
        stall_reported = False
        attempts = 0

        while True:
            if token.wait(self.interval) or token.cancelled:
                logger.info("   ⏹️ Polling of order %s cancelled", order_id)
                return None

            attempts += 1
            try:
                order = self.client.get_order(order_id)
            except Exception as exc:
                # 读取失败视为瞬时错误，下一次 tick 重试
                logger.warning("   ⚠️ Poll #%d of order %s failed: %s", attempts, order_id, exc)
                continue

            if token.cancelled:
                logger.info("   ⏹️ Polling of order %s cancelled", order_id)
                return None

            if order.is_terminal:
                logger.debug("   Order %s settled as %s after %d polls", order_id, order.status.value, attempts)
                return order

            if self.stall_warning_after is not None and not stall_reported:
                elapsed = time.monotonic() - started
                if elapsed >= self.stall_warning_after:
                    logger.warning(
                        "   ⏳ Order %s still %s after %.0fs; polling continues",
                        order_id,
                        order.status.value,
                        elapsed,
                    )
                    stall_reported = True

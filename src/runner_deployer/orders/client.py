"""Clients for the remote execution service (orders API)."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

import requests

from ..models import Order, OrderRequest, OrderStatus

if TYPE_CHECKING:
    from ..config import OrdersAPIConfig

logger = logging.getLogger(__name__)


class OrdersAPIError(RuntimeError):
    """Raised when the orders API cannot serve a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DispatchError(OrdersAPIError):
    """Raised when an order cannot be created (transport or validation)."""

    pass


class OrderLookupError(OrdersAPIError):
    """Raised when an order cannot be read back."""

    pass


# 远程服务使用的状态名并不统一，这里统一归一化
_STATUS_ALIASES = {
    "pending": OrderStatus.QUEUED,
    "queued": OrderStatus.QUEUED,
    "running": OrderStatus.RUNNING,
    "completed": OrderStatus.SUCCEEDED,
    "succeeded": OrderStatus.SUCCEEDED,
    "success": OrderStatus.SUCCEEDED,
    "failed": OrderStatus.FAILED,
    "error": OrderStatus.FAILED,
    "cancelled": OrderStatus.FAILED,
    "canceled": OrderStatus.FAILED,
}


def normalize_order_status(value: Optional[str]) -> OrderStatus:
    """Map a raw remote status onto :class:`OrderStatus`.

    Unknown values are treated as still running so the poller keeps
    observing the order instead of settling it on a guess.
    """
    if not value:
        return OrderStatus.QUEUED
    status = _STATUS_ALIASES.get(str(value).strip().lower())
    if status is None:
        logger.warning("Unknown order status %r, treating as running", value)
        return OrderStatus.RUNNING
    return status


def _parse_exit_code(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer exit code %r", value)
        return None


def parse_order(payload: Dict[str, Any]) -> Order:
    """Build an :class:`Order` from an API payload (optionally wrapped in ``order``)."""
    data = payload.get("order") if isinstance(payload.get("order"), dict) else payload
    raw_status = data.get("status")
    status = normalize_order_status(raw_status)

    error_message = data.get("error_message")
    if str(raw_status or "").lower() in ("cancelled", "canceled") and not error_message:
        error_message = "Order was cancelled"

    return Order(
        id=str(data.get("id", "")),
        status=status,
        exit_code=_parse_exit_code(data.get("exit_code")),
        stdout_tail=data.get("stdout_tail"),
        stderr_tail=data.get("stderr_tail"),
        error_message=error_message,
        raw=data,
    )


class RemoteExecutionClient(ABC):
    """Abstract boundary to the remote execution service."""

    @abstractmethod
    def create_order(self, request: OrderRequest) -> str:
        """
        Queue a command on a runner.

        Args:
            request: Order payload (runner, command, label)

        Returns:
            The id of the created order

        Raises:
            DispatchError: If the order could not be created
        """
        pass

    @abstractmethod
    def get_order(self, order_id: str) -> Order:
        """
        Read the current state of an order.

        Raises:
            OrderLookupError: If the order could not be read
        """
        pass


class OrdersAPIClient(RemoteExecutionClient):
    """Orders API client using plain HTTP + JSON."""

    def __init__(self, config: "OrdersAPIConfig", session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

        # Set up proxy if configured
        proxy = config.proxy or os.environ.get("HTTPS_PROXY") or os.environ.get("HTTP_PROXY")
        if proxy:
            self.session.proxies = {"http": proxy, "https": proxy}
            logger.info("Orders client using proxy: %s", proxy)

        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:500]
        if isinstance(data, dict):
            return str(data.get("error") or data.get("message") or data)
        return str(data)

    def create_order(self, request: OrderRequest) -> str:
        url = f"{self.base_url}/orders"
        try:
            response = self.session.post(
                url,
                json=request.to_payload(),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise DispatchError(f"Orders API unreachable: {exc}") from exc

        if response.status_code >= 400:
            detail = self._error_detail(response)
            raise DispatchError(
                f"Order creation failed (HTTP {response.status_code}): {detail}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise DispatchError("Order creation returned a non-JSON response") from exc

        order_data = data.get("order") if isinstance(data.get("order"), dict) else data
        order_id = order_data.get("id") if isinstance(order_data, dict) else None
        if not order_id:
            raise DispatchError("Order creation response did not include an id")

        logger.debug("Created order %s for runner %s", order_id, request.runner_id)
        return str(order_id)

    def get_order(self, order_id: str) -> Order:
        url = f"{self.base_url}/orders/{order_id}"
        try:
            response = self.session.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise OrderLookupError(f"Orders API unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise OrderLookupError(
                f"Order lookup failed (HTTP {response.status_code}): {self._error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise OrderLookupError("Order lookup returned a non-JSON response") from exc

        return parse_order(data)

    def close(self) -> None:
        self.session.close()

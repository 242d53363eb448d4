import unittest
from unittest.mock import Mock

import requests

from runner_deployer.config import OrdersAPIConfig
from runner_deployer.models import OrderRequest, OrderStatus
from runner_deployer.orders import (
    DispatchError,
    OrderLookupError,
    OrdersAPIClient,
    normalize_order_status,
    parse_order,
)


def _response(status_code: int = 200, payload=None, text: str = "") -> Mock:
    response = Mock()
    response.status_code = status_code
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    response.text = text
    return response


class StatusNormalizationTests(unittest.TestCase):
    def test_aliases(self) -> None:
        self.assertEqual(normalize_order_status("pending"), OrderStatus.QUEUED)
        self.assertEqual(normalize_order_status("QUEUED"), OrderStatus.QUEUED)
        self.assertEqual(normalize_order_status("running"), OrderStatus.RUNNING)
        self.assertEqual(normalize_order_status("completed"), OrderStatus.SUCCEEDED)
        self.assertEqual(normalize_order_status("SUCCEEDED"), OrderStatus.SUCCEEDED)
        self.assertEqual(normalize_order_status("failed"), OrderStatus.FAILED)
        self.assertEqual(normalize_order_status("CANCELLED"), OrderStatus.FAILED)
        self.assertEqual(normalize_order_status(None), OrderStatus.QUEUED)

    def test_unknown_status_keeps_polling(self) -> None:
        self.assertEqual(normalize_order_status("claimed"), OrderStatus.RUNNING)

    def test_parse_wrapped_order(self) -> None:
        order = parse_order(
            {
                "order": {
                    "id": "o-1",
                    "status": "completed",
                    "exit_code": "0",
                    "stdout_tail": "done",
                    "stderr_tail": None,
                }
            }
        )
        self.assertEqual(order.id, "o-1")
        self.assertEqual(order.status, OrderStatus.SUCCEEDED)
        self.assertEqual(order.exit_code, 0)
        self.assertEqual(order.stdout_tail, "done")
        self.assertTrue(order.is_terminal)

    def test_cancelled_order_gets_message(self) -> None:
        order = parse_order({"id": "o-2", "status": "cancelled"})
        self.assertEqual(order.status, OrderStatus.FAILED)
        self.assertEqual(order.error_message, "Order was cancelled")

    def test_non_integer_exit_code_is_dropped(self) -> None:
        with self.assertLogs("runner_deployer.orders.client", level="WARNING"):
            order = parse_order({"id": "o-3", "status": "failed", "exit_code": "abc"})
        self.assertEqual(order.status, OrderStatus.FAILED)
        self.assertIsNone(order.exit_code)
        self.assertTrue(order.is_terminal)


class OrdersAPIClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = Mock(spec=requests.Session)
        self.config = OrdersAPIConfig(base_url="https://orders.example.com/v1/", api_key="secret", timeout=5)
        self.client = OrdersAPIClient(self.config, session=self.session)
        self.request = OrderRequest(
            runner_id="runner-1",
            infrastructure_id="infra-1",
            name="[deploy] Clone Repository",
            description="[deploy.clone_repo] Deployment: shop",
            command="git clone ...",
        )

    def test_create_order_posts_payload(self) -> None:
        self.session.post.return_value = _response(201, {"order": {"id": "o-9", "status": "pending"}})

        order_id = self.client.create_order(self.request)

        self.assertEqual(order_id, "o-9")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://orders.example.com/v1/orders")
        self.assertEqual(kwargs["json"]["runner_id"], "runner-1")
        self.assertEqual(kwargs["json"]["infrastructure_id"], "infra-1")
        self.assertEqual(kwargs["json"]["category"], "installation")
        self.assertEqual(kwargs["json"]["command"], "git clone ...")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer secret")
        self.assertEqual(kwargs["timeout"], 5)

    def test_create_order_without_infrastructure(self) -> None:
        self.request.infrastructure_id = None
        self.session.post.return_value = _response(200, {"id": "o-1"})

        self.client.create_order(self.request)

        self.assertNotIn("infrastructure_id", self.session.post.call_args.kwargs["json"])

    def test_create_order_validation_error(self) -> None:
        self.session.post.return_value = _response(422, {"error": "runner_id is not a valid uuid"})

        with self.assertRaises(DispatchError) as ctx:
            self.client.create_order(self.request)

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertIn("runner_id is not a valid uuid", str(ctx.exception))

    def test_create_order_transport_error(self) -> None:
        self.session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with self.assertRaises(DispatchError):
            self.client.create_order(self.request)

    def test_create_order_missing_id(self) -> None:
        self.session.post.return_value = _response(200, {"status": "pending"})

        with self.assertRaises(DispatchError):
            self.client.create_order(self.request)

    def test_get_order(self) -> None:
        self.session.get.return_value = _response(
            200,
            {"id": "o-9", "status": "failed", "exit_code": 2, "stderr_tail": "oops", "error_message": "exit 2"},
        )

        order = self.client.get_order("o-9")

        self.assertEqual(self.session.get.call_args.args[0], "https://orders.example.com/v1/orders/o-9")
        self.assertEqual(order.status, OrderStatus.FAILED)
        self.assertEqual(order.exit_code, 2)
        self.assertEqual(order.error_message, "exit 2")

    def test_get_order_errors(self) -> None:
        self.session.get.return_value = _response(503, None, text="upstream unavailable")
        with self.assertRaises(OrderLookupError) as ctx:
            self.client.get_order("o-9")
        self.assertEqual(ctx.exception.status_code, 503)

        self.session.get.side_effect = requests.exceptions.Timeout("slow")
        with self.assertRaises(OrderLookupError):
            self.client.get_order("o-9")


if __name__ == "__main__":
    unittest.main()

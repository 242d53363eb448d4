"""Configuration loading utilities for Runner-Deployer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")


@dataclass
class OrdersAPIConfig:
    """Connection settings for the remote orders API."""

    base_url: str = "http://localhost:8080/v1"
    api_key: Optional[str] = None
    timeout: int = 30
    proxy: Optional[str] = None  # 代理设置，如 "http://127.0.0.1:7890"


@dataclass
class OrchestratorConfig:
    """Settings for step dispatch and completion polling."""

    poll_interval: float = 2.0                   # 轮询间隔（秒）
    # 轮询超过该时长只记录警告，不会让步骤失败；None 表示不提示
    stall_warning_after: Optional[float] = None
    snapshot_dir: Optional[str] = None           # 部署快照 JSON 输出目录


@dataclass
class AppConfig:
    """Top-level configuration."""

    orders: OrdersAPIConfig = field(default_factory=OrdersAPIConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        orders_payload = payload.get("orders", {}) or {}
        orchestrator_payload = payload.get("orchestrator", {}) or {}

        # 过滤掉以下划线开头的注释字段
        orders_payload = {k: v for k, v in orders_payload.items() if not k.startswith("_")}
        orchestrator_payload = {
            k: v for k, v in orchestrator_payload.items() if not k.startswith("_")
        }

        return cls(
            orders=OrdersAPIConfig(**{**OrdersAPIConfig().__dict__, **orders_payload}),
            orchestrator=OrchestratorConfig(
                **{**OrchestratorConfig().__dict__, **orchestrator_payload}
            ),
        )


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    env_url = os.getenv("RUNNER_DEPLOYER_ORDERS_URL")
    if env_url:
        config.orders.base_url = env_url

    if not config.orders.api_key:
        config.orders.api_key = os.getenv("RUNNER_DEPLOYER_API_KEY")

    env_proxy = os.getenv("RUNNER_DEPLOYER_PROXY")
    if env_proxy:
        config.orders.proxy = env_proxy

    env_interval = os.getenv("RUNNER_DEPLOYER_POLL_INTERVAL")
    if env_interval:
        config.orchestrator.poll_interval = float(env_interval)

    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than config file):
    - RUNNER_DEPLOYER_ORDERS_URL: Base URL of the orders API
    - RUNNER_DEPLOYER_API_KEY: Bearer token for the orders API
    - RUNNER_DEPLOYER_PROXY: HTTP proxy for orders API requests
    - RUNNER_DEPLOYER_POLL_INTERVAL: Seconds between order status reads

    An explicit `path` that does not exist is an error; a missing default
    file simply means built-in defaults.
    """

    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise FileNotFoundError(f"Could not find configuration file: {candidate}")
    else:
        candidate = _DEFAULT_CONFIG_PATH

    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        config = AppConfig.from_dict(data)
    else:
        config = AppConfig()

    return _apply_env_overrides(config)

"""Logging helpers."""

from __future__ import annotations

import logging
import os
from typing import Optional

_LOGGING_CONFIGURED = False

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"


def _level_from_env() -> int:
    name = os.getenv("RUNNER_DEPLOYER_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger, configuring the root handler on first use.

    RUNNER_DEPLOYER_LOG_LEVEL selects the level (default INFO).
    """
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(level=_level_from_env(), format=LOG_FORMAT)
        # 每次轮询都会产生 urllib3 连接日志
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        _LOGGING_CONFIGURED = True
    return logging.getLogger(name)

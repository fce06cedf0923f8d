from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_STORE_URL


class HttpConfig(BaseModel):
    """Settings for the HTTP adapter used by ``http`` steps."""

    timeout: float = 30.0
    verify: bool = True


class NotificationConfig(BaseModel):
    """Notification delivery settings."""

    webhook_url: Optional[str] = None


class StepflowConfig(BaseModel):
    """Top-level configuration model."""

    store_url: str = DEFAULT_STORE_URL
    log_level: str = "WARNING"
    persist_executions: bool = True
    http: HttpConfig = HttpConfig()
    notifications: NotificationConfig = NotificationConfig()


def load_config(path: Optional[str] = None) -> StepflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPFLOW_CONFIG env
            variable or 'stepflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPFLOW_CONFIG", DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepflowConfig(**data)
    else:
        config = StepflowConfig()

    env_store_url = os.getenv("STEPFLOW_STORE_URL")
    if env_store_url:
        config.store_url = env_store_url
    env_log_level = os.getenv("STEPFLOW_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level
    return config

from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_HISTORY_SIZE,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TASK_TIMEOUT_MS,
)


class EngineConfig(BaseModel):
    """Execution policy shared by every workflow an engine runs."""

    default_timeout_ms: int = Field(default=DEFAULT_TASK_TIMEOUT_MS, gt=0)
    default_max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)
    history_size: int = Field(default=DEFAULT_HISTORY_SIZE, gt=0)
    max_concurrency: Optional[int] = Field(default=DEFAULT_MAX_CONCURRENCY, gt=0)
    skip_dependents: bool = True
    auto_retry: bool = False


def load_config(path: Optional[str] = None) -> EngineConfig:
    """Load engine configuration from a YAML file.

    Args:
        path: Optional path to config file. Falls back to the TASKLOOM_CONFIG
            env variable or 'taskloom.yaml' in the current directory.
    """

    config_path = path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = EngineConfig(**data)
    else:
        config = EngineConfig()

    env_timeout = os.getenv("TASKLOOM_DEFAULT_TIMEOUT_MS")
    if env_timeout:
        config.default_timeout_ms = int(env_timeout)
    env_concurrency = os.getenv("TASKLOOM_MAX_CONCURRENCY")
    if env_concurrency:
        config.max_concurrency = int(env_concurrency) or None
    return config

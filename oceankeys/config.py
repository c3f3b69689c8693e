from __future__ import annotations

import os
from typing import Optional, Literal

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BASE_URL,
    DEFAULT_KEY_BITS,
    DEFAULT_NAME_PREFIX,
    DEFAULT_PER_PAGE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SCENARIO_TIMEOUT,
)


class ApiConfig(BaseModel):
    """Connection settings for the key API."""

    base_url: str = DEFAULT_BASE_URL
    token: Optional[str] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    per_page: int = DEFAULT_PER_PAGE


class ClientConfig(BaseModel):
    """Client backend selection."""

    backend: Literal["http", "inmemory"] = "http"
    visibility_lag: int = 0


class LifecycleConfig(BaseModel):
    """Timing and naming for lifecycle scenarios."""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    scenario_timeout: float = DEFAULT_SCENARIO_TIMEOUT
    name_prefix: str = DEFAULT_NAME_PREFIX
    create_pause: float = 10.0
    rename_pause: float = 60.0
    delete_pause: float = 0.0
    key_bits: int = DEFAULT_KEY_BITS


class OceanKeysConfig(BaseModel):
    """Top-level configuration model."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)


def load_config(path: Optional[str] = None) -> OceanKeysConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to OCEANKEYS_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("OCEANKEYS_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = OceanKeysConfig(**data)
    else:
        config = OceanKeysConfig()

    env_token = os.getenv("OCEANKEYS_TOKEN") or os.getenv("DIGITALOCEAN_TOKEN")
    if env_token:
        config.api.token = env_token
    env_backend = os.getenv("OCEANKEYS_BACKEND")
    if env_backend:
        config.client = ClientConfig(
            backend=env_backend.lower(),
            visibility_lag=config.client.visibility_lag,
        )
    return config

"""Key client factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import OceanKeysConfig, load_config
from .base import BaseKeyClient
from .http import HttpKeyClient
from .inmemory import InMemoryKeyClient


def get_client(
    backend: Optional[str] = None, config: Optional[OceanKeysConfig] = None
) -> BaseKeyClient:
    """Factory function to get the configured key client."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("OCEANKEYS_BACKEND")
        or config.client.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryKeyClient(visibility_lag=config.client.visibility_lag)
    elif backend == "http":
        return HttpKeyClient(config.api)
    else:
        raise ValueError(f"Unsupported client backend: {backend}")


__all__ = ["BaseKeyClient", "HttpKeyClient", "InMemoryKeyClient", "get_client"]

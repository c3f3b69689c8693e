"""oceankeys: SSH key management with read-path convergence checks."""

from .clients import BaseKeyClient, HttpKeyClient, InMemoryKeyClient, get_client
from .config import OceanKeysConfig, load_config
from .errors import (
    ConflictError,
    LifecycleError,
    NotFoundError,
    TimeoutFailure,
    TransportError,
    ValidationError,
)
from .lifecycle import KeyLifecycle, cleanup, run_scenario, run_scenarios
from .models import SshKey, same_key
from .wait import list_until, with_deadline

__version__ = "0.1.0"
__all__ = [
    "BaseKeyClient",
    "HttpKeyClient",
    "InMemoryKeyClient",
    "get_client",
    "OceanKeysConfig",
    "load_config",
    "SshKey",
    "same_key",
    "list_until",
    "with_deadline",
    "KeyLifecycle",
    "run_scenario",
    "run_scenarios",
    "cleanup",
    "TransportError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "TimeoutFailure",
    "LifecycleError",
]

"""Shared defaults for oceankeys."""

DEFAULT_BASE_URL = "https://api.digitalocean.com/v2"
KEYS_PATH = "/account/keys"

# Interval between read-path checks after a write, shared by the waiter.
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_SCENARIO_TIMEOUT = 120.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_PER_PAGE = 200

DEFAULT_NAME_PREFIX = "OceanKeysTest"
RENAME_SUFFIX = "Updated"
DEFAULT_KEY_COMMENT = "Test Ssh Key"
DEFAULT_KEY_BITS = 1024

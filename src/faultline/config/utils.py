# src/faultline/config/utils.py

"""Configuration constants and small helpers.

Pure functions only, so this module can be imported from anywhere in the
package without creating circular dependencies.
"""

from __future__ import annotations

import os
from typing import Any

# --- Constants ---

ENV_PREFIX = "FAULTLINE_"

DEBUG_CONFIG_VAR = "FAULTLINE_DEBUG_CONFIG"

DEFAULT_ENDPOINT_URL = "https://notify.bugsnag.com"

# One environment variable per option. ``exception_filter`` is an object
# reference and can only be supplied programmatically.
ENV_VARS: dict[str, str] = {
    "api_key": f"{ENV_PREFIX}API_KEY",
    "endpoint_url": f"{ENV_PREFIX}ENDPOINT_URL",
    "use_logger": f"{ENV_PREFIX}USE_LOGGER",
    "release_stage": f"{ENV_PREFIX}RELEASE_STAGE",
    "notify_release_stages": f"{ENV_PREFIX}NOTIFY_RELEASE_STAGES",
    "hostname": f"{ENV_PREFIX}HOSTNAME",
    "app_type": f"{ENV_PREFIX}APP_TYPE",
    "app_version": f"{ENV_PREFIX}APP_VERSION",
    "in_project": f"{ENV_PREFIX}IN_PROJECT",
    "timeout_s": f"{ENV_PREFIX}TIMEOUT_S",
}

_TRUTHY = {"1", "true", "yes", "on"}


def coerce_bool(v: str) -> bool:
    """Convert string to boolean using common conventions."""
    return v.strip().lower() in _TRUTHY


def split_stages(value: Any) -> Any:
    """Normalize a comma-separated stage list into a frozenset.

    Non-string iterables are normalized the same way; anything else is
    returned untouched so validation can report it precisely.
    """
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        return value
    return frozenset(
        s.strip() for s in items if isinstance(s, str) and s.strip()
    )


def field_spec_hint(field: str) -> str:
    """Return a compact hint for setting a config field."""
    env_key = ENV_VARS.get(field)
    if env_key is None:
        return f"Pass {field}=... to faultline.start() or resolve_config()."
    return f"Set {env_key} or pass {field}=... to faultline.start()."


def should_emit_debug() -> bool:
    """Return True when debug audit is enabled via environment."""
    return coerce_bool(os.environ.get(DEBUG_CONFIG_VAR, ""))


# --- Sensitive Key Utilities ---

SENSITIVE_KEYS = {
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
}


def is_sensitive_field_key(name: str) -> bool:
    """Return True if a field name is considered sensitive for logging."""
    lower = name.lower()
    return any(token in lower for token in SENSITIVE_KEYS)

# src/faultline/config/__init__.py

"""Configuration management for faultline.

Configuration is resolved once at startup into an immutable ``FrozenConfig``
that is handed to the policy and dispatcher. Nothing reads the environment
after that point.

Key exports:
- resolve_config: Main API for configuration resolution
- FrozenConfig: Immutable configuration payload
- Settings: Pydantic schema for validation and defaults
"""

# ruff: noqa: I001

from .core import (
    FrozenConfig,
    Origin,
    FieldOrigin,
    Settings,
    SourceMap,
    audit_lines,
    check_environment,
    resolve_config,
    to_redacted_dict,
    was_field_overridden,
)
from .loaders import load_env
from .utils import DEFAULT_ENDPOINT_URL, ENV_VARS, field_spec_hint

__all__ = [  # noqa: RUF022
    # Main public API
    "resolve_config",
    "FrozenConfig",
    # Core types for typing and advanced usage
    "Settings",
    "Origin",
    "FieldOrigin",
    "SourceMap",
    # Provenance and redaction helpers
    "was_field_overridden",
    "field_spec_hint",
    "to_redacted_dict",
    "audit_lines",
    "check_environment",
    # Advanced utilities
    "load_env",
    "DEFAULT_ENDPOINT_URL",
    "ENV_VARS",
]

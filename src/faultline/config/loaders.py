# src/faultline/config/loaders.py

"""Environment loader for configuration.

Returns plain dictionaries that the core resolver merges. No validation
happens here beyond light, schema-informed type coercion.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from . import utils

if TYPE_CHECKING:
    from collections.abc import Mapping

# Fields whose env string must be coerced before validation
_BOOL_FIELDS = frozenset({"use_logger"})
_FLOAT_FIELDS = frozenset({"timeout_s"})


def load_env(environ: Mapping[str, str] | None = None) -> Mapping[str, Any]:
    """Load configuration from ``FAULTLINE_*`` environment variables.

    Only the variables listed in ``utils.ENV_VARS`` are read. Unset variables
    are omitted so lower layers (defaults) stay in effect. The stage list is
    left as a string; ``Settings`` splits it.

    Returns:
        Dictionary of configuration values keyed by field name.
    """
    env = os.environ if environ is None else environ
    config: dict[str, Any] = {}
    for field_name, env_key in utils.ENV_VARS.items():
        value = env.get(env_key)
        if value is None:
            continue
        config[field_name] = _coerce_env_value(field_name, value)
    return config


def _coerce_env_value(field_name: str, value: str) -> Any:
    """Coerce env string to the field's type when possible.

    Falls back to the original string on conversion failure so that
    validation produces the error message.
    """
    if field_name in _BOOL_FIELDS:
        return utils.coerce_bool(value)
    if field_name in _FLOAT_FIELDS:
        try:
            return float(value)
        except ValueError:
            return value
    return value

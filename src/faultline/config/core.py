# src/faultline/config/core.py

"""Core configuration schema and resolution.

Resolve once, freeze, then pass along:
- ``Settings`` is the single source of truth for fields, defaults and validation
- ``FrozenConfig`` is the immutable payload handed to the policy and dispatcher
- ``SourceMap`` records where each effective value came from
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from functools import cache
import logging
import os
from typing import TYPE_CHECKING, Any, Literal, overload
import warnings

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)

from faultline.errors import ConfigurationError

from .utils import (
    DEFAULT_ENDPOINT_URL,
    ENV_PREFIX,
    ENV_VARS,
    field_spec_hint,
    is_sensitive_field_key,
    should_emit_debug,
    split_stages,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from faultline.policy import ExceptionFilter

logger = logging.getLogger(__name__)

# --- Schema (Pydantic wall) ---


class Settings(BaseModel):
    """Pydantic schema for configuration validation and defaults."""

    api_key: SecretStr | str | None = Field(default=None)
    endpoint_url: str = Field(default=DEFAULT_ENDPOINT_URL, min_length=1)
    use_logger: bool = Field(default=True)
    release_stage: str = Field(default="production", min_length=1)
    notify_release_stages: frozenset[str] = Field(
        default_factory=lambda: frozenset({"production"})
    )

    # Passed through to the payload, never interpreted by the core
    hostname: str | None = Field(default="unknown")
    app_type: str | None = Field(default="python")
    app_version: str | None = Field(default=None)
    in_project: str | None = Field(default=None)

    exception_filter: Any = Field(default=None)
    timeout_s: float = Field(default=10.0, gt=0)

    model_config = {"extra": "forbid"}

    @field_validator("api_key", mode="before")
    @classmethod
    def normalize_api_key(cls, v: Any) -> Any:
        """Normalize api_key: trim whitespace, map empty to None, wrap in SecretStr."""
        if v is None:
            return None
        if isinstance(v, SecretStr):
            s = v.get_secret_value().strip()
            return SecretStr(s) if s else None
        if isinstance(v, str):
            s = v.strip()
            return SecretStr(s) if s else None
        return v

    @field_validator("endpoint_url", "release_stage", mode="before")
    @classmethod
    def strip_required(cls, v: Any) -> Any:
        """Trim surrounding whitespace."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator(
        "hostname", "app_type", "app_version", "in_project", mode="before"
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("notify_release_stages", mode="before")
    @classmethod
    def normalize_stages(cls, v: Any) -> Any:
        """Accept a comma-separated string or any collection of stage names."""
        return split_stages(v)

    @field_validator("exception_filter")
    @classmethod
    def validate_filter(cls, v: Any) -> Any:
        """Require the ``should_notify`` capability (or a bare callable)."""
        if v is None:
            return None
        if callable(getattr(v, "should_notify", None)) or callable(v):
            return v
        raise ValueError(
            "exception_filter must implement should_notify(exception, stacktrace)"
        )


# Cache default settings to avoid repeated Pydantic instantiation per resolution.
@cache
def _default_settings() -> dict[str, Any]:
    return Settings().model_dump()


# --- Immutable runtime payload ---


@dataclass(frozen=True)
class FrozenConfig:
    """Immutable configuration shared by the policy and the dispatcher.

    Safe to read from any thread: nothing here changes after resolution.
    """

    api_key: str | None
    endpoint_url: str
    use_logger: bool
    release_stage: str
    notify_release_stages: frozenset[str]
    hostname: str | None
    app_type: str | None
    app_version: str | None
    in_project: str | None
    exception_filter: ExceptionFilter | None
    timeout_s: float

    @property
    def reported_stage(self) -> bool:
        """Whether the current release stage is one that gets reported."""
        return self.release_stage in self.notify_release_stages

    def __str__(self) -> str:
        """String representation with redacted API key for safe logging."""
        fields = []
        for field in self.__dataclass_fields__:
            value = getattr(self, field)
            if field == "api_key" and value:
                fields.append(f"{field}='[REDACTED]'")
            elif field == "exception_filter" and value is not None:
                fields.append(f"{field}={type(value).__name__}")
            elif field == "notify_release_stages":
                fields.append(f"{field}={sorted(value)!r}")
            else:
                fields.append(f"{field}={value!r}")

        return f"FrozenConfig({', '.join(fields)})"

    __repr__ = __str__


# --- Audit types ---


class Origin(str, Enum):
    """Source origin for configuration field values."""

    DEFAULT = "default"
    ENV = "env"
    OVERRIDES = "overrides"


@dataclass(frozen=True)
class FieldOrigin:
    """Tracks the origin of a configuration field value."""

    origin: Origin
    env_key: str | None = None  # e.g., "FAULTLINE_API_KEY"


SourceMap = dict[str, FieldOrigin]


_DOTENV_LOADED: bool = False


def _try_load_dotenv() -> None:
    """Load a .env file once, before the environment is read.

    Failures are logged at debug level and resolution continues.
    """
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    _DOTENV_LOADED = True
    try:
        from dotenv import load_dotenv

        load_dotenv()
    except Exception as e:
        logger.debug("Skipping .env loading: %s", e)


# --- Public resolution API ---


@overload
def resolve_config(
    overrides: Mapping[str, Any] | None = ...,
    *,
    explain: Literal[True],
) -> tuple[FrozenConfig, SourceMap]: ...


@overload
def resolve_config(
    overrides: Mapping[str, Any] | None = ...,
    *,
    explain: Literal[False] = ...,
) -> FrozenConfig: ...


def resolve_config(
    overrides: Mapping[str, Any] | None = None,
    *,
    explain: bool = False,
) -> FrozenConfig | tuple[FrozenConfig, SourceMap]:
    """Resolve configuration from all sources into a FrozenConfig.

    Precedence per field: overrides > environment > defaults. Override values
    of ``None`` count as "not supplied".

    Args:
        overrides: Values supplied explicitly by the embedding application.
        explain: If True, return tuple of (config, source_map) for audit.

    Returns:
        FrozenConfig instance, or tuple of (FrozenConfig, SourceMap) if explain=True.

    Raises:
        ConfigurationError: If configuration validation fails.
    """
    _try_load_dotenv()

    from .loaders import load_env

    supplied = {k: v for k, v in (overrides or {}).items() if v is not None}
    merged, sources = _resolve_layers(overrides=supplied, env=load_env())

    try:
        settings = Settings.model_validate(merged)
    except ValidationError as e:
        err = e.errors()[0]
        msg = err.get("msg") or "invalid value"
        if msg.startswith("Value error, "):
            msg = msg[13:]
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else None
        hint = field_spec_hint(field) if field in Settings.model_fields else None
        if err.get("type") == "extra_forbidden" and field:
            msg = f"unknown option {field!r}"
            hint = f"Known options: {', '.join(sorted(Settings.model_fields))}"
        where = f"{field}: " if field and field not in msg else ""
        raise ConfigurationError(
            f"Configuration validation failed: {where}{msg}", hint=hint
        ) from e

    frozen = _freeze(settings)

    if frozen.api_key is None and frozen.reported_stage:
        logger.warning(
            "faultline api_key is not configured, errors will not be reported"
        )

    if not explain and should_emit_debug():
        with suppress(Exception):
            warnings.warn(
                "Config audit (redacted)\n" + "\n".join(audit_lines(sources)),
                stacklevel=2,
            )

    return (frozen, sources) if explain else frozen


# --- Internal helpers ---


def _freeze(settings: Settings) -> FrozenConfig:
    """Convert validated Settings to an immutable FrozenConfig."""
    api_key_value: str | None
    if settings.api_key is None:
        api_key_value = None
    elif isinstance(settings.api_key, SecretStr):
        api_key_value = settings.api_key.get_secret_value()
    else:
        api_key_value = str(settings.api_key)

    return FrozenConfig(
        api_key=api_key_value,
        endpoint_url=settings.endpoint_url,
        use_logger=settings.use_logger,
        release_stage=settings.release_stage,
        notify_release_stages=settings.notify_release_stages,
        hostname=settings.hostname,
        app_type=settings.app_type,
        app_version=settings.app_version,
        in_project=settings.in_project,
        exception_filter=settings.exception_filter,
        timeout_s=settings.timeout_s,
    )


def _resolve_layers(
    *,
    overrides: Mapping[str, Any],
    env: Mapping[str, Any],
) -> tuple[dict[str, Any], SourceMap]:
    """Merge layers last-wins while recording where each value came from."""
    out: dict[str, Any] = dict(_default_settings())
    src: SourceMap = {k: FieldOrigin(origin=Origin.DEFAULT) for k in out}

    for k, v in env.items():
        out[k] = v
        src[k] = FieldOrigin(origin=Origin.ENV, env_key=ENV_VARS.get(k))

    for k, v in overrides.items():
        out[k] = v
        src[k] = FieldOrigin(origin=Origin.OVERRIDES)

    return out, src


# --- Audit helpers ---


def _origin_label(field: str, where: FieldOrigin) -> str:
    match where.origin:
        case Origin.ENV:
            key = where.env_key or f"{ENV_PREFIX}{field.upper()}"
            return f"env:{key}"
        case _:
            return str(where.origin.value)


def audit_lines(sources: SourceMap) -> list[str]:
    """Produce redacted, human-readable audit lines per field.

    Only origins are shown; values are never printed.
    """
    lines: list[str] = []
    for field in Settings.model_fields:
        fo = sources.get(field)
        if fo is None:
            continue
        redaction = " [REDACTED]" if is_sensitive_field_key(field) else ""
        lines.append(f"{field}: {_origin_label(field, fo)}{redaction}")
    return lines


def was_field_overridden(sources: SourceMap, field: str) -> bool:
    """Return True if a field's value did not come from defaults."""
    fo = sources.get(field)
    return bool(fo and fo.origin is not Origin.DEFAULT)


def check_environment() -> dict[str, str]:
    """Return current FAULTLINE_* variables, secrets redacted."""
    out: dict[str, str] = {}
    for k, v in os.environ.items():
        if not k.startswith(ENV_PREFIX):
            continue
        out[k] = "***redacted***" if is_sensitive_field_key(k) else v
    return out


def to_redacted_dict(cfg: FrozenConfig) -> dict[str, Any]:
    """Redacted dict for structured logging (never prints secrets)."""
    return {
        "api_key": "***redacted***" if cfg.api_key else None,
        "endpoint_url": cfg.endpoint_url,
        "use_logger": cfg.use_logger,
        "release_stage": cfg.release_stage,
        "notify_release_stages": sorted(cfg.notify_release_stages),
        "hostname": cfg.hostname,
        "app_type": cfg.app_type,
        "app_version": cfg.app_version,
        "in_project": cfg.in_project,
        "exception_filter": (
            type(cfg.exception_filter).__name__
            if cfg.exception_filter is not None
            else None
        ),
        "timeout_s": cfg.timeout_s,
    }


# --- Minimal CLI entrypoint ---


def main() -> int:  # pragma: no cover - thin utility
    import argparse
    import json
    import sys

    parser = argparse.ArgumentParser("faultline-config")
    sub = parser.add_subparsers(dest="cmd", required=True)
    sub.add_parser("show")
    sub.add_parser("audit")
    sub.add_parser("env")
    args = parser.parse_args()

    try:
        if args.cmd == "show":
            cfg = resolve_config()
            sys.stdout.write(json.dumps(to_redacted_dict(cfg), indent=2) + "\n")
        elif args.cmd == "audit":
            _, src = resolve_config(explain=True)
            sys.stdout.write("\n".join(audit_lines(src)) + "\n")
        elif args.cmd == "env":
            for k, v in sorted(check_environment().items()):
                sys.stdout.write(f"{k}={v}\n")
    except ConfigurationError as e:
        sys.stderr.write(f"error: {e}\n")
        if e.hint:
            sys.stderr.write(f"hint: {e.hint}\n")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

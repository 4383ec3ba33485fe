"""Pytest configuration and fixtures.

Provides environment isolation, client cleanup and small factories. All
fixtures here are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os
from typing import TYPE_CHECKING, Any

import pytest

import faultline
from faultline.client import Client
from faultline.config import resolve_config
from faultline.dispatcher import Dispatcher

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from faultline.config import FrozenConfig

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_faultline_env(monkeypatch):
    """Clear FAULTLINE_* variables so the host environment never leaks in."""
    for key in list(os.environ.keys()):
        if key.startswith("FAULTLINE_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def stop_default_client() -> Iterator[None]:
    """Make sure no test leaves a default client (or root handler) behind."""
    yield
    faultline.stop(timeout_s=2.0)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Factories (opt-in)
# =============================================================================


@pytest.fixture
def make_config() -> Callable[..., FrozenConfig]:
    """Resolve a config with a usable api key and the logging hook off.

    ``without_key=True`` leaves the api key unset.
    """

    def _make(*, without_key: bool = False, **overrides: Any) -> FrozenConfig:
        if not without_key:
            overrides.setdefault("api_key", "test-key")
        overrides.setdefault("use_logger", False)
        return resolve_config(overrides)

    return _make


@pytest.fixture
def make_dispatcher(make_config) -> Iterator[Callable[..., Dispatcher]]:
    """Build dispatchers that are shut down after the test."""
    created: list[Dispatcher] = []

    def _make(*, transport: Any = None, builder: Any = None, policy: Any = None,
              telemetry: Any = None, config: FrozenConfig | None = None,
              **overrides: Any) -> Dispatcher:
        cfg = config or make_config(**overrides)
        d = Dispatcher(
            cfg, transport=transport, builder=builder, policy=policy, telemetry=telemetry
        )
        created.append(d)
        return d

    yield _make
    for d in created:
        d.shutdown(timeout_s=2.0)


@pytest.fixture
def make_client(make_config) -> Iterator[Callable[..., Client]]:
    """Build clients that are stopped after the test."""
    created: list[Client] = []

    def _make(*, transport: Any = None, **overrides: Any) -> Client:
        c = Client(make_config(**overrides), transport=transport)
        created.append(c)
        return c

    yield _make
    for c in created:
        c.stop(timeout_s=2.0)

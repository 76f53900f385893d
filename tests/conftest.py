"""Shared test fixtures and configuration for the devsuite test suite.

Provides common test utilities following pytest best practices.
"""

from __future__ import annotations

import io
import os
from pathlib import Path

from dotenv import load_dotenv
import pytest

from devsuite.startup.config_schema import (
    LauncherConfig,
    ReadinessSettings,
    SuiteDefinition,
)
from devsuite.startup.output_multiplexer import OutputMultiplexer
from tests.fakes.services import make_service

# Optional local overrides, not version controlled
load_dotenv(".env.test")


@pytest.fixture(autouse=True)
def clean_devsuite_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep DEVSUITE_* variables of the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("DEVSUITE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def service_root(tmp_path: Path) -> Path:
    """Root with one working directory per test service."""
    for name in ("alpha", "beta", "gamma", "primary"):
        (tmp_path / name).mkdir()
    return tmp_path


@pytest.fixture
def fast_config(service_root: Path) -> LauncherConfig:
    """Launcher settings with short timings."""
    return LauncherConfig(
        _env_file=None,
        root_directory=service_root,
        shutdown_grace_period=5.0,
        readiness=ReadinessSettings(
            initial_delay=0.0, interval=0.05, timeout=5.0, request_timeout=1.0
        ),
    )


@pytest.fixture
def output() -> io.StringIO:
    """Sink standing in for stdout."""
    return io.StringIO()


@pytest.fixture
def multiplexer(output: io.StringIO) -> OutputMultiplexer:
    """Multiplexer writing plain text to the ``output`` sink."""
    return OutputMultiplexer(output, enable_colors=False, benign_patterns=["npm WARN"])


@pytest.fixture
def four_service_suite(service_root: Path) -> SuiteDefinition:
    """Three support services declared out of order plus a primary."""
    return SuiteDefinition(
        title="TEST SUITE",
        services=(
            make_service("GAMMA", service_root / "gamma", 4103, priority=3),
            make_service("PRIMARY", service_root / "primary", 4100, is_primary=True),
            make_service("ALPHA", service_root / "alpha", 4101, priority=1),
            make_service("BETA", service_root / "beta", 4102, priority=2),
        ),
    )

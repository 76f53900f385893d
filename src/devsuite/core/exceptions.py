"""Custom exception hierarchy for the devsuite launcher.

Every fatal condition the orchestrator can hit during a run has its own
exception type carrying a stable error code. The codes double as keys into
the startup error catalog, which turns a failure into actionable help text.
"""

from __future__ import annotations

import logging
from typing import Any

# Module-level logger for exception handling
logger = logging.getLogger(__name__)


class DevSuiteError(Exception):
    """Base exception for all devsuite specific errors.

    This base class provides common functionality for all custom exceptions
    and establishes the foundation for the exception hierarchy.
    """

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {super().__str__()}"
        return super().__str__()


# ==============================================================================
# Service Lifecycle Exceptions
# ==============================================================================


class ServiceError(DevSuiteError):
    """Base class for errors tied to one managed service."""

    def __init__(
        self,
        message: str,
        *,
        service_name: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)
        self.service_name = service_name


class SpawnError(ServiceError):
    """Raised when a service's process cannot be started."""

    def __init__(
        self,
        service_name: str,
        reason: str,
        *,
        error_code: str = "SPAWN_002",
        working_directory: str | None = None,
        command: list[str] | None = None,
    ) -> None:
        message = f"{service_name} failed to spawn: {reason}"
        super().__init__(
            message,
            service_name=service_name,
            error_code=error_code,
            details={
                "working_directory": working_directory,
                "command": command or [],
            },
        )
        self.reason = reason


class ReadinessTimeoutError(ServiceError):
    """Raised when a service never answers its readiness URL in time."""

    def __init__(
        self,
        service_name: str,
        url: str,
        elapsed_seconds: float,
        *,
        attempts: int = 0,
        last_error: str | None = None,
    ) -> None:
        message = (
            f"{service_name} failed to become ready: no successful response "
            f"from {url} after {elapsed_seconds:.1f}s"
        )
        super().__init__(
            message,
            service_name=service_name,
            error_code="READY_001",
            details={"url": url, "attempts": attempts, "last_error": last_error},
        )
        self.url = url
        self.elapsed_seconds = elapsed_seconds


class UnexpectedExitError(ServiceError):
    """Raised when a managed process exits on its own before shutdown."""

    def __init__(self, service_name: str, exit_code: int) -> None:
        message = f"{service_name} exited unexpectedly with code {exit_code}"
        super().__init__(
            message,
            service_name=service_name,
            error_code="EXIT_001",
            details={"exit_code": exit_code},
        )
        self.exit_code = exit_code


class DuplicateLaunchError(ServiceError):
    """Raised when a service is launched twice within one run."""

    def __init__(self, service_name: str) -> None:
        message = f"{service_name} has already been launched in this run"
        super().__init__(
            message, service_name=service_name, error_code="LAUNCH_DUPLICATE"
        )


# ==============================================================================
# Configuration and Setup Exceptions
# ==============================================================================


class ConfigurationError(DevSuiteError):
    """Raised when launcher configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message, error_code="CONFIG_001", details={"errors": errors or []}
        )
        self.config_key = config_key
        self.errors = errors or []


class InvalidSuiteError(ConfigurationError):
    """Raised when a suite definition violates its invariants."""

    def __init__(self, errors: list[str], source: str | None = None) -> None:
        where = f" in {source}" if source else ""
        message = f"Invalid service suite{where}: " + "; ".join(errors)
        super().__init__(message, config_key="services", errors=errors)
        self.error_code = "CONFIG_002"
        self.source = source

"""devsuite Startup Progress Reporter.

Provides clear, real-time feedback while the suite starts: which service is
launching, which became ready, and a final summary of every access point.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
import logging
import time
from typing import Any

from devsuite.core.exceptions import DevSuiteError
from devsuite.startup.config_schema import ServiceDescriptor
from devsuite.startup.error_catalog import StartupErrorCatalog, error_catalog
from devsuite.startup.output_multiplexer import LineLevel, OutputMultiplexer

logger = logging.getLogger(__name__)


class ProgressPhase(StrEnum):
    """Orchestrator phases."""

    IDLE = "idle"
    SEQUENCING = "sequencing"
    ALL_SUPPORT_READY = "all_support_ready"
    PRIMARY_STARTING = "primary_starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


@dataclass
class ProgressStep:
    """Individual progress step."""

    name: str
    phase: ProgressPhase
    status: str = "pending"  # pending, running, completed, failed
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    start_time: float | None = None
    end_time: float | None = None
    error: Exception | None = None

    @property
    def duration_ms(self) -> float:
        """Get step duration in milliseconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time) * 1000
        return 0.0

    def start(self) -> None:
        """Mark step as started."""
        self.status = "running"
        self.start_time = time.monotonic()

    def complete(
        self, message: str = "", details: dict[str, Any] | None = None
    ) -> None:
        """Mark step as completed."""
        self.status = "completed"
        self.end_time = time.monotonic()
        if message:
            self.message = message
        if details:
            self.details.update(details)

    def fail(
        self,
        message: str,
        error: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Mark step as failed."""
        self.status = "failed"
        self.end_time = time.monotonic()
        self.message = message
        self.error = error
        if details:
            self.details.update(details)


class StartupProgressReporter:
    """Reports orchestrator progress on the combined output stream."""

    def __init__(
        self,
        multiplexer: OutputMultiplexer,
        catalog: StartupErrorCatalog | None = None,
    ) -> None:
        """Initialize progress reporter.

        Args:
            multiplexer: Combined output stream the progress lines go to
            catalog: Error catalog used for failure help text
        """
        self.multiplexer = multiplexer
        self.catalog = catalog or error_catalog
        self.steps: list[ProgressStep] = []
        self.current_phase = ProgressPhase.IDLE

    def info(self, message: str) -> None:
        """Orchestrator info line."""
        self.multiplexer.emit(None, message)
        logger.info(message)

    def warning(self, message: str) -> None:
        """Orchestrator warning line."""
        self.multiplexer.emit(None, message, LineLevel.WARN)
        logger.warning(message)

    def error(self, message: str) -> None:
        """Orchestrator error line."""
        self.multiplexer.emit(None, message, LineLevel.ERROR)
        logger.error(message)

    def service(self, service_name: str, message: str) -> None:
        """Line attributed to a service rather than the orchestrator."""
        self.multiplexer.emit(service_name, message)

    def start_startup(self, title: str) -> None:
        """Print the banner."""
        self.multiplexer.write("")
        self.multiplexer.write(f"{title} ORCHESTRATOR", "bold")
        self.multiplexer.write("")
        self.info("Starting orchestrated deployment workflow...")

    def start_phase(self, phase: ProgressPhase, message: str = "") -> None:
        """Enter a new orchestrator phase."""
        self.current_phase = phase
        logger.debug("Orchestrator phase: %s", phase.value)
        if message:
            self.info(message)

    def start_step(self, name: str, message: str = "") -> ProgressStep:
        """Start a new progress step."""
        step = ProgressStep(name=name, phase=self.current_phase)
        self.steps.append(step)
        step.start()
        if message:
            self.info(message)
        return step

    def complete_step(
        self,
        step: ProgressStep,
        message: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        """Mark step as completed."""
        step.complete(message, details)
        logger.info("Completed: %s in %.0fms", step.name, step.duration_ms)

    def report_service_list(self, services: Sequence[ServiceDescriptor]) -> None:
        """Print the status list once every support service is up."""
        self.info("Service Status:")
        for service in services:
            self.info(f"   [OK] {service.name}: {service.readiness_url}")

    def report_running(
        self,
        title: str,
        primary: ServiceDescriptor,
        support: Sequence[ServiceDescriptor],
        elapsed: float,
    ) -> None:
        """Print the final summary once the primary service is ready."""
        write = self.multiplexer.write
        write("")
        write(f"{title} IS READY!", "bold")
        write(f"Total startup time: {elapsed:.2f}s", "bold")
        write("")
        write("ACCESS POINTS:", "bold")
        write(f"   MAIN: {primary.name}: {primary.readiness_url}", "bold")
        if support:
            write("   Individual Services:", "bold")
            for service in support:
                write(f"      {service.name}: {service.readiness_url}")
        write("")
        write("Press Ctrl+C to stop all services", "bold")
        write("")
        logger.info("Suite running after %.2fs", elapsed)

    def report_failure(self, error: Exception) -> None:
        """Report the fatal error that aborted the run, with catalog help."""
        self.current_phase = ProgressPhase.SHUTTING_DOWN
        self.error(f"Orchestration failed: {error}")

        code = getattr(error, "error_code", None)
        if code is None:
            code = self.catalog.suggest_error_code(str(error))
        if code is None or self.catalog.get_error_info(code) is None:
            return

        context: dict[str, str] = {}
        if isinstance(error, DevSuiteError):
            service_name = getattr(error, "service_name", None)
            if service_name:
                context["service"] = service_name
            context.update(
                {k: str(v) for k, v in error.details.items() if v not in (None, [], "")}
            )
        self.multiplexer.write("")
        self.multiplexer.write(self.catalog.format_error_help(code, context))
        self.multiplexer.write("")

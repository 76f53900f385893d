"""devsuite Startup Orchestrator.

Brings the suite up one service at a time: every support service is launched
in priority order and must answer its readiness URL before the next one
starts; the primary service goes last. Any fatal error, or SIGINT/SIGTERM,
terminates every process launched so far.
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from pathlib import Path
import signal
import sys
import time
from typing import Any, TypeVar

from devsuite.core.exceptions import (
    ConfigurationError,
    DevSuiteError,
    DuplicateLaunchError,
    ReadinessTimeoutError,
    UnexpectedExitError,
)
from devsuite.core.logging_config import setup_logging
from devsuite.startup.config_schema import (
    LauncherConfig,
    LogLevel,
    ServiceDescriptor,
    SuiteDefinition,
    load_config,
)
from devsuite.startup.health_checks import ReadinessProber
from devsuite.startup.output_multiplexer import OutputMultiplexer
from devsuite.startup.process_launcher import (
    ManagedProcess,
    ProcessLauncher,
    ProcessState,
)
from devsuite.startup.progress_reporter import ProgressPhase, StartupProgressReporter
from devsuite.version import get_version

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXIT_OK = 0
EXIT_FAILURE = 1


class ShutdownRequested(Exception):  # noqa: N818 - control flow, not an error
    """Raised at a suspension point once a shutdown has been requested."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Shutdown requested ({reason})")
        self.reason = reason


class TraceEvent(StrEnum):
    """Events recorded in the run trace."""

    LAUNCH = "launch"
    READY = "ready"
    RUNNING = "running"
    FAILED = "failed"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class TraceEntry:
    """One recorded orchestrator event."""

    event: TraceEvent
    service: str | None
    at: float


@dataclass
class OrchestratorState:
    """State owned by the controller for the duration of one run."""

    registry: dict[str, ManagedProcess] = field(default_factory=dict)
    ready_set: set[str] = field(default_factory=set)
    started_at: float = field(default_factory=time.monotonic)
    phase: ProgressPhase = ProgressPhase.IDLE
    trace: list[TraceEntry] = field(default_factory=list)

    def record(self, event: TraceEvent, service: str | None = None) -> None:
        """Append an event to the trace."""
        self.trace.append(TraceEntry(event, service, time.monotonic()))

    def events(self) -> list[tuple[str, str | None]]:
        """Trace as ``(event, service)`` pairs."""
        return [(entry.event.value, entry.service) for entry in self.trace]

    def register(self, managed: ManagedProcess) -> None:
        """Track a freshly launched process; each name only once per run."""
        if managed.name in self.registry:
            raise DuplicateLaunchError(managed.name)
        self.registry[managed.name] = managed

    def set_state(self, managed: ManagedProcess, state: ProcessState) -> None:
        """Move a process to ``state`` keeping ``ready_set`` in step."""
        managed.state = state
        if state == ProcessState.READY:
            self.ready_set.add(managed.name)
        else:
            self.ready_set.discard(managed.name)

    def elapsed(self) -> float:
        """Seconds since the run started."""
        return time.monotonic() - self.started_at


class SuiteOrchestrator:
    """Orchestrates ordered, readiness-gated startup of a service suite."""

    def __init__(
        self,
        suite: SuiteDefinition,
        config: LauncherConfig | None = None,
        *,
        multiplexer: OutputMultiplexer | None = None,
        reporter: StartupProgressReporter | None = None,
        launcher: ProcessLauncher | None = None,
        prober: ReadinessProber | None = None,
    ) -> None:
        """Initialize startup orchestrator.

        Args:
            suite: Validated service suite
            config: Launcher settings (read from the environment if omitted)
            multiplexer: Combined output stream
            reporter: Progress reporter (creates default if not provided)
            launcher: Process launcher (creates default if not provided)
            prober: Readiness prober (creates default if not provided)
        """
        self.suite = suite
        self.config = config or LauncherConfig()
        self.multiplexer = multiplexer or OutputMultiplexer(
            enable_colors=self.config.enable_colors,
            benign_patterns=self.config.benign_stderr_patterns,
        )
        self.reporter = reporter or StartupProgressReporter(self.multiplexer)
        self.launcher = launcher or ProcessLauncher(self.multiplexer)
        self.prober = prober or ReadinessProber()

        self.state = OrchestratorState()
        self.shutdown_passes = 0
        self._shutdown_requested = asyncio.Event()
        self._shutdown_reason: str | None = None
        self._shutdown_started = False
        self._installed_signals: list[signal.Signals] = []

    @property
    def phase(self) -> ProgressPhase:
        """Current controller phase."""
        return self.state.phase

    def _set_phase(self, phase: ProgressPhase, message: str = "") -> None:
        self.state.phase = phase
        self.reporter.start_phase(phase, message)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, *, install_signal_handlers: bool = True) -> int:
        """Start the suite, stay up until interrupted, then shut down.

        Returns:
            Process exit status: 0 after an operator shutdown, 1 after any
            fatal error
        """
        if install_signal_handlers:
            self._install_signal_handlers()

        exit_code = EXIT_FAILURE
        try:
            await self.start_all()
            # Running: nothing to do until a shutdown request or a crash
            await self._await_step(asyncio.get_running_loop().create_future())
        except ShutdownRequested as e:
            self.reporter.info(f"Received {e.reason}, shutting down")
            exit_code = EXIT_OK
        except DevSuiteError as e:
            self.state.record(TraceEvent.FAILED, getattr(e, "service_name", None))
            self.reporter.report_failure(e)
        except Exception as e:  # noqa: BLE001 - every failure must stop the children
            logger.exception("Unexpected orchestrator error")
            self.state.record(TraceEvent.FAILED)
            self.reporter.report_failure(e)
        finally:
            await self.shutdown()
            self._remove_signal_handlers()

        return exit_code

    async def start_all(self) -> None:
        """Run the startup sequence up to the ``running`` phase.

        Raises:
            DevSuiteError: On spawn failure, readiness timeout or an
                unexpected exit of any launched process
            ShutdownRequested: If a shutdown was requested meanwhile
        """
        support = self.suite.support_services()
        primary = self.suite.primary

        self.state.started_at = time.monotonic()
        self.reporter.start_startup(self.suite.title)

        self._set_phase(
            ProgressPhase.SEQUENCING, f"Starting {len(support)} support services..."
        )
        for index, service in enumerate(support, 1):
            await self._start_service(service)
            self.reporter.info(f"{service.name} is ready ({index}/{len(support)})")

        self._set_phase(
            ProgressPhase.ALL_SUPPORT_READY, "All support services are ready!"
        )
        self.reporter.report_service_list(support)

        self._set_phase(ProgressPhase.PRIMARY_STARTING, f"Starting {primary.name}...")
        await self._start_service(primary)

        self._set_phase(ProgressPhase.RUNNING)
        self.state.record(TraceEvent.RUNNING)
        self.reporter.report_running(
            self.suite.title, primary, support, self.state.elapsed()
        )

    async def _start_service(self, service: ServiceDescriptor) -> ManagedProcess:
        """Launch one service and block until it is ready."""
        step = self.reporter.start_step(service.name)
        try:
            if service.name in self.state.registry:
                raise DuplicateLaunchError(service.name)

            self.reporter.service(
                service.name, f"Starting {service.name} on port {service.port}..."
            )
            managed = await self.launcher.launch(service)
            self.state.register(managed)
            self.state.record(TraceEvent.LAUNCH, service.name)

            self.reporter.service(service.name, "Waiting for service to be ready...")
            result = await self._await_step(
                self.prober.wait_until_ready(
                    service.name,
                    service.readiness_url,
                    self.config.readiness_for(service),
                )
            )

            if not result.ready:
                self.state.set_state(managed, ProcessState.FAILED)
                raise ReadinessTimeoutError(
                    service.name,
                    service.readiness_url,
                    result.elapsed,
                    attempts=result.attempts,
                    last_error=result.last_error,
                )
            if managed.returncode is not None:
                # Exited while its output was still draining
                self._fail_exit(managed, managed.returncode)
        except (DevSuiteError, ShutdownRequested) as e:
            step.fail(str(e), e)
            raise

        self.state.set_state(managed, ProcessState.READY)
        self.state.record(TraceEvent.READY, service.name)
        self.reporter.service(
            service.name, f"Ready and accessible at {service.readiness_url}"
        )
        self.reporter.complete_step(step, result.message, result.details())
        return managed

    async def _await_step(self, step: Awaitable[T]) -> T:
        """Await ``step`` while watching for shutdown requests and crashes.

        Raises:
            ShutdownRequested: If a shutdown is requested first
            UnexpectedExitError: If a live process exits on its own first
        """
        step_task = asyncio.ensure_future(step)
        shutdown_task = asyncio.ensure_future(self._shutdown_requested.wait())
        try:
            while True:
                watched = {
                    managed.exit_task: managed
                    for managed in self.state.registry.values()
                    if managed.is_live() and managed.exit_task is not None
                }
                done, _ = await asyncio.wait(
                    {step_task, shutdown_task, *watched},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if shutdown_task in done:
                    raise ShutdownRequested(self._shutdown_reason or "shutdown request")
                for task in done:
                    if task in watched:
                        self._handle_exit(watched[task])
                if step_task in done:
                    return step_task.result()
        finally:
            pending = [t for t in (step_task, shutdown_task) if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    def _handle_exit(self, managed: ManagedProcess) -> None:
        """Account for a process that exited on its own.

        Any exit before the service became ready is fatal; a ready service
        may finish with code 0.
        """
        exit_task = managed.exit_task
        if exit_task is None or exit_task.cancelled():
            return
        code = exit_task.result()

        if managed.termination_requested:
            self.state.set_state(managed, ProcessState.TERMINATED)
            return
        if code == 0 and managed.state == ProcessState.READY:
            self.state.set_state(managed, ProcessState.TERMINATED)
            self.reporter.warning(f"{managed.name} exited with code 0")
            return
        self._fail_exit(managed, code)

    def _fail_exit(self, managed: ManagedProcess, code: int) -> None:
        self.state.set_state(managed, ProcessState.FAILED)
        self.reporter.error(f"{managed.name} exited with code {code}")
        raise UnexpectedExitError(managed.name, code)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def request_shutdown(self, reason: str = "shutdown request") -> None:
        """Ask the controller to stop; safe to call repeatedly."""
        if self._shutdown_started or self._shutdown_requested.is_set():
            logger.info("Shutdown already in progress, ignoring %s", reason)
            return
        self._shutdown_reason = reason
        self._shutdown_requested.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                # Windows event loops; Ctrl+C arrives as KeyboardInterrupt
                logger.debug("Signal handler for %s not supported", sig.name)
            else:
                self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        if not self._installed_signals:
            return
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals.clear()

    async def shutdown(self) -> bool:
        """Terminate every registered process, whatever its state.

        Only the first call performs a termination pass; later calls return
        False immediately.
        """
        if self._shutdown_started:
            logger.debug("Shutdown already performed")
            return False
        self._shutdown_started = True
        self.shutdown_passes += 1

        self._set_phase(ProgressPhase.SHUTTING_DOWN, "Stopping all services...")

        signalled: list[ManagedProcess] = []
        for name, managed in list(self.state.registry.items()):
            self.reporter.info(f"Stopping {name}...")
            self.state.record(TraceEvent.TERMINATE, name)
            try:
                delivered = self.launcher.terminate(managed)
            except OSError as e:
                self.reporter.warning(
                    f"Could not signal {name} (pid {managed.pid}): {e} [SHUTDOWN_001]"
                )
                continue
            if delivered:
                signalled.append(managed)

        await self._await_exits(signalled)

        for managed in self.state.registry.values():
            if not managed.is_running() and managed.state != ProcessState.FAILED:
                self.state.set_state(managed, ProcessState.TERMINATED)
            self.launcher.release(managed)

        self._set_phase(ProgressPhase.STOPPED, "All services stopped")
        return True

    async def _await_exits(self, signalled: list[ManagedProcess]) -> None:
        """Give signalled children a bounded chance to exit."""
        tasks = [m.exit_task for m in signalled if m.exit_task is not None]
        grace = self.config.shutdown_grace_period
        if tasks and grace > 0:
            await asyncio.wait(tasks, timeout=grace)

        for managed in signalled:
            if managed.is_running():
                self.reporter.warning(
                    f"{managed.name} (pid {managed.pid}) did not exit within "
                    f"{grace:.1f}s [SHUTDOWN_001]"
                )

    def create_dry_run_report(self) -> str:
        """Create the launch plan report."""
        return create_dry_run_report(self.suite, self.config)


def create_dry_run_report(suite: SuiteDefinition, config: LauncherConfig) -> str:
    """Describe what a run would launch, in order, without launching it."""
    lines = [
        f"{suite.title} Dry-Run Report",
        "=" * 50,
        "",
        "Configuration Summary:",
    ]
    lines.extend(f"  • {key}: {value}" for key, value in config.get_startup_summary().items())
    lines.extend(("", "Launch Order:"))

    missing: list[str] = []
    for position, service in enumerate(suite.launch_order(), 1):
        role = "primary" if service.is_primary else f"priority {service.priority}"
        readiness = config.readiness_for(service)
        exists = service.working_directory.is_dir()
        if not exists:
            missing.append(service.name)
        lines.extend(
            (
                f"  {position}. {service.name} ({role})",
                f"     directory: {service.working_directory}"
                + ("" if exists else "  [MISSING]"),
                f"     command: {' '.join(service.render_command())}",
                f"     readiness: {service.readiness_url} "
                f"(delay {readiness.initial_delay:g}s, every {readiness.interval:g}s, "
                f"timeout {readiness.timeout:g}s)",
            )
        )

    lines.append("")
    if missing:
        lines.append(
            "STARTUP WOULD FAIL: missing working directories for " + ", ".join(missing)
        )
    else:
        lines.append("STARTUP SHOULD SUCCEED: All checks passed")
    return "\n".join(lines)


# CLI entry point functions


def build_parser() -> argparse.ArgumentParser:
    """Command line interface of the launcher."""
    parser = argparse.ArgumentParser(
        prog="devsuite",
        description="Start the development suite in dependency order",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {get_version()}"
    )
    parser.add_argument("--services", type=Path, help="JSON services file")
    parser.add_argument(
        "--root", type=Path, help="Base directory for relative service directories"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the suite and print the launch plan without starting",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colors")
    parser.add_argument(
        "--log-level", choices=[level.value for level in LogLevel], help="Log level"
    )
    parser.add_argument(
        "--shutdown-grace",
        type=float,
        help="Seconds to wait for services to exit on shutdown",
    )
    return parser


def _config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.services is not None:
        overrides["services_file"] = args.services
    if args.root is not None:
        overrides["root_directory"] = args.root
    if args.no_color:
        overrides["enable_colors"] = False
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if args.shutdown_grace is not None:
        overrides["shutdown_grace_period"] = args.shutdown_grace
    return overrides


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(**_config_overrides(args))
    except ConfigurationError as e:
        setup_logging()
        print(f"❌ {e}", file=sys.stderr)  # noqa: T201
        for error in e.errors:
            print(f"  • {error}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILURE

    setup_logging(
        LogLevel.DEBUG.value if config.debug else config.log_level.value,
        debug=config.debug,
    )

    multiplexer = OutputMultiplexer(
        enable_colors=config.enable_colors,
        benign_patterns=config.benign_stderr_patterns,
    )
    reporter = StartupProgressReporter(multiplexer)

    try:
        suite = config.load_suite()
    except ConfigurationError as e:
        reporter.report_failure(e)
        return EXIT_FAILURE

    if args.dry_run:
        report = create_dry_run_report(suite, config)
        print(report)  # noqa: T201
        return EXIT_FAILURE if "STARTUP WOULD FAIL" in report else EXIT_OK

    orchestrator = SuiteOrchestrator(
        suite, config, multiplexer=multiplexer, reporter=reporter
    )
    try:
        return asyncio.run(orchestrator.run())
    except KeyboardInterrupt:
        # Loops without signal handler support; children are already stopped
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

"""devsuite Process Launcher.

Spawns one child process per service, wires its output into the multiplexer
and exposes its exit as an awaitable task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
import logging
import os
import signal
import time

from devsuite.core.exceptions import SpawnError
from devsuite.startup.config_schema import ServiceDescriptor
from devsuite.startup.output_multiplexer import OutputMultiplexer, StreamKind

logger = logging.getLogger(__name__)

# Max time to wait for output to drain after a child exits
STREAM_DRAIN_TIMEOUT = 1.0


class ProcessState(StrEnum):
    """Lifecycle state of a managed process."""

    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    TERMINATED = "terminated"


@dataclass
class ManagedProcess:
    """Runtime handle and state of one launched service."""

    descriptor: ServiceDescriptor
    process: asyncio.subprocess.Process
    state: ProcessState = ProcessState.STARTING
    started_at: float = field(default_factory=time.monotonic)
    exit_task: asyncio.Task[int] | None = None
    stream_tasks: list[asyncio.Task[int]] = field(default_factory=list)
    termination_requested: bool = False

    @property
    def name(self) -> str:
        """Service name."""
        return self.descriptor.name

    @property
    def pid(self) -> int:
        """OS process id."""
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        """Exit code, or None while the process runs."""
        return self.process.returncode

    def is_running(self) -> bool:
        """Check if the OS process has not exited yet."""
        return self.process.returncode is None

    def is_live(self) -> bool:
        """Check if the process still counts as starting or ready."""
        return self.state in {ProcessState.STARTING, ProcessState.READY}


class ProcessLauncher:
    """Starts and signals service processes."""

    def __init__(
        self,
        multiplexer: OutputMultiplexer,
        *,
        base_env: Mapping[str, str] | None = None,
        new_session: bool = True,
    ) -> None:
        """Initialize process launcher.

        Args:
            multiplexer: Sink for the children's output
            base_env: Environment inherited by children (defaults to os.environ)
            new_session: Start each child in its own session so the whole
                process group receives the termination signal
        """
        self.multiplexer = multiplexer
        self.base_env = base_env
        self.new_session = new_session and os.name == "posix"

    def build_env(self, descriptor: ServiceDescriptor) -> dict[str, str]:
        """Child environment with the port injected."""
        env = dict(os.environ if self.base_env is None else self.base_env)
        env.update(descriptor.env)
        env["PORT"] = str(descriptor.port)
        return env

    async def launch(self, descriptor: ServiceDescriptor) -> ManagedProcess:
        """Spawn the service process and return without waiting for readiness.

        Raises:
            SpawnError: If the working directory or executable is missing, or
                the OS refuses to create the process
        """
        argv = descriptor.render_command()
        cwd = descriptor.working_directory

        if not cwd.is_dir():
            raise SpawnError(
                descriptor.name,
                f"working directory does not exist: {cwd}",
                error_code="SPAWN_001",
                working_directory=str(cwd),
                command=argv,
            )

        logger.info("Spawning %s: %s (cwd=%s)", descriptor.name, " ".join(argv), cwd)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=self.build_env(descriptor),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=self.new_session,
            )
        except FileNotFoundError as e:
            raise SpawnError(
                descriptor.name,
                f"executable not found: {argv[0]}",
                working_directory=str(cwd),
                command=argv,
            ) from e
        except OSError as e:
            raise SpawnError(
                descriptor.name,
                e.strerror or str(e),
                working_directory=str(cwd),
                command=argv,
            ) from e

        managed = ManagedProcess(descriptor=descriptor, process=process)
        self.multiplexer.register(descriptor.name)

        if process.stdout is not None:
            managed.stream_tasks.append(
                asyncio.create_task(
                    self.multiplexer.pump(process.stdout, descriptor.name, StreamKind.STDOUT),
                    name=f"{descriptor.name}-stdout",
                )
            )
        if process.stderr is not None:
            managed.stream_tasks.append(
                asyncio.create_task(
                    self.multiplexer.pump(process.stderr, descriptor.name, StreamKind.STDERR),
                    name=f"{descriptor.name}-stderr",
                )
            )
        managed.exit_task = asyncio.create_task(
            self._watch_exit(managed), name=f"{descriptor.name}-exit"
        )

        logger.debug("%s started with pid %d", descriptor.name, process.pid)
        return managed

    async def _watch_exit(self, managed: ManagedProcess) -> int:
        returncode = await managed.process.wait()
        # Let the last lines reach the sink before the exit is reported
        pending = [t for t in managed.stream_tasks if not t.done()]
        if pending:
            await asyncio.wait(pending, timeout=STREAM_DRAIN_TIMEOUT)
        logger.debug("%s (pid %d) exited with %s", managed.name, managed.pid, returncode)
        return returncode

    def terminate(self, managed: ManagedProcess) -> bool:
        """Send a graceful termination request.

        With a session of its own the whole process group is signalled, even
        after the group leader exited, so grandchildren are not left behind.

        Returns:
            True if a signal was delivered, False if nothing was left to signal

        Raises:
            OSError: If the signal could not be delivered for another reason
        """
        running = managed.is_running()
        if not running and not self.new_session:
            return False

        if running:
            managed.termination_requested = True
        try:
            if self.new_session:
                try:
                    os.killpg(managed.pid, signal.SIGTERM)
                except PermissionError:
                    if not running:
                        return False
                    managed.process.terminate()
            else:
                managed.process.terminate()
        except ProcessLookupError:
            return False
        return True

    def release(self, managed: ManagedProcess) -> None:
        """Stop watching a process that ignored termination."""
        for task in [*managed.stream_tasks, managed.exit_task]:
            if task is not None and not task.done():
                task.cancel()

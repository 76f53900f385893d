"""Tests for devsuite process launcher."""

from __future__ import annotations

import asyncio
import contextlib
import io
import os
from pathlib import Path
import signal

import pytest

from devsuite.core.exceptions import SpawnError
from devsuite.startup.output_multiplexer import OutputMultiplexer
from devsuite.startup.process_launcher import ProcessLauncher, ProcessState
from tests.fakes.services import SLEEPER, make_service

CHATTY = (
    "import os, sys\n"
    "print('port', os.environ['PORT'], flush=True)\n"
    "print('mode', os.environ.get('MODE'), flush=True)\n"
    "print('cwd', os.path.basename(os.getcwd()), flush=True)\n"
    "print('npm WARN old lockfile', file=sys.stderr, flush=True)\n"
    "print('something broke', file=sys.stderr, flush=True)\n"
)


async def wait_for_file(path: Path, timeout: float = 10.0) -> None:
    """Poll until ``path`` exists."""
    async with asyncio.timeout(timeout):
        while not path.exists():
            await asyncio.sleep(0.01)


class TestProcessLauncher:
    """Test spawning and signalling children."""

    @pytest.fixture(autouse=True)
    def _setup(
        self, multiplexer: OutputMultiplexer, output: io.StringIO, service_root: Path
    ) -> None:
        self.launcher = ProcessLauncher(multiplexer)
        self.output = output
        self.root = service_root

    @pytest.mark.asyncio
    async def test_launch_streams_output(self) -> None:
        """Child output reaches the combined stream with its label."""
        service = make_service(
            "ALPHA", self.root / "alpha", 4101, code=CHATTY, env={"MODE": "dev"}
        )

        managed = await self.launcher.launch(service)
        returncode = await asyncio.wait_for(managed.exit_task, timeout=10)

        assert returncode == 0
        assert managed.state == ProcessState.STARTING
        lines = self.output.getvalue().splitlines()
        assert any(line.endswith("port 4101") for line in lines)
        assert any(line.endswith("mode dev") for line in lines)
        assert any(line.endswith("cwd alpha") for line in lines)
        assert any(
            line.startswith("[ALPHA]") and line.endswith("] npm WARN old lockfile")
            for line in lines
        )
        assert any(line.endswith("[WARN] something broke") for line in lines)

    @pytest.mark.asyncio
    async def test_missing_working_directory(self) -> None:
        """A missing directory fails before anything is spawned."""
        service = make_service("ALPHA", self.root / "nope", 4101)

        with pytest.raises(SpawnError) as exc_info:
            await self.launcher.launch(service)

        error = exc_info.value
        assert error.error_code == "SPAWN_001"
        assert error.service_name == "ALPHA"
        assert "working directory does not exist" in error.reason

    @pytest.mark.asyncio
    async def test_missing_executable(self) -> None:
        """An unknown program is reported as a spawn failure."""
        service = make_service("ALPHA", self.root / "alpha", 4101).model_copy(
            update={"command": ("devsuite-no-such-binary", "--port", "{port}")}
        )

        with pytest.raises(SpawnError) as exc_info:
            await self.launcher.launch(service)

        assert exc_info.value.error_code == "SPAWN_002"
        assert "executable not found: devsuite-no-such-binary" in str(exc_info.value)
        assert exc_info.value.details["command"] == [
            "devsuite-no-such-binary",
            "--port",
            "4101",
        ]

    @pytest.mark.asyncio
    async def test_terminate_running_process(self) -> None:
        """Terminate delivers SIGTERM and the exit task completes."""
        managed = await self.launcher.launch(
            make_service("ALPHA", self.root / "alpha", 4101, code=SLEEPER)
        )

        assert managed.is_running()
        assert self.launcher.terminate(managed) is True
        assert managed.termination_requested is True

        returncode = await asyncio.wait_for(managed.exit_task, timeout=10)
        assert returncode != 0
        assert not managed.is_running()

    @pytest.mark.asyncio
    async def test_terminate_exited_process(self) -> None:
        """Terminating an exited process is a no-op."""
        managed = await self.launcher.launch(
            make_service("ALPHA", self.root / "alpha", 4101, code="pass")
        )
        await asyncio.wait_for(managed.exit_task, timeout=10)

        assert self.launcher.terminate(managed) is False
        assert managed.termination_requested is False

    @pytest.mark.asyncio
    async def test_terminate_reaches_group_after_leader_exit(self) -> None:
        """Children left by an exited leader still get SIGTERM."""
        if not self.launcher.new_session:
            pytest.skip("process groups need POSIX")
        # Grandchild records SIGTERM in its working directory
        grandchild = (
            "import pathlib, signal, sys, time\n"
            "def stop(*_):\n"
            "    pathlib.Path('stopped').write_text('1')\n"
            "    sys.exit(0)\n"
            "signal.signal(signal.SIGTERM, stop)\n"
            "pathlib.Path('started').write_text('1')\n"
            "time.sleep(30)\n"
        )
        leader = (
            "import subprocess, sys\n"
            f"subprocess.Popen([sys.executable, '-c', {grandchild!r}],"
            " stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)\n"
        )
        directory = self.root / "alpha"
        managed = await self.launcher.launch(
            make_service("ALPHA", directory, 4101, code=leader)
        )
        try:
            await asyncio.wait_for(managed.exit_task, timeout=10)
            await wait_for_file(directory / "started")

            assert not managed.is_running()
            assert self.launcher.terminate(managed) is True
            await wait_for_file(directory / "stopped")
        finally:
            with contextlib.suppress(ProcessLookupError):
                os.killpg(managed.pid, signal.SIGKILL)

    @pytest.mark.asyncio
    async def test_release_cancels_watchers(self) -> None:
        """Release stops watching a process without signalling it."""
        managed = await self.launcher.launch(
            make_service("ALPHA", self.root / "alpha", 4101, code=SLEEPER)
        )
        try:
            self.launcher.release(managed)
            await asyncio.sleep(0.05)

            assert managed.exit_task.cancelled()
            assert all(task.cancelled() for task in managed.stream_tasks)
            assert managed.is_running()
        finally:
            managed.process.kill()
            await managed.process.wait()

    def test_build_env(self) -> None:
        """Child environment carries PORT and the service's variables."""
        launcher = ProcessLauncher(
            OutputMultiplexer(io.StringIO()), base_env={"PATH": "/bin", "PORT": "1"}
        )
        service = make_service("ALPHA", self.root / "alpha", 4101, env={"A": "b"})

        env = launcher.build_env(service)

        assert env == {"PATH": "/bin", "PORT": "4101", "A": "b"}

    def test_new_session_only_on_posix(self) -> None:
        """Process groups are only used where they exist."""
        launcher = ProcessLauncher(OutputMultiplexer(io.StringIO()))
        assert launcher.new_session is (os.name == "posix")

        launcher = ProcessLauncher(OutputMultiplexer(io.StringIO()), new_session=False)
        assert launcher.new_session is False

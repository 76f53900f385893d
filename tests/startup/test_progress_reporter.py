"""Tests for devsuite startup progress reporter."""

from __future__ import annotations

import io
from pathlib import Path

from devsuite.core.exceptions import ReadinessTimeoutError
from devsuite.startup.config_schema import ServiceDescriptor
from devsuite.startup.output_multiplexer import OutputMultiplexer
from devsuite.startup.progress_reporter import ProgressPhase, StartupProgressReporter


def descriptor(name: str, port: int, *, primary: bool = False) -> ServiceDescriptor:
    return ServiceDescriptor(
        name=name, working_directory=Path(name.lower()), port=port, is_primary=primary
    )


class TestStartupProgressReporter:
    """Test progress output."""

    def setup_method(self) -> None:
        """Set up test fixtures."""
        self.output = io.StringIO()
        self.reporter = StartupProgressReporter(
            OutputMultiplexer(self.output, enable_colors=False)
        )

    def test_banner(self) -> None:
        """Startup prints the suite banner."""
        self.reporter.start_startup("DEV SUITE")

        text = self.output.getvalue()
        assert "DEV SUITE ORCHESTRATOR" in text
        assert "[ORCHESTRATOR]" in text
        assert "Starting orchestrated deployment workflow..." in text

    def test_steps(self) -> None:
        """Steps record status and duration."""
        self.reporter.start_phase(ProgressPhase.SEQUENCING, "Starting 2 services...")
        ok = self.reporter.start_step("DB")
        self.reporter.complete_step(ok, "ready", {"attempts": 2})
        bad = self.reporter.start_step("API")
        bad.fail("timed out")

        assert ok.status == "completed"
        assert ok.phase == ProgressPhase.SEQUENCING
        assert ok.details == {"attempts": 2}
        assert ok.duration_ms >= 0
        assert bad.status == "failed"
        assert bad.message == "timed out"
        assert [s.name for s in self.reporter.steps] == ["DB", "API"]

    def test_service_list(self) -> None:
        """Status list shows every support service."""
        self.reporter.report_service_list(
            [descriptor("DB", 4001), descriptor("API", 4002)]
        )

        lines = self.output.getvalue().splitlines()
        assert lines[0].endswith("Service Status:")
        assert lines[1].endswith("   [OK] DB: http://localhost:4001")
        assert lines[2].endswith("   [OK] API: http://localhost:4002")

    def test_running_summary(self) -> None:
        """Final summary lists access points."""
        self.reporter.report_running(
            "DEV SUITE",
            descriptor("UI", 3000, primary=True),
            [descriptor("DB", 4001)],
            12.345,
        )

        text = self.output.getvalue()
        assert "DEV SUITE IS READY!" in text
        assert "Total startup time: 12.35s" in text
        assert "ACCESS POINTS:" in text
        assert "   MAIN: UI: http://localhost:3000" in text
        assert "      DB: http://localhost:4001" in text
        assert text.rstrip().endswith("Press Ctrl+C to stop all services")

    def test_report_failure_with_catalog_help(self) -> None:
        """Failures print the catalog entry with context."""
        error = ReadinessTimeoutError("DB", "http://localhost:4001", 60.0, attempts=30)

        self.reporter.report_failure(error)

        text = self.output.getvalue()
        assert "[ERROR] Orchestration failed: [READY_001] DB failed" in text
        assert "Service Readiness Timeout (READY_001)" in text
        assert "  • service: DB" in text
        assert "  • attempts: 30" in text
        assert "last_error" not in text
        assert self.reporter.current_phase == ProgressPhase.SHUTTING_DOWN

    def test_report_failure_without_code(self) -> None:
        """Plain exceptions only get the failure line."""
        self.reporter.report_failure(RuntimeError("boom"))

        assert self.output.getvalue().splitlines() == [
            line
            for line in self.output.getvalue().splitlines()
            if "Orchestration failed: boom" in line
        ]

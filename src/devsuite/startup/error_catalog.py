"""devsuite Startup Error Catalog.

Catalog of launcher errors with clear messages and solutions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class ErrorCategory(StrEnum):
    """Error categories for organization."""

    CONFIGURATION = "configuration"
    PROCESS = "process"
    NETWORKING = "networking"
    LIFECYCLE = "lifecycle"


class ErrorSeverity(StrEnum):
    """Error severity levels."""

    CRITICAL = "critical"  # Aborts the run
    HIGH = "high"  # Run continues, a service is misbehaving
    LOW = "low"  # Logged only


@dataclass
class ErrorSolution:
    """Suggested solution for an error."""

    description: str
    steps: list[str]


@dataclass
class StartupErrorInfo:
    """Comprehensive error information."""

    code: str
    title: str
    description: str
    category: ErrorCategory
    severity: ErrorSeverity
    solutions: list[ErrorSolution]
    common_causes: list[str]
    related_errors: list[str] = field(default_factory=list)


class StartupErrorCatalog:
    """Catalog of launcher errors with solutions."""

    def __init__(self) -> None:
        self.errors: dict[str, StartupErrorInfo] = self._build_error_catalog()

    def _build_error_catalog(self) -> dict[str, StartupErrorInfo]:
        """Build the error catalog."""
        errors = {}

        # Configuration Errors
        errors["CONFIG_001"] = StartupErrorInfo(
            code="CONFIG_001",
            title="Invalid Launcher Configuration",
            description="A DEVSUITE_* setting is missing, malformed or out of range.",
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            common_causes=[
                "Non-numeric value for a readiness or shutdown timing",
                "Services file path does not exist or is unreadable",
                "Typo in a DEVSUITE_* variable in the environment or .env file",
            ],
            solutions=[
                ErrorSolution(
                    description="Fix the offending setting",
                    steps=[
                        "Check the setting named in the error message",
                        "Correct it in your environment or .env file",
                        "Run 'devsuite --dry-run' to validate without starting anything",
                    ],
                ),
            ],
        )

        errors["CONFIG_002"] = StartupErrorInfo(
            code="CONFIG_002",
            title="Invalid Service Suite",
            description="The service suite definition violates a suite invariant.",
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            common_causes=[
                "No service, or more than one service, marked as primary",
                "Two services share a name or a port",
                "Readiness URL is not an absolute http(s) URL",
                "Malformed JSON in the services file",
            ],
            solutions=[
                ErrorSolution(
                    description="Correct the suite definition",
                    steps=[
                        "Mark exactly one service with \"is_primary\": true",
                        "Give every service a unique name and port",
                        "Validate the file with 'devsuite --dry-run'",
                    ],
                ),
            ],
            related_errors=["CONFIG_001"],
        )

        # Process Errors
        errors["SPAWN_001"] = StartupErrorInfo(
            code="SPAWN_001",
            title="Service Directory Not Found",
            description="The working directory of a service does not exist.",
            category=ErrorCategory.PROCESS,
            severity=ErrorSeverity.CRITICAL,
            common_causes=[
                "Launcher started from the wrong directory",
                "Service checkout missing or renamed",
                "Relative path resolved against an unexpected root",
            ],
            solutions=[
                ErrorSolution(
                    description="Point the launcher at the right root",
                    steps=[
                        "Run the launcher from the repository root",
                        "Or set DEVSUITE_ROOT_DIRECTORY / --root explicitly",
                        "Verify the directory named in the error exists",
                    ],
                ),
            ],
            related_errors=["SPAWN_002"],
        )

        errors["SPAWN_002"] = StartupErrorInfo(
            code="SPAWN_002",
            title="Service Process Could Not Start",
            description="The operating system refused to start the service command.",
            category=ErrorCategory.PROCESS,
            severity=ErrorSeverity.CRITICAL,
            common_causes=[
                "Interpreter or package manager (npm, node, python) not on PATH",
                "Command not executable",
                "Process limit reached",
            ],
            solutions=[
                ErrorSolution(
                    description="Make the command runnable",
                    steps=[
                        "Run the service command by hand in its directory",
                        "Install the missing toolchain or fix PATH",
                        "Adjust the service's \"command\" in the services file",
                    ],
                ),
            ],
            related_errors=["SPAWN_001"],
        )

        # Networking Errors
        errors["READY_001"] = StartupErrorInfo(
            code="READY_001",
            title="Service Readiness Timeout",
            description="A service never answered its readiness URL with 2xx/3xx.",
            category=ErrorCategory.NETWORKING,
            severity=ErrorSeverity.CRITICAL,
            common_causes=[
                "Service listens on a different port than configured",
                "First build takes longer than the readiness timeout",
                "Port already taken by another process",
                "Readiness URL answers with 4xx/5xx",
            ],
            solutions=[
                ErrorSolution(
                    description="Check what the service is doing",
                    steps=[
                        "Read the service's last output lines above",
                        "Open the readiness URL in a browser or with curl",
                        "Free the port if another process holds it",
                    ],
                ),
                ErrorSolution(
                    description="Give the service more time",
                    steps=[
                        "Set DEVSUITE_READINESS__TIMEOUT for every service",
                        "Or add \"readiness\": {\"timeout\": ...} to one service",
                    ],
                ),
            ],
        )

        # Lifecycle Errors
        errors["EXIT_001"] = StartupErrorInfo(
            code="EXIT_001",
            title="Service Exited Unexpectedly",
            description=(
                "A managed process terminated on its own before it was ready,"
                " or with a non-zero code later."
            ),
            category=ErrorCategory.LIFECYCLE,
            severity=ErrorSeverity.CRITICAL,
            common_causes=[
                "Missing dependencies (node_modules not installed)",
                "Port already in use",
                "Crash during service startup",
            ],
            solutions=[
                ErrorSolution(
                    description="Inspect the crash",
                    steps=[
                        "Read the [WARN] lines printed by the service above",
                        "Install dependencies in the service directory",
                        "Run the service command by hand to reproduce",
                    ],
                ),
            ],
            related_errors=["READY_001"],
        )

        errors["SHUTDOWN_001"] = StartupErrorInfo(
            code="SHUTDOWN_001",
            title="Service Ignored Termination",
            description="A service did not exit within the shutdown grace period.",
            category=ErrorCategory.LIFECYCLE,
            severity=ErrorSeverity.LOW,
            common_causes=[
                "Service traps SIGTERM and keeps running",
                "Slow cleanup in the service",
            ],
            solutions=[
                ErrorSolution(
                    description="Clean up leftover processes",
                    steps=[
                        "Find the process by its port and stop it",
                        "Raise DEVSUITE_SHUTDOWN_GRACE_PERIOD if cleanup is slow",
                    ],
                ),
            ],
        )

        errors["LAUNCH_DUPLICATE"] = StartupErrorInfo(
            code="LAUNCH_DUPLICATE",
            title="Service Launched Twice",
            description="A service was launched again within the same run.",
            category=ErrorCategory.LIFECYCLE,
            severity=ErrorSeverity.CRITICAL,
            common_causes=["Relaunching a service is not supported within one run"],
            solutions=[
                ErrorSolution(
                    description="Restart the launcher",
                    steps=["Stop the launcher with Ctrl+C and start it again"],
                ),
            ],
        )

        return errors

    def get_error_info(self, error_code: str) -> StartupErrorInfo | None:
        """Get error information by code."""
        return self.errors.get(error_code)

    def suggest_error_code(self, error_message: str) -> str | None:
        """Suggest error code based on error message content."""
        error_message_lower = error_message.lower()

        # Simple keyword matching for error categorization
        if "working directory" in error_message_lower:
            return "SPAWN_001"
        if (
            "executable not found" in error_message_lower
            or "failed to spawn" in error_message_lower
        ):
            return "SPAWN_002"
        if "ready" in error_message_lower and (
            "timeout" in error_message_lower or "failed to become" in error_message_lower
        ):
            return "READY_001"
        if "exited unexpectedly" in error_message_lower:
            return "EXIT_001"
        if "primary" in error_message_lower or "duplicate" in error_message_lower:
            return "CONFIG_002"
        if "configuration" in error_message_lower:
            return "CONFIG_001"
        return None

    def format_error_help(
        self, error_code: str, context: dict[str, str] | None = None
    ) -> str:
        """Format comprehensive error help message."""
        error_info = self.get_error_info(error_code)
        if not error_info:
            return f"Unknown error code: {error_code}"

        lines: list[str] = []
        lines.extend(
            (
                f"{error_info.title} ({error_info.code})",
                "=" * 60,
                "",
                f"Description: {error_info.description}",
                f"Severity: {error_info.severity.value.upper()}",
                f"Category: {error_info.category.value.title()}",
                "",
            )
        )

        if error_info.common_causes:
            lines.append("Common Causes:")
            lines.extend(f"  • {cause}" for cause in error_info.common_causes)
            lines.append("")

        if error_info.solutions:
            lines.append("Solutions:")
            for i, solution in enumerate(error_info.solutions, 1):
                lines.append(f"  {i}. {solution.description}")
                lines.extend(f"     • {step}" for step in solution.steps)

        if context:
            lines.extend(("", "Context:"))
            for key, value in context.items():
                lines.append(f"  • {key}: {value}")

        if error_info.related_errors:
            lines.extend(("", "Related Errors:"))
            for related_code in error_info.related_errors:
                related_error = self.get_error_info(related_code)
                if related_error:
                    lines.append(f"  • {related_code}: {related_error.title}")

        return "\n".join(lines)


# Global error catalog instance
error_catalog = StartupErrorCatalog()

"""Tests for startup error catalog - real functionality tests."""

from devsuite.core.exceptions import (
    ReadinessTimeoutError,
    SpawnError,
    UnexpectedExitError,
)
from devsuite.startup.error_catalog import (
    ErrorCategory,
    ErrorSeverity,
    ErrorSolution,
    StartupErrorCatalog,
    StartupErrorInfo,
    error_catalog,
)


class TestStartupErrorCatalog:
    """Test startup error catalog real functionality."""

    def test_error_catalog_initialization(self):
        """Test that error catalog initializes with actual errors."""
        catalog = StartupErrorCatalog()

        assert set(catalog.errors) == {
            "CONFIG_001",
            "CONFIG_002",
            "SPAWN_001",
            "SPAWN_002",
            "READY_001",
            "EXIT_001",
            "SHUTDOWN_001",
            "LAUNCH_DUPLICATE",
        }

        error = catalog.errors["READY_001"]
        assert error.code == "READY_001"
        assert error.title == "Service Readiness Timeout"
        assert error.category == ErrorCategory.NETWORKING
        assert error.severity == ErrorSeverity.CRITICAL
        assert len(error.solutions) > 0
        assert len(error.common_causes) > 0

    def test_get_error_info_by_code(self):
        """Test retrieving specific error by code."""
        catalog = StartupErrorCatalog()
        error = catalog.get_error_info("EXIT_001")

        assert error is not None
        assert isinstance(error, StartupErrorInfo)
        assert error.code == "EXIT_001"

    def test_get_nonexistent_error_info(self):
        """Test retrieving non-existent error returns None."""
        catalog = StartupErrorCatalog()
        assert catalog.get_error_info("FAKE_999") is None

    def test_error_solution_structure(self):
        """Test that every solution has steps."""
        catalog = StartupErrorCatalog()

        for info in catalog.errors.values():
            for solution in info.solutions:
                assert isinstance(solution, ErrorSolution)
                assert solution.description
                assert solution.steps

    def test_related_errors_exist(self):
        """Related error codes point at catalog entries."""
        catalog = StartupErrorCatalog()

        for info in catalog.errors.values():
            for related in info.related_errors:
                assert related in catalog.errors

    def test_suggest_error_code_from_exceptions(self):
        """Messages of launcher exceptions map back to their codes."""
        catalog = StartupErrorCatalog()

        cases = [
            (SpawnError("A", "working directory does not exist: /x"), "SPAWN_001"),
            (SpawnError("A", "executable not found: npm"), "SPAWN_002"),
            (ReadinessTimeoutError("A", "http://localhost:1", 60.0), "READY_001"),
            (UnexpectedExitError("A", 1), "EXIT_001"),
        ]
        for error, code in cases:
            assert catalog.suggest_error_code(error.message) == code

    def test_suggest_error_code_keywords(self):
        """Test keyword based suggestions."""
        catalog = StartupErrorCatalog()

        assert catalog.suggest_error_code("duplicate port 4001") == "CONFIG_002"
        assert catalog.suggest_error_code("found no primary service") == "CONFIG_002"
        assert catalog.suggest_error_code("Configuration broken") == "CONFIG_001"
        assert catalog.suggest_error_code("something odd") is None

    def test_format_error_help(self):
        """Test help text layout."""
        catalog = StartupErrorCatalog()

        help_text = catalog.format_error_help(
            "READY_001", {"service": "POSTMAN", "url": "http://localhost:4002"}
        )

        assert help_text.startswith("Service Readiness Timeout (READY_001)")
        assert "Severity: CRITICAL" in help_text
        assert "Category: Networking" in help_text
        assert "Common Causes:" in help_text
        assert "Solutions:" in help_text
        assert "  2. Give the service more time" in help_text
        assert "  • service: POSTMAN" in help_text
        assert "  • url: http://localhost:4002" in help_text

    def test_format_error_help_related(self):
        """Related errors are listed by title."""
        help_text = error_catalog.format_error_help("SPAWN_001")

        assert "Related Errors:" in help_text
        assert "SPAWN_002: Service Process Could Not Start" in help_text
        assert "Context:" not in help_text

    def test_format_unknown_error(self):
        """Unknown codes produce a short message."""
        assert (
            error_catalog.format_error_help("NOPE_1") == "Unknown error code: NOPE_1"
        )

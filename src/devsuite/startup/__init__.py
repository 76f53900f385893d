"""devsuite Startup System.

Ordered, readiness-gated startup of a development service suite with a
combined output stream and coordinated shutdown.
"""

from __future__ import annotations

from devsuite.startup.config_schema import (
    LauncherConfig,
    ServiceDescriptor,
    SuiteDefinition,
)
from devsuite.startup.health_checks import ReadinessProber
from devsuite.startup.orchestrator import SuiteOrchestrator
from devsuite.startup.output_multiplexer import OutputMultiplexer
from devsuite.startup.process_launcher import ProcessLauncher
from devsuite.startup.progress_reporter import StartupProgressReporter

__all__ = [
    "LauncherConfig",
    "OutputMultiplexer",
    "ProcessLauncher",
    "ReadinessProber",
    "ServiceDescriptor",
    "StartupProgressReporter",
    "SuiteDefinition",
    "SuiteOrchestrator",
]

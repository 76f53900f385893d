"""Global pytest configuration for logging setup.

This file ensures consistent logging behavior across all tests
and prevents caplog issues caused by logger configuration conflicts.
"""

import logging

import pytest


@pytest.fixture(autouse=True)
def setup_logging() -> None:
    """Global fixture to ensure consistent logging configuration across all tests.

    ``setup_logging`` in the launcher turns off propagation of the package
    logger; tests re-enable it so caplog keeps working afterwards.
    """
    loggers_to_configure = [
        "devsuite",
        "devsuite.startup",
        "devsuite.core",
    ]

    for logger_name in loggers_to_configure:
        logger = logging.getLogger(logger_name)
        logger.setLevel(logging.DEBUG)
        # Ensure propagation is enabled so caplog can capture messages
        logger.propagate = True

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)


@pytest.fixture(autouse=True)
def configure_caplog(caplog: pytest.LogCaptureFixture) -> None:
    """Global fixture to configure caplog for all tests."""
    caplog.set_level(logging.DEBUG)
    caplog.set_level(logging.DEBUG, logger="devsuite")

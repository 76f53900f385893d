"""devsuite - Development Suite Launcher.

Starts a suite of local development services one after another, waits for
each to answer over HTTP before starting the next, and tears everything down
on Ctrl+C or on the first failure.
"""

from devsuite.version import get_version

__version__ = get_version()

__all__ = [
    "__version__",
]

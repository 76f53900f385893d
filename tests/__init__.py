"""devsuite Test Suite.

- core/: exceptions and logging configuration
- startup/: configuration, launching, readiness, output and orchestration
- fakes/: scripted test doubles
"""

from __future__ import annotations

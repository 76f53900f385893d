"""Allow ``python -m devsuite``."""

import sys

from devsuite.startup.orchestrator import main

if __name__ == "__main__":
    sys.exit(main())

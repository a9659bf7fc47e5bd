"""Entry point for running Termhost as a module."""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())

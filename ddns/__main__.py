"""Entry point: ``python -m ddns``."""

import sys

from ddns.cli import run

if __name__ == "__main__":
    sys.exit(run())

"""Main entry point for running crcalc as a module.

This allows running crcalc with:
    python -m crcalc
    python -m crcalc -e "2+2"

This is equivalent to running:
    python -m crcalc.cli
"""

from __future__ import annotations

import sys

from .cli import main_entry

if __name__ == "__main__":
    sys.exit(main_entry())

"""
Main entry point for the party rooms server.

Usage:
    python -m server.main

Or:
    python server/main.py
"""

import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from server.network.server import main


if __name__ == "__main__":
    main()

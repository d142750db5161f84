"""Convenience entry point to run the HeartSync TUI app.

Allows starting the application with `python main.py` from the project root.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the src/ directory is on sys.path so `import heartsync` works
ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from heartsync.frontend.cli.app import HeartSyncApp
from heartsync.frontend.cli.logging_config import configure_logging


def main() -> None:
    """Run the HeartSync Textual CLI application."""
    configure_logging()
    HeartSyncApp().run()


if __name__ == "__main__":
    main()

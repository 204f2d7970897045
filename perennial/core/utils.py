"""
Shared utilities for perennial.

Logging, workspace constants and small file helpers used by every layer.
"""

from __future__ import annotations

import json
import os
import sys
import threading
from pathlib import Path
from typing import Any, Optional

# =============================================================================
# Constants
# =============================================================================

# The perennial checkout. Sibling repositories live next to it.
PERENNIAL_ROOT = Path(os.environ.get("PERENNIAL_ROOT", Path.cwd())).resolve()

# Release-branch checkouts, one directory per {repo}-{branch}
MAINTENANCE_DIRECTORY = PERENNIAL_ROOT.parent / "release-branches"

# Throwaway checkouts used when regenerating screenshots/thumbnails
IMAGES_DIRECTORY = PERENNIAL_ROOT.parent / "images-repos"

# Newline separated list of actively maintained simulations
ACTIVE_SIMS_FILE = PERENNIAL_ROOT / "data" / "active-sims"

MAIN_BRANCH = "main"

# Repos that get an npm update after checkout (the sim itself is added per call)
NPM_UPDATE_REPOS = ("chipper", "perennial-alias")


# =============================================================================
# Logging
# =============================================================================


class Logger:
    """Operator-facing console output.

    Colors are on when stdout is a terminal. Lines are written under a lock so
    output from concurrent checkout workers does not interleave.
    """

    COLORS = {
        "reset": "\033[0m",
        "red": "\033[91m",
        "green": "\033[92m",
        "yellow": "\033[93m",
        "blue": "\033[94m",
        "cyan": "\033[96m",
        "bold": "\033[1m",
        "dim": "\033[2m",
    }

    def __init__(self, use_color: Optional[bool] = None, verbose: bool = False):
        if use_color is None:
            self._use_color = sys.stdout.isatty()
        else:
            self._use_color = use_color
        self._verbose = verbose
        self._lock = threading.Lock()

    def set_color(self, use_color: bool) -> None:
        self._use_color = use_color

    def set_verbose(self, verbose: bool) -> None:
        self._verbose = verbose

    def _color(self, text: str, color: str) -> str:
        if not self._use_color:
            return text
        return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"

    def _print(self, line: str) -> None:
        with self._lock:
            print(line, flush=True)

    def header(self, message: str) -> None:
        """Print a section header."""
        self._print(f"\n{self._color('===', 'cyan')} {self._color(message, 'bold')} {self._color('===', 'cyan')}")

    def info(self, message: str) -> None:
        self._print(f"  {message}")

    def success(self, message: str) -> None:
        self._print(f"  {self._color('[OK]', 'green')} {message}")

    def warning(self, message: str) -> None:
        self._print(f"  {self._color('[WARN]', 'yellow')} {message}")

    def error(self, message: str) -> None:
        """Print an error message."""
        self._print(f"  {self._color('[ERROR]', 'red')} {message}")

    def debug(self, message: str) -> None:
        """Only printed with --verbose."""
        if self._verbose:
            self._print(f"  {self._color('[DEBUG]', 'blue')} {self._color(message, 'dim')}")

    def dim(self, message: str) -> None:
        self._print(f"  {self._color(message, 'dim')}")

    def table_row(self, col1: str, col2: str, col1_width: int = 30) -> None:
        """Print a table row with two columns."""
        self._print(f"  {col1:<{col1_width}} {col2}")


# Global logger instance
log = Logger()


# =============================================================================
# File Utilities
# =============================================================================


def read_json(path: Path) -> Any:
    """Load a JSON file."""
    return json.loads(Path(path).read_text())


def write_json(path: Path, data: Any) -> None:
    """Write data as indented JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n")


def get_active_sims(active_sims_file: Optional[Path] = None) -> list[str]:
    """Read the list of active simulation repos.

    Blank lines are ignored. Returns an empty list when the file is missing.
    """
    path = active_sims_file or ACTIVE_SIMS_FILE
    if not path.exists():
        return []
    return [line.strip() for line in path.read_text().splitlines() if line.strip()]

"""
perennial.core - Foundation layer for perennial.

Exports logging, the error taxonomy, the process runner and git plumbing.
"""

# Utils
from perennial.core.utils import (
    # Logging
    log,
    Logger,
    # Constants
    PERENNIAL_ROOT,
    MAINTENANCE_DIRECTORY,
    IMAGES_DIRECTORY,
    MAIN_BRANCH,
    # File utilities
    read_json,
    write_json,
    get_active_sims,
)

# Errors
from perennial.core.errors import (
    PerennialError,
    ValidationError,
    ParseError,
    NotFoundError,
    IllegalStateError,
    ConfigError,
    BuildAbortedError,
    ProcessExecutionError,
    ExecuteError,
)

# Process runner
from perennial.core.execute import ExecuteResult, execute

# Timing
from perennial.core.timing import PhaseTimer, format_duration

__all__ = [
    # Logging
    "log",
    "Logger",
    # Constants
    "PERENNIAL_ROOT",
    "MAINTENANCE_DIRECTORY",
    "IMAGES_DIRECTORY",
    "MAIN_BRANCH",
    # File utilities
    "read_json",
    "write_json",
    "get_active_sims",
    # Errors
    "PerennialError",
    "ValidationError",
    "ParseError",
    "NotFoundError",
    "IllegalStateError",
    "ConfigError",
    "BuildAbortedError",
    "ProcessExecutionError",
    "ExecuteError",
    # Process runner
    "ExecuteResult",
    "execute",
    # Timing
    "PhaseTimer",
    "format_duration",
]

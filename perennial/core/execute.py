"""
Process runner for perennial.

Runs git, npm, grunt and rsync with explicit argv lists and an explicit cwd.
Two error modes:

    reject  - return stdout, raise ProcessExecutionError on nonzero exit
    resolve - always return an ExecuteResult describing what happened
"""

from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from perennial.core.errors import ProcessExecutionError
from perennial.core.utils import log


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ExecuteResult:
    """Outcome of a command run in resolve mode."""

    code: int
    stdout: str
    stderr: str
    cwd: str
    time: float
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.code == 0


# =============================================================================
# Execution
# =============================================================================


def execute(
    cmd: str,
    args: list[str],
    cwd: Union[str, Path],
    errors: str = "reject",
    env: Optional[dict[str, str]] = None,
) -> Union[str, ExecuteResult]:
    """Run ``cmd args`` in ``cwd``.

    In ``reject`` mode the captured stdout is returned and any nonzero exit
    (or spawn failure, reported as code -1) raises ProcessExecutionError.
    In ``resolve`` mode an ExecuteResult is returned for every outcome.
    """
    if errors not in ("reject", "resolve"):
        raise ValueError(f"unknown errors mode: {errors}")

    cwd = str(cwd)
    full_env = None
    if env is not None:
        full_env = dict(os.environ)
        full_env.update(env)

    log.debug(f"running {cmd} {' '.join(args)} from {cwd}")
    start = time.monotonic()

    try:
        proc = subprocess.run(
            [cmd, *args],
            cwd=cwd,
            env=full_env,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        elapsed = time.monotonic() - start
        if errors == "reject":
            raise ProcessExecutionError(cmd, args, cwd, "", str(e), -1, elapsed) from e
        return ExecuteResult(code=-1, stdout="", stderr="", cwd=cwd, time=elapsed, error=str(e))

    elapsed = time.monotonic() - start
    log.debug(f"{cmd} exited with {proc.returncode} after {elapsed:.1f}s")

    if errors == "resolve":
        return ExecuteResult(
            code=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
            cwd=cwd,
            time=elapsed,
        )

    if proc.returncode != 0:
        raise ProcessExecutionError(
            cmd, args, cwd, proc.stdout, proc.stderr, proc.returncode, elapsed
        )
    return proc.stdout

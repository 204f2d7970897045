"""
Error taxonomy for perennial.

Every failure the pipeline raises on purpose derives from PerennialError so
callers can tell expected aborts apart from programming errors.
"""

from __future__ import annotations

from typing import Optional


class PerennialError(RuntimeError):
    """Base class for all expected perennial failures."""


class ValidationError(PerennialError):
    """A build request had the wrong shape."""


class ParseError(PerennialError):
    """A version string or branch name could not be parsed."""


class NotFoundError(PerennialError):
    """A queried object (commit, file, dependency) does not exist."""


class IllegalStateError(PerennialError):
    """An operation was attempted on an object in the wrong state."""


class ConfigError(PerennialError):
    """The build-server configuration file is missing or incomplete."""


class BuildAbortedError(PerennialError):
    """A queued build task was aborted."""


class ProcessExecutionError(PerennialError):
    """An external command failed to spawn or exited nonzero.

    Carries everything needed to diagnose the failure after the fact.
    """

    def __init__(
        self,
        cmd: str,
        args: list[str],
        cwd: str,
        stdout: str,
        stderr: str,
        code: int,
        time: float,
        message: Optional[str] = None,
    ):
        self.cmd = cmd
        self.args_list = list(args)
        self.cwd = cwd
        self.stdout = stdout
        self.stderr = stderr
        self.code = code
        self.time = time

        text = message or f"{cmd} {' '.join(args)} in {cwd} failed with exit code {code}"
        if stdout:
            text += f"\nstdout:\n{stdout}"
        if stderr:
            text += f"\nstderr:\n{stderr}"
        super().__init__(text)


# Short name used throughout the process-running code
ExecuteError = ProcessExecutionError

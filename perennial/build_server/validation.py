"""
Build task validation.

Checks run in a fixed order and stop at the first problem, which is reported
as a ValidationError naming the offending value.
"""

from __future__ import annotations

import re

from perennial.build_server.config import DEV_SERVER
from perennial.build_server.task import BuildTask
from perennial.common.dependencies import COMMENT_KEY
from perennial.common.release_branch import REPO_PATTERN
from perennial.core.errors import ValidationError

SHA_PATTERN = re.compile(r"^[a-f0-9]{40}$")
API_1_VERSION_PATTERN = re.compile(r"^(\d+\.\d+\.\d+)(?:-.*)?$")


def validate_task(task: BuildTask) -> str:
    """Validate the shape of a task and return its resolved branch.

    Raises:
        ValidationError: On the first rule the task violates.
    """
    branch = task.resolved_branch
    if branch is None:
        raise ValidationError("Branch must be provided.")

    if not REPO_PATTERN.match(task.sim_name or ""):
        raise ValidationError(f"invalid simName {task.sim_name}")

    for key, value in task.repos.items():
        if not REPO_PATTERN.match(key):
            raise ValidationError(f"invalid simName in dependencies: {key}")

        if key == COMMENT_KEY:
            if not isinstance(value, str):
                raise ValidationError("invalid comment in dependencies: should be a string")
            continue

        if not isinstance(value, dict) or "sha" not in value:
            raise ValidationError(f"invalid item in dependencies. key: {key} value: {value}")
        if not isinstance(value["sha"], str) or not SHA_PATTERN.match(value["sha"]):
            raise ValidationError(
                f"invalid sha in dependencies. key: {key} value: {value} sha: {value['sha']}"
            )

    return branch


def normalize_version(task: BuildTask) -> str:
    """Version to build, after api 1.0 suffix handling.

    Api 1.0 requests carry versions like ``1.2.3-rc.1``. Dev deploys keep the
    whole string; production deploys keep only ``MAJOR.MINOR.MAINTENANCE``.
    Other api versions are used as-is.

    Raises:
        ValidationError: If an api 1.0 version is not a version.
    """
    if task.api != "1.0":
        return task.version

    match = API_1_VERSION_PATTERN.match(task.version or "")
    if not match:
        raise ValidationError(f"invalid version number: {task.version}")
    if DEV_SERVER in task.servers:
        return match.group(0)
    return match.group(1)

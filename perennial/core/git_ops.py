"""
Git operations for perennial.

Thin wrappers over the git CLI. Reads "as of a ref" go through plumbing
(`git show`, `git merge-base`) so they never disturb a working copy; the few
operations that really need a checkout hold a per-directory lock.
"""

from __future__ import annotations

import json
import re
import threading
from pathlib import Path
from typing import Any, Union

from perennial.core.errors import NotFoundError, ProcessExecutionError
from perennial.core.execute import execute
from perennial.core.utils import log

# =============================================================================
# Constants
# =============================================================================

REMOTE_URL_TEMPLATE = "https://github.com/phetsims/{repo}.git"

SHA_PATTERN = re.compile(r"^[a-f0-9]{40}$")

PathLike = Union[str, Path]


def remote_url(repo: str) -> str:
    """Clone URL for a repository."""
    return REMOTE_URL_TEMPLATE.format(repo=repo)


# =============================================================================
# Working Copy Locks
# =============================================================================

_locks_guard = threading.Lock()
_repo_locks: dict[str, threading.RLock] = {}


def repo_lock(repo_dir: PathLike) -> threading.RLock:
    """The lock guarding checkouts in one on-disk working copy."""
    key = str(Path(repo_dir).resolve())
    with _locks_guard:
        if key not in _repo_locks:
            _repo_locks[key] = threading.RLock()
        return _repo_locks[key]


# =============================================================================
# Working Copy Mutation
# =============================================================================


def clone_or_fetch_directory(repo: str, directory: PathLike) -> Path:
    """Clone ``repo`` into ``directory/repo``, or fetch if it already exists."""
    directory = Path(directory)
    repo_dir = directory / repo
    if repo_dir.exists():
        execute("git", ["fetch"], repo_dir)
    else:
        log.debug(f"cloning {repo} into {directory}")
        execute("git", ["clone", remote_url(repo), repo], directory)
    return repo_dir


def checkout_directory(ref: str, repo_dir: PathLike) -> None:
    """Check out a branch or sha in a working copy."""
    execute("git", ["checkout", ref], repo_dir)


def pull_directory(repo_dir: PathLike) -> None:
    execute("git", ["pull"], repo_dir)


def npm_update_directory(repo_dir: PathLike) -> None:
    execute("npm", ["prune"], repo_dir)
    execute("npm", ["update"], repo_dir)


# =============================================================================
# Plumbing Reads
# =============================================================================


def rev_parse(repo_dir: PathLike, ref: str) -> str:
    """Full sha for ``ref``."""
    return str(execute("git", ["rev-parse", ref], repo_dir)).strip()


def resolve_branch_ref(repo_dir: PathLike, branch: str) -> str:
    """Name to use for ``branch`` in plumbing calls.

    Prefers the local branch and falls back to the remote tracking branch,
    so reads work in clones where the branch was never checked out.
    """
    result = execute(
        "git", ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"],
        repo_dir, errors="resolve",
    )
    if result.code == 0:
        return branch
    return f"origin/{branch}"


def is_ancestor(repo_dir: PathLike, ancestor: str, descendant: str) -> bool:
    """Whether ``ancestor`` is reachable from ``descendant``."""
    result = execute(
        "git", ["merge-base", "--is-ancestor", ancestor, descendant],
        repo_dir, errors="resolve",
    )
    if result.code == 0:
        return True
    if result.code == 1:
        return False
    raise ProcessExecutionError(
        "git", ["merge-base", "--is-ancestor", ancestor, descendant],
        result.cwd, result.stdout, result.stderr or (result.error or ""), result.code, result.time,
    )


def first_diverging_commit(repo_dir: PathLike, primary: str, secondary: str) -> str:
    """Earliest commit in the symmetric difference of two refs.

    Raises:
        NotFoundError: If the refs have not diverged.
    """
    stdout = str(execute(
        "git", ["log", f"{secondary}...{primary}", "--reverse", "--pretty=oneline"],
        repo_dir,
    ))
    lines = [line for line in stdout.strip().splitlines() if line.strip()]
    if not lines:
        raise NotFoundError(f"no diverging commit between {primary} and {secondary} in {repo_dir}")
    return lines[0].strip().split(" ")[0]


def commit_timestamp(repo_dir: PathLike, sha: str) -> int:
    """Committer timestamp of ``sha`` in milliseconds since the epoch."""
    stdout = str(execute("git", ["show", "-s", "--format=%ct", sha], repo_dir))
    return int(stdout.strip()) * 1000


def file_at_ref(repo_dir: PathLike, ref: str, path: str) -> str:
    """Contents of ``path`` as of ``ref``, without touching the working copy.

    Raises:
        NotFoundError: If the file does not exist at that ref.
    """
    result = execute("git", ["show", f"{ref}:{path}"], repo_dir, errors="resolve")
    if result.code == 0:
        return result.stdout
    stderr = result.stderr or ""
    if "does not exist" in stderr or "exists on disk, but not in" in stderr:
        raise NotFoundError(f"{path} does not exist at {ref} in {repo_dir}")
    raise ProcessExecutionError(
        "git", ["show", f"{ref}:{path}"], result.cwd, result.stdout,
        stderr or (result.error or ""), result.code, result.time,
    )


def json_at_ref(repo_dir: PathLike, ref: str, path: str) -> Any:
    """Parsed JSON file as of ``ref``."""
    return json.loads(file_at_ref(repo_dir, ref, path))


# =============================================================================
# Remote Queries
# =============================================================================


def get_branch_map(repo_dir: PathLike) -> dict[str, str]:
    """Map of remote branch name to tip sha, via ``git ls-remote``."""
    stdout = str(execute("git", ["ls-remote"], repo_dir))
    branch_map: dict[str, str] = {}
    for line in stdout.splitlines():
        match = re.match(r"^(\S+)\s+refs/heads/(\S+)$", line.strip())
        if match:
            branch_map[match.group(2)] = match.group(1)
    return branch_map


def get_branches(repo_dir: PathLike) -> list[str]:
    """Remote branch names."""
    return list(get_branch_map(repo_dir).keys())

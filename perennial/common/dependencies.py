"""
Dependency manifests (dependencies.json) as of a ref.

A release branch pins every repository it needs to an exact sha. Reading
those pins, and asking whether a pinned sha already contains some historical
commit, is how perennial tells which era of the toolchain a branch belongs to.
All reads use git plumbing against the sibling clones next to perennial, so
no working copy is ever switched away from main.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from perennial.common.chipper_version import ChipperVersion
from perennial.core import git_ops
from perennial.core.errors import NotFoundError
from perennial.core.utils import PERENNIAL_ROOT, log

# =============================================================================
# Constants
# =============================================================================

DEPENDENCIES_FILE = "dependencies.json"
PACKAGE_FILE = "package.json"

# Manifest key that holds free-form text rather than a repo pin
COMMENT_KEY = "comment"

BABEL_REPO = "babel"


@dataclass(frozen=True)
class FeatureMarker:
    """A capability that arrived with one commit in a dependency.

    A branch has the feature when the marker commit is an ancestor of (or
    equal to) the sha it pins for ``dependency``. ``negate`` flips the
    answer for markers that record a feature going away. ``when_missing``
    is returned when the branch does not depend on ``dependency`` at all;
    None means that case is an error.
    """

    dependency: str
    sha: str
    negate: bool = False
    when_missing: Optional[bool] = None


FEATURE_MARKERS: dict[str, FeatureMarker] = {
    "uses_es6": FeatureMarker("chipper", "80b4ad62cd8f2057b844f18d3c00cf5c0c89ed8d"),
    "uses_initialize_globals_query_parameters": FeatureMarker(
        "chipper", "e454f88ff51d1e3fabdb3a076d7407a2a9e9133c"
    ),
    "uses_old_phetio_standalone": FeatureMarker(
        "chipper", "4814d6966c54f250b1c0f3909b71f2b9cfcc7665", negate=True
    ),
    "uses_relative_sim_path": FeatureMarker(
        "phet-io", "e3fc26079358d86074358a6db3ebaf1af9725632", when_missing=True
    ),
    "uses_phetio_studio": FeatureMarker("chipper", "7375f6a57b5874b6bbf97a54c9a908f19f88d38f"),
    "uses_phetio_studio_index": FeatureMarker(
        "phet-io-wrappers", "7ec1a04a70fb9707b381b8bcab3ad070815ef7fe", when_missing=False
    ),
}


def with_babel(manifest: dict[str, Any], babel_branch: str) -> dict[str, Any]:
    """Copy of ``manifest`` with babel pinned to a branch tip instead of a sha."""
    result = dict(manifest)
    result[BABEL_REPO] = {"sha": babel_branch, "branch": babel_branch}
    return result


def dependency_repos(manifest: dict[str, Any]) -> list[str]:
    """Repos pinned by a manifest, in manifest order."""
    return [key for key in manifest if key != COMMENT_KEY]


# =============================================================================
# Snapshot Reader
# =============================================================================


class DependencySnapshot:
    """Reads manifests and ancestry from the clones under ``root``."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else PERENNIAL_ROOT.parent

    def repo_dir(self, repo: str) -> Path:
        return self.root / repo

    def _ref(self, repo: str, ref: str) -> str:
        if git_ops.SHA_PATTERN.match(ref):
            return ref
        return git_ops.resolve_branch_ref(self.repo_dir(repo), ref)

    def load(self, repo: str, ref: str) -> dict[str, Any]:
        """The dependency manifest of ``repo`` as of ``ref``."""
        log.debug(f"reading {DEPENDENCIES_FILE} of {repo} at {ref}")
        return git_ops.json_at_ref(self.repo_dir(repo), self._ref(repo, ref), DEPENDENCIES_FILE)

    def package_json(self, repo: str, ref: str) -> dict[str, Any]:
        """The package.json of ``repo`` as of ``ref``."""
        return git_ops.json_at_ref(self.repo_dir(repo), self._ref(repo, ref), PACKAGE_FILE)

    def file(self, repo: str, ref: str, path: str) -> str:
        return git_ops.file_at_ref(self.repo_dir(repo), self._ref(repo, ref), path)

    def first_diverging_commit(self, repo: str, primary: str, secondary: str) -> str:
        """First commit on ``primary`` that ``secondary`` does not share."""
        return git_ops.first_diverging_commit(self.repo_dir(repo), primary, secondary)

    def is_ancestor(self, repo: str, candidate: str, descendant: str) -> bool:
        return git_ops.is_ancestor(self.repo_dir(repo), candidate, descendant)

    def contains(self, repo: str, sha: str, pinned: str) -> bool:
        """Whether ``pinned`` is ``sha`` or descends from it."""
        return sha == pinned or self.is_ancestor(repo, sha, pinned)

    def dependency_sha(self, repo: str, ref: str, dependency: str) -> Optional[str]:
        """Sha ``repo`` pins for ``dependency`` at ``ref``, or None if not a dependency."""
        entry = self.load(repo, ref).get(dependency)
        if not isinstance(entry, dict):
            return None
        return entry.get("sha")

    def chipper_version(self, repo: str, ref: str) -> ChipperVersion:
        """Toolchain version pinned by ``repo`` at ``ref``."""
        sha = self.dependency_sha(repo, ref, "chipper")
        if sha is None:
            raise NotFoundError(f"{repo} at {ref} does not depend on chipper")
        data = json.loads(git_ops.file_at_ref(self.repo_dir("chipper"), sha, PACKAGE_FILE))
        return ChipperVersion.parse(data["version"])

    def has_feature(self, repo: str, ref: str, feature: str) -> bool:
        """Evaluate a FEATURE_MARKERS entry for ``repo`` at ``ref``.

        Raises:
            KeyError: For an unknown feature name.
            NotFoundError: If the branch lacks the dependency and the marker
                has no fallback.
        """
        marker = FEATURE_MARKERS[feature]
        pinned = self.dependency_sha(repo, ref, marker.dependency)
        if pinned is None:
            if marker.when_missing is None:
                raise NotFoundError(f"{repo} at {ref} does not depend on {marker.dependency}")
            return marker.when_missing

        result = self.is_ancestor(marker.dependency, marker.sha, pinned)
        log.debug(f"{feature} for {repo} {ref}: {result if not marker.negate else not result}")
        return not result if marker.negate else result

"""
Shared pytest fixtures for perennial tests.

Provides isolated build server configuration, throwaway checkout
directories, a scriptable dependency snapshot, and real scratch git
repositories for the plumbing tests.

Test Tier Markers:
  @pytest.mark.evergreen - Tests that always run, never skip (production tests)
  @pytest.mark.dev       - Development/WIP tests, toggle-able
"""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, Optional

import pytest

from perennial.build_server.config import BuildServerConfig
from perennial.common import release_branch as release_branch_module
from perennial.common.chipper_version import ChipperVersion
from perennial.common.dependencies import DependencySnapshot
from perennial.core.errors import NotFoundError


# =============================================================================
# Test Data Constants
# =============================================================================

SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test tiers."""
    config.addinivalue_line(
        "markers",
        "evergreen: tests that always run, never skip (production tests)"
    )
    config.addinivalue_line(
        "markers",
        "dev: development/WIP tests, toggle-able for active development"
    )


# =============================================================================
# Fake Snapshot
# =============================================================================


class FakeSnapshot(DependencySnapshot):
    """DependencySnapshot answering from dictionaries instead of git.

    ``manifests`` and ``packages`` are keyed by (repo, ref). ``ancestry`` is a
    set of (repo, ancestor, descendant) triples that count as ancestors.
    """

    def __init__(self, root: Optional[Path] = None):
        super().__init__(root or Path("/nonexistent"))
        self.manifests: dict[tuple[str, str], dict[str, Any]] = {}
        self.packages: dict[tuple[str, str], dict[str, Any]] = {}
        self.ancestry: set[tuple[str, str, str]] = set()
        self.chipper_versions: dict[tuple[str, str], ChipperVersion] = {}

    def load(self, repo: str, ref: str) -> dict[str, Any]:
        try:
            return self.manifests[(repo, ref)]
        except KeyError:
            raise NotFoundError(f"no manifest for {repo} {ref}") from None

    def package_json(self, repo: str, ref: str) -> dict[str, Any]:
        try:
            return self.packages[(repo, ref)]
        except KeyError:
            raise NotFoundError(f"no package.json for {repo} {ref}") from None

    def is_ancestor(self, repo: str, candidate: str, descendant: str) -> bool:
        return (repo, candidate, descendant) in self.ancestry

    def chipper_version(self, repo: str, ref: str) -> ChipperVersion:
        return self.chipper_versions[(repo, ref)]


@pytest.fixture
def fake_snapshot(tmp_path: Path) -> FakeSnapshot:
    return FakeSnapshot(tmp_path / "clones")


# =============================================================================
# Build Server Fixtures
# =============================================================================


@pytest.fixture
def build_config(tmp_path: Path) -> BuildServerConfig:
    """Config whose deploy roots live under tmp_path."""
    html = tmp_path / "sims" / "html"
    phetio = tmp_path / "sims" / "phet-io"
    html.mkdir(parents=True)
    phetio.mkdir(parents=True)
    return BuildServerConfig(
        build_server_authorization_code="secret",
        dev_username="phet-admin",
        html_sims_directory=f"{html}/",
        phetio_sims_directory=f"{phetio}/",
        server_token="token-123",
    )


@pytest.fixture
def maintenance_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point release branch checkouts at a temp directory."""
    directory = tmp_path / "release-branches"
    directory.mkdir()
    monkeypatch.setattr(release_branch_module, "MAINTENANCE_DIRECTORY", directory)
    return directory


def write_checkout(
    maintenance_dir: Path,
    sim: str,
    branch: str,
    version: str,
    chipper: str = "2.0.0",
    phet: Optional[dict[str, Any]] = None,
) -> Path:
    """Lay out the files a finished checkout update would leave behind."""
    checkout = maintenance_dir / f"{sim}-{branch}"
    sim_dir = checkout / sim
    (sim_dir / "build" / "phet").mkdir(parents=True)
    (sim_dir / "build" / "phet-io").mkdir(parents=True)
    (checkout / "chipper").mkdir(parents=True)
    (checkout / "chipper" / "package.json").write_text(json.dumps({"version": chipper}))
    (sim_dir / "package.json").write_text(json.dumps({"version": version, "phet": phet or {}}))
    return checkout


# =============================================================================
# Scratch Git Repositories
# =============================================================================


def git(repo_dir: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=repo_dir, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def commit_file(repo_dir: Path, name: str, contents: str, message: str) -> str:
    (repo_dir / name).write_text(contents)
    git(repo_dir, "add", name)
    git(repo_dir, "commit", "-q", "-m", message)
    return git(repo_dir, "rev-parse", "HEAD")


@pytest.fixture
def make_repo(tmp_path: Path):
    """Factory creating an initialized git repo under tmp_path/clones."""

    def _make(name: str) -> Path:
        repo_dir = tmp_path / "clones" / name
        repo_dir.mkdir(parents=True)
        git(repo_dir, "init", "-q", "-b", "main")
        git(repo_dir, "config", "user.email", "dev@example.com")
        git(repo_dir, "config", "user.name", "Dev")
        git(repo_dir, "config", "commit.gpgsign", "false")
        return repo_dir

    return _make

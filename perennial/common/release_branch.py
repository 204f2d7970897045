"""
Release branches of simulations.

A ReleaseBranch names one ``(repo, branch, brands, released?)`` tuple, e.g.
``molarity 1.5 phet,phet-io``. It knows where its checkout lives, how to bring
that checkout up to date with the pinned dependencies, how to build and smoke
test it, which era of the toolchain it belongs to, and how to find every
branch that is a candidate for a maintenance release.
"""

from __future__ import annotations

import dataclasses
import json
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

import yaml

from perennial.common.brand import Brand
from perennial.common.build_arguments import BuildOptions, get_build_arguments
from perennial.common.chipper_version import ChipperVersion
from perennial.common.dependencies import (
    COMMENT_KEY,
    DEPENDENCIES_FILE,
    PACKAGE_FILE,
    BABEL_REPO,
    DependencySnapshot,
    dependency_repos,
    with_babel,
)
from perennial.common.metadata import sim_metadata, sim_phetio_metadata
from perennial.common.page_load import page_load, with_server
from perennial.common.sim_version import SimVersion
from perennial.core import git_ops
from perennial.core.errors import IllegalStateError, NotFoundError, ValidationError
from perennial.core.execute import ExecuteResult, execute
from perennial.core.utils import (
    MAIN_BRANCH,
    MAINTENANCE_DIRECTORY,
    NPM_UPDATE_REPOS,
    get_active_sims,
    log,
    read_json,
)

# =============================================================================
# Constants
# =============================================================================

REPO_PATTERN = re.compile(r"^[a-z]+(-[a-z]+)*$")
RELEASE_BRANCH_PATTERN = re.compile(r"^(\d+)\.(\d+)$")

GRUNT_COMMAND = "grunt"

EXCLUSIONS_FILE = Path(__file__).resolve().parent.parent / "data" / "maintenance_exclusions.yaml"

# Dependencies that never get their own {sim}-{branch} branches
STATUS_IGNORED_DEPENDENCIES = ("phet-io-wrapper-sonification",)

CHECK_WAIT_AFTER_LOAD = 20000  # ms
DEFAULT_CHECKOUT_WORKERS = 8


@lru_cache(maxsize=1)
def load_maintenance_exclusions() -> tuple[tuple[str, str], ...]:
    """(repo, branch) pairs maintenance discovery always drops."""
    data = yaml.safe_load(EXCLUSIONS_FILE.read_text()) or {}
    return tuple((entry["repo"], str(entry["branch"])) for entry in data.get("exclusions", []))


# =============================================================================
# Release Branch
# =============================================================================


@dataclass(frozen=True)
class ReleaseBranch:
    """One maintained (or maintainable) release branch of a simulation."""

    repo: str
    branch: str
    brands: tuple[str, ...]
    is_released: bool = True
    snapshot: DependencySnapshot = field(
        default_factory=DependencySnapshot, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        if not REPO_PATTERN.match(self.repo):
            raise ValidationError(f"invalid repo name: {self.repo}")
        object.__setattr__(self, "brands", tuple(str(brand) for brand in self.brands))

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def serialize(self) -> dict[str, Any]:
        return {
            "repo": self.repo,
            "branch": self.branch,
            "brands": list(self.brands),
            "isReleased": self.is_released,
        }

    @classmethod
    def deserialize(cls, data: dict[str, Any]) -> "ReleaseBranch":
        return cls(data["repo"], data["branch"], tuple(data["brands"]), bool(data["isReleased"]))

    def __str__(self) -> str:
        text = f"{self.repo} {self.branch} {','.join(self.brands)}"
        if not self.is_released:
            text += " (unpublished)"
        return text

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    @staticmethod
    def get_checkout_directory(repo: str, branch: str) -> Path:
        """Directory holding the full checkout of ``repo`` at ``branch``."""
        return Path(MAINTENANCE_DIRECTORY) / f"{repo}-{branch}"

    @property
    def checkout_directory(self) -> Path:
        return ReleaseBranch.get_checkout_directory(self.repo, self.branch)

    @property
    def repo_directory(self) -> Path:
        return self.checkout_directory / self.repo

    def get_local_phet_built_html_path(self) -> str:
        """Path of the built English phet HTML, relative to the checkout."""
        chipper2 = self.uses_chipper2()
        return f"build/{'phet/' if chipper2 else ''}{self.repo}_en{'_phet' if chipper2 else ''}.html"

    def get_local_phetio_built_html_path(self) -> str:
        chipper2 = self.uses_chipper2()
        return f"build/{'phet-io/' if chipper2 else ''}{self.repo}{'_all_phet-io' if chipper2 else '_en-phetio'}.html"

    def get_phetio_standalone_query_parameter(self) -> str:
        if self.uses_old_phetio_standalone():
            return "phet-io.standalone"
        return "phetioStandalone"

    def get_chipper_version(self) -> ChipperVersion:
        """Version of the chipper in this branch's checkout."""
        return ChipperVersion.from_package_json(self.checkout_directory / "chipper" / PACKAGE_FILE)

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    def update_checkout(
        self,
        override_dependencies: Optional[dict[str, Any]] = None,
        babel_branch: str = MAIN_BRANCH,
        max_workers: int = DEFAULT_CHECKOUT_WORKERS,
    ) -> None:
        """Bring the checkout directory up to date with the branch tip.

        Every dependency pinned by the branch (or given in
        ``override_dependencies``) is cloned or fetched and checked out at its
        pinned sha. Distinct dependencies are updated concurrently.
        """
        overrides = override_dependencies or {}
        log.info(f"updating checkout for {self}")

        checkout_dir = self.checkout_directory
        if not checkout_dir.exists():
            log.info(f"creating directory {checkout_dir}")
            checkout_dir.mkdir(parents=True, exist_ok=True)

        repo_dir = git_ops.clone_or_fetch_directory(self.repo, checkout_dir)
        with git_ops.repo_lock(repo_dir):
            git_ops.checkout_directory(self.branch, repo_dir)
            git_ops.pull_directory(repo_dir)

        manifest = with_babel(read_json(repo_dir / DEPENDENCIES_FILE), babel_branch)

        repos = dependency_repos(manifest)
        repos += [repo for repo in dependency_repos(overrides) if repo not in repos]

        def update_dependency(repo: str) -> None:
            sha = overrides[repo]["sha"] if repo in overrides else manifest[repo]["sha"]
            dependency_dir = git_ops.clone_or_fetch_directory(repo, checkout_dir)
            with git_ops.repo_lock(dependency_dir):
                git_ops.checkout_directory(sha, dependency_dir)
                # babel tracks a branch tip rather than a sha
                if repo == BABEL_REPO:
                    git_ops.pull_directory(dependency_dir)
            if repo in NPM_UPDATE_REPOS or repo == self.repo:
                log.info(f"npm update {repo} in {checkout_dir}")
                git_ops.npm_update_directory(dependency_dir)

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {pool.submit(update_dependency, repo): repo for repo in repos}
            for future in as_completed(futures):
                future.result()

        # Handy for running commands by hand against this checkout
        git_ops.clone_or_fetch_directory("perennial", checkout_dir)

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def build(self, options: Optional[BuildOptions] = None, **overrides: Any) -> None:
        """Run grunt in the checkout.

        Defaults build every brand of the branch for all locales with all and
        debug HTML and no lint. Keyword overrides use BuildOptions names.

        Raises:
            ProcessExecutionError: If grunt fails.
        """
        options = options or BuildOptions(
            brands=list(self.brands),
            all_html=True,
            debug_html=True,
            lint=False,
            locales="*",
        )
        if overrides:
            options = dataclasses.replace(options, **overrides)

        args = get_build_arguments(self.get_chipper_version(), options)
        log.info(f"building {self.checkout_directory} with grunt {' '.join(args)}")
        execute(GRUNT_COMMAND, args, self.repo_directory)

    def transpile(self) -> ExecuteResult:
        """Best-effort transpile. Older branches have no such task."""
        log.info(f"transpiling {self.checkout_directory}")
        result = execute(GRUNT_COMMAND, ["output-js-project"], self.repo_directory, errors="resolve")
        if result.code != 0:
            log.warning(f"transpile failed for {self} (exit {result.code})")
        return result

    # -------------------------------------------------------------------------
    # Smoke Tests
    # -------------------------------------------------------------------------

    def _check_url(self, path: str) -> Optional[str]:
        try:
            with with_server(self.checkout_directory) as port:
                url = f"http://localhost:{port}/{path}"
                try:
                    page_load(url, wait_after_load=CHECK_WAIT_AFTER_LOAD)
                except Exception as e:
                    return f"Failure for {url}: {e}"
                return None
        except Exception as e:
            return f"[ERROR] Failure to check: {e}"

    def check_unbuilt(self) -> Optional[str]:
        """Load the unbuilt sim with fuzzing. None on success, else a diagnostic."""
        return self._check_url(f"{self.repo}/{self.repo}_en.html?brand=phet&ea&fuzzMouse&fuzzTouch")

    def check_built(self) -> Optional[str]:
        """Load the built phet sim with fuzzing. None on success, else a diagnostic."""
        try:
            chipper2 = self.uses_chipper2()
        except Exception as e:
            return f"[ERROR] Failure to check: {e}"
        html = f"{self.repo}_en{'_phet' if chipper2 else ''}.html"
        return self._check_url(f"{self.repo}/build/{'phet/' if chipper2 else ''}{html}?fuzzMouse&fuzzTouch")

    # -------------------------------------------------------------------------
    # Manifest Queries
    # -------------------------------------------------------------------------

    def get_dependencies(self) -> dict[str, Any]:
        return self.snapshot.load(self.repo, self.branch)

    def get_sim_version(self) -> SimVersion:
        return SimVersion.parse(self.snapshot.package_json(self.repo, self.branch)["version"])

    def includes_sha(self, repo: str, sha: str) -> bool:
        """Whether the pinned ``repo`` is ``sha`` or contains it. False if not a dependency."""
        entry = self.get_dependencies().get(repo)
        if not isinstance(entry, dict):
            return False
        return self.snapshot.contains(repo, sha, entry["sha"])

    def is_missing_sha(self, repo: str, sha: str) -> bool:
        """Whether the pinned ``repo`` lacks ``sha``. False if not a dependency."""
        entry = self.get_dependencies().get(repo)
        if not isinstance(entry, dict):
            return False
        return not self.snapshot.contains(repo, sha, entry["sha"])

    def get_diverging_sha(self) -> str:
        """First commit on this branch that main does not have.

        Raises:
            NotFoundError: If the branch never diverged from main.
        """
        repo_dir = self.snapshot.repo_dir(self.repo)
        execute("git", ["fetch"], repo_dir)
        return self.snapshot.first_diverging_commit(
            self.repo, f"origin/{self.branch}", f"origin/{MAIN_BRANCH}"
        )

    def get_diverging_timestamp(self) -> int:
        return git_ops.commit_timestamp(self.snapshot.repo_dir(self.repo), self.get_diverging_sha())

    def with_file(self, path: str, predicate: Callable[[str], bool]) -> bool:
        """Run ``predicate`` over a file of this branch, False if it does not exist."""
        try:
            contents = self.snapshot.file(self.repo, self.branch, path)
        except NotFoundError:
            return False
        return predicate(contents)

    # -------------------------------------------------------------------------
    # Toolchain Era Probes
    # -------------------------------------------------------------------------

    def has_feature(self, feature: str) -> bool:
        """Evaluate a named entry of FEATURE_MARKERS against this branch."""
        return self.snapshot.has_feature(self.repo, self.branch, feature)

    def uses_es6(self) -> bool:
        return self.has_feature("uses_es6")

    def uses_initialize_globals_query_parameters(self) -> bool:
        return self.has_feature("uses_initialize_globals_query_parameters")

    def uses_old_phetio_standalone(self) -> bool:
        return self.has_feature("uses_old_phetio_standalone")

    def uses_relative_sim_path(self) -> bool:
        return self.has_feature("uses_relative_sim_path")

    def uses_phetio_studio(self) -> bool:
        return self.has_feature("uses_phetio_studio")

    def uses_phetio_studio_index(self) -> bool:
        return self.has_feature("uses_phetio_studio_index")

    def uses_chipper2(self) -> bool:
        version = self.snapshot.chipper_version(self.repo, self.branch)
        return version.major != 0 or version.minor != 0

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_status(
        self, get_branch_map: Optional[Callable[[str], dict[str, str]]] = None
    ) -> list[str]:
        """Advisory diagnostics, each prefixed [INFO], [WARNING] or [ERROR]."""
        if get_branch_map is None:
            def get_branch_map(repo: str) -> dict[str, str]:
                return git_ops.get_branch_map(self.snapshot.repo_dir(repo))

        results: list[str] = []
        dependencies = self.get_dependencies()
        dependency_names = [
            key for key in dependencies
            if key not in (COMMENT_KEY, self.repo) and key not in STATUS_IGNORED_DEPENDENCIES
        ]

        if self.repo in dependencies:
            try:
                repo_dir = self.snapshot.repo_dir(self.repo)
                current = git_ops.rev_parse(repo_dir, git_ops.resolve_branch_ref(repo_dir, self.branch))
                previous = git_ops.rev_parse(repo_dir, f"{current}^")
                if dependencies[self.repo]["sha"] != previous:
                    results.append("[INFO] Potential changes (dependency is not previous commit)")
                    results.append(f"[INFO] {current} {previous} {dependencies[self.repo]['sha']}")
                if self.get_sim_version().test_type == "rc" and self.is_released:
                    results.append("[INFO] Release candidate version detected (see if there is a QA issue)")
            except Exception as e:
                results.append(f"[ERROR] Failure to check current/previous commit: {e}")
        else:
            results.append("[WARNING] Own repository not included in dependencies")

        potential_release_branch = f"{self.repo}-{self.branch}"
        for dependency in dependency_names:
            branch_map = get_branch_map(dependency)
            if potential_release_branch in branch_map:
                if dependencies[dependency]["sha"] != branch_map[potential_release_branch]:
                    results.append(
                        f"[WARNING] Dependency mismatch for {dependency} on branch {potential_release_branch}"
                    )
        return results

    # -------------------------------------------------------------------------
    # Redeploy
    # -------------------------------------------------------------------------

    def redeploy_production(
        self,
        locales: Union[str, list[str]] = "*",
        request: Optional[Callable[..., None]] = None,
    ) -> None:
        """Ask the build server to redeploy this branch to production.

        Raises:
            IllegalStateError: If the branch was never released.
        """
        if not self.is_released:
            raise IllegalStateError(f"Should not redeploy a non-released branch: {self}")

        if request is None:
            from perennial.common.build_server_request import build_server_request
            request = build_server_request

        version = self.get_sim_version()
        dependencies = self.get_dependencies()
        request(
            self.repo,
            str(version),
            self.branch,
            dependencies,
            locales=locales,
            brands=list(self.brands),
            servers=["production"],
        )

    # -------------------------------------------------------------------------
    # Maintenance Discovery
    # -------------------------------------------------------------------------

    @staticmethod
    def combine_lists(branches: Iterable["ReleaseBranch"]) -> list["ReleaseBranch"]:
        """Merge entries sharing (repo, branch) by joining their brands, then sort."""
        combined: dict[tuple[str, str], ReleaseBranch] = {}
        for branch in branches:
            key = (branch.repo, branch.branch)
            if key in combined:
                existing = combined[key]
                brands = existing.brands + tuple(b for b in branch.brands if b not in existing.brands)
                combined[key] = dataclasses.replace(existing, brands=brands)
            else:
                combined[key] = branch
        return sorted(combined.values(), key=lambda b: (b.repo, b.branch))

    @classmethod
    def get_all_maintenance_branches(
        cls,
        snapshot: Optional[DependencySnapshot] = None,
        active_sims: Optional[list[str]] = None,
        fetch_sim_metadata: Callable[[], dict[str, Any]] = sim_metadata,
        fetch_phetio_metadata: Callable[..., list[dict[str, Any]]] = sim_phetio_metadata,
    ) -> list["ReleaseBranch"]:
        """Every release branch that is a candidate for a maintenance release.

        That is published phet branches, published phet-io branches, and
        local release branches newer than what is in production.
        """
        snapshot = snapshot or DependencySnapshot()
        active_sims = active_sims if active_sims is not None else get_active_sims()

        log.info("loading phet brand release branches")
        metadata = fetch_sim_metadata()
        projects = metadata.get("projects", [])
        phet_branches = []
        for project in projects:
            repo = project["name"][project["name"].index("/") + 1:]
            version = project["version"]
            phet_branches.append(
                cls(repo, f"{version['major']}.{version['minor']}", (Brand.PHET.value,), True, snapshot)
            )

        log.info("loading phet-io brand release branches")
        phetio_branches = []
        for sim in fetch_phetio_metadata(active=True, latest=True):
            if not (sim.get("active") and sim.get("latest")):
                continue
            branch = f"{sim['versionMajor']}.{sim['versionMinor']}"
            if sim.get("versionSuffix"):
                branch += f"-{sim['versionSuffix']}"
            phetio_branches.append(cls(sim["name"], branch, (Brand.PHET_IO.value,), True, snapshot))

        log.info("loading unreleased release branches")
        released = {(b.repo, b.branch) for b in phet_branches + phetio_branches}
        production_versions = {project["name"]: project["version"] for project in projects}
        unreleased_branches = []

        for repo in active_sims:
            repo_dir = snapshot.repo_dir(repo)
            package_path = repo_dir / PACKAGE_FILE
            if not package_path.exists():
                log.warning(f"no local checkout of {repo}, skipping")
                continue
            if json.loads(package_path.read_text()).get("phet", {}).get("ignoreForAutomatedMaintenanceReleases"):
                continue

            production = production_versions.get(f"html/{repo}")
            fetched = False
            for branch in git_ops.get_branches(repo_dir):
                if (repo, branch) in released:
                    continue
                match = RELEASE_BRANCH_PATTERN.match(branch)
                if not match:
                    continue
                major, minor = int(match.group(1)), int(match.group(2))
                if production and (major, minor) <= (production["major"], production["minor"]):
                    continue

                if not fetched:
                    execute("git", ["fetch"], repo_dir)
                    fetched = True
                package = snapshot.package_json(repo, branch)
                phet = package.get("phet", {})
                if phet.get("ignoreForAutomatedMaintenanceReleases"):
                    continue
                brands = [Brand.PHET.value]
                if Brand.PHET_IO.value in phet.get("supportedBrands", []):
                    brands.append(Brand.PHET_IO.value)
                unreleased_branches.append(cls(repo, branch, tuple(brands), False, snapshot))

        combined = cls.combine_lists(phet_branches + phetio_branches + unreleased_branches)
        exclusions = set(load_maintenance_exclusions())
        return [b for b in combined if (b.repo, b.branch) not in exclusions]

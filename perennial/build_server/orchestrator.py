"""
Build orchestrator for the build server.

Runs one BuildTask end to end:

    validate -> sync checkout -> build -> dev deploy -> production deploy -> cleanup

Every phase is fatal by default. Any failure aborts the task with a
BuildAbortedError, which the queue reports before moving on to the next task.
"""

from __future__ import annotations

import json
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, NoReturn, Optional, Union

from perennial.build_server.config import DEV_SERVER, PRODUCTION_SERVER, BuildServerConfig
from perennial.build_server.images import deploy_images
from perennial.build_server.notify import build_payload, notify_server
from perennial.build_server.phases import (
    create_translations_xml,
    dev_deploy,
    get_locales,
    make_version_directory,
    remove_directory,
    rsync_directory,
    strip_phet_suffix,
    write_phet_htaccess,
    write_phetio_htaccess,
)
from perennial.build_server.task import BuildTask
from perennial.build_server.validation import normalize_version, validate_task
from perennial.common.brand import Brand
from perennial.common.chipper_version import ChipperVersion
from perennial.common.dependencies import DependencySnapshot
from perennial.common.release_branch import ReleaseBranch
from perennial.common.sim_version import SimVersion
from perennial.core.errors import BuildAbortedError, IllegalStateError
from perennial.core.timing import PhaseTimer
from perennial.core.utils import log


# =============================================================================
# Task State
# =============================================================================


@dataclass
class TaskContext:
    """Everything resolved about a task while it runs."""

    task: BuildTask
    branch: str
    version: str
    original_version: str
    locales: Union[str, list[str]]
    release_branch: ReleaseBranch
    chipper_version: Optional[ChipperVersion] = None

    @property
    def checkout_dir(self) -> Path:
        return self.release_branch.checkout_directory

    @property
    def sim_repo_dir(self) -> Path:
        return self.checkout_dir / self.task.sim_name

    @property
    def build_dir(self) -> Path:
        return self.sim_repo_dir / "build"

    @property
    def locale_list(self) -> list[str]:
        if isinstance(self.locales, str):
            return self.locales.split(",")
        return list(self.locales)

    @property
    def is_translation_request(self) -> bool:
        """Translator rebuilds come with a user id and exactly one locale."""
        return bool(self.task.user_id) and len(self.locale_list) == 1 and self.locale_list[0] != "*"


@dataclass
class TaskOutcome:
    """Result of a completed task."""

    task_id: str
    targets: list[Path] = field(default_factory=list)
    notifications: list[Future] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)


# =============================================================================
# Orchestrator
# =============================================================================


class BuildOrchestrator:
    """Builds and deploys queued tasks, one at a time."""

    def __init__(
        self,
        config: BuildServerConfig,
        snapshot: Optional[DependencySnapshot] = None,
        notify: Callable[[dict[str, Any], BuildServerConfig], Future] = notify_server,
        image_deployer: Callable[..., None] = deploy_images,
    ):
        self.config = config
        self.snapshot = snapshot or DependencySnapshot()
        self.notify = notify
        self.image_deployer = image_deployer
        self._brand_steps: dict[Brand, Callable[[TaskContext, TaskOutcome], None]] = {
            Brand.PHET: self._deploy_phet,
            Brand.PHET_IO: self._deploy_phetio,
        }
        missing = set(Brand) - set(self._brand_steps)
        if missing:
            raise NotImplementedError(f"no production deploy steps for {sorted(b.value for b in missing)}")

    def _abort(self, error: BaseException) -> NoReturn:
        log.error(f"BUILD ABORTED! {error}")
        raise BuildAbortedError(f"Build aborted, {error}") from error

    # -------------------------------------------------------------------------
    # Entry Point
    # -------------------------------------------------------------------------

    def run_task(self, task: BuildTask) -> TaskOutcome:
        """Run one task to completion.

        Raises:
            BuildAbortedError: If any phase fails.
        """
        outcome = TaskOutcome(task_id=task.task_id)
        timer = PhaseTimer()
        log.header(f"Build task {task.task_id}: {task.describe()}")

        if task.deploy_images:
            with timer.phase("deploy_images"):
                try:
                    self.image_deployer(
                        self.config,
                        simulation=task.sim_name or None,
                        brands=task.brands,
                        version=task.version or None,
                    )
                except Exception:
                    log.error("Deploy images failed. See previous logs for details.")
                    raise
            outcome.timings = timer.timings
            return outcome

        try:
            with timer.phase("validate"):
                context = self.parse(task)

            with timer.phase("sync"):
                self.sync(context)

            with timer.phase("build"):
                self.build(context)

            if DEV_SERVER in task.servers:
                with timer.phase("dev_deploy"):
                    self.deploy_dev(context)

            if PRODUCTION_SERVER in task.servers:
                with timer.phase("production_deploy"):
                    self.deploy_production(context, outcome)

            with timer.phase("cleanup"):
                remove_directory(context.build_dir)

        except Exception as e:
            self._abort(e)
        finally:
            outcome.timings = timer.timings
            log.dim(timer.summary())

        log.success(f"Build task {task.task_id} complete")
        return outcome

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def parse(self, task: BuildTask) -> TaskContext:
        """Validate the task and resolve branch, version and locales."""
        branch = validate_task(task)
        if task.user_id:
            log.info(f"setting userId = {task.user_id}")

        version = normalize_version(task)
        if version != task.version:
            log.info(f"detecting version number: {version}")

        locales: Union[str, list[str]] = task.locales
        if task.api == "1.0":
            locales = get_locales(task.locales, task.sim_name, self.snapshot.repo_dir("babel"))

        release_branch = ReleaseBranch(task.sim_name, branch, tuple(task.brands), True, self.snapshot)
        return TaskContext(
            task=task,
            branch=branch,
            version=version,
            original_version=task.version,
            locales=locales,
            release_branch=release_branch,
        )

    def sync(self, context: TaskContext) -> None:
        """Update the checkout and check the toolchain and version agree."""
        context.release_branch.update_checkout(context.task.repos, babel_branch=self.config.babel_branch)

        chipper_version = context.release_branch.get_chipper_version()
        log.debug(f"Chipper version detected: {chipper_version}")
        if not chipper_version.is_supported():
            raise IllegalStateError(f"Unsupported chipper version: {chipper_version}")
        context.chipper_version = chipper_version

        # Guards against the branch moving between request and processing
        if chipper_version.major != 1:
            package = json.loads((context.sim_repo_dir / "package.json").read_text())
            if package["version"] != context.version:
                raise IllegalStateError(
                    "Version mismatch between package.json and build request: "
                    f"{package['version']} vs {context.version}"
                )

    def build(self, context: TaskContext) -> None:
        chipper_version = context.chipper_version
        assert chipper_version is not None
        all_html = not (chipper_version.is_legacy() and context.task.brands[0] != Brand.PHET.value)
        context.release_branch.build(
            clean=False,
            locales=context.locales,
            build_for_server=True,
            lint=False,
            all_html=all_html,
        )
        log.debug("Build finished.")

    def deploy_dev(self, context: TaskContext) -> None:
        chipper_version = context.chipper_version
        assert chipper_version is not None
        log.info("deploying to dev")

        if Brand.PHET_IO.value in context.task.brands:
            location = context.build_dir
            if chipper_version.uses_per_brand_subdirectories():
                location = location / Brand.PHET_IO.value
            write_phetio_htaccess(location, context.checkout_dir, is_production_deploy=False)

        dev_deploy(
            context.checkout_dir,
            context.task.sim_name,
            context.version,
            chipper_version,
            context.task.brands,
            context.build_dir,
            self.config,
        )

    def deploy_production(self, context: TaskContext, outcome: TaskOutcome) -> None:
        log.info("deploying to production")
        for brand_name in context.task.brands:
            brand = Brand.parse(brand_name)
            log.info(f"deploying brand: {brand}")
            self._brand_steps[brand](context, outcome)

    # -------------------------------------------------------------------------
    # Per-brand Production Steps
    # -------------------------------------------------------------------------

    def _copy_build(self, context: TaskContext, brand: Brand, target: Path) -> None:
        chipper_version = context.chipper_version
        assert chipper_version is not None
        make_version_directory(target)
        source = context.build_dir
        if chipper_version.uses_per_brand_subdirectories():
            source = source / brand.value
        rsync_directory(source, target)
        log.debug("Copy finished")

    def _deploy_phet(self, context: TaskContext, outcome: TaskOutcome) -> None:
        chipper_version = context.chipper_version
        assert chipper_version is not None
        task = context.task
        target = Path(self.config.html_sims_directory) / task.sim_name / context.version

        if chipper_version.strips_legacy_phet_suffix():
            strip_phet_suffix(context.build_dir / Brand.PHET.value)

        self._copy_build(context, Brand.PHET, target)
        outcome.targets.append(target)

        if not context.is_translation_request:
            self.image_deployer(
                self.config, simulation=task.sim_name, brands=task.brands, version=context.version
            )
        write_phet_htaccess(task.sim_name, context.version, self.config)
        create_translations_xml(task.sim_name, context.version, context.checkout_dir, self.config)

        payload = build_payload(
            task.sim_name,
            task.email,
            Brand.PHET.value,
            locales=context.locales,
            translator_id=task.user_id if context.is_translation_request else None,
        )
        outcome.notifications.append(self.notify(payload, self.config))

    def _deploy_phetio(self, context: TaskContext, outcome: TaskOutcome) -> None:
        chipper_version = context.chipper_version
        assert chipper_version is not None
        task = context.task
        original = context.original_version

        directory_name = original
        if chipper_version.major == 0 and "-phetio" not in original:
            directory_name += "-phetio"
        target = Path(self.config.phetio_sims_directory) / task.sim_name / directory_name

        self._copy_build(context, Brand.PHET_IO, target)
        outcome.targets.append(target)

        parts = original.split("-")
        if len(parts) >= 2:
            suffix = parts[1]
        elif chipper_version.major < 2:
            suffix = "phetio"
        else:
            suffix = ""

        package = json.loads((context.sim_repo_dir / "package.json").read_text())
        ignore = bool(package.get("phet", {}).get("ignoreForAutomatedMaintenanceReleases"))

        payload = build_payload(
            task.sim_name,
            task.email,
            Brand.PHET_IO.value,
            phetio_options={
                "branch": context.branch,
                "suffix": suffix,
                "version": SimVersion.parse(context.version).serialize(),
                "ignoreForAutomatedMaintenanceReleases": ignore,
            },
        )
        outcome.notifications.append(self.notify(payload, self.config))
        log.debug("server notified")

        write_phetio_htaccess(
            target,
            context.checkout_dir,
            is_production_deploy=True,
            sim_name=task.sim_name,
            version=original,
            phetio_sims_directory=self.config.phetio_sims_directory,
            ignore_for_automated_maintenance_releases=ignore,
        )

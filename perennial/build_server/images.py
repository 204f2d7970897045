"""
Image redeploys.

Rebuilds the screenshots and thumbnails of published simulations with the
current toolchain and copies them next to the deployed HTML. Uses its own
checkouts under IMAGES_DIRECTORY so release-branch checkouts are untouched.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Callable, Optional

from perennial.build_server.config import BuildServerConfig
from perennial.common.brand import Brand
from perennial.common.metadata import sim_metadata
from perennial.core import git_ops
from perennial.core.execute import execute
from perennial.core.utils import IMAGES_DIRECTORY, MAIN_BRANCH, log

TOOL_REPOS = ("chipper", "perennial-alias")


def update_repo_dir(repo: str, directory: Path, npm_update: bool = True) -> Path:
    """Fresh main checkout of ``repo`` under ``directory``."""
    repo_dir = git_ops.clone_or_fetch_directory(repo, directory)
    with git_ops.repo_lock(repo_dir):
        git_ops.checkout_directory(MAIN_BRANCH, repo_dir)
        git_ops.pull_directory(repo_dir)
    if npm_update:
        git_ops.npm_update_directory(repo_dir)
    return repo_dir


def process_sim(sim: str, brands: list[str], version: str, config: BuildServerConfig, directory: Path) -> int:
    """Build images for one sim and copy them into its deployed version dir.

    Returns the number of images copied.
    """
    repo_dir = update_repo_dir(sim, directory, npm_update=False)
    chipper_dir = directory / "chipper"
    target_dir = Path(config.html_sims_directory) / sim / version

    copied = 0
    for brand in brands:
        if brand != Brand.PHET.value:
            log.warning(f"images are only built for the phet brand, skipping {brand} for {sim}")
            continue
        execute("grunt", [f"--brands={brand}", f"--repo={sim}", "build-images"], chipper_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        for image in sorted((repo_dir / "build" / brand).glob("*.png")):
            shutil.copy2(image, target_dir / image.name)
            copied += 1

    log.info(f"copied {copied} images for {sim} {version}")
    return copied


def deploy_images(
    config: BuildServerConfig,
    simulation: Optional[str] = None,
    brands: Optional[list[str]] = None,
    version: Optional[str] = None,
    directory: Optional[Path] = None,
    fetch_sim_metadata: Callable[..., dict[str, Any]] = sim_metadata,
) -> None:
    """Redeploy images for one sim version, or for every published sim."""
    directory = Path(directory or IMAGES_DIRECTORY)
    directory.mkdir(parents=True, exist_ok=True)
    brands = brands or [Brand.PHET.value]

    for repo in TOOL_REPOS:
        update_repo_dir(repo, directory)

    if simulation and version:
        process_sim(simulation, brands, version, config, directory)
        return

    metadata = fetch_sim_metadata(server_url=config.production_server_url)
    for project in metadata.get("projects", []):
        project_version = project["version"]["string"]
        for sim in project.get("simulations", []):
            process_sim(sim["name"], brands, project_version, config, directory)

"""
Deploy phase implementations for the build server.

File-level steps the orchestrator strings together: copying build output,
renaming legacy file names, and writing the .htaccess and translation
manifests the web servers read.
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Union

from perennial.build_server.config import BuildServerConfig
from perennial.common.chipper_version import ChipperVersion
from perennial.common.sim_version import SimVersion
from perennial.core.errors import ProcessExecutionError
from perennial.core.execute import execute
from perennial.core.utils import log

# =============================================================================
# Constants
# =============================================================================

# rsync "some files/attrs were not transferred"; the sims still deploy
RSYNC_PARTIAL_TRANSFER = 23

RSYNC_FILTER_FILE = ".rsync-filter"

PHETIO_HTPASSWD_FILE = "/etc/httpd/conf/phet-io_pw"

HTACCESS = ".htaccess"


# =============================================================================
# Copying
# =============================================================================


def make_version_directory(target: Union[str, Path]) -> Path:
    """Create a deploy target directory. An existing directory is fine."""
    target = Path(target)
    log.debug(f"creating version dir: {target}")
    target.mkdir(parents=True, exist_ok=True)
    return target


def rsync_directory(source: Union[str, Path], target: Union[str, Path]) -> None:
    """Copy the contents of ``source`` into ``target``.

    Raises:
        ProcessExecutionError: On any rsync failure other than a partial transfer.
    """
    args = ["-razpO", "--no-perms", f"--exclude={RSYNC_FILTER_FILE}", f"{source}/", str(target)]
    log.debug(f"copying recursive {source} to {target}")
    result = execute("rsync", args, ".", errors="resolve")

    if result.code == RSYNC_PARTIAL_TRANSFER:
        log.warning(f"rsync reported a partial transfer into {target}")
        return
    if result.code != 0:
        raise ProcessExecutionError(
            "rsync", args, result.cwd, result.stdout, result.stderr or (result.error or ""),
            result.code, result.time,
        )


def strip_phet_suffix(phet_build_dir: Union[str, Path]) -> list[str]:
    """Rename ``{sim}_en_phet.html`` style files to ``{sim}_en.html``.

    Returns the new file names.
    """
    renamed = []
    for path in sorted(Path(phet_build_dir).iterdir()):
        if "_phet" in path.name:
            new_name = path.name.replace("_phet", "", 1)
            path.rename(path.with_name(new_name))
            renamed.append(new_name)
    log.debug(f"renamed {len(renamed)} phet files in {phet_build_dir}")
    return renamed


def remove_directory(directory: Union[str, Path]) -> None:
    execute("rm", ["-rf", str(directory)], ".")


# =============================================================================
# .htaccess Writers
# =============================================================================


def write_phet_htaccess(sim_name: str, version: str, config: BuildServerConfig) -> Path:
    """Point ``{sim}/latest`` at the version just deployed."""
    sim_dir = Path(config.html_sims_directory) / sim_name
    sim_dir.mkdir(parents=True, exist_ok=True)
    contents = (
        "RewriteEngine on\n"
        f"RewriteBase /sims/html/{sim_name}/\n"
        f"RewriteRule ^latest(.*) {version}$1\n"
        'Header set Access-Control-Allow-Origin "*"\n'
    )
    path = sim_dir / HTACCESS
    path.write_text(contents)
    log.debug(f"wrote {path}")
    return path


def write_phetio_htaccess(
    directory: Union[str, Path],
    checkout_dir: Union[str, Path],
    is_production_deploy: bool,
    sim_name: Optional[str] = None,
    version: Optional[str] = None,
    phetio_sims_directory: Optional[str] = None,
    ignore_for_automated_maintenance_releases: bool = False,
) -> Path:
    """Password-protect a phet-io build.

    Production deploys also alias ``{sim}/{major}.{minor}`` to this version,
    unless the sim opted out of automated maintenance releases.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    htpasswd = PHETIO_HTPASSWD_FILE
    local_htpasswd = Path(checkout_dir) / "phet-io" / ".htpasswd"
    if not is_production_deploy and local_htpasswd.exists():
        htpasswd = str(local_htpasswd)

    path = directory / HTACCESS
    path.write_text(
        "AuthType Basic\n"
        'AuthName "PhET-iO Password Protected Area"\n'
        f"AuthUserFile {htpasswd}\n"
        "<LimitExcept OPTIONS>\n"
        "  Require valid-user\n"
        "</LimitExcept>\n"
    )
    log.debug(f"wrote {path}")

    if is_production_deploy and sim_name and version and phetio_sims_directory:
        if ignore_for_automated_maintenance_releases:
            log.info(f"{sim_name} is maintained by hand, leaving its version alias alone")
        else:
            parsed = SimVersion.parse(version)
            sim_dir = Path(phetio_sims_directory) / sim_name
            alias = sim_dir / HTACCESS
            alias.write_text(
                "RewriteEngine on\n"
                f"RewriteBase /sims/phet-io/{sim_name}/\n"
                f"RewriteRule ^{parsed.major}\\.{parsed.minor}(/.*)?$ {version}$1\n"
            )
            log.debug(f"wrote {alias}")

    return path


# =============================================================================
# Translations
# =============================================================================


def _title(strings_file: Path, sim_name: str) -> Optional[str]:
    if not strings_file.exists():
        return None
    strings = json.loads(strings_file.read_text())
    entry = strings.get(f"{sim_name.upper().replace('-', '_')}/{sim_name}.title") or strings.get(
        f"{sim_name}.title"
    )
    if isinstance(entry, dict):
        return entry.get("value")
    return entry


def get_locales_from_babel(sim_name: str, babel_dir: Union[str, Path]) -> list[str]:
    """English plus every locale babel has a strings file for."""
    locales = ["en"]
    sim_strings = Path(babel_dir) / sim_name
    if sim_strings.exists():
        prefix = f"{sim_name}-strings_"
        for path in sorted(sim_strings.glob(f"{prefix}*.json")):
            locale = path.stem[len(prefix):]
            if locale not in locales:
                locales.append(locale)
    return locales


def get_locales(locales: Union[str, list[str], None], sim_name: str, babel_dir: Union[str, Path]) -> str:
    """Expand the api 1.0 locale shorthand into a comma separated list.

    ``*`` or nothing means every locale babel knows for the sim.
    """
    if not locales or locales == "*" or locales == ["*"]:
        return ",".join(get_locales_from_babel(sim_name, babel_dir))
    if isinstance(locales, str):
        return locales
    return ",".join(locales)


def create_translations_xml(
    sim_name: str, version: str, checkout_dir: Union[str, Path], config: BuildServerConfig
) -> Path:
    """Write ``{sim}.xml`` listing the deployed locales and their titles."""
    checkout_dir = Path(checkout_dir)
    target_dir = Path(config.html_sims_directory) / sim_name / version

    english = _title(checkout_dir / sim_name / f"{sim_name}-strings_en.json", sim_name) or sim_name

    locales = []
    for path in sorted(target_dir.glob(f"{sim_name}_*.html")):
        locale = path.stem[len(sim_name) + 1:]
        if locale != "all" and not locale.endswith("_iframe"):
            locales.append(locale)

    project = ET.Element("project", name=sim_name)
    simulations = ET.SubElement(project, "simulations")
    for locale in locales:
        strings_file = checkout_dir / "babel" / sim_name / f"{sim_name}-strings_{locale}.json"
        title = english if locale == "en" else (_title(strings_file, sim_name) or english)
        simulation = ET.SubElement(simulations, "simulation", name=sim_name, locale=locale)
        ET.SubElement(simulation, "title").text = title

    path = target_dir / f"{sim_name}.xml"
    target_dir.mkdir(parents=True, exist_ok=True)
    ET.ElementTree(project).write(path, encoding="utf-8", xml_declaration=True)
    log.debug(f"wrote {path} with {len(locales)} locales")
    return path


# =============================================================================
# Dev Deploy
# =============================================================================


def dev_deploy(
    checkout_dir: Union[str, Path],
    sim_name: str,
    version: str,
    chipper_version: ChipperVersion,
    brands: list[str],
    build_dir: Union[str, Path],
    config: BuildServerConfig,
) -> str:
    """Copy the build output to the dev server. Returns the remote target."""
    host = f"{config.dev_username}@{config.dev_deploy_server}"
    target = f"{config.dev_deploy_path}{sim_name}/{version}/"
    log.info(f"deploying {sim_name} {version} ({','.join(brands)}) to {config.dev_deploy_server}")

    execute("ssh", [host, f"mkdir -p {target}"], checkout_dir)

    build_dir = Path(build_dir)
    if chipper_version.uses_per_brand_subdirectories():
        # Each brand keeps its own subdirectory on dev
        for brand in brands:
            execute("scp", ["-r", str(build_dir / brand), f"{host}:{target}"], checkout_dir)
    else:
        execute("scp", ["-r", f"{build_dir}/.", f"{host}:{target}"], checkout_dir)

    log.success(f"dev deploy complete: https://{config.dev_deploy_server}/dev/html/{sim_name}/{version}/")
    return target

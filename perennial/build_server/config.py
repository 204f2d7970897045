"""
Build server configuration.

Read from ``~/.phet/build-local.json`` (or ``$PERENNIAL_BUILD_CONFIG``). The
file uses the camelCase keys shared with the rest of the PhET tooling.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from perennial.core.errors import ConfigError

# =============================================================================
# Constants
# =============================================================================

BUILD_LOCAL_PATH = Path.home() / ".phet" / "build-local.json"

DEV_SERVER = "dev"
PRODUCTION_SERVER = "production"
SERVERS = (DEV_SERVER, PRODUCTION_SERVER)

DEFAULT_HTML_SIMS_DIRECTORY = "/data/web/htdocs/phetsims/sims/html/"
DEFAULT_PHETIO_SIMS_DIRECTORY = "/data/web/htdocs/phetsims/sims/phet-io/"

REQUIRED_KEYS = ("buildServerAuthorizationCode", "devUsername")


@dataclass
class BuildServerConfig:
    """Settings for the build server and for build requests sent to it."""

    build_server_authorization_code: str
    dev_username: str
    babel_branch: str = "main"
    dev_deploy_path: str = "/data/web/htdocs/dev/html/"
    dev_deploy_server: str = "bayes.colorado.edu"
    email_server: str = "smtp.office365.com"
    production_server_url: str = "https://phet.colorado.edu"
    html_sims_directory: str = DEFAULT_HTML_SIMS_DIRECTORY
    phetio_sims_directory: str = DEFAULT_PHETIO_SIMS_DIRECTORY
    server_token: Optional[str] = None
    email_username: Optional[str] = None
    email_password: Optional[str] = None
    email_to: Optional[str] = None
    verbose: bool = False
    port: int = 16371

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildServerConfig":
        """Build from the camelCase JSON form.

        Raises:
            ConfigError: If a required key is missing.
        """
        missing = [key for key in REQUIRED_KEYS if not data.get(key)]
        if missing:
            raise ConfigError(f"build-local.json is missing required keys: {', '.join(missing)}")

        optional = {
            "babel_branch": "babelBranch",
            "dev_deploy_path": "devDeployPath",
            "dev_deploy_server": "devDeployServer",
            "email_server": "emailServer",
            "production_server_url": "productionServerURL",
            "html_sims_directory": "htmlSimsDirectory",
            "phetio_sims_directory": "phetioSimsDirectory",
            "server_token": "serverToken",
            "email_username": "emailUsername",
            "email_password": "emailPassword",
            "email_to": "emailTo",
            "verbose": "verbose",
            "port": "buildServerPort",
        }
        kwargs = {name: data[key] for name, key in optional.items() if key in data}
        return cls(
            build_server_authorization_code=data["buildServerAuthorizationCode"],
            dev_username=data["devUsername"],
            **kwargs,
        )

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_username and self.email_password and self.email_to)


def get_config_path() -> Path:
    override = os.environ.get("PERENNIAL_BUILD_CONFIG")
    return Path(override) if override else BUILD_LOCAL_PATH


@lru_cache(maxsize=1)
def load_build_server_config(path: Optional[Path] = None) -> BuildServerConfig:
    """Load and cache the build server configuration.

    Raises:
        ConfigError: If the file is missing, unreadable or incomplete.
    """
    path = path or get_config_path()
    try:
        data = json.loads(Path(path).read_text())
    except FileNotFoundError:
        raise ConfigError(f"build server config not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"build server config is not valid JSON ({path}): {e}") from e
    return BuildServerConfig.from_dict(data)

"""Submit a build request to the build server."""

from __future__ import annotations

from typing import Any, Optional, Union

import requests

from perennial.build_server.config import BuildServerConfig, load_build_server_config
from perennial.core.utils import log

REQUEST_TIMEOUT = 30


def build_server_request(
    repo: str,
    version: str,
    branch: str,
    dependencies: dict[str, Any],
    locales: Union[str, list[str]] = "*",
    brands: Optional[list[str]] = None,
    servers: Optional[list[str]] = None,
    config: Optional[BuildServerConfig] = None,
) -> None:
    """POST a ``deploy-html-simulation`` request (api 2.0) and wait for acceptance."""
    config = config or load_build_server_config()
    payload = {
        "api": "2.0",
        "dependencies": dependencies,
        "simName": repo,
        "version": version,
        "branch": branch,
        "locales": locales,
        "servers": servers or ["dev"],
        "brands": brands or ["phet"],
        "authorizationCode": config.build_server_authorization_code,
    }
    if config.email_to:
        payload["email"] = config.email_to

    url = f"{config.production_server_url}/deploy-html-simulation"
    log.info(f"sending build request for {repo} {version} to {url}")
    response = requests.post(url, json=payload, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    log.success(f"build request accepted ({response.status_code})")

"""
Published-simulation metadata feeds.

The production website publishes what is live for each brand. Maintenance
discovery starts from these feeds.
"""

from __future__ import annotations

from typing import Any, Optional

import requests

from perennial.core.utils import log

PRODUCTION_SERVER_URL = "https://phet.colorado.edu"

SIM_METADATA_PATH = "/services/metadata/1.2/simulations"
PHETIO_METADATA_PATH = "/services/metadata/phetio"

REQUEST_TIMEOUT = 60


def sim_metadata(
    sim_type: str = "html",
    locale: str = "en",
    server_url: str = PRODUCTION_SERVER_URL,
    simulation: Optional[str] = None,
) -> dict[str, Any]:
    """Summary metadata for published phet-brand simulations.

    Returns the feed as-is; the interesting part is ``projects``, each with a
    ``name`` like ``html/molarity``, a ``version`` with ``major``/``minor``
    and a list of ``simulations``.
    """
    params: dict[str, str] = {"format": "json", "summary": "", "locale": locale, "type": sim_type}
    if simulation:
        params["simulation"] = simulation

    log.debug(f"fetching sim metadata from {server_url}")
    response = requests.get(f"{server_url}{SIM_METADATA_PATH}", params=params, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()


def sim_phetio_metadata(
    active: Optional[bool] = None,
    latest: Optional[bool] = None,
    server_url: str = PRODUCTION_SERVER_URL,
) -> list[dict[str, Any]]:
    """Metadata for published phet-io simulations.

    Each entry has ``name``, ``versionMajor``, ``versionMinor``,
    ``versionSuffix``, ``active`` and ``latest``.
    """
    params: dict[str, str] = {}
    if active is not None:
        params["active"] = "true" if active else "false"
    if latest is not None:
        params["latest"] = "true" if latest else "false"

    log.debug(f"fetching phet-io metadata from {server_url}")
    response = requests.get(f"{server_url}{PHETIO_METADATA_PATH}", params=params, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()

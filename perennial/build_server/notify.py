"""
Downstream notification after a production deploy.

The website processes a deployed release asynchronously and is monitored on
its own, so the build task only launches the request. notify_server returns
immediately with a Future; the outcome is logged when the request finishes.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Optional

import requests

from perennial.build_server.config import BuildServerConfig

logger = logging.getLogger(__name__)

SYNCHRONIZE_PATH = "/services/synchronize-release"
REQUEST_TIMEOUT = 60

_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")


def build_payload(
    sim_name: str,
    email: Optional[str],
    brand: str,
    locales: Any = None,
    translator_id: Optional[str] = None,
    phetio_options: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Request body, leaving out fields that do not apply."""
    payload: dict[str, Any] = {"simName": sim_name, "email": email, "brand": brand}
    if locales is not None:
        payload["locales"] = locales
    if translator_id is not None:
        payload["translatorId"] = translator_id
    if phetio_options is not None:
        payload["phetioOptions"] = phetio_options
    return payload


def _post(url: str, payload: dict[str, Any], token: Optional[str]) -> int:
    auth = ("token", token) if token else None
    response = requests.post(url, json=payload, auth=auth, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.status_code


def _log_outcome(sim_name: str, future: "Future[int]") -> None:
    error = future.exception()
    if error is not None:
        logger.error("Notifying the website about %s failed: %s", sim_name, error)
    else:
        logger.info("Website accepted release of %s (%s)", sim_name, future.result())


def notify_server(payload: dict[str, Any], config: BuildServerConfig) -> "Future[int]":
    """Launch the notification and return without waiting for it."""
    url = f"{config.production_server_url}{SYNCHRONIZE_PATH}"
    logger.info("Notifying %s about %s (%s)", url, payload.get("simName"), payload.get("brand"))
    future = _executor.submit(_post, url, payload, config.server_token)
    sim_name = str(payload.get("simName"))
    future.add_done_callback(lambda f: _log_outcome(sim_name, f))
    return future

"""
Headless page loads against a throwaway local server.

Used to smoke-test release branches: serve a checkout on an ephemeral port,
load the simulation with fuzzing enabled, and report whether anything broke.
"""

from __future__ import annotations

import functools
import threading
from contextlib import contextmanager
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Iterator, Union

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from perennial.core.errors import PerennialError
from perennial.core.utils import log

DEFAULT_WAIT_AFTER_LOAD = 5000  # ms
DEFAULT_ALLOWED_TIME_TO_LOAD = 40000  # ms


class PageLoadError(PerennialError):
    """The page errored, failed a request, or never finished loading."""


# =============================================================================
# Throwaway Server
# =============================================================================


class QuietHandler(SimpleHTTPRequestHandler):
    """Static file handler that logs through perennial instead of stderr."""

    def log_message(self, format: str, *args) -> None:
        log.debug(f"[server] {format % args}")


@contextmanager
def with_server(directory: Union[str, Path]) -> Iterator[int]:
    """Serve ``directory`` on an ephemeral localhost port for the block.

    Yields the port. The server is shut down on the way out even when the
    block raises.
    """
    handler = functools.partial(QuietHandler, directory=str(directory))
    httpd = ThreadingHTTPServer(("localhost", 0), handler)
    port = httpd.server_address[1]
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    log.debug(f"serving {directory} on port {port}")

    try:
        yield port
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)
        log.debug(f"stopped serving on port {port}")


# =============================================================================
# Browser
# =============================================================================


def page_load(
    url: str,
    wait_after_load: int = DEFAULT_WAIT_AFTER_LOAD,
    allowed_time_to_load: int = DEFAULT_ALLOWED_TIME_TO_LOAD,
    browser_name: str = "firefox",
) -> None:
    """Load ``url`` headlessly and keep it running for ``wait_after_load`` ms.

    Failed dependency requests are only logged; sims routinely ask for files
    that do not exist, like strings for untranslated locales.

    Raises:
        PageLoadError: On an uncaught page error, an HTTP error response for
            ``url`` itself, or a load timeout.
    """
    problems: list[str] = []

    def on_response(response) -> None:
        if response.status < 400:
            return
        if response.url == url:
            problems.append(f"could not load {url}, status {response.status}")
        elif response.status == 404:
            log.debug(f"404 for {response.url}")
        else:
            log.warning(f"could not load dependency, status {response.status}: {response.url}")

    with sync_playwright() as pw:
        browser = getattr(pw, browser_name).launch(headless=True)
        try:
            page = browser.new_page()
            page.on("pageerror", lambda error: problems.append(f"page error: {error}"))
            page.on("response", on_response)
            page.goto(url, timeout=allowed_time_to_load, wait_until="load")
            page.wait_for_timeout(wait_after_load)
        except PlaywrightError as e:
            raise PageLoadError(str(e)) from e
        finally:
            browser.close()

    if problems:
        raise PageLoadError("; ".join(problems))

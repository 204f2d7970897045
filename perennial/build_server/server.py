"""
HTTP front end of the build server.

Endpoints:

    GET|POST /deploy-html-simulation   queue a build (api 1.0 query string or api 2.0 JSON body)
    POST     /deploy-images            queue an image redeploy
    GET      /deploy-status            current task and queue contents

Requests are checked and turned into BuildTasks here. Everything else happens
on the single queue worker, which emails the result when a task finishes.
"""

from __future__ import annotations

import argparse
import json
import logging
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from perennial.build_server.config import (
    DEV_SERVER,
    PRODUCTION_SERVER,
    BuildServerConfig,
    load_build_server_config,
)
from perennial.build_server.mailer import send_email
from perennial.build_server.orchestrator import BuildOrchestrator
from perennial.build_server.queue import QUEUE_FILE, PersistentQueue, TaskQueue
from perennial.build_server.task import BuildTask
from perennial.common.brand import PRODUCTION_BRANDS, Brand
from perennial.core.errors import PerennialError
from perennial.core.execute import execute
from perennial.core.utils import PERENNIAL_ROOT, log

logger = logging.getLogger(__name__)

DEPLOY_PATH = "/deploy-html-simulation"
DEPLOY_IMAGES_PATH = "/deploy-images"
STATUS_PATH = "/deploy-status"

ACCEPTED_MESSAGE = "build process initiated, check logs for details"
MISSING_PARAMS_MESSAGE = (
    "missing one or more required query parameters: dependencies, simName, version, authorizationCode"
)
WRONG_AUTH_MESSAGE = "wrong authorization code"
BAD_PRODUCTION_BRAND_MESSAGE = "Cannot complete production deploys for brands outside of phet and phet-io"
BAD_DEPENDENCIES_MESSAGE = "{name} must be a JSON object mapping repo names to shas"


class RequestRejected(PerennialError):
    """A build request the server refuses to queue."""

    def __init__(self, status: HTTPStatus, message: str):
        self.status = status
        super().__init__(message)


# =============================================================================
# Request Parsing
# =============================================================================


def _flatten_query(query: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(query).items() if values}


def _decode_dependencies(value: Any, name: str) -> dict[str, Any]:
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, dict):
        raise RequestRejected(HTTPStatus.BAD_REQUEST, BAD_DEPENDENCIES_MESSAGE.format(name=name))
    return value


def parse_api1_request(params: dict[str, Any]) -> Optional[BuildTask]:
    """Task for an api 1.0 request, or None when required parameters are missing.

    ``repos`` arrives as a JSON string. ``option=rc`` deploys to dev only and
    anything else to production. A version containing ``phetio`` is a phet-io
    build.
    """
    sim_name = params.get("simName")
    version = params.get("version")
    repos = params.get("repos")
    if not (repos and sim_name and version):
        return None
    repos = _decode_dependencies(repos, "repos")

    servers = [DEV_SERVER] if params.get("option") == "rc" else [PRODUCTION_SERVER]
    brands = [Brand.PHET_IO.value] if "phetio" in version else [Brand.PHET.value]
    entry = repos.get(sim_name)
    branch = params.get("branch") or (entry.get("branch") if isinstance(entry, dict) else None)
    return BuildTask(
        api="1.0",
        repos=repos,
        sim_name=sim_name,
        version=version,
        locales=params.get("locales") or "*",
        brands=brands,
        servers=servers,
        email=params.get("email") or None,
        user_id=params.get("userId") or None,
        branch=branch or None,
    )


def parse_api2_request(params: dict[str, Any]) -> Optional[BuildTask]:
    """Task for an api 2.x JSON body, or None when required fields are missing."""
    dependencies = params.get("dependencies")
    sim_name = params.get("simName")
    version = params.get("version")
    if not (dependencies and sim_name and version):
        return None
    dependencies = _decode_dependencies(dependencies, "dependencies")
    return BuildTask(
        api=str(params["api"]),
        repos=dependencies,
        sim_name=sim_name,
        version=version,
        locales=params.get("locales") or "*",
        brands=list(params.get("brands") or [Brand.PHET.value]),
        servers=list(params.get("servers") or [DEV_SERVER]),
        email=params.get("email") or None,
        user_id=params.get("translatorId") or None,
        branch=params.get("branch") or None,
    )


# =============================================================================
# Build Server
# =============================================================================


class BuildServer:
    """Accepts build requests and feeds them to a single-worker queue."""

    def __init__(
        self,
        config: BuildServerConfig,
        orchestrator: Optional[BuildOrchestrator] = None,
        queue_file: Path = QUEUE_FILE,
    ):
        self.config = config
        self.orchestrator = orchestrator or BuildOrchestrator(config)
        self.persistence = PersistentQueue(queue_file)
        self.tasks = TaskQueue(self.orchestrator.run_task, self.persistence, on_done=self.report)
        self._httpd: Optional[ThreadingHTTPServer] = None

    # -------------------------------------------------------------------------
    # Request Handling
    # -------------------------------------------------------------------------

    def _check_authorization(self, params: dict[str, Any]) -> None:
        if params.get("authorizationCode") != self.config.build_server_authorization_code:
            logger.error(WRONG_AUTH_MESSAGE)
            raise RequestRejected(HTTPStatus.UNAUTHORIZED, WRONG_AUTH_MESSAGE)

    def queue_deploy(self, params: dict[str, Any], from_query: bool = False) -> HTTPStatus:
        """Check a deploy request and queue it.

        Raises:
            RequestRejected: Missing parameters, a dependency map that is not
                an object, a wrong authorization code, or a production deploy
                of an unsupported brand.
        """
        api = str(params.get("api") or "")
        if not from_query and api.startswith("2."):
            task = parse_api2_request(params)
        else:
            task = parse_api1_request(params)

        if task is None or not params.get("authorizationCode"):
            logger.error(MISSING_PARAMS_MESSAGE)
            raise RequestRejected(HTTPStatus.BAD_REQUEST, MISSING_PARAMS_MESSAGE)

        self._check_authorization(params)

        production_brands = {brand.value for brand in PRODUCTION_BRANDS}
        if PRODUCTION_SERVER in task.servers and any(b not in production_brands for b in task.brands):
            logger.error(BAD_PRODUCTION_BRAND_MESSAGE)
            raise RequestRejected(HTTPStatus.BAD_REQUEST, BAD_PRODUCTION_BRAND_MESSAGE)

        logger.info("queuing build for %s %s", task.sim_name, task.version)
        self.tasks.submit(task)
        return HTTPStatus.OK if task.api == "1.0" else HTTPStatus.ACCEPTED

    def queue_image_deploy(self, params: dict[str, Any]) -> HTTPStatus:
        self._check_authorization(params)
        brands = params.get("brands") or [Brand.PHET.value]
        if isinstance(brands, str):
            brands = brands.split(",")
        task = BuildTask(
            sim_name=params.get("simulation") or params.get("simName") or "",
            version=params.get("version") or "",
            branch=params.get("branch") or None,
            brands=list(brands),
            email=params.get("email") or None,
            deploy_images=True,
        )
        self.tasks.submit(task)
        return HTTPStatus.ACCEPTED

    def status(self) -> dict[str, Any]:
        current = self.persistence.current
        return {
            "currentTask": current.to_dict() if current else None,
            "queue": [task.to_dict() for task in self.persistence.pending],
        }

    # -------------------------------------------------------------------------
    # Completion Email
    # -------------------------------------------------------------------------

    def report(self, task: BuildTask, error: Optional[BaseException]) -> None:
        """Email the outcome of a finished task."""
        if task.deploy_images:
            if error is not None:
                message = f"Image deploy failure: {error}"
                logger.error(message)
                send_email("IMAGE DEPLOY ERROR", message, self.config, task.email)
            else:
                logger.info("Image deploy finished successfully")
                send_email("Image deploy succeeded", "Images redeployed", self.config, task.email)
            return

        info = (
            f"Sim = {task.sim_name} Version = {task.version} "
            f"Brands = {','.join(task.brands)} Locales = {task.locales}"
        )
        if error is not None:
            message = f"Build failure: {error}. {info} Shas = {json.dumps(task.repos, indent=2)}"
            logger.error(message)
            send_email("BUILD ERROR", message, self.config, task.email)
        else:
            logger.info("build for %s finished successfully", task.sim_name)
            send_email("Build Succeeded", info, self.config, task.email)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def serve_forever(self, host: str = "") -> None:
        self._httpd = ThreadingHTTPServer((host, self.config.port), BuildRequestHandler)
        self._httpd.build_server = self  # type: ignore[attr-defined]
        logger.info("Listening on port %d", self.config.port)
        logger.info("Verbose mode: %s", self.config.verbose)

        # The perennial sha makes failures easier to reproduce
        result = execute("git", ["rev-parse", "HEAD"], PERENNIAL_ROOT, errors="resolve")
        if result.ok:
            logger.info("current SHA: %s", result.stdout.strip())
        else:
            logger.warning("unable to get SHA from git: %s", result.stderr.strip() or result.error)

        self.tasks.start(resume=True)
        try:
            self._httpd.serve_forever()
        finally:
            self._httpd.server_close()

    def shutdown(self) -> None:
        if self._httpd is not None:
            self._httpd.shutdown()
        self.tasks.stop(timeout=5)


# =============================================================================
# HTTP Handler
# =============================================================================


class BuildRequestHandler(BaseHTTPRequestHandler):
    """Maps HTTP requests onto BuildServer calls."""

    server_version = "PerennialBuildServer"

    @property
    def build_server(self) -> BuildServer:
        return self.server.build_server  # type: ignore[attr-defined]

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def _send(self, status: HTTPStatus, body: str, content_type: str = "text/plain; charset=utf-8") -> None:
        encoded = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _read_json_body(self) -> dict[str, Any]:
        length = int(self.headers.get("Content-Length") or 0)
        if not length:
            return {}
        return json.loads(self.rfile.read(length).decode("utf-8"))

    def _dispatch(self, action) -> None:
        try:
            status = action()
        except RequestRejected as e:
            self._send(e.status, str(e))
        except ValueError as e:
            logger.error("Malformed request to %s: %s", self.path, e)
            self._send(HTTPStatus.BAD_REQUEST, f"malformed request: {e}")
        else:
            self._send(status, ACCEPTED_MESSAGE)

    def do_GET(self):
        url = urlsplit(self.path)
        if url.path == DEPLOY_PATH:
            params = _flatten_query(url.query)
            logger.info("GET %s %s", url.path, {k: v for k, v in params.items() if k != "authorizationCode"})
            self._dispatch(lambda: self.build_server.queue_deploy(params, from_query=True))
        elif url.path == STATUS_PATH:
            self._send(HTTPStatus.OK, json.dumps(self.build_server.status(), indent=2), "application/json")
        else:
            self._send(HTTPStatus.NOT_FOUND, "Not found\n")

    def do_POST(self):
        url = urlsplit(self.path)
        if url.path not in (DEPLOY_PATH, DEPLOY_IMAGES_PATH):
            self._send(HTTPStatus.NOT_FOUND, "Not found\n")
            return
        try:
            params = self._read_json_body()
        except json.JSONDecodeError as e:
            self._send(HTTPStatus.BAD_REQUEST, f"malformed request: {e}")
            return
        if not isinstance(params, dict):
            self._send(HTTPStatus.BAD_REQUEST, "malformed request: expected a JSON object")
            return
        logger.info("POST %s %s", url.path, {k: v for k, v in params.items() if k != "authorizationCode"})

        if url.path == DEPLOY_PATH:
            self._dispatch(lambda: self.build_server.queue_deploy(params))
        else:
            self._dispatch(lambda: self.build_server.queue_image_deploy(params))


# =============================================================================
# CLI
# =============================================================================


def cmd_build_server(args: argparse.Namespace) -> int:
    """Run the build server until interrupted."""
    config = load_build_server_config(Path(args.config) if getattr(args, "config", None) else None)
    if config.verbose:
        log.set_verbose(True)

    server = BuildServer(config)
    log.header(f"Build server on port {config.port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("")
        log.header("Shutting down")
        server.tasks.stop(timeout=5)
        log.success("Build server stopped")
    return 0

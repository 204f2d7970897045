"""Tests for build request handling and the HTTP front end."""

from __future__ import annotations

import json
import threading
from http import HTTPStatus
from http.server import ThreadingHTTPServer
from pathlib import Path
from typing import Any, Iterator, Optional

import pytest
import requests

from perennial.build_server import server as server_module
from perennial.build_server.config import BuildServerConfig
from perennial.build_server.server import (
    ACCEPTED_MESSAGE,
    BAD_DEPENDENCIES_MESSAGE,
    BAD_PRODUCTION_BRAND_MESSAGE,
    MISSING_PARAMS_MESSAGE,
    WRONG_AUTH_MESSAGE,
    BuildRequestHandler,
    BuildServer,
    RequestRejected,
    parse_api1_request,
    parse_api2_request,
)
from perennial.build_server.task import BuildTask

from .conftest import SHA_A


class RecordingOrchestrator:
    """Stands in for BuildOrchestrator; the worker is not started in most tests."""

    def __init__(self) -> None:
        self.ran: list[BuildTask] = []

    def run_task(self, task: BuildTask) -> None:
        self.ran.append(task)


@pytest.fixture
def build_server(build_config: BuildServerConfig, tmp_path: Path) -> BuildServer:
    return BuildServer(build_config, orchestrator=RecordingOrchestrator(), queue_file=tmp_path / "queue.json")


def api2_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "api": "2.0",
        "dependencies": {"molarity": {"sha": SHA_A}},
        "simName": "molarity",
        "version": "1.4.0",
        "locales": "*",
        "brands": ["phet"],
        "servers": ["production"],
        "authorizationCode": "secret",
    }
    body.update(overrides)
    return body


@pytest.mark.evergreen
class TestParsing:
    """Request bodies become BuildTasks."""

    def test_api1_rc_goes_to_dev(self) -> None:
        task = parse_api1_request({
            "repos": json.dumps({"molarity": {"sha": SHA_A, "branch": "1.4"}}),
            "simName": "molarity",
            "version": "1.4.0-rc.1",
            "option": "rc",
            "userId": "7",
        })
        assert task is not None
        assert task.api == "1.0"
        assert task.servers == ["dev"]
        assert task.brands == ["phet"]
        assert task.branch == "1.4"
        assert task.user_id == "7"

    def test_api1_phetio_version(self) -> None:
        task = parse_api1_request({
            "repos": json.dumps({"molarity": {"sha": SHA_A}}), "simName": "molarity", "version": "1.4.0-phetio",
        })
        assert task.brands == ["phet-io"]
        assert task.servers == ["production"]

    def test_api2_defaults(self) -> None:
        task = parse_api2_request({
            "api": "2.0",
            "dependencies": json.dumps({"molarity": {"sha": SHA_A}}),
            "simName": "molarity",
            "version": "1.4.0",
            "translatorId": "99",
        })
        assert task.repos == {"molarity": {"sha": SHA_A}}
        assert task.servers == ["dev"]
        assert task.brands == ["phet"]
        assert task.user_id == "99"

    def test_api2_missing(self) -> None:
        assert parse_api2_request({"api": "2.0", "simName": "molarity", "version": "1.4.0"}) is None

    def test_api1_repos_must_be_an_object(self) -> None:
        with pytest.raises(RequestRejected) as info:
            parse_api1_request({"repos": json.dumps(["molarity"]), "simName": "molarity", "version": "1.4.0"})
        assert info.value.status == HTTPStatus.BAD_REQUEST
        assert str(info.value) == BAD_DEPENDENCIES_MESSAGE.format(name="repos")

    def test_api2_dependencies_must_be_an_object(self) -> None:
        with pytest.raises(RequestRejected) as info:
            parse_api2_request(api2_body(dependencies=[{"sha": SHA_A}]))
        assert info.value.status == HTTPStatus.BAD_REQUEST
        assert str(info.value) == BAD_DEPENDENCIES_MESSAGE.format(name="dependencies")

    def test_api1_sim_entry_without_branch(self) -> None:
        task = parse_api1_request({
            "repos": json.dumps({"molarity": "1.4"}), "simName": "molarity", "version": "1.4.0-rc.1",
        })
        assert task.branch is None
        assert task.resolved_branch == "1.4"


@pytest.mark.evergreen
class TestQueueDeploy:
    """Status codes of deploy requests."""

    def test_accepted(self, build_server: BuildServer) -> None:
        assert build_server.queue_deploy(api2_body()) == HTTPStatus.ACCEPTED
        assert [task.sim_name for task in build_server.persistence.pending] == ["molarity"]

    def test_api1_returns_ok(self, build_server: BuildServer) -> None:
        params = {
            "repos": json.dumps({"molarity": {"sha": SHA_A}}),
            "simName": "molarity",
            "version": "1.4.0",
            "authorizationCode": "secret",
        }
        assert build_server.queue_deploy(params, from_query=True) == HTTPStatus.OK

    def test_missing_parameters(self, build_server: BuildServer) -> None:
        with pytest.raises(RequestRejected) as info:
            build_server.queue_deploy(api2_body(dependencies=None))
        assert info.value.status == HTTPStatus.BAD_REQUEST
        assert str(info.value) == MISSING_PARAMS_MESSAGE

    def test_missing_authorization(self, build_server: BuildServer) -> None:
        with pytest.raises(RequestRejected) as info:
            build_server.queue_deploy(api2_body(authorizationCode=None))
        assert info.value.status == HTTPStatus.BAD_REQUEST

    def test_wrong_authorization(self, build_server: BuildServer) -> None:
        with pytest.raises(RequestRejected) as info:
            build_server.queue_deploy(api2_body(authorizationCode="guess"))
        assert info.value.status == HTTPStatus.UNAUTHORIZED
        assert str(info.value) == WRONG_AUTH_MESSAGE
        assert build_server.persistence.pending == []

    def test_production_brand_check(self, build_server: BuildServer) -> None:
        with pytest.raises(RequestRejected) as info:
            build_server.queue_deploy(api2_body(brands=["adapted-from-phet"]))
        assert info.value.status == HTTPStatus.BAD_REQUEST
        assert str(info.value) == BAD_PRODUCTION_BRAND_MESSAGE

    def test_other_brands_allowed_on_dev(self, build_server: BuildServer) -> None:
        status = build_server.queue_deploy(api2_body(brands=["adapted-from-phet"], servers=["dev"]))
        assert status == HTTPStatus.ACCEPTED

    def test_image_deploy(self, build_server: BuildServer) -> None:
        status = build_server.queue_image_deploy({"authorizationCode": "secret", "simulation": "molarity",
                                                  "version": "1.4.0", "brands": "phet"})
        assert status == HTTPStatus.ACCEPTED
        task = build_server.persistence.pending[0]
        assert task.deploy_images
        assert task.brands == ["phet"]

    def test_image_deploy_needs_authorization(self, build_server: BuildServer) -> None:
        with pytest.raises(RequestRejected):
            build_server.queue_image_deploy({"authorizationCode": "nope"})

    def test_status(self, build_server: BuildServer) -> None:
        build_server.queue_deploy(api2_body())
        status = build_server.status()
        assert status["currentTask"] is None
        assert status["queue"][0]["simName"] == "molarity"


@pytest.mark.evergreen
class TestReport:
    """Completion emails."""

    @pytest.fixture
    def sent(self, monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, str, Optional[str]]]:
        emails: list[tuple[str, str, Optional[str]]] = []
        monkeypatch.setattr(
            server_module, "send_email",
            lambda subject, text, config, to=None: emails.append((subject, text, to)) or True,
        )
        return emails

    def test_success(self, build_server: BuildServer, sent) -> None:
        build_server.report(BuildTask(sim_name="molarity", version="1.4.0", email="dev@example.com"), None)
        subject, text, to = sent[0]
        assert subject == "Build Succeeded"
        assert "Sim = molarity Version = 1.4.0" in text
        assert to == "dev@example.com"

    def test_failure(self, build_server: BuildServer, sent) -> None:
        task = BuildTask(sim_name="molarity", version="1.4.0", repos={"molarity": {"sha": SHA_A}})
        build_server.report(task, RuntimeError("Build aborted, rsync failed"))
        subject, text, _ = sent[0]
        assert subject == "BUILD ERROR"
        assert "Build failure: Build aborted, rsync failed" in text
        assert SHA_A in text

    def test_image_deploy(self, build_server: BuildServer, sent) -> None:
        task = BuildTask(sim_name="", version="", deploy_images=True)
        build_server.report(task, None)
        build_server.report(task, RuntimeError("grunt failed"))
        assert [email[0] for email in sent] == ["Image deploy succeeded", "IMAGE DEPLOY ERROR"]


@pytest.mark.evergreen
class TestHttp:
    """Real HTTP round trips against a local handler."""

    @pytest.fixture
    def base_url(self, build_server: BuildServer) -> Iterator[str]:
        httpd = ThreadingHTTPServer(("127.0.0.1", 0), BuildRequestHandler)
        httpd.build_server = build_server  # type: ignore[attr-defined]
        thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        thread.start()
        try:
            yield f"http://127.0.0.1:{httpd.server_address[1]}"
        finally:
            httpd.shutdown()
            httpd.server_close()

    def test_post_deploy(self, base_url: str) -> None:
        response = requests.post(f"{base_url}/deploy-html-simulation", json=api2_body(), timeout=5)
        assert response.status_code == 202
        assert response.text == ACCEPTED_MESSAGE

    def test_get_deploy_with_query(self, base_url: str) -> None:
        params = {
            "repos": json.dumps({"molarity": {"sha": SHA_A}}),
            "simName": "molarity",
            "version": "1.4.0-rc.1",
            "option": "rc",
            "authorizationCode": "secret",
        }
        response = requests.get(f"{base_url}/deploy-html-simulation", params=params, timeout=5)
        assert response.status_code == 200

    def test_wrong_authorization(self, base_url: str) -> None:
        response = requests.post(
            f"{base_url}/deploy-html-simulation", json=api2_body(authorizationCode="guess"), timeout=5
        )
        assert response.status_code == 401
        assert response.text == WRONG_AUTH_MESSAGE

    def test_malformed_body(self, base_url: str) -> None:
        response = requests.post(
            f"{base_url}/deploy-html-simulation", data="{not json",
            headers={"Content-Type": "application/json"}, timeout=5,
        )
        assert response.status_code == 400

    def test_body_must_be_an_object(self, base_url: str) -> None:
        response = requests.post(f"{base_url}/deploy-html-simulation", json=[api2_body()], timeout=5)
        assert response.status_code == 400
        assert response.text == "malformed request: expected a JSON object"

    def test_dependencies_list_is_rejected(self, base_url: str) -> None:
        response = requests.post(
            f"{base_url}/deploy-html-simulation", json=api2_body(dependencies=["molarity"]), timeout=5
        )
        assert response.status_code == 400
        assert response.text == BAD_DEPENDENCIES_MESSAGE.format(name="dependencies")

    def test_repos_list_in_query_is_rejected(self, base_url: str) -> None:
        params = {
            "repos": json.dumps(["molarity"]),
            "simName": "molarity",
            "version": "1.4.0",
            "authorizationCode": "secret",
        }
        response = requests.get(f"{base_url}/deploy-html-simulation", params=params, timeout=5)
        assert response.status_code == 400

    def test_status(self, base_url: str) -> None:
        requests.post(f"{base_url}/deploy-html-simulation", json=api2_body(), timeout=5)
        response = requests.get(f"{base_url}/deploy-status", timeout=5)
        assert response.status_code == 200
        assert response.json()["queue"][0]["simName"] == "molarity"

    def test_unknown_path(self, base_url: str) -> None:
        assert requests.get(f"{base_url}/nope", timeout=5).status_code == 404
        assert requests.post(f"{base_url}/nope", json={}, timeout=5).status_code == 404

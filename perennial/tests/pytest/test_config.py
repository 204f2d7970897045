"""Tests for build server configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from perennial.build_server.config import (
    BUILD_LOCAL_PATH,
    BuildServerConfig,
    get_config_path,
    load_build_server_config,
)
from perennial.core.errors import ConfigError


@pytest.fixture(autouse=True)
def clear_cache():
    load_build_server_config.cache_clear()
    yield
    load_build_server_config.cache_clear()


@pytest.mark.evergreen
class TestFromDict:
    """camelCase keys map onto the dataclass."""

    def test_required_only(self) -> None:
        config = BuildServerConfig.from_dict({"buildServerAuthorizationCode": "secret", "devUsername": "phet-admin"})
        assert config.build_server_authorization_code == "secret"
        assert config.babel_branch == "main"
        assert config.port == 16371
        assert not config.email_enabled

    def test_optional_keys(self) -> None:
        config = BuildServerConfig.from_dict({
            "buildServerAuthorizationCode": "secret",
            "devUsername": "phet-admin",
            "babelBranch": "tests",
            "productionServerURL": "https://staging.example.com",
            "serverToken": "t",
            "buildServerPort": 8080,
            "emailUsername": "a", "emailPassword": "b", "emailTo": "c",
        })
        assert config.babel_branch == "tests"
        assert config.production_server_url == "https://staging.example.com"
        assert config.server_token == "t"
        assert config.port == 8080
        assert config.email_enabled

    def test_missing_required(self) -> None:
        with pytest.raises(ConfigError) as info:
            BuildServerConfig.from_dict({"devUsername": "phet-admin"})
        assert "buildServerAuthorizationCode" in str(info.value)


@pytest.mark.evergreen
class TestLoad:
    """Reading build-local.json."""

    def test_load_file(self, tmp_path: Path) -> None:
        path = tmp_path / "build-local.json"
        path.write_text(json.dumps({"buildServerAuthorizationCode": "secret", "devUsername": "phet-admin"}))
        assert load_build_server_config(path).dev_username == "phet-admin"

    def test_load_is_cached(self, tmp_path: Path) -> None:
        path = tmp_path / "build-local.json"
        path.write_text(json.dumps({"buildServerAuthorizationCode": "secret", "devUsername": "phet-admin"}))
        assert load_build_server_config(path) is load_build_server_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_build_server_config(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "build-local.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_build_server_config(path)

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PERENNIAL_BUILD_CONFIG", raising=False)
        assert get_config_path() == BUILD_LOCAL_PATH
        monkeypatch.setenv("PERENNIAL_BUILD_CONFIG", str(tmp_path / "other.json"))
        assert get_config_path() == tmp_path / "other.json"

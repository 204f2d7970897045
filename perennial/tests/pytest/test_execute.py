"""Tests for the process runner, error taxonomy and timing helpers."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from perennial.core.errors import ExecuteError, PerennialError, ProcessExecutionError
from perennial.core.execute import ExecuteResult, execute
from perennial.core.timing import PhaseTimer, format_duration
from perennial.core.utils import get_active_sims, read_json, write_json

requires_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="sh is not installed")


@pytest.mark.evergreen
@requires_sh
class TestExecute:
    """execute in reject and resolve modes."""

    def test_reject_returns_stdout(self, tmp_path: Path) -> None:
        assert execute("sh", ["-c", "echo hello"], tmp_path) == "hello\n"

    def test_runs_in_cwd(self, tmp_path: Path) -> None:
        assert execute("sh", ["-c", "pwd"], tmp_path).strip() == str(tmp_path.resolve())

    def test_reject_raises_with_diagnostics(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessExecutionError) as info:
            execute("sh", ["-c", "echo out; echo err >&2; exit 3"], tmp_path)
        error = info.value
        assert error.code == 3
        assert error.stdout == "out\n"
        assert error.stderr == "err\n"
        assert error.cwd == str(tmp_path)
        assert error.args_list == ["-c", "echo out; echo err >&2; exit 3"]
        assert "failed with exit code 3" in str(error)

    def test_resolve_never_raises(self, tmp_path: Path) -> None:
        result = execute("sh", ["-c", "exit 23"], tmp_path, errors="resolve")
        assert isinstance(result, ExecuteResult)
        assert result.code == 23
        assert not result.ok

    def test_env_is_merged(self, tmp_path: Path) -> None:
        out = execute("sh", ["-c", "echo $PERENNIAL_TEST_VALUE"], tmp_path, env={"PERENNIAL_TEST_VALUE": "42"})
        assert out == "42\n"

    def test_unknown_mode(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            execute("sh", ["-c", "true"], tmp_path, errors="ignore")


@pytest.mark.evergreen
class TestSpawnFailure:
    """Commands that cannot be started."""

    def test_reject_spawn_failure(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessExecutionError) as info:
            execute("perennial-no-such-command", [], tmp_path)
        assert info.value.code == -1

    def test_resolve_spawn_failure(self, tmp_path: Path) -> None:
        result = execute("perennial-no-such-command", [], tmp_path, errors="resolve")
        assert result.code == -1
        assert result.error


@pytest.mark.evergreen
class TestErrors:
    """The error taxonomy."""

    def test_alias(self) -> None:
        assert ExecuteError is ProcessExecutionError

    def test_base_class(self) -> None:
        error = ProcessExecutionError("git", ["status"], "/tmp", "", "", 1, 0.1)
        assert isinstance(error, PerennialError)
        assert isinstance(error, RuntimeError)

    def test_custom_message(self) -> None:
        error = ProcessExecutionError("git", [], "/tmp", "", "oops", 128, 0.0, message="clone failed")
        assert str(error).startswith("clone failed")
        assert "oops" in str(error)


@pytest.mark.evergreen
class TestPhaseTimer:
    """PhaseTimer records each phase, failed ones included."""

    def test_records_phases_in_order(self) -> None:
        timer = PhaseTimer()
        with timer.phase("sync"):
            pass
        with timer.phase("build"):
            pass
        assert list(timer.timings) == ["sync", "build"]
        assert timer.current is None

    def test_records_on_exception(self) -> None:
        timer = PhaseTimer()
        with pytest.raises(ValueError):
            with timer.phase("deploy"):
                raise ValueError("boom")
        assert "deploy" in timer.timings

    def test_summary(self) -> None:
        timer = PhaseTimer()
        assert timer.summary() == "(no timing data)"
        timer.timings = {"sync": 1.0, "build": 65.0}
        assert timer.summary() == "sync: 1.0s | build: 1m 5.0s | total: 1m 6.0s"

    def test_format_duration(self) -> None:
        assert format_duration(0.5) == "0.5s"
        assert format_duration(3661.0) == "1h 1m 1.0s"


@pytest.mark.evergreen
class TestFileUtilities:
    """JSON and active-sims helpers."""

    def test_json_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "data.json"
        write_json(path, {"sims": ["molarity"]})
        assert read_json(path) == {"sims": ["molarity"]}

    def test_active_sims(self, tmp_path: Path) -> None:
        active = tmp_path / "active-sims"
        active.write_text("molarity\n\n  ohms-law \n")
        assert get_active_sims(active) == ["molarity", "ohms-law"]

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Any

import pytest

from conftest import FakeRunner, ok_result
from ddev_phpmd.errors import ExecutionError
from ddev_phpmd.runner import DdevRunner, parse_version_string, quote_command
from ddev_phpmd.validator import classify_failure, composer_package_name, validate_ddev_tool


def fake_completed(stdout: str = "", stderr: str = "", returncode: int = 0):
    def fake_run(argv: Any, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(argv, returncode, stdout, stderr)

    return fake_run


def test_exec_returns_stdout_despite_nonzero_exit(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("ddev_phpmd.runner.subprocess.run", fake_completed(stdout='{"files": []}', returncode=2))
    assert DdevRunner().exec("phpmd a.php json cleancode", tmp_path) == '{"files": []}'


def test_exec_raises_only_when_failed_without_output(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(
        "ddev_phpmd.runner.subprocess.run",
        fake_completed(stderr="Failed to execute command\n\nlong trace", returncode=1),
    )
    with pytest.raises(ExecutionError) as exc:
        DdevRunner().exec("phpmd a.php json cleancode", tmp_path)
    assert exc.value.exit_info == "exit code 1"
    assert exc.value.summary == "Failed to execute command"
    assert "long trace" in exc.value.stderr


def test_exec_empty_success_is_not_an_error(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("ddev_phpmd.runner.subprocess.run", fake_completed())
    assert DdevRunner().exec("true", tmp_path) == ""


def test_exec_runs_in_workspace_without_host_shell(tmp_path: Path, monkeypatch) -> None:
    seen: dict[str, Any] = {}

    def fake_run(argv: Any, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        seen["argv"] = argv
        seen.update(kwargs)
        return subprocess.CompletedProcess(argv, 0, "out", "")

    monkeypatch.setattr("ddev_phpmd.runner.subprocess.run", fake_run)
    DdevRunner(timeout_sec=7).exec("phpmd x.php json naming", tmp_path)
    assert seen["argv"] == ["ddev", "exec", "phpmd x.php json naming"]
    assert seen["cwd"] == str(tmp_path)
    assert seen["timeout"] == 7
    assert "shell" not in seen


def test_timeout_becomes_execution_error(tmp_path: Path, monkeypatch) -> None:
    def fake_run(*args: Any, **kwargs: Any):
        raise subprocess.TimeoutExpired(cmd=args[0], timeout=0.001)

    monkeypatch.setattr("ddev_phpmd.runner.subprocess.run", fake_run)
    with pytest.raises(ExecutionError) as exc:
        DdevRunner(timeout_sec=1).exec("phpmd a.php json cleancode", tmp_path)
    assert "timeout" in str(exc.value).lower()


def test_missing_ddev_binary_becomes_execution_error(tmp_path: Path, monkeypatch) -> None:
    def fake_run(*args: Any, **kwargs: Any):
        raise FileNotFoundError("ddev")

    monkeypatch.setattr("ddev_phpmd.runner.subprocess.run", fake_run)
    with pytest.raises(ExecutionError):
        DdevRunner().exec("phpmd a.php json cleancode", tmp_path)


def test_quote_command_keeps_hostile_paths_as_one_argument() -> None:
    path = 'src/We"ird $(rm -rf /) name.php'
    cmd = quote_command(["phpmd", path, "json", "cleancode"])
    assert shlex.split(cmd) == ["phpmd", path, "json", "cleancode"]


def test_parse_version_string() -> None:
    assert parse_version_string("PHPMD 2.15.0") == "2.15.0"
    assert parse_version_string("  dev-master \n") == "dev-master"


def test_tool_version_via_runner(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("ddev_phpmd.runner.subprocess.run", fake_completed(stdout="PHPMD 2.15.0 by Manuel Pichler"))
    assert DdevRunner().tool_version("phpmd", tmp_path) == "2.15.0"


def test_tool_version_empty_on_failure(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("ddev_phpmd.runner.subprocess.run", fake_completed(stderr="boom", returncode=1))
    assert DdevRunner().tool_version("phpmd", tmp_path) == ""


def test_validate_no_project(tmp_path: Path) -> None:
    runner = FakeRunner()
    res = validate_ddev_tool("phpmd", tmp_path, runner)
    assert res.valid is False
    assert res.failure_kind == "no-project"
    assert res.user_message == "No DDEV project found"
    assert "ddev config" in (res.user_detail or "")
    assert runner.commands == []


def test_validate_ok(ddev_project: Path) -> None:
    runner = FakeRunner()
    res = validate_ddev_tool("phpmd", ddev_project, runner)
    assert res.valid is True
    assert res.failure_kind is None
    assert runner.commands == ["phpmd --version"]


@pytest.mark.parametrize(
    "output,kind",
    [
        ("Project shop is not currently running. Try 'ddev start'.", "not-running"),
        ("Error: No such container: ddev-shop-web", "not-running"),
        ("bash: line 1: phpmd: command not found", "tool-missing"),
        ("phpmd: not found", "tool-missing"),
        ("Something odd happened", "unknown"),
    ],
)
def test_validate_classifies_failures(ddev_project: Path, output: str, kind: str) -> None:
    runner = FakeRunner(version_result=ok_result("", returncode=1, stderr=output))
    res = validate_ddev_tool("phpmd", ddev_project, runner)
    assert res.valid is False
    assert res.failure_kind == kind
    assert (res.user_message or "").startswith("PHPMD not available")


def test_unknown_failure_carries_truncated_detail() -> None:
    details = "x" * 500
    res = classify_failure("phpmd", details)
    assert res.failure_kind == "unknown"
    assert res.user_detail is not None
    assert len(res.user_detail) == 203
    assert res.user_detail.endswith("...")


def test_tool_missing_names_composer_package() -> None:
    res = classify_failure("phpmd", "phpmd: command not found")
    assert "phpmd/phpmd" in (res.user_detail or "")
    assert composer_package_name("phpcs") == "squizlabs/php_codesniffer"
    assert composer_package_name("rector") == "rector/rector"


def test_validation_is_never_cached(ddev_project: Path) -> None:
    runner = FakeRunner()
    assert validate_ddev_tool("phpmd", ddev_project, runner).valid
    runner.version_result = ok_result("", returncode=1, stderr="phpmd: command not found")
    assert validate_ddev_tool("phpmd", ddev_project, runner).failure_kind == "tool-missing"
    assert len(runner.commands) == 2

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from conftest import SAMPLE_VIOLATIONS, phpmd_report
from ddev_phpmd.cli import main as cli_main


@pytest.fixture
def fake_ddev(monkeypatch):
    """Answer `ddev exec` calls: version probe succeeds, analysis exits 2 with a report."""
    calls: list[list[str]] = []
    state = {"version": (0, "PHPMD 2.15.0", ""), "report": (2, phpmd_report(SAMPLE_VIOLATIONS), "")}

    def fake_run(argv: Any, **kwargs: Any) -> subprocess.CompletedProcess[str]:
        calls.append(list(argv))
        key = "version" if argv[-1].endswith("--version") else "report"
        code, out, err = state[key]
        return subprocess.CompletedProcess(argv, code, out, err)

    monkeypatch.setattr("ddev_phpmd.runner.subprocess.run", fake_run)
    return calls, state


def test_cli_analyze_outputs_json(ddev_project: Path, php_file: Path, fake_ddev) -> None:
    calls, _ = fake_ddev
    result = CliRunner().invoke(cli_main, ["analyze", str(php_file)])
    assert result.exit_code == 0, result.output

    payload = json.loads(result.output)
    assert payload["ok"] is True
    assert payload["status"] == "published"
    assert [d["code"]["value"] for d in payload["diagnostics"]] == ["ExcessiveParameterList", "ShortVariable"]
    assert payload["diagnostics"][0]["range"]["start"]["line"] == 9
    assert calls[-1][:2] == ["ddev", "exec"]


def test_cli_overrides_do_not_touch_settings(ddev_project: Path, php_file: Path, fake_ddev) -> None:
    calls, _ = fake_ddev
    result = CliRunner().invoke(
        cli_main,
        ["analyze", str(php_file), "--min-severity", "error", "--ruleset", "naming", "--ruleset", "design"],
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert [d["code"]["value"] for d in payload["diagnostics"]] == ["ShortVariable"]
    assert calls[-1][-1] == "phpmd src/Example.php json naming,design"
    assert not (ddev_project / ".vscode" / "settings.json").exists()


def test_cli_exit_code_flips_on_threshold(ddev_project: Path, php_file: Path, fake_ddev) -> None:
    result = CliRunner().invoke(cli_main, ["analyze", str(php_file), "--fail-on-severity", "error"])
    assert result.exit_code == 1, result.output
    payload = json.loads(result.output)
    assert payload["ok"] is False
    assert "fail_on_severity" in payload["fail_reason"]


def test_cli_analyze_reports_unavailable_tool(ddev_project: Path, php_file: Path, fake_ddev) -> None:
    _, state = fake_ddev
    state["version"] = (1, "", "bash: phpmd: command not found")
    result = CliRunner().invoke(cli_main, ["analyze", str(php_file)])
    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["status"] == "unavailable"
    assert payload["validation"]["failure_kind"] == "tool-missing"
    assert payload["messages"][0]["level"] == "error"


def test_cli_validate(ddev_project: Path, fake_ddev) -> None:
    result = CliRunner().invoke(cli_main, ["validate", "--workspace", str(ddev_project)])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["valid"] is True
    assert payload["version"] == "2.15.0"


def test_cli_validate_without_project(tmp_path: Path, fake_ddev) -> None:
    result = CliRunner().invoke(cli_main, ["validate", "--workspace", str(tmp_path)])
    assert result.exit_code == 1
    assert json.loads(result.output)["failure_kind"] == "no-project"


def test_cli_toggle_persists(ddev_project: Path, php_file: Path, fake_ddev) -> None:
    runner = CliRunner()
    settings = ddev_project / ".vscode" / "settings.json"

    result = runner.invoke(cli_main, ["disable", "--workspace", str(ddev_project)])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["enabled"] is False
    assert json.loads(settings.read_text(encoding="utf-8"))["ddev-phpmd.enable"] is False

    analyzed = runner.invoke(cli_main, ["analyze", str(php_file)])
    assert analyzed.exit_code == 1
    assert "disabled" in json.loads(analyzed.output)["messages"][0]["message"]

    status = runner.invoke(cli_main, ["status", "--workspace", str(ddev_project)])
    assert json.loads(status.output)["state"] == "disabled"

    result = runner.invoke(cli_main, ["toggle", "--workspace", str(ddev_project)])
    assert json.loads(result.output)["enabled"] is True


def test_cli_status_for_file(ddev_project: Path, php_file: Path, fake_ddev) -> None:
    result = CliRunner().invoke(cli_main, ["status", str(php_file)])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["state"] == "has-issues"
    assert payload["command"] == "ddev-phpmd.analyzeCurrentFile"

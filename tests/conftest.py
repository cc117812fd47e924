from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from ddev_phpmd.runner import CompletedCommand, DdevRunner

SAMPLE_VIOLATIONS: List[Dict[str, Any]] = [
    {
        "beginLine": 10,
        "endLine": 10,
        "beginColumn": 5,
        "endColumn": 48,
        "description": "The method build has 12 parameters. Consider reducing the number of parameters to less than 10.",
        "rule": "ExcessiveParameterList",
        "ruleSet": "Code Size Rules",
        "externalInfoUrl": "https://phpmd.org/rules/codesize.html#excessiveparameterlist",
        "priority": 3,
    },
    {
        "beginLine": 20,
        "endLine": 20,
        "beginColumn": 9,
        "endColumn": 11,
        "description": "Avoid variables with short names like $a. Configured minimum length is 3.",
        "rule": "ShortVariable",
        "ruleSet": "Naming Rules",
        "externalInfoUrl": "https://phpmd.org/rules/naming.html#shortvariable",
        "priority": 1,
    },
]


def phpmd_report(violations: Optional[List[Dict[str, Any]]] = None, file: str = "/var/www/html/src/Example.php") -> str:
    files = [] if violations is None else [{"file": file, "violations": violations}]
    return json.dumps({"version": "2.15.0", "package": "phpmd", "timestamp": "2025-01-01T00:00:00+00:00", "files": files})


class FakeRunner(DdevRunner):
    """
    DdevRunner with scripted container responses.

    `--version` probes answer from `version_result`; every other command
    answers from `analysis_results` (last entry repeats). Set `gate` to
    hold analysis calls until the test releases it.
    """

    def __init__(
        self,
        analysis_results: Optional[List[CompletedCommand]] = None,
        version_result: Optional[CompletedCommand] = None,
    ) -> None:
        super().__init__()
        self.analysis_results = analysis_results or [ok_result(phpmd_report(SAMPLE_VIOLATIONS), returncode=2)]
        self.version_result = version_result or ok_result("PHPMD 2.15.0")
        self.commands: List[str] = []
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()

    @property
    def analysis_commands(self) -> List[str]:
        return [c for c in self.commands if not c.endswith("--version")]

    def run(self, command: str, workspace_path: str | Path, timeout_sec: Optional[int] = None) -> CompletedCommand:
        self.commands.append(command)
        if command.endswith("--version"):
            return self.version_result
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        index = min(len(self.analysis_commands) - 1, len(self.analysis_results) - 1)
        return self.analysis_results[index]


def ok_result(stdout: str, returncode: int = 0, stderr: str = "") -> CompletedCommand:
    return CompletedCommand(argv=["ddev", "exec"], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def ddev_project(tmp_path: Path) -> Path:
    root = tmp_path / "shop"
    (root / ".ddev").mkdir(parents=True)
    (root / ".ddev" / "config.yaml").write_text("name: shop\ntype: php\n", encoding="utf-8")
    (root / "src").mkdir()
    (root / "src" / "Example.php").write_text("<?php\nfunction f($a) { return $a; }\n", encoding="utf-8")
    (root / "src" / "Other.php").write_text("<?php\n", encoding="utf-8")
    return root


@pytest.fixture
def php_file(ddev_project: Path) -> Path:
    return ddev_project / "src" / "Example.php"


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()

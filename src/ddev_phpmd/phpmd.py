from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from .errors import ParseError
from .models import AnalysisResult, Diagnostic, DiagnosticCode, MinSeverity, RangeModel, RangePosModel, Severity, ToolConfig, Violation
from .runner import quote_command

logger = logging.getLogger(__name__)

TOOL_NAME = "phpmd"
DISPLAY_NAME = "PHPMD"

# LSP clients clamp an end character past the line length to the line end
END_OF_LINE = 2**31 - 1

SEVERITY_LEVEL: Dict[Severity, int] = {
    "information": 1,
    "warning": 2,
    "error": 3,
}

MIN_SEVERITY_LEVEL: Dict[str, int] = {
    "info": 1,
    "warning": 2,
    "error": 3,
}

# PHPMD priorities: 1 = high ... 5 = lowest
PRIORITY_SEVERITY: Dict[int, Severity] = {
    1: "error",
    2: "warning",
    3: "warning",
    4: "information",
    5: "information",
}


def get_severity(priority: Optional[int]) -> Severity:
    return PRIORITY_SEVERITY.get(priority, "warning")


def should_report(severity: Severity, min_severity: MinSeverity | str) -> bool:
    threshold = MIN_SEVERITY_LEVEL.get(min_severity)
    if threshold is None:
        return True
    return SEVERITY_LEVEL[severity] >= threshold


def build_command(relative_path: str, config: ToolConfig, workspace_path: str | Path | None = None) -> str:
    """
    PHPMD invocation for one file: `phpmd <file> json <rulesets|ruleset.xml>`.

    A custom ruleset file wins over the named rulesets; both are never passed.
    """
    if config.config_path:
        ruleset = config.config_path
        if workspace_path is not None and Path(ruleset).is_absolute():
            try:
                ruleset = Path(ruleset).relative_to(Path(workspace_path)).as_posix()
            except ValueError:
                pass
    else:
        ruleset = ",".join(config.rulesets)
    return quote_command([TOOL_NAME, relative_path, "json", ruleset])


def parse_phpmd_json(text: str) -> AnalysisResult:
    """
    Parse the PHPMD JSON renderer output.

    Expected structure:
      {
        "version": "...",
        "files": [
          {"file": "...", "violations": [{"beginLine": 1, "rule": "...", ...}]}
        ]
      }
    Raises ParseError with a short excerpt of the offending output.
    """
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}", text) from e
    if not isinstance(obj, dict):
        raise ParseError("Expected a JSON object at top level", text)
    try:
        return AnalysisResult.model_validate(obj)
    except ValidationError as e:
        raise ParseError(f"Unexpected PHPMD report structure: {e}", text) from e


def create_diagnostic(violation: Violation, file: str) -> Diagnostic:
    # Diagnostics span the whole reported line
    line = max(violation.begin_line - 1, 0)
    severity = get_severity(violation.priority)
    return Diagnostic(
        file=file,
        range=RangeModel(
            start=RangePosModel(line=line, character=0),
            end=RangePosModel(line=line, character=END_OF_LINE),
        ),
        message=f"{violation.description.strip()} ({violation.rule_id})",
        severity=severity,
        severity_level=SEVERITY_LEVEL[severity],
        source=TOOL_NAME,
        code=DiagnosticCode(value=violation.rule_id, target=violation.external_info_url or None),
    )


def translate(raw_output: str, config: ToolConfig, file: Optional[str] = None) -> List[Diagnostic]:
    """
    Turn PHPMD output into diagnostics at or above config.min_severity.

    Input order is preserved. `file` overrides the path reported by PHPMD,
    which is relative to the container's working directory.
    """
    result = parse_phpmd_json(raw_output)
    diags: List[Diagnostic] = []
    for entry in result.files:
        for violation in entry.violations:
            if should_report(get_severity(violation.priority), config.min_severity):
                diags.append(create_diagnostic(violation, file or entry.file))
    logger.debug("Translated %d diagnostics", len(diags))
    return diags


class PhpmdTool:
    """PHPMD bindings for the shared analysis orchestrator."""

    name = TOOL_NAME
    display_name = DISPLAY_NAME

    def __init__(self, config_source: Callable[[], ToolConfig], workspace_path: str | Path | None = None) -> None:
        self._config_source = config_source
        self.workspace_path = workspace_path

    def get_config(self) -> ToolConfig:
        return self._config_source()

    def build_command(self, relative_path: str, config: ToolConfig) -> str:
        return build_command(relative_path, config, self.workspace_path)

    def process_output(self, output: str, config: ToolConfig, file: Optional[str] = None) -> List[Diagnostic]:
        return translate(output, config, file)


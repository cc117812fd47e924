from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .errors import truncate_excerpt
from .models import ValidationResult
from .runner import DdevRunner, quote_command

logger = logging.getLogger(__name__)

DDEV_CONFIG = Path(".ddev") / "config.yaml"

NOT_RUNNING_SIGNALS = ("not currently running", "ddev start", "No such container", "is not running")
TOOL_MISSING_SIGNALS = ("command not found", "not found")

COMPOSER_PACKAGES = {
    "phpmd": "phpmd/phpmd",
    "phpcs": "squizlabs/php_codesniffer",
    "phpstan": "phpstan/phpstan",
}


def composer_package_name(tool_name: str) -> str:
    return COMPOSER_PACKAGES.get(tool_name, f"{tool_name}/{tool_name}")


def has_ddev_project(workspace_path: str | Path) -> bool:
    return (Path(workspace_path) / DDEV_CONFIG).is_file()


def find_ddev_root(start: str | Path | None) -> Optional[Path]:
    """
    Search upward from start for a directory holding .ddev/config.yaml.
    Stops at filesystem root; returns None when no project is found.
    """
    cur = (Path(start) if start is not None else Path.cwd()).resolve()
    if cur.is_file():
        cur = cur.parent
    while True:
        if has_ddev_project(cur):
            return cur
        parent = cur.parent
        if parent == cur:
            return None
        cur = parent


def classify_failure(tool_name: str, details: str) -> ValidationResult:
    label = tool_name.upper()
    if any(s in details for s in NOT_RUNNING_SIGNALS):
        return ValidationResult(
            valid=False,
            failure_kind="not-running",
            user_message=f"{label} not available - DDEV appears to be stopped",
            user_detail="Start the project with 'ddev start'.",
        )
    if any(s in details for s in TOOL_MISSING_SIGNALS):
        return ValidationResult(
            valid=False,
            failure_kind="tool-missing",
            user_message=f"{label} not available - not installed in container",
            user_detail=f"Install it with 'ddev composer require --dev {composer_package_name(tool_name)}'.",
        )
    return ValidationResult(
        valid=False,
        failure_kind="unknown",
        user_message=f"{label} not available - check DDEV status",
        user_detail=truncate_excerpt(details) or None,
    )


def validate_ddev_tool(
    tool_name: str,
    workspace_path: str | Path,
    runner: Optional[DdevRunner] = None,
) -> ValidationResult:
    """
    Check, in order, that the workspace is a DDEV project and that
    `<tool> --version` runs inside its container.

    Never cached: the container can be stopped or rebuilt between runs.
    """
    if not has_ddev_project(workspace_path):
        return ValidationResult(
            valid=False,
            failure_kind="no-project",
            user_message="No DDEV project found",
            user_detail=(
                f"{DDEV_CONFIG.as_posix()} is missing in {workspace_path}. "
                "Initialize the project with 'ddev config' and start it with 'ddev start'."
            ),
        )

    runner = runner or DdevRunner()
    result = runner.run(quote_command([tool_name, "--version"]), workspace_path, timeout_sec=30)
    if result.returncode == 0:
        return ValidationResult(valid=True)

    logger.info("%s validation failed in %s (exit %d)", tool_name, workspace_path, result.returncode)
    return classify_failure(tool_name, result.output)


def resolve_workspace(workspace: str | Path | None, start: str | Path | None = None) -> Path:
    """Explicit workspace, else the enclosing DDEV project, else the start directory."""
    if workspace:
        return Path(workspace).resolve()
    found = find_ddev_root(start)
    if found is not None:
        return found
    base = Path(start).resolve() if start else Path.cwd()
    return base.parent if base.is_file() else base

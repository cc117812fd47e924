from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .config import SECTION, SettingsStore, default_settings_path
from .extension import PhpmdExtension
from .models import Document, StatusDisplay
from .notify import MessageLog
from .phpmd import SEVERITY_LEVEL, TOOL_NAME
from .runner import DdevRunner
from .validator import resolve_workspace, validate_ddev_tool

FAIL_ON_LEVEL = {"none": 0, **SEVERITY_LEVEL}


def _emit(payload: Dict[str, Any]) -> None:
    # Deterministic JSON output
    click.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True))


def _store(workspace: Path, settings: Optional[str], overrides: Optional[Dict[str, Any]] = None) -> SettingsStore:
    store = SettingsStore(settings or default_settings_path(workspace))
    if not overrides:
        return store
    # One-off overrides never touch the settings file
    data = store.as_dict()
    data.update({f"{SECTION}.{k}": v for k, v in overrides.items()})
    return SettingsStore(None, initial=data)


def _messages(log: MessageLog) -> list[Dict[str, Any]]:
    return [{"level": m.level, "message": m.message, "detail": m.detail} for m in log.messages]


workspace_option = click.option(
    "--workspace",
    type=click.Path(file_okay=False, dir_okay=True, exists=True, path_type=str),
    default=None,
    help="DDEV project root (default: searched upward for .ddev/config.yaml)",
)
settings_option = click.option(
    "--settings",
    type=click.Path(dir_okay=False, path_type=str),
    default=None,
    help="Settings JSON file (default: <workspace>/.vscode/settings.json)",
)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", count=True, help="Log to stderr (repeat for debug)")
def main(verbose: int) -> None:
    """Run PHPMD inside DDEV and report diagnostics as JSON."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@main.command()
@click.argument("file", type=click.Path(dir_okay=False, exists=True, path_type=str))
@workspace_option
@settings_option
@click.option("--ruleset", "rulesets", multiple=True, help="PHPMD ruleset (repeatable), e.g. --ruleset cleancode")
@click.option(
    "--min-severity",
    type=click.Choice(["error", "warning", "info"], case_sensitive=False),
    default=None,
    help="Minimum severity to report",
)
@click.option("--config-path", default=None, help="Custom PHPMD ruleset XML, relative to the workspace")
@click.option("--timeout-sec", type=int, default=60, show_default=True, help="Timeout for each ddev call")
@click.option(
    "--fail-on-severity",
    type=click.Choice(["none", "information", "warning", "error"], case_sensitive=False),
    default="none",
    show_default=True,
    help="Flip exit code to 1 if any diagnostic meets/exceeds this level",
)
def analyze(
    file: str,
    workspace: Optional[str],
    settings: Optional[str],
    rulesets: tuple[str, ...],
    min_severity: Optional[str],
    config_path: Optional[str],
    timeout_sec: int,
    fail_on_severity: str,
) -> None:
    """
    Analyze FILE once and print the outcome.

    Exit code: 0 if ok=true, 1 otherwise (threshold, validation or run failure).
    """
    root = resolve_workspace(workspace, file)
    overrides: Dict[str, Any] = {}
    if rulesets:
        overrides["rulesets"] = list(rulesets)
    if min_severity:
        overrides["minSeverity"] = min_severity.lower()
    if config_path is not None:
        overrides["configPath"] = config_path

    log = MessageLog()
    ext = PhpmdExtension(root, store=_store(root, settings, overrides), notifier=log, runner=DdevRunner(timeout_sec=timeout_sec))

    async def run() -> Any:
        ext.set_active_document(Document.from_path(file))
        try:
            return await ext.analyze_current_file()
        finally:
            ext.dispose()

    outcome = asyncio.run(run())
    if outcome is None:
        _emit({"ok": False, "document": str(Path(file).resolve()), "messages": _messages(log)})
        sys.exit(1)

    payload = outcome.model_dump(mode="json")
    threshold = FAIL_ON_LEVEL[fail_on_severity.lower()]
    if outcome.ok and threshold:
        worst = max((d.severity_level for d in outcome.diagnostics), default=0)
        if worst >= threshold:
            payload["ok"] = False
            payload["fail_reason"] = f"fail_on_severity '{fail_on_severity}' breached (max_severity_level={worst})."
    payload["messages"] = _messages(log)
    _emit(payload)
    sys.exit(0 if payload["ok"] else 1)


@main.command()
@workspace_option
@click.option("--tool", default=TOOL_NAME, show_default=True, help="Tool to look for in the container")
def validate(workspace: Optional[str], tool: str) -> None:
    """Check the DDEV project and tool availability."""
    root = resolve_workspace(workspace, None)
    runner = DdevRunner()
    result = validate_ddev_tool(tool, root, runner)
    payload = result.model_dump(mode="json")
    payload["workspace"] = str(root)
    payload["version"] = runner.tool_version(tool, root) if result.valid else ""
    _emit(payload)
    sys.exit(0 if result.valid else 1)


def _set_enabled(workspace: Optional[str], settings: Optional[str], value: Optional[bool]) -> None:
    root = resolve_workspace(workspace, None)
    log = MessageLog()
    ext = PhpmdExtension(root, store=_store(root, settings), notifier=log)
    try:
        if value is None:
            enabled = ext.toggle()
        else:
            enabled = ext.enable() if value else ext.disable()
    finally:
        ext.dispose()
    _emit({"enabled": enabled, "messages": _messages(log)})


@main.command()
@workspace_option
@settings_option
def enable(workspace: Optional[str], settings: Optional[str]) -> None:
    """Enable PHPMD analysis for the workspace."""
    _set_enabled(workspace, settings, True)


@main.command()
@workspace_option
@settings_option
def disable(workspace: Optional[str], settings: Optional[str]) -> None:
    """Disable PHPMD analysis and clear its diagnostics."""
    _set_enabled(workspace, settings, False)


@main.command()
@workspace_option
@settings_option
def toggle(workspace: Optional[str], settings: Optional[str]) -> None:
    """Flip the enabled setting."""
    _set_enabled(workspace, settings, None)


@main.command()
@click.argument("file", required=False, type=click.Path(dir_okay=False, exists=True, path_type=str))
@workspace_option
@settings_option
def status(file: Optional[str], workspace: Optional[str], settings: Optional[str]) -> None:
    """Print the status indicator, analyzing FILE first when given."""
    root = resolve_workspace(workspace, file)
    log = MessageLog()
    ext = PhpmdExtension(root, store=_store(root, settings), notifier=log)

    async def run() -> StatusDisplay:
        try:
            if ext.service is not None:
                if file:
                    ext.set_active_document(Document.from_path(file))
                    await ext.analyze_current_file()
                else:
                    await ext.service.validate()
            return ext.status.display
        finally:
            ext.dispose()

    display = asyncio.run(run())
    payload = display.model_dump(mode="json")
    payload["messages"] = _messages(log)
    _emit(payload)


if __name__ == "__main__":
    main()

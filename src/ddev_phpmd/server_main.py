from __future__ import annotations

from pathlib import Path
from typing import Dict, Literal, Optional

from mcp.server.fastmcp import FastMCP

from .extension import PhpmdExtension
from .models import AnalysisOutcome, Diagnostic, Document, StatusDisplay, ValidationResult
from .notify import MessageLog
from .validator import resolve_workspace


mcp = FastMCP("DDEV PHPMD MCP Server")

DocumentEvent = Literal["opened", "changed", "saved", "closed"]

_extensions: Dict[Path, PhpmdExtension] = {}

MESSAGE_LOG_LIMIT = 100


def get_extension(workspace: Optional[str], start: Optional[str] = None) -> PhpmdExtension:
    """One long-lived extension per workspace, so state survives between tool calls."""
    root = resolve_workspace(workspace, start)
    ext = _extensions.get(root)
    if ext is None:
        ext = _extensions[root] = PhpmdExtension(root, notifier=MessageLog(limit=MESSAGE_LOG_LIMIT))
    return ext


def reset_extensions() -> None:
    for ext in _extensions.values():
        ext.dispose()
    _extensions.clear()


@mcp.tool()
async def phpmd_analyze_file(path: str, workspace: str | None = None) -> AnalysisOutcome:
    """
    Run PHPMD inside DDEV on one PHP file and return the published diagnostics.
    """
    ext = get_extension(workspace, path)
    ext.reload_configuration()
    if isinstance(ext.notifier, MessageLog):
        ext.notifier.drain()
    document = Document.from_path(path)
    ext.set_active_document(document)
    outcome = await ext.analyze_current_file()
    if outcome is None:
        reason = "; ".join(m.message for m in ext.notifier.drain()) if isinstance(ext.notifier, MessageLog) else None
        return AnalysisOutcome(ok=False, status="skipped", fail_reason=reason or "Analysis not run", document=document.id)
    return outcome


@mcp.tool()
async def phpmd_validate(workspace: str | None = None) -> ValidationResult:
    """
    Check that the workspace is a running DDEV project with PHPMD installed.
    """
    ext = get_extension(workspace)
    if ext.service is None:
        return ValidationResult(valid=False, user_message="PHPMD is disabled")
    return await ext.service.validate()


@mcp.tool()
async def phpmd_document_event(path: str, event: DocumentEvent, workspace: str | None = None) -> StatusDisplay:
    """
    Feed an editor event: 'saved' analyzes in save mode, 'changed' is debounced in type mode.
    """
    ext = get_extension(workspace, path)
    document = Document.from_path(path)
    if event == "opened":
        ext.set_active_document(document)
    elif event == "changed":
        ext.document_changed(document)
    elif event == "saved":
        ext.document_saved(document)
        await ext.wait_idle()
    elif event == "closed":
        ext.document_closed(document)
    return ext.status.display


@mcp.tool()
def phpmd_diagnostics(path: str, workspace: str | None = None) -> list[Diagnostic]:
    """
    Return the diagnostics currently published for a file.
    """
    ext = get_extension(workspace, path)
    return list(ext.publisher.get(Document.from_path(path).id))


@mcp.tool()
def phpmd_status(workspace: str | None = None) -> StatusDisplay:
    """
    Return the status indicator for the active document.
    """
    return get_extension(workspace).status.display


@mcp.tool()
def phpmd_set_enabled(enabled: bool, workspace: str | None = None) -> StatusDisplay:
    """
    Persist the enabled flag; disabling clears every published diagnostic.
    """
    ext = get_extension(workspace)
    if enabled:
        ext.enable()
    else:
        ext.disable()
    return ext.status.display


@mcp.tool()
def phpmd_toggle(workspace: str | None = None) -> StatusDisplay:
    """
    Flip the enabled flag and report the resulting state.
    """
    ext = get_extension(workspace)
    ext.toggle()
    return ext.status.display


def main() -> None:
    # Run the FastMCP server over stdio (default transport for direct execution)
    mcp.run()


if __name__ == "__main__":
    main()

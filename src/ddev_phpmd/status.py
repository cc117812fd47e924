from __future__ import annotations

from typing import Callable, Dict, Optional

from .models import IndicatorState, StatusDisplay, ValidationResult

COMMAND_ENABLE = "ddev-phpmd.enable"
COMMAND_ANALYZE = "ddev-phpmd.analyzeCurrentFile"

_DISPLAY: Dict[IndicatorState, tuple[str, str, str]] = {
    "disabled": ("$(circle-slash) PHPMD", "PHPMD is disabled. Click to enable.", COMMAND_ENABLE),
    "unavailable": ("$(warning) PHPMD", "PHPMD is not available in DDEV. Click to retry.", COMMAND_ANALYZE),
    "clean": ("$(check) PHPMD", "PHPMD found no issues. Click to re-analyze.", COMMAND_ANALYZE),
    "has-issues": ("$(alert) PHPMD", "PHPMD found issues in this file. Click to re-analyze.", COMMAND_ANALYZE),
}


def compute_indicator(
    enabled: bool,
    last_validation: Optional[ValidationResult],
    has_issues: bool,
) -> IndicatorState:
    # No validation yet counts as available: nothing has failed
    if not enabled:
        return "disabled"
    if last_validation is not None and not last_validation.valid:
        return "unavailable"
    if has_issues:
        return "has-issues"
    return "clean"


def describe(state: IndicatorState, validation: Optional[ValidationResult] = None) -> StatusDisplay:
    label, tooltip, command = _DISPLAY[state]
    if state == "unavailable" and validation is not None and validation.user_message:
        tooltip = f"{validation.user_message}. Click to retry."
    return StatusDisplay(state=state, label=label, tooltip=tooltip, command=command)


class StatusIndicator:
    """Keeps the displayed state in sync with its three inputs."""

    def __init__(self, render: Optional[Callable[[StatusDisplay], None]] = None) -> None:
        self._render = render
        self.enabled = True
        self.last_validation: Optional[ValidationResult] = None
        self.active_document: Optional[str] = None
        self._has_issues: Callable[[Optional[str]], bool] = lambda _doc: False
        self.display = describe("clean")

    def bind(self, has_issues: Callable[[Optional[str]], bool]) -> None:
        self._has_issues = has_issues

    @property
    def state(self) -> IndicatorState:
        return self.display.state

    def refresh(self) -> StatusDisplay:
        state = compute_indicator(self.enabled, self.last_validation, self._has_issues(self.active_document))
        self.display = describe(state, self.last_validation)
        if self._render is not None:
            self._render(self.display)
        return self.display

    def on_config_changed(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            self.last_validation = None
        self.refresh()

    def on_validation(self, result: ValidationResult) -> None:
        self.last_validation = result
        self.refresh()

    def on_active_document_changed(self, document_id: Optional[str]) -> None:
        self.active_document = document_id
        self.refresh()

    def on_diagnostics_changed(self, document_id: str) -> None:
        if document_id == self.active_document:
            self.refresh()

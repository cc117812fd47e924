from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from .config import ConfigManager, SettingsStore, default_settings_path
from .models import AnalysisOutcome, Document, StatusDisplay, ToolConfig
from .notify import MessageLog, Notifier
from .phpmd import DISPLAY_NAME, PhpmdTool
from .publisher import DiagnosticPublisher
from .runner import DdevRunner
from .scheduler import VALIDATION_DEBOUNCE_SEC, TriggerScheduler
from .service import RECOVERY_PROBE_INTERVAL_SEC, AnalysisService, Validate
from .status import StatusIndicator
from .validator import validate_ddev_tool

logger = logging.getLogger(__name__)


class PhpmdExtension:
    """
    Wires the analyzer into a host for one workspace.

    The analysis service and its scheduler exist only while the tool is
    enabled; a configuration observer builds them on enable and tears them
    down, clearing every published diagnostic, on disable.
    """

    def __init__(
        self,
        workspace_path: str | Path,
        store: Optional[SettingsStore] = None,
        notifier: Optional[Notifier] = None,
        runner: Optional[DdevRunner] = None,
        validate: Validate = validate_ddev_tool,
        debounce_sec: float = VALIDATION_DEBOUNCE_SEC,
        probe_interval: float = RECOVERY_PROBE_INTERVAL_SEC,
        render: Optional[Callable[[StatusDisplay], None]] = None,
    ) -> None:
        self.workspace_path = Path(workspace_path).resolve()
        self.config = ConfigManager(store or SettingsStore(default_settings_path(self.workspace_path)))
        self.notifier: Notifier = notifier or MessageLog()
        self.runner = runner or DdevRunner()
        self._validate = validate
        self.debounce_sec = debounce_sec
        self.probe_interval = probe_interval

        self.publisher = DiagnosticPublisher()
        self.status = StatusIndicator(render)
        self.status.bind(self.publisher.has_issues)
        self.publisher.on_change(self.status.on_diagnostics_changed)

        self.service: Optional[AnalysisService] = None
        self.scheduler: Optional[TriggerScheduler] = None
        self.active_document: Optional[Document] = None

        self._unsubscribe = self.config.subscribe(self._on_config_changed)
        if self.config.current.enable:
            self._start()
        self.status.on_config_changed(self.config.current.enable)
        logger.info("%s active for %s", DISPLAY_NAME, self.workspace_path)

    # -- lifecycle ------------------------------------------------------

    def _start(self) -> None:
        tool = PhpmdTool(lambda: self.config.current, self.workspace_path)
        self.service = AnalysisService(
            tool,
            self.workspace_path,
            self.publisher,
            self.notifier,
            runner=self.runner,
            validate=self._validate,
            probe_interval=self.probe_interval,
        )
        self.service.on_validation(self.status.on_validation)
        self.scheduler = TriggerScheduler(self.service, lambda: self.config.current, self.notifier, self.debounce_sec)

    def _stop(self) -> None:
        if self.scheduler is not None:
            self.scheduler.dispose()
        if self.service is not None:
            self.service.dispose()
        self.scheduler = None
        self.service = None
        self.publisher.clear_all()

    def _on_config_changed(self, old: ToolConfig, new: ToolConfig) -> None:
        if new.enable and self.service is None:
            self._start()
        elif not new.enable:
            self._stop()
        self.status.on_config_changed(new.enable)

    def reload_configuration(self) -> ToolConfig:
        return self.config.reload()

    def dispose(self) -> None:
        self._unsubscribe()
        self._stop()

    # -- commands -------------------------------------------------------

    async def analyze_current_file(self) -> Optional[AnalysisOutcome]:
        if self.scheduler is None:
            self.notifier.show_warning(f"{DISPLAY_NAME} is disabled. Enable it to analyze files.")
            return None
        return await self.scheduler.analyze_now(self.active_document)

    def enable(self) -> bool:
        return self._set_enabled(True)

    def disable(self) -> bool:
        return self._set_enabled(False)

    def toggle(self) -> bool:
        return self._set_enabled(not self.config.current.enable)

    def _set_enabled(self, enabled: bool) -> bool:
        self.config.set_enabled(enabled)
        state = "enabled" if self.config.current.enable else "disabled"
        self.notifier.show_info(f"{DISPLAY_NAME} {state}")
        return self.config.current.enable

    # -- editor events --------------------------------------------------

    def set_active_document(self, document: Optional[Document]) -> None:
        self.active_document = document
        self.status.on_active_document_changed(document.id if document is not None else None)

    def document_saved(self, document: Document) -> None:
        if self.scheduler is not None:
            self.scheduler.on_document_saved(document)

    def document_changed(self, document: Document) -> None:
        if self.scheduler is not None:
            self.scheduler.on_document_changed(document)

    def document_closed(self, document: Document) -> None:
        if self.scheduler is not None:
            self.scheduler.cancel(document.id)
        self.publisher.forget(document.id)
        if self.active_document is not None and self.active_document.id == document.id:
            self.set_active_document(None)

    async def wait_idle(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.wait_idle()

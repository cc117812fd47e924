from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set

from .models import AnalysisOutcome, Document, ToolConfig
from .notify import Notifier
from .service import AnalysisService

logger = logging.getLogger(__name__)

VALIDATION_DEBOUNCE_SEC = 0.5


@dataclass
class PendingTrigger:
    """An armed debounce timer; only the newest token per document may fire."""

    token: int
    document: Document
    handle: asyncio.TimerHandle


class TriggerScheduler:
    """
    Turn document events into analysis runs.

    On-type edits are debounced per document: every edit re-arms the timer
    and invalidates the previous token, so a burst of edits yields a single
    run for the final document state.
    """

    def __init__(
        self,
        service: AnalysisService,
        config_source: Callable[[], ToolConfig],
        notifier: Notifier,
        debounce_sec: float = VALIDATION_DEBOUNCE_SEC,
    ) -> None:
        self.service = service
        self._config_source = config_source
        self.notifier = notifier
        self.debounce_sec = debounce_sec
        self._pending: Dict[str, PendingTrigger] = {}
        self._tokens = itertools.count(1)
        self._tasks: Set[asyncio.Task[Optional[AnalysisOutcome]]] = set()

    def on_document_changed(self, document: Document) -> None:
        config = self._config_source()
        if not document.is_php or not config.enable or config.validate_on != "type":
            return
        self.cancel(document.id)
        loop = asyncio.get_running_loop()
        token = next(self._tokens)
        handle = loop.call_later(self.debounce_sec, self._fire, document.id, token)
        self._pending[document.id] = PendingTrigger(token, document, handle)

    def on_document_saved(self, document: Document) -> Optional[asyncio.Task[Optional[AnalysisOutcome]]]:
        config = self._config_source()
        if not document.is_php or not config.enable or config.validate_on != "save":
            return None
        self.cancel(document.id)
        return self._spawn(document)

    async def analyze_now(self, document: Optional[Document]) -> Optional[AnalysisOutcome]:
        """Manual trigger: ignores validate_on, but reports rather than ignoring a disabled tool."""
        if document is None:
            self.notifier.show_warning("No active file to analyze")
            return None
        if not self._config_source().enable:
            self.notifier.show_warning(f"{self.service.tool.display_name} is disabled. Enable it to analyze files.")
            return None
        if not document.is_php:
            self.notifier.show_warning(f"{document.path.name} is not a PHP file")
            return None
        self.cancel(document.id)
        return await self._run(document)

    def _fire(self, document_id: str, token: int) -> None:
        pending = self._pending.get(document_id)
        if pending is None or pending.token != token:
            return
        del self._pending[document_id]
        self._spawn(pending.document)

    def _spawn(self, document: Document) -> asyncio.Task[Optional[AnalysisOutcome]]:
        task = asyncio.get_running_loop().create_task(self._run(document))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, document: Document) -> Optional[AnalysisOutcome]:
        try:
            return await self.service.analyze(document)
        except Exception as e:
            logger.exception("Analysis of %s failed", document.id)
            self.notifier.show_error(f"Error running {self.service.tool.display_name}: {e}")
            return None

    def is_scheduled(self, document_id: str) -> bool:
        return document_id in self._pending

    def cancel(self, document_id: str) -> None:
        pending = self._pending.pop(document_id, None)
        if pending is not None:
            pending.handle.cancel()

    def cancel_all(self) -> None:
        for doc_id in list(self._pending):
            self.cancel(doc_id)

    async def wait_idle(self) -> None:
        """Wait for armed timers and running analyses to settle."""
        while self._pending or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce_sec / 4 or 0.01)

    def dispose(self) -> None:
        # In-flight runs are not aborted; their results are dropped once disabled
        self.cancel_all()

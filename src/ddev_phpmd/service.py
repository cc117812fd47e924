from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional

from .errors import ExecutionError, ParseError, truncate_excerpt
from .models import AnalysisOutcome, Document, OutcomeStatus, ValidationResult
from .notify import Notifier
from .publisher import DiagnosticPublisher
from .runner import DdevRunner
from .tools import PhpToolService
from .validator import validate_ddev_tool

logger = logging.getLogger(__name__)

RECOVERY_PROBE_INTERVAL_SEC = 30.0

Validate = Callable[[str, Path, DdevRunner], ValidationResult]
ValidationListener = Callable[[ValidationResult], None]


class AnalysisService:
    """
    Validate, run, translate and publish one tool for one workspace.

    Runs for the same document never overlap: a trigger that arrives while
    a run is in flight records the newest document state, and the in-flight
    result is dropped as stale once it lands.
    """

    def __init__(
        self,
        tool: PhpToolService,
        workspace_path: str | Path,
        publisher: DiagnosticPublisher,
        notifier: Notifier,
        runner: Optional[DdevRunner] = None,
        validate: Validate = validate_ddev_tool,
        probe_interval: float = RECOVERY_PROBE_INTERVAL_SEC,
    ) -> None:
        self.tool = tool
        self.workspace_path = Path(workspace_path).resolve()
        self.publisher = publisher
        self.notifier = notifier
        self.runner = runner or DdevRunner()
        self._validate = validate
        self.probe_interval = probe_interval
        self.last_validation: Optional[ValidationResult] = None
        self._validation_listeners: List[ValidationListener] = []
        self._probe_task: Optional[asyncio.Task[None]] = None
        self._disposed = False

    # -- validation -----------------------------------------------------

    def on_validation(self, listener: ValidationListener) -> None:
        self._validation_listeners.append(listener)

    def _set_validation(self, result: ValidationResult) -> None:
        self.last_validation = result
        for listener in list(self._validation_listeners):
            listener(result)

    async def validate(self) -> ValidationResult:
        result = await asyncio.to_thread(self._validate, self.tool.name, self.workspace_path, self.runner)
        self._set_validation(result)
        return result

    def workspace_folder_for(self, path: Path) -> Optional[Path]:
        try:
            path.resolve().relative_to(self.workspace_path)
        except ValueError:
            return None
        return self.workspace_path

    # -- analysis -------------------------------------------------------

    def _outcome(self, document: Document, status: OutcomeStatus, **kwargs: object) -> AnalysisOutcome:
        ok = status in ("published", "skipped", "stale")
        return AnalysisOutcome(ok=ok, status=status, document=document.id, **kwargs)  # type: ignore[arg-type]

    async def analyze(self, document: Document) -> AnalysisOutcome:
        config = self.tool.get_config()
        if self._disposed or not config.enable:
            return self._outcome(document, "skipped", fail_reason=f"{self.tool.display_name} is disabled")
        if not document.is_php:
            return self._outcome(document, "skipped", fail_reason=f"Not a PHP document: {document.id}")

        state = self.publisher.state(document.id)
        sequence = state.next_sequence()
        if state.in_flight:
            state.pending = document
            logger.debug("Run in flight for %s; keeping latest trigger (#%d)", document.id, sequence)
            return self._outcome(document, "stale", fail_reason="Superseded by a newer run")

        state.in_flight = True
        try:
            outcome = await self._run_guarded(document, sequence)
            while state.pending is not None:
                document, state.pending = state.pending, None
                outcome = await self._run_guarded(document, state.sequence)
            return outcome
        finally:
            state.in_flight = False

    async def _run_guarded(self, document: Document, sequence: int) -> AnalysisOutcome:
        try:
            return await self._run(document, sequence)
        except Exception as e:
            logger.exception("Unexpected error analyzing %s", document.id)
            self.notifier.show_error(f"Error running {self.tool.display_name}: {truncate_excerpt(str(e))}")
            return self._outcome(document, "failed", fail_reason=str(e))

    def _accepts(self, document: Document, sequence: int) -> bool:
        if self._disposed:
            logger.debug("Discarding result for %s: service disposed", document.id)
            return False
        if not self.tool.get_config().enable:
            logger.debug("Discarding result for %s: tool disabled mid-run", document.id)
            return False
        if not self.publisher.is_latest(document.id, sequence):
            logger.debug("Discarding stale result #%d for %s", sequence, document.id)
            return False
        return True

    async def _run(self, document: Document, sequence: int) -> AnalysisOutcome:
        root = self.workspace_folder_for(document.path)
        if root is None:
            self.notifier.show_error("No workspace folder found for the current file")
            return self._outcome(document, "failed", fail_reason=f"{document.id} is outside {self.workspace_path}")

        validation = await self.validate()
        if self._disposed:
            return self._outcome(document, "stale", validation=validation)
        if not validation.valid:
            self.notifier.show_error(validation.user_message or f"{self.tool.display_name} not available", validation.user_detail)
            self.ensure_recovery_probe()
            return self._outcome(document, "unavailable", fail_reason=validation.user_message, validation=validation)

        config = self.tool.get_config()
        relative_path = document.path.resolve().relative_to(root).as_posix()
        command = self.tool.build_command(relative_path, config)

        try:
            output = await asyncio.to_thread(self.runner.exec, command, root)
        except ExecutionError as e:
            if self._disposed:
                return self._outcome(document, "stale", command=command, validation=validation)
            self.notifier.show_error(
                f"{self.tool.display_name} Error: {truncate_excerpt(e.summary)}",
                f"Make sure {self.tool.display_name} is installed in your DDEV container.",
            )
            return self._outcome(document, "failed", fail_reason=e.summary, command=command, validation=validation)

        parse_error: Optional[ParseError] = None
        try:
            diagnostics = self.tool.process_output(output, config, file=document.id)
        except ParseError as e:
            parse_error = e
            diagnostics = []

        if not self._accepts(document, sequence):
            return self._outcome(document, "stale", command=command, validation=validation)

        self.publisher.publish(document.id, diagnostics)

        if parse_error is not None:
            self.notifier.show_error(
                f"Error processing {self.tool.display_name} output: {parse_error}",
                f"There was a problem processing the {self.tool.display_name} output.\n\nRaw output:\n{parse_error.excerpt}",
            )
            return self._outcome(document, "failed", fail_reason=str(parse_error), command=command, validation=validation)

        return self._outcome(document, "published", command=command, validation=validation, diagnostics=diagnostics)

    # -- recovery -------------------------------------------------------

    def ensure_recovery_probe(self) -> None:
        """Re-validate periodically while enabled but unavailable."""
        if self._disposed:
            return
        if self._probe_task is not None and not self._probe_task.done():
            return
        self._probe_task = asyncio.get_running_loop().create_task(self._probe_loop())

    async def _probe_loop(self) -> None:
        while True:
            await asyncio.sleep(self.probe_interval)
            if self._disposed or not self.tool.get_config().enable:
                return
            try:
                result = await self.validate()
            except Exception:
                logger.exception("Recovery probe failed")
                continue
            if self._disposed:
                return
            if result.valid:
                logger.info("%s is available again in %s", self.tool.display_name, self.workspace_path)
                self.notifier.show_info(f"{self.tool.display_name} is available again")
                return

    def dispose(self) -> None:
        self._disposed = True
        if self._probe_task is not None and not self._probe_task.done():
            self._probe_task.cancel()
        self._probe_task = None
        self._validation_listeners.clear()

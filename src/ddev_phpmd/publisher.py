from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import Diagnostic, Document

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


@dataclass
class RunState:
    """Per-document bookkeeping for analysis runs."""

    last_diagnostics: Tuple[Diagnostic, ...] = ()
    in_flight: bool = False
    sequence: int = 0
    pending: Optional[Document] = None

    def next_sequence(self) -> int:
        self.sequence += 1
        return self.sequence


@dataclass
class DiagnosticPublisher:
    """
    Owns the diagnostic collection, keyed by document id.

    Each publish replaces the previous set wholesale; an empty set removes
    the entry so nothing stale survives once a file is clean.
    """

    source: str = "phpmd"
    _states: Dict[str, RunState] = field(default_factory=dict)
    _listeners: List[ChangeListener] = field(default_factory=list)

    def state(self, document_id: str) -> RunState:
        st = self._states.get(document_id)
        if st is None:
            st = self._states[document_id] = RunState()
        return st

    def is_latest(self, document_id: str, sequence: int) -> bool:
        st = self._states.get(document_id)
        return st is not None and st.sequence == sequence

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, document_id: str) -> None:
        for listener in list(self._listeners):
            listener(document_id)

    def publish(self, document_id: str, diagnostics: Sequence[Diagnostic]) -> None:
        st = self.state(document_id)
        st.last_diagnostics = ()
        if diagnostics:
            st.last_diagnostics = tuple(diagnostics)
        logger.debug("Published %d diagnostics for %s", len(st.last_diagnostics), document_id)
        self._notify(document_id)

    def clear(self, document_id: str) -> None:
        st = self._states.get(document_id)
        if st is None or not st.last_diagnostics:
            return
        st.last_diagnostics = ()
        self._notify(document_id)

    def clear_all(self) -> None:
        """Clear every document and invalidate runs still in flight."""
        cleared = self.documents()
        # Fresh states start past the old sequence so late results never match
        self._states = {doc_id: RunState(sequence=st.sequence + 1) for doc_id, st in self._states.items()}
        for doc_id in cleared:
            self._notify(doc_id)

    def forget(self, document_id: str) -> None:
        """Drop all state for a closed document."""
        st = self._states.pop(document_id, None)
        if st is not None and st.last_diagnostics:
            self._notify(document_id)

    def get(self, document_id: str) -> Tuple[Diagnostic, ...]:
        st = self._states.get(document_id)
        return st.last_diagnostics if st is not None else ()

    def has_issues(self, document_id: Optional[str]) -> bool:
        return bool(document_id) and bool(self.get(document_id or ""))

    def documents(self) -> List[str]:
        return sorted(doc_id for doc_id, st in self._states.items() if st.last_diagnostics)

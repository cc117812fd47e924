from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Protocol

logger = logging.getLogger(__name__)

Level = Literal["info", "warning", "error"]


class Notifier(Protocol):
    """User-visible messages, shown by whatever hosts the analyzer."""

    def show_info(self, message: str, detail: Optional[str] = None) -> None: ...

    def show_warning(self, message: str, detail: Optional[str] = None) -> None: ...

    def show_error(self, message: str, detail: Optional[str] = None) -> None: ...


@dataclass(frozen=True)
class Message:
    level: Level
    message: str
    detail: Optional[str] = None


@dataclass
class MessageLog:
    """Notifier that records messages and mirrors them to the log.

    With `limit` set only the newest `limit` messages are kept.
    """

    messages: List[Message] = field(default_factory=list)
    limit: Optional[int] = None

    def _add(self, level: Level, message: str, detail: Optional[str]) -> None:
        self.messages.append(Message(level, message, detail))
        if self.limit is not None and len(self.messages) > self.limit:
            del self.messages[: len(self.messages) - self.limit]
        log_level = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}[level]
        if detail:
            logger.log(log_level, "%s (%s)", message, detail)
        else:
            logger.log(log_level, "%s", message)

    def show_info(self, message: str, detail: Optional[str] = None) -> None:
        self._add("info", message, detail)

    def show_warning(self, message: str, detail: Optional[str] = None) -> None:
        self._add("warning", message, detail)

    def show_error(self, message: str, detail: Optional[str] = None) -> None:
        self._add("error", message, detail)

    def by_level(self, level: Level) -> List[Message]:
        return [m for m in self.messages if m.level == level]

    def drain(self) -> List[Message]:
        out, self.messages = self.messages, []
        return out

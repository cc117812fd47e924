from __future__ import annotations

from typing import Optional

EXCERPT_LIMIT = 200


def truncate_excerpt(text: str, limit: int = EXCERPT_LIMIT) -> str:
    """
    Shorten tool output for user-facing messages.

    Cuts at the first blank line when there is one, otherwise at `limit`
    characters. A trailing "..." marks that something was dropped.
    """
    text = text or ""
    cut = text.find("\n\n")
    short = text[:cut] if cut != -1 else text[:limit]
    if len(short) < len(text):
        return short + "..."
    return short


class PhpmdError(Exception):
    """Base class for failures surfaced while running PHPMD."""


class ExecutionError(PhpmdError):
    """The command inside the container failed without producing any output."""

    def __init__(self, stderr: str, exit_info: str, command: Optional[str] = None) -> None:
        self.stderr = stderr or ""
        self.exit_info = exit_info
        self.command = command
        super().__init__(self.summary)

    @property
    def summary(self) -> str:
        first = self.stderr.strip().split("\n\n")[0].strip()
        return first or f"command failed ({self.exit_info})"


class ParseError(PhpmdError):
    """PHPMD output was not the JSON document we expected."""

    def __init__(self, message: str, raw_output: str) -> None:
        self.raw_output = raw_output or ""
        self.excerpt = truncate_excerpt(self.raw_output)
        super().__init__(truncate_excerpt(message))

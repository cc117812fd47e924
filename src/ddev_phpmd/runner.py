from __future__ import annotations

import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import ExecutionError

logger = logging.getLogger(__name__)

DDEV_EXECUTABLE = "ddev"
DEFAULT_TIMEOUT_SEC = 60


def quote_command(argv: Sequence[str]) -> str:
    """Join argv into one shell-safe command line for the container shell."""
    return shlex.join([str(a) for a in argv])


def parse_version_string(s: str) -> str:
    # phpmd --version prints e.g. "PHPMD 2.15.0"
    m = re.search(r"\b(\d+\.\d+\.\d+)\b", s)
    return m.group(1) if m else s.strip()


@dataclass(frozen=True)
class CompletedCommand:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class DdevRunner:
    """
    Run shell commands inside the DDEV web container of a project.

    `ddev exec` hands its argument to a shell inside the container, so
    callers pass a single command line built with `quote_command`. No host
    shell is involved.
    """

    def __init__(self, executable: str = DDEV_EXECUTABLE, timeout_sec: int = DEFAULT_TIMEOUT_SEC) -> None:
        self.executable = executable
        self.timeout_sec = timeout_sec

    def argv_for(self, command: str) -> List[str]:
        return [self.executable, "exec", command]

    def run(self, command: str, workspace_path: str | Path, timeout_sec: Optional[int] = None) -> CompletedCommand:
        """
        Run the command and return whatever it produced.

        Spawn failures and timeouts are folded into a CompletedCommand with
        returncode -1 so callers can inspect the text uniformly.
        """
        argv = self.argv_for(command)
        timeout = timeout_sec if timeout_sec is not None else self.timeout_sec
        logger.debug("Running %s in %s", argv, workspace_path)
        try:
            cp = subprocess.run(
                argv,
                cwd=str(workspace_path),
                check=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return CompletedCommand(argv, -1, "", f"Timeout after {timeout}s while running: {command}")
        except OSError as e:
            # Missing ddev binary or unusable working directory
            return CompletedCommand(argv, -1, "", f"Failed to execute {self.executable}: {e}")
        return CompletedCommand(argv, cp.returncode, cp.stdout or "", cp.stderr or "")

    def exec(self, command: str, workspace_path: str | Path) -> str:
        """
        Return stdout of `command`, regardless of its exit code.

        PHPMD exits non-zero when it finds violations while still writing a
        valid report, so only a failed run with empty stdout is an error.
        """
        result = self.run(command, workspace_path)
        if result.stdout:
            if result.returncode != 0:
                logger.debug("Command exited %d with output; treating as result", result.returncode)
            return result.stdout
        if result.returncode == 0:
            return ""
        exit_info = "timeout or spawn failure" if result.returncode < 0 else f"exit code {result.returncode}"
        logger.warning("Command produced no output (%s): %s", exit_info, command)
        raise ExecutionError(result.stderr, exit_info, command=command)

    def tool_version(self, tool_name: str, workspace_path: str | Path) -> str:
        """Version reported by `<tool> --version` inside the container, or "" on failure."""
        result = self.run(quote_command([tool_name, "--version"]), workspace_path, timeout_sec=10)
        if result.returncode != 0:
            return ""
        return parse_version_string(result.stdout)

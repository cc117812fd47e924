from __future__ import annotations

from typing import List, Optional, Protocol

from .models import Diagnostic, ToolConfig


class PhpToolService(Protocol):
    """
    What the orchestrator needs from a PHP quality tool run through DDEV.

    Sibling linters (phpcs, phpstan) plug in by providing the same three
    capabilities; validation, execution and publishing are shared.
    """

    name: str
    display_name: str

    def get_config(self) -> ToolConfig: ...

    def build_command(self, relative_path: str, config: ToolConfig) -> str: ...

    def process_output(self, output: str, config: ToolConfig, file: Optional[str] = None) -> List[Diagnostic]: ...

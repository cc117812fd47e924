from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .models import ToolConfig

logger = logging.getLogger(__name__)

SECTION = "ddev-phpmd"

# settings key -> ToolConfig field
SETTING_KEYS: Dict[str, str] = {
    "enable": "enable",
    "validateOn": "validate_on",
    "rulesets": "rulesets",
    "minSeverity": "min_severity",
    "configPath": "config_path",
}

ConfigObserver = Callable[[ToolConfig, ToolConfig], None]


def default_settings_path(workspace_path: str | Path) -> Path:
    return Path(workspace_path) / ".vscode" / "settings.json"


class SettingsStore:
    """
    Flat key/value settings, in the editor's "section.key" layout.

    Backed by a JSON file when a path is given, otherwise held in memory.
    Keys of other sections are preserved on write.
    """

    def __init__(self, path: str | Path | None = None, initial: Optional[Dict[str, Any]] = None) -> None:
        self.path = Path(path) if path is not None else None
        self._memory: Dict[str, Any] = dict(initial or {})

    def _read_all(self) -> Dict[str, Any]:
        if self.path is None:
            return dict(self._memory)
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self.path} must contain a JSON object")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        if self.path is None:
            self._memory = dict(data)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=4, sort_keys=True) + "\n", encoding="utf-8")

    def as_dict(self) -> Dict[str, Any]:
        return self._read_all()

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(f"{SECTION}.{key}", default)

    def update(self, key: str, value: Any) -> None:
        if key not in SETTING_KEYS:
            raise KeyError(f"Unknown setting: {SECTION}.{key}")
        data = self._read_all()
        data[f"{SECTION}.{key}"] = value
        self._write_all(data)

    def load(self) -> ToolConfig:
        data = self._read_all()
        values = {
            field: data[f"{SECTION}.{key}"]
            for key, field in SETTING_KEYS.items()
            if f"{SECTION}.{key}" in data
        }
        try:
            return ToolConfig(**values)
        except ValidationError as e:
            # Bad values fall back to defaults
            logger.warning("Invalid %s settings, using defaults: %s", SECTION, e)
            return ToolConfig()


class ConfigManager:
    """Holds the single active ToolConfig snapshot and notifies observers on change."""

    def __init__(self, store: SettingsStore) -> None:
        self.store = store
        self._current = store.load()
        self._observers: List[ConfigObserver] = []

    @property
    def current(self) -> ToolConfig:
        return self._current

    def subscribe(self, observer: ConfigObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def reload(self) -> ToolConfig:
        return self._replace(self.store.load())

    def set_enabled(self, enabled: bool) -> ToolConfig:
        self.store.update("enable", enabled)
        return self.reload()

    def _replace(self, new: ToolConfig) -> ToolConfig:
        old = self._current
        self._current = new
        if new != old:
            logger.debug("Configuration changed: %s", new)
            for observer in list(self._observers):
                observer(old, new)
        return new

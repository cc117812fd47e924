from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


Severity = Literal["information", "warning", "error"]
MinSeverity = Literal["error", "warning", "info"]
ValidateOn = Literal["save", "type"]
FailureKind = Literal["no-project", "not-running", "tool-missing", "unknown"]
IndicatorState = Literal["disabled", "unavailable", "clean", "has-issues"]
OutcomeStatus = Literal["published", "skipped", "unavailable", "failed", "stale"]

DEFAULT_RULESETS: tuple[str, ...] = (
    "cleancode",
    "codesize",
    "controversial",
    "design",
    "naming",
    "unusedcode",
)

PHP_SUFFIXES = {".php", ".phtml", ".inc"}


class ToolConfig(BaseModel):
    """Immutable snapshot of the PHPMD settings."""

    model_config = ConfigDict(frozen=True)

    enable: bool = True
    validate_on: ValidateOn = "save"
    rulesets: tuple[str, ...] = DEFAULT_RULESETS
    min_severity: MinSeverity = "warning"
    config_path: Optional[str] = None

    @field_validator("rulesets", mode="before")
    @classmethod
    def _ordered_unique(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            seen: dict[str, None] = {}
            for item in value:
                name = str(item).strip()
                if name:
                    seen.setdefault(name, None)
            return tuple(seen)
        return value

    @field_validator("config_path", mode="before")
    @classmethod
    def _blank_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    failure_kind: Optional[FailureKind] = None
    user_message: Optional[str] = None
    user_detail: Optional[str] = None


class Violation(BaseModel):
    """One PHPMD finding, as reported in the JSON renderer output."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    begin_line: int = Field(alias="beginLine")
    end_line: Optional[int] = Field(default=None, alias="endLine")
    begin_column: int = Field(default=1, alias="beginColumn")
    end_column: int = Field(default=1, alias="endColumn")
    description: str
    rule_id: str = Field(alias="rule")
    rule_set: str = Field(default="", alias="ruleSet")
    priority: Optional[int] = None
    external_info_url: Optional[str] = Field(default=None, alias="externalInfoUrl")

    @field_validator("priority", "end_line", mode="before")
    @classmethod
    def _lenient_int(cls, value: object) -> Optional[int]:
        # Unreadable values become None
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value)
        return None


class FileViolations(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    file: str
    violations: list[Violation] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    files: list[FileViolations] = Field(default_factory=list)


class RangePosModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    line: int
    character: int


class RangeModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: RangePosModel
    end: RangePosModel


class DiagnosticCode(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    target: Optional[str] = None


class Diagnostic(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    range: RangeModel
    message: str
    severity: Severity
    severity_level: int = Field(description="Normalized: information=1, warning=2, error=3")
    source: str = "phpmd"
    code: DiagnosticCode


class Document(BaseModel):
    """An editor document, identified by its absolute path."""

    model_config = ConfigDict(frozen=True)

    path: Path
    language_id: str = ""
    version: int = 0

    @classmethod
    def from_path(cls, path: str | Path, version: int = 0) -> "Document":
        p = Path(path).resolve()
        language = "php" if p.suffix.lower() in PHP_SUFFIXES else p.suffix.lstrip(".").lower()
        return cls(path=p, language_id=language, version=version)

    @property
    def id(self) -> str:
        return str(self.path)

    @property
    def is_php(self) -> bool:
        return self.language_id == "php"


class StatusDisplay(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: IndicatorState
    label: str
    tooltip: str
    command: str


class AnalysisOutcome(BaseModel):
    ok: bool
    status: OutcomeStatus
    fail_reason: Optional[str] = None
    document: str
    command: Optional[str] = None
    validation: Optional[ValidationResult] = None
    diagnostics: list[Diagnostic] = Field(default_factory=list)

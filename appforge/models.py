"""Pydantic v2 models shared across the AppForge pipeline.

Defines the build request, generated files and code blocks, validation
results, persisted constraints and build records, and the structured results
each pipeline step hands to the next.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from .utils import utc_now


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Framework(str, Enum):
    """Target project shape. Chosen once per build."""
    POWERSHELL = "powershell"
    POWERSHELL_MODULE = "powershell-module"
    PYTHON_TK = "python-tk"
    PYTHON_WEB = "python-web"
    TAURI = "tauri"

    @classmethod
    def parse(cls, value: object) -> Optional["Framework"]:
        """Return the matching member, or ``None`` for unrecognized input."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class BuildStatus(str, Enum):
    """Terminal status of a build record."""
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Request & generated output
# ---------------------------------------------------------------------------

class BuildRequest(BaseModel):
    """A single prompt-to-project build request."""
    prompt: str = Field(..., description="Natural-language description of the app")
    framework_override: Optional[Union[Framework, str]] = Field(
        default=None, description="Explicit framework; wins over keyword routing"
    )
    name: Optional[str] = Field(default=None, description="App name (derived from prompt if omitted)")
    no_branding: bool = Field(default=False)
    provider: Optional[str] = Field(default=None)
    model: Optional[str] = Field(default=None)
    max_tokens: int = Field(default=0, description="Token ceiling override; <= 0 uses the model table")
    max_retries: Optional[int] = Field(default=None, ge=0)

    def is_valid(self) -> bool:
        """A request is valid when its trimmed prompt is non-empty."""
        return bool(self.prompt and self.prompt.strip())


class GeneratedFile(BaseModel):
    """One file of a generated project."""
    path: str = Field(..., description="Relative path with forward slashes")
    language: str = Field(default="")
    content: str = Field(default="")


class CodeBlock(BaseModel):
    """A fenced code block extracted from a model response."""
    index: int = Field(..., ge=1, description="1-based position in document order")
    language: str = Field(default="")
    file_name: Optional[str] = Field(default=None)
    code: str = Field(default="")
    line_count: int = Field(default=0, ge=0)


FileMap = dict[str, GeneratedFile]


# ---------------------------------------------------------------------------
# Step results
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Outcome of validating a whole file set.

    ``success`` is true exactly when ``errors`` is empty; build instances
    with :meth:`from_errors` to keep the two in step.
    """
    success: bool = Field(default=True)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_errors(
        cls, errors: list[str], warnings: Optional[list[str]] = None
    ) -> "ValidationResult":
        return cls(success=not errors, errors=list(errors), warnings=list(warnings or []))


class GenerationResult(BaseModel):
    """Result of one CodeGenerator call."""
    success: bool
    files: FileMap = Field(default_factory=dict)
    stop_reason: Optional[str] = Field(default=None)
    output: str = Field(default="", description="Human-readable status or error")
    log_path: Optional[str] = Field(default=None, description="Raw response log on truncation")
    usage: dict[str, int] = Field(default_factory=dict)


class PlanResult(BaseModel):
    """Result of the optional planning pre-pass."""
    skipped: bool
    plan: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)


class MergeResult(BaseModel):
    """Result of folding a multi-file script project into one entry file."""
    success: bool
    merged_path: Optional[str] = Field(default=None)
    merged: bool = Field(default=False, description="False when the entry was returned as-is")
    included: list[str] = Field(default_factory=list, description="Inlined files, in order")
    error: Optional[str] = Field(default=None)


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------

class BuildConstraint(BaseModel):
    """A directive learned from a recurring build error."""
    framework: str
    constraint_text: str
    error_pattern: Optional[str] = Field(default=None)
    hit_count: int = Field(default=1, ge=1)
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)


class BuildRecord(BaseModel):
    """One entry of the append-only build history."""
    id: Optional[int] = Field(default=None)
    name: str
    framework: str
    prompt: str
    status: BuildStatus
    exe_path: Optional[str] = Field(default=None)
    source_dir: Optional[str] = Field(default=None)
    provider: str = Field(default="")
    model: str = Field(default="")
    branded: bool = Field(default=True)
    build_time: float = Field(default=0.0, ge=0.0, description="Seconds")
    created_at: str = Field(default_factory=utc_now)


class BuildOutcome(BaseModel):
    """Terminal result of BuildOrchestrator.build."""
    success: bool
    output: str = Field(default="")
    exe_path: Optional[str] = Field(default=None)
    framework: Optional[Framework] = Field(default=None)
    app_name: str = Field(default="")
    source_dir: Optional[str] = Field(default=None)
    record: Optional[BuildRecord] = Field(default=None)

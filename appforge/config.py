"""AppForge configuration.

Centralised, typed configuration for the build pipeline. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


API_KEY_ENV: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def api_key_from_env(provider: str) -> str:
    """API key for *provider* from its environment variable (empty if unset)."""
    var = API_KEY_ENV.get(provider.strip().lower())
    return os.environ.get(var, "") if var else ""


class ProviderConfig(BaseModel):
    """Configuration for the completion provider."""

    name: str = Field(default="anthropic", description="anthropic, openai or ollama")
    model: str = Field(default="claude-sonnet-4-20250514")
    api_key: str = Field(default="", repr=False)
    base_url: str = Field(default="", description="Overrides the provider's default URL")
    timeout: int = Field(default=300, ge=10, description="Per-request timeout in seconds")


class BuildConfig(BaseModel):
    """Tuning knobs for the build pipeline."""

    max_retries: int = Field(
        default=3, ge=0, description="Repair regenerations before a build is exhausted"
    )
    max_tokens: int = Field(
        default=0, ge=0, description="Generation token ceiling override (0 = per-model table)"
    )
    planning_word_threshold: int = Field(
        default=150, ge=0, description="Specs at or below this word count skip planning"
    )
    package: bool = Field(default=True, description="Invoke the native packager after a build")
    branding: bool = Field(default=True, description="Inject the attribution marker")


class StorageConfig(BaseModel):
    """Settings for the embedded SQLite store."""

    db_name: str = Field(default="appforge.db")
    retry_attempts: int = Field(default=5, ge=1, description="Attempts on 'database is locked'")
    retry_base_delay: float = Field(default=0.05, gt=0, description="First backoff delay in seconds")
    busy_timeout: float = Field(default=5.0, ge=0, description="sqlite3 connect timeout")


class Config(BaseModel):
    """Global AppForge configuration.

    Instances are typically created once by the CLI entry point (or
    ``Config.from_env``) and passed through the rest of the system.
    """

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".appforge")
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def builds_dir(self) -> Path:
        """Root directory holding one source directory per build."""
        return self.data_dir / "builds"

    @property
    def logs_dir(self) -> Path:
        """Directory for raw responses kept for diagnosis (e.g. truncations)."""
        return self.data_dir / "logs"

    @property
    def db_path(self) -> Path:
        """Path to the SQLite database shared by the persistent stores."""
        return self.data_dir / self.storage.db_name

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file. Defaults to ``<data_dir>/config.json``.

        Returns:
            The resolved path where the file was written.
        """
        target = path or (self.data_dir / "config.json")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            self.model_dump_json(indent=2, exclude={"provider": {"api_key"}}),
            encoding="utf-8",
        )
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            APPFORGE_HOME, APPFORGE_PROVIDER, APPFORGE_MODEL, APPFORGE_BASE_URL,
            APPFORGE_TIMEOUT, APPFORGE_MAX_RETRIES, APPFORGE_MAX_TOKENS,
            APPFORGE_NO_PACKAGE, APPFORGE_NO_BRANDING,
            ANTHROPIC_API_KEY, OPENAI_API_KEY.
        """
        provider_kwargs: dict[str, Any] = {}
        if os.environ.get("APPFORGE_PROVIDER"):
            provider_kwargs["name"] = os.environ["APPFORGE_PROVIDER"].strip().lower()
        if os.environ.get("APPFORGE_MODEL"):
            provider_kwargs["model"] = os.environ["APPFORGE_MODEL"]
        if os.environ.get("APPFORGE_BASE_URL"):
            provider_kwargs["base_url"] = os.environ["APPFORGE_BASE_URL"]
        if os.environ.get("APPFORGE_TIMEOUT"):
            provider_kwargs["timeout"] = int(os.environ["APPFORGE_TIMEOUT"])

        api_key = api_key_from_env(provider_kwargs.get("name", "anthropic"))
        if api_key:
            provider_kwargs["api_key"] = api_key

        build_kwargs: dict[str, Any] = {}
        if os.environ.get("APPFORGE_MAX_RETRIES"):
            build_kwargs["max_retries"] = int(os.environ["APPFORGE_MAX_RETRIES"])
        if os.environ.get("APPFORGE_MAX_TOKENS"):
            build_kwargs["max_tokens"] = int(os.environ["APPFORGE_MAX_TOKENS"])
        if os.environ.get("APPFORGE_NO_PACKAGE"):
            build_kwargs["package"] = False
        if os.environ.get("APPFORGE_NO_BRANDING"):
            build_kwargs["branding"] = False

        kwargs: dict[str, Any] = {
            "provider": ProviderConfig(**provider_kwargs),
            "build": BuildConfig(**build_kwargs),
        }
        if os.environ.get("APPFORGE_HOME"):
            kwargs["data_dir"] = Path(os.environ["APPFORGE_HOME"]).expanduser()
        return cls(**kwargs)

    def ensure_directories(self) -> None:
        """Create all derived directories that must exist before a build runs."""
        for directory in (self.data_dir, self.builds_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

"""Unit tests for appforge.config.

Covers defaults, derived paths, JSON round-trips that omit secrets,
environment overrides, and directory creation.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from appforge.config import BuildConfig, Config, ProviderConfig, api_key_from_env


# ---------------------------------------------------------------------------
# Defaults & derived paths
# ---------------------------------------------------------------------------


class TestDefaults:
    @pytest.mark.unit
    def test_provider_defaults(self):
        provider = ProviderConfig()
        assert provider.name == "anthropic"
        assert provider.timeout == 300
        assert provider.api_key == ""

    @pytest.mark.unit
    def test_build_defaults(self):
        build = BuildConfig()
        assert build.max_retries == 3
        assert build.max_tokens == 0
        assert build.planning_word_threshold == 150
        assert build.package is True
        assert build.branding is True

    @pytest.mark.unit
    def test_derived_paths(self, tmp_path: Path):
        config = Config(data_dir=tmp_path)
        assert config.builds_dir == tmp_path / "builds"
        assert config.logs_dir == tmp_path / "logs"
        assert config.db_path == tmp_path / "appforge.db"

    @pytest.mark.unit
    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            BuildConfig(max_retries=-1)

    @pytest.mark.unit
    def test_api_key_not_in_repr(self):
        provider = ProviderConfig(api_key="sk-secret")
        assert "sk-secret" not in repr(provider)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


class TestSaveLoad:
    @pytest.mark.unit
    def test_round_trip(self, tmp_path: Path):
        config = Config(data_dir=tmp_path)
        config.build.max_retries = 5
        path = config.save()
        assert path == tmp_path / "config.json"

        loaded = Config.load(path)
        assert loaded.build.max_retries == 5
        assert loaded.data_dir == tmp_path

    @pytest.mark.unit
    def test_api_key_is_not_persisted(self, tmp_path: Path):
        config = Config(data_dir=tmp_path)
        config.provider.api_key = "sk-secret"
        path = config.save(tmp_path / "nested" / "cfg.json")
        assert "sk-secret" not in path.read_text(encoding="utf-8")
        assert Config.load(path).provider.api_key == ""


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


class TestFromEnv:
    @pytest.mark.unit
    def test_reads_overrides(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("APPFORGE_HOME", str(tmp_path))
        monkeypatch.setenv("APPFORGE_PROVIDER", "OpenAI")
        monkeypatch.setenv("APPFORGE_MODEL", "gpt-4o")
        monkeypatch.setenv("APPFORGE_MAX_RETRIES", "1")
        monkeypatch.setenv("APPFORGE_NO_PACKAGE", "1")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")

        config = Config.from_env()
        assert config.data_dir == tmp_path
        assert config.provider.name == "openai"
        assert config.provider.model == "gpt-4o"
        assert config.provider.api_key == "sk-openai"
        assert config.build.max_retries == 1
        assert config.build.package is False
        assert config.build.branding is True

    @pytest.mark.unit
    def test_defaults_without_environment(self, monkeypatch):
        for var in ("APPFORGE_HOME", "APPFORGE_PROVIDER", "APPFORGE_MODEL", "ANTHROPIC_API_KEY"):
            monkeypatch.delenv(var, raising=False)
        config = Config.from_env()
        assert config.provider.name == "anthropic"
        assert config.data_dir == Path.home() / ".appforge"

    @pytest.mark.unit
    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        assert api_key_from_env("Anthropic") == "sk-ant"
        assert api_key_from_env("ollama") == ""


class TestEnsureDirectories:
    @pytest.mark.unit
    def test_creates_all_directories(self, tmp_path: Path):
        config = Config(data_dir=tmp_path / "home")
        config.ensure_directories()
        assert config.builds_dir.is_dir()
        assert config.logs_dir.is_dir()

"""Tests for appforge.pipeline: the public entry points and the CLI."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from appforge.builder.orchestrator import BuildOrchestrator
from appforge.errors import InvalidRequestError
from appforge.memory.database import Database
from appforge.models import BuildRecord, BuildStatus, Framework
from appforge.pipeline import build_app, list_builds, main, remove_build


def _record(name: str, status: BuildStatus = BuildStatus.COMPLETED) -> BuildRecord:
    return BuildRecord(name=name, framework="python-tk", prompt="p", status=status)


# ---------------------------------------------------------------------------
# build_app / list_builds / remove_build
# ---------------------------------------------------------------------------


class TestBuildApp:
    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
    async def test_blank_prompt_raises(self, prompt, config):
        with pytest.raises(InvalidRequestError):
            await build_app(prompt, config=config)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_returns_terminal_record(self, config, scripted_client, database, tk_response):
        orchestrator = BuildOrchestrator(config, client=scripted_client, database=database, packagers={})
        scripted_client.queue(tk_response)

        record = await build_app(
            "a tkinter color picker tool", name="Picker", no_branding=True, orchestrator=orchestrator
        )

        assert record.status is BuildStatus.COMPLETED
        assert record.name == "picker"
        assert record.branded is False
        assert record.id is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_options_reach_the_request(self):
        orchestrator = AsyncMock()
        orchestrator.build.return_value.record = _record("svc")

        await build_app(
            "service report",
            framework="powershell",
            name="svc",
            provider="openai",
            model="gpt-4o",
            max_retries=1,
            orchestrator=orchestrator,
        )

        request = orchestrator.build.call_args.args[0]
        assert request.framework_override == "powershell"
        assert request.provider == "openai"
        assert request.model == "gpt-4o"
        assert request.max_retries == 1
        orchestrator.database.close.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_owned_orchestrator_database_is_closed(self, config):
        with patch("appforge.pipeline.BuildOrchestrator") as orchestrator_cls:
            instance = orchestrator_cls.return_value
            instance.build = AsyncMock(side_effect=RuntimeError("boom"))
            with pytest.raises(RuntimeError):
                await build_app("a tkinter app", config=config)
        instance.database.close.assert_called_once_with()


class TestHistoryHelpers:
    @pytest.mark.unit
    def test_list_and_remove(self, config, records):
        records.add(_record("picker"))
        records.add(_record("picker", BuildStatus.FAILED))
        records.add(_record("notes"))

        assert [r.name for r in list_builds(config)] == ["notes", "picker", "picker"]
        assert remove_build("picker", config) == 2
        assert [r.name for r in list_builds(config)] == ["notes"]
        assert remove_build("missing", config) == 0

    @pytest.mark.unit
    def test_helpers_close_their_database(self, config):
        original_close = Database.close
        with patch.object(Database, "close", autospec=True, side_effect=original_close) as close:
            list_builds(config)
            remove_build("picker", config)
        assert close.call_count == 2


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@pytest.fixture
def home(monkeypatch, config):
    monkeypatch.setenv("APPFORGE_HOME", str(config.data_dir))
    for var in ("APPFORGE_PROVIDER", "APPFORGE_MODEL", "APPFORGE_NO_PACKAGE", "APPFORGE_MAX_RETRIES"):
        monkeypatch.delenv(var, raising=False)
    return config


class TestCli:
    @pytest.mark.unit
    def test_build_blank_prompt_exits_2(self, home):
        with pytest.raises(SystemExit) as exc:
            main(["build", "   "])
        assert exc.value.code == 2

    @pytest.mark.unit
    def test_negative_retries_exit_2(self, home):
        with pytest.raises(SystemExit) as exc:
            main(["build", "a tkinter app", "--max-retries", "-1"])
        assert exc.value.code == 2

    @pytest.mark.unit
    def test_failed_build_exits_1(self, home):
        failed = AsyncMock(return_value=_record("x", BuildStatus.FAILED))
        with patch("appforge.pipeline.build_app", failed):
            with pytest.raises(SystemExit) as exc:
                main(["build", "a tkinter app", "--no-package", "-n", "x"])
        assert exc.value.code == 1
        kwargs = failed.call_args.kwargs
        assert kwargs["name"] == "x"
        assert kwargs["config"].build.package is False

    @pytest.mark.unit
    def test_successful_build_returns(self, home):
        done = AsyncMock(return_value=_record("x"))
        with patch("appforge.pipeline.build_app", done):
            main(["build", "a tkinter app", "-f", "python-tk"])
        assert done.call_args.kwargs["framework"] == "python-tk"
        assert done.call_args.kwargs["config"].build.package is True

    @pytest.mark.unit
    def test_list_and_remove(self, home, records, capsys):
        records.add(_record("picker"))
        main(["list"])
        assert "picker" in capsys.readouterr().out

        main(["remove", "picker"])
        assert "Removed 1 record(s)" in capsys.readouterr().out
        assert records.list() == []

        main(["remove", "picker"])
        assert "No records named" in capsys.readouterr().out

    @pytest.mark.unit
    def test_memory_show_and_clear(self, home, memory, capsys):
        memory.save(Framework.POWERSHELL, "Wrap variables followed by ':' in ${}")
        memory.save(Framework.PYTHON_TK, "Never use eval")

        main(["memory", "powershell"])
        assert "Wrap variables" in capsys.readouterr().out

        main(["memory", "powershell", "--clear"])
        assert "Cleared 1 constraint(s)" in capsys.readouterr().out
        assert memory.get(Framework.POWERSHELL) == []
        assert memory.get(Framework.PYTHON_TK) == ["Never use eval"]

    @pytest.mark.unit
    def test_memory_rejects_unknown_framework(self, home):
        with pytest.raises(SystemExit) as exc:
            main(["memory", "cobol"])
        assert exc.value.code == 2

"""Unit tests for appforge.builder.repair_loop.

The loop runs against the real validator and constraint memory; only the
completion provider is scripted. Covers the clean path, a successful
repair, exhaustion, auto-fixes that avoid a regeneration, and failed
regenerations consuming an attempt.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from appforge.builder.repair_loop import RepairLoop, RepairState
from appforge.generator.code_generator import CodeGenerator
from appforge.models import Framework, GeneratedFile
from appforge.validator import Validator

SPEC = "a tkinter color picker tool"
BAD_APP = "value = eval(expr)\n"
SHELL_RESPONSE = "```python app.py\nimport os\nos.system('cls')\n```\n"
EVAL_CONSTRAINT = "Never execute dynamically built code (eval, exec, new Function or dynamic imports)"


def _bad_files():
    return {"app.py": GeneratedFile(path="app.py", language="python", content=BAD_APP)}


@pytest.fixture
def make_loop(scripted_client, memory, tmp_path: Path):
    def _make(max_retries: int = 3) -> RepairLoop:
        generator = CodeGenerator(scripted_client, "claude-sonnet-4", tmp_path / "logs")
        return RepairLoop(generator, Validator(), memory, max_retries=max_retries)

    return _make


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------


class TestRepairLoopSuccess:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_valid_files_pass_without_regeneration(self, make_loop, scripted_client, tk_files):
        outcome = await make_loop().run(SPEC, Framework.PYTHON_TK, tk_files, 8192)

        assert outcome.success is True
        assert outcome.state is RepairState.SUCCESS
        assert outcome.attempts == 0
        assert outcome.files is tk_files
        assert scripted_client.calls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repairs_with_constraints_and_errors(self, make_loop, scripted_client, memory, tk_response):
        scripted_client.queue(tk_response)
        outcome = await make_loop().run(SPEC, Framework.PYTHON_TK, _bad_files(), 8192, plan="1. Window")

        assert outcome.success is True
        assert outcome.attempts == 1
        assert "root.mainloop()" in outcome.files["app.py"].content
        assert outcome.constraints == [EVAL_CONSTRAINT]
        assert memory.get(Framework.PYTHON_TK) == [EVAL_CONSTRAINT]

        call = scripted_client.calls[0]
        assert EVAL_CONSTRAINT in call["system_prompt"]
        user = call["messages"][0]["content"]
        assert "app.py:1: [py-dynamic-exec] Call to eval() executes dynamic code" in user
        assert "1. Window" in user

        assert [a.attempt for a in outcome.history] == [1, 1]
        assert outcome.history[0].regenerated is True
        assert outcome.history[-1].errors == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_autofix_avoids_regeneration(self, make_loop, scripted_client, memory):
        files = {"app.ps1": GeneratedFile(path="app.ps1", content='Write-Output "Disk $drive: ok"\n')}
        outcome = await make_loop().run("disk report", Framework.POWERSHELL, files, 8192)

        assert outcome.success is True
        assert outcome.attempts == 0
        assert outcome.files["app.ps1"].content == 'Write-Output "Disk ${drive}: ok"\n'
        assert outcome.history[-1].autofixed == ["app.ps1: scoped-variable colon"]
        assert scripted_client.calls == []
        assert memory.get(Framework.POWERSHELL) == []


# ---------------------------------------------------------------------------
# Failure paths
# ---------------------------------------------------------------------------


class TestRepairLoopExhaustion:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_exhausts_after_max_retries(self, make_loop, scripted_client, memory):
        scripted_client.queue(SHELL_RESPONSE).queue(SHELL_RESPONSE)
        outcome = await make_loop(max_retries=2).run(SPEC, Framework.PYTHON_TK, _bad_files(), 8192)

        assert outcome.success is False
        assert outcome.state is RepairState.EXHAUSTED
        assert outcome.attempts == 2
        assert len(scripted_client.calls) == 2
        assert outcome.validation.errors == [
            "app.py:2: [py-shell-exec] OS command execution via os.system()"
        ]
        assert len(outcome.history) == 3

        learned = {c.constraint_text: c.hit_count for c in memory.list_constraints(Framework.PYTHON_TK)}
        assert learned[EVAL_CONSTRAINT] == 1
        assert learned[
            "Never run shell commands; use library APIs instead of os.system, os.popen or shell=True"
        ] == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_zero_retries_validates_once(self, make_loop, scripted_client):
        outcome = await make_loop(max_retries=0).run(SPEC, Framework.PYTHON_TK, _bad_files(), 8192)
        assert outcome.state is RepairState.EXHAUSTED
        assert outcome.attempts == 0
        assert scripted_client.calls == []
        assert "EXHAUSTED" in outcome.summary()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_regeneration_consumes_attempt(self, make_loop, scripted_client, memory):
        scripted_client.fail("Request to anthropic timed out after 300s.")
        files = _bad_files()
        outcome = await make_loop(max_retries=1).run(SPEC, Framework.PYTHON_TK, files, 8192)

        assert outcome.state is RepairState.EXHAUSTED
        assert outcome.attempts == 1
        assert outcome.files is files
        assert outcome.history[0].regenerated is False
        assert "timed out" in outcome.history[0].output
        [constraint] = memory.list_constraints(Framework.PYTHON_TK)
        assert constraint.hit_count == 1

    @pytest.mark.unit
    def test_negative_retries_rejected(self, scripted_client, memory, tmp_path):
        generator = CodeGenerator(scripted_client, "m", tmp_path)
        with pytest.raises(ValueError):
            RepairLoop(generator, Validator(), memory, max_retries=-1)

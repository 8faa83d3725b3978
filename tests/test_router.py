"""Unit tests for appforge.router and the Framework enum."""

from __future__ import annotations

import pytest

from appforge.models import BuildRequest, Framework
from appforge.router import FrameworkRouter, route

pytestmark = pytest.mark.unit


class TestFrameworkParse:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("python-tk", Framework.PYTHON_TK),
            (" Tauri ", Framework.TAURI),
            (Framework.POWERSHELL, Framework.POWERSHELL),
            ("cobol", None),
            (42, None),
        ],
    )
    def test_parse(self, value, expected):
        assert Framework.parse(value) is expected

    def test_request_validity(self):
        assert BuildRequest(prompt="a timer").is_valid() is True
        assert BuildRequest(prompt="   \n").is_valid() is False


class TestRoute:
    @pytest.mark.parametrize(
        "prompt, expected",
        [
            ("a tkinter color picker tool", Framework.PYTHON_TK),
            ("A Flask dashboard for sales", Framework.PYTHON_WEB),
            ("a rust desktop app built with Tauri", Framework.TAURI),
            ("an automation module for AD users", Framework.POWERSHELL_MODULE),
            ("list the running services", Framework.POWERSHELL),
        ],
    )
    def test_keyword_routing(self, prompt, expected):
        assert route(prompt) is expected

    def test_tie_breaks_by_priority(self):
        # python + gui scores python-tk, dashboard scores python-web: one point each
        assert route("python gui dashboard") is Framework.PYTHON_WEB

    def test_higher_score_beats_priority(self):
        prompt = "python gui with a countdown timer, sprite animations and a small dashboard"
        assert route(prompt) is Framework.PYTHON_TK

    def test_override_wins(self):
        assert route("a tkinter color picker", override="powershell") is Framework.POWERSHELL
        assert route("a tkinter color picker", override=Framework.TAURI) is Framework.TAURI

    def test_unknown_override_falls_back(self):
        assert route("a tkinter color picker", override="cobol") is Framework.PYTHON_TK

    def test_empty_prompt_gets_default(self):
        assert route("") is Framework.POWERSHELL

    @pytest.mark.parametrize(
        "prompt",
        ["a python script that prints a guide", "python tool for timeregistration exports", "a submodule-free helper"],
    )
    def test_terms_match_whole_words(self, prompt):
        assert route(prompt) is Framework.POWERSHELL

    def test_plural_terms_match(self):
        assert route("python sprites bouncing around") is Framework.PYTHON_TK
        assert route("a few cmdlets for AD users") is Framework.POWERSHELL_MODULE


class TestExplain:
    def test_lists_matched_rules(self):
        router = FrameworkRouter()
        explained = router.explain("a python gui with tkinter")
        assert explained == {Framework.PYTHON_TK: ["tkinter", "python + gui"]}
        assert router.scores("a python gui with tkinter") == {Framework.PYTHON_TK: 2}

    def test_custom_rules_and_default(self):
        router = FrameworkRouter(rules={Framework.TAURI: [("desk",)]}, default=Framework.PYTHON_WEB)
        assert router.route("desk clock") is Framework.TAURI
        assert router.route("tkinter clock") is Framework.PYTHON_WEB

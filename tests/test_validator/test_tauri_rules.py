"""Unit tests for the Tauri rule set (Rust, HTML and JavaScript)."""

from __future__ import annotations

import pytest

from appforge.models import Framework, GeneratedFile
from appforge.validator import Validator

pytestmark = pytest.mark.unit


def _with(files, path, content):
    updated = dict(files)
    updated[path] = GeneratedFile(path=path, content=content)
    return updated


def _errors(files):
    return Validator().validate(files, Framework.TAURI).errors


class TestTauriProject:
    def test_sample_project_is_clean(self, tauri_files):
        assert _errors(tauri_files) == []

    def test_missing_manifest(self, tauri_files):
        files = dict(tauri_files)
        del files["Cargo.toml"]
        assert _errors(files) == ["[tauri-required-files] Missing Cargo.toml manifest"]

    def test_missing_entry(self, tauri_files):
        files = dict(tauri_files)
        del files["src/main.rs"]
        assert _errors(files) == ["[tauri-required-files] Missing src/main.rs entry source"]

    def test_lib_target_without_source(self, tauri_files):
        cargo = tauri_files["Cargo.toml"].content + '\n[lib]\nname = "notes_lib"\n'
        [error] = _errors(_with(tauri_files, "Cargo.toml", cargo))
        assert error.startswith("Cargo.toml:")
        assert "declares a [lib] target but src/lib.rs is missing" in error

    def test_lib_target_with_source(self, tauri_files):
        cargo = tauri_files["Cargo.toml"].content + '\n[lib]\nname = "notes_lib"\n'
        files = _with(tauri_files, "Cargo.toml", cargo)
        files = _with(files, "src/lib.rs", "pub fn run() {}\n")
        assert _errors(files) == []


class TestRust:
    def test_unbalanced_braces(self, tauri_files):
        errors = _errors(_with(tauri_files, "src/main.rs", "fn main() {\n    let x = 1;\n"))
        assert errors == ["src/main.rs:1: [rust-braces] Unbalanced braces: '{' is never closed"]

    def test_braces_in_strings_and_comments(self, tauri_files):
        source = 'fn main() {\n    // }\n    println!("{{}}");\n}\n'
        assert _errors(_with(tauri_files, "src/main.rs", source)) == []


class TestHtml:
    def test_missing_doctype(self, tauri_files):
        html = "<html>\n<head></head>\n<body></body>\n</html>\n"
        assert _errors(_with(tauri_files, "dist/index.html", html)) == [
            "dist/index.html:1: [html-structure] HTML document is missing the <!DOCTYPE html> declaration"
        ]

    def test_missing_body(self, tauri_files):
        html = "<!DOCTYPE html>\n<html><head></head></html>\n"
        [error] = _errors(_with(tauri_files, "dist/index.html", html))
        assert error == "dist/index.html: [html-structure] HTML document is missing the <body> element"

    def test_external_script(self, tauri_files):
        html = tauri_files["dist/index.html"].content.replace(
            'src="main.js"', 'src="https://cdn.example.com/lib.js"'
        )
        [error] = _errors(_with(tauri_files, "dist/index.html", html))
        assert "[html-external-script]" in error
        assert "https://cdn.example.com/lib.js" in error

    def test_external_stylesheet(self, tauri_files):
        html = tauri_files["dist/index.html"].content.replace(
            "<title>", '<link rel="stylesheet" href="//fonts.example.com/a.css"><title>'
        )
        [error] = _errors(_with(tauri_files, "dist/index.html", html))
        assert "[html-external-style]" in error


class TestJavaScript:
    @pytest.mark.parametrize(
        "line, rule",
        [
            ("const v = eval(input);", "js-eval"),
            ("window.eval(\"alert(1)\");", "js-eval"),
            ("globalThis.eval(code);", "js-eval"),
            ("self.eval(code);", "js-eval"),
            ("el.innerHTML = data;", "js-html-injection"),
            ("document.write('<p>x</p>');", "js-html-injection"),
            ("const f = new Function('a', 'return a');", "js-function-constructor"),
        ],
    )
    def test_forbidden_constructs(self, tauri_files, line, rule):
        [error] = _errors(_with(tauri_files, "dist/main.js", line + "\n"))
        assert error.startswith(f"dist/main.js:1: [{rule}]")

    @pytest.mark.parametrize(
        "line",
        [
            'const s = "eval(x) and el.innerHTML = y";',
            "if (el.innerHTML == prev) { render(); }",
            "// eval(old)",
            "obj.evaluate(x);",
        ],
    )
    def test_allowed_constructs(self, tauri_files, line):
        assert _errors(_with(tauri_files, "dist/main.js", line + "\n")) == []

"""Unit tests for appforge.generator.extractor.

Covers the fence contract: named and unnamed blocks, longer outer fences,
unterminated fences, blank-block dropping, unsafe paths, and the mapping
of blocks onto a file map.
"""

from __future__ import annotations

import pytest

from appforge.generator.extractor import CodeBlockExtractor, extract, normalize_path, to_file_map

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# normalize_path
# ---------------------------------------------------------------------------


class TestNormalizePath:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("source/data.ps1", "source/data.ps1"),
            ("./app.py", "app.py"),
            ("src\\main.rs", "src/main.rs"),
            ("`templates/index.html`", "templates/index.html"),
        ],
    )
    def test_safe_paths(self, raw, expected):
        assert normalize_path(raw) == expected

    @pytest.mark.parametrize("raw", ["", "/etc/passwd", "C:\\Windows\\x.ps1", "../escape.py", "a/../../b"])
    def test_unsafe_paths(self, raw):
        assert normalize_path(raw) is None


# ---------------------------------------------------------------------------
# extract
# ---------------------------------------------------------------------------


class TestExtract:
    def test_named_blocks_in_order(self):
        text = (
            "Intro\n"
            "```powershell app.ps1\n"
            "Write-Output 'hi'\n"
            "```\n"
            "Some prose.\n"
            "```powershell source/data.ps1\n"
            "$Items = @()\n"
            "$Count = 0\n"
            "```\n"
        )
        blocks = extract(text)
        assert [b.index for b in blocks] == [1, 2]
        assert blocks[0].language == "powershell"
        assert blocks[0].file_name == "app.ps1"
        assert blocks[1].file_name == "source/data.ps1"
        assert blocks[1].code == "$Items = @()\n$Count = 0"
        assert blocks[1].line_count == 2

    def test_language_only_block_is_unnamed(self):
        blocks = extract("```Python\nprint(1)\n```")
        assert blocks[0].language == "python"
        assert blocks[0].file_name is None

    def test_longer_outer_fence_keeps_inner_fences(self):
        text = "````markdown README.md\n# Demo\n```python\nprint(1)\n```\n````\n"
        blocks = extract(text)
        assert len(blocks) == 1
        assert "```python" in blocks[0].code
        assert blocks[0].code.endswith("```")

    def test_unterminated_fence_runs_to_end(self):
        blocks = extract("```python app.py\nimport tkinter\nroot = tkinter.Tk()")
        assert len(blocks) == 1
        assert blocks[0].code == "import tkinter\nroot = tkinter.Tk()"

    def test_blank_blocks_dropped_and_indexes_compact(self):
        text = "```python a.py\n\n   \n```\n```python b.py\nx = 1\n```\n"
        blocks = extract(text)
        assert len(blocks) == 1
        assert blocks[0].index == 1
        assert blocks[0].file_name == "b.py"

    def test_tilde_fences(self):
        blocks = extract("~~~rust src/main.rs\nfn main() {}\n~~~\n")
        assert blocks[0].file_name == "src/main.rs"

    def test_unsafe_path_becomes_unnamed(self):
        blocks = extract("```python ../../evil.py\nx = 1\n```")
        assert blocks[0].file_name is None

    def test_empty_text(self):
        assert extract("") == []
        assert extract("no fences here") == []

    def test_track_callback(self):
        seen = []
        extract("```python a.py\nx = 1\n```\n```python b.py\ny = 2\n```", track=seen.append)
        assert [b.file_name for b in seen] == ["a.py", "b.py"]


# ---------------------------------------------------------------------------
# to_file_map
# ---------------------------------------------------------------------------


class TestToFileMap:
    def test_first_unnamed_block_uses_default(self):
        files = to_file_map(extract("```python\nprint('hi')\n```"), "app.py")
        assert list(files) == ["app.py"]
        assert files["app.py"].content == "print('hi')\n"

    def test_extra_unnamed_blocks_ignored(self):
        text = "```python\nfirst = 1\n```\n```bash\npip install flask\n```\n"
        files = to_file_map(extract(text), "app.py")
        assert list(files) == ["app.py"]
        assert "first" in files["app.py"].content

    def test_repeated_path_takes_later_content(self):
        text = (
            "```python a.py\nv = 1\n```\n"
            "```python b.py\nw = 1\n```\n"
            "```python a.py\nv = 2\n```\n"
        )
        files = to_file_map(extract(text), "app.py")
        assert list(files) == ["a.py", "b.py"]
        assert files["a.py"].content == "v = 2\n"

    def test_extractor_facade(self):
        files = CodeBlockExtractor().extract_files("```rust\nfn main() {}\n```", "src/main.rs")
        assert files["src/main.rs"].language == "rust"

"""Fenced code block extraction.

This module owns the wire contract between the code generator's prompts and
the response parser. A model response carries one project file per fenced
block, and the opening fence line names the file::

    ```powershell source/data.ps1
    $Items = @()
    ```

Contract:

* An opening fence is three or more backticks (or tildes) at the start of a
  line, followed by a language tag and, after a single space, an optional
  relative path.
* A fence is closed by a line holding only the same fence character repeated
  at least as many times. Longer outer fences therefore survive inner ones
  (a README containing its own snippets).
* A fence left open at end of text runs to the end of the text.
* Blocks whose body is blank are dropped. Indexes are 1-based over the blocks
  that are kept, in document order.
* Absolute paths and paths containing ``..`` are treated as unnamed.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from ..models import CodeBlock, FileMap, GeneratedFile
from ..utils import print_warning

_OPEN_FENCE = re.compile(r"^(?P<fence>`{3,}|~{3,})\s*(?P<info>.*)$")

BlockTracker = Callable[[CodeBlock], None]


def normalize_path(raw: str) -> Optional[str]:
    """Normalize a fence path; return ``None`` when it is unsafe or empty."""
    path = raw.strip().strip("`'\"").replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    if not path or path.startswith("/") or re.match(r"^[A-Za-z]:", path):
        return None
    if ".." in path.split("/"):
        return None
    return path


def _parse_info(info: str) -> tuple[str, Optional[str]]:
    """Split a fence info string into ``(language, file_name)``."""
    parts = info.strip().split(None, 1)
    if not parts:
        return "", None
    language = parts[0].lower()
    file_name = normalize_path(parts[1].split()[0]) if len(parts) > 1 else None
    return language, file_name


def extract(text: str, track: Optional[BlockTracker] = None) -> list[CodeBlock]:
    """Extract every non-empty fenced block from *text*.

    Args:
        text: Raw model response.
        track: Optional callback invoked with each emitted block.

    Returns:
        Blocks in document order with 1-based indexes.
    """
    blocks: list[CodeBlock] = []
    if not text:
        return blocks

    lines = text.splitlines()
    i = 0
    while i < len(lines):
        opening = _OPEN_FENCE.match(lines[i].strip())
        if not opening:
            i += 1
            continue

        fence = opening.group("fence")
        language, file_name = _parse_info(opening.group("info"))
        close = re.compile(rf"^{re.escape(fence[0])}{{{len(fence)},}}\s*$")

        body: list[str] = []
        i += 1
        while i < len(lines) and not close.match(lines[i].strip()):
            body.append(lines[i])
            i += 1
        i += 1  # skip the closing fence (or run past end of text)

        code = "\n".join(body)
        if not code.strip():
            continue

        block = CodeBlock(
            index=len(blocks) + 1,
            language=language,
            file_name=file_name,
            code=code,
            line_count=len(body),
        )
        blocks.append(block)
        if track is not None:
            track(block)

    return blocks


def to_file_map(blocks: list[CodeBlock], default_name: str) -> FileMap:
    """Turn extracted blocks into an ordered ``{path: GeneratedFile}`` map.

    The first unnamed block is stored under *default_name*; any further
    unnamed blocks are ignored. A repeated path keeps its first position and
    takes the later content.
    """
    files: FileMap = {}
    default_used = False
    for block in blocks:
        path = block.file_name
        if path is None:
            if default_used:
                print_warning(
                    f"Ignoring unnamed code block #{block.index} ({block.language or 'no language'})."
                )
                continue
            path = default_name
            default_used = True
        content = block.code if block.code.endswith("\n") else block.code + "\n"
        files[path] = GeneratedFile(path=path, language=block.language, content=content)
    return files


class CodeBlockExtractor:
    """Object facade over :func:`extract` and :func:`to_file_map`."""

    def extract(self, text: str, track: Optional[BlockTracker] = None) -> list[CodeBlock]:
        return extract(text, track)

    def extract_files(self, text: str, default_name: str) -> FileMap:
        return to_file_map(extract(text), default_name)

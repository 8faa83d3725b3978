"""Deterministic source fixes tried before asking the model to regenerate.

Each fixer handles an error shape whose correction is purely mechanical. A
fixer returns the content unchanged when it has nothing to do.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from ..models import FileMap, Framework
from ..validator.rules import SCOPED_COLON
from ..validator.scanners import scan_powershell

_DOCTYPE = re.compile(r"<!doctype\s+html", re.IGNORECASE)


def fix_scoped_variable_colon(content: str) -> str:
    """Rewrite ``"$name:"`` inside expandable strings as ``"${name}:"``."""
    edits: list[tuple[int, int, str]] = []
    for start, end in scan_powershell(content).expandable_spans:
        for m in SCOPED_COLON.finditer(content, start, end):
            edits.append((m.start(), m.end(), f"${{{m.group(1)}}}:"))
    for start, end, replacement in sorted(edits, reverse=True):
        content = content[:start] + replacement + content[end:]
    return content


def fix_missing_doctype(content: str) -> str:
    if not content.strip() or _DOCTYPE.search(content):
        return content
    return "<!DOCTYPE html>\n" + content.lstrip("\ufeff")


@dataclass(frozen=True)
class AutoFix:
    name: str
    extensions: tuple[str, ...]
    fix: Callable[[str], str]
    # None applies to every framework
    frameworks: Optional[tuple[Framework, ...]] = None

    def applies(self, path: str, framework: Optional[Framework]) -> bool:
        if not path.lower().endswith(self.extensions):
            return False
        return framework is None or self.frameworks is None or Framework(framework) in self.frameworks


AUTOFIXES: list[AutoFix] = [
    AutoFix("scoped-variable colon", (".ps1", ".psm1"), fix_scoped_variable_colon),
    AutoFix("missing doctype", (".html", ".htm"), fix_missing_doctype, frameworks=(Framework.TAURI,)),
]


def apply_autofixes(
    files: FileMap,
    fixes: list[AutoFix] | None = None,
    framework: Optional[Framework] = None,
) -> tuple[FileMap, list[str]]:
    """Apply every matching fixer to every file.

    With *framework* given, fixers scoped to other frameworks are skipped.

    Returns the new file map and a ``"<path>: <fix name>"`` note per change.
    The input map is not mutated.
    """
    fixed: FileMap = {}
    notes: list[str] = []
    for path, generated in files.items():
        content = generated.content
        for autofix in fixes if fixes is not None else AUTOFIXES:
            if not autofix.applies(path, framework):
                continue
            updated = autofix.fix(content)
            if updated != content:
                notes.append(f"{path}: {autofix.name}")
                content = updated
        fixed[path] = generated if content == generated.content else generated.model_copy(update={"content": content})
    return fixed, notes

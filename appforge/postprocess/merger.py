"""Fold a multi-file PowerShell project into a single script.

ps2exe compiles exactly one script, so dot-sourced helper files have to be
inlined before packaging. The merged script keeps the entry's prologue
(``#Requires``, ``using``, ``[CmdletBinding()]`` and ``param(...)``) at the
top, followed by every included body in directive order, followed by the rest
of the entry.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Union

from ..models import Framework, MergeResult

ENTRY_CANDIDATES = ("main.ps1", "app.ps1")
MERGED_SUFFIX = ".merged.ps1"

_DOT_SOURCE = re.compile(r"^\s*\.\s+(?P<target>[^\s#].*?)\s*(?:#.*)?$")
_JOIN_PATH = re.compile(
    r"^\(\s*Join-Path\s+(?:-Path\s+)?\$(?:PSScriptRoot|\{PSScriptRoot\})\s+(?:-ChildPath\s+)?"
    r"(?P<q>['\"]?)(?P<rel>[^'\")]+)(?P=q)\s*\)$",
    re.IGNORECASE,
)
_ROOTED = re.compile(r"^(?:\$PSScriptRoot|\$\{PSScriptRoot\}|\.)[\\/](?P<rel>.+)$", re.IGNORECASE)
_HOISTED = re.compile(r"^\s*(?:#requires\b|using\s+(?:namespace|module|assembly)\b)", re.IGNORECASE)
_ATTRIBUTE = re.compile(r"^\s*\[[\w.]+(?:\(.*\))?\]\s*$")
_PARAM_OPEN = re.compile(r"^\s*param\s*\(", re.IGNORECASE)


class _MergeFailure(Exception):
    pass


def needs_merge(framework: Union[Framework, str]) -> bool:
    """Only single-entry PowerShell scripts are merged before packaging."""
    return Framework.parse(framework) is Framework.POWERSHELL


def include_target(line: str) -> Optional[str]:
    """Return the relative path a dot-source line includes, or ``None``.

    Recognized forms::

        . $PSScriptRoot\\lib\\util.ps1
        . "$PSScriptRoot/lib/util.ps1"
        . .\\lib\\util.ps1
        . (Join-Path $PSScriptRoot 'lib\\util.ps1')
    """
    m = _DOT_SOURCE.match(line)
    if not m:
        return None
    target = m.group("target").strip()

    joined = _JOIN_PATH.match(target)
    if joined:
        rel = joined.group("rel")
    else:
        if len(target) >= 2 and target[0] in "\"'" and target[-1] == target[0]:
            target = target[1:-1]
        rooted = _ROOTED.match(target)
        if not rooted:
            return None
        rel = rooted.group("rel")

    rel = rel.strip().replace("\\", "/")
    while rel.startswith("./"):
        rel = rel[2:]
    if not rel.lower().endswith(".ps1"):
        return None
    return rel


def split_prologue(lines: list[str]) -> tuple[list[str], list[str]]:
    """Split leading script directives from the body.

    The prologue is the leading run of blank lines, comments, ``#Requires``,
    ``using`` statements, attributes such as ``[CmdletBinding()]`` and one
    ``param(...)`` block.
    """
    i = 0
    n = len(lines)
    in_block_comment = False
    while i < n:
        stripped = lines[i].strip()
        if in_block_comment:
            if "#>" in stripped:
                in_block_comment = False
            i += 1
            continue
        if stripped.startswith("<#"):
            in_block_comment = "#>" not in stripped[2:]
            i += 1
            continue
        if not stripped or stripped.startswith("#") or _HOISTED.match(stripped) or _ATTRIBUTE.match(stripped):
            i += 1
            continue
        if _PARAM_OPEN.match(stripped):
            depth = 0
            while i < n:
                depth += lines[i].count("(") - lines[i].count(")")
                i += 1
                if depth <= 0:
                    break
        break
    return lines[:i], lines[i:]


class SourceMerger:
    """Inlines dot-sourced ``.ps1`` files into the entry script."""

    def find_entry(self, source_dir: Path, entry: Optional[str] = None) -> Optional[Path]:
        if entry:
            path = source_dir / entry
            return path if path.is_file() else None
        for name in ENTRY_CANDIDATES:
            path = source_dir / name
            if path.is_file():
                return path
        scripts = [
            p for p in sorted(source_dir.glob("*.ps1"))
            if p.is_file() and not p.name.lower().endswith(MERGED_SUFFIX)
        ]
        return scripts[0] if len(scripts) == 1 else None

    def merge(self, source_dir: Union[str, Path], entry: Optional[str] = None) -> MergeResult:
        """Merge the project under *source_dir*.

        Returns the entry path with ``merged=False`` when the entry includes
        nothing. A missing entry or a missing included file is a failure.
        """
        root = Path(source_dir).resolve()
        entry_path = self.find_entry(root, entry)
        if entry_path is None:
            wanted = entry or " or ".join(ENTRY_CANDIDATES)
            return MergeResult(success=False, error=f"Entry script not found in {root}: {wanted}")

        lines = self._read(entry_path)
        if not any(include_target(line) for line in lines):
            return MergeResult(success=True, merged_path=str(entry_path), merged=False)

        prologue, body = split_prologue(lines)
        hoisted: list[str] = []
        included: list[str] = []
        seen = {entry_path}
        try:
            parts = self._expand(root, entry_path, body, seen, hoisted, included)
        except _MergeFailure as exc:
            return MergeResult(success=False, error=str(exc))

        header = list(prologue)
        existing = {line.strip().lower() for line in prologue}
        for line in hoisted:
            if line.strip().lower() not in existing:
                existing.add(line.strip().lower())
                header.insert(self._hoist_index(header), line)

        merged_path = entry_path.with_name(entry_path.stem + MERGED_SUFFIX)
        text = "".join(header + parts)
        merged_path.write_text(text if text.endswith("\n") else text + "\n", encoding="utf-8-sig")
        return MergeResult(success=True, merged_path=str(merged_path), merged=True, included=included)

    # -- internals -----------------------------------------------------------

    @staticmethod
    def _read(path: Path) -> list[str]:
        lines = path.read_text(encoding="utf-8-sig").splitlines(keepends=True)
        if lines and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        return lines

    @staticmethod
    def _hoist_index(header: list[str]) -> int:
        """Hoisted directives go after the last existing directive line."""
        at = 0
        for i, line in enumerate(header):
            if _HOISTED.match(line):
                at = i + 1
        return at

    def _expand(
        self,
        root: Path,
        current: Path,
        body: list[str],
        seen: set[Path],
        hoisted: list[str],
        included: list[str],
    ) -> list[str]:
        """Return *body* with its includes inlined ahead of its own lines."""
        inlined: list[str] = []
        own: list[str] = []
        for line in body:
            rel = include_target(line)
            if rel is None:
                own.append(line)
                continue

            child = (current.parent / rel).resolve()
            if root not in child.parents:
                raise _MergeFailure(f"Included file escapes the project: {rel}")
            if not child.is_file():
                raise _MergeFailure(f"Included file not found: {rel} (from {current.name})")
            if child in seen:
                continue
            seen.add(child)

            name = child.relative_to(root).as_posix()
            included.append(name)
            child_body = []
            for child_line in self._read(child):
                if _HOISTED.match(child_line):
                    hoisted.append(child_line)
                else:
                    child_body.append(child_line)

            inlined.append(f"# region {name}\n")
            inlined.extend(self._expand(root, child, child_body, seen, hoisted, included))
            inlined.append(f"# endregion {name}\n\n")
        return inlined + own


def merge(source_dir: Union[str, Path], entry: Optional[str] = None) -> MergeResult:
    return SourceMerger().merge(source_dir, entry)

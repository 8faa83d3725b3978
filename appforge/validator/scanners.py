"""Lightweight lexical scanners used by the validation rules.

The scanners do not parse; they only know where string literals and comments
start and end. Each returns a *masked* copy of the source with those regions
blanked out (newlines kept, so offsets and line numbers still line up), which
lets the rules search plain code with regular expressions and check bracket
balance without tripping over a ``{`` inside a string.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_PAIRS = {"}": "{", ")": "(", "]": "["}


def line_of(text: str, offset: int) -> int:
    """Return the 1-based line number for a character offset."""
    return text.count("\n", 0, offset) + 1


def _blank(buf: list[str], start: int, end: int) -> None:
    for k in range(start, min(end, len(buf))):
        if buf[k] != "\n":
            buf[k] = " "


def check_balance(code: str, pairs: str = "{}()[]") -> list[tuple[int, str]]:
    """Check bracket balance on already-masked code.

    Returns ``(offset, message)`` pairs; empty when balanced.
    """
    openers = set(pairs[0::2])
    closers = {c: o for c, o in _PAIRS.items() if c in pairs[1::2]}
    stack: list[tuple[str, int]] = []
    for pos, ch in enumerate(code):
        if ch in openers:
            stack.append((ch, pos))
        elif ch in closers:
            if not stack:
                return [(pos, f"Unbalanced braces: unexpected '{ch}'")]
            opener, _ = stack.pop()
            if opener != closers[ch]:
                return [(pos, f"Unbalanced braces: '{ch}' closes '{opener}'")]
    if stack:
        opener, pos = stack[-1]
        return [(pos, f"Unbalanced braces: '{opener}' is never closed")]
    return []


# ---------------------------------------------------------------------------
# PowerShell
# ---------------------------------------------------------------------------

@dataclass
class PowerShellScan:
    """Masked views of a PowerShell source file."""

    code: str
    no_comments: str
    expandable_spans: list[tuple[int, int]] = field(default_factory=list)
    issues: list[tuple[int, str]] = field(default_factory=list)


def _scan_expandable(text: str, start: int) -> int:
    """Return the offset of the quote closing a ``"..."`` string opened before *start*."""
    n = len(text)
    j = start
    depth = 0
    while j < n:
        c = text[j]
        if c == "`":
            j += 2
            continue
        if depth == 0:
            if c == '"':
                if j + 1 < n and text[j + 1] == '"':
                    j += 2
                    continue
                return j
            if c == "$" and j + 1 < n and text[j + 1] == "(":
                depth = 1
                j += 2
                continue
        else:
            if c == "(":
                depth += 1
            elif c == ")":
                depth -= 1
            elif c in "\"'":
                close = text.find(c, j + 1)
                if close == -1:
                    return n
                j = close + 1
                continue
        j += 1
    return n


def scan_powershell(text: str) -> PowerShellScan:
    """Mask strings, here-strings and comments of a PowerShell script."""
    n = len(text)
    code = list(text)
    no_comments = list(text)
    spans: list[tuple[int, int]] = []
    issues: list[tuple[int, str]] = []

    i = 0
    while i < n:
        ch = text[i]

        if text.startswith("<#", i):
            end = text.find("#>", i + 2)
            stop = n if end == -1 else end + 2
            if end == -1:
                issues.append((i, "Unterminated block comment '<#'"))
            _blank(code, i, stop)
            _blank(no_comments, i, stop)
            i = stop
            continue

        if ch == "#":
            end = text.find("\n", i)
            stop = n if end == -1 else end
            _blank(code, i, stop)
            _blank(no_comments, i, stop)
            i = stop
            continue

        if ch == "@" and i + 1 < n and text[i + 1] in "\"'":
            quote = text[i + 1]
            j = i + 2
            while j < n and text[j] in " \t":
                j += 1
            if j >= n or text[j] in "\r\n":
                terminator = re.compile(rf"^[ \t]*{quote}@", re.MULTILINE).search(text, j)
                content_end = terminator.start() if terminator else n
                if terminator is None:
                    issues.append((i, f"Unterminated here-string '@{quote}'"))
                _blank(code, i + 2, content_end)
                if quote == '"':
                    spans.append((i + 2, content_end))
                i = terminator.end() if terminator else n
                continue

        if ch == "'":
            j = i + 1
            while j < n:
                if text[j] == "'":
                    if j + 1 < n and text[j + 1] == "'":
                        j += 2
                        continue
                    break
                j += 1
            if j >= n:
                issues.append((i, "Unterminated single-quoted string"))
            _blank(code, i + 1, j)
            i = j + 1
            continue

        if ch == '"':
            j = _scan_expandable(text, i + 1)
            if j >= n:
                issues.append((i, "Unterminated double-quoted string"))
            spans.append((i + 1, min(j, n)))
            _blank(code, i + 1, j)
            i = j + 1
            continue

        if ch == "`":
            i += 2
            continue

        i += 1

    return PowerShellScan(
        code="".join(code),
        no_comments="".join(no_comments),
        expandable_spans=spans,
        issues=issues,
    )


# ---------------------------------------------------------------------------
# Rust / JavaScript
# ---------------------------------------------------------------------------

def _skip_quoted(text: str, start: int, quote: str) -> tuple[int, bool]:
    """Return ``(offset past the string, closed)`` for a string opened at *start*."""
    n = len(text)
    j = start + 1
    while j < n:
        if text[j] == "\\":
            j += 2
            continue
        if text[j] == quote:
            return j + 1, True
        j += 1
    return n, False


def mask_c_like(text: str, language: str = "rust") -> tuple[str, list[tuple[int, str]]]:
    """Mask comments and string literals of Rust or JavaScript source.

    Rust adds nested block comments, raw strings and char literals (told apart
    from lifetimes). JavaScript adds single-quoted strings and template
    literals.
    """
    rust = language == "rust"
    n = len(text)
    out = list(text)
    issues: list[tuple[int, str]] = []

    i = 0
    while i < n:
        ch = text[i]

        if text.startswith("//", i):
            end = text.find("\n", i)
            stop = n if end == -1 else end
            _blank(out, i, stop)
            i = stop
            continue

        if text.startswith("/*", i):
            depth = 1
            j = i + 2
            while j < n and depth:
                if rust and text.startswith("/*", j):
                    depth += 1
                    j += 2
                elif text.startswith("*/", j):
                    depth -= 1
                    j += 2
                else:
                    j += 1
            if depth:
                issues.append((i, "Unterminated block comment"))
            _blank(out, i, j)
            i = j
            continue

        if rust and ch == "r" and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
            m = re.match(r'r(#*)"', text[i:])
            if m:
                closing = '"' + m.group(1)
                end = text.find(closing, i + m.end())
                stop = n if end == -1 else end + len(closing)
                if end == -1:
                    issues.append((i, "Unterminated raw string"))
                _blank(out, i + m.end(), stop - len(closing) if end != -1 else n)
                i = stop
                continue

        if ch == '"' or (not rust and ch in "'`"):
            stop, closed = _skip_quoted(text, i, ch)
            if not closed:
                issues.append((i, "Unterminated string literal"))
            _blank(out, i + 1, stop - 1 if closed else n)
            i = stop
            continue

        if rust and ch == "'":
            if i + 1 < n and text[i + 1] == "\\":
                end = text.find("'", i + 2)
                stop = n if end == -1 else end + 1
                _blank(out, i + 1, stop - 1)
                i = stop
                continue
            if i + 2 < n and text[i + 2] == "'":
                _blank(out, i + 1, i + 2)
                i += 3
                continue
            i += 1  # lifetime or label
            continue

        i += 1

    return "".join(out), issues

"""Cross-build constraint memory.

Validation errors are classified into short directives ("constraints") that
are stored per framework and fed into every later generation prompt for that
framework. Classification walks an ordered table of known error shapes and
falls back to ``Avoid: <summary>``, so every error yields some constraint.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

from ..models import BuildConstraint, Framework
from ..utils import utc_now
from .database import Database

UNSPECIFIED_CONSTRAINT = "Avoid: unspecified build error"
SUMMARY_LIMIT = 160

_PS = (Framework.POWERSHELL, Framework.POWERSHELL_MODULE)
_PY = (Framework.PYTHON_TK, Framework.PYTHON_WEB)
_WEB = (Framework.PYTHON_WEB, Framework.TAURI)
_RUST = (Framework.TAURI,)

_FINDING_PREFIX = re.compile(r"^\s*(?:[^\s:]+:(?:\d+:)?\s*)?(?:\[[\w-]+\]\s*)?")


@dataclass(frozen=True)
class Classifier:
    """One known error shape and the directive it maps to."""

    pattern: re.Pattern[str]
    template: str
    frameworks: Optional[tuple[Framework, ...]] = None

    def applies(self, framework: Optional[Framework]) -> bool:
        return self.frameworks is None or framework is None or framework in self.frameworks

    def render(self, match: re.Match[str]) -> str:
        return self.template.format(**{k: v for k, v in match.groupdict().items() if v is not None})


def _c(pattern: str, template: str, frameworks: Optional[tuple[Framework, ...]] = None) -> Classifier:
    return Classifier(re.compile(pattern, re.IGNORECASE), template, frameworks)


# Order matters: the first matching entry wins.
CLASSIFIERS: list[Classifier] = [
    # PowerShell
    _c(
        r"\$\w+:' in a string is parsed as a scope qualifier|ps-scoped-variable|scoped variable",
        "Never write \"$name:\" inside a double-quoted string; delimit the variable as \"${{name}}:\"",
        _PS,
    ),
    _c(
        r"PS7-only operator|null-coalescing|null-conditional|ps7-operator",
        "Target Windows PowerShell 5.1: do not use ??, ??=, ?. or ?[]; test for $null explicitly",
        _PS,
    ),
    _c(
        r"Invoke-Expression|\biex\b",
        "Never use Invoke-Expression (iex); call commands directly or with the & operator",
        _PS,
    ),
    _c(
        r"-Recurse and -Force|recursive-force-delete",
        "Never combine Remove-Item -Recurse with -Force; delete explicit paths only",
        _PS,
    ),
    _c(
        r"-Verb RunAs|elevated process|ps-elevation",
        "Never request elevation with Start-Process -Verb RunAs; run as the current user",
        _PS,
    ),
    _c(
        r"approved Verb-Noun|Unapproved verb|ps-approved-verb",
        "Name every function with an approved verb in Verb-Noun form (see Get-Verb)",
        _PS,
    ),
    _c(
        r"manifest does not declare (?P<field>\w+)|ps-manifest",
        "The .psd1 manifest must declare ModuleVersion and list public functions in FunctionsToExport",
        _PS,
    ),
    _c(
        r"exports no functions|ps-no-exports",
        "Export at least one function via FunctionsToExport or Export-ModuleMember -Function",
        _PS,
    ),
    _c(
        r"-ComObject|COM object",
        "Do not create COM objects with New-Object -ComObject; use .NET or built-in cmdlets",
        _PS,
    ),
    _c(
        r"Remote WMI|-ComputerName",
        "Query only the local machine; never pass -ComputerName to WMI/CIM cmdlets",
        _PS,
    ),
    _c(
        r"TcpListener|HttpListener|network listener",
        "Do not open network listeners (TcpListener/HttpListener) in modules",
        _PS,
    ),
    # Rust
    _c(
        r"unresolved import|can't find crate|cannot find crate|E04(?:32|33|63)",
        "Only use crates declared in Cargo.toml and import items by their real module paths",
        _RUST,
    ),
    _c(
        r"borrow(?:ed)?\b.*\b(?:mutable|immutable|while)|use of moved value|cannot move out|E0(?:382|499|502|505|507)",
        "Respect Rust ownership: clone or borrow values instead of moving them while borrowed",
        _RUST,
    ),
    _c(
        r"Missing Cargo\.toml|Missing \S*main\.rs|declares a \[lib\] target|tauri-required-files",
        "Always emit Cargo.toml and src/main.rs; emit src/lib.rs whenever Cargo.toml has a [lib] section",
        _RUST,
    ),
    # Python
    _c(
        r"No module named '(?P<module>[\w.]+)'",
        "Do not import '{module}'; use the standard library or a declared dependency",
        _PY,
    ),
    _c(
        r"ModuleNotFoundError|ImportError",
        "Only import the standard library or declared dependencies",
        _PY,
    ),
    _c(
        r"Python syntax error|py-syntax",
        "Emit complete, syntactically valid Python with every block and string closed",
        _PY,
    ),
    # Any framework
    _c(
        r"Unbalanced braces|is never closed|Unterminated",
        "Keep every brace and parenthesis balanced and close every string and comment",
    ),
    _c(
        r"DOCTYPE|missing the <(?:head|body)> element|html-structure",
        "Start every HTML file with <!DOCTYPE html> and include <head> and <body> elements",
        _WEB,
    ),
    _c(
        r"external origin|html-external",
        "Bundle all scripts and stylesheets locally; never load assets from a CDN or remote URL",
        _WEB,
    ),
    _c(
        r"innerHTML|outerHTML|document\.write|insertAdjacentHTML|HTML injection",
        "Never assign innerHTML/outerHTML or call document.write; build DOM nodes and set textContent",
        _WEB,
    ),
    _c(
        r"shell=True|os\.system|os\.popen|os\.(?:exec|spawn)|Shell command execution|OS command execution",
        "Never run shell commands; use library APIs instead of os.system, os.popen or shell=True",
    ),
    _c(
        r"\beval\b|\bexec\b|__import__|import_module|dynamic code|new Function|js-function-constructor",
        "Never execute dynamically built code (eval, exec, new Function or dynamic imports)",
    ),
    _c(
        r"truncated|max_tokens",
        "Keep the response compact: fewer files and no redundant comments",
    ),
]


def summarize(error_text: str) -> str:
    """First line of an error with its ``path:line: [rule]`` prefix removed."""
    first = error_text.strip().splitlines()[0] if error_text.strip() else ""
    summary = " ".join(_FINDING_PREFIX.sub("", first, count=1).split()) or " ".join(first.split())
    if len(summary) > SUMMARY_LIMIT:
        summary = summary[: SUMMARY_LIMIT - 3].rstrip() + "..."
    return summary


def _match(error_text: Optional[str], framework: Union[Framework, str, None]) -> Optional[tuple[Classifier, re.Match[str]]]:
    if not error_text or not error_text.strip():
        return None
    fw = Framework.parse(framework)
    for classifier in CLASSIFIERS:
        if not classifier.applies(fw):
            continue
        m = classifier.pattern.search(error_text)
        if m:
            return classifier, m
    return None


def classify(error_text: Optional[str], framework: Union[Framework, str, None] = None) -> str:
    """Map an error message to a constraint directive. Never raises."""
    if not error_text or not error_text.strip():
        return UNSPECIFIED_CONSTRAINT
    found = _match(error_text, framework)
    if found is not None:
        classifier, m = found
        try:
            return classifier.render(m)
        except (KeyError, IndexError):
            pass
    summary = summarize(error_text)
    return f"Avoid: {summary}" if summary else UNSPECIFIED_CONSTRAINT


def pattern_for(error_text: Optional[str], framework: Union[Framework, str, None] = None) -> Optional[str]:
    """Source of the classifier pattern that matches *error_text*, if any."""
    found = _match(error_text, framework)
    return found[0].pattern.pattern if found else None


def _framework_key(framework: Union[Framework, str]) -> str:
    parsed = Framework.parse(framework)
    return parsed.value if parsed else str(framework).strip().lower()


class ConstraintMemory:
    """Per-framework constraint store backed by the ``build_memory`` table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    classify = staticmethod(classify)
    pattern_for = staticmethod(pattern_for)

    def save(
        self,
        framework: Union[Framework, str],
        constraint_text: str,
        error_pattern: Optional[str] = None,
    ) -> None:
        """Insert a constraint, or bump its hit count if already known."""
        text = (constraint_text or "").strip()
        if not text:
            return
        now = utc_now()
        self.db.guarded(
            lambda: self.db.execute(
                """
                INSERT INTO build_memory
                    (framework, constraint_text, error_pattern, hit_count, created_at, updated_at)
                VALUES (?, ?, ?, 1, ?, ?)
                ON CONFLICT(framework, constraint_text) DO UPDATE SET
                    hit_count = build_memory.hit_count + 1,
                    updated_at = excluded.updated_at,
                    error_pattern = COALESCE(excluded.error_pattern, build_memory.error_pattern)
                """,
                (_framework_key(framework), text, error_pattern, now, now),
            ),
            0,
        )

    def learn(self, error_text: Optional[str], framework: Union[Framework, str]) -> str:
        """Classify *error_text*, persist the result and return it."""
        constraint = classify(error_text, framework)
        self.save(framework, constraint, pattern_for(error_text, framework))
        return constraint

    def list_constraints(self, framework: Union[Framework, str, None] = None) -> list[BuildConstraint]:
        """Stored constraints, most frequent and most recent first."""
        if framework is None:
            sql = "SELECT * FROM build_memory ORDER BY framework, hit_count DESC, updated_at DESC, id DESC"
            params: tuple = ()
        else:
            sql = "SELECT * FROM build_memory WHERE framework = ? ORDER BY hit_count DESC, updated_at DESC, id DESC"
            params = (_framework_key(framework),)
        rows = self.db.guarded(lambda: self.db.query(sql, params), [])
        return [
            BuildConstraint(
                framework=row["framework"],
                constraint_text=row["constraint_text"],
                error_pattern=row["error_pattern"],
                hit_count=row["hit_count"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    def get(self, framework: Union[Framework, str]) -> list[str]:
        """Constraint texts for *framework*; ``[]`` if none or unknown."""
        return [c.constraint_text for c in self.list_constraints(framework)]

    def clear(self, framework: Union[Framework, str, None] = None) -> int:
        """Delete stored constraints. Returns the number removed."""
        if framework is None:
            return self.db.guarded(lambda: self.db.execute("DELETE FROM build_memory"), 0)
        return self.db.guarded(
            lambda: self.db.execute("DELETE FROM build_memory WHERE framework = ?", (_framework_key(framework),)),
            0,
        )

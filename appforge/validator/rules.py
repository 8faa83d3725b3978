"""Validation rule objects and the per-framework rule catalogue.

A rule is data: an id, a message, a severity, the file extensions it applies
to and either a regular expression or a predicate. Adding a check for a
framework means appending a rule to its list in :data:`RULES`, not adding a
branch to the validator.

Rule kinds:

* :class:`PatternRule` - regex over one view of a file (``code`` with strings
  and comments masked, ``no_comments`` with only comments masked, or ``raw``).
* :class:`PredicateRule` - callable over one :class:`SourceFile`.
* :class:`ProjectRule` - callable over the whole file set (required files,
  exported functions).
"""

from __future__ import annotations

import ast
import posixpath
import re
from dataclasses import dataclass
from functools import cached_property
from typing import Callable, Optional, Union

from ..models import Framework
from .scanners import PowerShellScan, check_balance, line_of, mask_c_like, scan_powershell


# ---------------------------------------------------------------------------
# Findings and source views
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Finding:
    """A single rule violation."""

    rule_id: str
    message: str
    severity: str = "error"
    path: Optional[str] = None
    line: Optional[int] = None

    def format(self) -> str:
        location = self.path or ""
        if self.path and self.line is not None:
            location = f"{self.path}:{self.line}"
        prefix = f"{location}: " if location else ""
        return f"{prefix}[{self.rule_id}] {self.message}"


class SourceFile:
    """One file with lazily computed, cached analysis views."""

    def __init__(self, path: str, content: str) -> None:
        self.path = path
        self.content = content

    @property
    def extension(self) -> str:
        return posixpath.splitext(self.path.lower())[1]

    @cached_property
    def powershell(self) -> PowerShellScan:
        return scan_powershell(self.content)

    @cached_property
    def rust(self) -> tuple[str, list[tuple[int, str]]]:
        return mask_c_like(self.content, "rust")

    @cached_property
    def javascript(self) -> str:
        return mask_c_like(self.content, "javascript")[0]

    @cached_property
    def python(self) -> Union[ast.AST, SyntaxError]:
        try:
            return ast.parse(self.content, filename=self.path)
        except SyntaxError as exc:
            return exc
        except ValueError as exc:  # null bytes
            return SyntaxError(str(exc))

    def view(self, name: str) -> str:
        """Return the named text view used by pattern rules."""
        if name == "raw":
            return self.content
        ext = self.extension
        if ext in POWERSHELL_EXTENSIONS:
            scan = self.powershell
            return scan.no_comments if name == "no_comments" else scan.code
        if ext == ".rs":
            return self.rust[0]
        if ext in SCRIPT_EXTENSIONS:
            return self.javascript
        return self.content


POWERSHELL_EXTENSIONS = (".ps1", ".psm1", ".psd1")
SCRIPT_EXTENSIONS = (".js", ".mjs", ".cjs", ".ts")
HTML_EXTENSIONS = (".html", ".htm")


# ---------------------------------------------------------------------------
# Rule kinds
# ---------------------------------------------------------------------------

# A predicate yields (line, message) pairs; line may be None.
Hit = tuple[Optional[int], str]


@dataclass(frozen=True)
class Rule:
    rule_id: str
    message: str
    severity: str = "error"
    extensions: tuple[str, ...] = ()

    def applies_to(self, path: str) -> bool:
        return not self.extensions or path.lower().endswith(self.extensions)

    def check(self, source: SourceFile) -> list[Finding]:
        raise NotImplementedError

    def _finding(self, path: Optional[str], line: Optional[int], message: Optional[str] = None) -> Finding:
        return Finding(self.rule_id, message or self.message, self.severity, path, line)


@dataclass(frozen=True)
class PatternRule(Rule):
    pattern: Optional[re.Pattern[str]] = None
    view_name: str = "code"

    def check(self, source: SourceFile) -> list[Finding]:
        text = source.view(self.view_name)
        return [
            self._finding(source.path, line_of(text, m.start()), self.message.format(match=m.group(0).strip()))
            for m in self.pattern.finditer(text)
        ]


@dataclass(frozen=True)
class PredicateRule(Rule):
    predicate: Optional[Callable[[SourceFile], list[Hit]]] = None

    def check(self, source: SourceFile) -> list[Finding]:
        return [self._finding(source.path, line, msg) for line, msg in self.predicate(source)]


@dataclass(frozen=True)
class ProjectRule(Rule):
    """Runs once over the whole file set; yields ``(path, line, message)``."""

    project_check: Optional[Callable[[dict[str, SourceFile]], list[tuple[Optional[str], Optional[int], str]]]] = None

    def check_project(self, sources: dict[str, SourceFile]) -> list[Finding]:
        return [self._finding(path, line, msg) for path, line, msg in self.project_check(sources)]


# ---------------------------------------------------------------------------
# PowerShell checks
# ---------------------------------------------------------------------------

_SCOPE_PREFIXES = (
    "env", "script", "global", "local", "private", "using", "variable",
    "function", "alias", "workflow",
)
SCOPED_COLON = re.compile(
    rf"\$(?!(?:{'|'.join(_SCOPE_PREFIXES)}):)([A-Za-z_][A-Za-z0-9_]*):(?!:)",
    re.IGNORECASE,
)

# Left operand of a null-conditional access: a variable, ${braced} name or a
# closing bracket. A bare word before '?' is a wildcard argument (log?.txt).
_PS7_OPERAND = r"(?:\$\{[^}\r\n]+\}|\$(?:[A-Za-z]+:)?[A-Za-z_]\w*|[)\]}])"

_PS7_OPERATORS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\?\?="), "'??=' (null-coalescing assignment)"),
    (re.compile(r"\?\?(?!=)"), "'??' (null-coalescing)"),
    (re.compile(_PS7_OPERAND + r"\?\.(?=[A-Za-z_$])"), "'?.' (null-conditional member access)"),
    (re.compile(_PS7_OPERAND + r"\?\[(?!\])"), "'?[]' (null-conditional index)"),
]

APPROVED_VERBS = frozenset(
    v.lower()
    for v in (
        "Add Clear Close Copy Enter Exit Find Format Get Hide Join Lock Move New Open "
        "Optimize Pop Push Redo Remove Rename Reset Resize Search Select Set Show Skip "
        "Split Step Switch Undo Unlock Watch Connect Disconnect Read Receive Send Write "
        "Backup Checkpoint Compare Compress Convert ConvertFrom ConvertTo Dismount Edit "
        "Expand Export Group Import Initialize Limit Merge Mount Out Publish Restore Save "
        "Sync Unpublish Update Approve Assert Build Complete Confirm Deny Deploy Disable "
        "Enable Install Invoke Register Request Restart Resume Start Stop Submit Suspend "
        "Uninstall Unregister Wait Debug Measure Ping Repair Resolve Test Trace Block "
        "Grant Protect Revoke Unblock Unprotect Use"
    ).split()
)

_FUNCTION_DEF = re.compile(
    r"^[ \t]*(?:function|filter)[ \t]+(?:(?:global|script|local|private):)?([\w-]+)",
    re.IGNORECASE | re.MULTILINE,
)


def _ps_syntax(source: SourceFile) -> list[Hit]:
    scan = source.powershell
    problems = list(scan.issues) + check_balance(scan.code)
    return [(line_of(source.content, pos), msg) for pos, msg in problems]


def _ps7_operators(source: SourceFile) -> list[Hit]:
    code = source.powershell.code
    hits: list[Hit] = []
    for pattern, name in _PS7_OPERATORS:
        for m in pattern.finditer(code):
            hits.append((
                line_of(code, m.start()),
                f"PS7-only operator {name} is not supported by Windows PowerShell 5.1, "
                f"the minimum supported runtime",
            ))
    return sorted(hits, key=lambda h: h[0] or 0)


def _ps_scoped_colon(source: SourceFile) -> list[Hit]:
    hits: list[Hit] = []
    for start, end in source.powershell.expandable_spans:
        for m in SCOPED_COLON.finditer(source.content, start, end):
            name = m.group(1)
            hits.append((
                line_of(source.content, m.start()),
                f"Variable reference '${name}:' in a string is parsed as a scope qualifier; "
                f"write '${{{name}}}:' instead",
            ))
    return hits


def _ps_function_names(source: SourceFile) -> list[Hit]:
    hits: list[Hit] = []
    code = source.powershell.code
    for m in _FUNCTION_DEF.finditer(code):
        name = m.group(1)
        verb, _, noun = name.partition("-")
        if not noun or verb.lower() not in APPROVED_VERBS:
            hits.append((
                line_of(code, m.start()),
                f"Function '{name}' does not use an approved Verb-Noun name (see Get-Verb)",
            ))
    return hits


def _ps_manifest_fields(source: SourceFile) -> list[Hit]:
    code = source.powershell.no_comments
    hits: list[Hit] = []
    for key in ("ModuleVersion", "FunctionsToExport"):
        if not re.search(rf"^\s*{key}\s*=", code, re.IGNORECASE | re.MULTILINE):
            hits.append((None, f"Module manifest does not declare {key}"))
    return hits


def _manifest_exports(code: str) -> Optional[list[str]]:
    """Function names listed by ``FunctionsToExport``; ``None`` if absent."""
    m = re.search(
        r"^\s*FunctionsToExport\s*=\s*(@\((?P<list>[^)]*)\)|(?P<single>'[^']*'|\"[^\"]*\"))",
        code,
        re.IGNORECASE | re.MULTILINE,
    )
    if not m:
        return None
    raw = m.group("list") if m.group("list") is not None else m.group("single")
    return re.findall(r"['\"]([^'\"]+)['\"]", raw)


def _module_exports(sources: dict[str, SourceFile]) -> list[tuple[Optional[str], Optional[int], str]]:
    modules = [s for s in sources.values() if s.extension == ".psm1"]
    manifests = [s for s in sources.values() if s.extension == ".psd1"]

    defined: list[str] = []
    explicit: Optional[list[str]] = None
    for module in modules:
        defined.extend(m.group(1) for m in _FUNCTION_DEF.finditer(module.powershell.code))
        for m in re.finditer(
            r"Export-ModuleMember\b[^\n]*?-Function\s+(.+?)(?=\s+-[A-Za-z]|$)",
            module.powershell.no_comments,
            re.IGNORECASE | re.MULTILINE,
        ):
            names = re.findall(r"[\w*-]+", m.group(1))
            explicit = (explicit or []) + names
    for manifest in manifests:
        listed = _manifest_exports(manifest.powershell.no_comments)
        if listed is not None:
            explicit = listed

    if explicit is None:
        exported = defined
    elif "*" in explicit:
        exported = defined
    else:
        exported = [name for name in explicit if name]

    if not exported:
        path = modules[0].path if modules else None
        return [(path, None, "Module exports no functions")]
    return []


# ---------------------------------------------------------------------------
# Python checks
# ---------------------------------------------------------------------------

_DYNAMIC_NAMES = {"eval", "exec", "__import__"}
_SHELL_CALLS = {"run", "call", "Popen", "check_output", "check_call"}


def _call_name(func: ast.AST) -> str:
    """Dotted name of a call target, e.g. ``os.system`` (empty if not simple)."""
    parts: list[str] = []
    while isinstance(func, ast.Attribute):
        parts.append(func.attr)
        func = func.value
    if isinstance(func, ast.Name):
        parts.append(func.id)
        return ".".join(reversed(parts))
    return ""


def _import_aliases(tree: ast.AST) -> dict[str, str]:
    """Local name -> qualified name for every import in *tree*.

    ``from os import system as sh`` maps ``sh`` to ``os.system`` and
    ``import subprocess as sp`` maps ``sp`` to ``subprocess``.
    """
    aliases: dict[str, str] = {}
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    aliases[alias.asname] = alias.name
        elif isinstance(node, ast.ImportFrom) and node.module and not node.level:
            for alias in node.names:
                if alias.name != "*":
                    aliases[alias.asname or alias.name] = f"{node.module}.{alias.name}"
    return aliases


def _qualified(name: str, aliases: dict[str, str]) -> str:
    head, _, rest = name.partition(".")
    if head in aliases:
        return f"{aliases[head]}.{rest}" if rest else aliases[head]
    return name


def _py_syntax(source: SourceFile) -> list[Hit]:
    tree = source.python
    if isinstance(tree, SyntaxError):
        return [(tree.lineno, f"Python syntax error: {tree.msg}")]
    return []


def _py_calls(source: SourceFile) -> list[tuple[ast.Call, str]]:
    """Every simple call in the file with its import-resolved dotted name."""
    tree = source.python
    if isinstance(tree, SyntaxError):
        return []
    aliases = _import_aliases(tree)
    return [
        (node, _qualified(_call_name(node.func), aliases))
        for node in ast.walk(tree)
        if isinstance(node, ast.Call)
    ]


def _py_dynamic_exec(source: SourceFile) -> list[Hit]:
    hits: list[Hit] = []
    for call, name in _py_calls(source):
        builtin = name[len("builtins."):] if name.startswith("builtins.") else name
        if builtin in _DYNAMIC_NAMES:
            hits.append((call.lineno, f"Call to {name}() executes dynamic code"))
        elif name in ("importlib.import_module", "import_module"):
            hits.append((call.lineno, "Dynamic import via importlib.import_module()"))
    return hits


def _py_shell_exec(source: SourceFile) -> list[Hit]:
    hits: list[Hit] = []
    for call, name in _py_calls(source):
        short = name.rsplit(".", 1)[-1]
        if name in ("os.system", "os.popen") or re.match(r"os\.(exec|spawn)\w*$", name):
            hits.append((call.lineno, f"OS command execution via {name}()"))
        elif name in ("subprocess.getoutput", "subprocess.getstatusoutput"):
            hits.append((call.lineno, f"Shell command execution via {name}()"))
        elif short in _SHELL_CALLS and any(
            kw.arg == "shell" and isinstance(kw.value, ast.Constant) and kw.value.value is True
            for kw in call.keywords
        ):
            hits.append((call.lineno, f"Shell command execution via {name}(shell=True)"))
    return hits


# ---------------------------------------------------------------------------
# Tauri checks
# ---------------------------------------------------------------------------

def _manifests(sources: dict[str, SourceFile]) -> list[SourceFile]:
    found = [s for s in sources.values() if posixpath.basename(s.path) == "Cargo.toml"]
    return sorted(found, key=lambda s: s.path.count("/"))


def _tauri_required_files(sources: dict[str, SourceFile]) -> list[tuple[Optional[str], Optional[int], str]]:
    problems: list[tuple[Optional[str], Optional[int], str]] = []
    manifests = _manifests(sources)
    if not manifests:
        problems.append((None, None, "Missing Cargo.toml manifest"))
        if not any(path.endswith("main.rs") for path in sources):
            problems.append((None, None, "Missing src/main.rs entry source"))
        return problems

    manifest = manifests[0]
    base = posixpath.dirname(manifest.path)
    entry = posixpath.join(base, "src/main.rs")
    if entry not in sources:
        problems.append((None, None, f"Missing {entry} entry source"))

    lib = re.search(r"^\[lib\][ \t]*$(?P<body>(?:\n(?!\[).*)*)", manifest.content, re.MULTILINE)
    if lib:
        declared = re.search(r'^\s*path\s*=\s*"([^"]+)"', lib.group("body"), re.MULTILINE)
        lib_path = posixpath.normpath(posixpath.join(base, declared.group(1) if declared else "src/lib.rs"))
        if lib_path not in sources:
            problems.append((
                manifest.path,
                line_of(manifest.content, lib.start()),
                f"Cargo.toml declares a [lib] target but {lib_path} is missing",
            ))
    return problems


def _rust_braces(source: SourceFile) -> list[Hit]:
    code, issues = source.rust
    problems = list(issues) + check_balance(code, "{}")
    return [(line_of(source.content, pos), msg) for pos, msg in problems]


def _html_structure(source: SourceFile) -> list[Hit]:
    text = source.content
    hits: list[Hit] = []
    if not re.search(r"<!doctype\s+html", text, re.IGNORECASE):
        hits.append((1, "HTML document is missing the <!DOCTYPE html> declaration"))
    for element in ("head", "body"):
        if not re.search(rf"<{element}[\s>]", text, re.IGNORECASE):
            hits.append((None, f"HTML document is missing the <{element}> element"))
    return hits


_EXTERNAL_ORIGIN = r"""["']?(?:https?:)?//"""


# ---------------------------------------------------------------------------
# Rule catalogue
# ---------------------------------------------------------------------------

_PS_SCRIPTS = (".ps1", ".psm1")

POWERSHELL_RULES: list[Rule] = [
    PredicateRule("ps-syntax", "PowerShell syntax error", extensions=POWERSHELL_EXTENSIONS, predicate=_ps_syntax),
    PatternRule(
        "ps-invoke-expression",
        "Invoke-Expression ('{match}') evaluates arbitrary strings as code",
        extensions=_PS_SCRIPTS,
        pattern=re.compile(r"(?<![\w$-])(?:Invoke-Expression|iex)(?![\w-])", re.IGNORECASE),
    ),
    PatternRule(
        "ps-recursive-force-delete",
        "Remove-Item with both -Recurse and -Force deletes trees without confirmation",
        extensions=_PS_SCRIPTS,
        pattern=re.compile(
            r"(?<![\w$-])(?:Remove-Item|ri|rm|rmdir|del|rd)\b(?=[^\n]*-Recurse\b)(?=[^\n]*-Force\b)[^\n]*",
            re.IGNORECASE,
        ),
        view_name="no_comments",
    ),
    PatternRule(
        "ps-elevation",
        "Start-Process -Verb RunAs launches an elevated process",
        extensions=_PS_SCRIPTS,
        pattern=re.compile(
            r"(?<![\w$-])(?:Start-Process|saps|start)\b[^\n]*-Verb\s+['\"]?RunAs\b",
            re.IGNORECASE,
        ),
        view_name="no_comments",
    ),
    PredicateRule("ps7-operator", "PS7-only operator", extensions=_PS_SCRIPTS, predicate=_ps7_operators),
    PredicateRule(
        "ps-scoped-variable", "Scoped variable colon", extensions=_PS_SCRIPTS, predicate=_ps_scoped_colon
    ),
]

POWERSHELL_MODULE_RULES: list[Rule] = POWERSHELL_RULES + [
    PredicateRule(
        "ps-approved-verb", "Unapproved verb", extensions=(".psm1",), predicate=_ps_function_names
    ),
    PredicateRule(
        "ps-manifest", "Manifest fields", extensions=(".psd1",), predicate=_ps_manifest_fields
    ),
    ProjectRule("ps-no-exports", "Module exports no functions", project_check=_module_exports),
    PatternRule(
        "ps-com-object",
        "COM object instantiation ('{match}') is not allowed in modules",
        extensions=_PS_SCRIPTS,
        pattern=re.compile(r"New-Object\b[^\n]*?-ComObject\b", re.IGNORECASE),
        view_name="no_comments",
    ),
    PatternRule(
        "ps-remote-wmi",
        "Remote WMI/CIM query ('{match}') is not allowed in modules",
        extensions=_PS_SCRIPTS,
        pattern=re.compile(
            r"(?<![\w-])(?:Get-WmiObject|gwmi|Get-CimInstance|Invoke-WmiMethod|Invoke-CimMethod)\b"
            r"[^\n]*?-ComputerName\b",
            re.IGNORECASE,
        ),
    ),
    PatternRule(
        "ps-network-listener",
        "Raw network listener construction ('{match}') is not allowed in modules",
        extensions=_PS_SCRIPTS,
        pattern=re.compile(r"(?:System\.)?Net\.(?:Sockets\.)?(?:TcpListener|HttpListener)\b", re.IGNORECASE),
        view_name="no_comments",
    ),
]

PYTHON_RULES: list[Rule] = [
    PredicateRule("py-syntax", "Python syntax error", extensions=(".py",), predicate=_py_syntax),
    PredicateRule("py-dynamic-exec", "Dynamic code execution", extensions=(".py",), predicate=_py_dynamic_exec),
    PredicateRule("py-shell-exec", "Shell command execution", extensions=(".py",), predicate=_py_shell_exec),
]

TAURI_RULES: list[Rule] = [
    ProjectRule("tauri-required-files", "Missing required file", project_check=_tauri_required_files),
    PredicateRule("rust-braces", "Unbalanced braces", extensions=(".rs",), predicate=_rust_braces),
    PredicateRule("html-structure", "HTML structure", extensions=HTML_EXTENSIONS, predicate=_html_structure),
    PatternRule(
        "html-external-script",
        "Script loaded from an external origin: {match}",
        extensions=HTML_EXTENSIONS,
        pattern=re.compile(rf"<script\b[^>]*\bsrc\s*=\s*{_EXTERNAL_ORIGIN}[^\s\"'>]*", re.IGNORECASE),
        view_name="raw",
    ),
    PatternRule(
        "html-external-style",
        "Stylesheet loaded from an external origin: {match}",
        extensions=HTML_EXTENSIONS,
        pattern=re.compile(
            rf"<link\b(?=[^>]*\brel\s*=\s*[\"']?stylesheet)[^>]*\bhref\s*=\s*{_EXTERNAL_ORIGIN}[^\s\"'>]*"
            rf"|@import\s+(?:url\(\s*)?{_EXTERNAL_ORIGIN}[^\s\"')]*",
            re.IGNORECASE,
        ),
        view_name="raw",
    ),
    PatternRule(
        "js-eval",
        "eval() evaluates arbitrary strings as code",
        extensions=SCRIPT_EXTENSIONS,
        pattern=re.compile(r"(?:(?<![\w.$])|(?<=\bwindow\.)|(?<=\bglobalThis\.)|(?<=\bself\.))eval\s*\("),
    ),
    PatternRule(
        "js-html-injection",
        "Raw HTML injection via '{match}'",
        extensions=SCRIPT_EXTENSIONS,
        pattern=re.compile(
            r"\.(?:innerHTML|outerHTML)\s*\+?=(?!=)|\bdocument\.write(?:ln)?\s*\(|\.insertAdjacentHTML\s*\("
        ),
    ),
    PatternRule(
        "js-function-constructor",
        "Dynamic function construction via 'new Function()'",
        extensions=SCRIPT_EXTENSIONS,
        pattern=re.compile(r"\bnew\s+Function\s*\("),
    ),
]

RULES: dict[Framework, list[Rule]] = {
    Framework.POWERSHELL: POWERSHELL_RULES,
    Framework.POWERSHELL_MODULE: POWERSHELL_MODULE_RULES,
    Framework.PYTHON_TK: PYTHON_RULES,
    Framework.PYTHON_WEB: PYTHON_RULES,
    Framework.TAURI: TAURI_RULES,
}

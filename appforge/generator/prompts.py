"""Prompt rendering for code generation and planning.

Prompts are Jinja2 templates under ``appforge/generator/templates/``. Each
framework contributes a :class:`FrameworkProfile` with its runtime, default
entry file and the constructs the validator rejects, so the model is told up
front what would fail validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..models import Framework

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


@dataclass(frozen=True)
class FrameworkProfile:
    """Per-framework facts used in prompts and file naming."""

    display_name: str
    runtime: str
    default_file: str
    fence_language: str
    guidance: list[str] = field(default_factory=list)
    forbidden: list[str] = field(default_factory=list)


_PS_FORBIDDEN = [
    "Invoke-Expression / iex",
    "Remove-Item with both -Recurse and -Force",
    "Start-Process -Verb RunAs (elevation)",
    "PowerShell 7-only operators: ??, ??=, ?. and ?[]",
    "\"$name:\" inside double-quoted strings (write \"${name}:\" instead)",
]

PROFILES: dict[Framework, FrameworkProfile] = {
    Framework.POWERSHELL: FrameworkProfile(
        display_name="PowerShell",
        runtime="Windows PowerShell 5.1",
        default_file="app.ps1",
        fence_language="powershell",
        guidance=[
            "Keep helper scripts in source/ and dot-source them from app.ps1 with "
            "`. \"$PSScriptRoot\\source\\<file>.ps1\"`; they are merged into one file before packaging.",
            "Use [CmdletBinding()] and a param() block at the top of app.ps1 when the script takes arguments.",
        ],
        forbidden=_PS_FORBIDDEN,
    ),
    Framework.POWERSHELL_MODULE: FrameworkProfile(
        display_name="PowerShell module",
        runtime="Windows PowerShell 5.1",
        default_file="AppModule.psm1",
        fence_language="powershell",
        guidance=[
            "Ship a .psm1 module file and a .psd1 manifest declaring ModuleVersion and FunctionsToExport.",
            "Every function name uses an approved Verb-Noun form (Get-, Set-, New-, Remove-, ...).",
            "Export at least one function.",
        ],
        forbidden=_PS_FORBIDDEN + [
            "New-Object -ComObject",
            "Get-WmiObject / Get-CimInstance against remote computers (-ComputerName)",
            "TcpListener or HttpListener servers",
        ],
    ),
    Framework.PYTHON_TK: FrameworkProfile(
        display_name="Python Tkinter",
        runtime="Python 3.10+ with only the standard library",
        default_file="app.py",
        fence_language="python",
        guidance=[
            "Build the GUI with tkinter/ttk; the entry file creates the root window and calls mainloop().",
            "Guard the entry point with `if __name__ == \"__main__\":`.",
        ],
        forbidden=[
            "eval(), exec(), __import__() and importlib.import_module()",
            "os.system, os.popen, os.exec*/os.spawn* and subprocess with shell=True",
        ],
    ),
    Framework.PYTHON_WEB: FrameworkProfile(
        display_name="Python web",
        runtime="Python 3.10+ with Flask",
        default_file="app.py",
        fence_language="python",
        guidance=[
            "Serve the UI with Flask; put HTML in templates/ and static assets in static/.",
            "HTML pages declare <!DOCTYPE html> with <head> and <body> and load no assets from external origins.",
            "List third-party packages in requirements.txt.",
        ],
        forbidden=[
            "eval(), exec(), __import__() and importlib.import_module()",
            "os.system, os.popen, os.exec*/os.spawn* and subprocess with shell=True",
        ],
    ),
    Framework.TAURI: FrameworkProfile(
        display_name="Tauri (Rust + HTML/JS)",
        runtime="Tauri 1.x with stable Rust",
        default_file="src/main.rs",
        fence_language="rust",
        guidance=[
            "Required files: Cargo.toml, build.rs, src/main.rs and dist/index.html.",
            "If Cargo.toml declares a [lib] target, also ship its library entry (src/lib.rs).",
            "Only use crates declared in Cargo.toml.",
            "index.html declares <!DOCTYPE html> with <head> and <body>; scripts and styles are bundled locally.",
        ],
        forbidden=[
            "Scripts or stylesheets loaded from external origins",
            "eval(), new Function(), innerHTML/outerHTML assignment, insertAdjacentHTML and document.write",
        ],
    ),
}


def profile_for(framework: Framework) -> FrameworkProfile:
    """Return the profile for *framework*."""
    return PROFILES[framework]


def default_file_name(framework: Framework) -> str:
    """File name given to an unnamed code block for *framework*."""
    return PROFILES[framework].default_file


class PromptRenderer:
    """Renders the generation and planning prompts."""

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self.template_dir = Path(template_dir or _DEFAULT_TEMPLATE_DIR)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        return self.env.get_template(template_name).render(**context)

    def system_prompt(self, framework: Framework, constraints: Optional[list[str]] = None) -> str:
        """System prompt for a generation call, including learned constraints."""
        return self.render(
            "system.j2",
            {
                "framework": framework.value,
                "profile": profile_for(framework),
                "constraints": list(constraints or []),
            },
        )

    def user_prompt(
        self,
        spec: str,
        plan: Optional[str] = None,
        previous_errors: Optional[list[str]] = None,
    ) -> str:
        return self.render(
            "user.j2",
            {"spec": spec.strip(), "plan": plan, "previous_errors": list(previous_errors or [])},
        )

    def plan_prompt(self, spec: str, framework: Framework) -> str:
        return self.render("plan.j2", {"spec": spec.strip(), "profile": profile_for(framework)})

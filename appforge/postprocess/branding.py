"""Attribution branding for generated projects.

Stamps a fixed marker into every file that has a branding target for the
build's framework: a header comment for scripts and modules, a footer for
HTML pages, and an F1 "About" binding for Tkinter entry scripts. A file that
already carries the marker is left alone, so branding twice is the same as
branding once.
"""

from __future__ import annotations

import re
from typing import Callable

from ..models import FileMap, Framework

BRAND_MARKER = "Built with AppForge"

Injector = Callable[[str], str]

_LEADING_DIRECTIVE = re.compile(r"^(#!|#\s*-\*-|#\s*(?:vim|coding)[:=]|#requires\b)", re.IGNORECASE)
_MAINLOOP = re.compile(r"^(?P<indent>[ \t]*)(?P<target>[A-Za-z_][\w.]*)\.mainloop\(\s*\)", re.MULTILINE)
_BODY_CLOSE = re.compile(r"</body\s*>", re.IGNORECASE)


def _insert_header(content: str, comment: str) -> str:
    """Insert *comment* after any leading shebang/encoding/#Requires lines."""
    lines = content.splitlines(keepends=True)
    at = 0
    while at < len(lines) and _LEADING_DIRECTIVE.match(lines[at].strip()):
        at += 1
    return "".join(lines[:at] + [comment + "\n"] + lines[at:])


def hash_header(content: str) -> str:
    return _insert_header(content, f"# {BRAND_MARKER}")


def slash_header(content: str) -> str:
    return _insert_header(content, f"// {BRAND_MARKER}")


def html_footer(content: str) -> str:
    footer = (
        '<footer class="appforge-brand" style="text-align:center;font-size:0.8em;opacity:0.7;">'
        f"{BRAND_MARKER}</footer>\n"
    )
    matches = list(_BODY_CLOSE.finditer(content))
    if not matches:
        return content.rstrip("\n") + "\n" + footer
    pos = matches[-1].start()
    return content[:pos] + footer + content[pos:]


def tk_about(content: str) -> str:
    """Bind F1 to an About box just before the last ``<widget>.mainloop()`` call."""
    matches = [m for m in _MAINLOOP.finditer(content) if m.group("target") not in ("tk", "tkinter")]
    if not matches:
        return content
    m = matches[-1]
    indent, target = m.group("indent"), m.group("target")
    snippet = (
        f"{indent}import tkinter.messagebox as _appforge_messagebox\n"
        f"{indent}{target}.bind_all(\"<F1>\", lambda _event: "
        f"_appforge_messagebox.showinfo(\"About\", \"{BRAND_MARKER}\"))\n"
    )
    return content[: m.start()] + snippet + content[m.start():]


# framework -> ordered (extensions, injector) pairs
BRANDING_TARGETS: dict[Framework, list[tuple[tuple[str, ...], Injector]]] = {
    Framework.POWERSHELL: [((".ps1", ".psm1", ".psd1"), hash_header)],
    Framework.POWERSHELL_MODULE: [((".ps1", ".psm1", ".psd1"), hash_header)],
    Framework.PYTHON_TK: [((".py",), hash_header), ((".py",), tk_about)],
    Framework.PYTHON_WEB: [((".py",), hash_header), ((".html", ".htm"), html_footer)],
    Framework.TAURI: [((".html", ".htm"), html_footer), ((".rs",), slash_header)],
}


class BrandingInjector:
    """Applies the framework's branding targets to a file map."""

    def __init__(
        self,
        targets: dict[Framework, list[tuple[tuple[str, ...], Injector]]] | None = None,
    ) -> None:
        self.targets = targets if targets is not None else BRANDING_TARGETS

    def inject(self, files: FileMap, framework: Framework, no_branding: bool = False) -> FileMap:
        """Return a new file map with branding applied.

        Keys and their order are preserved and the input map is not mutated.
        With *no_branding* the input is returned unchanged.
        """
        if no_branding:
            return files

        targets = self.targets.get(Framework(framework), [])
        branded: FileMap = {}
        for path, generated in files.items():
            content = generated.content
            if content.strip() and BRAND_MARKER not in content:
                for extensions, injector in targets:
                    if path.lower().endswith(extensions):
                        content = injector(content)
            branded[path] = (
                generated if content == generated.content else generated.model_copy(update={"content": content})
            )
        return branded


def inject(files: FileMap, framework: Framework, no_branding: bool = False) -> FileMap:
    """Brand with the built-in targets."""
    return BrandingInjector().inject(files, framework, no_branding)

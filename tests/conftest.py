"""Shared pytest fixtures for the AppForge test suite.

Provides reusable fixtures for:
- Temporary configuration, database and stores
- A scripted completion client that replays queued responses
- A fake packager that never invokes external tools
- Sample generated file sets for every framework
- Model responses in the fenced-block wire format
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Optional, Union

import pytest

from appforge.builder.packager import PackageResult, Packager
from appforge.config import Config
from appforge.llm_client import CompletionClient, CompletionResponse
from appforge.memory.constraints import ConstraintMemory
from appforge.memory.database import Database
from appforge.memory.records import BuildRecordStore
from appforge.models import FileMap, GeneratedFile


# ---------------------------------------------------------------------------
# Configuration & stores
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config rooted in a temp directory with packaging disabled."""
    cfg = Config(data_dir=tmp_path / "appforge-home")
    cfg.build.package = False
    return cfg


@pytest.fixture
def database(config: Config):
    db = Database.from_config(config)
    yield db
    db.close()


@pytest.fixture
def memory(database: Database) -> ConstraintMemory:
    return ConstraintMemory(database)


@pytest.fixture
def records(database: Database) -> BuildRecordStore:
    return BuildRecordStore(database)


# ---------------------------------------------------------------------------
# Scripted completion client
# ---------------------------------------------------------------------------


class ScriptedClient(CompletionClient):
    """Completion client that returns queued responses in order.

    Plain strings are returned as successful, naturally-stopped completions.
    Every call is recorded in :attr:`calls`. When the queue is empty the
    client answers with a failed response.
    """

    provider_name = "scripted"

    def __init__(self, responses: Optional[list[Union[str, CompletionResponse]]] = None) -> None:
        super().__init__(api_key="test-key", base_url="http://scripted.invalid")
        self.responses = list(responses or [])
        self.calls: list[dict] = []

    def queue(self, content: str, stop_reason: str = "end_turn") -> "ScriptedClient":
        self.responses.append(CompletionResponse(content=content, stop_reason=stop_reason, model="scripted"))
        return self

    def fail(self, error: str = "provider unavailable") -> "ScriptedClient":
        self.responses.append(CompletionResponse(success=False, error=error, model="scripted"))
        return self

    async def complete(self, messages, model, max_tokens, system_prompt=None):
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "max_tokens": max_tokens,
                "system_prompt": system_prompt,
            }
        )
        if not self.responses:
            return CompletionResponse(success=False, error="no scripted response left", model=model)
        item = self.responses.pop(0)
        if isinstance(item, str):
            return CompletionResponse(content=item, stop_reason="end_turn", model=model)
        return item


@pytest.fixture
def scripted_client() -> ScriptedClient:
    return ScriptedClient()


class FakePackager(Packager):
    """Packager that writes a placeholder executable instead of running a tool."""

    tool = "fake"

    def __init__(self, result: Optional[PackageResult] = None) -> None:
        self.result = result
        self.calls: list[tuple[Path, Optional[str], str]] = []

    async def package(self, source_dir, entry, app_name):
        self.calls.append((Path(source_dir), entry, app_name))
        if self.result is not None:
            return self.result
        exe = Path(source_dir) / "dist" / f"{app_name}.exe"
        exe.parent.mkdir(parents=True, exist_ok=True)
        exe.write_bytes(b"MZ")
        return PackageResult(True, exe_path=str(exe), output="packaged")


@pytest.fixture
def fake_packager() -> FakePackager:
    return FakePackager()


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def _fenced(language: str, path: Optional[str], body: str) -> str:
    info = f"{language} {path}" if path else language
    return f"```{info}\n{textwrap.dedent(body).strip()}\n```\n"


# ---------------------------------------------------------------------------
# Sample sources
# ---------------------------------------------------------------------------

TK_COLOR_PICKER = '''\
import tkinter as tk
from tkinter import colorchooser


class ColorPicker:
    def __init__(self, root):
        self.root = root
        self.root.title("Color Picker")
        self.swatch = tk.Label(root, text="No color", width=30, height=8, bg="#ffffff")
        self.swatch.pack(padx=12, pady=12)
        tk.Button(root, text="Pick color", command=self.pick).pack(pady=(0, 12))

    def pick(self):
        _, hex_value = colorchooser.askcolor(title="Choose a color")
        if hex_value:
            self.swatch.configure(bg=hex_value, text=hex_value)


if __name__ == "__main__":
    root = tk.Tk()
    ColorPicker(root)
    root.mainloop()
'''

PS_APP = '''\
[CmdletBinding()]
param(
    [string]$Path = "."
)

. "$PSScriptRoot\\source\\helpers.ps1"

$items = Get-DiskReport -Path $Path
Write-Output "Found $($items.Count) items in ${Path}:"
'''

PS_HELPERS = '''\
function Get-DiskReport {
    param([string]$Path)
    Get-ChildItem -Path $Path | Select-Object Name, Length
}
'''

TAURI_CARGO = '''\
[package]
name = "notes-app"
version = "0.1.0"
edition = "2021"

[build-dependencies]
tauri-build = { version = "1", features = [] }

[dependencies]
tauri = { version = "1", features = [] }
'''

TAURI_MAIN = '''\
#![cfg_attr(not(debug_assertions), windows_subsystem = "windows")]

#[tauri::command]
fn greet(name: &str) -> String {
    format!("Hello, {}!", name)
}

fn main() {
    tauri::Builder::default()
        .invoke_handler(tauri::generate_handler![greet])
        .run(tauri::generate_context!())
        .expect("error while running tauri application");
}
'''

TAURI_INDEX = '''\
<!DOCTYPE html>
<html>
<head><title>Notes</title><script src="main.js"></script></head>
<body><h1>Notes</h1></body>
</html>
'''

TAURI_JS = 'document.querySelector("h1").textContent = "Ready";\n'


@pytest.fixture
def tk_source() -> str:
    return TK_COLOR_PICKER


@pytest.fixture
def tk_files() -> FileMap:
    return {"app.py": GeneratedFile(path="app.py", language="python", content=TK_COLOR_PICKER)}


@pytest.fixture
def powershell_files() -> FileMap:
    return {
        "app.ps1": GeneratedFile(path="app.ps1", language="powershell", content=PS_APP),
        "source/helpers.ps1": GeneratedFile(path="source/helpers.ps1", language="powershell", content=PS_HELPERS),
    }


@pytest.fixture
def tauri_files() -> FileMap:
    return {
        "Cargo.toml": GeneratedFile(path="Cargo.toml", language="toml", content=TAURI_CARGO),
        "src/main.rs": GeneratedFile(path="src/main.rs", language="rust", content=TAURI_MAIN),
        "dist/index.html": GeneratedFile(path="dist/index.html", language="html", content=TAURI_INDEX),
        "dist/main.js": GeneratedFile(path="dist/main.js", language="javascript", content=TAURI_JS),
    }


@pytest.fixture
def tk_response() -> str:
    """A model reply carrying the Tkinter color picker."""
    return "Here is the app.\n\n" + _fenced("python", "app.py", TK_COLOR_PICKER)


@pytest.fixture
def powershell_response(powershell_files) -> str:
    """A model reply carrying the two-file PowerShell disk report."""
    return "\n".join(_fenced("powershell", path, f.content) for path, f in powershell_files.items())

"""Native packager adapters.

Each adapter wraps one external tool and turns its exit code into a
:class:`PackageResult`. A missing tool is a failed result, never an
exception, so a build without a packaging toolchain still ends with a record.
"""

from __future__ import annotations

import asyncio
import re
import sys
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..models import Framework
from ..utils import console, ensure_dir, run_command

PathLike = Union[str, Path]

DIST_DIR = "dist"


@dataclass
class PackageResult:
    """Outcome of one packager invocation."""

    success: bool
    exe_path: Optional[str] = None
    output: str = ""


def _tool_failure(tool: str, returncode: int, stdout: str, stderr: str) -> PackageResult:
    if returncode == 127:
        return PackageResult(False, output=f"{tool} is not installed or not on PATH")
    detail = (stderr or stdout or "").strip()
    tail = "\n".join(detail.splitlines()[-20:])
    return PackageResult(False, output=f"{tool} exited with code {returncode}\n{tail}".rstrip())


def _ps_quote(path: PathLike) -> str:
    return "'" + str(path).replace("'", "''") + "'"


def _top_level_entry(source_dir: Path, candidates: tuple[str, ...], pattern: str) -> Optional[Path]:
    for name in candidates:
        if (source_dir / name).is_file():
            return source_dir / name
    found = sorted(p for p in source_dir.glob(pattern) if p.is_file())
    return found[0] if found else None


class Packager:
    """Base adapter. Subclasses set :attr:`tool` and implement :meth:`package`."""

    tool: str = ""

    async def package(
        self, source_dir: PathLike, entry: Optional[PathLike], app_name: str
    ) -> PackageResult:
        raise NotImplementedError


class Ps2ExePackager(Packager):
    """Compiles a single PowerShell script with ``Invoke-ps2exe``."""

    tool = "pwsh"

    def __init__(self, shell: str = "pwsh", timeout: int = 600) -> None:
        self.tool = shell
        self.timeout = timeout

    async def package(self, source_dir, entry, app_name):
        source = Path(source_dir)
        script = Path(entry) if entry else _top_level_entry(source, ("main.ps1", "app.ps1"), "*.ps1")
        if script is None or not script.is_file():
            return PackageResult(False, output=f"No PowerShell entry script in {source}")

        exe = ensure_dir(source / DIST_DIR) / f"{app_name}.exe"
        command = f"Invoke-ps2exe -inputFile {_ps_quote(script)} -outputFile {_ps_quote(exe)}"
        console.print(f"  Packaging with ps2exe: [dim]{script.name} -> {exe.name}[/dim]")
        rc, out, err = await run_command(
            [self.tool, "-NoProfile", "-NonInteractive", "-Command", command],
            cwd=source,
            timeout=self.timeout,
        )
        if rc != 0:
            return _tool_failure("ps2exe", rc, out, err)
        if not exe.is_file():
            return PackageResult(False, output=f"ps2exe reported success but {exe} was not created")
        return PackageResult(True, exe_path=str(exe), output=out)


class PyInstallerPackager(Packager):
    """Builds a one-file executable with PyInstaller."""

    tool = "pyinstaller"

    def __init__(self, windowed: bool = False, timeout: int = 1200) -> None:
        self.windowed = windowed
        self.timeout = timeout

    def command(self, source: Path, script: Path, app_name: str) -> list[str]:
        build = source / "build"
        cmd = [
            self.tool,
            "--onefile",
            "--noconfirm",
            "--name", app_name,
            "--distpath", str(source / DIST_DIR),
            "--workpath", str(build),
            "--specpath", str(build),
        ]
        if self.windowed:
            cmd.append("--noconsole")
        for data_dir in ("templates", "static"):
            if (source / data_dir).is_dir():
                cmd += ["--add-data", f"{source / data_dir}{';' if sys.platform == 'win32' else ':'}{data_dir}"]
        cmd.append(str(script))
        return cmd

    async def package(self, source_dir, entry, app_name):
        source = Path(source_dir)
        script = Path(entry) if entry else _top_level_entry(source, ("app.py", "main.py"), "*.py")
        if script is None or not script.is_file():
            return PackageResult(False, output=f"No Python entry script in {source}")

        console.print(f"  Packaging with PyInstaller: [dim]{script.name}[/dim]")
        rc, out, err = await run_command(self.command(source, script, app_name), cwd=source, timeout=self.timeout)
        if rc != 0:
            return _tool_failure("pyinstaller", rc, out, err)

        for name in (f"{app_name}.exe", app_name):
            exe = source / DIST_DIR / name
            if exe.is_file():
                return PackageResult(True, exe_path=str(exe), output=out)
        return PackageResult(False, output=f"PyInstaller finished but no executable for {app_name} was found")


class ModuleArchivePackager(Packager):
    """Zips a PowerShell module folder for ``Install-Module``-style copying."""

    tool = "zip"

    @staticmethod
    def module_name(source: Path, app_name: str) -> str:
        manifests = sorted(source.glob("*.psd1"))
        return manifests[0].stem if manifests else app_name

    @staticmethod
    def _archive(source: Path, archive: Path, module: str) -> list[str]:
        members: list[str] = []
        with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in sorted(source.rglob("*")):
                rel = path.relative_to(source)
                if not path.is_file() or rel.parts[0] == DIST_DIR:
                    continue
                arcname = f"{module}/{rel.as_posix()}"
                zf.write(path, arcname)
                members.append(arcname)
        return members

    async def package(self, source_dir, entry, app_name):
        source = Path(source_dir)
        if not any(source.glob("*.psm1")):
            return PackageResult(False, output=f"No .psm1 module file in {source}")

        module = self.module_name(source, app_name)
        archive = ensure_dir(source / DIST_DIR) / f"{module}.zip"
        try:
            members = await asyncio.to_thread(self._archive, source, archive, module)
        except OSError as exc:
            return PackageResult(False, output=f"Could not write module archive: {exc}")
        return PackageResult(True, exe_path=str(archive), output=f"Archived {len(members)} file(s) into {archive.name}")


class TauriPackager(Packager):
    """Runs ``cargo tauri build`` and locates the produced bundle or binary."""

    tool = "cargo"
    BUNDLE_SUFFIXES = (".msi", ".exe", ".AppImage", ".dmg", ".deb")

    def __init__(self, timeout: int = 3600) -> None:
        self.timeout = timeout

    @staticmethod
    def crate_dir(source: Path) -> Path:
        manifests = sorted(source.rglob("Cargo.toml"), key=lambda p: len(p.relative_to(source).parts))
        manifests = [m for m in manifests if "target" not in m.relative_to(source).parts]
        return manifests[0].parent if manifests else source

    @staticmethod
    def crate_name(crate: Path) -> Optional[str]:
        manifest = crate / "Cargo.toml"
        if not manifest.is_file():
            return None
        m = re.search(r'^\s*name\s*=\s*"([^"]+)"', manifest.read_text(encoding="utf-8"), re.MULTILINE)
        return m.group(1) if m else None

    def find_artifact(self, crate: Path) -> Optional[Path]:
        release = crate / "target" / "release"
        bundle_dir = release / "bundle"
        if bundle_dir.is_dir():
            bundles = sorted(
                p for p in bundle_dir.rglob("*") if p.is_file() and p.name.endswith(self.BUNDLE_SUFFIXES)
            )
            if bundles:
                return bundles[0]
        name = self.crate_name(crate)
        for candidate in (f"{name}.exe", name) if name else ():
            if (release / candidate).is_file():
                return release / candidate
        return None

    async def package(self, source_dir, entry, app_name):
        source = Path(source_dir)
        console.print("  Packaging with cargo tauri build...")
        rc, out, err = await run_command([self.tool, "tauri", "build"], cwd=source, timeout=self.timeout)
        if rc != 0:
            return _tool_failure("cargo tauri", rc, out, err)

        artifact = self.find_artifact(self.crate_dir(source))
        if artifact is None:
            return PackageResult(False, output="cargo tauri build finished but no bundle was found")
        return PackageResult(True, exe_path=str(artifact), output=out)


def default_packagers() -> dict[Framework, Packager]:
    """One packager per framework."""
    return {
        Framework.POWERSHELL: Ps2ExePackager(),
        Framework.POWERSHELL_MODULE: ModuleArchivePackager(),
        Framework.PYTHON_TK: PyInstallerPackager(windowed=True),
        Framework.PYTHON_WEB: PyInstallerPackager(),
        Framework.TAURI: TauriPackager(),
    }

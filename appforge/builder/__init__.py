"""AppForge builder module.

Drives a build from generated files to a packaged app: the repair loop and
its auto-fixers, the native packager adapters and the orchestrator that
sequences every step.
"""

from .autofix import AUTOFIXES, apply_autofixes, fix_missing_doctype, fix_scoped_variable_colon
from .orchestrator import BuildOrchestrator
from .packager import (
    ModuleArchivePackager,
    PackageResult,
    Packager,
    Ps2ExePackager,
    PyInstallerPackager,
    TauriPackager,
    default_packagers,
)
from .repair_loop import RepairAttempt, RepairLoop, RepairOutcome, RepairState

__all__ = [
    "AUTOFIXES",
    "apply_autofixes",
    "fix_missing_doctype",
    "fix_scoped_variable_colon",
    "BuildOrchestrator",
    "Packager",
    "PackageResult",
    "Ps2ExePackager",
    "PyInstallerPackager",
    "ModuleArchivePackager",
    "TauriPackager",
    "default_packagers",
    "RepairLoop",
    "RepairState",
    "RepairAttempt",
    "RepairOutcome",
]

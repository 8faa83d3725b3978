"""Framework-specific static validation of a generated file set.

The validator is a thin dispatcher: it looks up the framework's ordered rule
list in the registry and runs every rule against every file it applies to,
then runs the project-level rules once. Findings accumulate across files; one
failing file fails the whole set.
"""

from __future__ import annotations

from typing import Mapping, Optional, Union

from ..models import FileMap, Framework, GeneratedFile, ValidationResult
from .rules import RULES, Finding, ProjectRule, Rule, SourceFile

FileInput = Mapping[str, Union[GeneratedFile, str]]


def _sources(files: FileInput) -> dict[str, SourceFile]:
    """Normalize paths and drop blank files."""
    sources: dict[str, SourceFile] = {}
    for path, value in (files or {}).items():
        content = value.content if isinstance(value, GeneratedFile) else (value or "")
        if not content.strip():
            continue
        norm = path.replace("\\", "/")
        while norm.startswith("./"):
            norm = norm[2:]
        sources[norm] = SourceFile(norm, content)
    return sources


class Validator:
    """Runs the registered rules for a framework over a file set.

    Parameters
    ----------
    rules:
        Registry of ``{framework: [rule, ...]}``; defaults to :data:`RULES`.
    """

    def __init__(self, rules: Optional[dict[Framework, list[Rule]]] = None) -> None:
        self.rules = rules if rules is not None else RULES

    def rules_for(self, framework: Framework) -> list[Rule]:
        return list(self.rules.get(Framework(framework), []))

    def findings(self, files: FileInput, framework: Framework) -> list[Finding]:
        """Every finding, in file order then rule order, project rules last."""
        sources = _sources(files)
        if not sources:
            return []

        rules = self.rules_for(framework)
        found: list[Finding] = []
        for source in sources.values():
            for rule in rules:
                if isinstance(rule, ProjectRule) or not rule.applies_to(source.path):
                    continue
                found.extend(self._run(rule, source))

        for rule in rules:
            if isinstance(rule, ProjectRule):
                found.extend(self._run_project(rule, sources))
        return found

    def validate(self, files: FileInput, framework: Framework) -> ValidationResult:
        """Validate *files* for *framework*.

        Empty file sets and blank files pass trivially; nothing here raises on
        unusual content.
        """
        found = self.findings(files, framework)
        errors = [f.format() for f in found if f.severity == "error"]
        warnings = [f.format() for f in found if f.severity != "error"]
        return ValidationResult.from_errors(errors, warnings)

    @staticmethod
    def _run(rule: Rule, source: SourceFile) -> list[Finding]:
        try:
            return rule.check(source)
        except Exception as exc:  # noqa: BLE001
            return [Finding(rule.rule_id, f"check failed: {exc}", "error", source.path, None)]

    @staticmethod
    def _run_project(rule: ProjectRule, sources: dict[str, SourceFile]) -> list[Finding]:
        try:
            return rule.check_project(sources)
        except Exception as exc:  # noqa: BLE001
            return [Finding(rule.rule_id, f"check failed: {exc}", "error", None, None)]


def validate(files: FileMap, framework: Framework) -> ValidationResult:
    """Validate with the built-in rule registry."""
    return Validator().validate(files, framework)

"""Validate-repair loop.

After the first generation the file set is validated. Mechanical problems are
fixed in place; anything left is classified into constraints, persisted to the
constraint memory, and sent back to the generator together with the error
list. The loop stops on a clean validation or after *max_retries*
regenerations.

State machine::

    generated -> validating -> success
                            -> repairing -> generated
                            -> exhausted
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..generator.code_generator import CodeGenerator
from ..memory.constraints import ConstraintMemory
from ..models import FileMap, Framework, ValidationResult
from ..utils import console, print_success, print_warning
from ..validator.validator import Validator
from .autofix import apply_autofixes


class RepairState(str, Enum):
    GENERATED = "generated"
    VALIDATING = "validating"
    REPAIRING = "repairing"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass
class RepairAttempt:
    """Record of one validation pass and the regeneration that followed it."""

    attempt: int
    errors: list[str] = field(default_factory=list)
    autofixed: list[str] = field(default_factory=list)
    regenerated: bool = False
    output: str = ""


@dataclass
class RepairOutcome:
    """Terminal result of :meth:`RepairLoop.run`."""

    state: RepairState
    files: FileMap
    validation: ValidationResult
    attempts: int
    constraints: list[str] = field(default_factory=list)
    history: list[RepairAttempt] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state is RepairState.SUCCESS

    def summary(self) -> str:
        status = "VALID" if self.success else "EXHAUSTED"
        lines = [
            f"Status: {status}",
            f"Regenerations: {self.attempts}",
            f"Files: {len(self.files)}",
        ]
        if self.validation.errors:
            lines.append(f"Errors: {len(self.validation.errors)}")
            for err in self.validation.errors[:3]:
                lines.append(f"  - {err[:200]}")
        return "\n".join(lines)


class RepairLoop:
    """Drives validation and regeneration until the file set is clean.

    Parameters
    ----------
    generator:
        Used for regenerations; called with the accumulated constraints and
        the previous validation errors.
    validator:
        Framework-aware static validator.
    memory:
        Constraint store; every remaining error is classified and saved.
    max_retries:
        Regenerations allowed before the loop gives up. ``0`` validates once.
    """

    def __init__(
        self,
        generator: CodeGenerator,
        validator: Validator,
        memory: ConstraintMemory,
        max_retries: int = 3,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.generator = generator
        self.validator = validator
        self.memory = memory
        self.max_retries = max_retries
        self.state = RepairState.GENERATED

    async def run(
        self,
        spec: str,
        framework: Framework,
        files: FileMap,
        max_tokens: int,
        plan: Optional[str] = None,
    ) -> RepairOutcome:
        """Validate *files* and repair them until valid or out of retries."""
        current = files
        attempts = 0
        history: list[RepairAttempt] = []

        self.state = RepairState.VALIDATING
        current, validation, fixed = self._validate(current, framework)
        fresh = True

        while not validation.success:
            if fresh:
                self._learn(validation.errors, framework)
                fresh = False
            constraints = self.memory.get(framework)

            if attempts >= self.max_retries:
                history.append(RepairAttempt(attempts, list(validation.errors), fixed))
                self.state = RepairState.EXHAUSTED
                console.print(
                    f"[red]Repair loop exhausted after {self.max_retries} regeneration(s). "
                    f"{len(validation.errors)} error(s) remain.[/red]"
                )
                return RepairOutcome(
                    state=self.state,
                    files=current,
                    validation=validation,
                    attempts=attempts,
                    constraints=constraints,
                    history=history,
                )

            attempts += 1
            self.state = RepairState.REPAIRING
            console.print(
                Panel(
                    f"[bold]Repair attempt {attempts}/{self.max_retries}[/bold] "
                    f"({len(constraints)} constraint(s) in memory)",
                    style="yellow",
                )
            )
            self._print_errors(validation.errors, attempts)

            result = await self.generator.generate(
                spec,
                framework,
                max_tokens,
                constraints,
                plan=plan,
                previous_errors=validation.errors,
            )
            record = RepairAttempt(
                attempts, list(validation.errors), fixed, regenerated=result.success, output=result.output
            )
            history.append(record)

            if not result.success:
                print_warning(f"  Regeneration failed; keeping previous files. {escape(result.output)}")
                continue

            self.state = RepairState.GENERATED
            current = result.files
            self.state = RepairState.VALIDATING
            current, validation, fixed = self._validate(current, framework)
            fresh = True

        history.append(RepairAttempt(attempts, [], fixed))
        self.state = RepairState.SUCCESS
        if attempts:
            print_success(f"Validation passed after {attempts} regeneration(s).")
        else:
            print_success("Validation passed.")
        return RepairOutcome(
            state=self.state,
            files=current,
            validation=validation,
            attempts=attempts,
            constraints=self.memory.get(framework),
            history=history,
        )

    # -- internals -----------------------------------------------------------

    def _validate(self, files: FileMap, framework: Framework) -> tuple[FileMap, ValidationResult, list[str]]:
        """Validate, then apply auto-fixes and revalidate if anything failed."""
        validation = self.validator.validate(files, framework)
        if validation.success:
            return files, validation, []

        fixed_files, notes = apply_autofixes(files, framework=framework)
        if not notes:
            return files, validation, []
        for note in notes:
            console.print(f"  [cyan]Auto-fixed {note}[/cyan]")
        return fixed_files, self.validator.validate(fixed_files, framework), notes

    def _learn(self, errors: list[str], framework: Framework) -> None:
        for error in errors:
            self.memory.learn(error, framework)

    @staticmethod
    def _print_errors(errors: list[str], attempt: int) -> None:
        table = Table(title=f"Validation errors (attempt {attempt})", show_lines=True)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Error", max_width=100)
        for i, error in enumerate(errors[:10], 1):
            table.add_row(str(i), escape(error.replace("\n", " ")[:200]))
        if len(errors) > 10:
            table.add_row("...", f"{len(errors) - 10} more")
        console.print(table)

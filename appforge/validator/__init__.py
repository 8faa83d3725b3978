"""AppForge validation module.

Static, per-framework checks over a generated file set. Rules are data in a
registry (see :mod:`appforge.validator.rules`); the :class:`Validator` only
dispatches.
"""

from .rules import (
    RULES,
    Finding,
    PatternRule,
    PredicateRule,
    ProjectRule,
    Rule,
    SourceFile,
)
from .validator import Validator, validate

__all__ = [
    "Validator",
    "validate",
    "RULES",
    "Rule",
    "PatternRule",
    "PredicateRule",
    "ProjectRule",
    "Finding",
    "SourceFile",
]

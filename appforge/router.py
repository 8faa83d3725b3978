"""Keyword-based framework routing.

Maps a prompt to a target :class:`~appforge.models.Framework`. Routing is
deliberately deterministic: each framework owns a set of keyword rules, a rule
matches when all of its terms appear as whole words (a plural ending is
allowed) in the lower-cased prompt, and every matched rule adds one point.
No NLP, no model call.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional, Union

from .models import Framework
from .utils import print_warning

# Each rule is a tuple of terms that must all be present.
KEYWORD_RULES: dict[Framework, list[tuple[str, ...]]] = {
    Framework.TAURI: [
        ("tauri",),
        ("rust gui",),
        ("native web desktop", "rust"),
        ("rust", "desktop app"),
    ],
    Framework.PYTHON_WEB: [
        ("dashboard",),
        ("web app", "login"),
        ("web app", "database"),
        ("web app", "rest api"),
        ("flask",),
    ],
    Framework.PYTHON_TK: [
        ("tkinter",),
        ("python", "gui"),
        ("python", "timer"),
        ("python", "sprite"),
    ],
    Framework.POWERSHELL_MODULE: [
        ("module",),
        ("cmdlet",),
        ("profile module",),
        ("automation module",),
    ],
}

# Tie-break order, highest priority first.
PRIORITY: list[Framework] = [
    Framework.TAURI,
    Framework.PYTHON_WEB,
    Framework.PYTHON_TK,
    Framework.POWERSHELL_MODULE,
    Framework.POWERSHELL,
]

DEFAULT_FRAMEWORK = Framework.POWERSHELL


@lru_cache(maxsize=None)
def term_pattern(term: str) -> re.Pattern[str]:
    """Whole-word pattern for a keyword term; a plural ending is allowed."""
    words = [re.escape(word) for word in term.split()]
    return re.compile(r"\b" + r"\s+".join(words) + r"(?:e?s)?\b")


def has_term(text: str, term: str) -> bool:
    return term_pattern(term).search(text) is not None


class FrameworkRouter:
    """Routes prompts to frameworks using an ordered keyword table."""

    def __init__(
        self,
        rules: Optional[dict[Framework, list[tuple[str, ...]]]] = None,
        default: Framework = DEFAULT_FRAMEWORK,
    ) -> None:
        self.rules = rules if rules is not None else KEYWORD_RULES
        self.default = default

    def explain(self, prompt: str) -> dict[Framework, list[str]]:
        """Return the matched rules per framework (frameworks with no match omitted)."""
        text = (prompt or "").lower()
        matches: dict[Framework, list[str]] = {}
        for framework, rules in self.rules.items():
            hit = [" + ".join(terms) for terms in rules if all(has_term(text, t) for t in terms)]
            if hit:
                matches[framework] = hit
        return matches

    def scores(self, prompt: str) -> dict[Framework, int]:
        return {fw: len(hits) for fw, hits in self.explain(prompt).items()}

    def route(
        self,
        prompt: str,
        override: Optional[Union[Framework, str]] = None,
    ) -> Framework:
        """Pick the framework for *prompt*.

        A recognized *override* always wins. An unrecognized one is reported
        and ignored. Without any keyword match the default framework is used.
        """
        if override is not None and override != "":
            explicit = Framework.parse(override)
            if explicit is not None:
                return explicit
            print_warning(f"Unknown framework '{override}' -- inferring from the prompt instead.")

        scores = self.scores(prompt)
        if not scores:
            return self.default

        best = max(scores.values())
        for framework in PRIORITY:
            if scores.get(framework) == best:
                return framework
        return self.default


def route(prompt: str, override: Optional[Union[Framework, str]] = None) -> Framework:
    """Route with the built-in keyword table."""
    return FrameworkRouter().route(prompt, override)

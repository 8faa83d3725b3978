"""Optional planning pre-pass for long specifications.

Short specs go straight to generation. Longer ones get one extra completion
call that breaks the spec into components; the returned text is passed to the
generator as advisory context and is not parsed.
"""

from __future__ import annotations

from typing import Optional

from ..llm_client import CompletionClient
from ..models import Framework, PlanResult
from ..utils import console, word_count
from .prompts import PromptRenderer

DEFAULT_WORD_THRESHOLD = 150
PLAN_MAX_TOKENS = 2048


class PlanningAgent:
    """Decomposes long specs into a component plan."""

    def __init__(
        self,
        client: CompletionClient,
        model: str,
        *,
        word_threshold: int = DEFAULT_WORD_THRESHOLD,
        renderer: Optional[PromptRenderer] = None,
    ) -> None:
        self.client = client
        self.model = model
        self.word_threshold = word_threshold
        self.renderer = renderer or PromptRenderer()

    def should_plan(self, spec: str) -> bool:
        return word_count(spec) > self.word_threshold

    async def plan(self, spec: str, framework: Framework) -> PlanResult:
        """Return a component plan, or ``skipped=True`` for short specs."""
        if not self.should_plan(spec):
            return PlanResult(skipped=True, plan=None)

        console.print(
            f"  Spec has {word_count(spec)} words -- requesting a component plan..."
        )
        response = await self.client.complete(
            [{"role": "user", "content": self.renderer.plan_prompt(spec, framework)}],
            model=self.model,
            max_tokens=PLAN_MAX_TOKENS,
        )
        if not response.success:
            return PlanResult(skipped=False, plan=None, error=response.error)
        return PlanResult(skipped=False, plan=response.content.strip() or None)

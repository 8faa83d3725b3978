"""LLM-backed multi-file code generation.

One :meth:`CodeGenerator.generate` call renders the framework's prompts,
issues a single completion request and turns the fenced blocks of the reply
into a file map. A reply cut off by the provider's output ceiling is never
accepted: it is reported as truncated and the raw text is written to the logs
directory for inspection.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..llm_client import CompletionClient, CompletionResponse
from ..models import Framework, GenerationResult
from ..utils import console, ensure_dir, print_warning
from .extractor import CodeBlockExtractor
from .prompts import PromptRenderer, default_file_name


class CodeGenerator:
    """Drives the completion provider for a build.

    Parameters
    ----------
    client:
        Completion provider client.
    model:
        Model identifier passed on every call.
    logs_dir:
        Where raw responses of truncated generations are written.
    """

    def __init__(
        self,
        client: CompletionClient,
        model: str,
        logs_dir: str | Path,
        *,
        renderer: Optional[PromptRenderer] = None,
        extractor: Optional[CodeBlockExtractor] = None,
    ) -> None:
        self.client = client
        self.model = model
        self.logs_dir = Path(logs_dir)
        self.renderer = renderer or PromptRenderer()
        self.extractor = extractor or CodeBlockExtractor()

    async def generate(
        self,
        spec: str,
        framework: Framework,
        max_tokens: int,
        constraints: Optional[list[str]] = None,
        *,
        plan: Optional[str] = None,
        previous_errors: Optional[list[str]] = None,
    ) -> GenerationResult:
        """Generate the project files for *spec*.

        Returns:
            ``success=True`` with a non-empty file map, or ``success=False``
            with the reason in ``output`` (provider error, truncation, or no
            code blocks in the reply).
        """
        system_prompt = self.renderer.system_prompt(framework, constraints)
        user_prompt = self.renderer.user_prompt(spec, plan=plan, previous_errors=previous_errors)

        console.print(
            f"  Generating {framework.value} project with [bold]{self.model}[/bold] "
            f"(max {max_tokens} tokens, {len(constraints or [])} constraint(s))..."
        )
        response = await self.client.complete(
            [{"role": "user", "content": user_prompt}],
            model=self.model,
            max_tokens=max_tokens,
            system_prompt=system_prompt,
        )

        if not response.success:
            return GenerationResult(
                success=False,
                stop_reason=response.stop_reason,
                output=response.error or "Completion request failed.",
            )

        if response.truncated:
            log_path = self._write_log(framework, response)
            print_warning(f"  Generation truncated ({response.stop_reason}); raw output saved to {log_path}")
            return GenerationResult(
                success=False,
                stop_reason=response.stop_reason,
                output=(
                    f"Generation truncated: the provider stopped with '{response.stop_reason}' "
                    f"at the {max_tokens}-token ceiling. Raw response saved to {log_path}."
                ),
                log_path=str(log_path),
                usage=response.usage,
            )

        files = self.extractor.extract_files(response.content, default_file_name(framework))
        if not files:
            return GenerationResult(
                success=False,
                stop_reason=response.stop_reason,
                output="The model response contained no code blocks.",
                usage=response.usage,
            )

        return GenerationResult(
            success=True,
            files=files,
            stop_reason=response.stop_reason,
            output=f"Generated {len(files)} file(s): {', '.join(files)}",
            usage=response.usage,
        )

    def _write_log(self, framework: Framework, response: CompletionResponse) -> Path:
        ensure_dir(self.logs_dir)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = self.logs_dir / f"truncated-{framework.value}-{stamp}.log"
        header = (
            f"# model: {response.model}\n"
            f"# stop_reason: {response.stop_reason}\n"
            f"# usage: {response.usage}\n\n"
        )
        path.write_text(header + response.content, encoding="utf-8")
        return path

"""Build orchestration.

Sequences one prompt-to-project build::

    route -> budget -> plan -> generate -> repair -> brand -> write
          -> merge (PowerShell scripts) -> package -> record

Every step reports failure as a structured result, so once the request has
been accepted the orchestrator always ends with a persisted build record.
"""

from __future__ import annotations

import shutil
import time
from pathlib import Path
from typing import Callable, Optional

from rich.markup import escape
from rich.panel import Panel

from ..config import Config, api_key_from_env
from ..generator.code_generator import CodeGenerator
from ..generator.planner import PlanningAgent
from ..generator.prompts import PromptRenderer
from ..llm_client import CompletionClient, create_client
from ..memory.constraints import ConstraintMemory
from ..memory.database import Database
from ..memory.records import BuildRecordStore
from ..models import BuildOutcome, BuildRecord, BuildRequest, BuildStatus, FileMap, Framework
from ..postprocess.branding import BrandingInjector
from ..postprocess.merger import SourceMerger, needs_merge
from ..router import FrameworkRouter
from ..token_budget import TokenBudgetResolver
from ..utils import (
    app_name_from_prompt,
    console,
    format_duration,
    print_error,
    print_step_header,
    print_summary_table,
    print_warning,
    sanitize_name,
)
from ..validator.validator import Validator
from .packager import Packager, default_packagers
from .repair_loop import RepairLoop

FileWrittenHook = Callable[[Path], None]

# Windows PowerShell 5.1 reads BOM-less scripts as ANSI.
_BOM_EXTENSIONS = (".ps1", ".psm1", ".psd1")


class BuildOrchestrator:
    """Runs builds against shared stores.

    Parameters
    ----------
    config:
        Global configuration (paths, provider defaults, build knobs).
    client:
        Completion client to use for every build. When omitted one is created
        per build from the request's (or the config's) provider.
    database:
        Shared SQLite database; the constraint memory and build history are
        created on it unless passed explicitly.
    packagers:
        ``{framework: packager}``; defaults to :func:`default_packagers`.
    on_file_written:
        Called with the path of every file a build writes.
    """

    def __init__(
        self,
        config: Config,
        *,
        client: Optional[CompletionClient] = None,
        database: Optional[Database] = None,
        memory: Optional[ConstraintMemory] = None,
        records: Optional[BuildRecordStore] = None,
        router: Optional[FrameworkRouter] = None,
        resolver: Optional[TokenBudgetResolver] = None,
        validator: Optional[Validator] = None,
        branding: Optional[BrandingInjector] = None,
        merger: Optional[SourceMerger] = None,
        packagers: Optional[dict[Framework, Packager]] = None,
        renderer: Optional[PromptRenderer] = None,
        on_file_written: Optional[FileWrittenHook] = None,
    ) -> None:
        self.config = config
        self.client = client
        self.database = database or Database.from_config(config)
        self.memory = memory or ConstraintMemory(self.database)
        self.records = records or BuildRecordStore(self.database)
        self.router = router or FrameworkRouter()
        self.resolver = resolver or TokenBudgetResolver()
        self.validator = validator or Validator()
        self.branding = branding or BrandingInjector()
        self.merger = merger or SourceMerger()
        self.packagers = packagers if packagers is not None else default_packagers()
        self.renderer = renderer or PromptRenderer()
        self.on_file_written = on_file_written

    # -- Public API ----------------------------------------------------------

    async def build(self, request: BuildRequest) -> BuildOutcome:
        """Run one build. Never raises for pipeline failures."""
        if not request.is_valid():
            print_error("Build rejected: the prompt is empty.")
            return BuildOutcome(success=False, output="Invalid request: the prompt must not be empty.")

        started = time.monotonic()
        spec = request.prompt.strip()
        provider = (request.provider or self.config.provider.name).strip().lower()
        model = request.model or self.config.provider.model
        app_name = sanitize_name(request.name or "") or app_name_from_prompt(spec)
        branded = self.config.build.branding and not request.no_branding

        context = {
            "request": request,
            "app_name": app_name,
            "provider": provider,
            "model": model,
            "branded": branded,
            "started": started,
        }

        print_step_header("route")
        framework = self.router.route(spec, request.framework_override)
        max_tokens = self.resolver.resolve(model, request.max_tokens or self.config.build.max_tokens)
        console.print(
            f"  App [bold]{app_name}[/bold] -> [cyan]{framework.value}[/cyan] "
            f"({provider}/{model}, {max_tokens} max tokens)"
        )
        context["framework"] = framework

        try:
            client = self._client_for(provider)
        except ValueError as exc:
            return self._finish(context, success=False, output=str(exc))

        try:
            self.config.ensure_directories()
        except OSError as exc:
            print_error(f"  Cannot create data directories: {escape(str(exc))}")
            return self._finish(context, success=False, output=f"Cannot create data directories: {exc}")
        generator = CodeGenerator(client, model, self.config.logs_dir, renderer=self.renderer)

        print_step_header("plan")
        planner = PlanningAgent(
            client, model, word_threshold=self.config.build.planning_word_threshold, renderer=self.renderer
        )
        plan = await planner.plan(spec, framework)
        if plan.skipped:
            console.print("  Short spec; planning skipped.")
        elif plan.error:
            print_warning(f"  Planning failed, continuing without a plan: {escape(plan.error)}")

        print_step_header("generate")
        generation = await generator.generate(
            spec, framework, max_tokens, self.memory.get(framework), plan=plan.plan
        )
        if not generation.success:
            print_error(f"  {escape(generation.output)}")
            return self._finish(context, success=False, output=generation.output)

        print_step_header("repair")
        max_retries = request.max_retries if request.max_retries is not None else self.config.build.max_retries
        loop = RepairLoop(generator, self.validator, self.memory, max_retries=max_retries)
        repaired = await loop.run(spec, framework, generation.files, max_tokens, plan=plan.plan)
        if not repaired.success:
            try:
                source_dir = self._write_files(app_name, repaired.files)
            except OSError as exc:
                return self._write_failed(context, exc)
            errors = "\n".join(f"  - {e}" for e in repaired.validation.errors[:10])
            return self._finish(
                context,
                success=False,
                output=f"Validation failed after {repaired.attempts} repair attempt(s):\n{errors}",
                source_dir=source_dir,
            )

        print_step_header("brand")
        files = self.branding.inject(repaired.files, framework, no_branding=not branded)
        try:
            source_dir = self._write_files(app_name, files)
        except OSError as exc:
            return self._write_failed(context, exc)
        console.print(f"  Wrote {len(files)} file(s) to {source_dir}")

        entry: Optional[str] = None
        if needs_merge(framework):
            print_step_header("merge")
            merge = self.merger.merge(source_dir)
            if not merge.success:
                return self._finish(context, success=False, output=merge.error or "Merge failed", source_dir=source_dir)
            entry = merge.merged_path
            if merge.merged:
                console.print(f"  Merged {len(merge.included)} file(s) into {Path(entry).name}")
                self._notify(Path(entry))

        exe_path: Optional[str] = None
        if self.config.build.package:
            packager = self.packagers.get(framework)
            if packager is None:
                print_warning(f"  No packager registered for {framework.value}; skipping packaging.")
            else:
                print_step_header("package")
                result = await packager.package(source_dir, entry, app_name)
                if not result.success:
                    return self._finish(
                        context, success=False, output=f"Packaging failed: {result.output}", source_dir=source_dir
                    )
                exe_path = result.exe_path

        return self._finish(
            context,
            success=True,
            output=f"Built {app_name} ({framework.value}) with {len(files)} file(s).",
            source_dir=source_dir,
            exe_path=exe_path,
        )

    # -- Internal ------------------------------------------------------------

    def _client_for(self, provider: str) -> CompletionClient:
        if self.client is not None:
            return self.client
        settings = self.config.provider
        if provider == settings.name:
            return create_client(provider, settings.api_key, settings.base_url, settings.timeout)
        return create_client(provider, api_key_from_env(provider), timeout=settings.timeout)

    def build_dir(self, app_name: str) -> Path:
        return self.config.builds_dir / app_name

    def _write_files(self, app_name: str, files: FileMap) -> Path:
        """Recreate the build directory and write *files* into it."""
        root = self.build_dir(app_name)
        if root.exists():
            shutil.rmtree(root)
        root.mkdir(parents=True)
        resolved_root = root.resolve()

        for rel_path, generated in files.items():
            target = (root / rel_path).resolve()
            if resolved_root not in target.parents:
                print_warning(f"  Skipping file outside the build directory: {rel_path}")
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            encoding = "utf-8-sig" if target.suffix.lower() in _BOM_EXTENSIONS else "utf-8"
            target.write_text(generated.content, encoding=encoding)
            self._notify(target)
        return root

    def _write_failed(self, context: dict, exc: OSError) -> BuildOutcome:
        print_error(f"  Writing sources failed: {escape(str(exc))}")
        return self._finish(context, success=False, output=f"Writing sources failed: {exc}")

    def _notify(self, path: Path) -> None:
        if self.on_file_written is not None:
            self.on_file_written(path)

    def _finish(
        self,
        context: dict,
        *,
        success: bool,
        output: str,
        source_dir: Optional[Path] = None,
        exe_path: Optional[str] = None,
    ) -> BuildOutcome:
        """Persist the terminal record and print the summary."""
        request: BuildRequest = context["request"]
        framework: Framework = context["framework"]
        elapsed = time.monotonic() - context["started"]

        record = self.records.add(
            BuildRecord(
                name=context["app_name"],
                framework=framework.value,
                prompt=request.prompt.strip(),
                status=BuildStatus.COMPLETED if success else BuildStatus.FAILED,
                exe_path=exe_path,
                source_dir=str(source_dir) if source_dir else None,
                provider=context["provider"],
                model=context["model"],
                branded=context["branded"],
                build_time=round(elapsed, 3),
            )
        )

        self._print_final_summary(record, output)
        return BuildOutcome(
            success=success,
            output=output,
            exe_path=exe_path,
            framework=framework,
            app_name=context["app_name"],
            source_dir=record.source_dir,
            record=record,
        )

    @staticmethod
    def _print_final_summary(record: BuildRecord, output: str) -> None:
        print_summary_table(
            {
                "App": record.name,
                "Framework": record.framework,
                "Model": f"{record.provider}/{record.model}",
                "Branded": "yes" if record.branded else "no",
                "Source": record.source_dir or "-",
                "Executable": record.exe_path or "-",
                "Duration": format_duration(record.build_time),
            },
            title="Build Summary",
        )
        if record.status is BuildStatus.COMPLETED:
            console.print(Panel(escape(output), title="[bold]BUILD COMPLETED[/bold]", border_style="bold green"))
        else:
            console.print(Panel(escape(output), title="[bold]BUILD FAILED[/bold]", border_style="bold red"))

"""Coordinates detection, generation, review state and migration of module designs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .analysis.cross_reference import CrossReferenceAnalyzer
from .config import ModSpecConfig, load_config
from .detection.detector import ModuleDetector
from .errors import DocumentNotFoundError, ErrorHandler, ValidationError
from .executor import ExecutionReport, ParallelExecutor, Task, TaskResult, TaskStatus
from .llm.content import LLMContentGenerator, RetryPolicy
from .llm.runner import LLMRunner
from .logging import get_logger
from .migration.legacy import LegacyMigrator
from .models import (
    CrossReferenceReport,
    FailedModule,
    GenerateOptions,
    GenerationResult,
    MigrationResult,
    ModuleInfo,
    ModuleKey,
    WorkflowState,
)
from .modules import REQUIREMENTS_FILE, ModuleRegistry
from .prompting.builder import PromptBuilder
from .prompting.generator import ContentGenerator, ModuleGenerator
from .stores.documents import DocumentStore, LocalDocumentStore, feature_path, read_text, write_text
from .stores.metadata import ModuleMetadataStore
from .stores.module_cache import CacheStats, ModuleCache


@dataclass
class _GeneratedModule:
    module_type: ModuleKey
    content: str


class ModuleOrchestrator:
    """Entry point for every module operation on a feature.

    Collaborators default to implementations built from ``config`` and can
    be injected individually for tests or alternative storage.
    """

    def __init__(
        self,
        config: ModSpecConfig,
        content_generator: ContentGenerator,
        *,
        store: DocumentStore | None = None,
        registry: ModuleRegistry | None = None,
        detector: ModuleDetector | None = None,
        executor: ParallelExecutor | None = None,
        cache: ModuleCache | None = None,
        metadata: ModuleMetadataStore | None = None,
        migrator: LegacyMigrator | None = None,
        analyzer: CrossReferenceAnalyzer | None = None,
        prompt_builder: PromptBuilder | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        settings = config.modular_design
        self.config = config
        self.settings = settings
        self.base_path = config.specs_path
        self.store = store or LocalDocumentStore(config.root)
        self.registry = registry or ModuleRegistry(
            settings.custom_modules, file_naming_pattern=settings.file_naming_pattern
        )
        self.detector = detector or ModuleDetector(settings.custom_modules)
        self.executor = executor or ParallelExecutor(settings.max_concurrency)
        self.cache = cache or ModuleCache(
            self.store, self.registry, base_path=self.base_path, ttl_ms=settings.cache_ttl_ms
        )
        self.metadata = metadata or ModuleMetadataStore(
            self.store, self.registry, base_path=self.base_path
        )
        self.migrator = migrator or LegacyMigrator(self.store, self.registry, base_path=self.base_path)
        self.analyzer = analyzer or CrossReferenceAnalyzer(self.registry.file_name)
        self.generator = ModuleGenerator(
            content_generator, prompt_builder or PromptBuilder(self.registry)
        )
        self.error_handler = error_handler or ErrorHandler()
        self.logger = get_logger("orchestrator")

    @classmethod
    def from_workspace(
        cls,
        root: Path,
        content_generator: ContentGenerator | None = None,
        **kwargs: object,
    ) -> "ModuleOrchestrator":
        """Build an orchestrator from ``.modspec.yml``; defaults to the local LLM runner."""
        config = load_config(root)
        if content_generator is None:
            llm = config.llm
            content_generator = LLMContentGenerator(
                LLMRunner.from_config(llm),
                retry=RetryPolicy(max_retries=llm.max_retries if llm else 0),
            )
        return cls(config, content_generator, **kwargs)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Generation

    async def generate_modules(
        self, feature: str, options: GenerateOptions | None = None
    ) -> GenerationResult:
        """Generate every applicable module that does not exist yet.

        Reading the requirements is fatal on failure. Individual module
        failures are collected in ``failed_modules``.
        """
        options = options or GenerateOptions()
        try:
            requirements = await self._read_requirements(feature)
            targets = self._resolve_targets(requirements, options.module_types)
            skipped: List[ModuleKey] = []
            if not options.force_regenerate:
                existing = {info.type for info in await self.get_module_list(feature) if info.exists}
                skipped = [module_type for module_type in targets if module_type in existing]
                targets = [module_type for module_type in targets if module_type not in existing]
        except Exception as exc:
            self.error_handler.handle(exc, operation="generate_modules", feature=feature)
            raise

        self.logger.info(
            "Generating %d module(s) for %s: %s",
            len(targets),
            feature,
            ", ".join(str(item) for item in targets) or "none",
        )
        related: Dict[ModuleKey, str] = {}
        if options.include_related_modules:
            related = await self._read_existing_modules(feature)

        parallel = self.settings.parallel_generation if options.parallel is None else options.parallel
        if parallel:
            report = await self._run_parallel(feature, targets, requirements, related)
        else:
            report = await self._run_sequential(feature, targets, requirements, related)

        result = GenerationResult(success=True, skipped_modules=skipped)
        failures = []
        for module_type in targets:
            task_result = report[str(module_type)]
            if task_result.status is TaskStatus.SUCCESS:
                result.generated_modules.append(module_type)
            else:
                error = task_result.error or RuntimeError("skipped")
                failures.append((str(module_type), error))
                result.failed_modules.append(FailedModule(type=module_type, error=str(error)))
        result.success = not result.failed_modules
        if failures:
            self.error_handler.handle_batch(failures, operation="generate_modules", feature=feature)

        await self.cache.refresh(feature)
        self.logger.info(
            "Generated %d, failed %d, skipped %d module(s) for %s",
            len(result.generated_modules),
            len(result.failed_modules),
            len(result.skipped_modules),
            feature,
        )
        return result

    async def generate_specific_module(
        self, feature: str, module_type: ModuleKey, *, include_related_modules: bool = False
    ) -> str:
        """Generate (or overwrite) a single module and return its content."""
        key = self.registry.resolve(module_type)
        try:
            requirements = await self._read_requirements(feature)
            related: Dict[ModuleKey, str] = {}
            if include_related_modules:
                related = await self._read_existing_modules(feature, exclude=key)
            generated = await self._generate_and_store(feature, key, requirements, related)
        except Exception as exc:
            self.error_handler.handle(
                exc, operation="generate_specific_module", feature=feature, module_type=str(key)
            )
            raise
        finally:
            self.cache.invalidate(feature)
        return generated.content

    async def regenerate_module(self, feature: str, module_type: ModuleKey) -> str:
        """Regenerate a reviewed module; its state returns to pending-review."""
        return await self.generate_specific_module(feature, module_type)

    # ------------------------------------------------------------------
    # Listing and CRUD

    async def get_module_list(self, feature: str) -> List[ModuleInfo]:
        cached = self.cache.get(feature) if self.settings.cache_enabled else None
        if cached is None:
            cached = await self.cache.refresh(feature)
        metadata = await self.metadata.load(feature)
        modules: List[ModuleInfo] = []
        for info in cached.modules:
            entry = metadata.modules.get(str(info.type))
            modules.append(
                ModuleInfo(
                    type=info.type,
                    file_name=info.file_name,
                    exists=info.exists,
                    workflow_state=entry.workflow_state if entry else WorkflowState.NOT_GENERATED,
                    last_modified=info.last_modified,
                    file_size=info.file_size,
                    checksum=entry.checksum if entry else None,
                )
            )
        return modules

    async def get_module_content(self, feature: str, module_type: ModuleKey) -> str:
        key = self.registry.resolve(module_type)
        return await read_text(self.store, self._module_path(feature, key))

    async def update_module(self, feature: str, module_type: ModuleKey, content: str) -> str:
        """Write new module content and return the stored checksum."""
        key = self.registry.resolve(module_type)
        await self.store.create_directory(feature_path(self.base_path, feature))
        await write_text(self.store, self._module_path(feature, key), content)
        checksum = await self.metadata.update_checksum(feature, key, content)
        self.cache.invalidate(feature)
        self.logger.info("Updated %s for %s", key, feature)
        return checksum

    async def delete_module(self, feature: str, module_type: ModuleKey) -> None:
        key = self.registry.resolve(module_type)
        try:
            await self.store.delete(self._module_path(feature, key))
        except DocumentNotFoundError:
            self.logger.debug("Module %s for %s was already absent", key, feature)
        await self.metadata.delete_module_metadata(feature, key)
        self.cache.invalidate(feature)
        self.logger.info("Deleted %s for %s", key, feature)

    # ------------------------------------------------------------------
    # Legacy migration

    async def is_legacy_design(self, feature: str) -> bool:
        return await self.migrator.detect_legacy(feature)

    async def migrate_legacy_design(self, feature: str) -> MigrationResult:
        try:
            legacy = await self.migrator.read_legacy(feature)
        except Exception as exc:
            self.error_handler.handle(exc, operation="migrate_legacy_design", feature=feature)
            raise
        analysis = self.migrator.analyze(legacy)
        if not analysis.sections:
            exc = ValidationError(f"Legacy design for {feature} has no level 2 or 3 headings")
            self.error_handler.handle(exc, operation="migrate_legacy_design", feature=feature)
            raise exc

        try:
            result = await self.migrator.migrate_to_modules(feature, analysis)
            for module_type in result.migrated_modules:
                content = await read_text(self.store, self._module_path(feature, module_type))
                await self.metadata.mark_generated(feature, module_type, content)
            if result.success:
                await self.migrator.backup_legacy(feature)
            else:
                self.logger.warning(
                    "Migration for %s was partial; legacy design kept: %s",
                    feature,
                    "; ".join(result.errors),
                )
        except Exception as exc:
            self.error_handler.handle(exc, operation="migrate_legacy_design", feature=feature)
            raise
        finally:
            self.cache.invalidate(feature)
        return result

    # ------------------------------------------------------------------
    # Workflow

    async def get_module_workflow_state(self, feature: str, module_type: ModuleKey) -> WorkflowState:
        return await self.metadata.get_module_state(feature, self.registry.resolve(module_type))

    async def update_module_workflow_state(
        self,
        feature: str,
        module_type: ModuleKey,
        state: WorkflowState,
        *,
        approved_by: str | None = None,
    ) -> WorkflowState:
        key = self.registry.resolve(module_type)
        entry = await self.metadata.update_module_state(feature, key, state, approved_by=approved_by)
        self.cache.invalidate(feature)
        return entry.workflow_state

    async def approve_module(
        self, feature: str, module_type: ModuleKey, *, approved_by: str | None = None
    ) -> WorkflowState:
        return await self.update_module_workflow_state(
            feature, module_type, WorkflowState.APPROVED, approved_by=approved_by
        )

    async def reject_module(self, feature: str, module_type: ModuleKey) -> WorkflowState:
        return await self.update_module_workflow_state(feature, module_type, WorkflowState.REJECTED)

    async def can_progress_to_tasks(self, feature: str) -> bool:
        return await self.metadata.can_progress_to_tasks(feature)

    async def is_module_modified(self, feature: str, module_type: ModuleKey) -> bool:
        return await self.metadata.is_module_modified(feature, self.registry.resolve(module_type))

    # ------------------------------------------------------------------
    # Cross references

    async def analyze_references(self, feature: str) -> CrossReferenceReport:
        texts = await self._read_existing_modules(feature)
        report = CrossReferenceReport(
            references=self.analyzer.analyze_references(texts),
            cross_links={
                module_type: self.analyzer.generate_cross_links(module_type, texts)
                for module_type in texts
            },
        )
        if self.settings.validate_cross_references:
            report.inconsistencies = self.analyzer.detect_inconsistencies(texts)
        if self.settings.warn_on_inconsistencies:
            for item in report.inconsistencies:
                self.logger.warning(
                    "[%s] %s -> %s: %s", item.severity, item.module1, item.module2, item.description
                )
        return report

    # ------------------------------------------------------------------
    # Cache

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_cache(self, feature: str | None = None) -> None:
        self.cache.clear(feature)

    # ------------------------------------------------------------------
    # Internal helpers

    async def _read_requirements(self, feature: str) -> str:
        return await read_text(self.store, feature_path(self.base_path, feature, REQUIREMENTS_FILE))

    def _resolve_targets(
        self, requirements: str, requested: Optional[Sequence[ModuleKey]]
    ) -> List[ModuleKey]:
        if requested:
            candidates = [self.registry.resolve(item) for item in requested]
        elif self.settings.auto_detect_modules:
            candidates = self.detector.detect_ordered(requirements)
        else:
            candidates = [self.registry.resolve(item) for item in self.settings.default_modules]
        targets: List[ModuleKey] = []
        for candidate in candidates:
            if candidate not in targets:
                targets.append(candidate)
        return targets

    async def _generate_and_store(
        self,
        feature: str,
        module_type: ModuleKey,
        requirements: str,
        related: Dict[ModuleKey, str],
    ) -> _GeneratedModule:
        siblings = {key: value for key, value in related.items() if key != module_type}
        content = await self.generator.generate(feature, module_type, requirements, siblings or None)
        await self.store.create_directory(feature_path(self.base_path, feature))
        await write_text(self.store, self._module_path(feature, module_type), content)
        await self.metadata.mark_generated(feature, module_type, content)
        self.logger.debug("Stored %s for %s", module_type, feature)
        return _GeneratedModule(module_type=module_type, content=content)

    def _task(
        self,
        feature: str,
        module_type: ModuleKey,
        requirements: str,
        related: Dict[ModuleKey, str],
    ) -> Task:
        async def _execute() -> _GeneratedModule:
            return await self._generate_and_store(feature, module_type, requirements, related)

        return Task(
            id=str(module_type),
            execute=_execute,
            metadata={"feature": feature, "module_type": str(module_type)},
        )

    async def _run_parallel(
        self,
        feature: str,
        targets: Sequence[ModuleKey],
        requirements: str,
        related: Dict[ModuleKey, str],
    ) -> Dict[str, TaskResult]:
        tasks = [self._task(feature, module_type, requirements, related) for module_type in targets]
        report: ExecutionReport = await self.executor.execute(
            tasks,
            on_task_start=lambda task: self.logger.debug("Started generate-%s", task.id),
            on_progress=lambda done, total: self.logger.debug(
                "Generation progress for %s: %d/%d", feature, done, total
            ),
        )
        return report.results

    async def _run_sequential(
        self,
        feature: str,
        targets: Sequence[ModuleKey],
        requirements: str,
        related: Dict[ModuleKey, str],
    ) -> Dict[str, TaskResult]:
        results: Dict[str, TaskResult] = {}
        for module_type in targets:
            task = self._task(feature, module_type, requirements, related)
            # A one-task execution keeps result bookkeeping identical to the parallel path.
            report = await self.executor.execute([task], max_concurrency=1)
            results.update(report.results)
        return results

    async def _read_existing_modules(
        self, feature: str, *, exclude: ModuleKey | None = None
    ) -> Dict[ModuleKey, str]:
        texts: Dict[ModuleKey, str] = {}
        for module_type in self.registry.module_types():
            if exclude is not None and module_type == exclude:
                continue
            try:
                texts[module_type] = await read_text(self.store, self._module_path(feature, module_type))
            except DocumentNotFoundError:
                continue
        return texts

    def _module_path(self, feature: str, module_type: ModuleKey) -> str:
        return feature_path(self.base_path, feature, self.registry.file_name(module_type))


__all__ = ["ModuleOrchestrator"]

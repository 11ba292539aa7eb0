"""Tests for modspec.orchestrator."""

from __future__ import annotations

import json
import logging
from typing import Callable

import pytest

from modspec.errors import (
    DocumentNotFoundError,
    FileSystemError,
    ValidationError,
    WorkflowTransitionError,
)
from modspec.models import CustomModuleDefinition, GenerateOptions, ModuleType, WorkflowState
from modspec.orchestrator import ModuleOrchestrator
from tests._fixtures.workspace import MemoryDocumentStore, RecordingGenerator

FEATURE = "checkout"
REQUIREMENTS = """\
# Checkout

Implement REST API endpoints with PostgreSQL storage.
"""

LEGACY = """\
# Checkout Design

## Frontend Components

Cart page with a <CartComponent />.

## API Endpoints

### POST /api/cart

## Database Schema

Cart table keyed by user.
"""

MakeOrchestrator = Callable[..., ModuleOrchestrator]


@pytest.fixture
def requirements(store: MemoryDocumentStore) -> None:
    store.put(FEATURE, "requirements.md", REQUIREMENTS)


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_generate_modules_writes_detected_modules(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    orchestrator = make_orchestrator()

    result = await orchestrator.generate_modules(FEATURE)

    assert result.success
    assert {
        ModuleType.SERVER_API,
        ModuleType.SERVER_LOGIC,
        ModuleType.SERVER_DATABASE,
        ModuleType.TESTING,
    } <= set(result.generated_modules)
    assert ModuleType.MOBILE not in result.generated_modules
    assert store.text(FEATURE, "design-server-api.md") == (
        "# server-api\n\nGenerated design for server-api.\n"
    )
    for module_type in result.generated_modules:
        state = await orchestrator.get_module_workflow_state(FEATURE, module_type)
        assert state is WorkflowState.PENDING_REVIEW


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_one_failing_module_does_not_stop_the_others(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    orchestrator = make_orchestrator(RecordingGenerator(fail_on={"server-api"}))

    result = await orchestrator.generate_modules(
        FEATURE,
        GenerateOptions(
            module_types=[ModuleType.SERVER_API, ModuleType.SERVER_LOGIC, ModuleType.TESTING]
        ),
    )

    assert not result.success
    assert result.generated_modules == [ModuleType.SERVER_LOGIC, ModuleType.TESTING]
    assert [failure.type for failure in result.failed_modules] == [ModuleType.SERVER_API]
    assert "model overloaded" in result.failed_modules[0].error
    assert not store.has(FEATURE, "design-server-api.md")
    assert store.has(FEATURE, "design-server-logic.md")
    assert (
        await orchestrator.get_module_workflow_state(FEATURE, ModuleType.SERVER_API)
        is WorkflowState.NOT_GENERATED
    )


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_existing_modules_are_skipped_unless_forced(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    store.put(FEATURE, "design-frontend.md", "# Hand written\n")
    orchestrator = make_orchestrator()
    options = GenerateOptions(module_types=[ModuleType.FRONTEND, ModuleType.TESTING])

    first = await orchestrator.generate_modules(FEATURE, options)

    assert first.skipped_modules == [ModuleType.FRONTEND]
    assert first.generated_modules == [ModuleType.TESTING]
    assert store.text(FEATURE, "design-frontend.md") == "# Hand written\n"

    options.force_regenerate = True
    second = await orchestrator.generate_modules(FEATURE, options)

    assert second.skipped_modules == []
    assert second.generated_modules == [ModuleType.FRONTEND, ModuleType.TESTING]
    assert store.text(FEATURE, "design-frontend.md").startswith("# frontend")


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_parallel_generation_respects_concurrency_limit(
    make_orchestrator: MakeOrchestrator,
) -> None:
    recorder = RecordingGenerator(delay=0.01)
    orchestrator = make_orchestrator(recorder, max_concurrency=2)

    result = await orchestrator.generate_modules(
        FEATURE, GenerateOptions(module_types=list(ModuleType))
    )

    assert len(result.generated_modules) == len(ModuleType)
    assert recorder.max_in_flight == 2


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_sequential_generation_runs_one_at_a_time(make_orchestrator: MakeOrchestrator) -> None:
    recorder = RecordingGenerator(delay=0.005)
    orchestrator = make_orchestrator(recorder, parallel_generation=False)

    result = await orchestrator.generate_modules(
        FEATURE, GenerateOptions(module_types=[ModuleType.FRONTEND, ModuleType.TESTING])
    )

    assert result.success
    assert recorder.max_in_flight == 1


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_default_modules_used_when_detection_disabled(make_orchestrator: MakeOrchestrator) -> None:
    orchestrator = make_orchestrator(
        auto_detect_modules=False, default_modules=[ModuleType.TESTING, "testing"]
    )

    result = await orchestrator.generate_modules(FEATURE)

    assert result.generated_modules == [ModuleType.TESTING]


@pytest.mark.asyncio
async def test_missing_requirements_is_fatal(make_orchestrator: MakeOrchestrator) -> None:
    with pytest.raises(DocumentNotFoundError):
        await make_orchestrator().generate_modules(FEATURE)


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_unknown_module_type_is_rejected(make_orchestrator: MakeOrchestrator) -> None:
    with pytest.raises(ValidationError):
        await make_orchestrator().generate_specific_module(FEATURE, "blockchain")


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_generate_specific_module_with_related_context(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    store.put(FEATURE, "design-server-api.md", "### POST /api/cart\n")
    recorder = RecordingGenerator()
    orchestrator = make_orchestrator(recorder)

    content = await orchestrator.generate_specific_module(
        FEATURE, "frontend", include_related_modules=True
    )

    assert content.startswith("# frontend")
    assert "## Server API Design" in recorder.prompts[0]
    assert "### POST /api/cart" in recorder.prompts[0]


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_custom_module_generation(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    orchestrator = make_orchestrator(
        custom_modules=[
            CustomModuleDefinition(
                type="security", name="Security Design", file_name="design-security.md"
            )
        ]
    )

    await orchestrator.generate_specific_module(FEATURE, "security")

    assert store.has(FEATURE, "design-security.md")
    assert await orchestrator.get_module_workflow_state(FEATURE, "security") is WorkflowState.PENDING_REVIEW


@pytest.mark.asyncio
@pytest.mark.usefixtures("requirements")
async def test_review_gate_follows_approvals_and_regeneration(
    make_orchestrator: MakeOrchestrator,
) -> None:
    orchestrator = make_orchestrator()
    await orchestrator.generate_modules(
        FEATURE, GenerateOptions(module_types=[ModuleType.SERVER_API, ModuleType.TESTING])
    )
    assert not await orchestrator.can_progress_to_tasks(FEATURE)

    await orchestrator.approve_module(FEATURE, ModuleType.SERVER_API, approved_by="dana")
    assert not await orchestrator.can_progress_to_tasks(FEATURE)
    await orchestrator.approve_module(FEATURE, ModuleType.TESTING)
    assert await orchestrator.can_progress_to_tasks(FEATURE)

    await orchestrator.regenerate_module(FEATURE, ModuleType.TESTING)
    assert not await orchestrator.can_progress_to_tasks(FEATURE)


@pytest.mark.asyncio
async def test_reject_requires_a_generated_module(make_orchestrator: MakeOrchestrator) -> None:
    with pytest.raises(WorkflowTransitionError):
        await make_orchestrator().reject_module(FEATURE, ModuleType.MOBILE)


@pytest.mark.asyncio
async def test_manual_edits_are_detected_by_checksum(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    orchestrator = make_orchestrator()

    checksum = await orchestrator.update_module(FEATURE, ModuleType.FRONTEND, "A")
    assert checksum
    assert not await orchestrator.is_module_modified(FEATURE, ModuleType.FRONTEND)

    store.put(FEATURE, "design-frontend.md", "B")
    assert await orchestrator.is_module_modified(FEATURE, ModuleType.FRONTEND)

    store.put(FEATURE, "design-frontend.md", "A")
    assert not await orchestrator.is_module_modified(FEATURE, ModuleType.FRONTEND)


@pytest.mark.asyncio
async def test_update_module_checksums_follow_content(make_orchestrator: MakeOrchestrator) -> None:
    orchestrator = make_orchestrator()

    first = await orchestrator.update_module(FEATURE, ModuleType.SERVER_LOGIC, "A")
    second = await orchestrator.update_module(FEATURE, ModuleType.SERVER_LOGIC, "B")
    third = await orchestrator.update_module(FEATURE, ModuleType.SERVER_LOGIC, "A")

    assert first != second
    assert first == third


@pytest.mark.asyncio
async def test_module_list_overlays_workflow_state(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    orchestrator = make_orchestrator()
    await orchestrator.update_module(FEATURE, ModuleType.TESTING, "# Tests\n")

    modules = {info.type: info for info in await orchestrator.get_module_list(FEATURE)}

    assert [info.type for info in await orchestrator.get_module_list(FEATURE)] == list(ModuleType)
    assert modules[ModuleType.TESTING].exists
    assert modules[ModuleType.TESTING].workflow_state is WorkflowState.PENDING_REVIEW
    assert modules[ModuleType.TESTING].checksum
    assert not modules[ModuleType.FRONTEND].exists
    assert orchestrator.cache_stats().features == [FEATURE]

    orchestrator.clear_cache()
    assert orchestrator.cache_stats().size == 0


@pytest.mark.asyncio
async def test_module_content_round_trip_and_delete(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    orchestrator = make_orchestrator()
    await orchestrator.update_module(FEATURE, ModuleType.MOBILE, "# Mobile\n")

    assert await orchestrator.get_module_content(FEATURE, "mobile") == "# Mobile\n"

    await orchestrator.delete_module(FEATURE, ModuleType.MOBILE)

    assert not store.has(FEATURE, "design-mobile.md")
    assert await orchestrator.get_module_workflow_state(FEATURE, ModuleType.MOBILE) is (
        WorkflowState.NOT_GENERATED
    )
    with pytest.raises(DocumentNotFoundError):
        await orchestrator.get_module_content(FEATURE, ModuleType.MOBILE)


@pytest.mark.asyncio
async def test_migrate_legacy_design(make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore) -> None:
    store.put(FEATURE, "design.md", LEGACY)
    orchestrator = make_orchestrator()
    assert await orchestrator.is_legacy_design(FEATURE)

    result = await orchestrator.migrate_legacy_design(FEATURE)

    assert result.success
    assert set(result.migrated_modules) == {
        ModuleType.FRONTEND,
        ModuleType.SERVER_API,
        ModuleType.SERVER_DATABASE,
    }
    assert "Cart table keyed by user." in store.text(FEATURE, "design-server-database.md")
    assert store.has(FEATURE, "design.md.backup")
    assert not await orchestrator.is_legacy_design(FEATURE)
    metadata = json.loads(store.text(FEATURE, ".module-metadata.json"))
    assert {entry["workflowState"] for entry in metadata["modules"].values()} == {"pending-review"}


@pytest.mark.asyncio
async def test_partial_migration_keeps_legacy_design(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    store.put(FEATURE, "design.md", LEGACY)
    store.fail_writes.add("design-server-api.md")

    result = await make_orchestrator().migrate_legacy_design(FEATURE)

    assert not result.success
    assert store.has(FEATURE, "design.md")
    assert not store.has(FEATURE, "design.md.backup")


@pytest.mark.asyncio
async def test_failed_backup_is_reported_and_invalidates_cache(
    make_orchestrator: MakeOrchestrator,
    store: MemoryDocumentStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    store.put(FEATURE, "design.md", LEGACY)
    store.fail_writes.add("design.md.backup")
    orchestrator = make_orchestrator()
    await orchestrator.get_module_list(FEATURE)
    assert orchestrator.cache_stats().features == [FEATURE]

    with caplog.at_level(logging.ERROR, logger="modspec"):
        with pytest.raises(FileSystemError):
            await orchestrator.migrate_legacy_design(FEATURE)

    assert orchestrator.cache_stats().size == 0
    assert store.has(FEATURE, "design.md")
    assert any("migrate_legacy_design" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_migration_without_headings_is_rejected(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    store.put(FEATURE, "design.md", "# Only a title\n\nSome prose.\n")

    with pytest.raises(ValidationError):
        await make_orchestrator().migrate_legacy_design(FEATURE)


@pytest.mark.asyncio
async def test_analyze_references_reports_inconsistencies(
    make_orchestrator: MakeOrchestrator, store: MemoryDocumentStore
) -> None:
    store.put(FEATURE, "design-frontend.md", "Calls fetch('/api/orders').\n")
    store.put(FEATURE, "design-server-api.md", "### GET /api/cart\n")
    orchestrator = make_orchestrator()

    report = await orchestrator.analyze_references(FEATURE)

    assert len(report.inconsistencies) == 1
    assert report.inconsistencies[0].module1 is ModuleType.FRONTEND
    assert [link.target_module for link in report.cross_links[ModuleType.FRONTEND]] == [
        ModuleType.SERVER_API
    ]
    assert ModuleType.SERVER_API in report.references[ModuleType.FRONTEND]

    quiet = make_orchestrator(validate_cross_references=False)
    assert (await quiet.analyze_references(FEATURE)).inconsistencies == []

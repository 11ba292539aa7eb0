"""Persisted module metadata: workflow states, checksums and the task gate."""

from __future__ import annotations

import asyncio
import hashlib
import json
from datetime import UTC, datetime
from typing import Callable, Dict, Optional

from ..errors import DocumentNotFoundError, ValidationError, WorkflowTransitionError
from ..logging import get_logger
from ..models import ModuleKey, ModuleMetadata, ModuleMetadataFile, WorkflowState
from ..modules import METADATA_FILE, ModuleRegistry
from .documents import DocumentStore, feature_path, read_text, write_text

METADATA_VERSION = "1.0"

# Explicit review transitions. Entering pending-review from any state only
# happens through ``mark_generated`` (generation or migration).
_ALLOWED_TRANSITIONS: Dict[WorkflowState, set[WorkflowState]] = {
    WorkflowState.NOT_GENERATED: set(),
    WorkflowState.PENDING_REVIEW: {
        WorkflowState.PENDING_REVIEW,
        WorkflowState.APPROVED,
        WorkflowState.REJECTED,
    },
    WorkflowState.APPROVED: {WorkflowState.APPROVED, WorkflowState.PENDING_REVIEW},
    WorkflowState.REJECTED: {WorkflowState.REJECTED, WorkflowState.PENDING_REVIEW},
}


def compute_checksum(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _utc_now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def can_progress(metadata: ModuleMetadataFile) -> bool:
    """True when at least one module was generated and all generated ones are approved."""
    generated = [
        entry
        for entry in metadata.modules.values()
        if entry.workflow_state is not WorkflowState.NOT_GENERATED
    ]
    if not generated:
        return False
    return all(entry.workflow_state is WorkflowState.APPROVED for entry in generated)


class ModuleMetadataStore:
    """Reads and mutates ``.module-metadata.json`` per feature.

    Every mutation is a load/modify/save cycle of the whole document, held
    under a per-feature lock so concurrent tasks of one feature do not lose
    updates. The progression gate is recomputed before each save.
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: ModuleRegistry,
        *,
        base_path: str,
        now: Callable[[], str] = _utc_now,
    ) -> None:
        self.store = store
        self.registry = registry
        self.base_path = base_path
        self._now = now
        self._locks: Dict[str, asyncio.Lock] = {}
        self.logger = get_logger("metadata")

    # ------------------------------------------------------------------
    # Document IO

    async def load(self, feature: str) -> ModuleMetadataFile:
        path = feature_path(self.base_path, feature, METADATA_FILE)
        try:
            text = await read_text(self.store, path)
        except DocumentNotFoundError:
            return ModuleMetadataFile(version=METADATA_VERSION)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Malformed metadata file for {feature}: {exc}") from exc
        return _metadata_from_dict(payload, feature)

    async def save(self, feature: str, metadata: ModuleMetadataFile) -> None:
        metadata.can_progress_to_tasks = can_progress(metadata)
        path = feature_path(self.base_path, feature, METADATA_FILE)
        await self.store.create_directory(feature_path(self.base_path, feature))
        await write_text(self.store, path, json.dumps(_metadata_to_dict(metadata), indent=2))

    # ------------------------------------------------------------------
    # Queries

    async def get_module_metadata(self, feature: str, module_type: ModuleKey) -> Optional[ModuleMetadata]:
        metadata = await self.load(feature)
        return metadata.modules.get(str(module_type))

    async def get_module_state(self, feature: str, module_type: ModuleKey) -> WorkflowState:
        entry = await self.get_module_metadata(feature, module_type)
        return entry.workflow_state if entry else WorkflowState.NOT_GENERATED

    async def can_progress_to_tasks(self, feature: str) -> bool:
        return can_progress(await self.load(feature))

    async def is_module_modified(self, feature: str, module_type: ModuleKey) -> bool:
        entry = await self.get_module_metadata(feature, module_type)
        if entry is None or not entry.checksum:
            return False
        path = feature_path(self.base_path, feature, self.registry.file_name(module_type))
        try:
            content = await read_text(self.store, path)
        except DocumentNotFoundError:
            return False
        return compute_checksum(content) != entry.checksum

    # ------------------------------------------------------------------
    # Mutations

    async def mark_generated(self, feature: str, module_type: ModuleKey, content: str) -> ModuleMetadata:
        """Record a fresh generation or migration: pending-review plus checksum."""
        async with self._lock(feature):
            metadata = await self.load(feature)
            entry = metadata.modules.setdefault(str(module_type), ModuleMetadata())
            entry.workflow_state = WorkflowState.PENDING_REVIEW
            entry.generated_at = self._now()
            entry.approved_at = None
            entry.approved_by = None
            entry.checksum = compute_checksum(content)
            await self.save(feature, metadata)
        self.logger.debug("Marked %s/%s as pending review", feature, module_type)
        return entry

    async def update_module_state(
        self,
        feature: str,
        module_type: ModuleKey,
        state: WorkflowState,
        *,
        approved_by: str | None = None,
    ) -> ModuleMetadata:
        async with self._lock(feature):
            metadata = await self.load(feature)
            key = str(module_type)
            entry = metadata.modules.get(key) or ModuleMetadata()
            current = entry.workflow_state
            if state not in _ALLOWED_TRANSITIONS[current]:
                raise WorkflowTransitionError(
                    f"Cannot move {key} from {current.value} to {state.value}"
                )
            entry.workflow_state = state
            if state is WorkflowState.PENDING_REVIEW and not entry.generated_at:
                entry.generated_at = self._now()
            if state is WorkflowState.APPROVED:
                entry.approved_at = self._now()
                entry.approved_by = approved_by
            else:
                entry.approved_at = None
                entry.approved_by = None
            metadata.modules[key] = entry
            await self.save(feature, metadata)
        self.logger.info("%s/%s is now %s", feature, module_type, state.value)
        return entry

    async def update_checksum(self, feature: str, module_type: ModuleKey, content: str) -> str:
        checksum = compute_checksum(content)
        async with self._lock(feature):
            metadata = await self.load(feature)
            key = str(module_type)
            entry = metadata.modules.get(key)
            if entry is None:
                # Hand-written module adopted into the review workflow.
                entry = ModuleMetadata(
                    workflow_state=WorkflowState.PENDING_REVIEW, generated_at=self._now()
                )
                metadata.modules[key] = entry
            entry.checksum = checksum
            await self.save(feature, metadata)
        return checksum

    async def delete_module_metadata(self, feature: str, module_type: ModuleKey) -> bool:
        async with self._lock(feature):
            metadata = await self.load(feature)
            removed = metadata.modules.pop(str(module_type), None)
            if removed is None:
                return False
            await self.save(feature, metadata)
        return True

    async def reset(self, feature: str) -> None:
        async with self._lock(feature):
            await self.save(feature, ModuleMetadataFile(version=METADATA_VERSION))

    def _lock(self, feature: str) -> asyncio.Lock:
        lock = self._locks.get(feature)
        if lock is None:
            lock = self._locks[feature] = asyncio.Lock()
        return lock


def _metadata_to_dict(metadata: ModuleMetadataFile) -> Dict[str, object]:
    modules: Dict[str, Dict[str, object]] = {}
    for key, entry in metadata.modules.items():
        payload: Dict[str, object] = {"workflowState": entry.workflow_state.value}
        if entry.generated_at:
            payload["generatedAt"] = entry.generated_at
        if entry.approved_at:
            payload["approvedAt"] = entry.approved_at
        if entry.approved_by:
            payload["approvedBy"] = entry.approved_by
        if entry.checksum:
            payload["checksum"] = entry.checksum
        modules[key] = payload
    return {
        "version": metadata.version,
        "modules": modules,
        "canProgressToTasks": metadata.can_progress_to_tasks,
    }


def _metadata_from_dict(payload: object, feature: str) -> ModuleMetadataFile:
    if not isinstance(payload, dict):
        raise ValidationError(f"Metadata for {feature} must be a JSON object")
    version = payload.get("version")
    modules = payload.get("modules")
    gate = payload.get("canProgressToTasks")
    if not isinstance(version, str) or not isinstance(modules, dict) or not isinstance(gate, bool):
        raise ValidationError(f"Metadata for {feature} has an invalid structure")

    entries: Dict[str, ModuleMetadata] = {}
    for key, raw in modules.items():
        if not isinstance(raw, dict):
            raise ValidationError(f"Metadata entry {key!r} for {feature} must be an object")
        try:
            state = WorkflowState(raw.get("workflowState"))
        except ValueError as exc:
            raise ValidationError(
                f"Metadata entry {key!r} for {feature} has an unknown workflow state"
            ) from exc
        entries[str(key)] = ModuleMetadata(
            workflow_state=state,
            generated_at=_optional_str(raw.get("generatedAt")),
            approved_at=_optional_str(raw.get("approvedAt")),
            approved_by=_optional_str(raw.get("approvedBy")),
            checksum=_optional_str(raw.get("checksum")),
        )
    return ModuleMetadataFile(version=version, modules=entries, can_progress_to_tasks=gate)


def _optional_str(value: object) -> Optional[str]:
    return value if isinstance(value, str) else None


__all__ = [
    "METADATA_VERSION",
    "ModuleMetadataStore",
    "can_progress",
    "compute_checksum",
]

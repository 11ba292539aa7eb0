"""In-memory cache of per-feature module listings."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..errors import DocumentNotFoundError
from ..logging import get_logger
from ..models import CachedModuleInfo, ModuleInfo, WorkflowState
from ..modules import LEGACY_DESIGN_FILE, ModuleRegistry
from .documents import DocumentStore, exists, feature_path

DEFAULT_TTL_MS = 300_000


@dataclass
class CacheStats:
    size: int
    features: List[str]
    ttl_ms: int


class ModuleCache:
    """Caches module listings per feature with a time-to-live.

    ``get``/``set`` are purely in memory. ``refresh`` is the only method that
    talks to the document store. Workflow states are not tracked here; every
    entry carries ``not-generated`` and callers overlay the metadata store.
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: ModuleRegistry,
        *,
        base_path: str,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.registry = registry
        self.base_path = base_path
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: Dict[str, CachedModuleInfo] = {}
        self.logger = get_logger("cache")

    def get(self, feature: str) -> Optional[CachedModuleInfo]:
        entry = self._entries.get(feature)
        if entry is None:
            return None
        age_ms = (self._clock() - entry.last_updated) * 1000
        if age_ms > self.ttl_ms:
            self.logger.debug("Cache entry for %s expired after %.0f ms", feature, age_ms)
            del self._entries[feature]
            return None
        return entry

    def set(self, feature: str, modules: List[ModuleInfo], has_legacy_design: bool) -> CachedModuleInfo:
        entry = CachedModuleInfo(
            modules=list(modules),
            last_updated=self._clock(),
            has_legacy_design=has_legacy_design,
        )
        self._entries[feature] = entry
        return entry

    async def refresh(self, feature: str) -> CachedModuleInfo:
        modules: List[ModuleInfo] = []
        for module_type in self.registry.module_types():
            file_name = self.registry.file_name(module_type)
            path = feature_path(self.base_path, feature, file_name)
            try:
                stat = await self.store.stat(path)
            except DocumentNotFoundError:
                modules.append(ModuleInfo(type=module_type, file_name=file_name, exists=False))
                continue
            modules.append(
                ModuleInfo(
                    type=module_type,
                    file_name=file_name,
                    exists=True,
                    workflow_state=WorkflowState.NOT_GENERATED,
                    last_modified=stat.mtime,
                    file_size=stat.size,
                )
            )
        has_legacy = await exists(
            self.store, feature_path(self.base_path, feature, LEGACY_DESIGN_FILE)
        )
        self.logger.debug("Refreshed module cache for %s", feature)
        return self.set(feature, modules, has_legacy)

    def invalidate(self, feature: str) -> None:
        self._entries.pop(feature, None)

    def clear(self, feature: str | None = None) -> None:
        if feature is None:
            self._entries.clear()
        else:
            self.invalidate(feature)

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), features=sorted(self._entries), ttl_ms=self.ttl_ms)


__all__ = ["CacheStats", "DEFAULT_TTL_MS", "ModuleCache"]

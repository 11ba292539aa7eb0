"""Splits monolithic legacy ``design.md`` documents into module files."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence, Tuple

from ..logging import get_logger
from ..models import ContentAnalysis, MigrationResult, ModuleKey, ModuleType, Section
from ..modules import (
    LEGACY_BACKUP_FILE,
    LEGACY_DESIGN_FILE,
    NO_MIGRATE_MARKER,
    ModuleRegistry,
)
from ..stores.documents import DocumentStore, exists, feature_path, read_text, write_text

_HEADING = re.compile(r"^(#{2,3})\s+(.+)$")

# Title classification, checked in order; server-logic is the catch-all.
_TITLE_BUCKETS: Sequence[Tuple[ModuleType, Tuple[str, ...]]] = (
    (
        ModuleType.FRONTEND,
        ("frontend", "ui", "user interface", "component", "page", "view", "react", "vue", "angular",
         "前端", "界面", "组件", "页面"),
    ),
    (
        ModuleType.MOBILE,
        ("mobile", "ios", "android", "app", "native", "flutter", "react native", "移动", "手机"),
    ),
    (
        ModuleType.SERVER_API,
        ("api", "endpoint", "rest", "graphql", "route", "controller", "接口", "端点"),
    ),
    (
        ModuleType.SERVER_DATABASE,
        ("database", "model", "schema", "entity", "table", "collection", "sql", "nosql",
         "数据库", "数据模型", "表"),
    ),
    (
        ModuleType.TESTING,
        ("test", "testing", "qa", "quality", "e2e", "integration", "unit", "测试"),
    ),
)

_STRONG_KEYWORDS: Dict[ModuleType, Tuple[str, ...]] = {
    ModuleType.FRONTEND: ("frontend", "ui design", "component architecture", "前端设计"),
    ModuleType.MOBILE: ("mobile", "ios", "android", "app design", "移动端"),
    ModuleType.SERVER_API: ("api design", "endpoint", "rest api", "接口设计"),
    ModuleType.SERVER_LOGIC: ("business logic", "service layer", "workflow", "业务逻辑"),
    ModuleType.SERVER_DATABASE: ("database design", "database schema", "schema design", "data model", "数据库设计"),
    ModuleType.TESTING: ("test design", "testing strategy", "test plan", "测试策略"),
}

_WEAK_KEYWORDS: Dict[ModuleType, Tuple[str, ...]] = {
    ModuleType.FRONTEND: ("ui", "page", "view", "react", "vue", "component", "界面"),
    ModuleType.MOBILE: ("native", "hybrid", "flutter", "手机"),
    ModuleType.SERVER_API: ("api", "route", "controller", "接口"),
    ModuleType.SERVER_LOGIC: ("service", "logic", "process", "服务"),
    ModuleType.SERVER_DATABASE: ("database", "model", "entity", "table", "schema", "数据"),
    ModuleType.TESTING: ("test", "qa", "quality", "测试"),
}

STRONG_CONFIDENCE = 0.9
WEAK_CONFIDENCE = 0.7
FALLBACK_CONFIDENCE = 0.5
DEFAULT_CONFIDENCE = 0.6

MIGRATION_NOTE = "> This module was migrated from the legacy design.md document."


def classify_title(title: str) -> ModuleType:
    lowered = title.lower()
    for module_type, keywords in _TITLE_BUCKETS:
        if any(keyword in lowered for keyword in keywords):
            return module_type
    return ModuleType.SERVER_LOGIC


def title_confidence(title: str, module_type: ModuleType) -> float:
    lowered = title.lower()
    if any(keyword in lowered for keyword in _STRONG_KEYWORDS.get(module_type, ())):
        return STRONG_CONFIDENCE
    if any(keyword in lowered for keyword in _WEAK_KEYWORDS.get(module_type, ())):
        return WEAK_CONFIDENCE
    if module_type is ModuleType.SERVER_LOGIC:
        return FALLBACK_CONFIDENCE
    return DEFAULT_CONFIDENCE


class LegacyMigrator:
    """Analyses and migrates a feature's legacy design document."""

    def __init__(self, store: DocumentStore, registry: ModuleRegistry, *, base_path: str) -> None:
        self.store = store
        self.registry = registry
        self.base_path = base_path
        self.logger = get_logger("migration")

    def analyze(self, text: str) -> ContentAnalysis:
        """Split on level 2/3 headings and suggest a module per section.

        Text before the first heading is not part of any section. Duplicate
        titles get a `` (n)`` suffix so every section survives.
        """
        lines = text.split("\n")
        analysis = ContentAnalysis()
        current: Optional[Tuple[str, int]] = None
        body: List[str] = []

        def close(end_line: int) -> None:
            if current is None:
                return
            title, start = current
            key = self._unique_title(title, analysis.sections)
            module_type = classify_title(title)
            section = Section(
                title=key,
                content="\n".join(body).strip(),
                start_line=start,
                end_line=end_line,
                suggested_module=module_type,
                confidence=title_confidence(title, module_type),
            )
            analysis.sections[key] = section
            analysis.suggested_module_mapping.setdefault(module_type, []).append(key)

        for index, line in enumerate(lines):
            match = _HEADING.match(line)
            if match:
                close(index - 1)
                current = (match.group(2).strip(), index)
                body = []
            elif current is not None:
                body.append(line)
        close(len(lines) - 1)
        self.logger.debug(
            "Analysed legacy document: %d section(s) across %d module(s)",
            len(analysis.sections),
            len(analysis.suggested_module_mapping),
        )
        return analysis

    def build_module_content(self, module_type: ModuleKey, sections: Sequence[Section]) -> str:
        lines = [f"# {self.registry.display_name(module_type)}", "", MIGRATION_NOTE, ""]
        for section in sections:
            lines.extend([f"## {section.title}", ""])
            if section.content:
                lines.extend([section.content, ""])
        return "\n".join(lines)

    async def migrate_to_modules(self, feature: str, analysis: ContentAnalysis) -> MigrationResult:
        """Write one module file per mapped type; failures do not stop the rest."""
        result = MigrationResult(success=True)
        await self.store.create_directory(feature_path(self.base_path, feature))
        for module_type, titles in analysis.suggested_module_mapping.items():
            sections = [analysis.sections[title] for title in titles if title in analysis.sections]
            if not sections:
                continue
            content = self.build_module_content(module_type, sections)
            path = feature_path(self.base_path, feature, self.registry.file_name(module_type))
            try:
                await write_text(self.store, path, content)
            except Exception as exc:  # collected per module
                self.logger.warning("Failed to migrate %s for %s: %s", module_type, feature, exc)
                result.errors.append(f"{module_type}: {exc}")
                result.success = False
                continue
            result.migrated_modules.append(module_type)
        return result

    async def detect_legacy(self, feature: str) -> bool:
        return await exists(self.store, self._path(feature, LEGACY_DESIGN_FILE))

    async def read_legacy(self, feature: str) -> str:
        return await read_text(self.store, self._path(feature, LEGACY_DESIGN_FILE))

    async def backup_legacy(self, feature: str) -> str:
        """Move ``design.md`` to ``design.md.backup``, replacing an older backup."""
        source = self._path(feature, LEGACY_DESIGN_FILE)
        target = self._path(feature, LEGACY_BACKUP_FILE)
        data = await self.store.read_file(source)
        await self.store.write_file(target, data)
        await self.store.delete(source)
        self.logger.info("Backed up legacy design for %s", feature)
        return target

    async def has_no_migrate_marker(self, feature: str) -> bool:
        return await exists(self.store, self._path(feature, NO_MIGRATE_MARKER))

    async def create_no_migrate_marker(self, feature: str) -> None:
        await write_text(
            self.store,
            self._path(feature, NO_MIGRATE_MARKER),
            "Legacy design migration declined for this feature.\n",
        )

    def _path(self, feature: str, artifact: str) -> str:
        return feature_path(self.base_path, feature, artifact)

    @staticmethod
    def _unique_title(title: str, sections: Dict[str, Section]) -> str:
        if title not in sections:
            return title
        counter = 2
        while f"{title} ({counter})" in sections:
            counter += 1
        return f"{title} ({counter})"


__all__ = [
    "LegacyMigrator",
    "MIGRATION_NOTE",
    "classify_title",
    "title_confidence",
]

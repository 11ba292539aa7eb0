"""Registry of known module types, their display names and file names."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .errors import ValidationError
from .models import CustomModuleDefinition, ModuleKey, ModuleType, coerce_module_type

DEFAULT_FILE_NAMING_PATTERN = "design-{moduleType}.md"
REQUIREMENTS_FILE = "requirements.md"
LEGACY_DESIGN_FILE = "design.md"
LEGACY_BACKUP_FILE = "design.md.backup"
METADATA_FILE = ".module-metadata.json"
NO_MIGRATE_MARKER = ".no-migrate"

MODULE_DISPLAY_NAMES: Dict[ModuleType, str] = {
    ModuleType.FRONTEND: "Frontend Design",
    ModuleType.MOBILE: "Mobile Design",
    ModuleType.SERVER_API: "Server API Design",
    ModuleType.SERVER_LOGIC: "Server Logic Design",
    ModuleType.SERVER_DATABASE: "Database Design",
    ModuleType.TESTING: "Testing Design",
}

STANDARD_MODULE_ORDER: List[ModuleType] = list(ModuleType)


class ModuleRegistry:
    """Resolves built-in and custom module types to file names and labels."""

    def __init__(
        self,
        custom_modules: Iterable[CustomModuleDefinition] = (),
        *,
        file_naming_pattern: str = DEFAULT_FILE_NAMING_PATTERN,
    ) -> None:
        self.file_naming_pattern = file_naming_pattern or DEFAULT_FILE_NAMING_PATTERN
        self._custom: Dict[str, CustomModuleDefinition] = {}
        for definition in custom_modules:
            self._custom[definition.type] = definition

    def module_types(self) -> List[ModuleKey]:
        """Built-in types in canonical order followed by custom types."""
        types: List[ModuleKey] = list(STANDARD_MODULE_ORDER)
        types.extend(key for key in self._custom if key not in types)
        return types

    def custom_modules(self) -> List[CustomModuleDefinition]:
        return list(self._custom.values())

    def get_custom(self, module_type: ModuleKey) -> Optional[CustomModuleDefinition]:
        return self._custom.get(str(module_type))

    def is_known(self, module_type: ModuleKey) -> bool:
        return isinstance(coerce_module_type(module_type), ModuleType) or str(module_type) in self._custom

    def resolve(self, module_type: ModuleKey) -> ModuleKey:
        """Normalise a caller-provided type, rejecting unknown values."""
        key = coerce_module_type(module_type)
        if isinstance(key, ModuleType) or key in self._custom:
            return key
        raise ValidationError(f"Unknown module type: {module_type}")

    def file_name(self, module_type: ModuleKey) -> str:
        custom = self._custom.get(str(module_type))
        if custom is not None and not isinstance(coerce_module_type(module_type), ModuleType):
            return custom.file_name
        return self.file_naming_pattern.replace("{moduleType}", str(module_type))

    def display_name(self, module_type: ModuleKey) -> str:
        key = coerce_module_type(module_type)
        if isinstance(key, ModuleType):
            return MODULE_DISPLAY_NAMES[key]
        custom = self._custom.get(key)
        return custom.name if custom is not None else key

    def type_for_file(self, file_name: str) -> Optional[ModuleKey]:
        for module_type in self.module_types():
            if self.file_name(module_type) == file_name:
                return module_type
        return None


__all__ = [
    "DEFAULT_FILE_NAMING_PATTERN",
    "LEGACY_BACKUP_FILE",
    "LEGACY_DESIGN_FILE",
    "METADATA_FILE",
    "MODULE_DISPLAY_NAMES",
    "ModuleRegistry",
    "NO_MIGRATE_MARKER",
    "REQUIREMENTS_FILE",
    "STANDARD_MODULE_ORDER",
]

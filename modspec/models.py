"""Core data models shared across modspec components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ModuleType(str, Enum):
    """Built-in design module categories."""

    FRONTEND = "frontend"
    MOBILE = "mobile"
    SERVER_API = "server-api"
    SERVER_LOGIC = "server-logic"
    SERVER_DATABASE = "server-database"
    TESTING = "testing"

    def __str__(self) -> str:
        return self.value


class WorkflowState(str, Enum):
    """Review lifecycle of a single module document."""

    NOT_GENERATED = "not-generated"
    PENDING_REVIEW = "pending-review"
    APPROVED = "approved"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


# Built-in types are ModuleType members; custom types are plain kebab-case strings.
ModuleKey = Union[ModuleType, str]


def coerce_module_type(value: ModuleKey) -> ModuleKey:
    """Return the ModuleType member for built-in values, the string otherwise."""
    if isinstance(value, ModuleType):
        return value
    try:
        return ModuleType(value)
    except ValueError:
        return str(value)


@dataclass
class DetectionRule:
    """Keyword/pattern rule deciding whether a module applies to a requirements text."""

    keywords: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)
    default_applicable: bool = False


@dataclass
class CustomModuleDefinition:
    """Caller-defined module type loaded from configuration."""

    type: str
    name: str
    file_name: str
    prompt_template: Optional[str] = None
    detection_rules: Optional[DetectionRule] = None
    icon: Optional[str] = None


@dataclass
class ModuleInfo:
    """Filesystem facts for one module overlaid with its workflow state."""

    type: ModuleKey
    file_name: str
    exists: bool
    workflow_state: WorkflowState = WorkflowState.NOT_GENERATED
    last_modified: Optional[float] = None
    file_size: Optional[int] = None
    checksum: Optional[str] = None


@dataclass
class CachedModuleInfo:
    """Cache entry for a feature directory."""

    modules: List[ModuleInfo]
    last_updated: float
    has_legacy_design: bool


@dataclass
class ModuleMetadata:
    """Persisted review metadata for a single module."""

    workflow_state: WorkflowState = WorkflowState.NOT_GENERATED
    generated_at: Optional[str] = None
    approved_at: Optional[str] = None
    approved_by: Optional[str] = None
    checksum: Optional[str] = None


@dataclass
class ModuleMetadataFile:
    """Whole-feature metadata document (``.module-metadata.json``)."""

    version: str = "1.0"
    modules: Dict[str, ModuleMetadata] = field(default_factory=dict)
    can_progress_to_tasks: bool = False


@dataclass
class Section:
    """Heading-delimited block of a legacy design document."""

    title: str
    content: str
    start_line: int
    end_line: int
    suggested_module: ModuleKey
    confidence: float


@dataclass
class ContentAnalysis:
    """Section split of a legacy document with its module mapping."""

    sections: Dict[str, Section] = field(default_factory=dict)
    suggested_module_mapping: Dict[ModuleKey, List[str]] = field(default_factory=dict)


@dataclass
class MigrationResult:
    """Outcome of writing analysed legacy content into module files."""

    success: bool
    migrated_modules: List[ModuleKey] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class SourceLocation:
    line: int
    column: int
    file_name: str


@dataclass
class Reference:
    """Typed pointer from one module's text to another module."""

    source_location: SourceLocation
    target_module: ModuleKey
    reference_text: str
    reference_type: str


@dataclass
class Inconsistency:
    """Unresolved or mismatched cross-module reference."""

    module1: ModuleKey
    module2: ModuleKey
    description: str
    severity: str
    suggestion: Optional[str] = None


@dataclass
class CrossLink:
    """Navigation hint from one module to a related module."""

    target_module: ModuleKey
    link_text: str
    reason: str


ReferenceMap = Dict[ModuleKey, Dict[ModuleKey, List[Reference]]]


@dataclass
class CrossReferenceReport:
    """Aggregated cross-reference analysis for a feature."""

    references: ReferenceMap = field(default_factory=dict)
    inconsistencies: List[Inconsistency] = field(default_factory=list)
    cross_links: Dict[ModuleKey, List[CrossLink]] = field(default_factory=dict)


@dataclass
class GenerateOptions:
    """Caller options for a multi-module generation run."""

    module_types: Optional[List[ModuleKey]] = None
    force_regenerate: bool = False
    parallel: Optional[bool] = None
    include_related_modules: bool = False


@dataclass
class FailedModule:
    type: ModuleKey
    error: str


@dataclass
class GenerationResult:
    """Aggregate outcome of ``generate_modules``."""

    success: bool
    generated_modules: List[ModuleKey] = field(default_factory=list)
    failed_modules: List[FailedModule] = field(default_factory=list)
    skipped_modules: List[ModuleKey] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "generated_modules": [str(item) for item in self.generated_modules],
            "failed_modules": [
                {"type": str(item.type), "error": item.error} for item in self.failed_modules
            ],
            "skipped_modules": [str(item) for item in self.skipped_modules],
        }


__all__ = [
    "ContentAnalysis",
    "CrossLink",
    "CrossReferenceReport",
    "CachedModuleInfo",
    "CustomModuleDefinition",
    "DetectionRule",
    "FailedModule",
    "GenerateOptions",
    "GenerationResult",
    "Inconsistency",
    "MigrationResult",
    "ModuleInfo",
    "ModuleKey",
    "ModuleMetadata",
    "ModuleMetadataFile",
    "ModuleType",
    "Reference",
    "ReferenceMap",
    "Section",
    "SourceLocation",
    "WorkflowState",
    "coerce_module_type",
]

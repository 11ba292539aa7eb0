"""Configuration loading for modspec (.modspec.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .detection.custom_modules import CustomModuleValidator
from .errors import ConfigurationError
from .models import CustomModuleDefinition, DetectionRule, ModuleType
from .modules import DEFAULT_FILE_NAMING_PATTERN

CONFIG_FILE_NAME = ".modspec.yml"
DEFAULT_SPECS_PATH = ".claude/specs"
DEFAULT_CACHE_TTL_MS = 300_000


@dataclass
class LLMConfig:
    """LLM runtime settings from .modspec.yml."""

    runner: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    request_timeout: Optional[float] = None
    max_retries: int = 0


@dataclass
class ModularDesignConfig:
    """Behaviour switches for modular design generation."""

    default_modules: List[str] = field(
        default_factory=lambda: [
            ModuleType.FRONTEND.value,
            ModuleType.SERVER_API.value,
            ModuleType.SERVER_LOGIC.value,
            ModuleType.SERVER_DATABASE.value,
            ModuleType.TESTING.value,
        ]
    )
    file_naming_pattern: str = DEFAULT_FILE_NAMING_PATTERN
    auto_detect_modules: bool = True
    parallel_generation: bool = True
    max_concurrency: int = 4
    cache_enabled: bool = True
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    validate_cross_references: bool = True
    warn_on_inconsistencies: bool = True
    custom_modules: List[CustomModuleDefinition] = field(default_factory=list)


@dataclass
class ModSpecConfig:
    """Represents the settings defined in .modspec.yml."""

    root: Path
    specs_path: str = DEFAULT_SPECS_PATH
    modular_design: ModularDesignConfig = field(default_factory=ModularDesignConfig)
    llm: Optional[LLMConfig] = None

    @property
    def specs_dir(self) -> Path:
        return self.root / self.specs_path


def load_config(config_path: Path) -> ModSpecConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()
    if not root.is_dir():
        raise ConfigurationError(f"Workspace root does not exist: {root}")

    if not config_file.exists():
        return ModSpecConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigurationError(f"{CONFIG_FILE_NAME} must contain a mapping at the root")

    paths = _as_dict(data.get("paths"))
    specs_path = _as_str(paths.get("specs")) or DEFAULT_SPECS_PATH

    llm_data = _as_dict(data.get("llm"))
    llm = None
    if llm_data:
        llm = LLMConfig(
            runner=_as_str(llm_data.get("runner")),
            model=_as_str(llm_data.get("model")),
            temperature=_as_float(llm_data.get("temperature")),
            max_tokens=_as_int(llm_data.get("max_tokens")),
            base_url=_as_str(llm_data.get("base_url")),
            api_key=_as_str(llm_data.get("api_key")),
            request_timeout=_as_float(llm_data.get("request_timeout")),
            max_retries=max(_as_int(llm_data.get("max_retries")) or 0, 0),
        )

    return ModSpecConfig(
        root=root,
        specs_path=specs_path,
        modular_design=_parse_modular_design(_as_dict(data.get("modular_design"))),
        llm=llm,
    )


def _parse_modular_design(data: Dict[str, Any]) -> ModularDesignConfig:
    settings = ModularDesignConfig()
    if not data:
        return settings

    if "default_modules" in data:
        settings.default_modules = _as_str_list(data.get("default_modules"))
    pattern = _as_str(data.get("file_naming_pattern"))
    if pattern:
        if "{moduleType}" not in pattern:
            raise ConfigurationError("file_naming_pattern must contain '{moduleType}'")
        settings.file_naming_pattern = pattern

    for name in (
        "auto_detect_modules",
        "parallel_generation",
        "cache_enabled",
        "validate_cross_references",
        "warn_on_inconsistencies",
    ):
        value = _as_bool(data.get(name))
        if value is not None:
            setattr(settings, name, value)

    max_concurrency = _as_int(data.get("max_concurrency"))
    if max_concurrency is not None:
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        settings.max_concurrency = max_concurrency
    ttl = _as_int(data.get("cache_ttl_ms"))
    if ttl is not None:
        settings.cache_ttl_ms = max(ttl, 0)

    raw_modules = data.get("custom_modules")
    if raw_modules:
        if not isinstance(raw_modules, list):
            raise ConfigurationError("custom_modules must be a list")
        settings.custom_modules = _parse_custom_modules(raw_modules)
    return settings


def _parse_custom_modules(raw_modules: List[Any]) -> List[CustomModuleDefinition]:
    definitions: List[CustomModuleDefinition] = []
    for raw in raw_modules:
        entry = _as_dict(raw)
        rules_data = entry.get("detection_rules")
        rules = None
        if isinstance(rules_data, dict):
            rules = DetectionRule(
                keywords=_as_str_list(rules_data.get("keywords")),
                patterns=_as_str_list(rules_data.get("patterns")),
                default_applicable=bool(_as_bool(rules_data.get("default_applicable"))),
            )
        definitions.append(
            CustomModuleDefinition(
                type=_as_str(entry.get("type")) or "",
                name=_as_str(entry.get("name")) or "",
                file_name=_as_str(entry.get("file_name")) or "",
                prompt_template=_as_str(entry.get("prompt_template")),
                detection_rules=rules,
                icon=_as_str(entry.get("icon")),
            )
        )

    report = CustomModuleValidator().validate_all(definitions)
    if not report.valid:
        raise ConfigurationError("Invalid custom_modules: " + "; ".join(report.errors))
    return definitions


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILE_NAME).resolve()
    if config_path.name != CONFIG_FILE_NAME:
        return (config_path.parent / CONFIG_FILE_NAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILE_NAME",
    "LLMConfig",
    "ModSpecConfig",
    "ModularDesignConfig",
    "load_config",
]

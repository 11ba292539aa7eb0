"""Validation of caller-defined custom module definitions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Set

from ..models import CustomModuleDefinition, ModuleType

_TYPE_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
_ILLEGAL_FILE_CHARS = re.compile(r'[<>:"|?*\x00-\x1F]')
_MAX_TYPE_LENGTH = 50
_MAX_NAME_LENGTH = 100
_MIN_TEMPLATE_LENGTH = 100
_TEMPLATE_VARIABLES = ("requirements", "spec_name")
_BLOCK_OPEN = re.compile(r"{%-?\s*(if|for)\b")
_BLOCK_CLOSE = re.compile(r"{%-?\s*end(if|for)\b")


@dataclass
class ValidationReport:
    """Errors block loading a definition; warnings are advisory."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def extend(self, other: "ValidationReport") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


class CustomModuleValidator:
    """Checks custom module definitions before they are registered."""

    def validate_all(self, definitions: Iterable[CustomModuleDefinition]) -> ValidationReport:
        report = ValidationReport()
        seen: Set[str] = set()
        for index, definition in enumerate(definitions):
            label = definition.type or f"#{index + 1}"
            if definition.type and definition.type in seen:
                report.errors.append(f"{label}: duplicate module type")
            seen.add(definition.type)
            item = self.validate(definition)
            report.errors.extend(f"{label}: {message}" for message in item.errors)
            report.warnings.extend(f"{label}: {message}" for message in item.warnings)
        return report

    def validate(self, definition: CustomModuleDefinition) -> ValidationReport:
        report = ValidationReport()
        self._check_type(definition.type, report)
        self._check_name(definition.name, report)
        self._check_file_name(definition.file_name, report)
        if definition.prompt_template is not None:
            self._check_template(definition.prompt_template, report)
        if definition.detection_rules is not None:
            self._check_rules(definition, report)
        return report

    @staticmethod
    def _check_type(value: str, report: ValidationReport) -> None:
        if not value:
            report.errors.append("type is required")
            return
        if len(value) > _MAX_TYPE_LENGTH:
            report.errors.append(f"type must be at most {_MAX_TYPE_LENGTH} characters")
        if not _TYPE_PATTERN.match(value):
            report.errors.append("type must be lowercase kebab-case (letters, digits, hyphens)")
        if value in {member.value for member in ModuleType}:
            report.warnings.append(f"type '{value}' shadows a built-in module type")

    @staticmethod
    def _check_name(value: str, report: ValidationReport) -> None:
        if not value or not value.strip():
            report.errors.append("name is required")
        elif len(value) > _MAX_NAME_LENGTH:
            report.errors.append(f"name must be at most {_MAX_NAME_LENGTH} characters")

    @staticmethod
    def _check_file_name(value: str, report: ValidationReport) -> None:
        if not value:
            report.errors.append("file_name is required")
            return
        if _ILLEGAL_FILE_CHARS.search(value):
            report.errors.append("file_name contains illegal characters")
        if "/" in value or "\\" in value:
            report.errors.append("file_name must not contain path separators")
        if not value.endswith(".md"):
            report.warnings.append("file_name should end with .md")
        if not value.startswith("design-"):
            report.warnings.append("file_name should start with 'design-'")

    @staticmethod
    def _check_template(template: str, report: ValidationReport) -> None:
        if len(template.strip()) < _MIN_TEMPLATE_LENGTH:
            report.warnings.append("prompt_template is very short")
        for variable in _TEMPLATE_VARIABLES:
            if not re.search(r"{{\s*" + variable + r"\b", template):
                report.warnings.append(f"prompt_template does not reference '{{{{ {variable} }}}}'")
        if len(_BLOCK_OPEN.findall(template)) != len(_BLOCK_CLOSE.findall(template)):
            report.warnings.append("prompt_template has unbalanced block tags")

    @staticmethod
    def _check_rules(definition: CustomModuleDefinition, report: ValidationReport) -> None:
        rules = definition.detection_rules
        assert rules is not None
        if not isinstance(rules.keywords, list) or not all(isinstance(k, str) for k in rules.keywords):
            report.errors.append("detection_rules.keywords must be a list of strings")
        if not isinstance(rules.patterns, list):
            report.errors.append("detection_rules.patterns must be a list of strings")
        else:
            for pattern in rules.patterns:
                try:
                    re.compile(pattern)
                except (re.error, TypeError) as exc:
                    report.errors.append(f"invalid detection pattern {pattern!r}: {exc}")
        if not isinstance(rules.default_applicable, bool):
            report.errors.append("detection_rules.default_applicable must be a boolean")


__all__ = ["CustomModuleValidator", "ValidationReport"]

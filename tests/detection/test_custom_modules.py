"""Tests for custom module validation."""

from __future__ import annotations

from modspec.detection.custom_modules import CustomModuleValidator
from modspec.models import CustomModuleDefinition, DetectionRule

TEMPLATE = (
    "Write the security design for {{ spec_name }}. Cover threat model, authentication, "
    "authorisation and data protection.\n\n{{ requirements }}\n"
    "{% if related_modules %}Stay consistent with the other modules.{% endif %}"
)


def _definition(**overrides: object) -> CustomModuleDefinition:
    values = {
        "type": "security",
        "name": "Security Design",
        "file_name": "design-security.md",
        "prompt_template": TEMPLATE,
    }
    values.update(overrides)
    return CustomModuleDefinition(**values)  # type: ignore[arg-type]


def test_valid_definition_has_no_findings() -> None:
    report = CustomModuleValidator().validate(_definition())

    assert report.valid
    assert report.warnings == []


def test_type_must_be_kebab_case() -> None:
    report = CustomModuleValidator().validate(_definition(type="Security_Module"))

    assert not report.valid
    assert any("kebab-case" in error for error in report.errors)


def test_builtin_type_collision_is_a_warning() -> None:
    report = CustomModuleValidator().validate(_definition(type="frontend"))

    assert report.valid
    assert any("built-in" in warning for warning in report.warnings)


def test_file_name_rules() -> None:
    validator = CustomModuleValidator()

    separators = validator.validate(_definition(file_name="docs/design-security.md"))
    illegal = validator.validate(_definition(file_name="design-sec?.md"))
    style = validator.validate(_definition(file_name="security.txt"))

    assert any("separators" in error for error in separators.errors)
    assert any("illegal" in error for error in illegal.errors)
    assert style.valid
    assert len(style.warnings) == 2


def test_missing_fields_are_errors() -> None:
    report = CustomModuleValidator().validate(_definition(type="", name=" ", file_name=""))

    assert report.errors == ["type is required", "name is required", "file_name is required"]


def test_template_warnings() -> None:
    report = CustomModuleValidator().validate(
        _definition(prompt_template="Short {% if x %}template")
    )

    assert report.valid
    assert any("very short" in warning for warning in report.warnings)
    assert any("unbalanced" in warning for warning in report.warnings)
    assert any("requirements" in warning for warning in report.warnings)


def test_invalid_detection_pattern_is_an_error() -> None:
    report = CustomModuleValidator().validate(
        _definition(detection_rules=DetectionRule(keywords=["auth"], patterns=["(unclosed"]))
    )

    assert not report.valid
    assert any("invalid detection pattern" in error for error in report.errors)


def test_validate_all_reports_duplicates() -> None:
    report = CustomModuleValidator().validate_all([_definition(), _definition()])

    assert not report.valid
    assert report.errors == ["security: duplicate module type"]

"""Tests for modspec.detection.detector."""

from __future__ import annotations

import pytest

from modspec.detection.detector import DEFAULT_RULES, ModuleDetector
from modspec.models import CustomModuleDefinition, DetectionRule, ModuleType

DEFAULT_APPLICABLE = {
    ModuleType.FRONTEND,
    ModuleType.SERVER_API,
    ModuleType.SERVER_LOGIC,
    ModuleType.SERVER_DATABASE,
    ModuleType.TESTING,
}


def test_default_rules_cover_every_module_type() -> None:
    assert set(DEFAULT_RULES) == set(ModuleType)


def test_detect_rest_api_with_postgres() -> None:
    detector = ModuleDetector()

    detected = detector.detect("Implement REST API endpoints with PostgreSQL storage")

    assert {
        ModuleType.SERVER_API,
        ModuleType.SERVER_LOGIC,
        ModuleType.SERVER_DATABASE,
        ModuleType.TESTING,
    } <= detected
    assert ModuleType.MOBILE not in detected


def test_detect_is_deterministic() -> None:
    detector = ModuleDetector()
    text = "Build a React dashboard backed by a GraphQL server"

    assert detector.detect(text) == detector.detect(text)
    assert detector.detect_ordered(text) == detector.detect_ordered(text)


def test_empty_input_yields_only_default_applicable_types() -> None:
    assert ModuleDetector().detect("") == DEFAULT_APPLICABLE


def test_mobile_detected_from_keyword_and_pattern() -> None:
    detector = ModuleDetector()

    assert ModuleType.MOBILE in detector.detect("Ship an Android companion")
    assert ModuleType.MOBILE in detector.detect("需要开发移动应用")


def test_testing_always_applicable_even_when_rule_overridden() -> None:
    detector = ModuleDetector()
    detector.add_rule(ModuleType.TESTING, DetectionRule(keywords=["never-matches"], default_applicable=False))

    assert ModuleType.TESTING in detector.detect("nothing relevant")
    assert detector.is_applicable("nothing relevant", ModuleType.TESTING)


def test_detect_ordered_follows_registry_order() -> None:
    ordered = ModuleDetector().detect_ordered("mobile app with a database")

    assert ordered == [
        ModuleType.FRONTEND,
        ModuleType.MOBILE,
        ModuleType.SERVER_API,
        ModuleType.SERVER_LOGIC,
        ModuleType.SERVER_DATABASE,
        ModuleType.TESTING,
    ]


def test_custom_module_without_rule_requires_explicit_mention() -> None:
    detector = ModuleDetector(
        [CustomModuleDefinition(type="devops", name="DevOps Design", file_name="design-devops.md")]
    )

    assert "devops" not in detector.detect("Plain CRUD service")
    assert "devops" in detector.detect("Needs a DevOps pipeline")
    assert detector.is_custom_module("devops")
    assert detector.custom_module_types() == ["devops"]


def test_custom_module_with_own_rule() -> None:
    definition = CustomModuleDefinition(
        type="ml-pipeline",
        name="ML Pipeline",
        file_name="design-ml-pipeline.md",
        detection_rules=DetectionRule(keywords=["training"], patterns=[r"feature\s+store"]),
    )
    detector = ModuleDetector([definition])

    assert detector.is_applicable("Nightly model training", "ml-pipeline")
    assert detector.is_applicable("Backed by a feature  store", "ml-pipeline")
    assert not detector.is_applicable("Static marketing site", "ml-pipeline")


def test_reset_rules_drops_custom_modules() -> None:
    detector = ModuleDetector(
        [CustomModuleDefinition(type="devops", name="DevOps", file_name="design-devops.md")]
    )
    detector.reset_rules()

    assert not detector.is_custom_module("devops")
    stats = detector.stats()
    assert stats.total_rules == len(ModuleType)
    assert stats.custom_modules == 0
    assert stats.default_applicable_modules == 5


def test_get_rule_returns_copy() -> None:
    detector = ModuleDetector()
    rule = detector.get_rule(ModuleType.FRONTEND)
    assert rule is not None
    rule.keywords.clear()
    detector.rules()[ModuleType.FRONTEND].patterns.clear()

    stored = detector.get_rule(ModuleType.FRONTEND)
    assert stored.keywords
    assert stored.patterns


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Users browse products in the browser", ModuleType.FRONTEND),
        ("Nightly reconciliation workflow", ModuleType.SERVER_LOGIC),
        ("Cache sessions in Redis", ModuleType.SERVER_DATABASE),
    ],
)
def test_is_applicable_by_keyword(text: str, expected: ModuleType) -> None:
    assert ModuleDetector().is_applicable(text, expected)

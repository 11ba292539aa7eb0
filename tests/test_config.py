"""Tests for modspec.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from modspec.config import LLMConfig, ModSpecConfig, load_config
from modspec.errors import ConfigurationError


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, ModSpecConfig)
    assert config.root == tmp_path.resolve()
    assert config.specs_path == ".claude/specs"
    assert config.specs_dir == tmp_path.resolve() / ".claude" / "specs"
    assert config.llm is None
    settings = config.modular_design
    assert settings.default_modules == [
        "frontend",
        "server-api",
        "server-logic",
        "server-database",
        "testing",
    ]
    assert settings.file_naming_pattern == "design-{moduleType}.md"
    assert settings.auto_detect_modules
    assert settings.parallel_generation
    assert settings.max_concurrency == 4
    assert settings.cache_ttl_ms == 300_000
    assert settings.custom_modules == []


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".modspec.yml"
    config_file.write_text(
        """
paths:
  specs: "docs/specs"
llm:
  runner: "ollama"
  model: "llama3:8b-instruct"
  temperature: 0.15
  max_tokens: 2048
  base_url: "http://localhost:12434/engines/v1"
  request_timeout: 60
  max_retries: 2
modular_design:
  default_modules: [server-api, testing]
  auto_detect_modules: false
  parallel_generation: "no"
  max_concurrency: 2
  cache_enabled: true
  cache_ttl_ms: 1000
  validate_cross_references: false
  custom_modules:
    - type: security
      name: Security Design
      file_name: design-security.md
      icon: shield
      detection_rules:
        keywords: [auth, oauth]
        patterns: ['access\\s+control']
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.specs_path == "docs/specs"
    assert config.llm == LLMConfig(
        runner="ollama",
        model="llama3:8b-instruct",
        temperature=0.15,
        max_tokens=2048,
        base_url="http://localhost:12434/engines/v1",
        request_timeout=60.0,
        max_retries=2,
    )
    settings = config.modular_design
    assert settings.default_modules == ["server-api", "testing"]
    assert not settings.auto_detect_modules
    assert not settings.parallel_generation
    assert settings.max_concurrency == 2
    assert settings.cache_ttl_ms == 1000
    assert not settings.validate_cross_references
    assert settings.warn_on_inconsistencies
    (security,) = settings.custom_modules
    assert security.type == "security"
    assert security.icon == "shield"
    assert security.detection_rules is not None
    assert security.detection_rules.keywords == ["auth", "oauth"]
    assert security.detection_rules.patterns == [r"access\s+control"]


def test_empty_file_yields_defaults(tmp_path: Path) -> None:
    (tmp_path / ".modspec.yml").write_text("   \n", encoding="utf-8")

    assert load_config(tmp_path).modular_design.max_concurrency == 4


@pytest.mark.parametrize(
    "content, message",
    [
        ("modular_design: [unclosed", "Failed to parse"),
        ("- just\n- a list\n", "mapping"),
        ("modular_design:\n  file_naming_pattern: 'design.md'\n", "moduleType"),
        ("modular_design:\n  max_concurrency: 0\n", "max_concurrency"),
        ("modular_design:\n  custom_modules: security\n", "must be a list"),
        (
            "modular_design:\n  custom_modules:\n    - type: Bad_Type\n      name: Bad\n"
            "      file_name: design-bad.md\n",
            "kebab-case",
        ),
    ],
)
def test_invalid_config_raises(tmp_path: Path, content: str, message: str) -> None:
    (tmp_path / ".modspec.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError) as excinfo:
        load_config(tmp_path)

    assert message in str(excinfo.value)


def test_missing_workspace_root_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing" / ".modspec.yml")


def test_negative_retry_count_is_clamped(tmp_path: Path) -> None:
    (tmp_path / ".modspec.yml").write_text("llm:\n  max_retries: -3\n", encoding="utf-8")

    config = load_config(tmp_path)

    assert config.llm is not None
    assert config.llm.max_retries == 0

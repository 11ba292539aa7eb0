"""Keyword and pattern based detection of applicable design modules."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Pattern, Set

from ..logging import get_logger
from ..models import CustomModuleDefinition, DetectionRule, ModuleKey, ModuleType, coerce_module_type
from ..modules import STANDARD_MODULE_ORDER

DEFAULT_RULES: Dict[ModuleType, DetectionRule] = {
    ModuleType.FRONTEND: DetectionRule(
        keywords=[
            "frontend", "web", "ui", "user interface", "react", "vue",
            "angular", "component", "page", "view", "browser", "html",
            "css", "javascript", "typescript", "webpack", "vite",
            "nextjs", "nuxt", "svelte", "ember", "backbone",
            "前端", "界面", "网页", "组件", "页面", "浏览器", "用户界面", "网站",
        ],
        patterns=[
            r"web\s+application",
            r"user\s+interface",
            r"frontend\s+component",
            r"前端(\s+)?应用",
            r"网页(\s+)?应用",
        ],
        default_applicable=True,
    ),
    ModuleType.MOBILE: DetectionRule(
        keywords=[
            "mobile", "ios", "android", "react native", "flutter",
            "native app", "phone", "tablet", "mobile app", "swift", "kotlin",
            "objective-c", "xamarin", "ionic", "cordova", "capacitor",
            "mobile platform", "smartphone",
            "移动端", "手机", "移动应用", "安卓", "苹果", "原生应用", "混合应用", "平板", "手机应用",
        ],
        patterns=[
            r"mobile\s+app",
            r"(ios|android)\s+app",
            r"native\s+app",
            r"移动(\s+)?应用",
            r"手机(\s+)?应用",
            r"原生(\s+)?应用",
        ],
        default_applicable=False,
    ),
    ModuleType.SERVER_API: DetectionRule(
        keywords=[
            "api", "endpoint", "rest", "graphql", "http", "request",
            "response", "server", "backend", "route", "controller",
            "express", "fastify", "koa", "nestjs", "restful",
            "microservice", "service", "grpc", "websocket",
            "接口", "后端", "服务端", "端点", "服务器", "后台", "微服务",
        ],
        patterns=[
            r"api\s+endpoint",
            r"rest\s+api",
            r"backend\s+api",
            r"后端(\s+)?接口",
            r"服务端(\s+)?接口",
            r"RESTful",
        ],
        default_applicable=True,
    ),
    ModuleType.SERVER_LOGIC: DetectionRule(
        keywords=[
            "business logic", "service", "backend", "server", "processing",
            "calculation", "workflow", "algorithm", "service layer",
            "domain logic", "use case", "handler", "processor", "manager",
            "orchestration",
            "业务逻辑", "服务层", "处理", "计算", "工作流", "业务规则", "领域逻辑", "业务处理", "数据处理",
        ],
        patterns=[
            r"business\s+logic",
            r"service\s+layer",
            r"domain\s+logic",
            r"业务(\s+)?逻辑",
            r"服务(\s+)?层",
        ],
        default_applicable=True,
    ),
    ModuleType.SERVER_DATABASE: DetectionRule(
        keywords=[
            "database", "db", "sql", "nosql", "mongodb", "postgresql",
            "mysql", "redis", "model", "schema", "entity", "table",
            "collection", "orm", "sequelize", "typeorm", "prisma",
            "mongoose", "knex", "storage", "persistence",
            "数据库", "数据模型", "表", "实体", "存储", "持久化", "数据存储", "数据层",
        ],
        patterns=[
            r"database\s+schema",
            r"data\s+model",
            r"(sql|nosql)\s+database",
            r"数据库(\s+)?模式",
            r"数据(\s+)?模型",
            r"实体(\s+)?模型",
        ],
        default_applicable=True,
    ),
    ModuleType.TESTING: DetectionRule(
        keywords=[
            "test", "testing", "qa", "quality", "unit test",
            "integration test", "e2e", "jest", "mocha", "cypress",
            "playwright", "vitest", "jasmine", "karma", "selenium",
            "test driven", "tdd", "bdd", "coverage",
            "测试", "单元测试", "集成测试", "端到端测试", "测试驱动", "测试覆盖", "质量保证",
        ],
        patterns=[
            r"test\s+case",
            r"testing\s+strategy",
            r"unit\s+test",
            r"integration\s+test",
            r"测试(\s+)?用例",
            r"测试(\s+)?策略",
            r"单元(\s+)?测试",
        ],
        default_applicable=True,
    ),
}

# Every feature gets a test plan regardless of its rule.
ALWAYS_APPLICABLE: Set[ModuleKey] = {ModuleType.TESTING}


@dataclass
class DetectionStats:
    total_rules: int
    standard_modules: int
    custom_modules: int
    default_applicable_modules: int


@dataclass
class _CompiledRule:
    rule: DetectionRule
    keywords: List[str]
    patterns: List[Pattern[str]]


def _copy_rule(rule: DetectionRule) -> DetectionRule:
    return replace(rule, keywords=list(rule.keywords), patterns=list(rule.patterns))


class ModuleDetector:
    """Decides which module types a requirements document calls for.

    Detection is pure string work: a type applies when one of its keywords
    occurs in the text (case-insensitive substring), when one of its
    patterns matches, or when its rule is marked default-applicable.
    """

    def __init__(self, custom_modules: Iterable[CustomModuleDefinition] = ()) -> None:
        self.logger = get_logger("detector")
        self._custom: Dict[str, CustomModuleDefinition] = {}
        self._rules: Dict[ModuleKey, _CompiledRule] = {}
        self._install_defaults()
        self.update_custom_rules(custom_modules)

    def detect(self, requirements: str) -> Set[ModuleKey]:
        return set(self.detect_ordered(requirements))

    def detect_ordered(self, requirements: str) -> List[ModuleKey]:
        """Applicable module types in registry order."""
        lowered = (requirements or "").lower()
        detected: List[ModuleKey] = []
        for module_type, compiled in self._rules.items():
            if module_type in ALWAYS_APPLICABLE or self._matches(compiled, lowered, requirements or ""):
                detected.append(module_type)
        self.logger.debug("Detected modules: %s", ", ".join(str(item) for item in detected))
        return detected

    def is_applicable(self, requirements: str, module_type: ModuleKey) -> bool:
        key = coerce_module_type(module_type)
        if key in ALWAYS_APPLICABLE:
            return True
        compiled = self._rules.get(key)
        if compiled is None:
            return False
        return self._matches(compiled, (requirements or "").lower(), requirements or "")

    def add_rule(self, module_type: ModuleKey, rule: DetectionRule) -> None:
        """Register or replace the rule for a module type."""
        self._rules[coerce_module_type(module_type)] = self._compile(rule)

    def get_rule(self, module_type: ModuleKey) -> Optional[DetectionRule]:
        compiled = self._rules.get(coerce_module_type(module_type))
        return _copy_rule(compiled.rule) if compiled else None

    def rules(self) -> Dict[ModuleKey, DetectionRule]:
        return {key: _copy_rule(compiled.rule) for key, compiled in self._rules.items()}

    def update_custom_rules(self, custom_modules: Iterable[CustomModuleDefinition]) -> None:
        for key in list(self._custom):
            self._rules.pop(key, None)
        self._custom = {}
        for definition in custom_modules:
            rule = definition.detection_rules or DetectionRule(
                keywords=[definition.type, definition.name],
                patterns=[],
                default_applicable=False,
            )
            self._custom[definition.type] = definition
            self._rules[coerce_module_type(definition.type)] = self._compile(rule)

    def reset_rules(self) -> None:
        """Drop custom and ad-hoc rules, keeping the built-in defaults."""
        self._custom = {}
        self._rules = {}
        self._install_defaults()

    def is_custom_module(self, module_type: ModuleKey) -> bool:
        return str(module_type) in self._custom

    def custom_module_types(self) -> List[str]:
        return list(self._custom)

    def stats(self) -> DetectionStats:
        standard = sum(1 for key in self._rules if isinstance(key, ModuleType))
        return DetectionStats(
            total_rules=len(self._rules),
            standard_modules=standard,
            custom_modules=len(self._rules) - standard,
            default_applicable_modules=sum(
                1 for compiled in self._rules.values() if compiled.rule.default_applicable
            ),
        )

    def _install_defaults(self) -> None:
        for module_type in STANDARD_MODULE_ORDER:
            self._rules[module_type] = self._compile(DEFAULT_RULES[module_type])

    @staticmethod
    def _compile(rule: DetectionRule) -> _CompiledRule:
        return _CompiledRule(
            rule=_copy_rule(rule),
            keywords=[keyword.lower() for keyword in rule.keywords if keyword],
            patterns=[re.compile(pattern, re.IGNORECASE) for pattern in rule.patterns],
        )

    @staticmethod
    def _matches(compiled: _CompiledRule, lowered: str, original: str) -> bool:
        if any(keyword in lowered for keyword in compiled.keywords):
            return True
        if any(pattern.search(original) for pattern in compiled.patterns):
            return True
        return compiled.rule.default_applicable


__all__ = ["ALWAYS_APPLICABLE", "DEFAULT_RULES", "DetectionStats", "ModuleDetector"]

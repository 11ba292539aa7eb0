"""Pattern-based cross-module reference extraction and consistency checks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Pattern, Sequence, Set, Tuple

from ..logging import get_logger
from ..models import (
    CrossLink,
    Inconsistency,
    ModuleKey,
    ModuleType,
    Reference,
    ReferenceMap,
    SourceLocation,
    coerce_module_type,
)

API_CALL = "api-call"
DATA_MODEL = "data-model"
COMPONENT = "component"
SERVICE = "service"
TEST_TARGET = "test-target"

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

_QUOTE = "[`'\"]"
_NOT_QUOTE = "[^`'\"]"


@dataclass(frozen=True)
class ReferencePattern:
    name: str
    reference_type: str
    target_module: ModuleType
    regex: Pattern[str]


REFERENCE_PATTERNS: Sequence[ReferencePattern] = (
    ReferencePattern(
        "API Endpoint",
        API_CALL,
        ModuleType.SERVER_API,
        re.compile(rf"(?:GET|POST|PUT|DELETE|PATCH)\s+{_QUOTE}(/api/{_NOT_QUOTE}+){_QUOTE}", re.IGNORECASE),
    ),
    ReferencePattern(
        "Fetch Call",
        API_CALL,
        ModuleType.SERVER_API,
        re.compile(rf"fetch\s*\(\s*{_QUOTE}({_NOT_QUOTE}+){_QUOTE}", re.IGNORECASE),
    ),
    ReferencePattern(
        "Axios Call",
        API_CALL,
        ModuleType.SERVER_API,
        re.compile(
            rf"axios\s*\.\s*(?:get|post|put|delete|patch)\s*\(\s*{_QUOTE}({_NOT_QUOTE}+){_QUOTE}",
            re.IGNORECASE,
        ),
    ),
    ReferencePattern(
        "Data Model",
        DATA_MODEL,
        ModuleType.SERVER_DATABASE,
        re.compile(rf"(?:model|entity):\s*{_QUOTE}?(\w+){_QUOTE}?", re.IGNORECASE),
    ),
    ReferencePattern(
        "Schema",
        DATA_MODEL,
        ModuleType.SERVER_DATABASE,
        re.compile(rf"schema:\s*{_QUOTE}?(\w+){_QUOTE}?", re.IGNORECASE),
    ),
    ReferencePattern(
        "Component Import",
        COMPONENT,
        ModuleType.FRONTEND,
        re.compile(rf"import\s+\{{?\s*(\w+)\s*\}}?\s+from\s+{_QUOTE}.*/components/", re.IGNORECASE),
    ),
    ReferencePattern(
        "Component Usage",
        COMPONENT,
        ModuleType.FRONTEND,
        re.compile(r"<(\w+Component)\s*/?>", re.IGNORECASE),
    ),
    ReferencePattern(
        "Service",
        SERVICE,
        ModuleType.SERVER_LOGIC,
        re.compile(rf"service:\s*{_QUOTE}?(\w+){_QUOTE}?", re.IGNORECASE),
    ),
    ReferencePattern(
        "Business Logic",
        SERVICE,
        ModuleType.SERVER_LOGIC,
        re.compile(rf"businessLogic:\s*{_QUOTE}?(\w+){_QUOTE}?", re.IGNORECASE),
    ),
    ReferencePattern(
        "Test Target",
        TEST_TARGET,
        ModuleType.TESTING,
        re.compile(rf"\b(?:test|describe|it)\s*\(\s*{_QUOTE}({_NOT_QUOTE}+){_QUOTE}", re.IGNORECASE),
    ),
)

_API_VERB = re.compile(r"^(GET|POST|PUT|DELETE|PATCH)\b", re.IGNORECASE)

CROSS_LINK_TABLE: Dict[ModuleType, Tuple[Tuple[ModuleType, str], ...]] = {
    ModuleType.FRONTEND: (
        (ModuleType.SERVER_API, "Frontend pages call these API endpoints"),
        (ModuleType.TESTING, "UI behaviour is covered by these tests"),
    ),
    ModuleType.MOBILE: (
        (ModuleType.SERVER_API, "Mobile screens call these API endpoints"),
        (ModuleType.TESTING, "Mobile flows are covered by these tests"),
    ),
    ModuleType.SERVER_API: (
        (ModuleType.SERVER_LOGIC, "Endpoints delegate to these services"),
        (ModuleType.SERVER_DATABASE, "Endpoints read and write these models"),
        (ModuleType.TESTING, "Endpoints are covered by these contract tests"),
    ),
    ModuleType.SERVER_LOGIC: (
        (ModuleType.SERVER_DATABASE, "Services persist data through these models"),
        (ModuleType.TESTING, "Business rules are covered by these tests"),
    ),
    ModuleType.SERVER_DATABASE: (
        (ModuleType.TESTING, "Data integrity is covered by these tests"),
    ),
}

TESTING_LINK_REASON = "Tests exercise the {module} design"


def _default_file_name(module_type: ModuleKey) -> str:
    return f"design-{module_type}.md"


class CrossReferenceAnalyzer:
    """Finds references between module documents and checks they resolve.

    All matching is line based. A reference only counts as a definition
    when the target module's text contains it verbatim, as a heading, or as
    a declaration (``class``/``interface``/``const`` and friends).
    """

    def __init__(self, file_name: Callable[[ModuleKey], str] = _default_file_name) -> None:
        self._file_name = file_name
        self.logger = get_logger("crossref")

    def extract_references(self, module_type: ModuleKey, text: str) -> List[Reference]:
        file_name = self._file_name(module_type)
        references: List[Reference] = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            for pattern in REFERENCE_PATTERNS:
                for match in pattern.regex.finditer(line):
                    value = match.group(1) or match.group(0)
                    references.append(
                        Reference(
                            source_location=SourceLocation(
                                line=line_number, column=match.start() + 1, file_name=file_name
                            ),
                            target_module=pattern.target_module,
                            reference_text=value,
                            reference_type=pattern.reference_type,
                        )
                    )
        return references

    def analyze_references(self, module_texts: Mapping[ModuleKey, str]) -> ReferenceMap:
        reference_map: ReferenceMap = {}
        for source, text in module_texts.items():
            source_key = coerce_module_type(source)
            targets: Dict[ModuleKey, List[Reference]] = {}
            for reference in self.extract_references(source_key, text):
                targets.setdefault(reference.target_module, []).append(reference)
            reference_map[source_key] = targets
        return reference_map

    def detect_inconsistencies(self, module_texts: Mapping[ModuleKey, str]) -> List[Inconsistency]:
        texts = {coerce_module_type(key): value for key, value in module_texts.items()}
        reference_map = self.analyze_references(texts)
        findings: List[Inconsistency] = []
        seen: Set[Tuple[str, str, str]] = set()

        def add(item: Inconsistency, reference_text: str) -> None:
            marker = (str(item.module1), str(item.module2), reference_text)
            if marker in seen:
                return
            seen.add(marker)
            findings.append(item)

        def refs(source: ModuleType, target: ModuleType, kind: str) -> Iterable[Reference]:
            return [
                ref
                for ref in reference_map.get(source, {}).get(target, [])
                if ref.reference_type == kind
            ]

        # A missing target module reads as empty text, so every reference into it is unresolved.
        api_text = texts.get(ModuleType.SERVER_API, "")
        for source in (ModuleType.FRONTEND, ModuleType.MOBILE):
            for ref in refs(source, ModuleType.SERVER_API, API_CALL):
                if not _endpoint_defined(ref.reference_text, api_text):
                    add(
                        Inconsistency(
                            module1=source,
                            module2=ModuleType.SERVER_API,
                            description=(
                                f"Endpoint '{ref.reference_text}' used in {source.value} "
                                f"(line {ref.source_location.line}) is not defined in the API design"
                            ),
                            severity=SEVERITY_ERROR,
                            suggestion=f"Document '{ref.reference_text}' in the server-api module",
                        ),
                        ref.reference_text,
                    )

        db_text = texts.get(ModuleType.SERVER_DATABASE, "")
        for source in (ModuleType.SERVER_API, ModuleType.SERVER_LOGIC):
            for ref in refs(source, ModuleType.SERVER_DATABASE, DATA_MODEL):
                if not _model_defined(ref.reference_text, db_text):
                    add(
                        Inconsistency(
                            module1=source,
                            module2=ModuleType.SERVER_DATABASE,
                            description=(
                                f"Data model '{ref.reference_text}' referenced in {source.value} "
                                "is not defined in the database design"
                            ),
                            severity=SEVERITY_WARNING,
                            suggestion=f"Add a '{ref.reference_text}' model to the database module",
                        ),
                        ref.reference_text,
                    )

        frontend_text = texts.get(ModuleType.FRONTEND, "")
        for ref in refs(ModuleType.FRONTEND, ModuleType.FRONTEND, COMPONENT):
            if not _symbol_defined(ref.reference_text, frontend_text, ("function", "const", "class")):
                add(
                    Inconsistency(
                        module1=ModuleType.FRONTEND,
                        module2=ModuleType.FRONTEND,
                        description=f"Component '{ref.reference_text}' is used but never defined",
                        severity=SEVERITY_WARNING,
                        suggestion=f"Describe the '{ref.reference_text}' component",
                    ),
                    ref.reference_text,
                )

        logic_text = texts.get(ModuleType.SERVER_LOGIC, "")
        for ref in refs(ModuleType.SERVER_API, ModuleType.SERVER_LOGIC, SERVICE):
            if not _symbol_defined(ref.reference_text, logic_text, ("class", "interface", "service")):
                add(
                    Inconsistency(
                        module1=ModuleType.SERVER_API,
                        module2=ModuleType.SERVER_LOGIC,
                        description=(
                            f"Service '{ref.reference_text}' referenced by the API is not defined "
                            "in the business logic design"
                        ),
                        severity=SEVERITY_WARNING,
                        suggestion=f"Add a '{ref.reference_text}' service to the server-logic module",
                    ),
                    ref.reference_text,
                )

        if findings:
            self.logger.debug("Found %d cross-module inconsistencies", len(findings))
        return findings

    def generate_cross_links(
        self, module_type: ModuleKey, module_texts: Mapping[ModuleKey, str]
    ) -> List[CrossLink]:
        key = coerce_module_type(module_type)
        present = [coerce_module_type(item) for item in module_texts]
        if key is ModuleType.TESTING:
            # Tests link to every other module present, custom ones included.
            return [
                CrossLink(
                    target_module=target,
                    link_text=self._file_name(target),
                    reason=TESTING_LINK_REASON.format(module=str(target)),
                )
                for target in present
                if target is not ModuleType.TESTING
            ]
        if not isinstance(key, ModuleType):
            return []
        return [
            CrossLink(target_module=target, link_text=self._file_name(target), reason=reason)
            for target, reason in CROSS_LINK_TABLE[key]
            if target in present
        ]


def _endpoint_defined(endpoint: str, api_text: str) -> bool:
    path = endpoint.split("?", 1)[0]
    verb_match = _API_VERB.match(path)
    if verb_match:
        path = path[verb_match.end():].strip()
    if path in api_text:
        return True
    heading = re.compile(
        rf"^#{{1,6}}\s+(?:GET|POST|PUT|DELETE|PATCH)\s+{re.escape(path)}\b",
        re.IGNORECASE | re.MULTILINE,
    )
    return bool(heading.search(api_text))


def _model_defined(name: str, db_text: str) -> bool:
    escaped = re.escape(name)
    patterns = (
        rf"\b(?:class|interface|model|entity)\s+{escaped}\b",
        rf"^#{{1,6}}\s+{escaped}\s+(?:Model|Entity|Schema)\b",
        rf"^#{{1,6}}\s+{escaped}\b",
    )
    return any(re.search(pattern, db_text, re.IGNORECASE | re.MULTILINE) for pattern in patterns)


def _symbol_defined(name: str, text: str, keywords: Sequence[str]) -> bool:
    escaped = re.escape(name)
    patterns = (
        rf"\b(?:{'|'.join(keywords)})\s+{escaped}\b",
        rf"^#{{1,6}}\s+.*\b{escaped}\b",
        rf"\b{escaped}\s*[=:]",
    )
    return any(re.search(pattern, text, re.IGNORECASE | re.MULTILINE) for pattern in patterns)


__all__ = [
    "API_CALL",
    "COMPONENT",
    "CROSS_LINK_TABLE",
    "CrossReferenceAnalyzer",
    "DATA_MODEL",
    "REFERENCE_PATTERNS",
    "ReferencePattern",
    "SERVICE",
    "SEVERITY_ERROR",
    "SEVERITY_WARNING",
    "TESTING_LINK_REASON",
    "TEST_TARGET",
]

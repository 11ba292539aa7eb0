"""Cross-module reference analysis."""

from .cross_reference import CROSS_LINK_TABLE, REFERENCE_PATTERNS, CrossReferenceAnalyzer

__all__ = ["CROSS_LINK_TABLE", "CrossReferenceAnalyzer", "REFERENCE_PATTERNS"]

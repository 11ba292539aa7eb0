"""Module applicability detection and custom module validation."""

from .custom_modules import CustomModuleValidator, ValidationReport
from .detector import DEFAULT_RULES, DetectionStats, ModuleDetector

__all__ = [
    "CustomModuleValidator",
    "DEFAULT_RULES",
    "DetectionStats",
    "ModuleDetector",
    "ValidationReport",
]

"""Modular design document management: detection, generation, review and migration."""

from .models import GenerateOptions, GenerationResult, ModuleType, WorkflowState
from .orchestrator import ModuleOrchestrator

__version__ = "0.1.0"

__all__ = [
    "GenerateOptions",
    "GenerationResult",
    "ModuleOrchestrator",
    "ModuleType",
    "WorkflowState",
    "__version__",
]

"""Prompt construction and module generation."""

from .builder import PromptBuilder
from .constants import MODULE_TEMPLATES, SYSTEM_PROMPT
from .generator import ContentGenerator, ModuleGenerator

__all__ = [
    "ContentGenerator",
    "MODULE_TEMPLATES",
    "ModuleGenerator",
    "PromptBuilder",
    "SYSTEM_PROMPT",
]

"""Prompt template names and shared prompt text."""

from __future__ import annotations

from typing import Dict

from ..models import ModuleType

MODULE_TEMPLATES: Dict[ModuleType, str] = {
    ModuleType.FRONTEND: "modules/frontend.j2",
    ModuleType.MOBILE: "modules/mobile.j2",
    ModuleType.SERVER_API: "modules/server-api.j2",
    ModuleType.SERVER_LOGIC: "modules/server-logic.j2",
    ModuleType.SERVER_DATABASE: "modules/server-database.j2",
    ModuleType.TESTING: "modules/testing.j2",
}

CUSTOM_MODULE_TEMPLATE = "modules/custom.j2"

SYSTEM_PROMPT = (
    "You are a senior software architect writing design documents. Be precise, "
    "structured and consistent with the requirements and with sibling documents. "
    "Respond with Markdown only."
)

__all__ = ["CUSTOM_MODULE_TEMPLATE", "MODULE_TEMPLATES", "SYSTEM_PROMPT"]

"""Module content generation on top of a pluggable content generator."""

from __future__ import annotations

from typing import Mapping, Optional, Protocol

from ..errors import GenerationError
from ..logging import get_logger
from ..models import ModuleKey
from .builder import PromptBuilder


class ContentGenerator(Protocol):
    """Anything that turns a prompt into text, asynchronously."""

    async def generate(self, prompt: str) -> str: ...


class ModuleGenerator:
    """Builds the module prompt and awaits the content generator once.

    Failures are re-raised as :class:`GenerationError` tagged with the module
    type. Retrying is left to callers.
    """

    def __init__(self, content_generator: ContentGenerator, prompt_builder: PromptBuilder) -> None:
        self.content_generator = content_generator
        self.prompt_builder = prompt_builder
        self.logger = get_logger("generator")

    async def generate(
        self,
        feature: str,
        module_type: ModuleKey,
        requirements: str,
        related_modules: Optional[Mapping[ModuleKey, str]] = None,
    ) -> str:
        prompt = self.prompt_builder.build(feature, module_type, requirements, related_modules)
        self.logger.debug("Generating %s for %s (%d prompt chars)", module_type, feature, len(prompt))
        try:
            content = await self.content_generator.generate(prompt)
        except GenerationError as exc:
            if exc.module_type is None:
                exc.module_type = str(module_type)
            raise
        except Exception as exc:
            raise GenerationError(
                f"Failed to generate {module_type}: {exc}", module_type=str(module_type)
            ) from exc
        if not content or not content.strip():
            raise GenerationError(
                f"Content generator returned no text for {module_type}", module_type=str(module_type)
            )
        return content.strip() + "\n"


__all__ = ["ContentGenerator", "ModuleGenerator"]

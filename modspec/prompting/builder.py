"""Renders module-specific prompts from Jinja2 templates."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError

from ..errors import ConfigurationError
from ..models import ModuleKey, ModuleType, coerce_module_type
from ..modules import ModuleRegistry
from .constants import CUSTOM_MODULE_TEMPLATE, MODULE_TEMPLATES


class PromptBuilder:
    """Builds the prompt for one module type.

    Built-in types render ``templates/modules/<type>.j2``. Custom modules use
    their own ``prompt_template`` string when configured, otherwise the
    generic custom template. ``templates_dir`` entries take precedence over
    the bundled templates.
    """

    def __init__(self, registry: ModuleRegistry, templates_dir: Path | None = None) -> None:
        self.registry = registry
        default_dir = Path(__file__).with_name("templates")
        directories = [str(default_dir)]
        if templates_dir is not None and templates_dir != default_dir:
            directories.insert(0, str(templates_dir))
        self._env = Environment(
            loader=FileSystemLoader(directories),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def build(
        self,
        feature: str,
        module_type: ModuleKey,
        requirements: str,
        related_modules: Optional[Mapping[ModuleKey, str]] = None,
    ) -> str:
        key = coerce_module_type(module_type)
        context = {
            "spec_name": feature,
            "module_type": str(key),
            "module_name": self.registry.display_name(key),
            "requirements": requirements.strip(),
            "related_modules": self._related(related_modules),
        }
        try:
            if isinstance(key, ModuleType):
                template = self._env.get_template(MODULE_TEMPLATES[key])
            else:
                custom = self.registry.get_custom(key)
                if custom is not None and custom.prompt_template:
                    template = self._env.from_string(custom.prompt_template)
                else:
                    template = self._env.get_template(CUSTOM_MODULE_TEMPLATE)
            return template.render(**context).strip() + "\n"
        except TemplateError as exc:
            raise ConfigurationError(f"Prompt template for {key} failed to render: {exc}") from exc

    def _related(self, related: Optional[Mapping[ModuleKey, str]]) -> Dict[str, str]:
        if not related:
            return {}
        return {
            self.registry.display_name(module_type): content.strip()
            for module_type, content in related.items()
            if content and content.strip()
        }


__all__ = ["PromptBuilder"]

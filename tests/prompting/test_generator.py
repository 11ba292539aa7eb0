"""Tests for modspec.prompting.generator."""

from __future__ import annotations

import pytest

from modspec.errors import GenerationError
from modspec.models import ModuleType
from modspec.modules import ModuleRegistry
from modspec.prompting.builder import PromptBuilder
from modspec.prompting.generator import ModuleGenerator
from tests._fixtures.workspace import RecordingGenerator


class ExplodingGenerator:
    async def generate(self, prompt: str) -> str:
        raise RuntimeError("connection reset")


def _generator(content_generator) -> ModuleGenerator:
    return ModuleGenerator(content_generator, PromptBuilder(ModuleRegistry()))


@pytest.mark.asyncio
async def test_generate_returns_normalised_markdown() -> None:
    recorder = RecordingGenerator({"server-api": "\n# API\n\nEndpoints.  \n\n"})

    content = await _generator(recorder).generate("checkout", ModuleType.SERVER_API, "REST API")

    assert content == "# API\n\nEndpoints.\n"
    assert len(recorder.prompts) == 1
    assert "REST API" in recorder.prompts[0]


@pytest.mark.asyncio
async def test_generation_error_is_tagged_with_module_type() -> None:
    recorder = RecordingGenerator(fail_on={"mobile"})

    with pytest.raises(GenerationError) as excinfo:
        await _generator(recorder).generate("checkout", ModuleType.MOBILE, "iOS app")

    assert excinfo.value.module_type == "mobile"
    assert "model overloaded" in str(excinfo.value)


@pytest.mark.asyncio
async def test_unexpected_errors_are_wrapped() -> None:
    with pytest.raises(GenerationError) as excinfo:
        await _generator(ExplodingGenerator()).generate("checkout", ModuleType.TESTING, "x")

    assert excinfo.value.module_type == "testing"
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_blank_output_is_rejected() -> None:
    recorder = RecordingGenerator({"frontend": "   \n"})

    with pytest.raises(GenerationError):
        await _generator(recorder).generate("checkout", ModuleType.FRONTEND, "dashboard")

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterator

import pytest

from modspec.config import ModSpecConfig
from modspec.orchestrator import ModuleOrchestrator
from modspec.modules import ModuleRegistry
from tests._fixtures.workspace import MemoryDocumentStore, RecordingGenerator


@pytest.fixture
def store() -> MemoryDocumentStore:
    """Provide an empty in-memory document store."""
    return MemoryDocumentStore()


@pytest.fixture
def registry() -> ModuleRegistry:
    return ModuleRegistry()


@pytest.fixture
def make_orchestrator(
    tmp_path: Path, store: MemoryDocumentStore
) -> Callable[..., ModuleOrchestrator]:
    """Build an orchestrator over the in-memory store with an optional generator."""

    def _make(generator: RecordingGenerator | None = None, **settings: object) -> ModuleOrchestrator:
        config = ModSpecConfig(root=tmp_path)
        for name, value in settings.items():
            setattr(config.modular_design, name, value)
        return ModuleOrchestrator(config, generator or RecordingGenerator(), store=store)

    return _make


@pytest.fixture(autouse=True)
def _reset_modspec_logger() -> Iterator[None]:
    """Drop handlers the CLI attaches so later tests do not write to closed streams."""
    yield
    logger = logging.getLogger("modspec")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

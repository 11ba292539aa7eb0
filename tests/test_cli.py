"""CLI parser and command behaviour tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from modspec.cli import _build_parser, main
from modspec.orchestrator import ModuleOrchestrator
from tests._fixtures.workspace import MemoryDocumentStore, RecordingGenerator

FEATURE = "checkout"


@pytest.fixture
def run_cli(
    make_orchestrator: Callable[..., ModuleOrchestrator], store: MemoryDocumentStore
) -> Callable[..., None]:
    store.put(FEATURE, "requirements.md", "Implement REST API endpoints with PostgreSQL storage.")

    def _run(*argv: str, generator: RecordingGenerator | None = None) -> None:
        main(list(argv), orchestrator_factory=lambda root: make_orchestrator(generator))

    return _run


def test_cli_accepts_verbose_before_command() -> None:
    args = _build_parser().parse_args(["--verbose", "list", FEATURE])

    assert args.verbose is True
    assert args.command == "list"
    assert args.feature == FEATURE


def test_generate_accepts_repeated_modules() -> None:
    args = _build_parser().parse_args(
        ["generate", FEATURE, "-m", "frontend", "--module", "testing", "--force", "--sequential"]
    )

    assert args.modules == ["frontend", "testing"]
    assert args.force is True
    assert args.sequential is True
    assert args.with_related is False


def test_approve_accepts_reviewer() -> None:
    args = _build_parser().parse_args(["approve", FEATURE, "server-api", "--by", "dana"])

    assert (args.module, args.approved_by) == ("server-api", "dana")


def test_generate_then_approve_reaches_ready_state(
    run_cli: Callable[..., None], capsys: pytest.CaptureFixture[str]
) -> None:
    run_cli("generate", FEATURE, "-m", "server-api", "-m", "testing")
    assert "generated  server-api" in capsys.readouterr().out

    run_cli("approve", FEATURE, "server-api", "--by", "dana")
    run_cli("approve", FEATURE, "testing")
    capsys.readouterr()

    run_cli("status", FEATURE)
    out = capsys.readouterr().out
    assert ["server-api", "approved"] in [line.split() for line in out.splitlines()]
    assert out.rstrip().endswith("ready for tasks")


def test_generate_failure_exits_nonzero(
    run_cli: Callable[..., None], capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_cli("generate", FEATURE, "-m", "testing", generator=RecordingGenerator(fail_on={"testing"}))

    assert excinfo.value.code == 1
    assert "failed     testing" in capsys.readouterr().out


def test_show_and_update_module(
    run_cli: Callable[..., None],
    store: MemoryDocumentStore,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    source = tmp_path / "frontend.md"
    source.write_text("# Frontend\n\nDashboard.\n", encoding="utf-8")

    run_cli("update", FEATURE, "frontend", str(source))
    assert "frontend updated (sha256 " in capsys.readouterr().out
    assert store.text(FEATURE, "design-frontend.md") == "# Frontend\n\nDashboard.\n"

    run_cli("show", FEATURE, "frontend")
    assert capsys.readouterr().out == "# Frontend\n\nDashboard.\n"


def test_errors_are_reported_with_exit_code(
    run_cli: Callable[..., None], capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_cli("approve", FEATURE, "blockchain")

    assert excinfo.value.code == 1
    err = capsys.readouterr().err
    assert "modspec approve failed" in err
    assert "Unknown module type: blockchain" in err


def test_list_marks_existing_modules(
    run_cli: Callable[..., None], store: MemoryDocumentStore, capsys: pytest.CaptureFixture[str]
) -> None:
    store.put(FEATURE, "design-testing.md", "# Tests\n")

    run_cli("list", FEATURE)

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 6
    assert lines[-1].startswith("[x] testing")
    assert lines[0].startswith("[ ] frontend")

"""CLI entrypoints for modspec commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Callable

from .errors import ErrorHandler, ModSpecError
from .logging import configure_logging
from .models import GenerateOptions, WorkflowState
from .orchestrator import ModuleOrchestrator

OrchestratorFactory = Callable[[Path], ModuleOrchestrator]


def _add_feature(parser: argparse.ArgumentParser, *, with_module: bool = False) -> None:
    parser.add_argument("feature", help="Feature (spec) directory name.")
    if with_module:
        parser.add_argument("module", help="Module type, e.g. server-api or a custom type.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modspec",
        description="Generate, review and migrate modular design documents.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Increase log verbosity for troubleshooting.",
    )
    parser.add_argument(
        "--workspace",
        default=".",
        help="Workspace root containing .modspec.yml (defaults to current directory).",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate applicable design modules.")
    _add_feature(generate)
    generate.add_argument(
        "-m",
        "--module",
        action="append",
        dest="modules",
        default=None,
        help="Restrict generation to this module type (repeatable).",
    )
    generate.add_argument("--force", action="store_true", help="Overwrite existing modules.")
    generate.add_argument(
        "--sequential", action="store_true", help="Generate one module at a time."
    )
    generate.add_argument(
        "--with-related",
        action="store_true",
        help="Include existing sibling modules in the prompt.",
    )

    for name, help_text in (
        ("regenerate", "Regenerate one module; its review state resets."),
        ("show", "Print the content of one module."),
        ("reject", "Reject one module."),
        ("delete", "Delete one module and its metadata."),
        ("modified", "Report whether a module was edited outside modspec."),
    ):
        command = subparsers.add_parser(name, help=help_text)
        _add_feature(command, with_module=True)

    approve = subparsers.add_parser("approve", help="Approve one module.")
    _add_feature(approve, with_module=True)
    approve.add_argument("--by", dest="approved_by", default=None, help="Reviewer name.")

    update = subparsers.add_parser("update", help="Replace module content from a file.")
    _add_feature(update, with_module=True)
    update.add_argument("file", type=Path, help="Markdown file with the new content.")

    for name, help_text in (
        ("list", "List modules with their review state."),
        ("migrate", "Split a legacy design.md into modules."),
        ("analyze", "Check cross-module references."),
        ("status", "Show whether the feature can progress to tasks."),
    ):
        command = subparsers.add_parser(name, help=help_text)
        _add_feature(command)

    return parser


async def _dispatch(args: argparse.Namespace, orchestrator: ModuleOrchestrator) -> int:
    command = args.command
    feature = args.feature

    if command == "generate":
        result = await orchestrator.generate_modules(
            feature,
            GenerateOptions(
                module_types=args.modules,
                force_regenerate=args.force,
                parallel=False if args.sequential else None,
                include_related_modules=args.with_related,
            ),
        )
        for module_type in result.generated_modules:
            print(f"generated  {module_type}")
        for module_type in result.skipped_modules:
            print(f"skipped    {module_type} (exists; use --force)")
        for failure in result.failed_modules:
            print(f"failed     {failure.type}: {failure.error}")
        return 0 if result.success else 1
    if command == "regenerate":
        await orchestrator.regenerate_module(feature, args.module)
        print(f"{args.module} regenerated; pending review")
    elif command == "show":
        print(await orchestrator.get_module_content(feature, args.module), end="")
    elif command == "approve":
        await orchestrator.approve_module(feature, args.module, approved_by=args.approved_by)
        print(f"{args.module} approved")
    elif command == "reject":
        await orchestrator.reject_module(feature, args.module)
        print(f"{args.module} rejected")
    elif command == "delete":
        await orchestrator.delete_module(feature, args.module)
        print(f"{args.module} deleted")
    elif command == "modified":
        modified = await orchestrator.is_module_modified(feature, args.module)
        print("modified" if modified else "unchanged")
    elif command == "update":
        content = args.file.read_text(encoding="utf-8")
        checksum = await orchestrator.update_module(feature, args.module, content)
        print(f"{args.module} updated (sha256 {checksum[:12]})")
    elif command == "list":
        for info in await orchestrator.get_module_list(feature):
            marker = "x" if info.exists else " "
            state = info.workflow_state.value if info.exists else ""
            print(f"[{marker}] {str(info.type):<18} {info.file_name:<28} {state}")
    elif command == "migrate":
        result = await orchestrator.migrate_legacy_design(feature)
        for module_type in result.migrated_modules:
            print(f"migrated   {module_type}")
        for error in result.errors:
            print(f"failed     {error}")
        return 0 if result.success else 1
    elif command == "analyze":
        report = await orchestrator.analyze_references(feature)
        if not report.inconsistencies:
            print("No cross-module inconsistencies found")
        for item in report.inconsistencies:
            print(f"{item.severity:<8} {item.module1} -> {item.module2}: {item.description}")
        return 1 if any(item.severity == "error" for item in report.inconsistencies) else 0
    elif command == "status":
        ready = await orchestrator.can_progress_to_tasks(feature)
        states = {
            str(info.type): info.workflow_state
            for info in await orchestrator.get_module_list(feature)
            if info.workflow_state is not WorkflowState.NOT_GENERATED
        }
        for module_type, state in states.items():
            print(f"{module_type:<18} {state.value}")
        print("ready for tasks" if ready else "waiting for approvals")
    return 0


def main(
    argv: list[str] | None = None,
    *,
    orchestrator_factory: OrchestratorFactory = ModuleOrchestrator.from_workspace,
) -> None:
    """CLI entrypoint for modspec commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        orchestrator = orchestrator_factory(Path(args.workspace))
        code = asyncio.run(_dispatch(args, orchestrator))
    except ModSpecError as exc:
        context = ErrorHandler().handle(exc, operation=args.command, feature=args.feature)
        parser.exit(1, f"modspec {args.command} failed: {context.user_message}\n{exc}\n")
    except OSError as exc:
        parser.exit(1, f"modspec {args.command} failed: {exc}\n")
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main(sys.argv[1:])

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

from framework_edits.bootstrap.container import EditorContainer, build_container
from framework_edits.bootstrap.exception_handler import handle_unexpected_exception
from framework_edits.bootstrap.logging import configure_logging, install_exception_hook
from framework_edits.bootstrap.settings import resolve_log_dir
from framework_edits.core.errors import ValidationError
from framework_edits.domain.conflicts import ResolutionChoice
from framework_edits.domain.edit_tree import tree_to_dict
from framework_edits.domain.field_address import FieldAddress, FieldType
from framework_edits.domain.models import ImportBatch
from framework_edits.infrastructure.local_config import EditorConfigStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SESSION_ERROR = 1
EXIT_USAGE_ERROR = 2

Command = Callable[[EditorContainer, argparse.Namespace], Awaitable[int]]


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _session_exit(container: EditorContainer) -> int:
    error = container.session.error
    if error:
        print(f"Error: {error}", file=sys.stderr)
        return EXIT_SESSION_ERROR
    return EXIT_OK


async def _cmd_show(container: EditorContainer, args: argparse.Namespace) -> int:
    session = container.session
    await session.load()
    if session.error:
        return _session_exit(container)
    tree = tree_to_dict(session.edits)
    if args.asset is not None:
        _print_json(tree.get(str(args.asset), {}))
    else:
        _print_json(tree)
    return EXIT_OK


async def _cmd_set(container: EditorContainer, args: argparse.Namespace) -> int:
    try:
        address = FieldAddress.create(args.asset, FieldType(args.field), args.sub_id, args.sub_key)
    except (ValueError, ValidationError) as exc:
        print(f"Invalid field: {exc}", file=sys.stderr)
        return EXIT_USAGE_ERROR
    session = container.session
    await session.load()
    if session.error:
        return _session_exit(container)
    outcome = await session.save_edit(address, args.value)
    if outcome.ok:
        print(f"Saved {address.label()} on asset {address.asset_id}.")
    return _session_exit(container)


async def _cmd_clear(container: EditorContainer, args: argparse.Namespace) -> int:
    session = container.session
    await session.load()
    if session.error:
        return _session_exit(container)
    if await session.clear_asset_edits(args.asset):
        print(f"Cleared all edits on asset {args.asset}.")
    return _session_exit(container)


async def _cmd_sync(container: EditorContainer, args: argparse.Namespace) -> int:
    session = container.session
    outcome = await session.load()
    print(f"Load: {outcome.value}")
    for conflict in session.conflicts:
        print(f"Conflict: {conflict.describe()}")
    if session.conflicts and args.keep:
        await session.resolve_all_conflicts(ResolutionChoice(args.keep))
    elif session.conflicts:
        print("Conflicts left unresolved; rerun with --keep mine|theirs.", file=sys.stderr)
        return EXIT_SESSION_ERROR
    print(f"Assets with edits: {len(session.edits)}")
    return _session_exit(container)


async def _cmd_history(container: EditorContainer, args: argparse.Namespace) -> int:
    try:
        page = await container.history_service.fetch_history(args.asset)
    except ValidationError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE_ERROR
    if page.error:
        print(f"Error: {page.error}", file=sys.stderr)
        return EXIT_SESSION_ERROR
    if not page.records:
        print(f"No history for asset {args.asset}.")
    for record in page.records:
        marker = "*" if record.can_rollback else " "
        print(
            f"{marker} {record.id}  {record.created_at}  {record.address.label()}  "
            f"{record.action.value}: {record.old_value!r} -> {record.new_value!r}  ({record.admin_name})"
        )
    return EXIT_OK


async def _cmd_rollback(container: EditorContainer, args: argparse.Namespace) -> int:
    await container.session.load()
    result = await container.history_service.rollback(args.history_id)
    if not result.success:
        kind = result.error_kind.value if result.error_kind else "error"
        print(f"Rollback failed ({kind}): {result.error}", file=sys.stderr)
        return EXIT_SESSION_ERROR
    print(f"Rolled back history entry {args.history_id}.")
    return _session_exit(container)


async def _cmd_export(container: EditorContainer, args: argparse.Namespace) -> int:
    path = await container.session.export_edits()
    if path is None:
        return _session_exit(container)
    print(f"Exported to {path}")
    return EXIT_OK


async def _cmd_import(container: EditorContainer, args: argparse.Namespace) -> int:
    source = Path(args.file)
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
        batch = ImportBatch.from_dict(payload)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        print(f"Cannot read {source}: {exc}", file=sys.stderr)
        return EXIT_USAGE_ERROR
    summary = await container.session.import_edits(batch)
    if summary is not None:
        print(f"Imported {summary.imported} assets.")
    return _session_exit(container)


async def _cmd_migrate_legacy(container: EditorContainer, args: argparse.Namespace) -> int:
    importer = container.migration_importer(Path(args.dir) if args.dir else None)
    detection = importer.detect()
    if not detection.has_data:
        print("No legacy edits found.")
        return EXIT_OK
    report = await importer.run()
    print(f"Detected {report.detected} legacy snapshots, imported {report.imported}.")
    for message in (*report.skipped, *report.errors):
        print(f"  {message}")
    if report.cleared:
        print("Legacy snapshots removed.")
    return EXIT_SESSION_ERROR if report.errors else EXIT_OK


COMMANDS: dict[str, Command] = {
    "show": _cmd_show,
    "set": _cmd_set,
    "clear": _cmd_clear,
    "sync": _cmd_sync,
    "history": _cmd_history,
    "rollback": _cmd_rollback,
    "export": _cmd_export,
    "import": _cmd_import,
    "migrate-legacy": _cmd_migrate_legacy,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="framework_edits", description="Shared framework edits editor")
    parser.add_argument("--config-dir", help="Directory holding config.json")
    subparsers = parser.add_subparsers(dest="command", required=True)

    show = subparsers.add_parser("show", help="Print the current edits")
    show.add_argument("--asset", type=int)

    set_parser = subparsers.add_parser("set", help="Edit one field")
    set_parser.add_argument("asset", type=int)
    set_parser.add_argument("field", choices=[field_type.value for field_type in FieldType])
    set_parser.add_argument("value", help="New text; an empty string removes the override")
    set_parser.add_argument("--sub-id", default="", help="Checklist item id or question id")
    set_parser.add_argument("--sub-key", default="", help="label or description for question fields")

    clear = subparsers.add_parser("clear", help="Remove every edit on an asset")
    clear.add_argument("asset", type=int)

    sync = subparsers.add_parser("sync", help="Reload and report conflicts")
    sync.add_argument("--keep", choices=[choice.value for choice in ResolutionChoice])

    history = subparsers.add_parser("history", help="Show the change log of an asset")
    history.add_argument("asset", type=int)

    rollback = subparsers.add_parser("rollback", help="Restore the old value of a history entry")
    rollback.add_argument("history_id")

    export = subparsers.add_parser("export", help="Write all edits to a JSON file")
    export.add_argument("--out", help="Target directory")

    import_parser = subparsers.add_parser("import", help="Import edits from a JSON export")
    import_parser.add_argument("file")

    migrate = subparsers.add_parser("migrate-legacy", help="Import legacy local snapshots")
    migrate.add_argument("--dir", help="Directory holding framework-edits-<n>.json files")
    return parser


async def _run(args: argparse.Namespace) -> int:
    config_store = EditorConfigStore(Path(args.config_dir)) if args.config_dir else None
    export_dir = Path(args.out) if getattr(args, "out", None) else None
    container = build_container(config_store, export_dir=export_dir)
    try:
        return await COMMANDS[args.command](container, args)
    finally:
        container.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook(log_dir)
    logger.info("Command: %s", args.command)

    try:
        return asyncio.run(_run(args))
    except Exception as exc:  # noqa: BLE001
        incident_id = handle_unexpected_exception(type(exc), exc, exc.__traceback__)
        print(f"Unexpected error. Incident id: {incident_id}", file=sys.stderr)
        return EXIT_USAGE_ERROR

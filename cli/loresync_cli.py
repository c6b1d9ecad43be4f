"""Command-line interface for loresync."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loresync.config import Settings
from loresync.exceptions import DocumentNotFoundError, LoresyncError, SourceConfigError
from loresync.filesystem.sources_config import (
    SyncSource,
    add_sync_source,
    parse_sources_config,
    remove_sync_source,
    update_sync_source,
)
from loresync.main import configure_logging
from loresync.runtime import build_runtime
from loresync.services.status_service import describe_status, mark_started, read_status
from loresync.services.sync_service import SyncOptions

if TYPE_CHECKING:
    from loresync.services.sync_service import SyncResult


def format_result(result: SyncResult) -> list[str]:
    """Human-readable lines for a sync report."""
    d = result.discovery
    p = result.processing
    lines = [
        f"Sources scanned: {d.sources_scanned}",
        f"Files: {d.total_files} total, {d.new_files} new, {d.existing_files} existing, "
        f"{d.skipped_files} skipped",
    ]
    if d.remote_files:
        lines.append(f"Remote documents: {d.remote_files}")
    if result.dry_run:
        lines.append("Dry run: nothing was ingested")
    else:
        lines.append(f"Processed: {p.processed}, errors: {p.errors}, moved: {p.moved}")
        lines.extend(f"  + {title}" for title in p.titles)
    if d.errors:
        lines.append(f"Discovery errors: {d.errors}")
    lines.extend(f"  ! {error}" for error in result.errors)
    git = []
    if result.git_pulled:
        git.append("pulled")
    if result.git_pushed:
        git.append("pushed")
    if git:
        lines.append(f"Git: {', '.join(git)}")
    if result.git_error:
        lines.append(f"Git error: {result.git_error}")
    return lines


async def _run_sync(settings: Settings, options: SyncOptions) -> SyncResult:
    runtime = await build_runtime(settings)
    try:
        return await runtime.orchestrator.sync(options)
    finally:
        await runtime.close()


async def _run_watch(settings: Settings, initial_sync: bool) -> None:
    runtime = await build_runtime(settings)
    scheduler = runtime.build_scheduler(watch=True)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    mark_started(settings.status_file)
    try:
        await scheduler.start(initial_sync=initial_sync)
        await stop.wait()
    finally:
        await scheduler.stop()
        await runtime.close()


async def _run_delete(settings: Settings, document_id: str) -> str:
    runtime = await build_runtime(settings)
    try:
        result = await runtime.delete_document(document_id)
    finally:
        await runtime.close()
    message = f"Deleted {result.document_id}"
    if result.content_hash:
        message += f"; content hash {result.content_hash[:12]} blocked"
    if result.git_error:
        message += f" (git error: {result.git_error})"
    return message


def _sources_command(settings: Settings, args: argparse.Namespace) -> None:
    config_dir = settings.config_dir
    if args.sources_command == "add":
        source = SyncSource(
            name=args.name,
            root_path=args.path,
            glob_pattern=args.glob,
            target_project=args.project,
            enabled=not args.disabled,
        )
        add_sync_source(config_dir, source)
        print(f"Added source {source.name}: {source.root_path} ({source.glob_pattern})")
    elif args.sources_command in {"enable", "disable"}:
        updated = update_sync_source(
            config_dir, args.name, enabled=args.sources_command == "enable"
        )
        print(f"Source {updated.name} {'enabled' if updated.enabled else 'disabled'}")
    elif args.sources_command == "remove":
        removed = remove_sync_source(config_dir, args.name)
        print(f"Removed source {removed.name}")
    else:
        sources = parse_sources_config(config_dir)
        if not sources:
            print("No sync sources configured.")
            return
        for source in sources:
            state = "enabled" if source.enabled else "disabled"
            print(
                f"{source.name}: {source.root_path} glob={source.glob_pattern} "
                f"project={source.target_project} [{state}]"
            )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loresync",
        description="Incrementally sync watched directories into the knowledge repository",
    )
    parser.add_argument("--data-dir", help="Git-tracked data repository")
    parser.add_argument("--config-dir", help="Directory for sources, status and local index")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Run one sync pass")
    sync_parser.add_argument("--no-pull", action="store_true", help="Skip git pull")
    sync_parser.add_argument("--no-push", action="store_true", help="Skip git commit/push")
    sync_parser.add_argument(
        "--dry-run", action="store_true", help="Report what would be ingested"
    )
    sync_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    watch_parser = subparsers.add_parser("watch", help="Watch sources and sync on change")
    watch_parser.add_argument(
        "--no-initial", action="store_true", help="Skip the sync at startup"
    )

    subparsers.add_parser("serve", help="Run the control API with the watcher")
    subparsers.add_parser("status", help="Show daemon status")

    sources_parser = subparsers.add_parser("sources", help="Manage sync sources")
    sources_sub = sources_parser.add_subparsers(dest="sources_command")
    sources_sub.add_parser("list", help="List sources")
    add_parser = sources_sub.add_parser("add", help="Add a source")
    add_parser.add_argument("name")
    add_parser.add_argument("path")
    add_parser.add_argument("--glob", default="**/*", help="File glob (default: **/*)")
    add_parser.add_argument("--project", default="default", help="Target project")
    add_parser.add_argument("--disabled", action="store_true", help="Add without enabling")
    for name in ("enable", "disable", "remove"):
        sources_sub.add_parser(name, help=f"{name.capitalize()} a source").add_argument("name")

    delete_parser = subparsers.add_parser("delete", help="Delete a document and block it")
    delete_parser.add_argument("document_id")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    overrides: dict[str, object] = {}
    if args.data_dir:
        overrides["data_dir"] = Path(args.data_dir)
    if args.config_dir:
        overrides["config_dir"] = Path(args.config_dir)
    if args.debug:
        overrides["debug"] = True
    settings = Settings(**overrides)  # type: ignore[arg-type]
    configure_logging(settings.debug)

    try:
        if args.command == "sync":
            options = SyncOptions(
                pull=not args.no_pull, push=not args.no_push, dry_run=args.dry_run
            )
            result = asyncio.run(_run_sync(settings, options))
            if args.json:
                print(json.dumps(result.to_dict(), indent=2))
            else:
                print("\n".join(format_result(result)))
        elif args.command == "watch":
            asyncio.run(_run_watch(settings, initial_sync=not args.no_initial))
        elif args.command == "serve":
            from loresync.main import cli_entry

            cli_entry(settings)
        elif args.command == "status":
            print(describe_status(read_status(settings.status_file)))
        elif args.command == "sources":
            _sources_command(settings, args)
        elif args.command == "delete":
            print(asyncio.run(_run_delete(settings, args.document_id)))
    except (SourceConfigError, DocumentNotFoundError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    except LoresyncError as exc:
        print(f"Error: {exc}")
        sys.exit(2)


if __name__ == "__main__":
    main()

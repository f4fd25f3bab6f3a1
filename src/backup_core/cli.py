#!/usr/bin/env python3
"""Command line entry point: run a collection backup or inspect its manifest."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from backup_core.__version__ import __version__ as VERSION
from backup_core.acquire.context import Unit, load_units
from backup_core.acquire.orchestrator import AcquisitionOrchestrator, RunSummary, collect_avatars
from backup_core.acquire.strategies.registry import build_default_registry
from backup_core.config import BackupConfig, load_config
from backup_core.exceptions import BackupError, ManifestCorruptError
from backup_core.layout import avatars_dir
from backup_core.logging_config import LogContext, add_logging_args, configure_logging
from backup_core.manifest import (
    ManifestStore,
    failed_avatars,
    failed_posts,
    manifest_slug,
    manifest_stats,
)
from backup_core.utils.io import write_json
from backup_core.utils.logging import utc_now

logger = logging.getLogger(__name__)

COMMAND_RUN = "run"
COMMAND_STATUS = "status"
COMMAND_RETRY_LIST = "retry-list"


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Backup configuration YAML")
    parser.add_argument("--collection", required=True, help="Collection (group) name")
    add_logging_args(parser)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="group-backup", description=f"Group backup v{VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser(COMMAND_RUN, help="Download every link of the extracted units.")
    _add_common_args(run)
    run.add_argument("--units", required=True, help="Units JSONL emitted by the content extractor")
    run.add_argument(
        "--no-browser",
        action="store_true",
        help="Skip the authenticated browser; Drive and Photos links fall back or fail.",
    )
    run.add_argument("--concurrency", type=int, default=None, help="Parallel direct downloads")
    run.add_argument("--avatars", action="store_true", help="Also download author avatars")
    run.add_argument("--strict", "--fail-on-error", dest="strict", action="store_true")

    status = sub.add_parser(COMMAND_STATUS, help="Print manifest statistics as JSON.")
    _add_common_args(status)

    retry = sub.add_parser(COMMAND_RETRY_LIST, help="List posts and avatars that need another run.")
    _add_common_args(retry)
    return parser


def _config_path(raw: str | None) -> Path | None:
    return Path(raw).expanduser().resolve() if raw else None


def summary_path(config: BackupConfig, collection: str) -> Path:
    return config.manifests_root / f"run_summary_{manifest_slug(collection)}.json"


async def _run_collection(
    config: BackupConfig,
    orchestrator: AcquisitionOrchestrator,
    units: list[Unit],
    *,
    use_browser: bool,
    with_avatars: bool,
) -> RunSummary:
    if use_browser:
        from backup_core.session import open_browser_session

        async with open_browser_session(config.browser) as page:
            summary = await orchestrator.run(units, session=page)
    else:
        summary = await orchestrator.run(units)

    if with_avatars:
        dest = avatars_dir(config.output_root, orchestrator.collection_id, datetime.now())
        await orchestrator.download_avatars(collect_avatars(units), dest)
    return summary


def cmd_run(args: argparse.Namespace, config: BackupConfig) -> int:
    collection = args.collection
    acquisition = config.acquisition
    if args.concurrency is not None:
        acquisition = dataclasses.replace(acquisition, concurrency=max(1, args.concurrency))
        config = dataclasses.replace(config, acquisition=acquisition)

    units = load_units(Path(args.units).expanduser().resolve())
    orchestrator = AcquisitionOrchestrator(
        build_default_registry(config),
        ManifestStore(config.manifests_root),
        collection,
        output_root=config.output_root,
        concurrency=acquisition.concurrency,
        retry_policy=acquisition.retry,
        avatar_timeout=acquisition.timeouts.avatar,
    )
    logger.info("Loaded %s units for %s", len(units), collection)

    summary = asyncio.run(
        _run_collection(
            config,
            orchestrator,
            units,
            use_browser=not args.no_browser,
            with_avatars=args.avatars,
        )
    )

    payload: dict[str, Any] = {"run_at_utc": utc_now(), "version": VERSION, **summary.to_dict()}
    write_json(summary_path(config, collection), payload)
    if args.strict and summary.has_failures:
        return 1
    return 0


def cmd_status(args: argparse.Namespace, config: BackupConfig) -> int:
    store = ManifestStore(config.manifests_root)
    manifest = store.load(args.collection)
    stats = manifest_stats(manifest)
    stats["last_run"] = manifest.metadata.last_run
    print(json.dumps(stats, indent=2, sort_keys=True))
    return 0


def cmd_retry_list(args: argparse.Namespace, config: BackupConfig) -> int:
    manifest = ManifestStore(config.manifests_root).load(args.collection)
    posts = [
        {
            "id": post_id,
            "title": manifest.posts[post_id].title,
            "status": manifest.posts[post_id].status,
            "error": manifest.posts[post_id].error,
        }
        for post_id in failed_posts(manifest, include_partial=True)
    ]
    avatars = [{"author": record.author, "url": record.url, "error": record.error} for record in failed_avatars(manifest)]
    print(json.dumps({"posts": posts, "avatars": avatars}, indent=2, ensure_ascii=False))
    return 0


_COMMANDS = {
    COMMAND_RUN: cmd_run,
    COMMAND_STATUS: cmd_status,
    COMMAND_RETRY_LIST: cmd_retry_list,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(
        level=args.log_level,
        fmt=args.log_format,
        log_file=Path(args.log_file).expanduser() if args.log_file else None,
    )

    with LogContext(command=args.command, collection=args.collection):
        try:
            config = load_config(_config_path(args.config))
            return _COMMANDS[args.command](args, config)
        except ManifestCorruptError as exc:
            logger.error("Skipping collection, manifest is corrupt: %s", exc.message, extra=exc.as_log_fields())
            return 1
        except BackupError as exc:
            logger.error("%s", exc.message, extra=exc.as_log_fields())
            return 1


if __name__ == "__main__":
    raise SystemExit(main())

"""
ROM Wrangler - command line entry point.

Every subcommand works on the configured source roots (``--source``
overrides them) and prints a short human-readable summary.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional, Sequence

from .app.archive_controller import archive_paths, find_extracted_archives, find_superseded_disc_images
from .app.models import CancelToken, ConvertResult
from .app.pipeline import PipelineReport, run_pipeline
from .app.progress_streams import conversion_progress_stream
from .app.sort_controller import build_sort_plan, execute_plan
from .config import EngineConfig, load_config
from .conversion.chdman import find_chdman
from .core.file_utils import walk_files
from .core.multidisc import detect_sets, write_m3u
from .duplicates import detect_variants, select_preferred
from .exceptions import BaseError, ConfigurationError, ToolNotFoundError
from .extraction import decompress_ecm, delete_archive_dir, extract_all, init_tables
from .logging_config import cleanup_logging, setup_logging
from .platforms import init_catalog
from .scanning import check_folders, detect_misplaced, generate_all_folders, relocate_misplaced, scan
from .version import load_version

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERRORS = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="romwrangler",
                                     description="ROM Wrangler - sort, convert and clean ROM libraries")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--source", action="append", metavar="DIR",
                        help="Source directory (repeatable, overrides config)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-dir", help="Directory for log files")
    parser.add_argument("--no-file-log", action="store_true", help="Disable file logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--version", action="store_true", help="Show version information")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("scan", help="Classify files and report what was found")
    sub.add_parser("extract", help="Extract archives and ECM images in disc-based folders")

    p = sub.add_parser("convert", help="Convert disc images to CHD")
    p.add_argument("paths", nargs="*", help="Disc images (default: every convertible file)")
    p.add_argument("-j", "--concurrency", type=int, help="Parallel conversions")

    p = sub.add_parser("dedup", help="Show regional duplicates")
    p.add_argument("--apply", action="store_true", help="Move non-preferred variants into the archive")

    sub.add_parser("archive", help="Archive sources superseded by CHD files and extracted containers")

    p = sub.add_parser("sort", help="Sort files into device folders")
    p.add_argument("--output", help="Destination root (default: config output_dir)")
    p.add_argument("--copy", action="store_true", help="Copy instead of move")
    p.add_argument("--no-clean", action="store_true", help="Keep dump tags such as [!] in names")
    p.add_argument("--dry-run", action="store_true", help="Print the plan without touching files")

    sub.add_parser("run", help="Run the full pipeline")

    p = sub.add_parser("folders", help="Check or create device folders")
    p.add_argument("--base", help="Base directory (default: output dir)")
    p.add_argument("--generate", action="store_true", help="Create every missing folder")

    p = sub.add_parser("decompress-ecm", help="Decode .ecm files in place")
    p.add_argument("paths", nargs="+")
    p.add_argument("--keep", action="store_true", help="Keep the .ecm source")

    p = sub.add_parser("m3u", help="Write playlists for multi-disc sets in a folder")
    p.add_argument("directory")
    p.add_argument("--ext", help="Replace disc extensions in playlist entries, e.g. .chd")

    sub.add_parser("delete-archive", help="Delete the archive directory")
    return parser


def _load(args: argparse.Namespace) -> EngineConfig:
    config = load_config(args.config)
    if args.source:
        config.source_dirs = [os.path.abspath(os.path.expanduser(s)) for s in args.source]
    return config


def _print_errors(errors: Sequence[Exception]) -> None:
    for error in errors:
        print(f"  error: {error}")


def cmd_scan(config: EngineConfig, args: argparse.Namespace) -> int:
    result = scan(config.rom_dirs(), config.aliases)
    misplaced = detect_misplaced(result)
    for system_id in sorted(result.by_system):
        print(f"{system_id}: {len(result.by_system[system_id])} files")
    print(f"Convertible: {len(result.convertible)}")
    print(f"Misplaced: {len(misplaced)}")
    for m in misplaced:
        print(f"  {m.path}: {m.current_system} -> {m.correct_system}")
    print(f"Unresolved: {len(result.unresolved)}")
    print(f"Unsupported: {len(result.unsupported)}")
    _print_errors(result.errors)
    return EXIT_ERRORS if result.errors else EXIT_OK


def cmd_extract(config: EngineConfig, args: argparse.Namespace) -> int:
    init_tables()
    result, _ = extract_all(config.rom_dirs(), config.aliases, seven_zip_path=config.seven_zip_path)
    print(f"Extracted {result.extracted} archives ({result.files_created} files)")
    _print_errors(result.errors)
    return EXIT_ERRORS if result.errors else EXIT_OK


async def _stream_conversions(chdman: str, inputs: List[str], concurrency: int,
                              token: CancelToken) -> List[ConvertResult]:
    results: List[ConvertResult] = []
    async for event in conversion_progress_stream(chdman, inputs, concurrency, token):
        if event.kind == "start":
            print(f"[{event.current}/{event.total}] {event.message}")
        elif event.kind == "error":
            print(f"[{event.current}/{event.total}] failed: {event.message}")
        elif event.kind == "result":
            results = event.result
    return results


def cmd_convert(config: EngineConfig, args: argparse.Namespace) -> int:
    try:
        chdman = find_chdman(config.chdman_path)
    except ToolNotFoundError as exc:
        print(f"Error: {exc}")
        return EXIT_FATAL

    inputs = [os.path.abspath(p) for p in args.paths]
    if not inputs:
        inputs = [f.path for f in scan(config.rom_dirs(), config.aliases).convertible]
    if not inputs:
        print("Nothing to convert")
        return EXIT_OK

    token = CancelToken()
    previous = signal.signal(signal.SIGINT, lambda *_: token.cancel())
    try:
        results = asyncio.run(_stream_conversions(chdman, inputs, args.concurrency or config.concurrency, token))
    finally:
        signal.signal(signal.SIGINT, previous)

    ok = sum(1 for r in results if r.ok)
    cancelled = sum(1 for r in results if r.cancelled)
    print(f"Converted {ok}/{len(results)}" + (f" ({cancelled} cancelled)" if cancelled else ""))
    return EXIT_OK if ok == len(results) else EXIT_ERRORS


def cmd_dedup(config: EngineConfig, args: argparse.Namespace) -> int:
    roots = config.rom_dirs()
    result = scan(roots, config.aliases)
    relocate_misplaced(result, detect_misplaced(result))
    groups = detect_variants(result, config.region_priority)
    for group in groups:
        print(f"{group.system}: {group.base_name}")
        for index, path in enumerate(group.files):
            print(f"  {'keep' if index == 0 else 'drop'} {os.path.basename(path)}")
    dropped = select_preferred(groups)
    if not args.apply:
        print(f"{len(dropped)} files would be archived")
        return EXIT_OK
    archived = archive_paths(dropped, roots, config.archive_dir() or "")
    print(f"Archived {archived.files_moved} files")
    _print_errors(archived.errors)
    return EXIT_ERRORS if archived.errors else EXIT_OK


def cmd_archive(config: EngineConfig, args: argparse.Namespace) -> int:
    roots = config.rom_dirs()
    paths = find_superseded_disc_images(roots, config.aliases) + find_extracted_archives(roots, config.aliases)
    archived = archive_paths(paths, roots, config.archive_dir() or "")
    print(f"Archived {archived.files_moved} of {len(paths)} files")
    _print_errors(archived.errors)
    return EXIT_ERRORS if archived.errors else EXIT_OK


def cmd_sort(config: EngineConfig, args: argparse.Namespace) -> int:
    result = scan(config.rom_dirs(), config.aliases)
    relocate_misplaced(result, detect_misplaced(result))
    destination = args.output or config.destination_dir()
    plan = build_sort_plan(result, destination, clean_names=config.clean_names and not args.no_clean)
    if args.dry_run:
        for action in plan.files:
            print(f"{action.source_path} -> {action.dest_path}")
        for m3u in plan.m3us:
            print(f"write {m3u.path}")
        _print_errors(plan.errors)
        return EXIT_ERRORS if plan.errors else EXIT_OK
    outcome = execute_plan(plan, move=config.move_files and not args.copy, source_roots=config.rom_dirs())
    print(f"Moved {outcome.files_moved}, copied {outcome.files_copied}, playlists {outcome.m3us_written}")
    _print_errors(outcome.errors)
    return EXIT_ERRORS if outcome.errors else EXIT_OK


def _print_report(report: PipelineReport) -> None:
    if report.scan is not None:
        print(f"Scanned {len(report.scan.files)} files in {len(report.scan.by_system)} systems")
    print(f"CUE sheets repaired: {report.cues_fixed}")
    if report.extract is not None:
        print(f"Archives extracted: {report.extract.extracted}")
    print(f"Misplaced relocated: {report.misplaced}")
    print(f"Unknown resolved: {report.resolved_unknown}")
    print(f"Duplicates removed: {len(report.variants_removed)}")
    print(f"Converted: {sum(1 for r in report.conversions if r.ok)}/{len(report.conversions)}")
    print(f"Archived: {report.archive.files_moved}")
    if report.sort is not None:
        print(f"Sorted: {report.sort.files_moved + report.sort.files_copied}, "
              f"playlists {report.sort.m3us_written}")
    if report.archive_deleted:
        print("Archive directory deleted")
    if report.cancelled:
        print("Cancelled")


def cmd_run(config: EngineConfig, args: argparse.Namespace) -> int:
    token = CancelToken()

    def progress(phase: str, current: int, total: int, name: str) -> None:
        print(f"[{phase} {current}/{total}] {name}")

    previous = signal.signal(signal.SIGINT, lambda *_: token.cancel())
    try:
        report = run_pipeline(config, cancel_token=token, progress=progress)
    finally:
        signal.signal(signal.SIGINT, previous)
    _print_report(report)
    _print_errors(report.errors)
    if report.cancelled:
        return EXIT_ERRORS
    return EXIT_ERRORS if report.errors else EXIT_OK


def cmd_folders(config: EngineConfig, args: argparse.Namespace) -> int:
    base = args.base or config.destination_dir()
    if not base:
        print("No base directory; pass --base or configure source_dirs")
        return EXIT_FATAL
    if args.generate:
        created, errors = generate_all_folders(base)
        print(f"Created {created} folders in {base}")
        _print_errors(errors)
        return EXIT_ERRORS if errors else EXIT_OK
    for status in check_folders(base):
        mark = "ok" if status.exists else "missing"
        print(f"{status.folder:<16} {mark:<8} {status.file_count:>6}  {status.system}")
    return EXIT_OK


def cmd_decompress_ecm(config: EngineConfig, args: argparse.Namespace) -> int:
    init_tables()
    failures = 0
    for path in args.paths:
        try:
            out = decompress_ecm(path, remove_source=not args.keep)
        except BaseError as exc:
            failures += 1
            print(f"{path}: {exc}")
            continue
        print(f"{path} -> {out}")
    return EXIT_ERRORS if failures else EXIT_OK


def cmd_m3u(config: EngineConfig, args: argparse.Namespace) -> int:
    sets, _ = detect_sets(sorted(walk_files(args.directory)))
    for disc_set in sets:
        print(write_m3u(args.directory, disc_set, ext=args.ext))
    if not sets:
        print("No multi-disc sets found")
    return EXIT_OK


def cmd_delete_archive(config: EngineConfig, args: argparse.Namespace) -> int:
    archive_dir = config.archive_dir()
    if archive_dir is None:
        print("No source directories configured")
        return EXIT_FATAL
    delete_archive_dir(archive_dir)
    print(f"Deleted {archive_dir}")
    return EXIT_OK


COMMANDS = {
    "scan": cmd_scan,
    "extract": cmd_extract,
    "convert": cmd_convert,
    "dedup": cmd_dedup,
    "archive": cmd_archive,
    "sort": cmd_sort,
    "run": cmd_run,
    "folders": cmd_folders,
    "decompress-ecm": cmd_decompress_ecm,
    "m3u": cmd_m3u,
    "delete-archive": cmd_delete_archive,
}

NEEDS_SOURCES = {"scan", "extract", "dedup", "archive", "sort", "run", "delete-archive"}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"ROM Wrangler v{load_version()}")
        return EXIT_OK
    if not args.command:
        parser.print_help()
        return EXIT_FATAL

    setup_logging(
        log_level=args.log_level,
        log_dir=args.log_dir,
        enable_file_logging=not args.no_file_log,
        structured_json=True if args.json_logs else None,
    )
    try:
        init_catalog()
        config = _load(args)
        if args.command in NEEDS_SOURCES and not config.rom_dirs():
            print("No source directories; pass --source or set source_dirs in the config")
            return EXIT_FATAL
        return COMMANDS[args.command](config, args)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}")
        return EXIT_FATAL
    except BaseError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}")
        return EXIT_ERRORS
    finally:
        cleanup_logging()


if __name__ == "__main__":
    sys.exit(main())

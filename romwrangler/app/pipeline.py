"""End-to-end library cleanup.

Phases run strictly in order and hand one ScanResult from phase to phase:

1. repair CUE FILE references
2. scan
3. extract archives and re-scan
4. relocate misplaced files, resolve unknown ones
5. drop regional duplicates
6. convert disc images to CHD
7. quarantine originals, containers, duplicates and unsupported files
8. sort into device folders (and optionally delete the quarantine)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Set

from ..config.models import EngineConfig
from ..conversion.batch import batch_convert
from ..conversion.chdman import CD_EXTENSIONS, find_chdman
from ..conversion.sheets import fix_cue_file_references
from ..duplicates.variants import detect_variants, select_preferred
from ..exceptions import FileOperationError, ToolNotFoundError
from ..extraction.ecm import init_tables
from ..extraction.extract import delete_archive_dir, extract_all
from ..platforms import init_catalog
from ..scanning.detect import detect_misplaced, relocate_misplaced, resolve_unknown
from ..scanning.scanner import scan
from .archive_controller import (
    archive_extracted,
    archive_filtered_files,
    archive_unsupported,
    build_archive_plan,
    execute_archive,
)
from .models import (
    ArchiveResult,
    BatchProgress,
    CancelToken,
    ConvertResult,
    ExtractResult,
    PlanResult,
    ScanResult,
    SystemIdentifier,
    companions_or_self,
    is_cancelled,
)
from .sort_controller import build_sort_plan, execute_plan

logger = logging.getLogger(__name__)

PhaseProgressCallback = Callable[[str, int, int, str], None]


@dataclass
class PipelineReport:
    scan: Optional[ScanResult] = None
    extract: Optional[ExtractResult] = None
    cues_fixed: int = 0
    misplaced: int = 0
    resolved_unknown: int = 0
    variants_removed: List[str] = field(default_factory=list)
    conversions: List[ConvertResult] = field(default_factory=list)
    archive: ArchiveResult = field(default_factory=ArchiveResult)
    sort: Optional[PlanResult] = None
    archive_deleted: bool = False
    errors: List[Exception] = field(default_factory=list)
    cancelled: bool = False


class _CallbackSink:
    """Progress sink that forwards batch events to a phase callback."""

    def __init__(self, progress: PhaseProgressCallback) -> None:
        self._progress = progress

    def put(self, item: Any) -> bool:
        if isinstance(item, BatchProgress):
            self._progress("convert", item.file_index + 1, item.total_files, item.filename)
        return True


def _phase(progress: Optional[PhaseProgressCallback], name: str) -> Optional[Callable[[int, int, str], None]]:
    if progress is None:
        return None

    def callback(current: int, total: int, filename: str) -> None:
        progress(name, current, total, filename)

    return callback


def _sheet_tracks_in_use(result: ScanResult) -> Set[str]:
    """Tracks referenced by sheets that are still part of the library."""
    tracks: Set[str] = set()
    for f in result.files:
        if os.path.splitext(f.path)[1].lower() in CD_EXTENSIONS:
            tracks.update(companions_or_self(f.path))
    return tracks


def run_pipeline(
    config: EngineConfig,
    cancel_token: Optional[CancelToken] = None,
    progress: Optional[PhaseProgressCallback] = None,
    identifier: Optional[SystemIdentifier] = None,
) -> PipelineReport:
    init_catalog()
    init_tables()

    report = PipelineReport()
    roots = config.rom_dirs()
    archive_dir = config.archive_dir()
    destination = config.destination_dir()
    if not roots or archive_dir is None or destination is None:
        logger.warning("No source directories configured; nothing to do")
        return report

    def stop() -> bool:
        if is_cancelled(cancel_token):
            report.cancelled = True
            logger.info("Pipeline cancelled")
        return report.cancelled

    report.cues_fixed = fix_cue_file_references(roots)

    result = scan(roots, config.aliases)
    report.errors.extend(result.errors)
    if stop():
        report.scan = result
        return report

    extract_result, processed = extract_all(roots, config.aliases, _phase(progress, "extract"),
                                            cancel_token, config.seven_zip_path)
    report.extract = extract_result
    report.errors.extend(extract_result.errors)
    if extract_result.extracted:
        known = {str(e) for e in report.errors}
        result = scan(roots, config.aliases)
        report.errors.extend(e for e in result.errors if str(e) not in known)
    result.remove_files(c.path for c in processed)
    report.scan = result
    if stop():
        return report

    misplaced = detect_misplaced(result)
    relocate_misplaced(result, misplaced)
    report.misplaced = len(misplaced)
    report.resolved_unknown = resolve_unknown(result, identifier)

    groups = detect_variants(result, config.region_priority)
    report.variants_removed = select_preferred(groups)
    result.remove_files(report.variants_removed)
    if stop():
        return report

    if result.convertible:
        try:
            chdman = find_chdman(config.chdman_path)
        except ToolNotFoundError as exc:
            logger.error("%s", exc)
            report.errors.append(exc)
        else:
            sink = _CallbackSink(progress) if progress is not None else None
            report.conversions = batch_convert(
                chdman,
                [f.path for f in result.convertible],
                config.concurrency,
                milestones=sink,
                ticks=None,
                cancel_token=cancel_token,
            )
            report.errors.extend(r.error for r in report.conversions if r.error is not None)
            result.update_for_conversions(report.conversions)
            result.remove_failed_conversions(report.conversions)
    if stop():
        return report

    plan = build_archive_plan(roots, report.conversions, archive_dir)
    report.archive.merge(execute_archive(plan, _phase(progress, "archive"), cancel_token))
    report.archive.merge(archive_extracted(processed, roots, archive_dir, cancel_token))
    report.archive.merge(archive_filtered_files(report.variants_removed, roots, archive_dir, cancel_token))
    in_use = _sheet_tracks_in_use(result)
    unsupported = [p for p in result.unsupported if os.path.abspath(p) not in in_use]
    report.archive.merge(archive_unsupported(result.unresolved, unsupported, roots, archive_dir, cancel_token))
    report.errors.extend(report.archive.errors)
    if stop():
        return report

    sort_plan = build_sort_plan(result, destination, config.clean_names)
    report.sort = execute_plan(sort_plan, config.move_files, _phase(progress, "sort"), cancel_token, roots)
    report.errors.extend(report.sort.errors)
    if report.sort.cancelled:
        report.cancelled = True
        return report

    if config.delete_archive:
        try:
            delete_archive_dir(archive_dir)
            report.archive_deleted = True
        except FileOperationError as exc:
            logger.error("%s", exc)
            report.errors.append(exc)

    logger.info("Pipeline finished with %d errors", len(report.errors))
    return report

"""Quarantine of superseded, filtered and unsupported files.

Everything moved here keeps its path relative to the source root that
contains it, under ``<first root>/<archive_dir_name>``.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Mapping, Optional, Sequence, Set

from ..conversion.chdman import is_convertible, output_path
from ..core.file_utils import RESERVED_FOLDERS, compute_relative_path, ensure_parent, list_dir_sorted, move_file, walk_files
from ..exceptions import BaseError
from ..extraction.extract import CONTAINER_EXTENSIONS
from ..platforms import get_catalog
from .models import (
    ArchiveAction,
    ArchivePlan,
    ArchiveResult,
    CancelToken,
    ConvertResult,
    ExtractableFile,
    FileProgressCallback,
    companions_or_self,
    is_cancelled,
)

logger = logging.getLogger(__name__)


def _resolved_system_dirs(dirs: Sequence[str], aliases: Optional[Mapping[str, str]]) -> List[str]:
    catalog = get_catalog()
    found: List[str] = []
    for root in dirs:
        try:
            entries = list_dir_sorted(root)
        except OSError as exc:
            logger.debug("Skipping unreadable root %s: %s", root, exc)
            continue
        for entry in entries:
            if entry.is_dir() and entry.name not in RESERVED_FOLDERS and catalog.resolve_alias(entry.name, aliases):
                found.append(entry.path)
    return found


def find_superseded_disc_images(dirs: Sequence[str], aliases: Optional[Mapping[str, str]] = None) -> List[str]:
    """Disc images (with their tracks) that already have a ``.chd`` beside them."""
    seen: Set[str] = set()
    redundant: List[str] = []
    for system_dir in _resolved_system_dirs(dirs, aliases):
        for path in walk_files(system_dir):
            if not is_convertible(path) or not os.path.exists(output_path(path)):
                continue
            for member in companions_or_self(path):
                if member not in seen:
                    seen.add(member)
                    redundant.append(member)
    return redundant


def find_extracted_archives(dirs: Sequence[str], aliases: Optional[Mapping[str, str]] = None) -> List[str]:
    """Containers whose same-stem sibling directory already exists."""
    redundant: List[str] = []
    for system_dir in _resolved_system_dirs(dirs, aliases):
        for path in walk_files(system_dir):
            stem, ext = os.path.splitext(path)
            if ext.lower() in CONTAINER_EXTENSIONS and os.path.isdir(stem):
                redundant.append(path)
    return redundant


def _action_for(path: str, source_roots: Sequence[str], archive_dir: str) -> ArchiveAction:
    rel = compute_relative_path(source_roots, path)
    return ArchiveAction(source_path=path, archive_path=os.path.join(archive_dir, rel))


def build_archive_plan(source_roots: Sequence[str], convert_results: Iterable[ConvertResult],
                       archive_dir: str) -> ArchivePlan:
    """Actions for the sheets and tracks of every successful conversion."""
    plan = ArchivePlan()
    for result in convert_results:
        if not result.ok:
            continue
        for member in companions_or_self(result.input_path):
            plan.actions.append(_action_for(member, source_roots, archive_dir))
    return plan


def execute_archive(
    plan: ArchivePlan,
    progress: Optional[FileProgressCallback] = None,
    cancel_token: Optional[CancelToken] = None,
) -> ArchiveResult:
    result = ArchiveResult()
    total = len(plan.actions)
    for index, action in enumerate(plan.actions):
        if is_cancelled(cancel_token):
            break
        if progress is not None:
            progress(index + 1, total, os.path.basename(action.source_path))
        try:
            ensure_parent(action.archive_path)
            move_file(action.source_path, action.archive_path)
        except BaseError as exc:
            logger.warning("Archive move failed for %s: %s", action.source_path, exc)
            result.errors.append(exc)
            continue
        result.files_moved += 1
    if result.files_moved:
        logger.info("Archived %d files", result.files_moved)
    return result


def archive_paths(
    paths: Iterable[str],
    source_roots: Sequence[str],
    archive_dir: str,
    progress: Optional[FileProgressCallback] = None,
    cancel_token: Optional[CancelToken] = None,
) -> ArchiveResult:
    plan = ArchivePlan(actions=[_action_for(p, source_roots, archive_dir) for p in paths])
    return execute_archive(plan, progress, cancel_token)


def archive_extracted(files: Iterable[ExtractableFile], source_roots: Sequence[str], archive_dir: str,
                      cancel_token: Optional[CancelToken] = None) -> ArchiveResult:
    """Move already-extracted containers into the quarantine."""
    return archive_paths([f.path for f in files], source_roots, archive_dir, cancel_token=cancel_token)


def archive_filtered_files(paths: Iterable[str], source_roots: Sequence[str], archive_dir: str,
                           cancel_token: Optional[CancelToken] = None) -> ArchiveResult:
    """Move variants dropped by dedup into the quarantine."""
    return archive_paths(paths, source_roots, archive_dir, cancel_token=cancel_token)


def archive_unsupported(unresolved: Iterable[str], unsupported: Iterable[str], source_roots: Sequence[str],
                        archive_dir: str, cancel_token: Optional[CancelToken] = None) -> ArchiveResult:
    """Move unresolved and unsupported files into the quarantine."""
    return archive_paths(list(unresolved) + list(unsupported), source_roots, archive_dir,
                         cancel_token=cancel_token)

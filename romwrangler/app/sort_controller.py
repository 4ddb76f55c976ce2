"""Sort plan: place every resolved file in its device folder."""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Sequence, Set

from ..conversion.chdman import CD_EXTENSIONS
from ..core.file_utils import copy_file, ensure_parent, move_file, remove_empty_dirs
from ..core.multidisc import detect_sets, generate_m3u
from ..core.naming import clean_basename, clean_filename
from ..exceptions import BaseError, FileOperationError
from ..platforms import get_catalog
from .models import (
    CancelToken,
    FileAction,
    FileProgressCallback,
    M3UAction,
    PlanResult,
    ScanResult,
    SortPlan,
    companions_or_self,
    is_cancelled,
)

logger = logging.getLogger(__name__)


def _superseded_by_chd(paths: List[str]) -> Set[str]:
    chd_bases = {os.path.splitext(p)[0] for p in paths if os.path.splitext(p)[1].lower() == ".chd"}
    return {
        p for p in paths
        if os.path.splitext(p)[1].lower() != ".chd" and os.path.splitext(p)[0] in chd_bases
    }


def _cleanup_boundary(directory: str, source_roots: Sequence[str]) -> str:
    for root in source_roots:
        abs_root = os.path.abspath(root)
        if directory == abs_root or directory.startswith(abs_root + os.sep):
            return abs_root
    return os.path.dirname(directory)


def _tracks_of(sheet: str) -> List[str]:
    if os.path.splitext(sheet)[1].lower() not in CD_EXTENSIONS:
        return []
    return [t for t in companions_or_self(sheet)[1:] if os.path.exists(t)]


def build_sort_plan(scan_result: ScanResult, output_dir: str, clean_names: bool = True) -> SortPlan:
    """Plan moves into ``<output_dir>/<device folder>`` plus playlists.

    Sources that share a stem with a ``.chd`` in the same system are left
    out. Track files referenced by a .cue or .gdi follow their sheet under
    their original names. A file whose destination (or a track's) is
    already taken by another source is left out and reported in
    ``errors``. Disc sets get a ``<BaseName>.m3u`` unless one already
    exists.
    """
    catalog = get_catalog()
    plan = SortPlan()
    dirs_needed: Set[str] = set()
    claimed: Dict[str, str] = {}

    for system_id in sorted(scan_result.by_system):
        folder = catalog.folder_for_system(system_id)
        if not folder:
            logger.debug("No device folder for %s; skipping", system_id)
            continue
        dest_dir = os.path.join(output_dir, folder)
        dirs_needed.add(dest_dir)

        paths = [f.path for f in scan_result.by_system[system_id]]
        skip = _superseded_by_chd(paths)
        paths = [p for p in paths if p not in skip]
        tracks = {os.path.abspath(t) for p in paths for t in _tracks_of(p)}
        sets, standalone = detect_sets([p for p in paths if os.path.abspath(p) not in tracks])

        def dest_name(path: str) -> str:
            name = os.path.basename(path)
            return clean_basename(name) if clean_names else name

        def add(path: str, name: str) -> None:
            moves = [(path, os.path.join(dest_dir, name))]
            moves += [(t, os.path.join(dest_dir, os.path.basename(t))) for t in _tracks_of(path)]
            for source, dest in moves:
                owner = claimed.get(os.path.normcase(os.path.abspath(dest)))
                if owner is not None and owner != source:
                    logger.warning("Sort collision: %s and %s both map to %s", owner, source, dest)
                    plan.errors.append(FileOperationError(
                        f"sort {path}: {dest} is already the target of {owner}",
                        file_path=path, operation="sort"))
                    return
            for source, dest in moves:
                key = os.path.normcase(os.path.abspath(dest))
                if key in claimed:
                    continue
                claimed[key] = source
                plan.files.append(FileAction(source_path=source, dest_path=dest, system=system_id))

        for path in standalone:
            add(path, dest_name(path))

        for disc_set in sets:
            names = [dest_name(d.path) for d in disc_set.files]
            for disc, name in zip(disc_set.files, names):
                add(disc.path, name)
            playlist_base = clean_filename(disc_set.base_name) if clean_names else disc_set.base_name
            m3u_path = os.path.join(dest_dir, playlist_base + ".m3u")
            if os.path.exists(m3u_path) or os.path.normcase(os.path.abspath(m3u_path)) in claimed:
                continue
            plan.m3us.append(M3UAction(path=m3u_path, content=generate_m3u(disc_set, names=names)))

    plan.dirs_to_create = sorted(dirs_needed)
    logger.info("Sort plan: %d files, %d playlists, %d folders",
                len(plan.files), len(plan.m3us), len(plan.dirs_to_create))
    return plan


def execute_plan(
    plan: SortPlan,
    move: bool = True,
    progress: Optional[FileProgressCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    source_roots: Sequence[str] = (),
) -> PlanResult:
    """Apply a sort plan.

    In move mode, source folders left empty are pruned upwards, never past
    the source root that holds them.
    """
    result = PlanResult()
    result.errors.extend(plan.errors)
    total = len(plan.files) + len(plan.m3us)
    current = 0

    for directory in plan.dirs_to_create:
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            result.errors.append(FileOperationError(f"mkdir {directory}: {exc}", file_path=directory,
                                                    operation="mkdir"))
            continue
        result.dirs_created += 1

    source_dirs: Dict[str, None] = {}
    for action in plan.files:
        if is_cancelled(cancel_token):
            result.cancelled = True
            break
        current += 1
        if progress is not None:
            progress(current, total, os.path.basename(action.source_path))

        if os.path.abspath(action.source_path) == os.path.abspath(action.dest_path):
            continue
        try:
            if move:
                source_dirs[os.path.dirname(os.path.abspath(action.source_path))] = None
                ensure_parent(action.dest_path)
                move_file(action.source_path, action.dest_path)
                result.files_moved += 1
            else:
                copy_file(action.source_path, action.dest_path)
                result.files_copied += 1
        except BaseError as exc:
            logger.warning("%s", exc)
            result.errors.append(exc)

    for m3u in plan.m3us:
        if result.cancelled or is_cancelled(cancel_token):
            result.cancelled = True
            break
        current += 1
        if progress is not None:
            progress(current, total, os.path.basename(m3u.path))
        try:
            ensure_parent(m3u.path)
            with open(m3u.path, "w", encoding="utf-8", newline="\n") as f:
                f.write(m3u.content)
        except BaseError as exc:
            result.errors.append(exc)
            continue
        except OSError as exc:
            result.errors.append(FileOperationError(f"write m3u {m3u.path}: {exc}", file_path=m3u.path,
                                                    operation="write"))
            continue
        result.m3us_written += 1

    if move:
        for directory in source_dirs:
            remove_empty_dirs(directory, _cleanup_boundary(directory, source_roots))

    logger.info("Sort: %d moved, %d copied, %d playlists, %d errors%s",
                result.files_moved, result.files_copied, result.m3us_written, len(result.errors),
                " (cancelled)" if result.cancelled else "")
    return result

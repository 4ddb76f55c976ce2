"""Extension-based placement checks and device-folder tooling."""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence, Tuple

from ..app.models import FolderStatus, MisplacedFile, ScannedFile, ScanResult, SystemIdentifier
from ..exceptions import FileOperationError
from ..platforms import get_catalog

logger = logging.getLogger(__name__)


def detect_misplaced(result: ScanResult) -> List[MisplacedFile]:
    """Files whose unique extension points at a different system than their folder."""
    catalog = get_catalog()
    misplaced: List[MisplacedFile] = []
    for f in result.files:
        detected = catalog.detect_system_by_extension(os.path.basename(f.path))
        if detected is None or detected == f.system:
            continue
        misplaced.append(MisplacedFile(
            path=f.path,
            current_system=f.system,
            correct_system=detected,
            source="extension",
        ))
    return misplaced


def relocate_misplaced(result: ScanResult, misplaced: Sequence[MisplacedFile]) -> None:
    if not misplaced:
        return
    relocate = {m.path: m.correct_system for m in misplaced}
    result.files = [
        ScannedFile(path=f.path, system=relocate[f.path], resolved=f.resolved) if f.path in relocate else f
        for f in result.files
    ]
    result.rebuild()
    for m in misplaced:
        logger.info("Relocated %s: %s -> %s", os.path.basename(m.path), m.current_system, m.correct_system)


def resolve_unknown(result: ScanResult, identifier: Optional[SystemIdentifier] = None) -> int:
    """Move unresolved files with a recognizable extension into ``files``.

    ``identifier`` is consulted for files the extension table cannot place;
    it receives the path and returns a system id or None. Returns the number
    of files resolved.
    """
    catalog = get_catalog()
    known = {os.path.abspath(f.path) for f in result.files}
    still_unresolved: List[str] = []
    resolved = 0

    for path in result.unresolved:
        system_id = catalog.detect_system_by_extension(os.path.basename(path))
        ext = os.path.splitext(path)[1].lower()
        if system_id is None or not catalog.is_valid_format(system_id, ext):
            system_id = identifier(path) if identifier is not None else None
            if system_id is not None and not catalog.is_known(system_id):
                logger.debug("Identifier returned unknown system %r for %s", system_id, path)
                system_id = None
        if system_id is None:
            still_unresolved.append(path)
            continue
        if os.path.abspath(path) not in known:
            result.files.append(ScannedFile(path=path, system=system_id, resolved=True))
            known.add(os.path.abspath(path))
            resolved += 1

    result.unresolved = still_unresolved
    result.rebuild()
    if resolved:
        logger.info("Resolved %d previously unknown files", resolved)
    return resolved


def check_folders(base_dir: str) -> List[FolderStatus]:
    """Report which device folders exist under base_dir, sorted by folder."""
    statuses: List[FolderStatus] = []
    for system_id, folder in get_catalog().device_folders():
        full_path = os.path.join(base_dir, folder)
        exists = os.path.isdir(full_path)
        count = 0
        if exists:
            try:
                count = len(os.listdir(full_path))
            except OSError as exc:
                logger.debug("Cannot list %s: %s", full_path, exc)
        statuses.append(FolderStatus(system=system_id, folder=folder, full_path=full_path,
                                     exists=exists, file_count=count))
    return statuses


def generate_all_folders(base_dir: str) -> Tuple[int, List[Exception]]:
    """Create every missing device folder. Returns (created, errors)."""
    try:
        os.makedirs(base_dir, exist_ok=True)
    except OSError as exc:
        return 0, [FileOperationError(f"create base dir: {exc}", file_path=base_dir, operation="mkdir")]

    created = 0
    errors: List[Exception] = []
    folders = sorted({folder for _, folder in get_catalog().device_folders()})
    for folder in folders:
        full_path = os.path.join(base_dir, folder)
        if os.path.exists(full_path):
            continue
        try:
            os.makedirs(full_path)
        except OSError as exc:
            errors.append(FileOperationError(f"create {folder}: {exc}", file_path=full_path, operation="mkdir"))
            continue
        created += 1
    return created, errors

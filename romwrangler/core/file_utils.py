"""Filesystem helpers shared by extraction, archival and sorting."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import FrozenSet, Iterator, Optional, Sequence, Union

from ..exceptions import FileOperationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Utility folders never treated as ROM folders. The quarantine folder is
# first; the others hold frontend state files.
RESERVED_FOLDERS: FrozenSet[str] = frozenset({
    "_archive",
    "_extra",
    "_recent",
    "_favorites",
    "_autostart",
})

COPY_BUFFER_SIZE = 1024 * 1024


def walk_files(root: PathLike, skip: FrozenSet[str] = RESERVED_FOLDERS) -> Iterator[str]:
    """Yield file paths under root in sorted order, pruning skipped folder names."""
    for dirpath, dirnames, filenames in os.walk(str(root)):
        dirnames[:] = sorted(d for d in dirnames if d not in skip)
        for name in sorted(filenames):
            yield os.path.join(dirpath, name)


def list_dir_sorted(path: PathLike) -> list[os.DirEntry]:
    with os.scandir(str(path)) as it:
        return sorted(it, key=lambda e: e.name)


def compute_relative_path(source_roots: Sequence[PathLike], file_path: PathLike) -> str:
    """Path relative to the first root that contains it, else the basename."""
    abs_file = os.path.abspath(str(file_path))
    for root in source_roots:
        abs_root = os.path.abspath(str(root))
        if abs_file.startswith(abs_root + os.sep):
            return os.path.relpath(abs_file, abs_root)
    return os.path.basename(abs_file)


def _refuse_existing(src: str, dst: str, operation: str) -> None:
    if os.path.lexists(dst):
        raise FileOperationError(f"{operation} {src}: destination exists: {dst}",
                                 file_path=dst, operation=operation)


def _copy_via_part(src: str, dst: str) -> None:
    tmp = dst + ".part"
    try:
        with open(src, "rb") as fsrc, open(tmp, "wb") as fdst:
            shutil.copyfileobj(fsrc, fdst, COPY_BUFFER_SIZE)
            fdst.flush()
            os.fsync(fdst.fileno())
        os.replace(tmp, dst)
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError as exc:
                logger.debug("Failed to remove temp file %s: %s", tmp, exc)


def copy_file(src: PathLike, dst: PathLike) -> None:
    """Copy src to dst through a ``.part`` file; no partial dst on failure.

    An existing dst is never overwritten.
    """
    src_s, dst_s = str(src), str(dst)
    _refuse_existing(src_s, dst_s, "copy")
    try:
        os.makedirs(os.path.dirname(dst_s) or ".", exist_ok=True)
        _copy_via_part(src_s, dst_s)
    except OSError as exc:
        raise FileOperationError(f"copy {src_s}: {exc}", file_path=src_s, operation="copy") from exc
    try:
        shutil.copystat(src_s, dst_s, follow_symlinks=True)
    except OSError as exc:
        logger.debug("copystat failed: %s", exc)


def move_file(src: PathLike, dst: PathLike) -> None:
    """Rename src to dst, falling back to copy + fsync + delete.

    An existing dst is never overwritten. When the fallback copy fails the
    destination is removed and the source is left untouched.
    """
    src_s, dst_s = str(src), str(dst)
    _refuse_existing(src_s, dst_s, "move")
    try:
        os.rename(src_s, dst_s)
        return
    except OSError as exc:
        logger.debug("Rename failed, copying instead: %s -> %s (%s)", src_s, dst_s, exc)

    _refuse_existing(src_s, dst_s, "move")
    try:
        _copy_via_part(src_s, dst_s)
    except OSError as exc:
        raise FileOperationError(f"move {src_s}: {exc}", file_path=src_s, operation="move") from exc

    try:
        os.remove(src_s)
    except OSError as exc:
        raise FileOperationError(f"move {src_s}: copied but could not remove source: {exc}",
                                 file_path=src_s, operation="move") from exc


def ensure_parent(path: PathLike) -> None:
    parent = os.path.dirname(str(path))
    try:
        os.makedirs(parent or ".", exist_ok=True)
    except OSError as exc:
        raise FileOperationError(f"mkdir {parent}: {exc}", file_path=parent, operation="mkdir") from exc


def remove_empty_dirs(directory: PathLike, stop_at: Optional[PathLike] = None) -> int:
    """Remove directory and its ancestors while they are empty.

    Stops at the first non-empty (or unremovable) directory, or at
    ``stop_at`` which is never removed. Returns the number removed.
    """
    current = os.path.abspath(str(directory))
    stop = os.path.abspath(str(stop_at)) if stop_at is not None else None
    removed = 0
    while True:
        if stop is not None and current == stop:
            return removed
        try:
            if os.listdir(current):
                return removed
            os.rmdir(current)
        except OSError:
            return removed
        removed += 1
        parent = os.path.dirname(current)
        if parent == current:
            return removed
        current = parent

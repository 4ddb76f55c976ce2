"""Archive extraction for disc-based system folders.

Containers (.zip, .7z, .rar) are unpacked beside themselves and .ecm
images are decoded in place. Extraction repeats until a round discovers
nothing new, so an .ecm inside a .rar is handled in the second round.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import stat
import subprocess  # nosec B404
import zipfile
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import py7zr

from ..app.models import CancelToken, ExtractableFile, ExtractResult, FileProgressCallback, is_cancelled
from ..core.file_utils import RESERVED_FOLDERS, list_dir_sorted, walk_files
from ..exceptions import ArchiveError, BaseError, FileOperationError, ZipSlipError
from ..platforms import get_catalog
from .ecm import decompress_ecm

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSIONS = (".zip", ".7z", ".rar", ".ecm")
CONTAINER_EXTENSIONS = (".zip", ".7z", ".rar")
SEVEN_ZIP_NAMES = ("7z", "7zz", "7za")

COPY_BUFFER_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ArchiveEntry:
    path: str
    is_dir: bool = False


def find_7z(configured: Optional[str] = None) -> Optional[str]:
    """Configured path, then 7z/7zz/7za on PATH. None when absent."""
    if configured and os.path.exists(configured):
        return configured
    for name in SEVEN_ZIP_NAMES:
        found = shutil.which(name)
        if found:
            return found
    return None


def _ext(path: str) -> str:
    return os.path.splitext(path)[1].lower()


def find_extractable(dirs: Sequence[str], aliases: Optional[Mapping[str, str]] = None) -> List[ExtractableFile]:
    """Archives and .ecm files under resolved disc-based system folders."""
    catalog = get_catalog()
    found: List[ExtractableFile] = []
    for root in dirs:
        try:
            entries = list_dir_sorted(root)
        except OSError as exc:
            logger.debug("Skipping unreadable root %s: %s", root, exc)
            continue
        for entry in entries:
            if not entry.is_dir() or entry.name in RESERVED_FOLDERS:
                continue
            system_id = catalog.resolve_alias(entry.name, aliases)
            if system_id is None or not catalog.is_disc_based(system_id):
                continue
            for path in walk_files(entry.path):
                if _ext(path) in ARCHIVE_EXTENSIONS:
                    found.append(ExtractableFile(path=path, system=system_id))
    return found


# ---------------------------------------------------------------------------
# Layout and safety
# ---------------------------------------------------------------------------

def _entry_root(name: str) -> str:
    return name.replace("\\", "/").lstrip("/").split("/", 1)[0]


def compute_extract_dir(archive_path: str, entry_names: Iterable[str]) -> str:
    """Beside the archive when every entry shares one top-level component,
    otherwise ``<parent>/<archive stem>``."""
    parent = os.path.dirname(archive_path)
    roots = {_entry_root(name) for name in entry_names if name}
    if len(roots) <= 1:
        return parent
    stem = os.path.splitext(os.path.basename(archive_path))[0]
    return os.path.join(parent, stem)


def is_safe_member_name(name: str) -> bool:
    """No absolute paths, drive letters, NULs or parent references."""
    if not name or "\x00" in name:
        return False
    if name.startswith(("/", "\\")) or re.match(r"^[a-zA-Z]:", name):
        return False
    parts = PurePosixPath(name.replace("\\", "/")).parts
    return ".." not in parts


def safe_join(base: str, rel: str) -> str:
    """Join rel onto base, raising ZipSlipError if the result escapes base."""
    if not is_safe_member_name(rel):
        raise ZipSlipError(f"zip-slip detected: {rel} escapes {base}", entry=rel, base=base)
    abs_base = os.path.abspath(base)
    target = os.path.abspath(os.path.join(abs_base, *rel.replace("\\", "/").split("/")))
    if target != abs_base and not target.startswith(abs_base + os.sep):
        raise ZipSlipError(f"zip-slip detected: {rel} escapes {base}", entry=rel, base=base)
    return target


def _is_symlink(info: zipfile.ZipInfo) -> bool:
    return stat.S_IFMT(info.external_attr >> 16) == stat.S_IFLNK


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

def extract_zip(zip_path: str) -> int:
    """Extract a zip natively; returns the number of files written."""
    try:
        with zipfile.ZipFile(zip_path) as zf:
            infos = zf.infolist()
            dest = compute_extract_dir(zip_path, [i.filename for i in infos])
            targets: List[Tuple[zipfile.ZipInfo, str]] = []
            for info in infos:
                if _is_symlink(info):
                    raise ZipSlipError(f"symlink entry blocked: {info.filename}", entry=info.filename, base=dest)
                targets.append((info, safe_join(dest, info.filename)))

            count = 0
            for info, target in targets:
                if info.is_dir():
                    os.makedirs(target, exist_ok=True)
                    continue
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst, COPY_BUFFER_SIZE)
                count += 1
            return count
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"open zip: {exc}", rom_path=zip_path) from exc
    except OSError as exc:
        raise ArchiveError(f"extract zip: {exc}", rom_path=zip_path) from exc


def parse_7z_list(output: str) -> List[ArchiveEntry]:
    """Entries from ``7z l -slt`` output, minus the leading archive record."""
    entries: List[ArchiveEntry] = []
    current: Optional[str] = None
    is_dir = False
    for raw in output.splitlines():
        line = raw.strip()
        if line.startswith("Path = "):
            if current is not None:
                entries.append(ArchiveEntry(current, is_dir))
            current = line[len("Path = "):]
            is_dir = False
        elif line == "Folder = +":
            is_dir = True
    if current is not None:
        entries.append(ArchiveEntry(current, is_dir))
    return entries[1:]


def extract_with_7z(archive_path: str, seven_zip: str) -> int:
    listing = subprocess.run(  # nosec B603
        [seven_zip, "l", "-slt", archive_path],
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        errors="replace",
        check=False,
    )
    if listing.returncode != 0:
        raise ArchiveError(f"7z list failed ({listing.returncode}): {listing.stderr.strip()}", rom_path=archive_path)

    entries = parse_7z_list(listing.stdout)
    dest = compute_extract_dir(archive_path, [e.path for e in entries])
    for entry in entries:
        safe_join(dest, entry.path)
    os.makedirs(dest, exist_ok=True)

    proc = subprocess.run(  # nosec B603
        [seven_zip, "x", "-y", f"-o{dest}", archive_path],
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        errors="replace",
        check=False,
    )
    if proc.returncode != 0:
        output = (proc.stdout + proc.stderr).strip()
        raise ArchiveError(f"7z extract failed ({proc.returncode}): {output}", rom_path=archive_path)
    return sum(1 for e in entries if not e.is_dir)


def extract_with_py7zr(archive_path: str) -> int:
    try:
        with py7zr.SevenZipFile(archive_path, mode="r") as archive:
            infos = archive.list()
            dest = compute_extract_dir(archive_path, [i.filename for i in infos])
            for info in infos:
                safe_join(dest, info.filename)
            os.makedirs(dest, exist_ok=True)
            archive.extractall(path=dest)
    except py7zr.Bad7zFile as exc:
        raise ArchiveError(f"corrupt or invalid 7z file: {exc}", rom_path=archive_path) from exc
    except OSError as exc:
        raise ArchiveError(f"extract 7z: {exc}", rom_path=archive_path) from exc
    return sum(1 for i in infos if not i.is_directory)


def extract_single(archive_path: str, seven_zip: Optional[str]) -> int:
    ext = _ext(archive_path)
    if ext == ".zip":
        return extract_zip(archive_path)
    if ext == ".ecm":
        decompress_ecm(archive_path)
        return 1
    if ext in (".7z", ".rar"):
        if seven_zip:
            return extract_with_7z(archive_path, seven_zip)
        if ext == ".7z":
            return extract_with_py7zr(archive_path)
        raise ArchiveError("7z not found; install p7zip to extract .rar files", rom_path=archive_path)
    raise ArchiveError(f"unsupported archive format: {ext}", rom_path=archive_path)


def extract_archives(
    files: Sequence[ExtractableFile],
    progress: Optional[FileProgressCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    seven_zip_path: Optional[str] = None,
) -> ExtractResult:
    result = ExtractResult()
    seven_zip = find_7z(seven_zip_path)
    total = len(files)
    for index, f in enumerate(files):
        if is_cancelled(cancel_token):
            result.cancelled = True
            break
        name = os.path.basename(f.path)
        if progress is not None:
            progress(index + 1, total, name)
        try:
            count = extract_single(f.path, seven_zip)
        except (BaseError, OSError) as exc:
            logger.warning("Extraction failed for %s: %s", name, exc)
            result.errors.append(exc)
            continue
        result.extracted += 1
        result.succeeded.append(f.path)
        result.files_created += count
        logger.info("Extracted %s (%d files)", name, count)
    return result


def extract_all(
    dirs: Sequence[str],
    aliases: Optional[Mapping[str, str]] = None,
    progress: Optional[FileProgressCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    seven_zip_path: Optional[str] = None,
) -> Tuple[ExtractResult, List[ExtractableFile]]:
    """Extract until no new archives appear.

    Returns the combined result and the successfully extracted containers
    (.ecm files are intermediates and are not listed).
    """
    total = ExtractResult()
    processed_containers: List[ExtractableFile] = []
    seen: Set[str] = set()

    while True:
        fresh = [f for f in find_extractable(dirs, aliases) if f.path not in seen]
        if not fresh:
            break
        seen.update(f.path for f in fresh)

        round_result = extract_archives(fresh, progress, cancel_token, seven_zip_path)
        total.extracted += round_result.extracted
        total.files_created += round_result.files_created
        total.errors.extend(round_result.errors)
        total.succeeded.extend(round_result.succeeded)
        done = set(round_result.succeeded)
        processed_containers.extend(f for f in fresh if f.path in done and _ext(f.path) != ".ecm")

        if round_result.cancelled:
            total.cancelled = True
            break

    return total, processed_containers


def delete_archive_dir(archive_dir: str) -> None:
    """Remove the quarantine directory tree; a missing directory is fine."""
    if not os.path.exists(archive_dir):
        return
    try:
        shutil.rmtree(archive_dir)
    except OSError as exc:
        raise FileOperationError(f"delete {archive_dir}: {exc}", file_path=archive_dir, operation="delete") from exc
    logger.info("Deleted archive directory %s", archive_dir)

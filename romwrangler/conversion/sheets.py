"""GDI and CUE sheet parsing.

Both formats list track files relative to the sheet's directory:

* GDI: line 1 is the track count; on every later line the 5th field is
  the track filename, double-quoted when it contains spaces.
* CUE: ``FILE "<name>" <type>`` lines, keyword case-insensitive.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Dict, List, Sequence

from ..core.file_utils import RESERVED_FOLDERS, list_dir_sorted, walk_files
from ..exceptions import SheetParseError

logger = logging.getLogger(__name__)

CUE_FILE_RE = re.compile(r'^\s*FILE\s+"([^"]+)"', re.IGNORECASE)
GDI_TRACK_RE = re.compile(r'^\s*\d+\s+\d+\s+\d+\s+\d+\s+(?:"([^"]+)"|(\S+))')

# Sheets may carry names in legacy code pages; surrogateescape keeps every
# byte intact through a read/modify/write cycle.
_SHEET_ENCODING = "utf-8"
_SHEET_ERRORS = "surrogateescape"


def _read_sheet(path: str) -> str:
    try:
        with open(path, "r", encoding=_SHEET_ENCODING, errors=_SHEET_ERRORS, newline="") as f:
            return f.read()
    except OSError as exc:
        raise SheetParseError(f"read {os.path.basename(path)}: {exc}", rom_path=path) from exc


def _write_sheet(path: str, content: str) -> None:
    with open(path, "w", encoding=_SHEET_ENCODING, errors=_SHEET_ERRORS, newline="") as f:
        f.write(content)


def _collect(sheet_path: str, names: Sequence[str]) -> List[str]:
    directory = os.path.dirname(sheet_path)
    files = [sheet_path]
    seen = {sheet_path}
    for name in names:
        track = os.path.join(directory, name)
        if track not in seen:
            seen.add(track)
            files.append(track)
    return files


def parse_gdi(path: str) -> List[str]:
    names: List[str] = []
    for line_no, line in enumerate(_read_sheet(path).splitlines()):
        if line_no == 0:
            continue
        match = GDI_TRACK_RE.match(line)
        if match:
            names.append(match.group(1) or match.group(2))
    return _collect(path, names)


def parse_cue(path: str) -> List[str]:
    names: List[str] = []
    for line in _read_sheet(path).splitlines():
        match = CUE_FILE_RE.match(line)
        if match:
            names.append(match.group(1))
    return _collect(path, names)


def companion_files(disc_image_path: str) -> List[str]:
    """Every file that travels with a disc image, the image itself first.

    Paths are absolute and deduplicated in first-seen order.
    """
    abs_path = os.path.abspath(disc_image_path)
    ext = os.path.splitext(abs_path)[1].lower()
    if ext == ".gdi":
        return parse_gdi(abs_path)
    if ext == ".cue":
        return parse_cue(abs_path)
    return [abs_path]


def fix_cue_ecm_references(ecm_path: str, output_path: str) -> int:
    """Point sibling .cue files at a freshly decompressed track.

    Returns the number of sheets rewritten.
    """
    directory = os.path.dirname(ecm_path) or "."
    ecm_base = os.path.basename(ecm_path)
    output_base = os.path.basename(output_path)
    fixed = 0
    try:
        entries = list_dir_sorted(directory)
    except OSError as exc:
        logger.warning("Cannot list %s for cue fixups: %s", directory, exc)
        return 0
    for entry in entries:
        if not entry.is_file() or os.path.splitext(entry.name)[1].lower() != ".cue":
            continue
        try:
            content = _read_sheet(entry.path)
            if ecm_base not in content:
                continue
            _write_sheet(entry.path, content.replace(ecm_base, output_base))
            fixed += 1
            logger.debug("Updated %s: %s -> %s", entry.name, ecm_base, output_base)
        except (SheetParseError, OSError) as exc:
            logger.warning("Could not patch %s: %s", entry.path, exc)
    return fixed


def fix_single_cue_file(cue_path: str) -> bool:
    """Repair FILE references whose case does not match the file on disk."""
    directory = os.path.dirname(cue_path) or "."
    content = _read_sheet(cue_path)
    try:
        lower_to_actual: Dict[str, str] = {
            e.name.lower(): e.name for e in list_dir_sorted(directory) if e.is_file()
        }
    except OSError as exc:
        raise SheetParseError(f"list {directory}: {exc}", rom_path=cue_path) from exc

    lines = content.split("\n")
    modified = False
    for index, line in enumerate(lines):
        match = CUE_FILE_RE.match(line)
        if not match:
            continue
        ref_name = match.group(1)
        if os.path.exists(os.path.join(directory, ref_name)):
            continue
        actual = lower_to_actual.get(ref_name.lower())
        if actual is None:
            continue
        lines[index] = line.replace(ref_name, actual, 1)
        modified = True

    if modified:
        try:
            _write_sheet(cue_path, "\n".join(lines))
        except OSError as exc:
            raise SheetParseError(f"write {os.path.basename(cue_path)}: {exc}", rom_path=cue_path) from exc
        logger.info("Fixed FILE references in %s", cue_path)
    return modified


def fix_cue_file_references(dirs: Sequence[str]) -> int:
    """Repair case-mismatched FILE references under every system folder.

    Only subdirectories of each root are visited; reserved folders are
    skipped. Returns the number of sheets rewritten.
    """
    fixed = 0
    for root in dirs:
        try:
            entries = list_dir_sorted(root)
        except OSError as exc:
            logger.debug("Skipping unreadable root %s: %s", root, exc)
            continue
        for entry in entries:
            if not entry.is_dir() or entry.name in RESERVED_FOLDERS:
                continue
            for path in walk_files(entry.path):
                if os.path.splitext(path)[1].lower() != ".cue":
                    continue
                try:
                    if fix_single_cue_file(path):
                        fixed += 1
                except SheetParseError as exc:
                    logger.warning("%s", exc)
    return fixed

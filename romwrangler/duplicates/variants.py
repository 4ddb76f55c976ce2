"""Regional/revision variant detection.

Files that normalize to the same base game name on the same system (and
the same disc number) are variants of one release. Each group is ranked by
region preference so its first member is the copy to keep.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..app.models import ScanResult, VariantGroup
from ..conversion.sheets import companion_files
from ..core.multidisc import extract_disc_number
from ..core.naming import RegionRanker, base_game_name
from ..exceptions import SheetParseError

logger = logging.getLogger(__name__)

SHEET_EXTENSIONS = (".cue", ".gdi")


def _is_sheet(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in SHEET_EXTENSIONS


def _sheet_tracks(paths: Sequence[str]) -> Set[str]:
    """Absolute paths referenced as tracks by any sheet among paths."""
    tracks: Set[str] = set()
    for path in paths:
        if not _is_sheet(path):
            continue
        try:
            tracks.update(companion_files(path)[1:])
        except SheetParseError as exc:
            logger.debug("Ignoring unreadable sheet %s: %s", path, exc)
    return tracks


def detect_variants(scan_result: ScanResult, region_priority: Optional[Sequence[str]] = None) -> List[VariantGroup]:
    """Group variants; groups are sorted by (system, base name).

    Track files referenced by a sheet travel with that sheet and are never
    grouped on their own.
    """
    ranker = RegionRanker(region_priority)
    tracks = _sheet_tracks([f.path for f in scan_result.files])

    groups: Dict[Tuple[str, str, int], List[str]] = {}
    for f in scan_result.files:
        if os.path.abspath(f.path) in tracks:
            continue
        stem = os.path.splitext(os.path.basename(f.path))[0]
        key = (base_game_name(stem), f.system, extract_disc_number(stem))
        groups.setdefault(key, []).append(f.path)

    result: List[VariantGroup] = []
    for (base, system, _disc), paths in groups.items():
        if len(paths) < 2:
            continue
        ranked = sorted(paths, key=ranker.score)
        result.append(VariantGroup(base_name=base, system=system, files=ranked))

    result.sort(key=lambda g: (g.system, g.base_name))
    logger.debug("Found %d variant groups", len(result))
    return result


def select_preferred(groups: Sequence[VariantGroup]) -> List[str]:
    """Paths to drop when keeping only the first member of each group.

    Dropped sheets bring their track files along.
    """
    removed: List[str] = []
    seen: Set[str] = set()
    for group in groups:
        for path in group.files[1:]:
            members = [path]
            if _is_sheet(path):
                try:
                    members = companion_files(path)
                except SheetParseError as exc:
                    logger.debug("Cannot expand %s: %s", path, exc)
            for member in members:
                if member not in seen:
                    seen.add(member)
                    removed.append(member)
    return removed

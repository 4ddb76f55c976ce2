"""Multi-disc detection and M3U playlist generation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .patterns import DISC_PATTERNS, MULTI_SPACE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscFile:
    path: str
    disc_num: int


@dataclass
class MultiDiscSet:
    base_name: str
    files: List[DiscFile] = field(default_factory=list)


def _stem(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def has_disc_pattern(name: str) -> bool:
    return any(p.search(name) for p in DISC_PATTERNS)


def strip_disc_pattern(name: str) -> str:
    """Remove every disc indicator, then normalize whitespace."""
    result = name
    for pattern in DISC_PATTERNS:
        result = pattern.sub("", result)
    return MULTI_SPACE.sub(" ", result).strip()


def extract_disc_number(name: str) -> int:
    """Disc number from the first matching pattern, or 0."""
    for pattern in DISC_PATTERNS:
        match = pattern.search(name)
        if match:
            return int(match.group("num"))
    return 0


def detect_sets(paths: Sequence[str]) -> Tuple[List[MultiDiscSet], List[str]]:
    """Split paths into multi-disc sets and standalone files.

    A base name shared by two or more files becomes a set ordered by disc
    number; a lone disc-pattern match is returned as standalone. Sets are
    sorted by base name.
    """
    groups: Dict[str, List[DiscFile]] = {}
    standalone: List[str] = []

    for path in paths:
        name = _stem(path)
        if not has_disc_pattern(name):
            standalone.append(path)
            continue
        base = strip_disc_pattern(name)
        groups.setdefault(base, []).append(DiscFile(path=path, disc_num=extract_disc_number(name)))

    sets: List[MultiDiscSet] = []
    for base, discs in groups.items():
        if len(discs) < 2:
            standalone.append(discs[0].path)
            continue
        sets.append(MultiDiscSet(base_name=base, files=sorted(discs, key=lambda d: d.disc_num)))

    sets.sort(key=lambda s: s.base_name)
    return sets, standalone


def generate_m3u(disc_set: MultiDiscSet, ext: Optional[str] = None, use_subdir: bool = False,
                 names: Optional[Sequence[str]] = None) -> str:
    """Playlist text: one disc per line in ascending order, trailing newline.

    ``ext`` swaps each filename's extension (e.g. ``.chd`` after
    conversion); ``use_subdir`` nests entries under ``<BaseName>/``;
    ``names`` overrides the per-disc filenames (same order as the set).
    """
    lines: List[str] = []
    for index, disc in enumerate(disc_set.files):
        filename = names[index] if names is not None else os.path.basename(disc.path)
        if ext:
            filename = os.path.splitext(filename)[0] + ext
        if use_subdir:
            filename = f"{disc_set.base_name}/{filename}"
        lines.append(filename)
    return "\n".join(lines) + "\n"


def m3u_path_for(dest_dir: str, disc_set: MultiDiscSet) -> str:
    return os.path.join(dest_dir, disc_set.base_name + ".m3u")


def write_m3u(dest_dir: str, disc_set: MultiDiscSet, ext: Optional[str] = None, use_subdir: bool = False) -> str:
    content = generate_m3u(disc_set, ext, use_subdir)
    path = m3u_path_for(dest_dir, disc_set)
    os.makedirs(dest_dir, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(content)
    logger.info("Wrote playlist %s (%d discs)", path, len(disc_set.files))
    return path
